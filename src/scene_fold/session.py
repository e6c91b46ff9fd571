"""Per-chat scene folding session.

A session bundles everything that used to be ambient state: the host chat,
its scene store, the summarization queue and the selection-mode cursor.
Create one when a chat is opened and discard it when the chat changes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from scene_fold.agent_client import AgentClient, AgentSummarizer
from scene_fold.chat.identity import IdFactory, find_duplicates, new_id
from scene_fold.chat.models import ChatMessage
from scene_fold.config import SceneFoldConfig
from scene_fold.persistence import NullPersistence, Persistence
from scene_fold.render import SceneFoldView, render
from scene_fold.scenes.exceptions import InvalidRangeError
from scene_fold.scenes.lifecycle import SceneLifecycle
from scene_fold.scenes.models import Scene
from scene_fold.scenes.reconcile import DeletionResult, reconcile_deletions, reconcile_duplicates
from scene_fold.scenes.store import SceneStore
from scene_fold.summarization.queue import SummarizationQueue
from scene_fold.summarization.worker import Notice, SceneSummarizer, Summarizer

LOGGER = logging.getLogger(__name__)


@dataclass
class SelectionState:
    """Range cursor for scene selection mode."""

    active: bool = False
    start: int | None = None
    end: int | None = None
    auto_start: int | None = None
    auto_start_overridden: bool = False

    @property
    def range(self) -> tuple[int, int] | None:
        if self.start is None or self.end is None:
            return None
        return (self.start, self.end)

    def enter(self, auto_start: int | None, last_position: int) -> None:
        """Start selecting, pre-filling auto-start..end of chat when given."""
        self.reset()
        self.active = True
        if auto_start is not None and auto_start <= last_position:
            self.auto_start = auto_start
            self.start = auto_start
            self.end = last_position

    def reset(self) -> None:
        self.active = False
        self.start = None
        self.end = None
        self.auto_start = None
        self.auto_start_overridden = False

    def click(self, position: int, extend: bool = False) -> None:
        """First click (or plain click with nothing chosen) sets both ends;
        later clicks or ``extend`` move the end. Ends are kept ordered."""
        if not self.active:
            return
        if self.start is None or (extend and self.end is None):
            self.start = position
            self.end = position
            self.auto_start_overridden = True
        else:
            self.end = position

        if self.start is not None and self.end is not None and self.start > self.end:
            self.start, self.end = self.end, self.start


class SceneFoldSession:
    """Entry point for a host integrating scene folding into one chat."""

    def __init__(
        self,
        sequence: list[ChatMessage],
        store: Optional[SceneStore] = None,
        config: Optional[SceneFoldConfig] = None,
        summarizer: Optional[Summarizer] = None,
        persistence: Optional[Persistence] = None,
        id_factory: IdFactory = new_id,
        on_update: Optional[Callable[[], None]] = None,
        on_notice: Optional[Notice] = None,
    ) -> None:
        self.config = config or SceneFoldConfig()
        self.sequence = sequence
        self.store = store if store is not None else SceneStore(id_factory=id_factory)
        self.id_factory = id_factory
        self.lifecycle = SceneLifecycle(self.store)
        self.persistence: Persistence = persistence or NullPersistence()
        self.selection = SelectionState()
        self._on_update = on_update
        self._on_notice = on_notice

        if summarizer is None:
            client = AgentClient(
                base_url=self.config.agent_url,
                timeout=self.config.timeout,
                api_key=self.config.api_key,
            )
            summarizer = AgentSummarizer(
                client,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
                model=self.config.model,
            )

        self.worker = SceneSummarizer(
            sequence=self.sequence,
            lifecycle=self.lifecycle,
            summarizer=summarizer,
            persistence=self.persistence,
            default_prompt=self.config.default_prompt,
            max_retries=self.config.max_retries,
            user_name=self.config.user_name,
            character_name=self.config.character_name,
            id_factory=id_factory,
            on_notice=self._notice,
            on_update=self._changed,
        )
        self.queue = SummarizationQueue(
            lifecycle=self.lifecycle,
            worker=self.worker,
            on_update=self._changed,
            persistence=self.persistence,
            settle_delay=self.config.settle_delay,
        )

    # Host hooks

    def on_chat_loaded(self) -> int:
        """Heal state left behind by a previous session.

        Returns:
            Number of scenes reset from an interrupted transient state.
        """
        self.selection.reset()
        reset = self.lifecycle.reset_interrupted()
        repaired = reconcile_duplicates(self.store, self.sequence, self.id_factory)
        deletion = reconcile_deletions(self.store, self.sequence)
        if repaired or deletion.changed:
            self.persistence.persist_sequence()
        if reset or repaired or deletion.changed:
            self.persistence.persist_scenes()
        self._changed()
        return reset

    def on_messages_deleted(self) -> DeletionResult:
        result = reconcile_deletions(self.store, self.sequence)
        if result.changed:
            self.persistence.persist_sequence()
            self.persistence.persist_scenes()
            self._changed()
        for scene_id in result.summary_lost:
            self._notice("info", f"Summary of scene {scene_id} was deleted; scene reset")
        return result

    def on_message_duplicated(self) -> int:
        if not find_duplicates(self.sequence):
            return 0
        repaired = reconcile_duplicates(self.store, self.sequence, self.id_factory)
        if repaired:
            self.persistence.persist_sequence()
            self.persistence.persist_scenes()
            self._changed()
        return repaired

    def on_message_edited(self, position: int) -> str | None:
        scene_id = self.lifecycle.mark_stale(self.sequence, position)
        if scene_id is not None:
            self.persistence.persist_scenes()
            self._changed()
        return scene_id

    # Selection mode

    def enter_selection(self) -> bool:
        if not self.config.enabled:
            self._notice("warning", "Scene folding is disabled. Enable it first.")
            return False
        auto_start = (
            self.store.auto_start_index(self.sequence)
            if self.config.smart_auto_start
            else None
        )
        self.selection.enter(auto_start, len(self.sequence) - 1)
        self._changed()
        return True

    def exit_selection(self) -> None:
        self.selection.reset()
        self._changed()

    def toggle_selection(self) -> bool:
        if self.selection.active:
            self.exit_selection()
            return False
        return self.enter_selection()

    def select(self, position: int, extend: bool = False) -> tuple[int, int] | None:
        self.selection.click(position, extend)
        self._changed()
        return self.selection.range

    def create_from_selection(self, custom_guidance: str | None = None) -> Scene | None:
        selected = self.selection.range
        if not self.selection.active or selected is None:
            return None
        scene = self.create_scene(selected[0], selected[1], custom_guidance)
        self.exit_selection()
        return scene

    # Scene actions

    def create_scene(
        self,
        start: int,
        end: int,
        custom_guidance: str | None = None,
    ) -> Scene | None:
        """Declare a scene. Validation errors propagate to the caller."""
        if not self.config.enabled:
            self._notice("warning", "Scene folding is disabled. Enable it first.")
            return None
        scene = self.store.create(self.sequence, start, end, custom_guidance)
        self.persistence.persist_sequence()
        self.persistence.persist_scenes()
        self._notice("success", f"Scene created with {scene.source_count} messages")
        self._changed()
        return scene

    def scene_to_here(self, position: int) -> Scene | None:
        """Create a scene from the auto-start boundary up to ``position``."""
        start = self.store.auto_start_index(self.sequence)
        if position < start:
            raise InvalidRangeError(start, position, len(self.sequence))
        return self.create_scene(start, position)

    def set_guidance(self, scene_id: str, custom_guidance: str | None) -> bool:
        guidance = (custom_guidance or "").strip() or None
        updated = self.store.update(scene_id, custom_guidance=guidance)
        if updated:
            self.persistence.persist_scenes()
        return updated

    def summarize(self, scene_id: str) -> bool:
        """Queue one scene. Must be called from a running event loop."""
        return self.queue.enqueue(scene_id)

    def summarize_all(self) -> int:
        """Queue every ``defined`` scene in chat order."""
        pending = [s.id for s in self.store.list_ordered(self.sequence) if s.status == "defined"]
        if not pending:
            self._notice("info", "No pending scenes to summarize.")
            return 0
        self._notice("info", f"Summarizing {len(pending)} scene(s)...")
        return self.queue.enqueue_many(pending)

    def retry(self, scene_id: str) -> bool:
        """Throw away any summary and queue the scene again."""
        scene = self.store.get(scene_id)
        if scene is None or self.queue.has(scene_id):
            return False
        if scene.status == "completed":
            self.lifecycle.undo(self.sequence, scene_id)
            self.persistence.persist_sequence()
        elif scene.is_transient:
            # Stuck without a queue entry; nothing is running it
            self.lifecycle.revert_cancelled(scene_id)
        return self.queue.enqueue(scene_id)

    def undo(self, scene_id: str) -> bool:
        if not self.lifecycle.undo(self.sequence, scene_id):
            return False
        self.persistence.persist_sequence()
        self.persistence.persist_scenes()
        self._changed()
        return True

    def delete_scene(self, scene_id: str) -> bool:
        if self.queue.has(scene_id):
            self.queue.cancel(scene_id)
        if not self.lifecycle.remove(self.sequence, scene_id):
            return False
        self.persistence.persist_sequence()
        self.persistence.persist_scenes()
        self._notice("info", "Scene deleted")
        self._changed()
        return True

    def toggle_fold(self, scene_id: str) -> bool:
        if not self.lifecycle.toggle_fold(self.sequence, scene_id):
            return False
        self.persistence.persist_sequence()
        self.persistence.persist_scenes()
        self._changed()
        return True

    def cancel(self, scene_id: str) -> bool:
        return self.queue.cancel(scene_id)

    def cancel_all(self) -> None:
        self.queue.cancel_all()

    def render(self) -> SceneFoldView:
        return render(self.store, self.sequence, self.queue, self.selection)

    def _changed(self) -> None:
        if self._on_update is not None:
            self._on_update()

    def _notice(self, level: str, text: str) -> None:
        log_level = {"error": logging.ERROR, "warning": logging.WARNING}.get(level, logging.INFO)
        LOGGER.log(log_level, "%s", text)
        if self._on_notice is not None:
            self._on_notice(level, text)

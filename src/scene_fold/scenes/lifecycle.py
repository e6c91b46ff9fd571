"""Scene state machine and the chat side effects of each transition.

    defined ──► queued ──► summarizing ──► completed
       ▲  ▲        │  ▲        │               │
       │  └────────┘  │        ▼               │
       │   (cancel)   └───── error             │
       └───────────────── undo ◄───────────────┘

``error`` can be re-queued or summarized directly. Cancellation of a
queued or summarizing scene is not an error: it returns to ``defined``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from scene_fold.chat.identity import NOT_FOUND, build_index, resolve
from scene_fold.scenes.models import TRANSIENT_STATUSES

if TYPE_CHECKING:
    from scene_fold.chat.models import ChatMessage
    from scene_fold.scenes.models import Scene, SceneStatus
    from scene_fold.scenes.store import SceneStore

LOGGER = logging.getLogger(__name__)

INTERRUPTED_CAUSE = "Interrupted: scene was still in progress when the chat was loaded"

TRANSITIONS: dict[SceneStatus, frozenset[SceneStatus]] = {
    "defined": frozenset({"queued", "summarizing"}),
    "queued": frozenset({"summarizing", "defined", "error"}),
    "summarizing": frozenset({"completed", "defined", "error"}),
    "completed": frozenset({"defined"}),
    "error": frozenset({"queued", "summarizing"}),
}


def can_transition(current: SceneStatus, target: SceneStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


class SceneLifecycle:
    """Applies status transitions to scenes held in a SceneStore."""

    def __init__(self, store: SceneStore) -> None:
        self.store = store

    def _refuse(self, scene_id: str, scene: Scene | None, action: str) -> bool:
        LOGGER.warning(
            "Cannot %s scene %s: status=%s",
            action,
            scene_id,
            scene.status if scene else "not found",
        )
        return False

    def mark_queued(self, scene_id: str) -> bool:
        """defined/error -> queued."""
        scene = self.store.get(scene_id)
        if scene is None or not can_transition(scene.status, "queued"):
            return self._refuse(scene_id, scene, "queue")
        self.store.update(scene_id, status="queued")
        return True

    def begin(self, scene_id: str, allow_queued: bool = True) -> bool:
        """Enter ``summarizing`` and clear the previous error.

        ``allow_queued`` accepts a scene the queue already marked as queued;
        direct invocation from ``defined``/``error`` is always allowed.
        """
        scene = self.store.get(scene_id)
        if scene is None:
            return self._refuse(scene_id, scene, "summarize")
        allowed = scene.status in ("defined", "error") or (
            allow_queued and scene.status == "queued"
        )
        if not allowed:
            return self._refuse(scene_id, scene, "summarize")
        self.store.update(scene_id, status="summarizing", last_error=None)
        return True

    def complete(self, scene_id: str, summary_id: str) -> bool:
        """summarizing -> completed, folded, with the new summary message."""
        scene = self.store.get(scene_id)
        if scene is None or not can_transition(scene.status, "completed"):
            return self._refuse(scene_id, scene, "complete")
        self.store.update(
            scene_id,
            status="completed",
            folded=True,
            stale=False,
            summary_id=summary_id,
            last_error=None,
        )
        LOGGER.info("Scene %s completed (summary %s)", scene_id, summary_id[:8])
        return True

    def revert_cancelled(self, scene_id: str) -> bool:
        """queued/summarizing -> defined. No-op for any other status."""
        scene = self.store.get(scene_id)
        if scene is None or scene.status not in TRANSIENT_STATUSES:
            return False
        self.store.update(scene_id, status="defined", last_error=None)
        LOGGER.info("Scene %s summarization cancelled", scene_id)
        return True

    def fail(self, scene_id: str, cause: str) -> bool:
        """queued/summarizing -> error with ``cause`` recorded."""
        scene = self.store.get(scene_id)
        if scene is None or not can_transition(scene.status, "error"):
            return self._refuse(scene_id, scene, "fail")
        self.store.update(scene_id, status="error", last_error=cause)
        LOGGER.error("Scene %s summarization failed: %s", scene_id, cause)
        return True

    def undo(self, sequence: list[ChatMessage], scene_id: str) -> bool:
        """completed -> defined: drop the summary and restore the sources."""
        scene = self.store.get(scene_id)
        if scene is None or scene.status != "completed":
            return self._refuse(scene_id, scene, "undo")

        self._remove_summary(sequence, scene)
        self._set_hidden(sequence, scene, False)
        self.store.update(
            scene_id,
            status="defined",
            folded=False,
            stale=False,
            summary_id=None,
            last_error=None,
        )
        LOGGER.info("Scene %s summary undone", scene_id)
        return True

    def remove(self, sequence: list[ChatMessage], scene_id: str) -> bool:
        """Delete a scene entirely, restoring its sources to normal messages."""
        scene = self.store.get(scene_id)
        if scene is None:
            return False
        self._remove_summary(sequence, scene)
        self._set_hidden(sequence, scene, False)
        self.store.delete(sequence, scene_id)
        return True

    def toggle_fold(self, sequence: Sequence[ChatMessage], scene_id: str) -> bool:
        """Flip ``folded`` on a completed scene and mirror it onto the sources."""
        scene = self.store.get(scene_id)
        if scene is None or scene.status != "completed":
            return False
        folded = not scene.folded
        self.store.update(scene_id, folded=folded)
        self._set_hidden(sequence, scene, folded)
        return True

    def reset_interrupted(self) -> int:
        """Force scenes left queued/summarizing by a previous session to error."""
        reset = 0
        for scene in self.store:
            if scene.is_transient:
                self.store.update(
                    scene.id,
                    status="error",
                    last_error=scene.last_error or INTERRUPTED_CAUSE,
                )
                reset += 1
        if reset:
            LOGGER.info("Reset %d interrupted scene(s) to error", reset)
        return reset

    def mark_stale(self, sequence: Sequence[ChatMessage], position: int) -> str | None:
        """Flag the completed scene owning the edited message, if any."""
        for scene_id in self.store.membership(sequence, position):
            scene = self.store.get(scene_id)
            if scene is not None and scene.status == "completed" and not scene.stale:
                self.store.update(scene_id, stale=True)
                LOGGER.info("Scene %s marked stale after edit at %d", scene_id, position)
                return scene_id
        return None

    def _remove_summary(self, sequence: list[ChatMessage], scene: Scene) -> None:
        if not scene.summary_id:
            return
        position = resolve(sequence, scene.summary_id)
        if position != NOT_FOUND:
            del sequence[position]

    def _set_hidden(self, sequence: Sequence[ChatMessage], scene: Scene, hidden: bool) -> None:
        index = build_index(sequence)
        for message_id in scene.source_ids:
            position = resolve(sequence, message_id, index)
            if position != NOT_FOUND:
                sequence[position].hidden = hidden

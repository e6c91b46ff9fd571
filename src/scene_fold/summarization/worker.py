"""Summarize one scene and fold its sources under the result."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional, Protocol

from scene_fold.chat.identity import NOT_FOUND, IdFactory, build_index, new_id, resolve
from scene_fold.chat.models import ChatMessage
from scene_fold.summarization.classify import classify_failure, looks_like_refusal
from scene_fold.summarization.exceptions import (
    NonRetryableGenerationError,
    SummarizationCancelled,
    TransientGenerationError,
)
from scene_fold.summarization.prompts import (
    DEFAULT_SUMMARY_PROMPT,
    SummaryPrompt,
    build_system_prompt,
)

if TYPE_CHECKING:
    from scene_fold.persistence import Persistence
    from scene_fold.scenes.lifecycle import SceneLifecycle
    from scene_fold.scenes.models import Scene
    from scene_fold.summarization.signals import CancelToken

LOGGER = logging.getLogger(__name__)

SUMMARY_MESSAGE_NAME = "Scene Summary"

Notice = Callable[[str, str], None]  # (level, text)


class Summarizer(Protocol):
    """Prompt in, text out. Must raise SummarizationCancelled when cancelled."""

    async def summarize(self, prompt: SummaryPrompt, token: CancelToken) -> str: ...


@dataclass
class SummaryResult:
    """Result of a successful scene summarization."""

    scene_id: str
    summary_id: str
    summary_text: str
    source_count: int
    attempts: int


class SceneSummarizer:
    """Queue worker: builds the prompt, retries, inserts the summary."""

    def __init__(
        self,
        sequence: list[ChatMessage],
        lifecycle: SceneLifecycle,
        summarizer: Summarizer,
        persistence: Optional[Persistence] = None,
        default_prompt: str = DEFAULT_SUMMARY_PROMPT,
        max_retries: int = 2,
        user_name: str = "User",
        character_name: str = "Character",
        id_factory: IdFactory = new_id,
        on_notice: Optional[Notice] = None,
        on_update: Optional[Callable[[], None]] = None,
    ) -> None:
        """
        Initialize scene summarizer.

        Args:
            sequence: Host chat the scene sources live in.
            lifecycle: Lifecycle wrapping the SceneStore.
            summarizer: Backend generating the summary text.
            persistence: Save hooks called after chat/scene changes.
            default_prompt: Base summarization instructions.
            max_retries: Extra attempts after a transient failure.
            user_name: Speaker label for user messages without a name.
            character_name: Speaker label for other unnamed messages.
            id_factory: Generator for summary message ids.
            on_notice: User-visible progress/failure notices.
            on_update: Called whenever scene status changes.
        """
        self.sequence = sequence
        self.lifecycle = lifecycle
        self.summarizer = summarizer
        self.persistence = persistence
        self.default_prompt = default_prompt
        self.max_retries = max(0, max_retries)
        self.user_name = user_name
        self.character_name = character_name
        self.id_factory = id_factory
        self._on_notice = on_notice
        self._on_update = on_update

    async def __call__(self, scene_id: str, token: CancelToken) -> None:
        await self.summarize_scene(scene_id, token)

    async def summarize_scene(
        self,
        scene_id: str,
        token: CancelToken,
        allow_queued: bool = True,
    ) -> SummaryResult | None:
        """
        Summarize one scene end to end.

        Returns:
            SummaryResult on success, None if refused or failed (the scene
            is then in ``error``).

        Raises:
            SummarizationCancelled: The token fired; the scene is back to
                ``defined``.
        """
        if not self.lifecycle.begin(scene_id, allow_queued=allow_queued):
            self._notice("warning", f"Cannot summarize scene {scene_id} in its current state")
            return None
        self._changed()

        scene = self.lifecycle.store.get(scene_id)
        try:
            token.raise_if_cancelled()
            prompt = self.build_prompt(scene)
            text, attempts = await self._generate(scene_id, prompt, token)
            summary_id = self._insert_summary(scene, text)
        except SummarizationCancelled:
            self.lifecycle.revert_cancelled(scene_id)
            self._persist_scenes()
            self._changed()
            raise
        except Exception as exc:
            cause = str(exc) or exc.__class__.__name__
            self.lifecycle.fail(scene_id, cause)
            self._persist_scenes()
            self._changed()
            self._notice("error", f"Scene summarization failed: {cause}")
            return None

        self.lifecycle.complete(scene_id, summary_id)
        if self.persistence is not None:
            self.persistence.persist_sequence()
        self._persist_scenes()
        self._changed()
        self._notice(
            "success",
            f"Scene summarized ({scene.source_count} messages folded)",
        )
        return SummaryResult(
            scene_id=scene_id,
            summary_id=summary_id,
            summary_text=text,
            source_count=scene.source_count,
            attempts=attempts,
        )

    def build_prompt(self, scene: Scene) -> SummaryPrompt:
        """Transcript of the scene's live sources plus instructions."""
        index = build_index(self.sequence)
        lines = []
        for message_id in scene.source_ids:
            position = resolve(self.sequence, message_id, index)
            if position == NOT_FOUND:
                LOGGER.warning("Source %s of scene %s not found in chat", message_id, scene.id)
                continue
            message = self.sequence[position]
            lines.append(f"{self._speaker(message)}: {message.text}")

        if not lines:
            raise NonRetryableGenerationError(
                "No source messages found for this scene; ids may be stale"
            )

        LOGGER.debug("Built prompt for scene %s from %d messages", scene.id, len(lines))
        return SummaryPrompt(
            system=build_system_prompt(self.default_prompt, scene.custom_guidance),
            text="\n\n".join(lines),
        )

    async def _generate(
        self,
        scene_id: str,
        prompt: SummaryPrompt,
        token: CancelToken,
    ) -> tuple[str, int]:
        attempts = 1 + self.max_retries
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            token.raise_if_cancelled()
            try:
                text = await self.summarizer.summarize(prompt, token)
                token.raise_if_cancelled()
                text = (text or "").strip()
                if not text:
                    raise TransientGenerationError("LLM returned an empty summary")
                if looks_like_refusal(text):
                    raise NonRetryableGenerationError(f"Model refused to summarize: {text[:120]}")
                return text, attempt
            except SummarizationCancelled:
                raise
            except Exception as exc:
                if classify_failure(exc) == "non_retryable":
                    LOGGER.warning("Non-retryable failure for scene %s: %s", scene_id, exc)
                    raise
                last_error = exc
                LOGGER.warning(
                    "Summarization attempt %d/%d for scene %s failed: %s",
                    attempt,
                    attempts,
                    scene_id,
                    exc,
                )
                if attempt < attempts:
                    self._notice("info", f"Summarization failed ({exc}); retrying {attempt + 1}/{attempts}")

        raise TransientGenerationError(f"{last_error} (gave up after {attempts} attempts)")

    def _insert_summary(self, scene: Scene, text: str) -> str:
        """Insert the summary before the first live source and hide sources."""
        index = build_index(self.sequence)
        positions = [
            resolve(self.sequence, message_id, index) for message_id in scene.source_ids
        ]
        live = [position for position in positions if position != NOT_FOUND]
        if not live:
            raise NonRetryableGenerationError("Source messages disappeared during summarization")

        summary = ChatMessage(
            text=text,
            name=SUMMARY_MESSAGE_NAME,
            role="summary",
            summary_of=scene.id,
            uuid=self.id_factory(),
        )
        self.sequence.insert(min(live), summary)

        # Positions shifted; never reuse the old index
        index = build_index(self.sequence)
        for message_id in scene.source_ids:
            position = resolve(self.sequence, message_id, index)
            if position != NOT_FOUND:
                self.sequence[position].hidden = True

        LOGGER.info("Inserted summary for scene %s at position %d", scene.id, min(live))
        return summary.uuid

    def _speaker(self, message: ChatMessage) -> str:
        if message.name:
            return message.name
        return self.user_name if message.is_user else self.character_name

    def _persist_scenes(self) -> None:
        if self.persistence is not None:
            self.persistence.persist_scenes()

    def _changed(self) -> None:
        if self._on_update is not None:
            self._on_update()

    def _notice(self, level: str, text: str) -> None:
        if self._on_notice is not None:
            self._on_notice(level, text)

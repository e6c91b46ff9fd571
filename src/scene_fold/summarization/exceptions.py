"""Summarization-specific exceptions."""

from __future__ import annotations


class SummarizationError(Exception):
    """Base exception for summarization failures."""


class SummarizationCancelled(SummarizationError):
    """The cancel token fired; not a failure."""

    def __init__(self, scene_id: str | None = None) -> None:
        self.scene_id = scene_id
        super().__init__(
            f"Summarization cancelled for scene {scene_id}"
            if scene_id
            else "Summarization cancelled"
        )


class TransientGenerationError(SummarizationError):
    """Generation failed in a way worth retrying (blank output, timeouts)."""


class NonRetryableGenerationError(SummarizationError):
    """Generation failed in a way retrying cannot fix (refusal, auth, quota)."""

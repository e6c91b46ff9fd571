"""Scene-specific exceptions."""

from __future__ import annotations


class SceneError(Exception):
    """Base exception for scene operations."""


class SceneValidationError(SceneError):
    """A requested scene operation was rejected before any state changed."""


class InvalidRangeError(SceneValidationError):
    """Message range is empty, inverted or outside the chat."""

    def __init__(self, start: int, end: int, length: int) -> None:
        self.start = start
        self.end = end
        self.length = length
        super().__init__(
            f"Invalid message range {start}-{end} for chat of {length} messages"
        )


class SceneOverlapError(SceneValidationError):
    """Requested range intersects one or more existing scenes."""

    def __init__(self, scene_ids: list[str]) -> None:
        self.scene_ids = scene_ids
        super().__init__(
            f"Range overlaps existing scene(s): {', '.join(scene_ids)}"
        )


class SceneNotFoundError(SceneValidationError):
    """Requested scene ID does not exist."""

    def __init__(self, scene_id: str) -> None:
        self.scene_id = scene_id
        super().__init__(f"Scene {scene_id} not found")

"""Authoritative mapping of scene IDs to scene records."""

from __future__ import annotations

import logging
from dataclasses import fields
from typing import TYPE_CHECKING, Iterator, Sequence

from scene_fold.chat.identity import NOT_FOUND, IdFactory, build_index, ensure_id, new_id, resolve
from scene_fold.scenes.exceptions import InvalidRangeError, SceneOverlapError
from scene_fold.scenes.models import Scene

if TYPE_CHECKING:
    from scene_fold.chat.models import ChatMessage

LOGGER = logging.getLogger(__name__)

_SCENE_FIELDS = frozenset(f.name for f in fields(Scene)) - {"id"}


class SceneStore:
    """In-memory scene registry.

    The store never holds a reference to the chat itself; every operation
    that needs positions takes the current sequence as an argument.
    """

    def __init__(
        self,
        scenes: dict[str, Scene] | None = None,
        id_factory: IdFactory = new_id,
    ) -> None:
        self._scenes: dict[str, Scene] = dict(scenes or {})
        self.id_factory = id_factory

    def __len__(self) -> int:
        return len(self._scenes)

    def __contains__(self, scene_id: object) -> bool:
        return scene_id in self._scenes

    def __iter__(self) -> Iterator[Scene]:
        return iter(list(self._scenes.values()))

    def ids(self) -> list[str]:
        return list(self._scenes)

    def create(
        self,
        sequence: Sequence[ChatMessage],
        start: int,
        end: int,
        custom_guidance: str | None = None,
    ) -> Scene:
        """
        Create a scene over the inclusive range ``start..end``.

        Args:
            sequence: Current host chat.
            start: First message position.
            end: Last message position.
            custom_guidance: Extra summarization guidance for this scene.

        Returns:
            The new Scene.

        Raises:
            InvalidRangeError: Range is inverted or outside the chat.
            SceneOverlapError: Range intersects an existing scene.
        """
        if start < 0 or end < start or end >= len(sequence):
            raise InvalidRangeError(start, end, len(sequence))

        overlapping = self.overlaps(sequence, start, end)
        if overlapping:
            raise SceneOverlapError(overlapping)

        scene_id = self.id_factory()
        while scene_id in self._scenes:
            scene_id = self.id_factory()

        source_ids: list[str] = []
        for position in range(start, end + 1):
            message = sequence[position]
            message_id = ensure_id(message, self.id_factory)
            if message_id in source_ids:
                continue
            source_ids.append(message_id)
            message.add_scene(scene_id)

        guidance = (custom_guidance or "").strip() or None
        scene = Scene(id=scene_id, source_ids=source_ids, custom_guidance=guidance)
        self._scenes[scene_id] = scene
        LOGGER.info(
            "Created scene %s over messages %d-%d (%d sources)",
            scene_id,
            start,
            end,
            len(source_ids),
        )
        return scene

    def get(self, scene_id: str) -> Scene | None:
        return self._scenes.get(scene_id)

    def update(self, scene_id: str, **changes: object) -> bool:
        """Merge ``changes`` into a scene. Returns False if the id is unknown."""
        unknown = set(changes) - _SCENE_FIELDS
        if unknown:
            raise TypeError(f"Unknown scene field(s): {', '.join(sorted(unknown))}")

        scene = self._scenes.get(scene_id)
        if scene is None:
            LOGGER.debug("Ignoring update for unknown scene %s", scene_id)
            return False
        for name, value in changes.items():
            setattr(scene, name, value)
        return True

    def delete(self, sequence: Sequence[ChatMessage], scene_id: str) -> Scene | None:
        """
        Remove a scene and strip its membership tags from live sources.

        Visibility of the sources and the summary message are left to the
        caller.
        """
        scene = self._scenes.pop(scene_id, None)
        if scene is None:
            return None

        index = build_index(sequence)
        for message_id in scene.source_ids:
            position = resolve(sequence, message_id, index)
            if position == NOT_FOUND:
                continue
            sequence[position].remove_scene(scene_id)

        LOGGER.info("Deleted scene %s", scene_id)
        return scene

    def list_ordered(self, sequence: Sequence[ChatMessage]) -> list[Scene]:
        """All scenes sorted by the position of their first source."""
        index = build_index(sequence)

        def first_position(scene: Scene) -> int:
            if not scene.source_ids:
                return NOT_FOUND
            return resolve(sequence, scene.source_ids[0], index)

        return sorted(self._scenes.values(), key=first_position)

    def membership(self, sequence: Sequence[ChatMessage], position: int) -> list[str]:
        """Scene IDs whose sources include the message at ``position``."""
        if position < 0 or position >= len(sequence):
            return []
        return list(sequence[position].scene_ids)

    def overlaps(self, sequence: Sequence[ChatMessage], start: int, end: int) -> list[str]:
        """Scene IDs claiming any message in the inclusive range.

        A summary message counts as claimed by the scene it summarizes.
        """
        found: list[str] = []
        for position in range(max(start, 0), min(end, len(sequence) - 1) + 1):
            claimed = self.membership(sequence, position)
            summary_of = sequence[position].summary_of
            if summary_of:
                claimed = claimed + [summary_of]
            for scene_id in claimed:
                if scene_id in self._scenes and scene_id not in found:
                    found.append(scene_id)
        return found

    def auto_start_index(self, sequence: Sequence[ChatMessage]) -> int:
        """Position just after the last message belonging to any scene."""
        if not self._scenes:
            return 0

        index = build_index(sequence)
        last = NOT_FOUND
        for scene in self._scenes.values():
            for message_id in scene.source_ids:
                last = max(last, resolve(sequence, message_id, index))
            if scene.summary_id:
                last = max(last, resolve(sequence, scene.summary_id, index))
        return last + 1 if last >= 0 else 0

    def to_dict(self) -> dict:
        """Serialize all scenes for storage."""
        return {"scenes": [scene.to_dict() for scene in self._scenes.values()]}

    @classmethod
    def from_dict(cls, data: dict, id_factory: IdFactory = new_id) -> SceneStore:
        """Reconstruct from stored data."""
        scenes = [Scene.from_dict(item) for item in data.get("scenes", [])]
        return cls({scene.id: scene for scene in scenes}, id_factory=id_factory)

"""Base exporter interface for scene export."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Sequence

from scene_fold.chat.identity import NOT_FOUND, build_index, resolve

if TYPE_CHECKING:
    from scene_fold.chat.models import ChatMessage
    from scene_fold.scenes.models import Scene


class Exporter(ABC):
    """Base class for scene exporters."""

    @property
    @abstractmethod
    def extension(self) -> str:
        """File extension without dot (e.g., 'json', 'yaml')."""
        ...

    @abstractmethod
    def write(self, records: list[dict], output_path: Path) -> None:
        """Write already-converted scene records to ``output_path``."""
        ...

    def export(
        self,
        scenes: Iterable[Scene],
        sequence: Sequence[ChatMessage],
        output_path: Path,
    ) -> int:
        """Export scenes to file.

        Args:
            scenes: Scenes to export, in the order they should appear.
            sequence: Chat the scenes belong to, for positions and summaries.
            output_path: Path to output file.

        Returns:
            Number of scenes exported.
        """
        index = build_index(sequence)
        records = [self.scene_to_dict(scene, sequence, index) for scene in scenes]
        self.write(records, Path(output_path))
        return len(records)

    @staticmethod
    def scene_to_dict(
        scene: Scene,
        sequence: Sequence[ChatMessage],
        index: dict[str, int] | None = None,
    ) -> dict:
        """Convert a scene to an exportable dictionary.

        Positions are resolved against the current chat; the summary text is
        included only while the scene is completed.
        """
        positions = [resolve(sequence, message_id, index) for message_id in scene.source_ids]
        live = [position for position in positions if position != NOT_FOUND]
        summary_text = None
        if scene.status == "completed" and scene.summary_id:
            summary_position = resolve(sequence, scene.summary_id, index)
            if summary_position != NOT_FOUND:
                summary_text = sequence[summary_position].text
        return {
            "id": scene.id,
            "status": scene.status,
            "first_position": min(live) if live else None,
            "last_position": max(live) if live else None,
            "source_count": scene.source_count,
            "source_ids": list(scene.source_ids),
            "summary": summary_text,
            "custom_guidance": scene.custom_guidance,
            "folded": scene.folded,
            "stale": scene.stale,
            "last_error": scene.last_error,
            "created_at": scene.created_at,
        }

"""Data models for the host chat sequence."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

MessageRole = Literal["source", "summary"]


@dataclass
class ChatMessage:
    """A single message in the host chat.

    The host owns the list these live in and may insert, remove or
    deep-copy them at any time. Only ``uuid``, ``scene_ids``, ``role`` and
    ``summary_of`` are written by scene folding; ``hidden`` is shared with
    the host and means "excluded from prompts".
    """

    text: str
    name: str | None = None
    is_user: bool = False
    hidden: bool = False
    uuid: str | None = None
    scene_ids: list[str] = field(default_factory=list)
    role: MessageRole | None = None
    summary_of: str | None = None

    @property
    def is_summary(self) -> bool:
        """True when this message is the generated summary of a scene."""
        return self.role == "summary" and self.summary_of is not None

    def add_scene(self, scene_id: str) -> None:
        """Declare membership in a scene (idempotent)."""
        if scene_id not in self.scene_ids:
            self.scene_ids.append(scene_id)
        self.role = "source"

    def remove_scene(self, scene_id: str) -> None:
        """Drop membership in a scene, clearing the role when none remain."""
        self.scene_ids = [sid for sid in self.scene_ids if sid != scene_id]
        if not self.scene_ids and self.role == "source":
            self.role = None

    def clear_summary_tags(self) -> None:
        self.role = None
        self.summary_of = None

    def to_dict(self) -> dict:
        """Serialize to dict for storage."""
        return {
            "text": self.text,
            "name": self.name,
            "is_user": self.is_user,
            "hidden": self.hidden,
            "uuid": self.uuid,
            "scene_ids": list(self.scene_ids),
            "role": self.role,
            "summary_of": self.summary_of,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ChatMessage:
        """Reconstruct from stored data."""
        return cls(
            text=data.get("text", ""),
            name=data.get("name"),
            is_user=bool(data.get("is_user", False)),
            hidden=bool(data.get("hidden", False)),
            uuid=data.get("uuid"),
            scene_ids=list(data.get("scene_ids") or []),
            role=data.get("role"),
            summary_of=data.get("summary_of"),
        )

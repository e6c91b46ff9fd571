"""Data models for scenes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

SceneStatus = Literal["defined", "queued", "summarizing", "completed", "error"]

SCENE_STATUSES: tuple[SceneStatus, ...] = (
    "defined",
    "queued",
    "summarizing",
    "completed",
    "error",
)
TRANSIENT_STATUSES: tuple[SceneStatus, ...] = ("queued", "summarizing")


def utcnow() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class Scene:
    """A user-declared contiguous range of chat messages."""

    id: str
    source_ids: list[str]
    summary_id: str | None = None
    status: SceneStatus = "defined"
    custom_guidance: str | None = None
    folded: bool = False  # Only meaningful while completed
    stale: bool = False
    last_error: str | None = None
    created_at: str = field(default_factory=utcnow)

    @property
    def source_count(self) -> int:
        return len(self.source_ids)

    @property
    def is_transient(self) -> bool:
        """True while queued or summarizing."""
        return self.status in TRANSIENT_STATUSES

    def to_dict(self) -> dict:
        """Serialize to dict for storage and export."""
        return {
            "id": self.id,
            "source_ids": list(self.source_ids),
            "summary_id": self.summary_id,
            "status": self.status,
            "custom_guidance": self.custom_guidance,
            "folded": self.folded,
            "stale": self.stale,
            "last_error": self.last_error,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Scene:
        """Reconstruct from stored data."""
        status = data.get("status", "defined")
        if status not in SCENE_STATUSES:
            status = "error"
        return cls(
            id=data["id"],
            source_ids=list(data.get("source_ids") or []),
            summary_id=data.get("summary_id"),
            status=status,
            custom_guidance=data.get("custom_guidance"),
            folded=bool(data.get("folded", False)),
            stale=bool(data.get("stale", False)),
            last_error=data.get("last_error"),
            created_at=data.get("created_at") or utcnow(),
        )

"""Persistence hooks the summarization pipeline calls after mutating state."""

from __future__ import annotations

from typing import Callable, Optional, Protocol


class Persistence(Protocol):
    """Fire-and-forget save calls. Implementations must not raise."""

    def persist_sequence(self) -> None: ...

    def persist_scenes(self) -> None: ...


class NullPersistence:
    """Persistence that does nothing; the default for in-memory sessions."""

    def persist_sequence(self) -> None:
        pass

    def persist_scenes(self) -> None:
        pass


class CallbackPersistence:
    """Adapts two plain callables (e.g. host save functions) to Persistence."""

    def __init__(
        self,
        save_sequence: Optional[Callable[[], None]] = None,
        save_scenes: Optional[Callable[[], None]] = None,
    ) -> None:
        self._save_sequence = save_sequence
        self._save_scenes = save_scenes

    def persist_sequence(self) -> None:
        if self._save_sequence is not None:
            self._save_sequence()

    def persist_scenes(self) -> None:
        if self._save_scenes is not None:
            self._save_scenes()

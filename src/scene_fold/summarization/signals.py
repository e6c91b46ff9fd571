"""Cooperative cancellation for in-flight summarization."""

from __future__ import annotations

import asyncio

from scene_fold.summarization.exceptions import SummarizationCancelled


class CancelToken:
    """One-shot cancel flag checked at well-defined points.

    Firing the token never interrupts work already running; it only makes
    the next checkpoint raise SummarizationCancelled.
    """

    def __init__(self, scene_id: str | None = None) -> None:
        self.scene_id = scene_id
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SummarizationCancelled(self.scene_id)

    async def wait(self) -> None:
        await self._event.wait()

"""Single-flight FIFO queue driving scene summarization."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Iterable, Optional

from scene_fold.summarization.exceptions import SummarizationCancelled
from scene_fold.summarization.signals import CancelToken

if TYPE_CHECKING:
    from scene_fold.persistence import Persistence
    from scene_fold.scenes.lifecycle import SceneLifecycle

LOGGER = logging.getLogger(__name__)

Worker = Callable[[str, CancelToken], Awaitable[None]]


@dataclass
class QueueProgress:
    """Batch progress snapshot."""

    current: int  # 1-based ordinal of the item being worked on
    total: int
    active_id: str | None
    pending_count: int

    @property
    def done(self) -> int:
        return self.current - 1

    @property
    def remaining(self) -> int:
        return max(self.total - self.done, 0)

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 0
        return round(self.done / self.total * 100)


class SummarizationQueue:
    """
    Runs one summarization at a time, in enqueue order.

    The queue does not know how to summarize. It hands each scene id and a
    fresh CancelToken to the injected ``worker`` and expects the worker to
    set the scene's final status itself. ``on_update`` is invoked after
    every enqueue, start, finish and cancel.
    """

    def __init__(
        self,
        lifecycle: SceneLifecycle,
        worker: Worker,
        on_update: Optional[Callable[[], None]] = None,
        persistence: Optional[Persistence] = None,
        settle_delay: float = 0.1,
    ) -> None:
        self.lifecycle = lifecycle
        self._worker = worker
        self._on_update = on_update or (lambda: None)
        self._persistence = persistence
        self.settle_delay = settle_delay

        self._pending: list[str] = []
        self._active_id: str | None = None
        self._active_token: CancelToken | None = None
        self._processing = False
        self._task: asyncio.Task | None = None
        self._batch_total = 0
        self._batch_done = 0

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def active_id(self) -> str | None:
        """Scene currently being summarized, or None."""
        return self._active_id

    @property
    def pending_ids(self) -> list[str]:
        """Copy of the pending scene ids, head first."""
        return list(self._pending)

    @property
    def progress(self) -> QueueProgress:
        return QueueProgress(
            current=self._batch_done + 1,
            total=self._batch_total,
            active_id=self._active_id,
            pending_count=len(self._pending),
        )

    def has(self, scene_id: str) -> bool:
        """True if the scene is pending or active."""
        return scene_id in self._pending or self._active_id == scene_id

    def enqueue(self, scene_id: str) -> bool:
        """Append a scene and start processing if idle.

        Returns False if it was already pending/active or cannot be queued
        from its current status. Raises RuntimeError, leaving the queue
        untouched, when called outside a running event loop.
        """
        loop = asyncio.get_running_loop()
        if self.has(scene_id):
            return False
        if not self.lifecycle.mark_queued(scene_id):
            return False

        self._pending.append(scene_id)
        self._batch_total += 1
        LOGGER.debug("Queued scene %s (%d pending)", scene_id, len(self._pending))
        self._persist()
        self._notify()

        if not self._processing:
            self._processing = True
            self._task = loop.create_task(self._run())
        return True

    def enqueue_many(self, scene_ids: Iterable[str]) -> int:
        """Start a fresh batch, counting whatever is already in flight."""
        asyncio.get_running_loop()
        self._batch_total = len(self._pending) + (1 if self._active_id else 0)
        self._batch_done = 0
        return sum(1 for scene_id in scene_ids if self.enqueue(scene_id))

    def cancel(self, scene_id: str) -> bool:
        """Drop a pending scene or signal the active one to stop."""
        if scene_id in self._pending:
            self._pending.remove(scene_id)
            self.lifecycle.revert_cancelled(scene_id)
            self._batch_done += 1
            LOGGER.info("Removed scene %s from queue", scene_id)
            self._persist()
            self._notify()
            return True

        if self._active_id == scene_id and self._active_token is not None:
            if not self._active_token.cancelled:
                LOGGER.info("Cancelling active summarization for %s", scene_id)
                self._active_token.cancel()
            return True
        return False

    def cancel_all(self) -> None:
        """Signal the active scene and revert every pending one."""
        if self._active_token is not None:
            self._active_token.cancel()

        for scene_id in self._pending:
            self.lifecycle.revert_cancelled(scene_id)
        if self._pending:
            LOGGER.info("Cleared %d pending scene(s)", len(self._pending))
        self._pending = []
        self._batch_total = 0
        self._batch_done = 0
        self._persist()
        self._notify()

    async def join(self) -> None:
        """Wait until the queue drains."""
        while self._task is not None and not self._task.done():
            await asyncio.shield(self._task)

    async def _run(self) -> None:
        try:
            while self._pending:
                scene_id = self._pending.pop(0)
                token = CancelToken(scene_id)
                self._active_id = scene_id
                self._active_token = token
                self._notify()

                try:
                    await self._worker(scene_id, token)
                except SummarizationCancelled:
                    LOGGER.info("Queue: summarization cancelled for %s", scene_id)
                    # Safety net in case the worker unwound without reverting
                    if self.lifecycle.revert_cancelled(scene_id):
                        self._persist()
                except Exception as exc:
                    # Worker is responsible for recording the error status
                    LOGGER.debug("Worker raised for %s", scene_id, exc_info=True)
                    scene = self.lifecycle.store.get(scene_id)
                    if scene is not None and scene.is_transient:
                        self.lifecycle.fail(scene_id, str(exc) or exc.__class__.__name__)
                        self._persist()

                self._batch_done += 1
                self._active_id = None
                self._active_token = None
                self._notify()

                # Let observers settle before the next scene
                await asyncio.sleep(self.settle_delay)
        finally:
            self._processing = False
            self._active_id = None
            self._active_token = None
            self._batch_total = 0
            self._batch_done = 0
            self._notify()

    def _persist(self) -> None:
        if self._persistence is not None:
            self._persistence.persist_scenes()

    def _notify(self) -> None:
        try:
            self._on_update()
        except Exception:
            LOGGER.exception("Queue update callback failed")

"""Tests for the single-flight summarization queue."""

from __future__ import annotations

import asyncio

import pytest

from scene_fold.summarization import CancelToken, SceneSummarizer, SummarizationQueue

from conftest import FakeSummarizer


def build_queue(chat, lifecycle, summarizer, persistence=None, on_update=None):
    worker = SceneSummarizer(
        sequence=chat,
        lifecycle=lifecycle,
        summarizer=summarizer,
        persistence=persistence,
    )
    return SummarizationQueue(
        lifecycle,
        worker,
        on_update=on_update,
        persistence=persistence,
        settle_delay=0,
    )


def statuses(store, scenes):
    return [store.get(scene.id).status for scene in scenes]


class TestProcessing:
    @pytest.mark.asyncio
    async def test_processes_in_order_one_at_a_time(self, store, lifecycle, chat):
        scenes = [store.create(chat, 0, 1), store.create(chat, 3, 4), store.create(chat, 6, 7)]
        peak = []

        def observe():
            peak.append(sum(1 for s in store if s.status == "summarizing"))

        summarizer = FakeSummarizer()
        queue = build_queue(chat, lifecycle, summarizer, on_update=observe)

        assert queue.enqueue_many([s.id for s in scenes]) == 3
        await queue.join()

        assert statuses(store, scenes) == ["completed"] * 3
        assert max(peak) <= 1
        assert [p.text.splitlines()[0] for p in summarizer.prompts] == [
            "Alice: message 0",
            "Bob: message 3",
            "Alice: message 6",
        ]
        assert not queue.is_processing

    @pytest.mark.asyncio
    async def test_enqueue_refuses_duplicates_and_wrong_status(self, store, lifecycle, chat):
        gate = asyncio.Event()
        scene = store.create(chat, 0, 1)
        other = store.create(chat, 2, 3)
        store.update(other.id, status="completed", summary_id="x")
        queue = build_queue(chat, lifecycle, FakeSummarizer(gate=gate))

        assert queue.enqueue(scene.id)
        assert queue.enqueue(scene.id) is False
        assert queue.enqueue(other.id) is False
        assert queue.enqueue("missing") is False

        gate.set()
        await queue.join()

    @pytest.mark.asyncio
    async def test_error_scene_can_be_requeued(self, store, lifecycle, chat):
        scene = store.create(chat, 0, 1)
        store.update(scene.id, status="error", last_error="earlier")
        queue = build_queue(chat, lifecycle, FakeSummarizer())

        assert queue.enqueue(scene.id)
        await queue.join()

        assert store.get(scene.id).status == "completed"
        assert store.get(scene.id).last_error is None

    @pytest.mark.asyncio
    async def test_fails_scene_left_transient_by_worker(self, store, lifecycle, chat):
        scene = store.create(chat, 0, 1)

        async def broken_worker(scene_id: str, token: CancelToken) -> None:
            raise RuntimeError("worker exploded")

        queue = SummarizationQueue(lifecycle, broken_worker, settle_delay=0)
        queue.enqueue(scene.id)
        await queue.join()

        assert store.get(scene.id).status == "error"
        assert store.get(scene.id).last_error == "worker exploded"

    @pytest.mark.asyncio
    async def test_persists_and_survives_bad_callback(self, store, lifecycle, chat, persistence):
        scene = store.create(chat, 0, 1)

        def explode():
            raise ValueError("observer bug")

        queue = build_queue(chat, lifecycle, FakeSummarizer(), persistence, on_update=explode)
        queue.enqueue(scene.id)
        await queue.join()

        assert store.get(scene.id).status == "completed"
        assert persistence.scene_saves > 0
        assert persistence.sequence_saves > 0


class TestProgress:
    @pytest.mark.asyncio
    async def test_batch_progress(self, store, lifecycle, chat):
        gate = asyncio.Event()
        summarizer = FakeSummarizer(gate=gate)
        first = store.create(chat, 0, 1)
        second = store.create(chat, 2, 3)
        queue = build_queue(chat, lifecycle, summarizer)

        queue.enqueue_many([first.id, second.id])
        await summarizer.started.wait()

        progress = queue.progress
        assert progress.active_id == first.id
        assert progress.current == 1
        assert progress.total == 2
        assert progress.remaining == 2
        assert progress.percent == 0
        assert queue.pending_ids == [second.id]

        gate.set()
        await queue.join()
        assert queue.progress.total == 0
        assert queue.active_id is None


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_all_while_first_is_active(self, store, lifecycle, chat):
        gate = asyncio.Event()
        summarizer = FakeSummarizer(gate=gate)
        scenes = [store.create(chat, 0, 1), store.create(chat, 3, 4), store.create(chat, 6, 7)]
        queue = build_queue(chat, lifecycle, summarizer)

        queue.enqueue_many([s.id for s in scenes])
        await summarizer.started.wait()
        assert statuses(store, scenes) == ["summarizing", "queued", "queued"]

        queue.cancel_all()
        assert queue.pending_ids == []
        assert queue.progress.total == 0
        await queue.join()

        assert statuses(store, scenes) == ["defined"] * 3
        assert summarizer.calls == 1
        assert len(chat) == 10

    @pytest.mark.asyncio
    async def test_cancel_pending_is_idempotent(self, store, lifecycle, chat):
        gate = asyncio.Event()
        summarizer = FakeSummarizer(gate=gate)
        active = store.create(chat, 0, 1)
        pending = store.create(chat, 2, 3)
        queue = build_queue(chat, lifecycle, summarizer)
        queue.enqueue_many([active.id, pending.id])
        await summarizer.started.wait()

        assert queue.cancel(pending.id)
        state = store.get(pending.id).to_dict()
        assert queue.cancel(pending.id) is False
        assert store.get(pending.id).to_dict() == state
        assert store.get(pending.id).status == "defined"

        gate.set()
        await queue.join()
        assert store.get(active.id).status == "completed"
        assert summarizer.calls == 1

    @pytest.mark.asyncio
    async def test_cancel_active_twice(self, store, lifecycle, chat):
        gate = asyncio.Event()
        summarizer = FakeSummarizer(gate=gate)
        scene = store.create(chat, 0, 1)
        queue = build_queue(chat, lifecycle, summarizer)
        queue.enqueue(scene.id)
        await summarizer.started.wait()

        assert queue.cancel(scene.id)
        assert queue.cancel(scene.id)
        await queue.join()

        assert store.get(scene.id).status == "defined"
        assert store.get(scene.id).summary_id is None

    def test_cancel_idle_scene_is_noop(self, store, lifecycle, chat):
        scene = store.create(chat, 0, 1)
        queue = build_queue(chat, lifecycle, FakeSummarizer())
        before = store.get(scene.id).to_dict()

        assert queue.cancel(scene.id) is False
        assert queue.cancel(scene.id) is False
        assert store.get(scene.id).to_dict() == before


class TestWithoutEventLoop:
    def test_enqueue_outside_loop_leaves_queue_untouched(self, store, lifecycle, chat):
        scene = store.create(chat, 0, 1)
        queue = build_queue(chat, lifecycle, FakeSummarizer())

        with pytest.raises(RuntimeError):
            queue.enqueue(scene.id)

        assert store.get(scene.id).status == "defined"
        assert queue.pending_ids == []
        assert queue.is_processing is False

    def test_enqueue_many_outside_loop_keeps_progress(self, store, lifecycle, chat):
        scene = store.create(chat, 0, 1)
        queue = build_queue(chat, lifecycle, FakeSummarizer())

        with pytest.raises(RuntimeError):
            queue.enqueue_many([scene.id])

        assert store.get(scene.id).status == "defined"
        assert queue.progress.total == 0
        assert queue.is_processing is False

"""Tests for the scene view-model projection."""

from __future__ import annotations

import asyncio

import pytest

from scene_fold.chat import NOT_FOUND, ChatMessage
from scene_fold.render import STATUS_ACTIONS, render, render_scene
from scene_fold.session import SelectionState
from scene_fold.summarization import SceneSummarizer, SummarizationQueue

from conftest import FakeSummarizer


class TestRenderScene:
    def test_defined(self, store, chat):
        scene = store.create(chat, 2, 4)
        view = render_scene(scene, chat)

        assert view.status_text == "Scene: 3 messages"
        assert view.range_text == "Messages 2-4 (3)"
        assert view.summary_position == NOT_FOUND
        assert view.visible_count == 3
        assert view.actions == STATUS_ACTIONS["defined"]

    def test_completed(self, store, chat):
        scene = store.create(chat, 2, 2)
        chat.insert(2, ChatMessage(text="s", uuid="sum", role="summary", summary_of=scene.id))
        chat[3].hidden = True
        store.update(scene.id, status="completed", summary_id="sum", folded=True, stale=True)

        view = render_scene(store.get(scene.id), chat)

        assert view.status_text == "1 message folded (stale)"
        assert view.summary_position == 2
        assert view.visible_count == 0
        assert view.folded

    def test_error(self, store, chat):
        scene = store.create(chat, 0, 1)
        store.update(scene.id, status="error", last_error="boom")
        assert render_scene(store.get(scene.id), chat).status_text == "Error: boom"

    def test_range_when_sources_gone(self, store, chat):
        scene = store.create(chat, 0, 1)
        del chat[0:2]
        assert render_scene(scene, chat).range_text == "2 messages"


class TestRender:
    def test_empty_chat_hides_toolbar(self, store):
        view = render(store, [])
        assert view.scenes == []
        assert view.toolbar.visible is False

    def test_counts_and_badges(self, store, chat):
        first = store.create(chat, 0, 1)
        store.create(chat, 4, 5)
        store.update(first.id, status="error", last_error="x")

        view = render(store, chat)

        assert [v.first_position for v in view.scenes] == [0, 4]
        assert view.toolbar.visible
        assert view.toolbar.counts["error"] == 1
        assert view.toolbar.counts["defined"] == 1
        assert view.toolbar.info_text == "2 scenes awaiting summary"
        assert view.message_badges == {0: "Error: x", 4: "Scene: 2 messages"}

    def test_selection_only_when_active(self, store, chat):
        selection = SelectionState()
        selection.enter(auto_start=2, last_position=9)
        assert render(store, chat, selection=selection).selection == (2, 9)

        selection.reset()
        assert render(store, chat, selection=selection).selection is None

    def test_render_does_not_mutate(self, store, chat):
        store.create(chat, 0, 3)
        before = (store.to_dict(), [m.to_dict() for m in chat])
        render(store, chat)
        assert (store.to_dict(), [m.to_dict() for m in chat]) == before

    @pytest.mark.asyncio
    async def test_progress_while_processing(self, store, lifecycle, chat):
        gate = asyncio.Event()
        summarizer = FakeSummarizer(gate=gate)
        worker = SceneSummarizer(chat, lifecycle, summarizer)
        queue = SummarizationQueue(lifecycle, worker, settle_delay=0)
        a = store.create(chat, 0, 1)
        b = store.create(chat, 2, 3)
        queue.enqueue_many([a.id, b.id])
        await summarizer.started.wait()

        toolbar = render(store, chat, queue).toolbar

        assert toolbar.processing
        assert toolbar.progress_text == "Summarizing 1 of 2 (2 remaining)"
        assert toolbar.percent == 0

        gate.set()
        await queue.join()
        assert render(store, chat, queue).toolbar.processing is False

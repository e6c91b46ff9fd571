"""Tests for the per-chat session entry point."""

from __future__ import annotations

import asyncio
import copy

import pytest

from scene_fold.agent_client import AgentSummarizer
from scene_fold.chat import find_duplicates, resolve
from scene_fold.config import SceneFoldConfig
from scene_fold.scenes import InvalidRangeError, SceneOverlapError, SceneStore, check_consistency
from scene_fold.session import SceneFoldSession, SelectionState

from conftest import FakeSummarizer


@pytest.fixture
def notices():
    return []


@pytest.fixture
def summarizer():
    return FakeSummarizer(default="Summary text.")


@pytest.fixture
def session(chat, ids, summarizer, persistence, notices):
    config = SceneFoldConfig(settle_delay=0)
    return SceneFoldSession(
        chat,
        config=config,
        summarizer=summarizer,
        persistence=persistence,
        id_factory=ids,
        on_notice=lambda level, text: notices.append((level, text)),
    )


class TestSelectionState:
    def test_enter_prefills_auto_range(self):
        state = SelectionState()
        state.enter(auto_start=3, last_position=9)
        assert state.active
        assert state.range == (3, 9)

    def test_enter_without_room(self):
        state = SelectionState()
        state.enter(auto_start=10, last_position=9)
        assert state.range is None

    def test_click_orders_ends(self):
        state = SelectionState()
        state.enter(auto_start=None, last_position=9)
        state.click(6)
        state.click(2)
        assert state.range == (2, 6)

    def test_extend_moves_end(self):
        state = SelectionState()
        state.enter(auto_start=3, last_position=9)
        state.click(5, extend=True)
        assert state.range == (3, 5)
        assert state.auto_start_overridden is False

    def test_inactive_ignores_clicks(self):
        state = SelectionState()
        state.click(4)
        assert state.range is None


class TestSessionSetup:
    def test_builds_agent_summarizer_from_config(self, chat):
        config = SceneFoldConfig(agent_url="http://agent:9000", model="m", temperature=0.5)
        session = SceneFoldSession(chat, config=config)

        backend = session.worker.summarizer
        assert isinstance(backend, AgentSummarizer)
        assert backend.client.base_url == "http://agent:9000"
        assert backend.model == "m"
        assert backend.temperature == 0.5


class TestSceneActions:
    def test_create_and_persist(self, session, chat, persistence, notices):
        scene = session.create_scene(3, 5)

        assert scene.source_count == 3
        assert persistence.sequence_saves == 1
        assert persistence.scene_saves == 1
        assert notices[-1] == ("success", "Scene created with 3 messages")

    def test_overlap_propagates(self, session):
        session.create_scene(3, 5)
        with pytest.raises(SceneOverlapError):
            session.create_scene(4, 6)

    def test_disabled(self, chat, summarizer, notices):
        session = SceneFoldSession(
            chat,
            config=SceneFoldConfig(enabled=False),
            summarizer=summarizer,
            on_notice=lambda level, text: notices.append((level, text)),
        )
        assert session.create_scene(0, 1) is None
        assert session.enter_selection() is False
        assert notices[-1][0] == "warning"

    def test_scene_to_here(self, session):
        session.create_scene(0, 2)
        scene = session.scene_to_here(6)
        assert session.render().scenes[1].range_text == "Messages 3-6 (4)"
        assert scene.source_count == 4

        with pytest.raises(InvalidRangeError):
            session.scene_to_here(5)

    def test_selection_flow(self, session):
        session.create_scene(0, 1)
        assert session.toggle_selection()
        assert session.selection.range == (2, 9)

        session.select(4, extend=True)
        scene = session.create_from_selection("focus")

        assert scene.custom_guidance == "focus"
        assert session.selection.active is False
        assert session.toggle_selection() is True
        assert session.toggle_selection() is False

    def test_set_guidance(self, session):
        scene = session.create_scene(0, 1)
        assert session.set_guidance(scene.id, "  ")
        assert session.store.get(scene.id).custom_guidance is None
        assert session.set_guidance("missing", "x") is False

    def test_delete_scene(self, session, chat):
        scene = session.create_scene(0, 1)
        assert session.delete_scene(scene.id)
        assert session.delete_scene(scene.id) is False
        assert all(not m.scene_ids for m in chat)


class TestSummarization:
    @pytest.mark.asyncio
    async def test_summarize_undo_round_trip(self, session, chat):
        scene = session.create_scene(2, 4)
        sources = list(scene.source_ids)

        assert session.summarize(scene.id)
        await session.queue.join()
        assert session.store.get(scene.id).status == "completed"
        assert len(chat) == 11

        assert session.undo(scene.id)
        restored = session.store.get(scene.id)
        assert restored.status == "defined"
        assert restored.source_ids == sources
        assert restored.summary_id is None
        assert len(chat) == 10

    @pytest.mark.asyncio
    async def test_delete_while_summarizing(self, chat, ids, persistence):
        gate = asyncio.Event()
        summarizer = FakeSummarizer(gate=gate)
        session = SceneFoldSession(
            chat,
            config=SceneFoldConfig(settle_delay=0),
            summarizer=summarizer,
            persistence=persistence,
            id_factory=ids,
        )
        scene = session.create_scene(2, 4)
        assert session.summarize(scene.id)
        await summarizer.started.wait()
        assert session.queue.active_id == scene.id

        assert session.delete_scene(scene.id)
        await session.queue.join()

        assert session.store.get(scene.id) is None
        assert len(chat) == 10
        assert not any(m.is_summary for m in chat)
        assert all(not m.hidden and not m.scene_ids for m in chat)
        assert check_consistency(session.store, chat) == []
        assert session.queue.is_processing is False

    @pytest.mark.asyncio
    async def test_summarize_all_only_defined(self, session, summarizer):
        a = session.create_scene(0, 1)
        b = session.create_scene(3, 4)
        session.store.update(b.id, status="error", last_error="x")

        assert session.summarize_all() == 1
        await session.queue.join()

        assert session.store.get(a.id).status == "completed"
        assert session.store.get(b.id).status == "error"
        assert summarizer.calls == 1

    def test_summarize_all_nothing_pending(self, session, notices):
        assert session.summarize_all() == 0
        assert notices[-1] == ("info", "No pending scenes to summarize.")

    @pytest.mark.asyncio
    async def test_retry_completed_scene(self, session, chat, summarizer):
        scene = session.create_scene(2, 4)
        session.summarize(scene.id)
        await session.queue.join()

        assert session.retry(scene.id)
        await session.queue.join()

        assert summarizer.calls == 2
        assert session.store.get(scene.id).status == "completed"
        assert len(chat) == 11

    @pytest.mark.asyncio
    async def test_toggle_fold(self, session, chat):
        scene = session.create_scene(2, 3)
        session.summarize(scene.id)
        await session.queue.join()

        assert session.toggle_fold(scene.id)
        assert not any(m.hidden for m in chat)


class TestHostHooks:
    def test_chat_loaded_resets_interrupted(self, chat, ids, summarizer):
        store = SceneStore(id_factory=ids)
        scene = store.create(chat, 0, 1)
        store.update(scene.id, status="summarizing")
        session = SceneFoldSession(chat, store=store, summarizer=summarizer, id_factory=ids)

        assert session.on_chat_loaded() == 1
        assert store.get(scene.id).status == "error"

    def test_messages_deleted(self, session, chat, notices):
        scene = session.create_scene(3, 5)
        del chat[4]

        result = session.on_messages_deleted()

        assert result.modified == [scene.id]
        assert session.store.get(scene.id).source_count == 2

    def test_message_duplicated(self, session, chat):
        scene = session.create_scene(3, 5)
        chat.insert(5, copy.deepcopy(chat[4]))

        assert session.on_message_duplicated() == 1
        assert find_duplicates(chat) == {}
        assert session.store.get(scene.id).source_count == 4
        assert session.on_message_duplicated() == 0

    @pytest.mark.asyncio
    async def test_message_edited_marks_stale(self, session, chat):
        scene = session.create_scene(3, 5)
        session.summarize(scene.id)
        await session.queue.join()

        position = resolve(chat, scene.source_ids[0])
        assert session.on_message_edited(position) == scene.id
        assert session.store.get(scene.id).stale
        assert session.on_message_edited(0) is None

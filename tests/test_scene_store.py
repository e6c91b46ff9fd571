"""Tests for SceneStore creation, lookup and ordering."""

from __future__ import annotations

import pytest

from scene_fold.chat import resolve
from scene_fold.scenes import InvalidRangeError, SceneOverlapError, SceneStore


class TestCreate:
    def test_tags_sources_and_assigns_ids(self, store, chat):
        scene = store.create(chat, 3, 5)

        assert scene.status == "defined"
        assert scene.source_count == 3
        assert [resolve(chat, mid) for mid in scene.source_ids] == [3, 4, 5]
        for position in (3, 4, 5):
            assert chat[position].scene_ids == [scene.id]
            assert chat[position].role == "source"
        assert chat[2].scene_ids == []
        assert chat[2].uuid is None

    def test_single_message_scene(self, store, chat):
        scene = store.create(chat, 0, 0)
        assert scene.source_count == 1

    def test_overlap_rejected(self, store, chat):
        first = store.create(chat, 3, 5)

        with pytest.raises(SceneOverlapError) as exc_info:
            store.create(chat, 4, 6)

        assert exc_info.value.scene_ids == [first.id]
        assert len(store) == 1
        assert chat[6].scene_ids == []

    def test_adjacent_ranges_allowed(self, store, chat):
        store.create(chat, 0, 2)
        store.create(chat, 3, 5)
        assert len(store) == 2

    @pytest.mark.parametrize("start,end", [(-1, 2), (5, 4), (8, 10), (10, 10)])
    def test_invalid_range(self, store, chat, start, end):
        with pytest.raises(InvalidRangeError):
            store.create(chat, start, end)
        assert len(store) == 0

    def test_empty_chat(self, store):
        with pytest.raises(InvalidRangeError):
            store.create([], 0, 0)

    def test_blank_guidance_normalised(self, store, chat):
        assert store.create(chat, 0, 1, "   ").custom_guidance is None
        assert store.create(chat, 2, 3, " focus on Bob ").custom_guidance == "focus on Bob"

    def test_summary_message_counts_as_claimed(self, store, chat):
        scene = store.create(chat, 2, 3)
        chat[1].role = "summary"
        chat[1].summary_of = scene.id

        with pytest.raises(SceneOverlapError):
            store.create(chat, 0, 1)


class TestUpdate:
    def test_merges_fields(self, store, chat):
        scene = store.create(chat, 0, 1)
        assert store.update(scene.id, status="error", last_error="boom")
        assert store.get(scene.id).last_error == "boom"

    def test_unknown_scene(self, store):
        assert store.update("missing", status="error") is False

    def test_unknown_field(self, store, chat):
        scene = store.create(chat, 0, 1)
        with pytest.raises(TypeError):
            store.update(scene.id, colour="red")


class TestDelete:
    def test_strips_membership(self, store, chat):
        scene = store.create(chat, 1, 2)
        removed = store.delete(chat, scene.id)

        assert removed is scene
        assert scene.id not in store
        assert chat[1].scene_ids == []
        assert chat[1].role is None

    def test_unknown(self, store, chat):
        assert store.delete(chat, "missing") is None


class TestQueries:
    def test_list_ordered_by_first_source(self, store, chat):
        late = store.create(chat, 6, 7)
        early = store.create(chat, 0, 1)
        middle = store.create(chat, 3, 4)

        assert [s.id for s in store.list_ordered(chat)] == [early.id, middle.id, late.id]

    def test_membership(self, store, chat):
        scene = store.create(chat, 2, 4)
        assert store.membership(chat, 3) == [scene.id]
        assert store.membership(chat, 5) == []
        assert store.membership(chat, 99) == []
        assert store.membership(chat, -1) == []

    def test_overlaps(self, store, chat):
        a = store.create(chat, 0, 1)
        b = store.create(chat, 4, 5)
        assert store.overlaps(chat, 1, 4) == [a.id, b.id]
        assert store.overlaps(chat, 2, 3) == []

    def test_auto_start_index(self, store, chat):
        assert store.auto_start_index(chat) == 0
        store.create(chat, 2, 4)
        assert store.auto_start_index(chat) == 5
        store.create(chat, 0, 1)
        assert store.auto_start_index(chat) == 5

    def test_iteration_is_a_snapshot(self, store, chat):
        store.create(chat, 0, 0)
        store.create(chat, 1, 1)
        for scene in store:
            store.delete(chat, scene.id)
        assert len(store) == 0

    def test_dict_round_trip(self, store, chat):
        scene = store.create(chat, 0, 2, "guide")
        restored = SceneStore.from_dict(store.to_dict())
        assert restored.get(scene.id) == scene

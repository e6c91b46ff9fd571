"""Repair scene state after the host mutates the chat behind our back.

Both passes are idempotent and cheap enough to run on every relevant host
event. They assume a single writer: the host must not mutate the chat while
a pass is running.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

from scene_fold.chat.identity import (
    NOT_FOUND,
    IdFactory,
    build_index,
    find_duplicates,
    new_id,
    resolve,
)

if TYPE_CHECKING:
    from scene_fold.chat.models import ChatMessage
    from scene_fold.scenes.store import SceneStore

LOGGER = logging.getLogger(__name__)


@dataclass
class DeletionResult:
    """Scenes affected by a deletion pass. The three lists are disjoint."""

    deleted: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    summary_lost: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.deleted or self.modified or self.summary_lost)


def reconcile_deletions(store: SceneStore, sequence: Sequence[ChatMessage]) -> DeletionResult:
    """
    Drop source ids that no longer resolve and heal lost summaries.

    A scene left with no sources is removed. A scene whose summary message
    vanished goes back to ``defined`` with its remaining sources visible.

    Returns:
        DeletionResult with deleted, modified and summary-lost scene ids.
    """
    result = DeletionResult()
    index = build_index(sequence)

    for scene in list(store):
        live_sources = [
            message_id
            for message_id in scene.source_ids
            if resolve(sequence, message_id, index) != NOT_FOUND
        ]
        trimmed = len(live_sources) != len(scene.source_ids)

        if not live_sources:
            if scene.summary_id:
                summary_position = resolve(sequence, scene.summary_id, index)
                if summary_position != NOT_FOUND:
                    sequence[summary_position].clear_summary_tags()
            store.delete(sequence, scene.id)
            result.deleted.append(scene.id)
            continue

        if trimmed:
            store.update(scene.id, source_ids=live_sources)

        if scene.summary_id and resolve(sequence, scene.summary_id, index) == NOT_FOUND:
            store.update(
                scene.id,
                status="defined",
                folded=False,
                summary_id=None,
            )
            for message_id in live_sources:
                position = resolve(sequence, message_id, index)
                if position != NOT_FOUND:
                    sequence[position].hidden = False
            result.summary_lost.append(scene.id)
        elif trimmed:
            result.modified.append(scene.id)

    if result.changed:
        LOGGER.info(
            "Deletion reconcile: %d deleted, %d modified, %d lost summary",
            len(result.deleted),
            len(result.modified),
            len(result.summary_lost),
        )
    return result


def reconcile_duplicates(
    store: SceneStore,
    sequence: Sequence[ChatMessage],
    id_factory: IdFactory = new_id,
) -> int:
    """
    Give every duplicated message its own id.

    The earliest copy keeps the original id. Each later copy gets a fresh
    id, which is inserted right after the original in every scene that
    lists it (appended if the original is missing from a scene that the
    copy claims membership in).

    Returns:
        Number of messages re-identified.
    """
    fixed = 0
    for original_id, positions in find_duplicates(sequence).items():
        owner_ids = [scene.id for scene in store if original_id in scene.source_ids]
        placed: set[str] = set()
        for position in positions[1:]:
            duplicate = sequence[position]
            fresh_id = id_factory()
            duplicate.uuid = fresh_id

            if duplicate.is_summary:
                # Only the original may stand in as the scene's summary.
                duplicate.clear_summary_tags()

            scene_ids = list(owner_ids)
            for scene_id in duplicate.scene_ids:
                if scene_id in store and scene_id not in scene_ids:
                    scene_ids.append(scene_id)
            duplicate.scene_ids = []
            if duplicate.role == "source":
                duplicate.role = None

            for scene_id in scene_ids:
                sources = list(store.get(scene_id).source_ids)
                if original_id in sources:
                    # Later copies go after earlier ones so chat order holds.
                    anchor = sources.index(original_id)
                    while anchor + 1 < len(sources) and sources[anchor + 1] in placed:
                        anchor += 1
                    sources.insert(anchor + 1, fresh_id)
                else:
                    sources.append(fresh_id)
                store.update(scene_id, source_ids=sources)
                duplicate.add_scene(scene_id)

            placed.add(fresh_id)
            fixed += 1
            LOGGER.info(
                "Re-identified duplicated message at %d: %s (was %s)",
                position,
                fresh_id[:8],
                original_id[:8],
            )
    return fixed


def check_consistency(store: SceneStore, sequence: Sequence[ChatMessage]) -> list[str]:
    """Return human-readable invariant violations; empty when consistent."""
    problems: list[str] = []
    index = build_index(sequence)

    for message_id, positions in find_duplicates(sequence).items():
        problems.append(f"message id {message_id} shared by positions {positions}")

    claimed_by: dict[str, str] = {}
    for scene in store:
        if not scene.source_ids:
            problems.append(f"scene {scene.id} has no sources")
        if len(set(scene.source_ids)) != len(scene.source_ids):
            problems.append(f"scene {scene.id} lists a source twice")

        last_position = NOT_FOUND
        for message_id in scene.source_ids:
            position = resolve(sequence, message_id, index)
            if position == NOT_FOUND:
                problems.append(f"scene {scene.id} source {message_id} does not resolve")
                continue
            if position < last_position:
                problems.append(f"scene {scene.id} sources out of chat order")
            last_position = max(last_position, position)
            if scene.id not in sequence[position].scene_ids:
                problems.append(f"message {position} missing membership tag for {scene.id}")
            other = claimed_by.setdefault(message_id, scene.id)
            if other != scene.id:
                problems.append(f"message {position} claimed by {other} and {scene.id}")

        if scene.summary_id:
            if scene.status != "completed":
                problems.append(f"scene {scene.id} has a summary while {scene.status}")
            if resolve(sequence, scene.summary_id, index) == NOT_FOUND:
                problems.append(f"scene {scene.id} summary does not resolve")

    for position, message in enumerate(sequence):
        for scene_id in message.scene_ids:
            scene = store.get(scene_id)
            if scene is None or message.uuid not in scene.source_ids:
                problems.append(f"message {position} tagged with {scene_id} but not a source")

    return problems

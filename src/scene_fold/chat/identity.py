"""Stable message identifiers that survive position shifts.

Positions in the host list change on every insert or removal, so scenes
refer to messages by an opaque uuid stored on the message itself. The
helpers here assign those ids and map them back to current positions.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Callable, Sequence

if TYPE_CHECKING:
    from scene_fold.chat.models import ChatMessage

LOGGER = logging.getLogger(__name__)

NOT_FOUND = -1

IdFactory = Callable[[], str]


def new_id() -> str:
    """Return a fresh globally-unique identifier."""
    return str(uuid.uuid4())


def ensure_id(message: ChatMessage, id_factory: IdFactory = new_id) -> str:
    """Return the message's stable id, minting one if it has none."""
    if not message.uuid:
        message.uuid = id_factory()
    return message.uuid


def build_index(sequence: Sequence[ChatMessage]) -> dict[str, int]:
    """Map uuid -> position in one pass.

    If a uuid occurs more than once (an unreconciled duplicate) the
    earliest position wins.
    """
    index: dict[str, int] = {}
    for position, message in enumerate(sequence):
        if message.uuid and message.uuid not in index:
            index[message.uuid] = position
    return index


def resolve(
    sequence: Sequence[ChatMessage],
    message_id: str | None,
    index: dict[str, int] | None = None,
) -> int:
    """Return the current position of ``message_id`` or ``NOT_FOUND``.

    A cached position is only trusted after checking the live message at
    that slot; otherwise falls back to a linear scan.
    """
    if not message_id:
        return NOT_FOUND

    if index is not None and message_id in index:
        position = index[message_id]
        if 0 <= position < len(sequence) and sequence[position].uuid == message_id:
            return position
        LOGGER.debug("Stale index entry for %s at %d", message_id, position)

    for position, message in enumerate(sequence):
        if message.uuid == message_id:
            return position
    return NOT_FOUND


def find_duplicates(sequence: Sequence[ChatMessage]) -> dict[str, list[int]]:
    """Return uuid -> positions for every uuid held by more than one message."""
    occurrences: dict[str, list[int]] = {}
    for position, message in enumerate(sequence):
        if message.uuid:
            occurrences.setdefault(message.uuid, []).append(position)
    return {
        message_id: positions
        for message_id, positions in occurrences.items()
        if len(positions) > 1
    }

"""Host chat sequence model and stable message identity."""

from scene_fold.chat.identity import (
    NOT_FOUND,
    build_index,
    ensure_id,
    find_duplicates,
    new_id,
    resolve,
)
from scene_fold.chat.models import ChatMessage, MessageRole

__all__ = [
    "ChatMessage",
    "MessageRole",
    "NOT_FOUND",
    "build_index",
    "ensure_id",
    "find_duplicates",
    "new_id",
    "resolve",
]

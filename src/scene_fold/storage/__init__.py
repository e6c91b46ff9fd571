"""SQLite-backed storage for chats and scenes."""

from scene_fold.storage.base import Database, dump_list, load_list
from scene_fold.storage.chat_store import ChatPersistence, ChatStore
from scene_fold.storage.exceptions import (
    ChatNotFoundError,
    DatabaseError,
    MigrationError,
    StorageError,
)
from scene_fold.storage.migrations import Migration, get_all_migrations

__all__ = [
    # Base
    "Database",
    "dump_list",
    "load_list",
    # Chats
    "ChatPersistence",
    "ChatStore",
    # Exceptions
    "ChatNotFoundError",
    "DatabaseError",
    "MigrationError",
    "StorageError",
    # Migrations
    "Migration",
    "get_all_migrations",
]

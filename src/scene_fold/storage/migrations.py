"""Schema migrations for scene_fold.db."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Migration:
    """A single schema migration."""

    version: int
    name: str
    statements: list[str]


# Migration 001: chats, their messages and scene records
MIGRATION_001_INITIAL = Migration(
    version=1,
    name="initial_schema",
    statements=[
        # Schema version tracking
        """
        CREATE TABLE schema_version (
            version INTEGER PRIMARY KEY,
            applied_at TEXT NOT NULL
        )
        """,
        """
        CREATE TABLE chat (
            id TEXT PRIMARY KEY,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """,
        # Messages are rewritten wholesale on every save; position is the order
        """
        CREATE TABLE chat_message (
            chat_id TEXT NOT NULL,
            position INTEGER NOT NULL,
            uuid TEXT,
            name TEXT,
            is_user INTEGER NOT NULL DEFAULT 0,
            hidden INTEGER NOT NULL DEFAULT 0,
            text TEXT NOT NULL,
            scene_ids TEXT NOT NULL DEFAULT '[]',
            role TEXT CHECK (role IS NULL OR role IN ('source', 'summary')),
            summary_of TEXT,
            PRIMARY KEY (chat_id, position),
            FOREIGN KEY (chat_id) REFERENCES chat(id) ON DELETE CASCADE
        )
        """,
        "CREATE INDEX idx_message_uuid ON chat_message(chat_id, uuid)",
        """
        CREATE TABLE scene (
            id TEXT PRIMARY KEY,
            chat_id TEXT NOT NULL,
            source_ids TEXT NOT NULL,
            summary_id TEXT,
            status TEXT NOT NULL DEFAULT 'defined'
                CHECK (status IN ('defined', 'queued', 'summarizing', 'completed', 'error')),
            custom_guidance TEXT,
            folded INTEGER NOT NULL DEFAULT 0,
            stale INTEGER NOT NULL DEFAULT 0,
            last_error TEXT,
            created_at TEXT NOT NULL,
            FOREIGN KEY (chat_id) REFERENCES chat(id) ON DELETE CASCADE
        )
        """,
        "CREATE INDEX idx_scene_chat ON scene(chat_id)",
    ],
)

# Migration 002: remember which scene ids were ever issued per chat
MIGRATION_002_RETIRED_SCENES = Migration(
    version=2,
    name="retired_scene_ids",
    statements=[
        """
        CREATE TABLE retired_scene (
            id TEXT PRIMARY KEY,
            chat_id TEXT NOT NULL,
            retired_at TEXT NOT NULL,
            FOREIGN KEY (chat_id) REFERENCES chat(id) ON DELETE CASCADE
        )
        """,
    ],
)


# All migrations in order
ALL_MIGRATIONS: list[Migration] = [
    MIGRATION_001_INITIAL,
    MIGRATION_002_RETIRED_SCENES,
]


def get_all_migrations() -> list[Migration]:
    """Return all migrations in version order."""
    return ALL_MIGRATIONS

"""SQLite-backed persistence for chats and their scenes."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Sequence

from scene_fold.chat.identity import IdFactory, new_id
from scene_fold.chat.models import ChatMessage
from scene_fold.scenes.models import Scene, utcnow
from scene_fold.scenes.store import SceneStore
from scene_fold.storage.base import Database, dump_list, load_list
from scene_fold.storage.exceptions import ChatNotFoundError, DatabaseError, StorageError
from scene_fold.storage.migrations import get_all_migrations

LOGGER = logging.getLogger(__name__)


class ChatStore:
    """Stores chat sequences and scene records in scene_fold.db."""

    def __init__(self, db_path: Path | str) -> None:
        """Connect to or create the database. Runs migrations if needed."""
        self._db = Database(db_path)
        self._db.run_migrations(get_all_migrations())

    @property
    def conn(self) -> sqlite3.Connection:
        """Access underlying connection."""
        return self._db.conn

    def close(self) -> None:
        """Close the database connection."""
        self._db.close()

    def chat_exists(self, chat_id: str) -> bool:
        try:
            row = self.conn.execute("SELECT 1 FROM chat WHERE id = ?", (chat_id,)).fetchone()
            return row is not None
        except sqlite3.Error as e:
            raise DatabaseError(f"Chat lookup failed: {e}") from e

    def list_chats(self) -> list[str]:
        try:
            cursor = self.conn.execute("SELECT id FROM chat ORDER BY created_at, id")
            return [row["id"] for row in cursor]
        except sqlite3.Error as e:
            raise DatabaseError(f"List chats failed: {e}") from e

    def save_sequence(self, chat_id: str, sequence: Sequence[ChatMessage]) -> None:
        """Replace the stored messages of a chat, creating the chat if new."""
        now = utcnow()
        try:
            with self._db.transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO chat (id, created_at, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET updated_at = excluded.updated_at
                    """,
                    (chat_id, now, now),
                )
                conn.execute("DELETE FROM chat_message WHERE chat_id = ?", (chat_id,))
                conn.executemany(
                    """
                    INSERT INTO chat_message (
                        chat_id, position, uuid, name, is_user, hidden,
                        text, scene_ids, role, summary_of
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            chat_id,
                            position,
                            message.uuid,
                            message.name,
                            int(message.is_user),
                            int(message.hidden),
                            message.text,
                            dump_list(message.scene_ids),
                            message.role,
                            message.summary_of,
                        )
                        for position, message in enumerate(sequence)
                    ],
                )
        except sqlite3.Error as e:
            raise DatabaseError(f"Save chat {chat_id} failed: {e}") from e
        LOGGER.debug("Saved %d messages for chat %s", len(sequence), chat_id)

    def load_sequence(self, chat_id: str) -> list[ChatMessage]:
        """Load a chat's messages in order.

        Raises:
            ChatNotFoundError: Chat was never saved.
        """
        if not self.chat_exists(chat_id):
            raise ChatNotFoundError(chat_id)
        try:
            cursor = self.conn.execute(
                """
                SELECT uuid, name, is_user, hidden, text, scene_ids, role, summary_of
                FROM chat_message
                WHERE chat_id = ?
                ORDER BY position
                """,
                (chat_id,),
            )
            return [
                ChatMessage(
                    text=row["text"],
                    name=row["name"],
                    is_user=bool(row["is_user"]),
                    hidden=bool(row["hidden"]),
                    uuid=row["uuid"],
                    scene_ids=load_list(row["scene_ids"]),
                    role=row["role"],
                    summary_of=row["summary_of"],
                )
                for row in cursor
            ]
        except sqlite3.Error as e:
            raise DatabaseError(f"Load chat {chat_id} failed: {e}") from e

    def save_scenes(self, chat_id: str, store: SceneStore) -> None:
        """Replace the stored scenes of a chat.

        Scenes that disappeared since the last save are retired so their ids
        are never handed out again for this chat.
        """
        now = utcnow()
        live_ids = set(store.ids())
        try:
            with self._db.transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO chat (id, created_at, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET updated_at = excluded.updated_at
                    """,
                    (chat_id, now, now),
                )
                stored = [
                    row["id"]
                    for row in conn.execute("SELECT id FROM scene WHERE chat_id = ?", (chat_id,))
                ]
                conn.executemany(
                    "INSERT OR IGNORE INTO retired_scene (id, chat_id, retired_at) VALUES (?, ?, ?)",
                    [(scene_id, chat_id, now) for scene_id in stored if scene_id not in live_ids],
                )
                conn.execute("DELETE FROM scene WHERE chat_id = ?", (chat_id,))
                conn.executemany(
                    """
                    INSERT INTO scene (
                        id, chat_id, source_ids, summary_id, status, custom_guidance,
                        folded, stale, last_error, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            scene.id,
                            chat_id,
                            dump_list(scene.source_ids),
                            scene.summary_id,
                            scene.status,
                            scene.custom_guidance,
                            int(scene.folded),
                            int(scene.stale),
                            scene.last_error,
                            scene.created_at,
                        )
                        for scene in store
                    ],
                )
        except sqlite3.Error as e:
            raise DatabaseError(f"Save scenes for chat {chat_id} failed: {e}") from e
        LOGGER.debug("Saved %d scenes for chat %s", len(live_ids), chat_id)

    def retired_scene_ids(self, chat_id: str) -> set[str]:
        try:
            cursor = self.conn.execute(
                "SELECT id FROM retired_scene WHERE chat_id = ?", (chat_id,)
            )
            return {row["id"] for row in cursor}
        except sqlite3.Error as e:
            raise DatabaseError(f"Load retired scenes failed: {e}") from e

    def load_store(self, chat_id: str, id_factory: IdFactory = new_id) -> SceneStore:
        """Load a chat's scenes into a SceneStore that never reuses retired ids."""
        try:
            cursor = self.conn.execute(
                """
                SELECT id, source_ids, summary_id, status, custom_guidance,
                       folded, stale, last_error, created_at
                FROM scene
                WHERE chat_id = ?
                ORDER BY created_at, id
                """,
                (chat_id,),
            )
            scenes = [
                Scene(
                    id=row["id"],
                    source_ids=load_list(row["source_ids"]),
                    summary_id=row["summary_id"],
                    status=row["status"],
                    custom_guidance=row["custom_guidance"],
                    folded=bool(row["folded"]),
                    stale=bool(row["stale"]),
                    last_error=row["last_error"],
                    created_at=row["created_at"],
                )
                for row in cursor
            ]
        except sqlite3.Error as e:
            raise DatabaseError(f"Load scenes for chat {chat_id} failed: {e}") from e

        retired = self.retired_scene_ids(chat_id)

        def fresh_id() -> str:
            candidate = id_factory()
            while candidate in retired:
                candidate = id_factory()
            return candidate

        return SceneStore({scene.id: scene for scene in scenes}, id_factory=fresh_id)

    def bind(
        self,
        chat_id: str,
        sequence: Sequence[ChatMessage],
        store: SceneStore,
    ) -> ChatPersistence:
        """Persistence hooks saving this chat's sequence and scenes."""
        return ChatPersistence(self, chat_id, sequence, store)


class ChatPersistence:
    """Fire-and-forget save hooks for one chat. Failures are logged."""

    def __init__(
        self,
        chat_store: ChatStore,
        chat_id: str,
        sequence: Sequence[ChatMessage],
        store: SceneStore,
    ) -> None:
        self.chat_store = chat_store
        self.chat_id = chat_id
        self.sequence = sequence
        self.store = store

    def persist_sequence(self) -> None:
        try:
            self.chat_store.save_sequence(self.chat_id, self.sequence)
        except StorageError as e:
            LOGGER.error("Saving chat %s failed: %s", self.chat_id, e)

    def persist_scenes(self) -> None:
        try:
            self.chat_store.save_scenes(self.chat_id, self.store)
        except StorageError as e:
            LOGGER.error("Saving scenes for chat %s failed: %s", self.chat_id, e)

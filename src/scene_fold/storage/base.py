"""SQLite connection wrapper and migration runner for scene_fold.db."""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

from scene_fold.scenes.models import utcnow
from scene_fold.storage.exceptions import DatabaseError, MigrationError

LOGGER = logging.getLogger(__name__)

if TYPE_CHECKING:
    from scene_fold.storage.migrations import Migration

MEMORY = ":memory:"


def dump_list(values: list[str]) -> str:
    """Encode a list column."""
    return json.dumps(list(values))


def load_list(raw: str | None) -> list[str]:
    """Decode a list column, tolerating NULL and garbage."""
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        LOGGER.warning("Discarding malformed list column: %r", raw[:80])
        return []
    return [str(item) for item in data] if isinstance(data, list) else []


class Database:
    """Owns one lazily-opened SQLite connection and applies migrations.

    Pass ``":memory:"`` for a throwaway database (tests, dry runs).
    """

    def __init__(self, db_path: Path | str) -> None:
        self.in_memory = str(db_path) == MEMORY
        self.db_path = Path(db_path) if not self.in_memory else db_path
        if not self.in_memory:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode; every write goes through transaction()
        conn = sqlite3.connect(str(self.db_path), isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        if not self.in_memory:
            conn.execute("PRAGMA journal_mode = WAL")
        return conn

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                self._conn = self._connect()
            except sqlite3.Error as e:
                raise DatabaseError(f"Failed to open {self.db_path}: {e}") from e
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """BEGIN IMMEDIATE ... COMMIT, rolling back on any exception."""
        conn = self.conn
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def get_schema_version(self) -> int:
        """Highest applied migration, 0 for a fresh database."""
        try:
            exists = self.conn.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'schema_version'"
            ).fetchone()
            if exists is None:
                return 0
            (version,) = self.conn.execute(
                "SELECT COALESCE(MAX(version), 0) FROM schema_version"
            ).fetchone()
            return version
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to read schema version: {e}") from e

    def run_migrations(self, migrations: list[Migration]) -> int:
        """
        Bring the schema up to date.

        Each pending migration runs in its own transaction together with its
        schema_version row, so a failure leaves earlier migrations applied.

        Returns:
            Number of migrations applied.

        Raises:
            MigrationError: A statement failed, or the database was written
                by a newer schema than ``migrations`` knows about.
        """
        current = self.get_schema_version()
        latest = max((m.version for m in migrations), default=0)
        if current > latest:
            raise MigrationError(
                f"Database schema version {current} is newer than supported ({latest})"
            )

        pending = sorted((m for m in migrations if m.version > current), key=lambda m: m.version)
        for migration in pending:
            try:
                with self.transaction() as conn:
                    for statement in migration.statements:
                        conn.execute(statement)
                    conn.execute(
                        "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                        (migration.version, utcnow()),
                    )
            except sqlite3.Error as e:
                LOGGER.error("Migration %d (%s) failed: %s", migration.version, migration.name, e)
                raise MigrationError(
                    f"Migration {migration.version} ({migration.name}) failed: {e}"
                ) from e
            LOGGER.info("Applied migration %d: %s", migration.version, migration.name)

        return len(pending)

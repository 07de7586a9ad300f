"""SQLite-backed versioned score record."""

from __future__ import annotations

import sqlite3
import time
from pathlib import Path
from typing import Callable, Optional, TypeVar

from swipescore.core.errors import ConflictError, TransientStorageError
from swipescore.core.models import ScoreTable, Snapshot, VersionToken
from swipescore.storage.versioned import VersionedStore, dumps_table, loads_table, maybe_offload, new_version
from swipescore.util.logger import logger


T = TypeVar("T")


class SqliteVersionedStore(VersionedStore):
    def __init__(self, db_path: str = "logs/swipescore.db", *, record_name: str = "scores") -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.record_name = record_name
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=5.0)
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS score_record (
                  name TEXT PRIMARY KEY,
                  payload TEXT NOT NULL,
                  version TEXT NOT NULL,
                  updated_at INTEGER NOT NULL
                )
                """
            )
            conn.commit()
        logger.info("sqlite store initialized path=%s record=%s", self.db_path, self.record_name)

    def _with_retry(self, fn: Callable[[], T], retries: int = 5) -> T:
        # "database is locked" means the statement never ran, so repeating it is safe
        for attempt in range(retries):
            try:
                return fn()
            except sqlite3.OperationalError as exc:
                if "locked" not in str(exc).lower() or attempt == retries - 1:
                    raise TransientStorageError(f"sqlite operation failed: {exc}") from exc
                time.sleep(0.01 * (attempt + 1))
            except sqlite3.Error as exc:
                raise TransientStorageError(f"sqlite operation failed: {exc}") from exc
        raise RuntimeError("unreachable retry state")

    def _read_sync(self) -> Snapshot:
        def _read() -> tuple | None:
            with self._connect() as conn:
                return conn.execute(
                    "SELECT payload, version FROM score_record WHERE name = ?",
                    (self.record_name,),
                ).fetchone()

        row = self._with_retry(_read)
        if not row:
            return Snapshot()
        return Snapshot(table=loads_table(row[0]), version=str(row[1]))

    def _write_sync(self, payload: str, expected_version: Optional[VersionToken]) -> VersionToken:
        version = new_version()
        now = int(time.time())

        def _write() -> int:
            with self._connect() as conn:
                if expected_version is None:
                    cursor = conn.execute(
                        """
                        INSERT INTO score_record (name, payload, version, updated_at)
                        VALUES (?, ?, ?, ?)
                        ON CONFLICT(name) DO NOTHING
                        """,
                        (self.record_name, payload, version, now),
                    )
                else:
                    cursor = conn.execute(
                        """
                        UPDATE score_record
                        SET payload = ?, version = ?, updated_at = ?
                        WHERE name = ? AND version = ?
                        """,
                        (payload, version, now, self.record_name, expected_version),
                    )
                conn.commit()
                return int(cursor.rowcount or 0)

        if self._with_retry(_write) != 1:
            raise ConflictError(f"score record {self.record_name!r} changed since version {expected_version}")
        return version

    async def read(self) -> Snapshot:
        return await maybe_offload(self._read_sync)

    async def conditional_write(self, table: ScoreTable, expected_version: Optional[VersionToken]) -> VersionToken:
        return await maybe_offload(self._write_sync, dumps_table(table), expected_version)

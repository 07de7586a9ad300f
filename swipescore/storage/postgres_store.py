"""PostgreSQL-backed versioned score record."""

from __future__ import annotations

import math
import re
import time
from typing import Any, Callable, Optional

from swipescore.core.errors import ConflictError, TransientStorageError
from swipescore.core.models import ScoreTable, Snapshot, VersionToken
from swipescore.storage.versioned import VersionedStore, dumps_table, loads_table, maybe_offload, new_version
from swipescore.util.logger import logger

try:
    import psycopg
except Exception:  # pragma: no cover - optional dependency
    psycopg = None


class PostgresVersionedStore(VersionedStore):
    def __init__(
        self,
        *,
        dsn: str,
        schema: str = "public",
        record_name: str = "scores",
        timeout_seconds: float = 5.0,
        connect: Optional[Callable[[], Any]] = None,
    ) -> None:
        if psycopg is None:  # pragma: no cover - optional dependency
            raise RuntimeError("psycopg package is not installed, cannot use PostgresVersionedStore")
        if not dsn.strip():
            raise RuntimeError("postgres dsn is empty")
        if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", schema):
            raise RuntimeError("postgres schema contains invalid characters")

        self.dsn = dsn
        self.schema = schema
        self.record_name = record_name
        self.timeout_seconds = float(timeout_seconds)
        self._connect_func = connect
        self._table = f"{self.schema}.score_record"

        self._init_db()

    def _connect(self):
        if self._connect_func is not None:
            return self._connect_func()
        return psycopg.connect(self.dsn, **self.connect_kwargs())

    def connect_kwargs(self) -> dict[str, Any]:
        # libpq takes whole seconds (minimum 2) for connect_timeout, milliseconds for statement_timeout
        return {
            "connect_timeout": max(2, math.ceil(self.timeout_seconds)),
            "options": f"-c statement_timeout={int(self.timeout_seconds * 1000)}",
        }

    def _init_db(self) -> None:
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(f"CREATE SCHEMA IF NOT EXISTS {self.schema}")
                    cur.execute(
                        f"""
                        CREATE TABLE IF NOT EXISTS {self._table} (
                          name TEXT PRIMARY KEY,
                          payload TEXT NOT NULL,
                          version TEXT NOT NULL,
                          updated_at BIGINT NOT NULL
                        )
                        """
                    )
                conn.commit()
        except psycopg.Error as exc:
            raise TransientStorageError(f"postgres init failed: {exc}") from exc
        logger.info("postgres store initialized schema=%s record=%s", self.schema, self.record_name)

    def _read_sync(self) -> Snapshot:
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"SELECT payload, version FROM {self._table} WHERE name = %s",
                        (self.record_name,),
                    )
                    row = cur.fetchone()
        except psycopg.Error as exc:
            raise TransientStorageError(f"postgres read failed: {exc}") from exc
        if not row:
            return Snapshot()
        return Snapshot(table=loads_table(str(row[0])), version=str(row[1]))

    def _write_sync(self, payload: str, expected_version: Optional[VersionToken]) -> VersionToken:
        version = new_version()
        now = int(time.time())
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    if expected_version is None:
                        cur.execute(
                            f"""
                            INSERT INTO {self._table} (name, payload, version, updated_at)
                            VALUES (%s, %s, %s, %s)
                            ON CONFLICT (name) DO NOTHING
                            """,
                            (self.record_name, payload, version, now),
                        )
                    else:
                        cur.execute(
                            f"""
                            UPDATE {self._table}
                            SET payload = %s, version = %s, updated_at = %s
                            WHERE name = %s AND version = %s
                            """,
                            (payload, version, now, self.record_name, expected_version),
                        )
                    changed = int(cur.rowcount or 0)
                conn.commit()
        except psycopg.Error as exc:
            raise TransientStorageError(f"postgres write failed: {exc}") from exc
        if changed != 1:
            raise ConflictError(f"score record {self.record_name!r} changed since version {expected_version}")
        return version

    async def read(self) -> Snapshot:
        return await maybe_offload(self._read_sync)

    async def conditional_write(self, table: ScoreTable, expected_version: Optional[VersionToken]) -> VersionToken:
        return await maybe_offload(self._write_sync, dumps_table(table), expected_version)

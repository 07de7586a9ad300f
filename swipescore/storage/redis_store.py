"""Redis-backed versioned score record.

The record is a hash with ``payload`` and ``version`` fields. The
compare-and-swap runs as WATCH / version check / MULTI ... EXEC, so a writer
that slips in between the check and EXEC aborts the transaction.
"""

from __future__ import annotations

from typing import Any, Optional

from swipescore.core.errors import ConflictError, TransientStorageError
from swipescore.core.models import ScoreTable, Snapshot, VersionToken
from swipescore.storage.versioned import VersionedStore, dumps_table, loads_table, maybe_offload, new_version
from swipescore.util.logger import logger

try:
    import redis
except Exception:  # pragma: no cover - optional dependency
    redis = None


def _to_str(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


class RedisVersionedStore(VersionedStore):
    def __init__(
        self,
        *,
        redis_url: str = "",
        key_prefix: str = "swipescore",
        record_name: str = "scores",
        timeout_seconds: float = 5.0,
        client: Any = None,
    ) -> None:
        if redis is None:  # pragma: no cover - depends on optional package
            raise RuntimeError("redis package is not installed, cannot use RedisVersionedStore")
        self.timeout_seconds = float(timeout_seconds)
        if client is None:
            client = redis.Redis.from_url(
                redis_url,
                decode_responses=False,
                socket_timeout=self.timeout_seconds,
                socket_connect_timeout=self.timeout_seconds,
            )
        self.client = client
        self.key_prefix = key_prefix.strip() or "swipescore"
        self.record_name = record_name

    def _record_key(self) -> str:
        return f"{self.key_prefix}:record:{self.record_name}"

    def _read_sync(self) -> Snapshot:
        try:
            payload, version = self.client.hmget(self._record_key(), "payload", "version")
        except redis.RedisError as exc:
            raise TransientStorageError(f"redis read failed: {exc}") from exc
        if payload is None or version is None:
            return Snapshot()
        return Snapshot(table=loads_table(payload), version=_to_str(version))

    def _write_sync(self, payload: str, expected_version: Optional[VersionToken]) -> VersionToken:
        key = self._record_key()
        version = new_version()
        pipe = self.client.pipeline()
        try:
            pipe.watch(key)
            current = pipe.hget(key, "version")
            current_version = _to_str(current) if current is not None else None
            if current_version != expected_version:
                raise ConflictError(f"score record {self.record_name!r} is at version {current_version}")
            pipe.multi()
            pipe.hset(key, mapping={"payload": payload, "version": version})
            pipe.execute()
        except redis.WatchError as exc:
            logger.debug("redis watch aborted key=%s", key)
            raise ConflictError(f"score record {self.record_name!r} changed during commit") from exc
        except redis.RedisError as exc:
            raise TransientStorageError(f"redis write failed: {exc}") from exc
        finally:
            pipe.reset()
        return version

    async def read(self) -> Snapshot:
        return await maybe_offload(self._read_sync)

    async def conditional_write(self, table: ScoreTable, expected_version: Optional[VersionToken]) -> VersionToken:
        return await maybe_offload(self._write_sync, dumps_table(table), expected_version)

    async def close(self) -> None:
        try:
            await maybe_offload(self.client.close)
        except redis.RedisError as exc:
            logger.warning("redis close failed: %s", exc)

"""Storage backend selection helpers."""

from __future__ import annotations

from swipescore.config.settings import settings
from swipescore.storage.memory_store import MemoryVersionedStore
from swipescore.storage.versioned import VersionedStore


def create_store() -> VersionedStore:
    backend = settings.storage_backend.strip().lower()
    if backend == "memory":
        return MemoryVersionedStore()
    if backend == "redis":
        from swipescore.storage.redis_store import RedisVersionedStore

        return RedisVersionedStore(
            redis_url=settings.redis_url,
            key_prefix=settings.redis_key_prefix,
            record_name=settings.score_record_name,
            timeout_seconds=settings.storage_timeout_seconds,
        )
    if backend in {"postgres", "postgresql"}:
        from swipescore.storage.postgres_store import PostgresVersionedStore

        return PostgresVersionedStore(
            dsn=settings.postgres_dsn,
            schema=settings.postgres_schema,
            record_name=settings.score_record_name,
            timeout_seconds=settings.storage_timeout_seconds,
        )
    from swipescore.storage.sqlite_store import SqliteVersionedStore

    return SqliteVersionedStore(db_path=settings.sqlite_db_path, record_name=settings.score_record_name)

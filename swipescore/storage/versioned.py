"""Versioned single-record store contract used by the commit loop.

Every adapter keeps the whole score table as one JSON document next to an
opaque version token. ``conditional_write`` is a compare-and-swap on that
token and must be atomic inside the backend itself.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, TypeVar

from swipescore.config.settings import settings
from swipescore.core.errors import TransientStorageError
from swipescore.core.models import ScoreTable, Snapshot, VersionToken, table_from_document, table_to_document


T = TypeVar("T")


class VersionedStore(ABC):
    @abstractmethod
    async def read(self) -> Snapshot:
        """Return the stored table and its version; empty table and ``None`` if absent."""

    @abstractmethod
    async def conditional_write(self, table: ScoreTable, expected_version: Optional[VersionToken]) -> VersionToken:
        """Persist ``table`` only if the stored version equals ``expected_version``.

        ``expected_version=None`` means create-if-absent. Raises ``ConflictError``
        on mismatch and ``TransientStorageError`` when the backend fails.
        """

    async def close(self) -> None:
        return None


def new_version() -> VersionToken:
    return uuid.uuid4().hex


def dumps_table(table: ScoreTable) -> str:
    return json.dumps(table_to_document(table), ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def loads_table(payload: Any) -> ScoreTable:
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    try:
        document = json.loads(payload)
    except (TypeError, ValueError) as exc:
        raise TransientStorageError("stored score record is not valid JSON") from exc
    return table_from_document(document)


async def maybe_offload(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking driver call in a worker thread when offload is enabled."""
    if settings.enable_thread_offload:
        return await asyncio.to_thread(func, *args, **kwargs)
    return func(*args, **kwargs)

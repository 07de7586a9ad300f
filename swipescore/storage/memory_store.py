"""In-process versioned store.

Used for ``storage_backend=memory`` and as the deterministic double in tests:
``script`` lists forced outcomes for successive ``conditional_write`` calls and
``before_write`` hooks run just ahead of the compare-and-swap so a test can
slip a competing writer in between a read and a commit.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from typing import Optional

from swipescore.core.errors import ConflictError, TransientStorageError
from swipescore.core.models import ScoreTable, Snapshot, VersionToken
from swipescore.storage.versioned import VersionedStore, new_version
from swipescore.util.logger import logger

WriteHook = Callable[["MemoryVersionedStore"], Awaitable[None]]

OUTCOME_OK = "ok"
OUTCOME_CONFLICT = "conflict"
OUTCOME_TRANSIENT = "transient"
_OUTCOMES = frozenset({OUTCOME_OK, OUTCOME_CONFLICT, OUTCOME_TRANSIENT})


class MemoryVersionedStore(VersionedStore):
    def __init__(
        self,
        *,
        script: Iterable[str] = (),
        conflict_forever: bool = False,
        fail_reads: int = 0,
        before_write: Iterable[WriteHook] = (),
    ) -> None:
        outcomes = list(script)
        unknown = [o for o in outcomes if o not in _OUTCOMES]
        if unknown:
            raise ValueError(f"unknown scripted outcome(s): {unknown}")
        self._script = deque(outcomes)
        self._conflict_forever = conflict_forever
        self._fail_reads = max(0, int(fail_reads))
        self._before_write = deque(before_write)
        self._lock = asyncio.Lock()
        self._table: Optional[ScoreTable] = None
        self._version: Optional[VersionToken] = None

        self.read_calls = 0
        self.write_calls = 0
        self.committed_writes = 0

    @property
    def version(self) -> Optional[VersionToken]:
        return self._version

    async def read(self) -> Snapshot:
        self.read_calls += 1
        if self._fail_reads > 0:
            self._fail_reads -= 1
            raise TransientStorageError("memory store scripted read failure")
        # yield like a network round trip so concurrent commits interleave
        await asyncio.sleep(0)
        async with self._lock:
            if self._table is None:
                return Snapshot()
            return Snapshot(table=dict(self._table), version=self._version)

    async def conditional_write(self, table: ScoreTable, expected_version: Optional[VersionToken]) -> VersionToken:
        self.write_calls += 1
        if self._before_write:
            hook = self._before_write.popleft()
            await hook(self)

        forced = self._script.popleft() if self._script else OUTCOME_OK
        if self._conflict_forever:
            forced = OUTCOME_CONFLICT
        if forced == OUTCOME_CONFLICT:
            raise ConflictError("memory store scripted conflict")
        if forced == OUTCOME_TRANSIENT:
            raise TransientStorageError("memory store scripted write failure")

        async with self._lock:
            if self._version != expected_version:
                logger.debug("memory store conflict expected=%s current=%s", expected_version, self._version)
                raise ConflictError("stored version changed since read")
            self._table = dict(table)
            self._version = new_version()
            self.committed_writes += 1
            return self._version

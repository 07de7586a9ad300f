"""Optimistic read -> merge -> conditional-write loop for vote batches.

Every attempt reads a fresh snapshot, merges the complete original batch into
it and commits with the version seen by that read. A conflicting commit is
retried after ``backoff_base * attempt`` seconds until ``max_attempts`` is
spent. Storage failures other than conflicts end the loop immediately; they
are not retried, and there is no per-batch idempotency key, so a client that
resubmits an already committed batch counts it twice.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Optional, TypeVar, Union

from swipescore.config.settings import settings
from swipescore.core.aggregator import merge
from swipescore.core.errors import (
    ConflictError,
    ContentionExhaustedError,
    FatalCommitError,
    StorageDeadlineError,
    TransientStorageError,
    ValidationError,
)
from swipescore.core.models import ScoreTable, Snapshot, Vote, VersionToken, VoteBatch
from swipescore.observability.logging import log_event
from swipescore.observability.metrics import emit_counter
from swipescore.storage.versioned import VersionedStore
from swipescore.util.logger import logger


T = TypeVar("T")
SleepFunc = Callable[[float], Awaitable[None]]


class CommitOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    EXHAUSTED_RETRIES = "exhausted_retries"
    FATAL_ERROR = "fatal_error"


@dataclass(frozen=True)
class CommitResult:
    outcome: CommitOutcome
    attempts: int
    table: Optional[ScoreTable] = None
    version: Optional[VersionToken] = None
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is CommitOutcome.SUCCEEDED


class RetryCoordinator:
    def __init__(
        self,
        store: VersionedStore,
        *,
        max_attempts: int = 5,
        backoff_base: float = 0.025,
        sleep: SleepFunc = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.max_attempts = int(max_attempts)
        self.backoff_base = max(0.0, float(backoff_base))
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_settings(cls, store: VersionedStore, **overrides) -> "RetryCoordinator":
        options = {
            "max_attempts": settings.max_commit_attempts,
            "backoff_base": settings.backoff_base_ms / 1000.0,
        }
        options.update(overrides)
        return cls(store, **options)

    def backoff_delay(self, attempt: int) -> float:
        """Linear backoff after the given (1-based) failed attempt; no jitter."""
        return self.backoff_base * attempt

    def deadline_after(self, seconds: float) -> Optional[float]:
        if seconds <= 0:
            return None
        return self._clock() + seconds

    def _deadline_passed(self, deadline: Optional[float]) -> bool:
        return deadline is not None and self._clock() >= deadline

    async def _bounded(self, op: str, factory: Callable[[], Awaitable[T]], deadline: Optional[float]) -> T:
        if deadline is None:
            return await factory()
        remaining = deadline - self._clock()
        if remaining <= 0:
            raise StorageDeadlineError(f"deadline passed before {op}")
        try:
            return await asyncio.wait_for(factory(), timeout=remaining)
        except asyncio.TimeoutError as exc:
            raise StorageDeadlineError(f"{op} did not finish before the deadline") from exc

    async def read_snapshot(self, *, deadline: Optional[float] = None) -> Snapshot:
        """Bounded read for query paths; no merge, no retry."""
        return await self._bounded("read", self.store.read, deadline)

    async def commit(
        self,
        batch: Union[VoteBatch, Sequence[Vote]],
        *,
        deadline: Optional[float] = None,
    ) -> CommitResult:
        """Apply ``batch`` to the stored table; always returns exactly one terminal outcome.

        ``deadline`` is an absolute ``clock()`` value. It bounds each read and
        each backoff wait. The commit itself is never abandoned half way,
        since a cancelled write may still land in the backend.
        """
        votes = list(batch.votes) if isinstance(batch, VoteBatch) else list(batch)
        if not votes:
            raise ValidationError("votes must not be empty")

        commit_id = uuid.uuid4().hex[:12]
        attempt = 0
        last_conflict: Optional[ConflictError] = None
        while True:
            attempt += 1
            if last_conflict is not None and self._deadline_passed(deadline):
                logger.warning("commit deadline reached before retry commit_id=%s attempt=%s", commit_id, attempt)
                return self._exhausted(commit_id, attempt - 1, last_conflict)
            try:
                snapshot: Snapshot = await self._bounded("read", self.store.read, deadline)
            except Exception as exc:
                if last_conflict is not None and (isinstance(exc, StorageDeadlineError) or self._deadline_passed(deadline)):
                    # the retry budget ran out in time rather than attempts
                    logger.warning("commit deadline reached during retry read commit_id=%s attempt=%s", commit_id, attempt)
                    return self._exhausted(commit_id, attempt - 1, last_conflict)
                return self._fatal(commit_id, attempt, "read", exc)

            merged = merge(snapshot.table, votes)

            try:
                version = await self.store.conditional_write(merged, snapshot.version)
            except ConflictError as exc:
                last_conflict = exc
                emit_counter("commit_conflict")
                logger.info(
                    "commit conflict commit_id=%s attempt=%s/%s expected_version=%s",
                    commit_id,
                    attempt,
                    self.max_attempts,
                    snapshot.version,
                )
                if attempt >= self.max_attempts:
                    return self._exhausted(commit_id, attempt, exc)
                delay = self.backoff_delay(attempt)
                if deadline is not None and self._clock() + delay > deadline:
                    logger.warning("commit deadline reached during backoff commit_id=%s attempt=%s", commit_id, attempt)
                    return self._exhausted(commit_id, attempt, exc)
                if delay > 0:
                    await self._sleep(delay)
                continue
            except Exception as exc:
                return self._fatal(commit_id, attempt, "write", exc)

            emit_counter("commit_outcome", labels={"outcome": CommitOutcome.SUCCEEDED.value})
            log_event(
                "commit_succeeded",
                commit_id=commit_id,
                attempts=attempt,
                votes=len(votes),
                items=len(merged),
            )
            return CommitResult(CommitOutcome.SUCCEEDED, attempts=attempt, table=merged, version=version)

    def _exhausted(self, commit_id: str, attempts: int, exc: BaseException) -> CommitResult:
        emit_counter("commit_outcome", labels={"outcome": CommitOutcome.EXHAUSTED_RETRIES.value})
        log_event("commit_exhausted", commit_id=commit_id, attempts=attempts)
        return CommitResult(CommitOutcome.EXHAUSTED_RETRIES, attempts=attempts, error=exc)

    def _fatal(self, commit_id: str, attempts: int, stage: str, exc: BaseException) -> CommitResult:
        emit_counter("commit_outcome", labels={"outcome": CommitOutcome.FATAL_ERROR.value})
        if isinstance(exc, TransientStorageError):
            logger.error("commit storage failure commit_id=%s stage=%s attempt=%s error=%s", commit_id, stage, attempts, exc)
        else:
            logger.exception("commit unexpected failure commit_id=%s stage=%s attempt=%s", commit_id, stage, attempts)
        log_event("commit_failed", commit_id=commit_id, stage=stage, attempts=attempts)
        return CommitResult(CommitOutcome.FATAL_ERROR, attempts=attempts, error=exc)

    async def commit_or_raise(
        self,
        batch: Union[VoteBatch, Sequence[Vote]],
        *,
        deadline: Optional[float] = None,
    ) -> ScoreTable:
        result = await self.commit(batch, deadline=deadline)
        if result.outcome is CommitOutcome.SUCCEEDED and result.table is not None:
            return result.table
        if result.outcome is CommitOutcome.EXHAUSTED_RETRIES:
            raise ContentionExhaustedError(result.attempts) from result.error
        raise FatalCommitError(str(result.error or "commit failed")) from result.error

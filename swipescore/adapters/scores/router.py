"""HTTP routes for reading and submitting vote tallies."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from swipescore.config.settings import settings
from swipescore.core.coordinator import RetryCoordinator
from swipescore.core.errors import ContentionExhaustedError, FatalCommitError, StorageError, ValidationError
from swipescore.core.models import ScoreTable, parse_vote_batch, table_to_document
from swipescore.storage import create_store
from swipescore.storage.versioned import VersionedStore
from swipescore.util.logger import logger

router = APIRouter()


def get_store(request: Request) -> VersionedStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        store = create_store()
        request.app.state.store = store
    return store


def get_coordinator(store: VersionedStore = Depends(get_store)) -> RetryCoordinator:
    return RetryCoordinator.from_settings(store)


def _error_response(status_code: int, reason: str, detail: str) -> JSONResponse:
    detail_str = (detail or "").strip() or reason
    return JSONResponse(status_code=status_code, content={"error": reason, "detail": detail_str})


def _left_percent(left: int, total: int) -> int:
    # round half up, so 1 of 8 -> 13 and 1 of 3 -> 33
    if total <= 0:
        return 50
    return (200 * left + total) // (2 * total)


def summarize(table: ScoreTable) -> dict[str, dict[str, int]]:
    summary: dict[str, dict[str, int]] = {}
    for item, score in sorted(table.items()):
        left_percent = _left_percent(score.left, score.total)
        summary[item] = {
            "left": score.left,
            "right": score.right,
            "total": score.total,
            "left_percent": left_percent,
            "right_percent": 100 - left_percent,
        }
    return summary


async def _read_table(coordinator: RetryCoordinator, route: str) -> ScoreTable | None:
    deadline = coordinator.deadline_after(settings.storage_timeout_seconds)
    try:
        snapshot = await coordinator.read_snapshot(deadline=deadline)
    except StorageError as exc:
        logger.error("score read failed route=%s error=%s", route, exc)
        return None
    return snapshot.table


@router.get("/scores")
async def get_scores(coordinator: RetryCoordinator = Depends(get_coordinator)) -> JSONResponse:
    table = await _read_table(coordinator, "/scores")
    if table is None:
        return _error_response(500, "storage_error", "score table is unavailable")
    return JSONResponse(content=table_to_document(table))


@router.get("/scores/summary")
async def get_score_summary(coordinator: RetryCoordinator = Depends(get_coordinator)) -> JSONResponse:
    table = await _read_table(coordinator, "/scores/summary")
    if table is None:
        return _error_response(500, "storage_error", "score table is unavailable")
    return JSONResponse(content=summarize(table))


@router.post("/scores")
async def post_scores(request: Request, coordinator: RetryCoordinator = Depends(get_coordinator)) -> JSONResponse:
    try:
        body = await request.json()
    except ValueError:
        return _error_response(400, "invalid_json", "request body must be a JSON object")
    try:
        batch = parse_vote_batch(body, max_votes=settings.max_votes_per_batch)
    except ValidationError as exc:
        logger.info("vote batch rejected detail=%s", exc)
        return _error_response(400, "invalid_votes", str(exc))

    deadline = coordinator.deadline_after(settings.commit_deadline_seconds)
    try:
        table = await coordinator.commit_or_raise(batch, deadline=deadline)
    except ContentionExhaustedError as exc:
        return _error_response(
            409,
            "contention_exhausted",
            f"score table is busy, vote batch not applied after {exc.attempts} attempt(s)",
        )
    except FatalCommitError:
        return _error_response(500, "storage_error", "vote batch not applied")
    return JSONResponse(content=table_to_document(table))

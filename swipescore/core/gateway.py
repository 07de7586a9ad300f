"""FastAPI app entry."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from swipescore.adapters.scores.router import router as scores_router
from swipescore.config.settings import settings
from swipescore.storage import create_store
from swipescore.util.logger import logger

app = FastAPI(title=settings.app_name)
app.include_router(scores_router)

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


def _blocked_response(status_code: int, reason: str, detail: str | None = None) -> JSONResponse:
    detail_text = (detail or reason).strip() or reason
    return JSONResponse(status_code=status_code, content={"error": reason, "detail": detail_text})


@app.middleware("http")
async def request_guard_middleware(request: Request, call_next):
    limit = settings.max_request_body_bytes
    if limit > 0 and request.method.upper() in _BODY_METHODS:
        content_length_header = request.headers.get("content-length", "").strip()
        if content_length_header:
            try:
                content_length = int(content_length_header)
            except ValueError:
                logger.warning("reject invalid content-length path=%s", request.url.path)
                return _blocked_response(400, "invalid_content_length")
            if content_length > limit:
                logger.warning(
                    "reject oversize request content_length=%s max=%s path=%s",
                    content_length,
                    limit,
                    request.url.path,
                )
                return _blocked_response(413, "request_body_too_large")
        else:
            body = await request.body()
            if len(body) > limit:
                logger.warning("reject oversize request actual_size=%s max=%s path=%s", len(body), limit, request.url.path)
                return _blocked_response(413, "request_body_too_large")

    try:
        return await call_next(request)
    except Exception as exc:  # pragma: no cover - fail-safe
        logger.exception("unhandled exception path=%s", request.url.path)
        return _blocked_response(500, "internal_error", f"internal error: {exc}")


@app.get("/health")
def health() -> dict:
    logger.debug("health check")
    return {"status": "ok"}


@app.on_event("startup")
async def startup_store() -> None:
    if getattr(app.state, "store", None) is None:
        app.state.store = create_store()
    logger.info("score store ready backend=%s record=%s", settings.storage_backend, settings.score_record_name)


@app.on_event("shutdown")
async def shutdown_store() -> None:
    store = getattr(app.state, "store", None)
    if store is None:
        return
    app.state.store = None
    try:
        await store.close()
    except Exception as exc:  # pragma: no cover
        logger.warning("score store close failed: %s", exc)


def main() -> None:
    import uvicorn

    uvicorn.run("swipescore.core.gateway:app", host=settings.host, port=settings.port, log_level=settings.log_level)

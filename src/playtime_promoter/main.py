# src/playtime_promoter/main.py
"""Main entry point for the promotion service."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from playtime_promoter.api.v1 import playtime_router, system_router
from playtime_promoter.core.settings import settings
from playtime_promoter.services.keepalive import ActivityTracker, KeepAliveWorker
from playtime_promoter.services.runtime import PromotionRuntime, build_runtime

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Playtime Promoter",
    description="Promotes Roblox group members once they reach playtime milestones",
    version=settings.app_version,
)

# Include API routers; the bare /log-playtime path is what game servers post to
app.include_router(playtime_router)
app.include_router(playtime_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        fields = [str(part) for part in first.get("loc", ()) if part != "body"]
        field = fields[0] if fields else "request"
        message = f"Invalid {field}: {first.get('msg', 'invalid value')}"
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Promotion error on %s", request.url.path)
    return JSONResponse(status_code=500, content={"error": "Server error"})


@app.on_event("startup")
async def on_startup() -> None:
    configure_logging()
    if getattr(app.state, "engine", None) is None:
        runtime = build_runtime(settings)
        app.state.runtime = runtime
        app.state.engine = runtime.engine
    else:
        app.state.runtime = None

    app.state.activity = ActivityTracker()
    if settings.keepalive_enabled:
        worker = KeepAliveWorker(
            settings.effective_keepalive_url,
            app.state.activity,
            idle_seconds=settings.keepalive_idle_seconds,
            interval_seconds=settings.keepalive_interval_seconds,
        )
        await worker.start()
        app.state.keepalive_worker = worker
    else:
        app.state.keepalive_worker = None

    logger.info("Server running on port %d", settings.port)
    logger.info("Group ID: %s", settings.group_id)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    worker: KeepAliveWorker | None = getattr(app.state, "keepalive_worker", None)
    if worker:
        await worker.stop()
    runtime: PromotionRuntime | None = getattr(app.state, "runtime", None)
    if runtime:
        await runtime.close()
        app.state.engine = None


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the service."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "status": "Bot is online",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("playtime_promoter.main:app", host="0.0.0.0", port=settings.port, reload=settings.debug)

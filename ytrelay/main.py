"""FastAPI app entry point."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ytrelay.core.config import settings
from ytrelay.db.session import create_tables, engine
from ytrelay.routers import subscriptions, webhooks

logger = logging.getLogger(__name__)


async def _unhandled_exception(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", extra={"path": request.url.path, "method": request.method})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": "An unexpected error occurred", "error": str(exc)},
    )


def create_app() -> FastAPI:
    """Build FastAPI application."""

    logging.basicConfig(level=settings.log_level)

    app = FastAPI(title="YouTube Webhook Relay", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(Exception, _unhandled_exception)
    app.include_router(subscriptions.router)
    app.include_router(webhooks.router)

    @app.on_event("startup")
    async def _startup() -> None:
        await create_tables(engine)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await engine.dispose()

    @app.get("/healthz", tags=["health"])
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()

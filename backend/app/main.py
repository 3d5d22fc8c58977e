# backend/app/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app import settings
from app.db import healthcheck
from app.routers.missions import router as missions_router
from app.routers.notifications import router as notifications_router
from app.services.pollers import build_pollers
from app.workflow.errors import WorkflowError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Background pollers live exactly as long as the app
    pollers = build_pollers() if settings.BACKGROUND_POLLERS_ENABLED else []
    app.state.pollers = pollers
    for p in pollers:
        p.start()
    try:
        yield
    finally:
        for p in pollers:
            p.stop()


def build_app() -> FastAPI:
    app = FastAPI(title="Crew Mission Orders API", lifespan=lifespan)

    # CORS (adjust origins as you need)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_ORIGIN],
        allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1|0\.0\.0\.0)(:\d+)?$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )

    @app.exception_handler(WorkflowError)
    async def workflow_error_handler(request: Request, exc: WorkflowError):
        if exc.status_code >= 500:
            logger.error(f"[api] {request.method} {request.url.path}: {exc.detail}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    # Health
    @app.get("/health")
    def health():
        try:
            return {"ok": True, "database": healthcheck()["status"]}
        except SQLAlchemyError as e:
            logger.error(f"[health] database unreachable: {e}")
            return JSONResponse(status_code=503, content={"ok": False, "database": "unreachable"})

    app.include_router(missions_router)
    app.include_router(notifications_router)

    return app


app = build_app()

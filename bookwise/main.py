# bookwise/main.py
from __future__ import annotations

# Load .env early so settings and os.getenv agree
from dotenv import load_dotenv
load_dotenv()

import time
from contextlib import asynccontextmanager
from typing import Optional

import sqlalchemy as sa
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bookwise.core.config import settings
from bookwise.core.errors import BookingError, ErrorKind, get_error_summary, log_error
from bookwise.core.logging import LoggingMiddleware, get_logger, setup_logging
from bookwise.api.deps import Container, build_container, get_container
from bookwise.api.routes.availability import router as availability_router
from bookwise.api.routes.bookings import router as bookings_router
from bookwise.api.routes.teams import router as teams_router

setup_logging(
    debug=settings.is_development,
    max_log_length=settings.MAX_LOG_LENGTH,
    level=settings.LOG_LEVEL,
)
logger = get_logger(__name__)

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.SLOT_UNAVAILABLE: 409,
    ErrorKind.BUFFER_CONFLICT: 409,
    ErrorKind.ALREADY_CANCELLED: 409,
    ErrorKind.EXTERNAL_SERVICE: 502,
}


def create_app(container: Optional[Container] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "container", None) is None:
            from bookwise.db.session import AsyncSessionLocal
            app.state.container = build_container(AsyncSessionLocal)
        logger.info("app_started", env=settings.APP_ENV)
        yield
        # let in-flight meeting/reminder/notification handlers finish
        await app.state.container.events.drain()
        logger.info("app_stopped")

    app = FastAPI(title="Bookwise", description="Availability and booking engine", lifespan=lifespan)
    app.state.container = container

    app.middleware("http")(LoggingMiddleware(
        log_requests=settings.LOG_REQUESTS,
        log_responses=settings.LOG_RESPONSES,
    ))
    if settings.allowed_origins_list:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins_list,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError):
        log_error(exc, {"endpoint": request.url.path, "method": request.method})
        return JSONResponse(status_code=STATUS_BY_KIND.get(exc.kind, 400), content=exc.to_dict())

    # -------- Health / readiness (public) --------
    @app.get("/healthz", include_in_schema=False)
    async def healthz():
        return {"ok": True}

    @app.get("/readyz", include_in_schema=False)
    async def readyz(container: Container = Depends(get_container)):
        async with container.session_factory() as db:
            await db.execute(sa.text("SELECT 1"))
        return {"db": "ok"}

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        """Internal metrics endpoint for monitoring."""
        return {"status": "healthy", "errors": get_error_summary(), "timestamp": time.time()}

    # Hit by a scheduler (cron / EventBridge) to send reminders that are due
    @app.post("/internal/reminders/process", include_in_schema=False)
    async def process_reminders(container: Container = Depends(get_container)):
        return await container.reminders.process_due_reminders()

    app.include_router(availability_router)
    app.include_router(bookings_router)
    app.include_router(teams_router)
    return app


app = create_app()

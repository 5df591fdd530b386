from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from sla_engine.core.config import settings
from sla_engine.core.exceptions import SLAEngineException
from sla_engine.core.logging import setup_logging
from sla_engine.routers import sla
from sla_engine.services.sla.scheduler import EscalationScheduler


def _default_scheduler() -> EscalationScheduler:
    from sla_engine.db.session import SessionLocal

    return EscalationScheduler.from_settings(settings, SessionLocal)


def create_app(scheduler: EscalationScheduler | None = None, *, start_scheduler: bool | None = None) -> FastAPI:
    setup_logging(settings.LOG_LEVEL)
    should_start = settings.SLA_SCHEDULER_ENABLED if start_scheduler is None else start_scheduler

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.sla_scheduler is None:
            app.state.sla_scheduler = _default_scheduler()
        if should_start:
            await app.state.sla_scheduler.start()
        try:
            yield
        finally:
            await app.state.sla_scheduler.stop()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.state.sla_scheduler = scheduler
    app.include_router(sla.router, prefix="/api/sla", tags=["sla"])

    @app.exception_handler(SLAEngineException)
    async def handle_engine_exception(_: Request, exc: SLAEngineException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)

    return app


app = create_app()

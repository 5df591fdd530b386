"""Common FastAPI dependencies."""

from __future__ import annotations

from fastapi import Request

from sla_engine.core.exceptions import SchedulerUnavailableError
from sla_engine.services.sla.scheduler import EscalationScheduler


def get_scheduler(request: Request) -> EscalationScheduler:
    scheduler = getattr(request.app.state, "sla_scheduler", None)
    if scheduler is None:
        raise SchedulerUnavailableError("sla_scheduler_not_configured")
    return scheduler

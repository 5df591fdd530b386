"""SLA sweep trigger and compliance preview endpoints."""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Body, Depends, Path

from sla_engine.core.deps import get_scheduler
from sla_engine.core.exceptions import ConflictError
from sla_engine.core.rate_limit import rate_limit
from sla_engine.schemas.sla import (
    ComplianceResultOut,
    SchedulerStatusOut,
    SweepReportOut,
    SweepRunRequest,
    TicketComplianceOut,
)
from sla_engine.services.sla.scheduler import EscalationScheduler, SweepReport

router = APIRouter()
logger = logging.getLogger(__name__)


def _report_out(report: SweepReport | None) -> SweepReportOut | None:
    if report is None:
        return None
    return SweepReportOut.model_validate(report.to_dict())


@router.post("/sweep", response_model=SweepReportOut, dependencies=[Depends(rate_limit("trigger"))])
def run_sla_sweep(
    payload: SweepRunRequest | None = Body(default=None),
    scheduler: EscalationScheduler = Depends(get_scheduler),
) -> SweepReportOut:
    dry_run = bool(payload and payload.dry_run)
    report = scheduler.trigger_once(dry_run=dry_run)
    if report.skipped and report.skip_reason == "sweep_in_progress":
        raise ConflictError("sla_sweep_in_progress")
    return _report_out(report)


@router.get("/scheduler", response_model=SchedulerStatusOut)
def get_scheduler_status(scheduler: EscalationScheduler = Depends(get_scheduler)) -> SchedulerStatusOut:
    return SchedulerStatusOut(
        running=scheduler.running,
        sweep_in_progress=scheduler.sweep_in_progress,
        interval_seconds=scheduler.interval_seconds,
        company_filter=scheduler.company_filter.describe(),
        last_report=_report_out(scheduler.last_report),
    )


@router.get("/tickets/{ticket_id}", response_model=TicketComplianceOut)
def get_ticket_compliance(
    ticket_id: int = Path(..., ge=1),
    scheduler: EscalationScheduler = Depends(get_scheduler),
) -> TicketComplianceOut:
    result = scheduler.evaluate_ticket(ticket_id)
    if result is None:
        logger.debug("No SLA definition applies to ticket %s", ticket_id)
        return TicketComplianceOut(ticket_id=ticket_id, result=None)
    return TicketComplianceOut(ticket_id=ticket_id, result=ComplianceResultOut.model_validate(asdict(result)))

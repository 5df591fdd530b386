"""Pydantic schemas for the SLA sweep and preview endpoints."""

from __future__ import annotations

import datetime as dt
from typing import Any

from pydantic import BaseModel, Field

from sla_engine.models.enums import SLAAction, SLAPhase, SLASource


class SweepRunRequest(BaseModel):
    dry_run: bool = False


class ProposedAction(BaseModel):
    ticket_id: Any
    action: SLAAction
    phase: SLAPhase
    elapsed_hours: float
    remaining_hours: float


class SweepReportOut(BaseModel):
    started_at: dt.datetime
    finished_at: dt.datetime | None = None
    dry_run: bool
    skipped: bool
    skip_reason: str | None = None
    company_filter: str
    candidates: int
    evaluated: int
    no_sla: int
    inconsistent: int
    failed: int
    due_soon: list[Any] = Field(default_factory=list)
    breached: list[Any] = Field(default_factory=list)
    breach_conflicts: list[Any] = Field(default_factory=list)
    notifications_sent: int
    notifications_dropped: int
    proposed_actions: list[ProposedAction] = Field(default_factory=list)

    class Config:
        from_attributes = True


class SchedulerStatusOut(BaseModel):
    running: bool
    sweep_in_progress: bool
    interval_seconds: int
    company_filter: str
    last_report: SweepReportOut | None = None


class ComplianceResultOut(BaseModel):
    ticket_id: Any
    phase: SLAPhase
    elapsed_hours: float
    target_hours: float
    remaining_hours: float
    threshold_hours: float
    percent_consumed: float
    action: SLAAction
    paused: bool
    due_at: dt.datetime | None = None
    sla_source: SLASource | None = None

    class Config:
        from_attributes = True


class TicketComplianceOut(BaseModel):
    ticket_id: Any
    result: ComplianceResultOut | None = None

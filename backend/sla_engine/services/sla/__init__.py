"""SLA compliance engine public API."""

from __future__ import annotations

from sla_engine.services.sla.calendar import BusinessHoursConfig, add_business_time, elapsed_business_time
from sla_engine.services.sla.evaluator import ComplianceResult, TicketSnapshot, evaluate
from sla_engine.services.sla.periods import Period, StatusChangeEvent, build_status_periods
from sla_engine.services.sla.resolver import SLAResolver, SLATarget
from sla_engine.services.sla.scheduler import EscalationScheduler, SweepReport

__all__ = [
    "BusinessHoursConfig",
    "ComplianceResult",
    "EscalationScheduler",
    "Period",
    "SLAResolver",
    "SLATarget",
    "StatusChangeEvent",
    "SweepReport",
    "TicketSnapshot",
    "add_business_time",
    "build_status_periods",
    "elapsed_business_time",
    "evaluate",
]

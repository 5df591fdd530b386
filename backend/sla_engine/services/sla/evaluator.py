"""Pure SLA compliance decision for a single ticket."""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Any, Sequence

from sla_engine.core.exceptions import InvalidConfigurationError, InvariantViolationError
from sla_engine.models.enums import SLAAction, SLAPhase, SLASource, TicketPriority, TicketStatus
from sla_engine.services.sla.calendar import (
    BusinessHoursConfig,
    add_business_time,
    as_utc,
    elapsed_business_time,
    to_hours,
)
from sla_engine.services.sla.periods import Period
from sla_engine.services.sla.resolver import SLATarget
from sla_engine.services.sla.statuses import INITIAL_STATUS, ClockState, clock_state, coerce_status

logger = logging.getLogger(__name__)

# priority -> (fraction of target, floor in hours)
PRIORITY_THRESHOLDS: dict[TicketPriority, tuple[float, float]] = {
    TicketPriority.critical: (0.25, 1.0),
    TicketPriority.high: (0.20, 2.0),
    TicketPriority.medium: (0.15, 3.0),
    TicketPriority.low: (0.10, 4.0),
}


@dataclass(frozen=True)
class TicketSnapshot:
    id: Any
    company_id: int
    department_id: int | None
    category_id: int | None
    priority: TicketPriority
    status: TicketStatus
    created_at: dt.datetime
    first_response_at: dt.datetime | None = None
    resolved_at: dt.datetime | None = None
    sla_breached: bool = False
    initial_status: TicketStatus = INITIAL_STATUS


@dataclass(frozen=True)
class ComplianceResult:
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


def warning_threshold(priority: TicketPriority | str, target_hours: float) -> float:
    try:
        fraction, floor = PRIORITY_THRESHOLDS[TicketPriority(priority)]
    except ValueError:
        fraction, floor = PRIORITY_THRESHOLDS[TicketPriority.low]
    return max(floor, target_hours * fraction)


def select_phase(ticket: TicketSnapshot, periods: Sequence[Period] = ()) -> SLAPhase:
    """Response phase only until the first response or the first move away from "new".

    The switch is one-way: a ticket that left "new" at any point in ``periods``
    stays in the resolution phase even if it was later set back to "new".
    """
    if ticket.first_response_at is not None or coerce_status(ticket.status) is not INITIAL_STATUS:
        return SLAPhase.awaiting_resolution
    if any(period.status is not INITIAL_STATUS for period in periods):
        return SLAPhase.awaiting_resolution
    return SLAPhase.awaiting_first_response


def active_business_time(periods: Sequence[Period], calendar: BusinessHoursConfig) -> dt.timedelta:
    total = dt.timedelta(0)
    for period in periods:
        if period.paused:
            continue
        total += elapsed_business_time(period.start, period.end, calendar)
    return total


def evaluate(
    ticket: TicketSnapshot,
    periods: Sequence[Period],
    target: SLATarget,
    now: dt.datetime,
    *,
    calendar: BusinessHoursConfig,
) -> ComplianceResult:
    phase = select_phase(ticket, periods)
    target_hours = target.hours_for(phase)
    if target_hours <= 0:
        raise InvariantViolationError(
            "non_positive_sla_target",
            details={"ticket_id": ticket.id, "phase": phase.value, "target_hours": target_hours},
        )

    elapsed = active_business_time(periods, calendar)
    if elapsed < dt.timedelta(0):
        raise InvariantViolationError(
            "negative_elapsed_time",
            details={"ticket_id": ticket.id, "elapsed_seconds": elapsed.total_seconds()},
        )

    target_delta = dt.timedelta(hours=target_hours)
    remaining = max(dt.timedelta(0), target_delta - elapsed)
    elapsed_hours = to_hours(elapsed)
    remaining_hours = to_hours(remaining)
    threshold = warning_threshold(ticket.priority, target_hours)
    state = clock_state(ticket.status)

    # Paused periods add nothing, so a ticket whose clock is stopped can only be
    # at or past target here if it got there before the clock stopped.
    if elapsed >= target_delta:
        action = SLAAction.none if ticket.sla_breached else SLAAction.mark_breached
    elif state is ClockState.active and 0 < remaining_hours <= threshold:
        action = SLAAction.notify_due_soon
    else:
        action = SLAAction.none

    due_at = None
    if state is ClockState.active and remaining > dt.timedelta(0):
        try:
            due_at = add_business_time(as_utc(now), remaining_hours, calendar)
        except InvalidConfigurationError as exc:
            logger.warning("Cannot compute due date for ticket %s: %s", ticket.id, exc.message)

    return ComplianceResult(
        ticket_id=ticket.id,
        phase=phase,
        elapsed_hours=round(elapsed_hours, 4),
        target_hours=target_hours,
        remaining_hours=round(remaining_hours, 4),
        threshold_hours=threshold,
        percent_consumed=round(min(100.0, elapsed_hours / target_hours * 100), 1),
        action=action,
        paused=state is ClockState.paused,
        due_at=due_at,
        sla_source=target.source,
    )

"""Closed mapping from ticket status to SLA clock behaviour."""

from __future__ import annotations

import enum

from sla_engine.core.exceptions import InvalidConfigurationError
from sla_engine.models.enums import TicketStatus


class ClockState(str, enum.Enum):
    active = "active"
    paused = "paused"
    stopped = "stopped"


INITIAL_STATUS = TicketStatus.new

SLA_CLOCK: dict[TicketStatus, ClockState] = {
    TicketStatus.new: ClockState.active,
    TicketStatus.ongoing: ClockState.active,
    TicketStatus.escalated: ClockState.active,
    TicketStatus.in_analysis: ClockState.active,
    TicketStatus.reopened: ClockState.active,
    TicketStatus.suspended: ClockState.paused,
    TicketStatus.waiting_customer: ClockState.paused,
    TicketStatus.pending_deployment: ClockState.paused,
    TicketStatus.resolved: ClockState.stopped,
    TicketStatus.closed: ClockState.stopped,
}

_unmapped = set(TicketStatus) - set(SLA_CLOCK)
if _unmapped:
    raise RuntimeError(f"Ticket statuses without an SLA clock state: {sorted(s.value for s in _unmapped)}")

PAUSED_STATUSES = frozenset(s for s, state in SLA_CLOCK.items() if state is ClockState.paused)
TERMINAL_STATUSES = frozenset(s for s, state in SLA_CLOCK.items() if state is ClockState.stopped)


def coerce_status(value: TicketStatus | str) -> TicketStatus:
    if isinstance(value, TicketStatus):
        return value
    token = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return TicketStatus(token)
    except ValueError:
        raise InvalidConfigurationError(f"Unknown ticket status: {value!r}", setting="ticket_status") from None


def clock_state(status: TicketStatus | str) -> ClockState:
    return SLA_CLOCK[coerce_status(status)]


def is_paused(status: TicketStatus | str) -> bool:
    return clock_state(status) is ClockState.paused


def is_terminal(status: TicketStatus | str) -> bool:
    return clock_state(status) is ClockState.stopped

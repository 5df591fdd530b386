"""Turn a ticket's status-change log into contiguous active/paused periods."""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Any, Sequence

from sla_engine.core.exceptions import DataInconsistencyError
from sla_engine.models.enums import TicketStatus
from sla_engine.services.sla.calendar import as_utc
from sla_engine.services.sla.statuses import coerce_status, is_paused, is_terminal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusChangeEvent:
    ticket_id: Any
    new_status: TicketStatus
    changed_at: dt.datetime
    previous_status: TicketStatus | None = None


@dataclass(frozen=True)
class Period:
    start: dt.datetime
    end: dt.datetime
    status: TicketStatus

    @property
    def paused(self) -> bool:
        return is_paused(self.status)

    @property
    def duration(self) -> dt.timedelta:
        return self.end - self.start


def order_events(events: Sequence[StatusChangeEvent]) -> list[StatusChangeEvent]:
    """Sort by timestamp; equal timestamps keep their original log order."""
    indexed = sorted(enumerate(events), key=lambda item: (as_utc(item[1].changed_at), item[0]))
    return [event for _, event in indexed]


def initial_status_of(events: Sequence[StatusChangeEvent], default: TicketStatus) -> TicketStatus:
    """The status a ticket was created with: the first change's ``previous_status`` when recorded."""
    if not events:
        return default
    first = order_events(events)[0]
    if first.previous_status is None:
        return default
    return coerce_status(first.previous_status)


def timeline_end(
    *,
    status: TicketStatus | str,
    resolved_at: dt.datetime | None,
    events: Sequence[StatusChangeEvent],
    now: dt.datetime,
) -> dt.datetime:
    """Terminal tickets stop at their resolution instant; everything else runs to ``now``."""
    if not is_terminal(status):
        return as_utc(now)
    if resolved_at is not None:
        return as_utc(resolved_at)
    if events:
        return as_utc(order_events(events)[-1].changed_at)
    return as_utc(now)


def build_status_periods(
    created_at: dt.datetime,
    initial_status: TicketStatus | str,
    events: Sequence[StatusChangeEvent],
    end: dt.datetime,
) -> list[Period]:
    """Build the gap-free period list covering [created_at, end].

    Zero-length intermediate periods (two changes at the same instant) are
    dropped; the result always holds at least one period. Events after ``end``
    are ignored, events before ``created_at`` make the history unusable.
    """
    created_at = as_utc(created_at)
    end = as_utc(end)
    ticket_id = events[0].ticket_id if events else None
    if end < created_at:
        raise DataInconsistencyError(
            "timeline_ends_before_creation",
            ticket_id=ticket_id,
            details={"created_at": created_at.isoformat(), "end": end.isoformat()},
        )

    periods: list[Period] = []
    running_start = created_at
    running_status = coerce_status(initial_status)

    for event in order_events(events):
        changed_at = as_utc(event.changed_at)
        if changed_at < created_at:
            raise DataInconsistencyError(
                "status_change_before_creation",
                ticket_id=event.ticket_id,
                details={"created_at": created_at.isoformat(), "changed_at": changed_at.isoformat()},
            )
        if changed_at > end:
            logger.debug("Ignoring status change of ticket %s after timeline end %s", event.ticket_id, end)
            break
        if running_start < changed_at:
            periods.append(Period(running_start, changed_at, running_status))
        running_start = changed_at
        running_status = coerce_status(event.new_status)

    if running_start < end or not periods:
        periods.append(Period(running_start, end, running_status))
    return periods


def validate_periods(periods: Sequence[Period], start: dt.datetime, end: dt.datetime) -> None:
    """Raise DataInconsistencyError unless the periods exactly tile [start, end]."""
    if not periods:
        raise DataInconsistencyError("empty_timeline")
    cursor = as_utc(start)
    for period in periods:
        if period.start != cursor:
            raise DataInconsistencyError(
                "period_gap_or_overlap",
                details={"expected_start": cursor.isoformat(), "start": period.start.isoformat()},
            )
        if period.end < period.start:
            raise DataInconsistencyError("period_ends_before_start", details={"start": period.start.isoformat()})
        cursor = period.end
    if cursor != as_utc(end):
        raise DataInconsistencyError(
            "timeline_not_covered",
            details={"covered_until": cursor.isoformat(), "end": as_utc(end).isoformat()},
        )

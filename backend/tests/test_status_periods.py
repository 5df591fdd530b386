from __future__ import annotations

import datetime as dt

import pytest

from sla_engine.core.exceptions import DataInconsistencyError
from sla_engine.models.enums import TicketStatus
from sla_engine.services.sla.periods import (
    Period,
    StatusChangeEvent,
    build_status_periods,
    initial_status_of,
    timeline_end,
    validate_periods,
)

UTC = dt.timezone.utc
CREATED = dt.datetime(2026, 3, 2, 8, tzinfo=UTC)


def _event(hours: float, status: TicketStatus, previous: TicketStatus | None = None) -> StatusChangeEvent:
    return StatusChangeEvent(
        ticket_id=42,
        new_status=status,
        changed_at=CREATED + dt.timedelta(hours=hours),
        previous_status=previous,
    )


def test_no_events_yields_single_period() -> None:
    end = CREATED + dt.timedelta(hours=5)
    periods = build_status_periods(CREATED, TicketStatus.new, [], end)
    assert periods == [Period(CREATED, end, TicketStatus.new)]


def test_zero_length_timeline_still_has_one_period() -> None:
    periods = build_status_periods(CREATED, TicketStatus.new, [], CREATED)
    assert len(periods) == 1
    assert periods[0].duration == dt.timedelta(0)


def test_periods_cover_timeline_and_tag_pauses() -> None:
    events = [
        _event(2, TicketStatus.waiting_customer, TicketStatus.new),
        _event(25, TicketStatus.ongoing),
        _event(30, TicketStatus.suspended),
    ]
    end = CREATED + dt.timedelta(hours=40)
    periods = build_status_periods(CREATED, TicketStatus.new, events, end)

    validate_periods(periods, CREATED, end)
    assert [p.status for p in periods] == [
        TicketStatus.new,
        TicketStatus.waiting_customer,
        TicketStatus.ongoing,
        TicketStatus.suspended,
    ]
    assert [p.paused for p in periods] == [False, True, False, True]


def test_unsorted_input_is_ordered_by_time() -> None:
    events = [_event(6, TicketStatus.ongoing), _event(3, TicketStatus.waiting_customer)]
    periods = build_status_periods(CREATED, TicketStatus.new, events, CREATED + dt.timedelta(hours=8))
    assert [p.status for p in periods] == [TicketStatus.new, TicketStatus.waiting_customer, TicketStatus.ongoing]


def test_same_instant_changes_keep_log_order_and_drop_empty_period() -> None:
    events = [_event(4, TicketStatus.suspended), _event(4, TicketStatus.escalated)]
    end = CREATED + dt.timedelta(hours=6)
    periods = build_status_periods(CREATED, TicketStatus.new, events, end)

    validate_periods(periods, CREATED, end)
    assert [p.status for p in periods] == [TicketStatus.new, TicketStatus.escalated]


def test_change_at_creation_instant_replaces_initial_status() -> None:
    events = [_event(0, TicketStatus.in_analysis)]
    periods = build_status_periods(CREATED, TicketStatus.new, events, CREATED + dt.timedelta(hours=1))
    assert [p.status for p in periods] == [TicketStatus.in_analysis]


def test_events_after_end_are_ignored() -> None:
    events = [_event(1, TicketStatus.ongoing), _event(10, TicketStatus.suspended)]
    end = CREATED + dt.timedelta(hours=5)
    periods = build_status_periods(CREATED, TicketStatus.new, events, end)
    assert periods[-1] == Period(CREATED + dt.timedelta(hours=1), end, TicketStatus.ongoing)


def test_event_before_creation_is_inconsistent() -> None:
    with pytest.raises(DataInconsistencyError) as exc:
        build_status_periods(CREATED, TicketStatus.new, [_event(-1, TicketStatus.ongoing)], CREATED + dt.timedelta(hours=1))
    assert exc.value.details["ticket_id"] == 42


def test_end_before_creation_is_inconsistent() -> None:
    with pytest.raises(DataInconsistencyError):
        build_status_periods(CREATED, TicketStatus.new, [], CREATED - dt.timedelta(minutes=1))


def test_validate_periods_detects_gap() -> None:
    periods = [
        Period(CREATED, CREATED + dt.timedelta(hours=1), TicketStatus.new),
        Period(CREATED + dt.timedelta(hours=2), CREATED + dt.timedelta(hours=3), TicketStatus.ongoing),
    ]
    with pytest.raises(DataInconsistencyError):
        validate_periods(periods, CREATED, CREATED + dt.timedelta(hours=3))


def test_timeline_end_for_terminal_ticket_uses_resolution_instant() -> None:
    now = CREATED + dt.timedelta(days=3)
    resolved_at = CREATED + dt.timedelta(hours=7)
    events = [_event(7, TicketStatus.resolved)]

    assert timeline_end(status=TicketStatus.resolved, resolved_at=resolved_at, events=events, now=now) == resolved_at
    assert timeline_end(status="closed", resolved_at=None, events=events, now=now) == CREATED + dt.timedelta(hours=7)
    assert timeline_end(status=TicketStatus.ongoing, resolved_at=None, events=events, now=now) == now


def test_initial_status_comes_from_first_recorded_change() -> None:
    events = [_event(5, TicketStatus.ongoing, TicketStatus.reopened), _event(1, TicketStatus.reopened, TicketStatus.escalated)]
    assert initial_status_of(events, TicketStatus.new) is TicketStatus.escalated
    assert initial_status_of([], TicketStatus.new) is TicketStatus.new
    assert initial_status_of([_event(1, TicketStatus.ongoing)], TicketStatus.new) is TicketStatus.new

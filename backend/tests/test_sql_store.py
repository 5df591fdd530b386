from __future__ import annotations

import datetime as dt

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from sla_engine.db.base import Base
from sla_engine.models import (
    BusinessHoliday,
    BusinessHours,
    Notification,
    SLADefinition,
    Ticket,
    TicketStatusHistory,
)
from sla_engine.models.enums import NotificationKind, SLASource, TicketPriority, TicketStatus
from sla_engine.services.sla.calendar import BusinessHoursConfig
from sla_engine.services.sla.company_filter import parse_company_filter
from sla_engine.services.sla.notifications import DatabaseNotificationDispatcher
from sla_engine.services.sla.resolver import SLAResolver
from sla_engine.services.sla.scheduler import EscalationScheduler
from sla_engine.services.sla.store import SqlComplianceStore, sql_store_factory

UTC = dt.timezone.utc
MONDAY = dt.datetime(2026, 3, 2, 8, tzinfo=UTC)
DEFAULT_CALENDAR = BusinessHoursConfig.weekly()


@pytest.fixture()
def session_factory(tmp_path):  # noqa: ANN001
    engine = create_engine(f"sqlite:///{tmp_path / 'sla.db'}")
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    yield factory
    engine.dispose()


def _seed(db, **overrides) -> Ticket:  # noqa: ANN001, ANN003
    values = dict(
        company_id=1,
        department_id=10,
        priority=TicketPriority.high,
        status=TicketStatus.ongoing,
        created_at=MONDAY,
        first_response_at=MONDAY,
        sla_breached=False,
    )
    values.update(overrides)
    ticket = Ticket(**values)
    db.add(ticket)
    db.flush()
    return ticket


def test_list_open_tickets_skips_closed_breached_and_filtered(session_factory) -> None:  # noqa: ANN001
    with session_factory() as db:
        open_ticket = _seed(db)
        _seed(db, status=TicketStatus.resolved)
        _seed(db, sla_breached=True)
        _seed(db, company_id=2)
        db.commit()
        open_id = open_ticket.id

        store = SqlComplianceStore(db, default_calendar=DEFAULT_CALENDAR)
        tickets = store.list_open_tickets(parse_company_filter("<>2"))

    assert [t.id for t in tickets] == [open_id]
    assert tickets[0].priority is TicketPriority.high


def test_status_history_keeps_log_order(session_factory) -> None:  # noqa: ANN001
    with session_factory() as db:
        ticket = _seed(db)
        same_instant = MONDAY + dt.timedelta(hours=2)
        db.add_all(
            [
                TicketStatusHistory(ticket_id=ticket.id, old_status=TicketStatus.new, new_status=TicketStatus.suspended, created_at=same_instant),
                TicketStatusHistory(ticket_id=ticket.id, old_status=TicketStatus.suspended, new_status=TicketStatus.ongoing, created_at=same_instant),
            ]
        )
        db.commit()

        events = SqlComplianceStore(db, default_calendar=DEFAULT_CALENDAR).status_history(ticket.id)

    assert [e.new_status for e in events] == [TicketStatus.suspended, TicketStatus.ongoing]
    assert events[0].previous_status is TicketStatus.new


def test_definition_lookup_matches_exact_scope(session_factory) -> None:  # noqa: ANN001
    with session_factory() as db:
        db.add_all(
            [
                SLADefinition(company_id=1, department_id=None, priority=TicketPriority.high, response_time_hours=4, resolution_time_hours=24),
                SLADefinition(company_id=1, department_id=10, priority=TicketPriority.high, response_time_hours=2, resolution_time_hours=8),
                SLADefinition(
                    company_id=1,
                    department_id=10,
                    priority=TicketPriority.high,
                    category_id=5,
                    response_time_hours=1,
                    resolution_time_hours=4,
                    is_active=False,
                ),
            ]
        )
        db.commit()
        store = SqlComplianceStore(db, default_calendar=DEFAULT_CALENDAR)
        resolver = SLAResolver(store)

        department = resolver.resolve(1, 10, TicketPriority.high, 5)
        fallback = resolver.resolve(1, 77, TicketPriority.high)
        missing = resolver.resolve(1, 10, TicketPriority.low)

    assert department.source is SLASource.department
    assert department.resolution_hours == 8
    assert fallback.source is SLASource.company_default
    assert fallback.resolution_hours == 24
    assert missing is None


def test_business_hours_override_defaults(session_factory) -> None:  # noqa: ANN001
    with session_factory() as db:
        db.add(BusinessHours(company_id=2, weekday=5, open_time=dt.time(10), close_time=dt.time(14)))
        db.add(BusinessHoliday(company_id=1, day=dt.date(2026, 3, 3)))
        db.commit()
        store = SqlComplianceStore(db, default_calendar=DEFAULT_CALENDAR)

        company_one = store.business_hours(1)
        company_two = store.business_hours(2)

    assert set(company_one.windows) == {0, 1, 2, 3, 4}
    assert company_one.window_on(dt.date(2026, 3, 3)) is None
    assert set(company_two.windows) == {5}


def test_mark_breached_is_guarded(session_factory) -> None:  # noqa: ANN001
    with session_factory() as db:
        ticket_id = _seed(db).id
        db.commit()

    with session_factory() as first, session_factory() as second:
        assert SqlComplianceStore(first, default_calendar=DEFAULT_CALENDAR).mark_breached(ticket_id) is True
        assert SqlComplianceStore(second, default_calendar=DEFAULT_CALENDAR).mark_breached(ticket_id) is False

    with session_factory() as db:
        assert db.get(Ticket, ticket_id).sla_breached is True


def test_sweep_against_database_escalates_once(session_factory) -> None:  # noqa: ANN001
    with session_factory() as db:
        db.add(SLADefinition(company_id=1, department_id=10, priority=TicketPriority.high, response_time_hours=2, resolution_time_hours=8))
        ticket_id = _seed(db).id
        db.commit()

    def _scheduler() -> EscalationScheduler:
        return EscalationScheduler(
            sql_store_factory(session_factory, default_calendar=DEFAULT_CALENDAR),
            DatabaseNotificationDispatcher(session_factory),
            max_workers=1,
        )

    now = MONDAY.replace(hour=16)
    first = _scheduler().run_sweep(now=now)
    second = _scheduler().run_sweep(now=now)

    assert first.breached == [ticket_id]
    assert second.candidates == 0
    with session_factory() as db:
        notifications = db.execute(select(Notification)).scalars().all()
    assert [(n.ticket_id, n.kind) for n in notifications] == [(ticket_id, NotificationKind.escalated)]
    assert notifications[0].severity == "critical"

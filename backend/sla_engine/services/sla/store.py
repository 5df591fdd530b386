"""Read/write seam between the SLA engine and the ticketing database."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, ContextManager, Iterator, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

from sla_engine.core.exceptions import TransientStoreError
from sla_engine.models.enums import TicketPriority
from sla_engine.models.sla_definition import BusinessHoliday, BusinessHours, SLADefinition
from sla_engine.models.ticket import Ticket, TicketStatusHistory
from sla_engine.services.sla.calendar import BusinessHoursConfig, WorkWindow
from sla_engine.services.sla.company_filter import ALL_COMPANIES, CompanyFilter
from sla_engine.services.sla.evaluator import TicketSnapshot
from sla_engine.services.sla.periods import StatusChangeEvent
from sla_engine.services.sla.resolver import SLADefinitionRecord
from sla_engine.services.sla.statuses import TERMINAL_STATUSES

logger = logging.getLogger(__name__)


class ComplianceStore(Protocol):
    def list_open_tickets(self, company_filter: CompanyFilter = ALL_COMPANIES) -> list[TicketSnapshot]: ...

    def get_ticket(self, ticket_id: Any) -> TicketSnapshot | None: ...

    def status_history(self, ticket_id: Any) -> list[StatusChangeEvent]: ...

    def find_sla_definition(
        self,
        *,
        company_id: int,
        department_id: int | None,
        priority: TicketPriority,
        category_id: int | None,
    ) -> SLADefinitionRecord | None: ...

    def business_hours(self, company_id: int) -> BusinessHoursConfig: ...

    def mark_breached(self, ticket_id: Any) -> bool:
        """Set the breach flag only if it is still false; True when this call flipped it."""


StoreFactory = Callable[[], ContextManager[ComplianceStore]]


def _snapshot(ticket: Ticket) -> TicketSnapshot:
    return TicketSnapshot(
        id=ticket.id,
        company_id=ticket.company_id,
        department_id=ticket.department_id,
        category_id=ticket.category_id,
        priority=ticket.priority,
        status=ticket.status,
        created_at=ticket.created_at,
        first_response_at=ticket.first_response_at,
        resolved_at=ticket.resolved_at,
        sla_breached=bool(ticket.sla_breached),
    )


def _nullable_match(column, value: int | None):  # noqa: ANN001
    return column.is_(None) if value is None else column == value


class SqlComplianceStore:
    def __init__(self, db: Session, *, default_calendar: BusinessHoursConfig) -> None:
        self.db = db
        self.default_calendar = default_calendar

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except (OperationalError, DBAPIError) as exc:
            self.db.rollback()
            logger.warning("Store %s failed: %s", operation, exc.__class__.__name__)
            raise TransientStoreError(f"{operation}_failed", operation=operation) from exc

    def list_open_tickets(self, company_filter: CompanyFilter = ALL_COMPANIES) -> list[TicketSnapshot]:
        query = (
            select(Ticket)
            .where(
                Ticket.status.notin_(sorted(TERMINAL_STATUSES, key=lambda s: s.value)),
                Ticket.sla_breached.is_(False),
                *company_filter.clauses(Ticket.company_id),
            )
            .order_by(Ticket.id)
        )
        with self._guard("list_open_tickets"):
            tickets = self.db.execute(query).scalars().all()
        return [_snapshot(ticket) for ticket in tickets]

    def get_ticket(self, ticket_id: Any) -> TicketSnapshot | None:
        with self._guard("get_ticket"):
            ticket = self.db.get(Ticket, ticket_id)
        return _snapshot(ticket) if ticket else None

    def status_history(self, ticket_id: Any) -> list[StatusChangeEvent]:
        query = (
            select(TicketStatusHistory)
            .where(TicketStatusHistory.ticket_id == ticket_id)
            .order_by(TicketStatusHistory.id)
        )
        with self._guard("status_history"):
            rows = self.db.execute(query).scalars().all()
        # Row order (by id) is the log order; the period builder sorts by time and keeps it for ties.
        return [
            StatusChangeEvent(
                ticket_id=row.ticket_id,
                new_status=row.new_status,
                changed_at=row.created_at,
                previous_status=row.old_status,
            )
            for row in rows
        ]

    def find_sla_definition(
        self,
        *,
        company_id: int,
        department_id: int | None,
        priority: TicketPriority,
        category_id: int | None,
    ) -> SLADefinitionRecord | None:
        query = (
            select(SLADefinition)
            .where(
                SLADefinition.company_id == company_id,
                _nullable_match(SLADefinition.department_id, department_id),
                SLADefinition.priority == priority,
                _nullable_match(SLADefinition.category_id, category_id),
                SLADefinition.is_active.is_(True),
            )
            .order_by(SLADefinition.id)
            .limit(1)
        )
        with self._guard("find_sla_definition"):
            row = self.db.execute(query).scalars().first()
        if row is None:
            return None
        return SLADefinitionRecord(
            id=row.id,
            company_id=row.company_id,
            department_id=row.department_id,
            priority=row.priority,
            category_id=row.category_id,
            response_time_hours=row.response_time_hours,
            resolution_time_hours=row.resolution_time_hours,
        )

    def business_hours(self, company_id: int) -> BusinessHoursConfig:
        with self._guard("business_hours"):
            hours = self.db.execute(
                select(BusinessHours).where(BusinessHours.company_id == company_id)
            ).scalars().all()
            holidays = self.db.execute(
                select(BusinessHoliday.day).where(BusinessHoliday.company_id == company_id)
            ).scalars().all()

        if hours:
            windows = {row.weekday: WorkWindow(row.open_time, row.close_time) for row in hours}
        else:
            windows = dict(self.default_calendar.windows)
        return BusinessHoursConfig(
            windows=windows,
            holidays=self.default_calendar.holidays | frozenset(holidays),
            tz=self.default_calendar.tz,
        )

    def mark_breached(self, ticket_id: Any) -> bool:
        statement = (
            update(Ticket)
            .where(Ticket.id == ticket_id, Ticket.sla_breached.is_(False))
            .values(sla_breached=True)
            .execution_options(synchronize_session=False)
        )
        with self._guard("mark_breached"):
            result = self.db.execute(statement)
            self.db.commit()
        return bool(result.rowcount)


def sql_store_factory(session_factory: Callable[[], Session], *, default_calendar: BusinessHoursConfig):
    """Build a factory yielding one store (and one session) per unit of work."""

    @contextmanager
    def _factory() -> Iterator[SqlComplianceStore]:
        db = session_factory()
        try:
            yield SqlComplianceStore(db, default_calendar=default_calendar)
        finally:
            db.close()

    return _factory

"""Convenience imports for Alembic metadata discovery."""

from sla_engine.models.ticket import Ticket, TicketStatusHistory
from sla_engine.models.sla_definition import BusinessHoliday, BusinessHours, SLADefinition
from sla_engine.models.notification import Notification

__all__ = [
    "BusinessHoliday",
    "BusinessHours",
    "Notification",
    "SLADefinition",
    "Ticket",
    "TicketStatusHistory",
]

"""Shared enum values used by the database models, schemas and the SLA engine."""

from __future__ import annotations

import enum


class TicketStatus(str, enum.Enum):
    new = "new"
    ongoing = "ongoing"
    suspended = "suspended"
    waiting_customer = "waiting_customer"
    escalated = "escalated"
    in_analysis = "in_analysis"
    pending_deployment = "pending_deployment"
    reopened = "reopened"
    resolved = "resolved"
    closed = "closed"


class TicketPriority(str, enum.Enum):
    critical = "critical"
    high = "high"
    medium = "medium"
    low = "low"


class SLAPhase(str, enum.Enum):
    awaiting_first_response = "awaiting_first_response"
    awaiting_resolution = "awaiting_resolution"


class SLAAction(str, enum.Enum):
    none = "none"
    notify_due_soon = "notify_due_soon"
    mark_breached = "mark_breached"


class SLASource(str, enum.Enum):
    category = "category"
    department = "department"
    company_default = "company_default"


class NotificationKind(str, enum.Enum):
    due_soon = "due_soon"
    escalated = "escalated"

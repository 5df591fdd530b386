"""initial schema

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

TICKET_STATUSES = (
    "new",
    "ongoing",
    "suspended",
    "waiting_customer",
    "escalated",
    "in_analysis",
    "pending_deployment",
    "reopened",
    "resolved",
    "closed",
)
TICKET_PRIORITIES = ("critical", "high", "medium", "low")
NOTIFICATION_KINDS = ("due_soon", "escalated")


def upgrade() -> None:
    ticket_status = postgresql.ENUM(*TICKET_STATUSES, name="ticket_status")
    ticket_priority = postgresql.ENUM(*TICKET_PRIORITIES, name="ticket_priority")
    notification_kind = postgresql.ENUM(*NOTIFICATION_KINDS, name="notification_kind")

    ticket_status_col = postgresql.ENUM(*TICKET_STATUSES, name="ticket_status", create_type=False)
    ticket_priority_col = postgresql.ENUM(*TICKET_PRIORITIES, name="ticket_priority", create_type=False)
    notification_kind_col = postgresql.ENUM(*NOTIFICATION_KINDS, name="notification_kind", create_type=False)

    bind = op.get_bind()
    ticket_status.create(bind, checkfirst=True)
    ticket_priority.create(bind, checkfirst=True)
    notification_kind.create(bind, checkfirst=True)

    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("department_id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("priority", ticket_priority_col, nullable=False),
        sa.Column("status", ticket_status_col, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("first_response_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sla_breached", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index(op.f("ix_tickets_company_id"), "tickets", ["company_id"], unique=False)
    op.create_index("ix_tickets_status_sla_breached", "tickets", ["status", "sla_breached"], unique=False)

    op.create_table(
        "ticket_status_history",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("old_status", ticket_status_col, nullable=True),
        sa.Column("new_status", ticket_status_col, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["ticket_id"], ["tickets.id"], ondelete="CASCADE"),
    )
    op.create_index(op.f("ix_ticket_status_history_ticket_id"), "ticket_status_history", ["ticket_id"], unique=False)

    op.create_table(
        "sla_definitions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("department_id", sa.Integer(), nullable=True),
        sa.Column("priority", ticket_priority_col, nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("response_time_hours", sa.Float(), nullable=False),
        sa.Column("resolution_time_hours", sa.Float(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("company_id", "department_id", "priority", "category_id", name="uq_sla_definitions_scope"),
    )
    op.create_index(op.f("ix_sla_definitions_company_id"), "sla_definitions", ["company_id"], unique=False)

    op.create_table(
        "business_hours",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("weekday", sa.SmallInteger(), nullable=False),
        sa.Column("open_time", sa.Time(), nullable=False),
        sa.Column("close_time", sa.Time(), nullable=False),
        sa.UniqueConstraint("company_id", "weekday", name="uq_business_hours_company_weekday"),
    )
    op.create_index(op.f("ix_business_hours_company_id"), "business_hours", ["company_id"], unique=False)

    op.create_table(
        "business_holidays",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.UniqueConstraint("company_id", "day", name="uq_business_holidays_company_day"),
    )
    op.create_index(op.f("ix_business_holidays_company_id"), "business_holidays", ["company_id"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("kind", notification_kind_col, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("source", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["ticket_id"], ["tickets.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_ticket_id_kind", "notifications", ["ticket_id", "kind"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_notifications_ticket_id_kind", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index(op.f("ix_business_holidays_company_id"), table_name="business_holidays")
    op.drop_table("business_holidays")
    op.drop_index(op.f("ix_business_hours_company_id"), table_name="business_hours")
    op.drop_table("business_hours")
    op.drop_index(op.f("ix_sla_definitions_company_id"), table_name="sla_definitions")
    op.drop_table("sla_definitions")
    op.drop_index(op.f("ix_ticket_status_history_ticket_id"), table_name="ticket_status_history")
    op.drop_table("ticket_status_history")
    op.drop_index("ix_tickets_status_sla_breached", table_name="tickets")
    op.drop_index(op.f("ix_tickets_company_id"), table_name="tickets")
    op.drop_table("tickets")

    bind = op.get_bind()
    sa.Enum(*NOTIFICATION_KINDS, name="notification_kind").drop(bind, checkfirst=True)
    sa.Enum(*TICKET_PRIORITIES, name="ticket_priority").drop(bind, checkfirst=True)
    sa.Enum(*TICKET_STATUSES, name="ticket_status").drop(bind, checkfirst=True)

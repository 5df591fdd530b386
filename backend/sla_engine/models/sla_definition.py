"""SLA definitions and business calendar configuration (read-only for the engine)."""

from __future__ import annotations

import datetime as dt

from sqlalchemy import Boolean, Date, Enum, Float, Integer, SmallInteger, Time, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sla_engine.db.base import Base
from sla_engine.models.enums import TicketPriority


class SLADefinition(Base):
    __tablename__ = "sla_definitions"
    __table_args__ = (
        UniqueConstraint(
            "company_id",
            "department_id",
            "priority",
            "category_id",
            name="uq_sla_definitions_scope",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    # NULL department means company-wide default for the priority.
    department_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    priority: Mapped[TicketPriority] = mapped_column(
        Enum(TicketPriority, name="ticket_priority", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    category_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_time_hours: Mapped[float] = mapped_column(Float, nullable=False)
    resolution_time_hours: Mapped[float] = mapped_column(Float, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class BusinessHours(Base):
    __tablename__ = "business_hours"
    __table_args__ = (
        UniqueConstraint("company_id", "weekday", name="uq_business_hours_company_weekday"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    # Monday=0 .. Sunday=6, matching datetime.date.weekday().
    weekday: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    open_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    close_time: Mapped[dt.time] = mapped_column(Time, nullable=False)


class BusinessHoliday(Base):
    __tablename__ = "business_holidays"
    __table_args__ = (
        UniqueConstraint("company_id", "day", name="uq_business_holidays_company_day"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    day: Mapped[dt.date] = mapped_column(Date, nullable=False)

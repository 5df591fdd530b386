"""Database engine and the session factory handed to the SLA store."""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from sla_engine.core.config import settings


def _connect_args() -> dict[str, Any]:
    # statement_timeout bounds every store call made during a sweep
    if settings.is_postgres and settings.DB_STATEMENT_TIMEOUT_MS > 0:
        return {"options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}"}
    return {}


engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True, connect_args=_connect_args())
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

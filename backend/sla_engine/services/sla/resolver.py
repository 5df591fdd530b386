"""Resolve response/resolution targets for a ticket scope."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Protocol

from sla_engine.models.enums import SLAPhase, SLASource, TicketPriority

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SLADefinitionRecord:
    id: int | None
    company_id: int
    department_id: int | None
    priority: TicketPriority
    category_id: int | None
    response_time_hours: float
    resolution_time_hours: float


@dataclass(frozen=True)
class SLATarget:
    response_hours: float
    resolution_hours: float
    source: SLASource
    definition_id: int | None = None

    def hours_for(self, phase: SLAPhase) -> float:
        if phase is SLAPhase.awaiting_first_response:
            return self.response_hours
        return self.resolution_hours


class SLADefinitionLookup(Protocol):
    def find_sla_definition(
        self,
        *,
        company_id: int,
        department_id: int | None,
        priority: TicketPriority,
        category_id: int | None,
    ) -> SLADefinitionRecord | None:
        """Exact-scope lookup; ``None`` fields match only unset columns."""


class SLACache:
    """Resolved targets shared by every resolver of one sweep.

    The lock lives with the entries, so resolvers running in different worker
    threads resolve each scope once and see the same answer for the whole pass.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple, SLATarget | None] = {}
        self._lock = Lock()

    def get_or_load(self, key: tuple, loader: Callable[[], SLATarget | None]) -> SLATarget | None:
        with self._lock:
            if key not in self._entries:
                self._entries[key] = loader()
            return self._entries[key]


class SLAResolver:
    """Category > department+priority > company default, first match wins.

    Results are memoised in ``cache``; pass the same SLACache to every resolver
    of one sweep so definitions stay fixed for the duration of a pass.
    """

    def __init__(self, lookup: SLADefinitionLookup, *, cache: SLACache | None = None) -> None:
        self._lookup = lookup
        self._cache = cache if cache is not None else SLACache()

    def resolve(
        self,
        company_id: int,
        department_id: int | None,
        priority: TicketPriority | str,
        category_id: int | None = None,
    ) -> SLATarget | None:
        priority = TicketPriority(priority)
        return self._cache.get_or_load(
            (company_id, department_id, priority, category_id),
            lambda: self._resolve_uncached(company_id, department_id, priority, category_id),
        )

    def _resolve_uncached(
        self,
        company_id: int,
        department_id: int | None,
        priority: TicketPriority,
        category_id: int | None,
    ) -> SLATarget | None:
        scopes: list[tuple[SLASource, int | None, int | None]] = []
        if category_id is not None and department_id is not None:
            scopes.append((SLASource.category, department_id, category_id))
        if department_id is not None:
            scopes.append((SLASource.department, department_id, None))
        scopes.append((SLASource.company_default, None, None))

        for source, scope_department, scope_category in scopes:
            record = self._lookup.find_sla_definition(
                company_id=company_id,
                department_id=scope_department,
                priority=priority,
                category_id=scope_category,
            )
            if record is None:
                continue
            logger.debug(
                "Resolved SLA for company=%s department=%s priority=%s category=%s via %s (definition %s)",
                company_id,
                department_id,
                priority.value,
                category_id,
                source.value,
                record.id,
            )
            return SLATarget(
                response_hours=float(record.response_time_hours),
                resolution_hours=float(record.resolution_time_hours),
                source=source,
                definition_id=record.id,
            )

        logger.debug(
            "No SLA definition for company=%s department=%s priority=%s category=%s",
            company_id,
            department_id,
            priority.value,
            category_id,
        )
        return None

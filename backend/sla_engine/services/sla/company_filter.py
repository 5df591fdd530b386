"""Company allow/deny filter for SLA sweeps.

Accepted forms of ``SLA_COMPANY_FILTER``:

- ``*`` or empty: every company
- ``<>7`` (or ``<>7,<>9``): every company except the listed ones
- ``7`` or ``3,7,9``: only the listed companies
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import ColumnElement

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompanyFilter:
    include: frozenset[int] = frozenset()
    exclude: frozenset[int] = frozenset()

    @property
    def is_unrestricted(self) -> bool:
        return not self.include and not self.exclude

    def matches(self, company_id: int | None) -> bool:
        if company_id is None:
            return False
        if self.include and company_id not in self.include:
            return False
        return company_id not in self.exclude

    def clauses(self, column) -> list[ColumnElement[bool]]:  # noqa: ANN001
        criteria: list[ColumnElement[bool]] = []
        if self.include:
            criteria.append(column.in_(sorted(self.include)))
        if self.exclude:
            criteria.append(column.notin_(sorted(self.exclude)))
        return criteria

    def describe(self) -> str:
        if self.include:
            return ",".join(str(company_id) for company_id in sorted(self.include))
        if self.exclude:
            return ",".join(f"<>{company_id}" for company_id in sorted(self.exclude))
        return "*"


ALL_COMPANIES = CompanyFilter()


def _parse_id(token: str, *, raw: str) -> int | None:
    try:
        return int(token)
    except ValueError:
        logger.warning("Ignoring non-numeric company id %r in filter %r", token, raw)
        return None


def parse_company_filter(raw: str | None) -> CompanyFilter:
    text = str(raw or "").strip()
    if not text or text == "*":
        return ALL_COMPANIES

    include: set[int] = set()
    exclude: set[int] = set()
    for token in (part.strip() for part in text.split(",")):
        if not token:
            continue
        if token.startswith("<>"):
            company_id = _parse_id(token[2:].strip(), raw=text)
            if company_id is not None:
                exclude.add(company_id)
            continue
        company_id = _parse_id(token, raw=text)
        if company_id is not None:
            include.add(company_id)

    if not include and not exclude:
        logger.warning("Company filter %r has no valid ids; processing every company", text)
        return ALL_COMPANIES
    return CompanyFilter(include=frozenset(include), exclude=frozenset(exclude))

from __future__ import annotations

from sqlalchemy import select

from sla_engine.models.ticket import Ticket
from sla_engine.services.sla.company_filter import ALL_COMPANIES, parse_company_filter


def test_wildcard_and_blank_mean_every_company() -> None:
    assert parse_company_filter("*") is ALL_COMPANIES
    assert parse_company_filter("  ") is ALL_COMPANIES
    assert parse_company_filter(None).matches(12345)


def test_include_list() -> None:
    company_filter = parse_company_filter("3, 7,9")
    assert company_filter.include == frozenset({3, 7, 9})
    assert company_filter.matches(7)
    assert not company_filter.matches(8)
    assert company_filter.describe() == "3,7,9"


def test_exclusion() -> None:
    company_filter = parse_company_filter("<>7")
    assert company_filter.matches(1)
    assert not company_filter.matches(7)
    assert not company_filter.matches(None)
    assert company_filter.describe() == "<>7"


def test_invalid_tokens_are_ignored(caplog) -> None:  # noqa: ANN001
    company_filter = parse_company_filter("4,abc,<>x")
    assert company_filter.include == frozenset({4})
    assert company_filter.exclude == frozenset()
    assert "abc" in caplog.text


def test_only_invalid_tokens_fall_back_to_all() -> None:
    assert parse_company_filter("abc").is_unrestricted


def test_clauses_render_in_and_not_in() -> None:
    query = select(Ticket.id).where(*parse_company_filter("1,2,<>2").clauses(Ticket.company_id))
    sql = str(query.compile(compile_kwargs={"literal_binds": True}))
    assert "tickets.company_id IN (1, 2)" in sql
    assert "tickets.company_id NOT IN (2)" in sql
    assert parse_company_filter("*").clauses(Ticket.company_id) == []

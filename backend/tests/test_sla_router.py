from __future__ import annotations

import datetime as dt

from fastapi.testclient import TestClient

from sla_engine.core.config import settings
from sla_engine.core.exceptions import NotFoundError
from sla_engine.main import create_app
from sla_engine.models.enums import SLAAction, SLAPhase, SLASource
from sla_engine.services.sla.company_filter import parse_company_filter
from sla_engine.services.sla.evaluator import ComplianceResult
from sla_engine.services.sla.scheduler import SweepReport

NOW = dt.datetime(2026, 3, 2, 16, tzinfo=dt.timezone.utc)


class _FakeScheduler:
    def __init__(self, report: SweepReport | None = None) -> None:
        self.report = report or SweepReport(started_at=NOW, finished_at=NOW, candidates=3, evaluated=3, breached=[11])
        self.running = True
        self.sweep_in_progress = False
        self.interval_seconds = 3600
        self.company_filter = parse_company_filter("1,2")
        self.last_report = None
        self.dry_runs: list[bool] = []
        self.results: dict[int, ComplianceResult | None] = {}

    def trigger_once(self, *, dry_run: bool = False) -> SweepReport:
        self.dry_runs.append(dry_run)
        return self.report

    def evaluate_ticket(self, ticket_id):  # noqa: ANN001
        if ticket_id not in self.results:
            raise NotFoundError("ticket_not_found", details={"ticket_id": ticket_id})
        return self.results[ticket_id]


def _client(scheduler: _FakeScheduler) -> TestClient:
    return TestClient(create_app(scheduler, start_scheduler=False))


def test_manual_sweep_returns_report(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", False)
    scheduler = _FakeScheduler()

    response = _client(scheduler).post("/api/sla/sweep")

    assert response.status_code == 200
    body = response.json()
    assert body["breached"] == [11]
    assert body["candidates"] == 3
    assert scheduler.dry_runs == [False]


def test_manual_sweep_dry_run_lists_proposed_actions(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", False)
    report = SweepReport(
        started_at=NOW,
        finished_at=NOW,
        dry_run=True,
        proposed_actions=[
            {"ticket_id": 5, "action": "mark_breached", "phase": "awaiting_resolution", "elapsed_hours": 9.0, "remaining_hours": 0.0},
        ],
    )
    scheduler = _FakeScheduler(report)

    response = _client(scheduler).post("/api/sla/sweep", json={"dry_run": True})

    assert response.status_code == 200
    assert response.json()["proposed_actions"][0]["action"] == "mark_breached"
    assert scheduler.dry_runs == [True]


def test_manual_sweep_conflicts_with_running_sweep(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", False)
    report = SweepReport(started_at=NOW, finished_at=NOW, skipped=True, skip_reason="sweep_in_progress")

    response = _client(_FakeScheduler(report)).post("/api/sla/sweep")

    assert response.status_code == 409
    assert response.json()["error_code"] == "CONFLICT"


def test_manual_sweep_is_rate_limited(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(settings, "RATE_LIMIT_TRIGGER_MAX_REQUESTS", 1)
    client = _client(_FakeScheduler())

    assert client.post("/api/sla/sweep").status_code == 200
    limited = client.post("/api/sla/sweep")

    assert limited.status_code == 429
    assert limited.headers["Retry-After"]
    assert limited.json()["error_code"] == "RATE_LIMIT"


def test_scheduler_status() -> None:
    scheduler = _FakeScheduler()
    scheduler.last_report = scheduler.report

    body = _client(scheduler).get("/api/sla/scheduler").json()

    assert body["running"] is True
    assert body["company_filter"] == "1,2"
    assert body["last_report"]["breached"] == [11]


def test_ticket_preview() -> None:
    scheduler = _FakeScheduler()
    scheduler.results[7] = ComplianceResult(
        ticket_id=7,
        phase=SLAPhase.awaiting_resolution,
        elapsed_hours=6.5,
        target_hours=8,
        remaining_hours=1.5,
        threshold_hours=2,
        percent_consumed=81.2,
        action=SLAAction.notify_due_soon,
        paused=False,
        due_at=NOW,
        sla_source=SLASource.company_default,
    )
    scheduler.results[8] = None
    client = _client(scheduler)

    body = client.get("/api/sla/tickets/7").json()
    assert body["result"]["action"] == "notify_due_soon"
    assert body["result"]["sla_source"] == "company_default"

    assert client.get("/api/sla/tickets/8").json() == {"ticket_id": 8, "result": None}
    missing = client.get("/api/sla/tickets/9")
    assert missing.status_code == 404
    assert missing.json()["message"] == "ticket_not_found"


def test_missing_scheduler_is_service_unavailable() -> None:
    client = TestClient(create_app(None, start_scheduler=False))
    response = client.get("/api/sla/scheduler")
    assert response.status_code == 503

"""Periodic SLA sweep: evaluate open tickets, persist breaches, dispatch notifications."""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy.orm import Session

from sla_engine.core.exceptions import (
    DataInconsistencyError,
    InvariantViolationError,
    NotFoundError,
    TransientStoreError,
)
from sla_engine.models.enums import NotificationKind, SLAAction, SLAPhase
from sla_engine.services.sla.calendar import (
    BusinessHoursConfig,
    as_utc,
    format_duration,
    parse_clock,
)
from sla_engine.services.sla.company_filter import ALL_COMPANIES, CompanyFilter, parse_company_filter
from sla_engine.services.sla.evaluator import ComplianceResult, TicketSnapshot, evaluate
from sla_engine.services.sla.notifications import NotificationDispatcher, build_dispatcher, dispatch_with_retry
from sla_engine.services.sla.periods import build_status_periods, initial_status_of, timeline_end, validate_periods
from sla_engine.services.sla.resolver import SLACache, SLAResolver
from sla_engine.services.sla.store import ComplianceStore, StoreFactory, sql_store_factory

logger = logging.getLogger(__name__)

_PHASE_LABELS = {
    SLAPhase.awaiting_first_response: "First response",
    SLAPhase.awaiting_resolution: "Resolution",
}


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclass(frozen=True)
class TicketOutcome:
    ticket_id: Any
    outcome: str
    result: ComplianceResult | None = None
    breach_written: bool = False
    notified: bool | None = None
    error: str | None = None


@dataclass
class SweepReport:
    started_at: dt.datetime
    finished_at: dt.datetime | None = None
    dry_run: bool = False
    skipped: bool = False
    skip_reason: str | None = None
    company_filter: str = "*"
    candidates: int = 0
    evaluated: int = 0
    no_sla: int = 0
    inconsistent: int = 0
    failed: int = 0
    due_soon: list[Any] = field(default_factory=list)
    breached: list[Any] = field(default_factory=list)
    breach_conflicts: list[Any] = field(default_factory=list)
    notifications_sent: int = 0
    notifications_dropped: int = 0
    proposed_actions: list[dict[str, Any]] = field(default_factory=list)

    def record(self, outcome: TicketOutcome) -> None:
        if outcome.outcome == "no_sla":
            self.no_sla += 1
            return
        if outcome.outcome == "inconsistent":
            self.inconsistent += 1
            return
        if outcome.outcome == "failed" or outcome.result is None:
            self.failed += 1
            return

        self.evaluated += 1
        result = outcome.result
        if result.action is SLAAction.none:
            return
        if self.dry_run:
            self.proposed_actions.append(
                {
                    "ticket_id": outcome.ticket_id,
                    "action": result.action.value,
                    "phase": result.phase.value,
                    "elapsed_hours": result.elapsed_hours,
                    "remaining_hours": result.remaining_hours,
                }
            )
            return
        if result.action is SLAAction.notify_due_soon:
            self.due_soon.append(outcome.ticket_id)
        elif outcome.breach_written:
            self.breached.append(outcome.ticket_id)
        else:
            self.breach_conflicts.append(outcome.ticket_id)
        if outcome.notified is True:
            self.notifications_sent += 1
        elif outcome.notified is False:
            self.notifications_dropped += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "dry_run": self.dry_run,
            "skipped": self.skipped,
            "skip_reason": self.skip_reason,
            "company_filter": self.company_filter,
            "candidates": self.candidates,
            "evaluated": self.evaluated,
            "no_sla": self.no_sla,
            "inconsistent": self.inconsistent,
            "failed": self.failed,
            "due_soon": list(self.due_soon),
            "breached": list(self.breached),
            "breach_conflicts": list(self.breach_conflicts),
            "notifications_sent": self.notifications_sent,
            "notifications_dropped": self.notifications_dropped,
            "proposed_actions": list(self.proposed_actions),
        }


def assess_ticket(
    store: ComplianceStore,
    resolver: SLAResolver,
    ticket: TicketSnapshot,
    now: dt.datetime,
    *,
    calendars: dict[int, BusinessHoursConfig] | None = None,
) -> ComplianceResult | None:
    """Resolve, build the timeline and evaluate one ticket. ``None`` when no SLA applies."""
    target = resolver.resolve(ticket.company_id, ticket.department_id, ticket.priority, ticket.category_id)
    if target is None:
        return None

    # a ticket created after the sweep took its evaluation instant starts with an empty timeline
    created_at = as_utc(ticket.created_at)
    now = max(as_utc(now), created_at)
    events = store.status_history(ticket.id)
    end = timeline_end(status=ticket.status, resolved_at=ticket.resolved_at, events=events, now=now)
    periods = build_status_periods(ticket.created_at, initial_status_of(events, ticket.initial_status), events, end)
    validate_periods(periods, created_at, end)

    if calendars is None:
        calendar = store.business_hours(ticket.company_id)
    else:
        calendar = calendars.get(ticket.company_id)
        if calendar is None:
            calendar = calendars[ticket.company_id] = store.business_hours(ticket.company_id)
    return evaluate(ticket, periods, target, now, calendar=calendar)


def due_soon_text(ticket: TicketSnapshot, result: ComplianceResult) -> str:
    label = _PHASE_LABELS[result.phase]
    text = (
        f"{label} SLA for ticket {ticket.id} is due in "
        f"{format_duration(dt.timedelta(hours=result.remaining_hours))} "
        f"(target {result.target_hours:g}h, priority {ticket.priority.value})"
    )
    if result.due_at is not None:
        text += f", due at {result.due_at.isoformat()}"
    return text


def escalation_text(ticket: TicketSnapshot, result: ComplianceResult) -> str:
    label = _PHASE_LABELS[result.phase]
    return (
        f"Ticket {ticket.id} escalated automatically: {label} SLA of {result.target_hours:g}h breached. "
        f"Effective business time elapsed: {result.elapsed_hours:.1f}h"
    )


class EscalationScheduler:
    """Runs SLA sweeps on a timer or on demand, one sweep at a time per process.

    ``run_sweep`` is the only code path: the periodic loop, ``trigger_once``
    and the HTTP trigger all go through it. Overlapping calls return a skipped
    report instead of waiting. Across processes, the guarded breach update keeps
    escalations single-fire.
    """

    def __init__(
        self,
        store_factory: StoreFactory,
        dispatcher: NotificationDispatcher,
        *,
        company_filter: CompanyFilter = ALL_COMPANIES,
        interval_seconds: int = 3600,
        startup_delay_seconds: int = 0,
        max_workers: int = 4,
        ticket_timeout: float = 30.0,
        write_attempts: int = 3,
        notify_attempts: int = 2,
        retry_backoff: float = 0.5,
        allowed_window: tuple[dt.time, dt.time] | None = None,
        window_tz: dt.tzinfo = dt.timezone.utc,
        clock: Callable[[], dt.datetime] = _utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store_factory = store_factory
        self.dispatcher = dispatcher
        self.company_filter = company_filter
        self.interval_seconds = interval_seconds
        self.startup_delay_seconds = startup_delay_seconds
        self.max_workers = max(1, max_workers)
        self.ticket_timeout = ticket_timeout
        self.write_attempts = max(1, write_attempts)
        self.notify_attempts = max(1, notify_attempts)
        self.retry_backoff = retry_backoff
        self.allowed_window = allowed_window
        self.window_tz = window_tz
        self._clock = clock
        self._sleep = sleep
        self._sweep_lock = threading.Lock()
        self._task: asyncio.Task | None = None
        self.last_report: SweepReport | None = None

    @classmethod
    def from_settings(cls, config, session_factory: Callable[[], Session]) -> EscalationScheduler:  # noqa: ANN001
        calendar = BusinessHoursConfig.from_settings(config)
        window = None
        if config.SLA_ALLOWED_WINDOW_ENABLED:
            window = (
                parse_clock(config.SLA_ALLOWED_WINDOW_START, setting="SLA_ALLOWED_WINDOW_START"),
                parse_clock(config.SLA_ALLOWED_WINDOW_END, setting="SLA_ALLOWED_WINDOW_END"),
            )
        return cls(
            sql_store_factory(session_factory, default_calendar=calendar),
            build_dispatcher(config, session_factory),
            company_filter=parse_company_filter(config.SLA_COMPANY_FILTER),
            interval_seconds=config.scheduler_interval_seconds,
            startup_delay_seconds=max(0, config.SLA_SCHEDULER_STARTUP_DELAY_SECONDS),
            max_workers=config.SLA_MAX_WORKERS,
            ticket_timeout=config.SLA_TICKET_TIMEOUT_SECONDS,
            write_attempts=config.SLA_WRITE_MAX_ATTEMPTS,
            notify_attempts=config.SLA_NOTIFY_MAX_ATTEMPTS,
            retry_backoff=config.SLA_RETRY_BACKOFF_SECONDS,
            allowed_window=window,
            window_tz=calendar.tz,
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def sweep_in_progress(self) -> bool:
        return self._sweep_lock.locked()

    # ----- sweep -----

    def trigger_once(self, *, dry_run: bool = False) -> SweepReport:
        logger.info("Manual SLA sweep requested (dry_run=%s)", dry_run)
        return self.run_sweep(dry_run=dry_run)

    def run_sweep(self, *, dry_run: bool = False, now: dt.datetime | None = None) -> SweepReport:
        started = as_utc(now or self._clock())
        if not self._sweep_lock.acquire(blocking=False):
            logger.info("SLA sweep skipped: a previous sweep is still running")
            return SweepReport(
                started_at=started,
                finished_at=started,
                dry_run=dry_run,
                skipped=True,
                skip_reason="sweep_in_progress",
            )
        try:
            report = self._sweep(started, dry_run=dry_run)
        finally:
            self._sweep_lock.release()
        if not dry_run:
            self.last_report = report
        return report

    def _within_window(self, now: dt.datetime) -> bool:
        if self.allowed_window is None:
            return True
        local = now.astimezone(self.window_tz).time().replace(second=0, microsecond=0)
        start, end = self.allowed_window
        return start <= local <= end

    def _sweep(self, now: dt.datetime, *, dry_run: bool) -> SweepReport:
        report = SweepReport(started_at=now, dry_run=dry_run, company_filter=self.company_filter.describe())
        if not self._within_window(now):
            logger.info("SLA sweep skipped: %s is outside the allowed window", now.isoformat())
            report.skipped = True
            report.skip_reason = "outside_window"
            report.finished_at = now
            return report

        try:
            with self.store_factory() as store:
                tickets = store.list_open_tickets(self.company_filter)
        except TransientStoreError as exc:
            logger.warning("SLA sweep aborted: cannot list open tickets (%s)", exc.message)
            report.skipped = True
            report.skip_reason = "store_unavailable"
            report.finished_at = self._clock()
            return report

        report.candidates = len(tickets)
        sla_cache = SLACache()
        calendars: dict[int, BusinessHoursConfig] = {}
        abandoned: set[Any] = set()
        timed_out: list[tuple[TicketSnapshot, Future]] = []
        started_monotonic = time.monotonic()

        pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="sla-sweep")
        try:
            futures = [
                (ticket, pool.submit(self._process_ticket, ticket, now, dry_run, sla_cache, calendars, abandoned))
                for ticket in tickets
            ]
            for ticket, future in futures:
                try:
                    outcome = future.result(timeout=self.ticket_timeout)
                except FutureTimeout:
                    logger.error("SLA evaluation of ticket %s timed out after %ss", ticket.id, self.ticket_timeout)
                    abandoned.add(ticket.id)
                    timed_out.append((ticket, future))
                    continue
                report.record(outcome)
        finally:
            # Drain before the sweep lock is released; store and webhook calls are time-bounded.
            pool.shutdown(wait=True, cancel_futures=True)

        for ticket, future in timed_out:
            report.record(self._late_outcome(ticket, future))

        report.finished_at = self._clock()
        logger.info(
            "SLA sweep completed: filter=%s candidates=%s evaluated=%s no_sla=%s inconsistent=%s failed=%s "
            "due_soon=%s breached=%s conflicts=%s dropped_notifications=%s dry_run=%s duration=%.2fs",
            report.company_filter,
            report.candidates,
            report.evaluated,
            report.no_sla,
            report.inconsistent,
            report.failed,
            len(report.due_soon),
            len(report.breached),
            len(report.breach_conflicts),
            report.notifications_dropped,
            dry_run,
            time.monotonic() - started_monotonic,
        )
        return report

    def _process_ticket(
        self,
        ticket: TicketSnapshot,
        now: dt.datetime,
        dry_run: bool,
        sla_cache: SLACache,
        calendars: dict[int, BusinessHoursConfig],
        abandoned: set[Any],
    ) -> TicketOutcome:
        try:
            with self.store_factory() as store:
                resolver = SLAResolver(store, cache=sla_cache)
                result = assess_ticket(store, resolver, ticket, now, calendars=calendars)
                if result is None:
                    return TicketOutcome(ticket.id, "no_sla")
                logger.debug(
                    "Ticket %s: phase=%s elapsed=%.2fh target=%sh remaining=%.2fh threshold=%.2fh action=%s",
                    ticket.id,
                    result.phase.value,
                    result.elapsed_hours,
                    result.target_hours,
                    result.remaining_hours,
                    result.threshold_hours,
                    result.action.value,
                )
                if dry_run or result.action is SLAAction.none:
                    return TicketOutcome(ticket.id, "evaluated", result=result)
                if ticket.id in abandoned:
                    logger.warning(
                        "Ticket %s timed out before its %s action; left for the next sweep",
                        ticket.id,
                        result.action.value,
                    )
                    return TicketOutcome(ticket.id, "failed", error="timeout")
                return self._apply(store, ticket, result)
        except DataInconsistencyError as exc:
            logger.warning("Skipping ticket %s: %s %s", ticket.id, exc.message, exc.details)
            return TicketOutcome(ticket.id, "inconsistent", error=exc.message)
        except InvariantViolationError as exc:
            logger.exception(
                "Invariant violated for ticket %s (company=%s priority=%s status=%s): %s %s",
                ticket.id,
                ticket.company_id,
                ticket.priority.value,
                ticket.status.value,
                exc.message,
                exc.details,
            )
            return TicketOutcome(ticket.id, "failed", error=exc.message)
        except TransientStoreError as exc:
            logger.warning("Ticket %s left for the next sweep: %s", ticket.id, exc.message)
            return TicketOutcome(ticket.id, "failed", error=exc.message)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error while evaluating ticket %s", ticket.id)
            return TicketOutcome(ticket.id, "failed", error=exc.__class__.__name__)

    def _late_outcome(self, ticket: TicketSnapshot, future: Future) -> TicketOutcome:
        """Outcome of a ticket whose worker finished only after its timeout."""
        if future.cancelled():
            return TicketOutcome(ticket.id, "failed", error="timeout")
        outcome = future.result()
        if outcome.breach_written or outcome.notified is not None:
            logger.warning(
                "Ticket %s finished after its timeout and already applied its %s action",
                ticket.id,
                outcome.result.action.value if outcome.result else "unknown",
            )
            return outcome
        return TicketOutcome(ticket.id, "failed", error="timeout")

    def _apply(
self, store: ComplianceStore, ticket: TicketSnapshot, result: ComplianceResult) -> TicketOutcome:
        if result.action is SLAAction.notify_due_soon:
            sent = self._notify(NotificationKind.due_soon, ticket.id, due_soon_text(ticket, result))
            return TicketOutcome(ticket.id, "evaluated", result=result, notified=sent)

        if not self._mark_breached(store, ticket.id):
            logger.info("Ticket %s was already marked breached by another sweep", ticket.id)
            return TicketOutcome(ticket.id, "evaluated", result=result, breach_written=False)

        logger.info(
            "Ticket %s breached its %s SLA (%.1fh of %sh)",
            ticket.id,
            result.phase.value,
            result.elapsed_hours,
            result.target_hours,
        )
        sent = self._notify(NotificationKind.escalated, ticket.id, escalation_text(ticket, result))
        return TicketOutcome(ticket.id, "evaluated", result=result, breach_written=True, notified=sent)

    def _mark_breached(self, store: ComplianceStore, ticket_id: Any) -> bool:
        backoff = self.retry_backoff
        for attempt in range(1, self.write_attempts + 1):
            try:
                return store.mark_breached(ticket_id)
            except TransientStoreError:
                if attempt >= self.write_attempts:
                    raise
                self._sleep(backoff)
                backoff *= 2
        return False

    def _notify(self, kind: NotificationKind, ticket_id: Any, text: str) -> bool:
        return dispatch_with_retry(
            self.dispatcher,
            kind,
            ticket_id,
            text,
            max_attempts=self.notify_attempts,
            backoff=self.retry_backoff,
            sleep=self._sleep,
        )

    # ----- preview -----

    def evaluate_ticket(self, ticket_id: Any, *, now: dt.datetime | None = None) -> ComplianceResult | None:
        """Side-effect free evaluation of one ticket through the sweep pipeline."""
        now = as_utc(now or self._clock())
        with self.store_factory() as store:
            ticket = store.get_ticket(ticket_id)
            if ticket is None:
                raise NotFoundError("ticket_not_found", details={"ticket_id": ticket_id})
            return assess_ticket(store, SLAResolver(store), ticket, now)

    # ----- periodic loop -----

    async def _loop(self) -> None:
        if self.startup_delay_seconds:
            await asyncio.sleep(self.startup_delay_seconds)
        while True:
            try:
                await asyncio.to_thread(self.run_sweep)
            except Exception as exc:  # noqa: BLE001
                logger.warning("SLA sweep failed: %s", exc)
            await asyncio.sleep(self.interval_seconds)

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._loop(), name="sla-escalation-scheduler")
        logger.info("SLA escalation scheduler started (every %s seconds)", self.interval_seconds)

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("SLA escalation scheduler stopped")

"""Notification dispatchers for due-soon warnings and breach escalations."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Protocol

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sla_engine.core.exceptions import NotificationDispatchError
from sla_engine.models.enums import NotificationKind
from sla_engine.models.notification import Notification

logger = logging.getLogger(__name__)

_SEVERITY = {
    NotificationKind.due_soon: "warning",
    NotificationKind.escalated: "critical",
}
_TITLES = {
    NotificationKind.due_soon: "SLA due soon: ticket {ticket_id}",
    NotificationKind.escalated: "SLA breached, ticket {ticket_id} escalated",
}


class NotificationDispatcher(Protocol):
    def dispatch(self, kind: NotificationKind, ticket_id: Any, text: str) -> None:
        """Hand one notification to its transport or raise NotificationDispatchError."""


class DatabaseNotificationDispatcher:
    """Stores notifications as in-app rows read by the web UI."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.session_factory = session_factory

    def dispatch(self, kind: NotificationKind, ticket_id: Any, text: str) -> None:
        db = self.session_factory()
        try:
            db.add(
                Notification(
                    ticket_id=ticket_id,
                    kind=kind,
                    title=_TITLES[kind].format(ticket_id=ticket_id),
                    body=text,
                    severity=_SEVERITY[kind],
                    source="sla",
                )
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise NotificationDispatchError(f"notification_insert_failed: {exc.__class__.__name__}", kind=kind.value) from exc
        finally:
            db.close()


class WebhookNotificationDispatcher:
    """POSTs notifications as JSON to an external relay (mail, chat, push)."""

    def __init__(self, url: str, *, timeout: float = 10.0, client: httpx.Client | None = None) -> None:
        self.url = url
        self.timeout = timeout
        self._client = client

    def _post(self, client: httpx.Client, payload: dict[str, Any]) -> httpx.Response:
        return client.post(self.url, json=payload, headers={"Accept": "application/json"})

    def dispatch(self, kind: NotificationKind, ticket_id: Any, text: str) -> None:
        payload = {
            "kind": kind.value,
            "ticket_id": ticket_id,
            "title": _TITLES[kind].format(ticket_id=ticket_id),
            "text": text,
            "severity": _SEVERITY[kind],
        }
        try:
            if self._client is not None:
                response = self._post(self._client, payload)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = self._post(client, payload)
        except httpx.HTTPError as exc:
            raise NotificationDispatchError(f"webhook_request_failed: {exc.__class__.__name__}", kind=kind.value) from exc

        if response.status_code >= 400:
            raise NotificationDispatchError(
                "webhook_rejected",
                kind=kind.value,
                status_code=response.status_code,
            )


def build_dispatcher(config, session_factory: Callable[[], Session]) -> NotificationDispatcher:  # noqa: ANN001
    url = (config.SLA_NOTIFICATION_WEBHOOK_URL or "").strip()
    if url:
        return WebhookNotificationDispatcher(url, timeout=config.SLA_NOTIFY_TIMEOUT_SECONDS)
    return DatabaseNotificationDispatcher(session_factory)


def dispatch_with_retry(
    dispatcher: NotificationDispatcher,
    kind: NotificationKind,
    ticket_id: Any,
    text: str,
    *,
    max_attempts: int,
    backoff: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Try a bounded number of times, then log and drop. Returns True when delivered."""
    attempts = max(1, max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            dispatcher.dispatch(kind, ticket_id, text)
            return True
        except NotificationDispatchError as exc:
            if attempt >= attempts:
                logger.warning(
                    "Dropping %s notification for ticket %s after %s attempt(s): %s",
                    kind.value,
                    ticket_id,
                    attempt,
                    exc.message,
                )
                return False
            sleep(backoff)
            backoff *= 2
    return False

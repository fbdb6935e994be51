"""Prometheus instruments shared across the service."""

from __future__ import annotations

from prometheus_client import Counter

AUTH_EVENTS = Counter(
    "user_service_auth_events_total",
    "Account and authentication workflow outcomes.",
    ["event", "outcome"],
)

NOTIFICATIONS = Counter(
    "user_service_notifications_total",
    "Notification dispatch outcomes.",
    ["kind", "outcome"],
)


def record_auth_event(event: str, outcome: str) -> None:
    AUTH_EVENTS.labels(event=event, outcome=outcome).inc()


def record_notification(kind: str, outcome: str) -> None:
    NOTIFICATIONS.labels(kind=kind, outcome=outcome).inc()

"""
Delivery of post-commit side effects.

Notifications, realtime events and audit entries are sent after the task
write has committed. A failing collaborator is logged and reported as a
failed ``EffectOutcome``; it never undoes or fails the workflow step.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

from ..models.effects import AuditEntry, NotificationRequest, RealtimeEvent

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def send(self, request: NotificationRequest) -> None:
        ...


class RealtimePublisher(Protocol):
    def publish(self, event: RealtimeEvent) -> None:
        ...


class AuditSink(Protocol):
    def record(self, entry: AuditEntry) -> None:
        ...


@dataclass
class EffectOutcome:
    """Result of delivering one side effect."""
    kind: str  # notification, realtime or audit
    target: str
    ok: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {"kind": self.kind, "target": self.target, "ok": self.ok, "error": self.error}


@dataclass
class EffectBatch:
    """Side effects produced by one workflow step."""
    notifications: list[NotificationRequest] = field(default_factory=list)
    events: list[RealtimeEvent] = field(default_factory=list)
    audit: list[AuditEntry] = field(default_factory=list)

    def notify(self, request: NotificationRequest) -> None:
        self.notifications.append(request)

    def emit(self, event: RealtimeEvent) -> None:
        self.events.append(event)

    def log(self, entry: AuditEntry) -> None:
        self.audit.append(entry)


class LogNotifier:
    """Writes notifications to the application log."""

    def send(self, request: NotificationRequest) -> None:
        logger.info(
            "Notify %s [%s/%s]: %s",
            request.recipient_id,
            request.type.value,
            request.priority.value,
            request.title,
        )


class LogRealtimePublisher:
    def publish(self, event: RealtimeEvent) -> None:
        target = ",".join(event.target_users) or f"role:{event.target_role}"
        logger.info("Realtime %s -> %s", event.event_name, target)


class LogAuditSink:
    def record(self, entry: AuditEntry) -> None:
        logger.info("Audit %s %s %s by %s", entry.action, entry.resource, entry.resource_id, entry.actor_id)


class RecordingSink:
    """Keeps every delivered effect in memory; usable as all three collaborators."""

    def __init__(self):
        self.notifications: list[NotificationRequest] = []
        self.events: list[RealtimeEvent] = []
        self.audit: list[AuditEntry] = []

    def send(self, request: NotificationRequest) -> None:
        self.notifications.append(request)

    def publish(self, event: RealtimeEvent) -> None:
        self.events.append(event)

    def record(self, entry: AuditEntry) -> None:
        self.audit.append(entry)


class EffectDispatcher:
    """Sends an ``EffectBatch`` to the configured collaborators."""

    def __init__(
        self,
        notifier: Optional[Notifier] = None,
        publisher: Optional[RealtimePublisher] = None,
        audit_sink: Optional[AuditSink] = None,
    ):
        self.notifier = notifier or LogNotifier()
        self.publisher = publisher or LogRealtimePublisher()
        self.audit_sink = audit_sink or LogAuditSink()

    def _deliver(self, kind: str, target: str, send, payload) -> EffectOutcome:
        try:
            send(payload)
        except Exception as exc:
            logger.exception("Failed to deliver %s to %s", kind, target)
            return EffectOutcome(kind=kind, target=target, ok=False, error=str(exc))
        return EffectOutcome(kind=kind, target=target, ok=True)

    def dispatch(self, batch: EffectBatch) -> list[EffectOutcome]:
        """Deliver every effect in the batch, one outcome per effect."""
        outcomes = []
        for request in batch.notifications:
            outcomes.append(
                self._deliver("notification", request.recipient_id, self.notifier.send, request)
            )
        for event in batch.events:
            outcomes.append(
                self._deliver("realtime", event.event_name, self.publisher.publish, event)
            )
        for entry in batch.audit:
            outcomes.append(
                self._deliver("audit", entry.action, self.audit_sink.record, entry)
            )

        failed = sum(1 for o in outcomes if not o.ok)
        if failed:
            logger.warning("%d of %d side effects failed", failed, len(outcomes))
        return outcomes

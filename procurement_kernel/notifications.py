"""
Notification fan-out.

Responsibility:
    Tell the next actor (a role, or a specific user) that something needs
    their attention.  Called by services after a transition commits.

Architecture position:
    Kernel.  Depends on the entity store contract for ``StoreNotifier``.

Invariants enforced:
    - Fire-and-forget: ``NotificationFanout.send`` never raises.  A failing
      notifier is logged at WARNING and the transition stands.

Failure modes:
    (none surfaced to callers)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from procurement_kernel.domain.clock import Clock
from procurement_kernel.domain.identity import Role
from procurement_kernel.logging_config import get_logger
from procurement_kernel.store.base import EntityStore

logger = get_logger("notifications")

NOTIFICATIONS_COLLECTION = "notifications"


class NotificationKind(str, Enum):
    REQUEST_SUBMITTED = "request_submitted"
    REQUEST_FORWARDED = "request_forwarded"
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"
    PREPARATION_READY = "preparation_ready"
    DELIVERY_RECORDED = "delivery_recorded"
    GRN_CREATED = "grn_created"
    GRN_APPROVED = "grn_approved"
    GRN_REJECTED = "grn_rejected"
    QC_RECORDED = "qc_recorded"
    INVOICE_GENERATED = "invoice_generated"
    INVOICE_VARIANCE = "invoice_variance"
    PAYMENT_RECORDED = "payment_recorded"
    STOCK_DISPATCHED = "stock_dispatched"


Recipient = Role | str


def recipient_key(recipient: Recipient) -> str:
    return recipient.value if isinstance(recipient, Role) else str(recipient)


class Notifier(Protocol):
    def notify(self, recipient: str, message_kind: str, related_id: str) -> None: ...


@dataclass(frozen=True)
class SentNotification:
    recipient: str
    message_kind: str
    related_id: str


class RecordingNotifier:
    """Keeps every notification in memory (tests, dry runs)."""

    def __init__(self) -> None:
        self.sent: list[SentNotification] = []

    def notify(self, recipient: str, message_kind: str, related_id: str) -> None:
        self.sent.append(SentNotification(recipient, message_kind, related_id))

    def for_recipient(self, recipient: Recipient) -> list[SentNotification]:
        key = recipient_key(recipient)
        return [n for n in self.sent if n.recipient == key]


class StoreNotifier:
    """Writes an unread notification document under ``notifications/{recipient}``."""

    def __init__(self, store: EntityStore, clock: Clock):
        self._store = store
        self._clock = clock

    def notify(self, recipient: str, message_kind: str, related_id: str) -> None:
        self._store.append(
            f"{NOTIFICATIONS_COLLECTION}/{recipient}",
            {
                "recipient": recipient,
                "messageKind": message_kind,
                "relatedId": related_id,
                "status": "unread",
                "createdAt": self._clock.now_millis(),
            },
        )

    def mark_read(self, recipient: str, notification_id: str) -> None:
        self._store.patch(
            f"{NOTIFICATIONS_COLLECTION}/{recipient}/{notification_id}",
            {"status": "read", "readAt": self._clock.now_millis()},
        )

    def unread(self, recipient: str) -> dict[str, dict]:
        return {
            nid: doc
            for nid, doc in self._store.list(
                f"{NOTIFICATIONS_COLLECTION}/{recipient}"
            ).items()
            if doc.get("status") == "unread"
        }


class NotificationFanout:
    """Best-effort delivery to one or more recipients."""

    def __init__(self, notifier: Notifier | None = None):
        self._notifier = notifier

    def send(
        self,
        recipients: tuple[Recipient | None, ...] | list[Recipient | None],
        message_kind: NotificationKind,
        related_id: str,
    ) -> int:
        """Notify each distinct recipient; return how many deliveries succeeded."""
        if self._notifier is None:
            return 0
        delivered = 0
        seen: set[str] = set()
        for recipient in recipients:
            if not recipient:
                continue
            key = recipient_key(recipient)
            if key in seen:
                continue
            seen.add(key)
            try:
                self._notifier.notify(key, message_kind.value, related_id)
                delivered += 1
            except Exception:
                logger.warning(
                    "notification_failed",
                    extra={
                        "recipient": key,
                        "message_kind": message_kind.value,
                        "related_id": related_id,
                    },
                    exc_info=True,
                )
        return delivered

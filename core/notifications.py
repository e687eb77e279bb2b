# core/notifications.py
"""
Best-effort notification delivery.

Workflows hand messages to the dispatcher only after their own transaction
has committed. Delivery runs on a background pool; a failing delivery is
logged and counted, never raised back into the workflow.
"""
from __future__ import annotations
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Set

log = logging.getLogger(__name__)


class TemplateKind(str, Enum):
    GRADES_TO_HOMEROOM = "grades_to_homeroom"
    GRADES_TO_PARENT = "grades_to_parent"
    DISCIPLINARY_CASE_SENT = "disciplinary_case_sent"


class Notifier(Protocol):
    def notify(self, recipient_email: str, template_kind: TemplateKind, payload: Dict[str, Any]) -> None:
        ...


class LoggingNotifier:
    """Default transport: writes the message to the log instead of sending it."""

    def notify(self, recipient_email: str, template_kind: TemplateKind, payload: Dict[str, Any]) -> None:
        log.info("notify %s <%s>: %s", template_kind.value, recipient_email, payload)


@dataclass
class Notification:
    recipient_email: str
    template_kind: TemplateKind
    payload: Dict[str, Any] = field(default_factory=dict)


class NotificationDispatcher:
    def __init__(self, notifier: Optional[Notifier] = None, workers: int = 2, enabled: bool = True):
        self.notifier = notifier or LoggingNotifier()
        self.enabled = enabled
        self._pool = ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="notify")
        self._lock = threading.Lock()
        self._pending: Set[Future] = set()
        self.delivered = 0
        self.failed = 0

    def enqueue(self, notification: Notification) -> Optional[Future]:
        if not self.enabled:
            log.debug("Notifications disabled, dropping %s for %s",
                      notification.template_kind.value, notification.recipient_email)
            return None
        if not notification.recipient_email:
            log.warning("Skipping %s notification: recipient has no email", notification.template_kind.value)
            with self._lock:
                self.failed += 1
            return None
        future = self._pool.submit(self._deliver, notification)
        with self._lock:
            self._pending.add(future)
        # may run at once if the delivery already finished
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def enqueue_all(self, notifications: List[Notification]) -> int:
        return sum(1 for n in notifications if self.enqueue(n) is not None)

    def _deliver(self, notification: Notification) -> bool:
        try:
            self.notifier.notify(notification.recipient_email, notification.template_kind, notification.payload)
        except Exception as e:
            log.warning(
                "Notification %s to %s failed: %s",
                notification.template_kind.value, notification.recipient_email, e,
            )
            with self._lock:
                self.failed += 1
            return False
        with self._lock:
            self.delivered += 1
        return True

    def flush(self, timeout: Optional[float] = None) -> None:
        """Block until every queued delivery has finished (or timeout)."""
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {"delivered": self.delivered, "failed": self.failed}

    def pending_count(self) -> int:
        """Deliveries queued or in flight."""
        with self._lock:
            return len(self._pending)

    def shutdown(self) -> None:
        self.flush()
        self._pool.shutdown(wait=True)

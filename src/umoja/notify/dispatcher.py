"""Notification dispatcher — fire-and-forget delivery over a queue.

Workflow transitions schedule SMS/email notifications but must never
wait on, or fail because of, the delivery channel. The dispatcher puts
each message on a queue that a daemon worker drains; any exception the
notifier raises is logged and swallowed at this boundary.

Usage:
    dispatcher = NotificationDispatcher(LoggingNotifier())
    dispatcher.dispatch("+254700000000", "Your account has been verified.")
    dispatcher.close()
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Delivery channel. Implementations may raise on failure."""

    def send(self, recipient: str, message: str) -> None:
        ...


class LoggingNotifier:
    """Writes messages to the log instead of delivering them."""

    def send(self, recipient: str, message: str) -> None:
        logger.info("Notification to %s: %s", recipient, message)


@dataclass(frozen=True)
class SentMessage:
    recipient: str
    message: str


class RecordingNotifier:
    """Keeps every message in memory. Used for dry runs and tests."""

    def __init__(self) -> None:
        self.sent: list[SentMessage] = []
        self._lock = threading.Lock()

    def send(self, recipient: str, message: str) -> None:
        with self._lock:
            self.sent.append(SentMessage(recipient, message))


_STOP = object()


class NotificationDispatcher:
    """Queues notifications for background delivery.

    With background=False delivery happens inline, still swallowing
    failures, which keeps single-process tools and tests deterministic.
    """

    def __init__(self, notifier: Notifier, background: bool = True) -> None:
        self._notifier = notifier
        self._background = background
        self._queue: queue.Queue = queue.Queue()
        self._worker: Optional[threading.Thread] = None
        if background:
            self._worker = threading.Thread(
                target=self._run, name="notification-dispatcher", daemon=True,
            )
            self._worker.start()

    def dispatch(self, recipient: Optional[str], message: str) -> None:
        """Schedule a message. Never blocks on delivery, never raises."""
        if not recipient:
            logger.warning("Dropping notification with no recipient: %s", message)
            return
        if self._background:
            self._queue.put((recipient, message))
        else:
            self._deliver(recipient, message)

    def drain(self) -> None:
        """Block until every queued message has been attempted."""
        if self._background:
            self._queue.join()

    def close(self) -> None:
        """Deliver what is queued, then stop the worker."""
        if self._worker is not None and self._worker.is_alive():
            self._queue.put(_STOP)
            self._worker.join()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                recipient, message = item
                self._deliver(recipient, message)
            finally:
                self._queue.task_done()

    def _deliver(self, recipient: str, message: str) -> None:
        try:
            self._notifier.send(recipient, message)
        except Exception:
            logger.error("Notification delivery to %s failed", recipient, exc_info=True)


# ----------------------------------------------------------------------
# Message templates
# ----------------------------------------------------------------------

def farmer_approved_message(first_name: str) -> str:
    return (
        f"UmojaHub: Congratulations {first_name}! Your farmer account has been "
        f"verified. You can now list your produce on the marketplace."
    )


def farmer_rejected_message(reason: str) -> str:
    return (
        f"UmojaHub: Your verification was not approved. Reason: {reason}. "
        f"Re-submit with correct documents."
    )


def project_verified_message(first_name: str, project_title: str) -> str:
    return (
        f"Congratulations {first_name}! Your project \"{project_title}\" has been "
        f"VERIFIED on UmojaHub."
    )


def peer_review_assigned_message(first_name: str, project_title: str) -> str:
    return (
        f"UmojaHub: Hi {first_name}, you have been assigned to peer review "
        f"\"{project_title}\"."
    )

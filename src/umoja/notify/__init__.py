"""Outbound notification dispatch."""

from umoja.notify.dispatcher import (
    LoggingNotifier,
    NotificationDispatcher,
    Notifier,
    RecordingNotifier,
)

__all__ = ["LoggingNotifier", "NotificationDispatcher", "Notifier", "RecordingNotifier"]

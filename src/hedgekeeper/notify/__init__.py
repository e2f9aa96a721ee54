"""Notification layer -- Telegram delivery and per-kind rate limiting."""

from hedgekeeper.notify.alerts import AlertService
from hedgekeeper.notify.notifier import LogNotifier, Notifier, TelegramNotifier, build_notifier
from hedgekeeper.notify.rate_limiter import AlertKind, AlertRateLimiter

__all__ = [
    "AlertKind",
    "AlertRateLimiter",
    "AlertService",
    "LogNotifier",
    "Notifier",
    "TelegramNotifier",
    "build_notifier",
]

"""Best-effort alert emission with per-kind rate limiting."""

from hedgekeeper.logging import get_logger
from hedgekeeper.notify.notifier import Notifier
from hedgekeeper.notify.rate_limiter import AlertKind, AlertRateLimiter

logger = get_logger(__name__)


class AlertService:
    """Front door for every outbound message.

    Delivery failures are logged and never propagate into the cycle.
    """

    def __init__(self, notifier: Notifier, limiter: AlertRateLimiter) -> None:
        self._notifier = notifier
        self._limiter = limiter

    async def alert(self, kind: AlertKind, text: str) -> bool:
        """Send a rate-limited alert. Returns False when suppressed by the cool-down."""
        if not self._limiter.allow(kind):
            logger.debug("alert_suppressed", kind=kind.value)
            return False
        await self.send(text)
        return True

    async def send(self, text: str) -> None:
        """Send without rate limiting (batch reports)."""
        try:
            await self._notifier.send(text)
        except Exception:
            logger.warning("notification_failed", exc_info=True)

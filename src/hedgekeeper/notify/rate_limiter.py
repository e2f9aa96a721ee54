"""Per-kind alert cool-downs."""

import time
from collections.abc import Callable
from enum import Enum


class AlertKind(str, Enum):
    """Alert families with independently tracked cool-downs."""

    CYCLE_ERROR = "cycle_error"
    NO_DECREASE_PERCENT = "no_decrease_percent"
    NO_DECREASE = "no_decrease"
    SUMMARY = "summary"


class AlertRateLimiter:
    """Holds one last-sent timestamp per alert kind.

    Construct once per process and share it with every alert emitter.
    Kinds without a configured cool-down are never limited.
    """

    def __init__(
        self,
        cooldowns: dict[AlertKind, float],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cooldowns = dict(cooldowns)
        self._clock = clock
        self._last_sent: dict[AlertKind, float] = {}

    def allow(self, kind: AlertKind) -> bool:
        """Return True and record the send if the kind's cool-down has elapsed."""
        now = self._clock()
        cooldown = self._cooldowns.get(kind, 0.0)
        last = self._last_sent.get(kind)
        if last is not None and now - last < cooldown:
            return False
        self._last_sent[kind] = now
        return True

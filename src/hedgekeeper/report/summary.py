"""Positions and NAV summary messages."""

import time
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal

from hedgekeeper.logging import get_logger
from hedgekeeper.models import RiskSnapshot
from hedgekeeper.notify.alerts import AlertService
from hedgekeeper.notify.rate_limiter import AlertKind
from hedgekeeper.tunables import TunableParams

logger = get_logger(__name__)

_TWO_PLACES = Decimal("0.01")


def positions_text(snapshot: RiskSnapshot) -> str:
    lines = ["Positions"]
    for token, row in snapshot.tokens.items():
        long_amount = sum(
            (p.amount for p in row.positions.values() if p is not None and p.amount > 0),
            Decimal("0"),
        )
        lines.append(f"{token}: amount={long_amount} notional={row.token_notional}")
    lines.append(f"TotalNotional: {snapshot.total_positive_notional}")
    return "\n".join(lines)


def risk_text(snapshot: RiskSnapshot, params: TunableParams) -> str:
    lines = ["Risk"]
    for name, info in snapshot.exchange_risk.items():
        account = snapshot.accounts.get(name)
        equity = account.total_equity if account else Decimal("0")
        gross = info.gross_notional
        leverage = (gross / equity).quantize(_TWO_PLACES) if equity > 0 else Decimal("0")
        lines.append(
            f"{name}: equity={equity.quantize(_TWO_PLACES)} "
            f"notional={gross} leverage={leverage} tokens={info.position_counter}"
        )
    nav = snapshot.total_equity.quantize(_TWO_PLACES)
    lines.append(f"Nav: {nav}")
    if params.shares > 0:
        nav_pct = (snapshot.total_equity / params.shares * 100).quantize(_TWO_PLACES)
        lines.append(f"Nav%: {nav_pct}")
    return "\n".join(lines)


class SummaryReporter:
    """Sends the positions and risk summary.

    From the main cycle the summary goes out only on minutes divisible by
    interval_minutes and at most once per min_gap_seconds (enforced by the
    SUMMARY cool-down of the shared rate limiter). The reporting cycle
    sends unconditionally.
    """

    def __init__(
        self,
        alerts: AlertService,
        interval_minutes: int = 20,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._alerts = alerts
        self._interval_minutes = interval_minutes
        self._clock = clock

    def render(self, snapshot: RiskSnapshot, params: TunableParams) -> str:
        return positions_text(snapshot) + "\n\n" + risk_text(snapshot, params)

    async def run(self, snapshot: RiskSnapshot, params: TunableParams) -> bool:
        """Send if due. Returns True when sent."""
        minute = datetime.fromtimestamp(self._clock(), tz=timezone.utc).minute
        if self._interval_minutes <= 0 or minute % self._interval_minutes != 0:
            return False
        sent = await self._alerts.alert(AlertKind.SUMMARY, self.render(snapshot, params))
        if sent:
            logger.info("summary_sent", minute=minute)
        return sent

    async def send(self, snapshot: RiskSnapshot, params: TunableParams) -> None:
        await self._alerts.send(self.render(snapshot, params))
        logger.info("summary_report_sent")

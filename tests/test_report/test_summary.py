"""Tests for positions and NAV summaries."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from conftest import make_snapshot

from hedgekeeper.models import RiskSnapshot
from hedgekeeper.notify.alerts import AlertService
from hedgekeeper.notify.rate_limiter import AlertKind
from hedgekeeper.report.summary import SummaryReporter, positions_text, risk_text
from hedgekeeper.tunables import TunableParams

AT_MINUTE_20 = 1_700_000_400.0  # 2023-11-14 22:20:00 UTC
AT_MINUTE_21 = 1_700_000_460.0


def _make_valued_snapshot() -> RiskSnapshot:
    snapshot = make_snapshot(
        {"BTC": {"A": "1", "B": "-1"}},
        equities={"A": "600", "B": "400"},
        names=("A", "B"),
    )
    snapshot.tokens["BTC"].token_notional = Decimal("100")
    snapshot.total_positive_notional = Decimal("100")
    risk_a, risk_b = snapshot.exchange_risk["A"], snapshot.exchange_risk["B"]
    risk_a.positive_notional = risk_a.total_notional = Decimal("100")
    risk_b.negative_notional = risk_b.total_notional = Decimal("-100")
    risk_a.position_counter = risk_b.position_counter = 1
    return snapshot


class TestRender:
    def test_positions_text(self) -> None:
        text = positions_text(_make_valued_snapshot())
        assert text.splitlines() == [
            "Positions",
            "BTC: amount=1 notional=100",
            "TotalNotional: 100",
        ]

    def test_risk_text(self, params: TunableParams) -> None:
        text = risk_text(_make_valued_snapshot(), params)
        assert text.splitlines() == [
            "Risk",
            "A: equity=600.00 notional=100 leverage=0.17 tokens=1",
            "B: equity=400.00 notional=100 leverage=0.25 tokens=1",
            "Nav: 1000.00",
            "Nav%: 10.00",
        ]

    def test_zero_equity_venue(self, params: TunableParams) -> None:
        snapshot = make_snapshot({}, names=("A",))
        assert "A: equity=0.00 notional=0 leverage=0 tokens=0" in risk_text(snapshot, params)


class TestSummaryReporter:
    @pytest.mark.asyncio
    async def test_run_sends_on_interval_minute(self, params: TunableParams) -> None:
        alerts = AsyncMock(spec=AlertService)
        alerts.alert.return_value = True
        reporter = SummaryReporter(alerts, interval_minutes=20, clock=lambda: AT_MINUTE_20)

        assert await reporter.run(_make_valued_snapshot(), params) is True

        kind, text = alerts.alert.await_args.args
        assert kind is AlertKind.SUMMARY
        assert text.startswith("Positions\n")
        assert "\n\nRisk\n" in text

    @pytest.mark.asyncio
    async def test_run_skips_other_minutes(self, params: TunableParams) -> None:
        alerts = AsyncMock(spec=AlertService)
        reporter = SummaryReporter(alerts, interval_minutes=20, clock=lambda: AT_MINUTE_21)

        assert await reporter.run(_make_valued_snapshot(), params) is False
        alerts.alert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rate_limited_summary_not_counted(self, params: TunableParams) -> None:
        alerts = AsyncMock(spec=AlertService)
        alerts.alert.return_value = False
        reporter = SummaryReporter(alerts, interval_minutes=20, clock=lambda: AT_MINUTE_20)

        assert await reporter.run(_make_valued_snapshot(), params) is False

    @pytest.mark.asyncio
    async def test_send_is_unconditional(self, params: TunableParams) -> None:
        alerts = AsyncMock(spec=AlertService)
        reporter = SummaryReporter(alerts, interval_minutes=20, clock=lambda: AT_MINUTE_21)

        await reporter.send(_make_valued_snapshot(), params)

        alerts.send.assert_awaited_once()

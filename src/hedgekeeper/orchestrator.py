"""Cycle orchestrator -- one non-reentrant pass over every venue.

Each cycle:
  1. LOAD: tunables (cached), stop early when paused
  2. SNAPSHOT: balances and positions from every venue
  3. LEVERAGE: drift positions back to the target leverage
  4. REBALANCE: trim long/short imbalance, stop here if anything fired
  5. FUNDING: build the cross-venue funding table
  6. DECREASE: reduce positions when a venue's margin usage asks for it
  7. SETTLE: lock profit on pairs whose spread clears the dynamic bar
  8. SUMMARY: periodic positions/NAV message

The orchestrator does not schedule itself. Whatever triggers it (ticker,
manual call, test) goes through the same reentrancy guard: a trigger that
arrives while a cycle is running is logged and dropped. No exception
escapes run_cycle().
"""

import time
from enum import Enum

from hedgekeeper.config import KeeperSettings
from hedgekeeper.exchange.venues import VenueSet
from hedgekeeper.logging import bind_trace, clear_trace, get_logger
from hedgekeeper.market_data.funding import FundingFeeAggregator
from hedgekeeper.models import DecreaseSignal, RiskSnapshot
from hedgekeeper.notify.alerts import AlertService
from hedgekeeper.notify.rate_limiter import AlertKind
from hedgekeeper.position.rebalancer import Rebalancer
from hedgekeeper.position.reducer import PositionReducer
from hedgekeeper.position.settlement import SettlementEngine
from hedgekeeper.report.summary import SummaryReporter
from hedgekeeper.risk.aggregator import RiskAggregator
from hedgekeeper.risk.leverage import LeverageSynchronizer
from hedgekeeper.tunables import TunableParams, TunableProvider

logger = get_logger(__name__)


class CycleOutcome(str, Enum):
    """How a cycle trigger ended."""

    DROPPED = "dropped"
    PAUSED = "paused"
    REBALANCED = "rebalanced"
    DECREASED = "decreased"
    SETTLED = "settled"
    IDLE = "idle"
    FAILED = "failed"


class Orchestrator:
    """Runs keeper cycles.

    Args:
        venues: Ordered venue set (decrease signal source).
        tunables: Tunable parameter provider.
        risk_aggregator: Snapshot builder.
        leverage: Leverage synchronizer.
        rebalancer: Long/short balance restorer.
        funding_aggregator: Funding table builder.
        reducer: Risk-driven reducer.
        settlement: Profit-lock engine.
        summary: Summary reporter.
        alerts: Cycle error alerts.
        settings: Keeper settings (decrease percent).
    """

    def __init__(
        self,
        venues: VenueSet,
        tunables: TunableProvider,
        risk_aggregator: RiskAggregator,
        leverage: LeverageSynchronizer,
        rebalancer: Rebalancer,
        funding_aggregator: FundingFeeAggregator,
        reducer: PositionReducer,
        settlement: SettlementEngine,
        summary: SummaryReporter,
        alerts: AlertService,
        settings: KeeperSettings | None = None,
    ) -> None:
        self._venues = venues
        self._tunables = tunables
        self._risk_aggregator = risk_aggregator
        self._leverage = leverage
        self._rebalancer = rebalancer
        self._funding_aggregator = funding_aggregator
        self._reducer = reducer
        self._settlement = settlement
        self._summary = summary
        self._alerts = alerts
        self._settings = settings or KeeperSettings()
        self._running = False
        self._reporting = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def run_cycle(self) -> CycleOutcome:
        """Run one cycle unless one is already running."""
        if self._running:
            logger.warning("cycle_already_running_dropped")
            return CycleOutcome.DROPPED

        self._running = True
        trace_id = bind_trace()
        started = time.monotonic()
        outcome = CycleOutcome.FAILED
        try:
            outcome = await self._cycle()
        except Exception as e:
            logger.error("orchestrator_cycle_error", error=str(e), exc_info=True)
            await self._alerts.alert(
                AlertKind.CYCLE_ERROR, f"{trace_id} cross manager run error: {e}"
            )
        finally:
            self._running = False
            logger.info(
                "cycle_finished",
                outcome=outcome.value,
                cost_ms=int((time.monotonic() - started) * 1000),
            )
            clear_trace()
        return outcome

    async def run_report(self) -> bool:
        """Build a fresh snapshot and send the summary. Returns True when sent."""
        if self._reporting:
            logger.warning("report_already_running_dropped")
            return False

        self._reporting = True
        trace_id = bind_trace("cross-report")
        try:
            params = await self._tunables.get()
            snapshot = await self._risk_aggregator.build()
            await self._summary.send(snapshot, params)
            return True
        except Exception as e:
            logger.error("report_cycle_error", error=str(e), exc_info=True)
            await self._alerts.alert(AlertKind.CYCLE_ERROR, f"{trace_id} report error: {e}")
            return False
        finally:
            self._reporting = False
            clear_trace()

    def decrease_signal(self, snapshot: RiskSnapshot, params: TunableParams) -> DecreaseSignal:
        """First non-NONE signal among venues, in configured order."""
        for adapter in self._venues:
            signal = adapter.is_decrease(snapshot, params)
            logger.info("decrease_signal_checked", exchange=adapter.name, signal=signal.name)
            if signal is not DecreaseSignal.NONE:
                return signal
        return DecreaseSignal.NONE

    async def _cycle(self) -> CycleOutcome:
        params = await self._tunables.get()
        if params.pause:
            logger.info("keeper_paused")
            return CycleOutcome.PAUSED

        snapshot = await self._risk_aggregator.build()
        await self._leverage.sync(snapshot)

        if await self._rebalancer.rebalance(snapshot, params):
            logger.info("cycle_stopped_after_rebalance")
            return CycleOutcome.REBALANCED

        rows = await self._funding_aggregator.build()

        outcome = CycleOutcome.IDLE
        signal = self.decrease_signal(snapshot, params)
        decreased = False
        if signal is DecreaseSignal.DECREASE_PERCENT:
            decreased = await self._reducer.decrease(
                snapshot, rows, params, percent=self._settings.decrease_percent
            )
        elif signal is DecreaseSignal.DECREASE:
            decreased = await self._reducer.decrease(snapshot, rows, params)

        # settlement sees the pre-decrease snapshot; its orders are reduce-only
        settled = await self._settlement.run(snapshot, rows, params)
        if decreased:
            outcome = CycleOutcome.DECREASED
        elif settled:
            outcome = CycleOutcome.SETTLED

        await self._summary.run(snapshot, params)
        return outcome

"""Entry point for the hedge keeper.

Wires all components together and runs the cycle scheduler until SIGINT or
SIGTERM.

Component wiring order (in _build_components):
1. KeeperDatabase + key-value store (cache, tunables, token map)
2. Venue adapters (ccxt) in configured order
3. Market data cache, quantity sizer, order coordinator
4. Notifier, rate limiter, alert service
5. Aggregators, decision engines, summary reporter
6. Orchestrator
"""

import asyncio
import signal
from typing import Any

from hedgekeeper.config import AppSettings
from hedgekeeper.data.database import KeeperDatabase
from hedgekeeper.data.keys import CacheKeys
from hedgekeeper.data.store import (
    ConfigRepository,
    PositionOpenStore,
    SqliteKeyValueStore,
    TokenRepository,
)
from hedgekeeper.exchange.ccxt_adapter import CcxtExchangeAdapter
from hedgekeeper.exchange.venues import TokenRegistry, VenueSet
from hedgekeeper.execution.coordinator import OrderCoordinator
from hedgekeeper.logging import get_logger, setup_logging
from hedgekeeper.market_data.book_cache import MarketDataCache
from hedgekeeper.market_data.funding import FundingFeeAggregator
from hedgekeeper.notify.alerts import AlertService
from hedgekeeper.notify.notifier import build_notifier
from hedgekeeper.notify.rate_limiter import AlertKind, AlertRateLimiter
from hedgekeeper.orchestrator import Orchestrator
from hedgekeeper.position.rebalancer import Rebalancer
from hedgekeeper.position.reducer import PositionReducer
from hedgekeeper.position.settlement import SettlementEngine
from hedgekeeper.position.sizing import QuantitySizer
from hedgekeeper.report.summary import SummaryReporter
from hedgekeeper.risk.aggregator import RiskAggregator
from hedgekeeper.risk.leverage import LeverageSynchronizer
from hedgekeeper.scheduler import CycleScheduler
from hedgekeeper.tunables import TunableProvider


async def _build_components(settings: AppSettings, database: KeeperDatabase) -> dict[str, Any]:
    """Build the dependency graph on an already connected database.

    Note: Does NOT connect the venue adapters -- run() does that.
    """
    if not settings.exchange.venues:
        raise ValueError("No venues configured (EXCHANGE_VENUES)")

    keys = CacheKeys(settings.cache.namespace)
    kv = SqliteKeyValueStore(database)
    registry = await TokenRegistry.load(TokenRepository(database))

    venues = VenueSet([CcxtExchangeAdapter(venue) for venue in settings.exchange.venues])

    market_data = MarketDataCache(kv, keys, stale_after=settings.cache.orderbook_stale_seconds)
    sizer = QuantitySizer(venues, registry)
    coordinator = OrderCoordinator(venues, settings.execution)

    notifier = build_notifier(settings.notifier)
    limiter = AlertRateLimiter(
        {
            AlertKind.CYCLE_ERROR: settings.notifier.error_cooldown,
            AlertKind.NO_DECREASE_PERCENT: settings.notifier.no_decrease_percent_cooldown,
            AlertKind.NO_DECREASE: settings.notifier.no_decrease_cooldown,
            AlertKind.SUMMARY: settings.keeper.summary_min_gap_seconds,
        }
    )
    alerts = AlertService(notifier, limiter)

    tunables = TunableProvider(
        kv,
        ConfigRepository(database),
        keys,
        settings.keeper.project,
        ttl_seconds=settings.cache.config_ttl_seconds,
    )

    orchestrator = Orchestrator(
        venues=venues,
        tunables=tunables,
        risk_aggregator=RiskAggregator(venues, registry, market_data),
        leverage=LeverageSynchronizer(venues, registry, settings.keeper.target_leverage),
        rebalancer=Rebalancer(venues, registry, market_data, sizer, coordinator, alerts),
        funding_aggregator=FundingFeeAggregator(venues, registry),
        reducer=PositionReducer(
            venues,
            registry,
            market_data,
            sizer,
            coordinator,
            alerts,
            usd_per_order=settings.keeper.usd_per_order,
        ),
        settlement=SettlementEngine(
            venues,
            registry,
            market_data,
            sizer,
            coordinator,
            alerts,
            PositionOpenStore(kv, keys),
            settings.keeper,
        ),
        summary=SummaryReporter(alerts, settings.keeper.summary_interval_minutes),
        alerts=alerts,
        settings=settings.keeper,
    )

    return {
        "kv": kv,
        "venues": venues,
        "registry": registry,
        "notifier": notifier,
        "orchestrator": orchestrator,
    }


def _build_scheduler(settings: AppSettings, components: dict[str, Any]) -> CycleScheduler:
    orchestrator: Orchestrator = components["orchestrator"]
    kv: SqliteKeyValueStore = components["kv"]

    scheduler = CycleScheduler()
    scheduler.add_job("cycle", settings.keeper.cycle_interval, orchestrator.run_cycle)
    scheduler.add_job("report", settings.keeper.report_interval, orchestrator.run_report)
    scheduler.add_job("kv_purge", settings.cache.purge_interval, kv.purge_expired)
    return scheduler


def _setup_signal_handlers(stop_event: asyncio.Event) -> None:
    """SIGINT/SIGTERM stop the scheduler after in-flight cycles finish."""
    logger = get_logger("hedgekeeper.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


async def run() -> None:
    settings = AppSettings()
    setup_logging(settings.log_level)
    logger = get_logger("hedgekeeper.main")

    async with KeeperDatabase(settings.cache.db_path) as database:
        components = await _build_components(settings, database)
        venues: VenueSet = components["venues"]

        logger.info(
            "hedge_keeper_starting",
            project=settings.keeper.project,
            venues=venues.names,
            tokens=len(components["registry"].tokens),
            cycle_interval=settings.keeper.cycle_interval,
        )

        stop_event = asyncio.Event()
        _setup_signal_handlers(stop_event)

        scheduler = _build_scheduler(settings, components)

        try:
            await asyncio.gather(*(adapter.connect() for adapter in venues))
            await scheduler.start()
            await stop_event.wait()
        finally:
            await scheduler.stop()
            await asyncio.gather(
                *(adapter.close() for adapter in venues), return_exceptions=True
            )
            await components["notifier"].close()
            logger.info("hedge_keeper_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()

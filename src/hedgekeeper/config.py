"""Configuration system using pydantic-settings with environment variable loading.

Static process configuration only. Decision tunables that operators change
while the keeper runs live in the store and are parsed by
hedgekeeper.tunables.
"""

from decimal import Decimal

from pydantic import BaseModel, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class VenueSettings(BaseModel):
    """Connection settings for one derivatives venue."""

    name: str  # venue identifier used in cache keys, e.g. "ASTER"
    ccxt_id: str  # ccxt exchange class, e.g. "binanceusdm"
    api_key: SecretStr = SecretStr("")
    api_secret: SecretStr = SecretStr("")
    password: SecretStr | None = None
    settle_asset: str = "USDT"
    default_funding_interval_hours: int = 8
    options: dict = {}


class ExchangeSettings(BaseSettings):
    """Ordered venue list. Order defines every "first venue" tie-break."""

    model_config = SettingsConfigDict(env_prefix="EXCHANGE_")

    venues: list[VenueSettings] = []


class KeeperSettings(BaseSettings):
    """Cycle cadence and fixed sizing constants."""

    model_config = SettingsConfigDict(env_prefix="KEEPER_")

    project: str = "cross-arbitrage"
    cycle_interval: float = 30.0  # seconds between main cycles
    report_interval: float = 1200.0  # seconds between summary reports
    usd_per_order: Decimal = Decimal("200")
    target_leverage: int = 5
    settlement_taker_limit: int = 3  # max settlement orders per cycle
    decrease_percent: Decimal = Decimal("0.2")
    funding_bias_window_hours: int = 8
    extreme_window_minutes: int = 30
    summary_interval_minutes: int = 20
    summary_min_gap_seconds: float = 200.0
    record_open_times: bool = True


class ExecutionSettings(BaseSettings):
    """Order placement and completion polling."""

    model_config = SettingsConfigDict(env_prefix="EXECUTION_")

    initial_delay: float = 1.0
    jitter: float = 0.5
    poll_interval: float = 1.0
    max_polls: int = 10


class CacheSettings(BaseSettings):
    """Key-value cache and relational store location."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    db_path: str = "data/keeper.db"
    namespace: str = "KV"
    orderbook_stale_seconds: float = 5.0
    config_ttl_seconds: int = 4 * 60 * 60
    purge_interval: float = 3600.0  # seconds between expired-row sweeps


class NotifierSettings(BaseSettings):
    """Telegram delivery and alert cool-downs."""

    model_config = SettingsConfigDict(env_prefix="NOTIFY_")

    telegram_token: SecretStr = SecretStr("")
    chat_id: str = ""
    channel: str = "arbitrage"
    timeout: float = 10.0
    error_cooldown: float = 30.0
    no_decrease_percent_cooldown: float = 60.0
    no_decrease_cooldown: float = 300.0


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    exchange: ExchangeSettings = ExchangeSettings()
    keeper: KeeperSettings = KeeperSettings()
    execution: ExecutionSettings = ExecutionSettings()
    cache: CacheSettings = CacheSettings()
    notifier: NotifierSettings = NotifierSettings()

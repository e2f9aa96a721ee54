"""Operator-tunable decision parameters.

Tunables are key/value rows per project in the relational store. They are
validated into TunableParams and cached in the key-value store so a cycle
does not hit the database every time. Editing a row takes effect once the
cached blob expires.
"""

import json
import re
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from hedgekeeper.data.keys import CacheKeys
from hedgekeeper.data.store import ConfigRepository, KeyValueStore
from hedgekeeper.exceptions import MissingConfigError
from hedgekeeper.logging import get_logger

logger = get_logger(__name__)

_MARGIN_RATIO_KEY = re.compile(r"^(?P<venue>[A-Z0-9]+)_MARGIN_RATIO_(?P<level>[123])$")


class TunableParams(BaseModel):
    """Validated tunables. Field aliases are the upper-case store keys."""

    model_config = ConfigDict(alias_generator=str.upper, populate_by_name=True, frozen=True)

    pause: bool
    shares: Decimal
    rebalance_max_usd_amount: Decimal
    decrease_price_delta_bps: Decimal
    max_reduce_position_counter: int
    settlement_price_delta_bps_min: Decimal
    settlement_price_delta_bps_max: Decimal
    settlement_price_delta_tolerate_bps: Decimal
    settlement_hold_max_hours: Decimal
    settlement_funding_fee_max_bad_bps: Decimal
    settlement_funding_fee_extreme_bad_bps: Decimal

    token_banned_list: list[str] = []

    margin_ratios: dict[str, tuple[Decimal, Decimal, Decimal]] = {}

    @field_validator("pause", mode="before")
    @classmethod
    def _zero_is_false(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() != "0"
        return value

    @field_validator("token_banned_list", mode="before")
    @classmethod
    def _split_tokens(cls, value: object) -> object:
        if isinstance(value, str):
            return [token.strip().upper() for token in value.split(",") if token.strip()]
        return value

    def margin_ratios_for(self, exchange: str) -> tuple[Decimal, Decimal, Decimal] | None:
        return self.margin_ratios.get(exchange.upper())

    def is_banned(self, token: str) -> bool:
        return token.upper() in self.token_banned_list


def required_keys() -> list[str]:
    """Store keys that must be present for every project."""
    return [name.upper() for name, info in TunableParams.model_fields.items() if info.is_required()]


def parse_tunables(rows: dict[str, str]) -> TunableParams:
    """Validate raw store rows into TunableParams.

    Raises:
        MissingConfigError: If a required key is absent or a value does not parse.
    """
    rows = {key.strip().upper(): value for key, value in rows.items()}

    missing = [key for key in required_keys() if key not in rows]
    if missing:
        raise MissingConfigError(f"Missing tunable keys: {', '.join(missing)}")

    ratios: dict[str, dict[int, str]] = {}
    plain: dict[str, str] = {}
    for key, value in rows.items():
        match = _MARGIN_RATIO_KEY.match(key)
        if match:
            ratios.setdefault(match["venue"], {})[int(match["level"])] = value
        else:
            plain[key] = value

    margin_ratios = {}
    for venue, levels in ratios.items():
        if set(levels) != {1, 2, 3}:
            raise MissingConfigError(f"Incomplete margin ratios for {venue}: levels {sorted(levels)}")
        margin_ratios[venue] = (Decimal(levels[1]), Decimal(levels[2]), Decimal(levels[3]))

    known = {name.upper() for name in TunableParams.model_fields}
    try:
        return TunableParams.model_validate(
            {key: value for key, value in plain.items() if key in known}
            | {"MARGIN_RATIOS": margin_ratios}
        )
    except ValidationError as e:
        raise MissingConfigError(f"Invalid tunables: {e}") from e


class TunableProvider:
    """Loads tunables for one project through the key-value cache.

    Args:
        kv: Key-value store holding the cached blob.
        repository: Relational config rows.
        keys: Cache key builder.
        project: Project whose rows are loaded.
        ttl_seconds: Lifetime of the cached blob.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        repository: ConfigRepository,
        keys: CacheKeys,
        project: str,
        ttl_seconds: int = 4 * 60 * 60,
    ) -> None:
        self._kv = kv
        self._repository = repository
        self._keys = keys
        self._project = project
        self._ttl_seconds = ttl_seconds

    async def get(self) -> TunableParams:
        """Return the project's tunables, reading the store on a cache miss."""
        cache_key = self._keys.config(self._project)
        blob = await self._kv.get(cache_key)
        if blob is not None:
            return parse_tunables(json.loads(blob))

        rows = await self._repository.load(self._project)
        if not rows:
            raise MissingConfigError(f"No tunables stored for project {self._project}")

        params = parse_tunables(rows)
        await self._kv.set(cache_key, json.dumps(rows), ttl_seconds=self._ttl_seconds)
        logger.info("tunables_loaded", project=self._project, keys=len(rows))
        return params

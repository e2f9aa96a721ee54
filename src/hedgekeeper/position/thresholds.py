"""Required price delta for locking profit on a hedged pair.

The bar starts at the configured maximum and falls toward the minimum as
the pair earns funding for the holder and as holding time approaches
the maximum holding window:

    start     = clamp(max + clamp(cost, -(max - min), max - min), min, max)
    holdRatio = clamp(hold / maxHold, 0, 1)
    required  = min + (start - min) * (1 - holdRatio)

cost is what holding the pair pays in funding, in bps per funding window
(negative when the pair earns). Close to the next funding settlement, funding
adversity past the "max bad" level blends the bar further toward a
tolerated floor. Every result lies within [min, max].
"""

from decimal import Decimal

from hedgekeeper.models import FundingFeeRow, Side
from hedgekeeper.tunables import TunableParams

_HOURS_PER_YEAR = Decimal(365 * 24)
_MS_PER_HOUR = Decimal(3_600_000)
_ZERO = Decimal("0")
_ONE = Decimal("1")


def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(high, value))


def funding_cost_bps(row: FundingFeeRow, base_side: Side, window_hours: int = 8) -> Decimal:
    """Funding paid in bps per window for a pair held with base_side on the base venue."""
    annual_bps = abs(row.total) * 100
    per_window = annual_bps * Decimal(window_hours) / _HOURS_PER_YEAR
    return -per_window if base_side is Side.for_funding_total(row.total) else per_window


def required_delta(
    hold_ms: Decimal,
    cost_bps: Decimal,
    min_bps: Decimal,
    max_bps: Decimal,
    max_hold_ms: Decimal,
) -> Decimal:
    spread = max_bps - min_bps
    start = clamp(max_bps + clamp(cost_bps, -spread, spread), min_bps, max_bps)
    hold_ratio = clamp(hold_ms / max_hold_ms, _ZERO, _ONE) if max_hold_ms > 0 else _ZERO
    return min_bps + (start - min_bps) * (_ONE - hold_ratio)


def extreme_override(
    threshold: Decimal,
    hold_ms: Decimal,
    cost_bps: Decimal,
    params: TunableParams,
) -> Decimal:
    """Blend threshold toward the tolerated floor by funding and holding extremity."""
    min_bps = params.settlement_price_delta_bps_min
    max_bps = params.settlement_price_delta_bps_max
    floor = clamp(params.settlement_price_delta_tolerate_bps, min_bps, max_bps)

    hold_max_hours = params.settlement_hold_max_hours
    if hold_max_hours > 0:
        hold_hours = hold_ms / _MS_PER_HOUR
        extreme_time = clamp((hold_hours - hold_max_hours) / hold_max_hours, _ZERO, _ONE)
    else:
        extreme_time = _ZERO

    max_bad = params.settlement_funding_fee_max_bad_bps
    extreme_bad = params.settlement_funding_fee_extreme_bad_bps
    if extreme_bad > max_bad:
        extreme_funding = clamp((cost_bps - max_bad) / (extreme_bad - max_bad), _ZERO, _ONE)
    else:
        extreme_funding = _ONE if cost_bps > max_bad else _ZERO

    strength = _ONE - (_ONE - extreme_funding) * (_ONE - extreme_time)
    return (_ONE - strength) * threshold + strength * floor


def settlement_threshold(
    hold_ms: Decimal,
    cost_bps: Decimal,
    params: TunableParams,
    near_funding: bool = False,
) -> Decimal:
    """Required delta in bps for the current pair."""
    min_bps = params.settlement_price_delta_bps_min
    max_bps = params.settlement_price_delta_bps_max
    threshold = required_delta(
        hold_ms,
        cost_bps,
        min_bps,
        max_bps,
        params.settlement_hold_max_hours * _MS_PER_HOUR,
    )
    if near_funding:
        threshold = extreme_override(threshold, hold_ms, cost_bps, params)
    return clamp(threshold, min_bps, max_bps)

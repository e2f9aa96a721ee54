"""Venue layer -- adapter contract, ccxt implementation, and symbol mapping."""

from hedgekeeper.exchange.adapter import ExchangeAdapter
from hedgekeeper.exchange.ccxt_adapter import CcxtExchangeAdapter
from hedgekeeper.exchange.types import merge_qty_filters, round_to_step, snap_quantity
from hedgekeeper.exchange.venues import TokenRegistry, VenueSet

__all__ = [
    "CcxtExchangeAdapter",
    "ExchangeAdapter",
    "TokenRegistry",
    "VenueSet",
    "merge_qty_filters",
    "round_to_step",
    "snap_quantity",
]

"""Market data layer -- cached order books, index prices, price delta and funding table."""

from hedgekeeper.market_data.book_cache import MarketDataCache
from hedgekeeper.market_data.funding import FundingFeeAggregator, annualize
from hedgekeeper.market_data.price_delta import compute_price_delta, live_price_delta

__all__ = [
    "FundingFeeAggregator",
    "MarketDataCache",
    "annualize",
    "compute_price_delta",
    "live_price_delta",
]

"""Custom exceptions for the hedge keeper.

All adapter, configuration and execution exceptions live here
to avoid circular imports between modules.
"""


class KeeperError(Exception):
    """Base exception for all keeper errors."""


class MissingConfigError(KeeperError):
    """Raised when a required tunable parameter is absent for the project."""


class AdapterError(KeeperError):
    """Raised when a venue adapter cannot answer a request."""


class OrderExecutionError(KeeperError):
    """Raised when a batch of corrective orders fails."""


class OrderTimeoutError(OrderExecutionError):
    """Raised when an order does not reach a terminal state within the poll budget."""


class PartialFillError(OrderExecutionError):
    """Raised when exactly one leg of a two-leg order fails.

    The surviving leg leaves the pair unhedged; the next cycle's rebalance
    pass sees the imbalance and restores it.
    """

    def __init__(self, message: str, failed_exchange: str, filled_exchange: str) -> None:
        super().__init__(message)
        self.failed_exchange = failed_exchange
        self.filled_exchange = filled_exchange

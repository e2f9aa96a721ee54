"""Exchange-specific quantity helpers.

All monetary values use Decimal. Never use float for prices, quantities, or fees.
"""

from decimal import Decimal

from hedgekeeper.models import QtyFilter


def round_to_step(value: Decimal, step: Decimal) -> Decimal:
    """Round a value down to the nearest step increment.

    Uses integer division to ensure we always round DOWN (never up),
    which prevents exceeding position sizes.
    """
    return (value // step) * step


def snap_quantity(quantity: Decimal, qty_filter: QtyFilter) -> Decimal:
    """Snap a quantity onto the venue grid, or zero when below the minimum.

    The result is always a multiple of step_size and snapping is idempotent:
    a snapped value is already on the grid and at or above min_qty.
    """
    if quantity <= 0 or qty_filter.step_size <= 0:
        return Decimal("0")
    snapped = round_to_step(quantity, qty_filter.step_size)
    if snapped < qty_filter.min_qty:
        return Decimal("0")
    return snapped


def merge_qty_filters(filters: list[QtyFilter]) -> QtyFilter:
    """Combine venue filters into the coarser shared one.

    Takes the larger min_qty and the larger step so a quantity valid for the
    result is valid on every venue whose steps divide the coarser step.
    """
    return QtyFilter(
        min_qty=max(f.min_qty for f in filters),
        step_size=max(f.step_size for f in filters),
    )

"""
Inventory netting and low-stock replenishment.

Netting is unit-exact: 200 g of demand is only reduced by stock recorded in
g, never by stock in pièces. No cross-unit conversion is attempted.
"""

from decimal import Decimal
from typing import Any, Iterable

from .demand import DemandLine, DemandMap, DemandOrigin, UnitQuantity
from .normalize import normalize_ingredient_name, normalize_unit, capitalize_first

# (normalized name, normalized unit) -> quantity on hand
StockSnapshot = dict[tuple[str, str], Decimal]


def _as_decimal(value) -> Decimal:
    if value is None:
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def build_stock_snapshot(items: Iterable[Any]) -> StockSnapshot:
    """Sum on-hand quantities by normalized (name, unit)."""
    snapshot: StockSnapshot = {}
    for item in items:
        key = (normalize_ingredient_name(item.name), normalize_unit(item.unit))
        snapshot[key] = snapshot.get(key, Decimal(0)) + _as_decimal(item.quantity)
    return snapshot


def net_against_stock(demand: DemandMap, snapshot: StockSnapshot) -> DemandMap:
    """Reduce demand by on-hand stock.

    Stock applied to one sub-total is taken out of `snapshot`, so it can't be
    counted twice. Sub-totals that reach zero are dropped, and so are lines
    left without sub-totals.
    """
    netted: DemandMap = {}

    for key, line in demand.items():
        remaining_quantities: list[UnitQuantity] = []

        for qu in line.quantities:
            in_stock = snapshot.get((key, qu.unit), Decimal(0))
            if in_stock > 0:
                remaining = max(Decimal(0), qu.quantity - in_stock)
                snapshot[(key, qu.unit)] = in_stock - min(qu.quantity, in_stock)
                if remaining > 0:
                    remaining_quantities.append(UnitQuantity(remaining, qu.unit, qu.origin))
            else:
                remaining_quantities.append(UnitQuantity(qu.quantity, qu.unit, qu.origin))

        if remaining_quantities:
            netted[key] = DemandLine(
                key=key, name=line.name, quantities=remaining_quantities, aisle=line.aisle
            )

    return netted


def select_low_stock(items: Iterable[Any]) -> list[Any]:
    """Items at or under their reorder threshold."""
    return [
        item for item in items
        if _as_decimal(item.quantity) <= _as_decimal(item.min_quantity)
    ]


def replenishment_quantity(current: Decimal, min_quantity: Decimal) -> Decimal:
    """How much to buy to get back to `min_quantity`; at least 1 when at/under it."""
    to_buy = max(Decimal(0), min_quantity - current)
    if to_buy == 0 and current <= min_quantity:
        to_buy = Decimal(1)
    return to_buy


def fold_low_stock(
    demand: DemandMap,
    low_stock_items: Iterable[Any],
    snapshot: StockSnapshot,
) -> DemandMap:
    """Add replenishment for low-stock items into `demand` (in place).

    `snapshot` is the one left behind by netting, so stock already earmarked
    for planned meals is not counted as available here. Touched sub-totals
    are tagged `DemandOrigin.STOCK`.

    Every item passed in is at or under its own threshold and gets at least 1,
    even when near-duplicate rows folded into the same snapshot key hold
    enough stock between them.
    """
    for item in low_stock_items:
        key = normalize_ingredient_name(item.name)
        if not key:
            continue
        unit = normalize_unit(item.unit)

        current = snapshot.get((key, unit), _as_decimal(item.quantity))
        to_buy = max(replenishment_quantity(current, _as_decimal(item.min_quantity)), Decimal(1))

        line = demand.get(key)
        if line is None:
            line = DemandLine(key=key, name=capitalize_first(key), aisle=item.aisle)
            demand[key] = line
        line.add(to_buy, unit, DemandOrigin.STOCK)

    return demand

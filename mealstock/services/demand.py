"""
Ingredient demand aggregation.

Walks (recipe, planned servings) pairs and totals the scaled ingredient
quantities per normalized name. Lines are keyed by name only; each line keeps
one sub-total per normalized unit, so "200 g" and "1 pièce" of the same
ingredient stay on one line as two quantities.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional

from .normalize import normalize_ingredient_name, normalize_unit, capitalize_first

DEFAULT_BASE_SERVINGS = 4


class DemandOrigin(str, Enum):
    RECIPE = "recipe"  # needed for planned meals
    STOCK = "stock"    # needed to restock a low inventory item


@dataclass
class UnitQuantity:
    quantity: Decimal
    unit: str  # normalized; "" means countable
    origin: DemandOrigin = DemandOrigin.RECIPE


@dataclass
class DemandLine:
    key: str
    name: str
    quantities: list[UnitQuantity] = field(default_factory=list)
    aisle: Optional[str] = None

    def find(self, unit: str) -> Optional[UnitQuantity]:
        for qu in self.quantities:
            if qu.unit == unit:
                return qu
        return None

    def add(self, quantity: Decimal, unit: str, origin: DemandOrigin = DemandOrigin.RECIPE) -> UnitQuantity:
        existing = self.find(unit)
        if existing is None:
            existing = UnitQuantity(quantity=Decimal(0), unit=unit, origin=origin)
            self.quantities.append(existing)
        existing.quantity += quantity
        if origin is DemandOrigin.STOCK:
            existing.origin = DemandOrigin.STOCK
        return existing

    @property
    def is_low_stock(self) -> bool:
        return any(qu.origin is DemandOrigin.STOCK for qu in self.quantities)


# normalized name -> line, in first-seen order
DemandMap = dict[str, DemandLine]


@dataclass
class AggregationReport:
    meals_total: int = 0
    meals_counted: int = 0
    unresolved_recipes: int = 0
    recipes_without_ingredients: int = 0
    ingredients_counted: int = 0

    def to_dict(self) -> dict:
        return {
            "meals_total": self.meals_total,
            "meals_counted": self.meals_counted,
            "unresolved_recipes": self.unresolved_recipes,
            "recipes_without_ingredients": self.recipes_without_ingredients,
            "ingredients_counted": self.ingredients_counted,
        }


def scale_factor(
    planned_servings: Optional[int],
    base_servings: Optional[int],
    default_base_servings: int = DEFAULT_BASE_SERVINGS,
) -> Decimal:
    """planned / base as an unrounded Decimal ratio."""
    planned = Decimal(planned_servings or 1)
    base = Decimal(base_servings or default_base_servings)
    return planned / base


def portions_from_meals(meals: Iterable[Any]) -> list[tuple[Any, Optional[int]]]:
    """PlannedMeal rows -> (recipe or None, servings) pairs."""
    return [(meal.recipe, meal.servings) for meal in meals]


def aggregate_demand(
    portions: Iterable[tuple[Any, Optional[int]]],
    *,
    default_base_servings: int = DEFAULT_BASE_SERVINGS,
    report: Optional[AggregationReport] = None,
) -> DemandMap:
    """Total scaled ingredient demand per normalized name.

    `portions` yields (recipe, planned_servings). A recipe exposes
    `base_servings` and `ingredients`; each ingredient exposes `name`, `qty`,
    `unit` and `aisle`. Missing recipes and recipes without ingredients are
    skipped and counted on `report`.
    """
    report = report if report is not None else AggregationReport()
    aggregated: DemandMap = {}

    for recipe, servings in portions:
        report.meals_total += 1
        if recipe is None:
            report.unresolved_recipes += 1
            continue
        ingredients = list(recipe.ingredients or [])
        if not ingredients:
            report.recipes_without_ingredients += 1
            continue

        report.meals_counted += 1
        multiplier = scale_factor(servings, recipe.base_servings, default_base_servings)

        for ing in ingredients:
            key = normalize_ingredient_name(ing.name)
            if not key:
                continue

            base_qty = Decimal(str(ing.qty)) if ing.qty is not None else Decimal(1)
            needed = base_qty * multiplier

            line = aggregated.get(key)
            if line is None:
                line = DemandLine(key=key, name=capitalize_first(key), aisle=ing.aisle)
                aggregated[key] = line
            line.add(needed, normalize_unit(ing.unit))
            report.ingredients_counted += 1

    return aggregated


def iter_rows(demand: DemandMap):
    """Flatten to one (line, sub-total) pair per (name, unit)."""
    for line in demand.values():
        for qu in line.quantities:
            yield line, qu

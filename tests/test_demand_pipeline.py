"""Pure pipeline tests: aggregation, netting and low-stock folding (no database)."""

from decimal import Decimal
from types import SimpleNamespace

from mealstock.services.demand import (
    AggregationReport,
    DemandOrigin,
    aggregate_demand,
    iter_rows,
    scale_factor,
)
from mealstock.services.netting import (
    build_stock_snapshot,
    fold_low_stock,
    net_against_stock,
    replenishment_quantity,
    select_low_stock,
)


def ing(name, qty=None, unit=None, aisle=None):
    return SimpleNamespace(name=name, qty=qty, unit=unit, aisle=aisle)


def recipe(*ingredients, base_servings=4):
    return SimpleNamespace(base_servings=base_servings, ingredients=list(ingredients))


def stock(name, quantity, unit=None, min_quantity=0, aisle=None):
    return SimpleNamespace(
        name=name, quantity=Decimal(str(quantity)), unit=unit,
        min_quantity=Decimal(str(min_quantity)), aisle=aisle,
    )


def rows(demand):
    return {(line.key, qu.unit): (qu.quantity, qu.origin) for line, qu in iter_rows(demand)}


# --- Aggregation ---

def test_scaling_by_servings_ratio():
    demand = aggregate_demand([(recipe(ing("Farine", 200, "g")), 6)])
    assert demand["farine"].quantities[0].quantity == Decimal(300)


def test_scale_factor_is_not_rounded():
    assert scale_factor(6, 4) == Decimal("1.5")
    assert scale_factor(1, 3) < Decimal("0.34")
    assert scale_factor(1, 3) > Decimal("0.33")
    assert scale_factor(None, None) == Decimal(1) / Decimal(4)
    assert scale_factor(2, 0, default_base_servings=2) == Decimal(1)


def test_missing_qty_counts_as_one_unit():
    demand = aggregate_demand([(recipe(ing("Citron")), 8)])
    assert demand["citron"].quantities[0].quantity == Decimal(2)
    assert demand["citron"].quantities[0].unit == ""


def test_equivalent_names_merge_with_unit_subtotals():
    demand = aggregate_demand([
        (recipe(ing("Onion", 1, "piece")), 4),
        (recipe(ing("oignon", 2)), 4),
    ])
    assert list(demand) == ["oignon"]
    line = demand["oignon"]
    assert line.name == "Oignon"
    assert {qu.unit: qu.quantity for qu in line.quantities} == {
        "pièce": Decimal(1),
        "": Decimal(2),
    }


def test_same_unit_sums_across_recipes():
    demand = aggregate_demand([
        (recipe(ing("Tomatoes", 200, "g")), 2),
        (recipe(ing("tomate", 100, "grams"), base_servings=2), 2),
    ])
    assert rows(demand) == {("tomate", "g"): (Decimal(200), DemandOrigin.RECIPE)}


def test_aisle_comes_from_first_ingredient_seen():
    demand = aggregate_demand([
        (recipe(ing("Riz", 100, "g", aisle="pasta")), 4),
        (recipe(ing("riz", 100, "g", aisle="grains")), 4),
    ])
    assert demand["riz"].aisle == "pasta"


def test_unresolvable_and_empty_recipes_are_reported():
    report = AggregationReport()
    demand = aggregate_demand(
        [(None, 2), (recipe(), 2), (recipe(ing("Sel", 1, "pincée"), ing("  ", 3)), 4)],
        report=report,
    )
    assert list(demand) == ["sel"]
    assert report.meals_total == 3
    assert report.meals_counted == 1
    assert report.unresolved_recipes == 1
    assert report.recipes_without_ingredients == 1
    assert report.ingredients_counted == 1


# --- Netting ---

def test_netting_subtracts_matching_stock():
    demand = aggregate_demand([(recipe(ing("Pâtes", 400, "g")), 2)])
    snapshot = build_stock_snapshot([stock("pâtes", 100, "g")])

    netted = net_against_stock(demand, snapshot)

    assert rows(netted) == {("pâtes", "g"): (Decimal(100), DemandOrigin.RECIPE)}
    assert snapshot[("pâtes", "g")] == Decimal(0)


def test_netting_drops_lines_fully_covered():
    demand = aggregate_demand([(recipe(ing("Riz", 200, "g")), 4)])
    snapshot = build_stock_snapshot([stock("Riz", 500, "g")])

    netted = net_against_stock(demand, snapshot)

    assert netted == {}
    assert snapshot[("riz", "g")] == Decimal(300)
    # original demand untouched
    assert demand["riz"].quantities[0].quantity == Decimal(200)


def test_netting_never_converts_units():
    demand = aggregate_demand([(recipe(ing("Beurre", 250, "g")), 4)])
    snapshot = build_stock_snapshot([stock("beurre", 1, "pièce")])

    netted = net_against_stock(demand, snapshot)

    assert rows(netted) == {("beurre", "g"): (Decimal(250), DemandOrigin.RECIPE)}
    assert snapshot[("beurre", "pièce")] == Decimal(1)


def test_stock_is_not_counted_twice():
    demand = aggregate_demand([
        (recipe(ing("Oeufs", 4)), 4),
    ])
    snapshot = build_stock_snapshot([stock("oeuf", 3), stock("Eggs", 3)])
    assert snapshot[("oeuf", "")] == Decimal(6)

    netted = net_against_stock(demand, snapshot)

    assert netted == {}
    assert snapshot[("oeuf", "")] == Decimal(2)


# --- Low stock ---

def test_replenishment_quantity():
    assert replenishment_quantity(Decimal(0), Decimal(5)) == Decimal(5)
    assert replenishment_quantity(Decimal(2), Decimal(2)) == Decimal(1)
    assert replenishment_quantity(Decimal(0), Decimal(0)) == Decimal(1)
    assert replenishment_quantity(Decimal(3), Decimal(2)) == Decimal(0)


def test_low_stock_item_at_threshold_adds_one():
    items = [stock("Papier toilette", 2, "rouleau", min_quantity=2, aisle="toiletry:daily")]
    snapshot = build_stock_snapshot(items)

    demand = fold_low_stock({}, select_low_stock(items), snapshot)

    line = demand["papier toilette"]
    assert line.aisle == "toiletry:daily"
    assert line.is_low_stock
    assert rows(demand) == {("papier toilette", "rouleau"): (Decimal(1), DemandOrigin.STOCK)}


def test_items_above_threshold_are_not_low_stock():
    items = [stock("Sucre", 3, "kg", min_quantity=1), stock("Sel", 1, "kg", min_quantity=1)]
    assert [i.name for i in select_low_stock(items)] == ["Sel"]


def test_low_stock_uses_stock_left_after_netting():
    items = [stock("Lait", 2, "l", min_quantity=2)]
    demand = aggregate_demand([(recipe(ing("Milk", 2, "litres")), 4)])
    snapshot = build_stock_snapshot(items)

    netted = net_against_stock(demand, snapshot)
    assert netted == {}

    demand = fold_low_stock(netted, select_low_stock(items), snapshot)
    # the 2 l on hand are earmarked for the meal, so the full threshold is bought
    assert rows(demand) == {("lait", "l"): (Decimal(2), DemandOrigin.STOCK)}


def test_low_stock_merges_into_recipe_subtotal():
    items = [stock("Farine", 100, "g", min_quantity=500)]
    demand = aggregate_demand([(recipe(ing("flour", 300, "g")), 4)])
    snapshot = build_stock_snapshot(items)

    netted = net_against_stock(demand, snapshot)
    assert rows(netted) == {("farine", "g"): (Decimal(200), DemandOrigin.RECIPE)}

    demand = fold_low_stock(netted, select_low_stock(items), snapshot)
    assert rows(demand) == {("farine", "g"): (Decimal(700), DemandOrigin.STOCK)}


def test_low_stock_item_is_listed_when_a_near_duplicate_holds_stock():
    items = [
        stock("Oignon", 5, min_quantity=1),
        stock("oignons", 0, min_quantity=2),
    ]
    snapshot = build_stock_snapshot(items)
    assert snapshot[("oignon", "")] == Decimal(5)

    demand = fold_low_stock({}, select_low_stock(items), snapshot)

    assert rows(demand) == {("oignon", ""): (Decimal(1), DemandOrigin.STOCK)}

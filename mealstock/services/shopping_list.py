"""
Shopping list generation, reads and restocking.

Generation runs one pipeline (aggregate -> net -> fold low stock) and
persists it in one of two ways:

- ATOMIC: planned meals and inventory are read with the inventory rows
  locked, prior lists for the range are replaced, and everything commits
  once. Any failure rolls the whole thing back.
- BEST_EFFORT: the header is committed first and the items second. If the
  items fail, the header is deleted again before the error propagates.

Unlike the other services, generation owns its commits.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ..errors import NotFoundError, ValidationError, require_tenant
from ..models import (
    InventoryItem,
    PlannedMeal,
    Recipe,
    ShoppingList,
    ShoppingListItem,
    INVENTORY_CATEGORIES,
)
from ..settings import settings
from .demand import AggregationReport, DemandMap, aggregate_demand, iter_rows, portions_from_meals
from .inventory_ledger import add_or_merge_item, quantize
from .netting import build_stock_snapshot, fold_low_stock, net_against_stock, select_low_stock
from .normalize import translate_aisle

logger = logging.getLogger("mealstock.shopping")


class GenerationMode(str, Enum):
    ATOMIC = "atomic"
    BEST_EFFORT = "best_effort"


@dataclass
class GenerationResult:
    shopping_list: ShoppingList
    report: AggregationReport


# --- Loading ---

def load_planned_meals(db: Session, workspace_id: str, start: date, end: date) -> list[PlannedMeal]:
    stmt = (
        select(PlannedMeal)
        .options(selectinload(PlannedMeal.recipe).selectinload(Recipe.ingredients))
        .where(
            PlannedMeal.workspace_id == workspace_id,
            PlannedMeal.date >= start,
            PlannedMeal.date <= end,
        )
        .order_by(PlannedMeal.date, PlannedMeal.meal_type, PlannedMeal.id)
    )
    return list(db.scalars(stmt).all())


def load_inventory(db: Session, workspace_id: str, *, lock: bool = False) -> list[InventoryItem]:
    stmt = (
        select(InventoryItem)
        .where(InventoryItem.workspace_id == workspace_id)
        .order_by(InventoryItem.id)
        .execution_options(populate_existing=True)
    )
    if lock:
        stmt = stmt.with_for_update()
    return list(db.scalars(stmt).all())


# --- Pipeline ---

def compute_shopping_demand(
    meals: Iterable[PlannedMeal],
    inventory: list[InventoryItem],
    *,
    default_base_servings: Optional[int] = None,
    report: Optional[AggregationReport] = None,
) -> DemandMap:
    """What to buy for `meals` given `inventory`, low-stock replenishment included."""
    demand = aggregate_demand(
        portions_from_meals(meals),
        default_base_servings=default_base_servings or settings.default_base_servings,
        report=report,
    )
    snapshot = build_stock_snapshot(inventory)
    netted = net_against_stock(demand, snapshot)
    return fold_low_stock(netted, select_low_stock(inventory), snapshot)


def _build_items(demand: DemandMap, shopping_list_id: str) -> list[ShoppingListItem]:
    items = []
    for line, qu in iter_rows(demand):
        quantity = quantize(qu.quantity)
        if quantity <= 0:
            continue
        items.append(ShoppingListItem(
            shopping_list_id=shopping_list_id,
            name=line.name,
            quantity=quantity,
            unit=qu.unit or None,
            aisle=line.aisle,
            origin=qu.origin.value,
            position=len(items),
        ))
    return items


def _delete_lists_for_range(db: Session, workspace_id: str, start: date, end: date) -> int:
    stale = db.scalars(
        select(ShoppingList).where(
            ShoppingList.workspace_id == workspace_id,
            ShoppingList.start_date == start,
            ShoppingList.end_date == end,
        )
    ).all()
    for shopping_list in stale:
        db.delete(shopping_list)
    db.flush()
    return len(stale)


# --- Generation ---

def generate_shopping_list(
    db: Session,
    workspace_id: str,
    start: date,
    end: date,
    *,
    mode: Union[GenerationMode, str, None] = None,
    replace_existing: bool = True,
) -> GenerationResult:
    workspace_id = require_tenant(workspace_id)
    if start > end:
        raise ValidationError(
            "start_date must be on or before end_date",
            context={"start_date": start.isoformat(), "end_date": end.isoformat()},
        )
    mode = GenerationMode(mode or settings.shopping_generation_mode)

    if mode is GenerationMode.ATOMIC:
        result = _generate_atomic(db, workspace_id, start, end, replace_existing)
    else:
        result = _generate_best_effort(db, workspace_id, start, end, replace_existing)

    report = result.report
    logger.info(
        f"Generated shopping list {result.shopping_list.id} ({mode.value}) for workspace {workspace_id} "
        f"{start}..{end}: {len(result.shopping_list.items)} items from "
        f"{report.meals_counted}/{report.meals_total} meals"
    )
    return result


def _generate_atomic(
    db: Session, workspace_id: str, start: date, end: date, replace_existing: bool
) -> GenerationResult:
    report = AggregationReport()
    try:
        meals = load_planned_meals(db, workspace_id, start, end)
        inventory = load_inventory(db, workspace_id, lock=True)
        demand = compute_shopping_demand(meals, inventory, report=report)

        if replace_existing:
            _delete_lists_for_range(db, workspace_id, start, end)

        shopping_list = ShoppingList(
            workspace_id=workspace_id,
            start_date=start,
            end_date=end,
            mode=GenerationMode.ATOMIC.value,
        )
        db.add(shopping_list)
        db.flush()

        db.add_all(_build_items(demand, shopping_list.id))
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(shopping_list)
    return GenerationResult(shopping_list=shopping_list, report=report)


def _generate_best_effort(
    db: Session, workspace_id: str, start: date, end: date, replace_existing: bool
) -> GenerationResult:
    report = AggregationReport()
    meals = load_planned_meals(db, workspace_id, start, end)
    inventory = load_inventory(db, workspace_id)
    demand = compute_shopping_demand(meals, inventory, report=report)

    try:
        if replace_existing:
            _delete_lists_for_range(db, workspace_id, start, end)
        shopping_list = ShoppingList(
            workspace_id=workspace_id,
            start_date=start,
            end_date=end,
            mode=GenerationMode.BEST_EFFORT.value,
        )
        db.add(shopping_list)
        db.flush()
        list_id = shopping_list.id
        db.commit()
    except Exception:
        db.rollback()
        raise

    try:
        db.add_all(_build_items(demand, list_id))
        db.commit()
    except Exception:
        db.rollback()
        logger.warning(f"Item insert failed for shopping list {list_id}, deleting header")
        orphan = db.get(ShoppingList, list_id)
        if orphan is not None:
            db.delete(orphan)
            db.commit()
        raise

    shopping_list = db.get(ShoppingList, list_id)
    db.refresh(shopping_list)
    return GenerationResult(shopping_list=shopping_list, report=report)


# --- Reads & updates ---

def get_shopping_list(db: Session, workspace_id: str, list_id: str) -> Optional[ShoppingList]:
    workspace_id = require_tenant(workspace_id)
    return db.scalar(
        select(ShoppingList).where(
            ShoppingList.id == list_id,
            ShoppingList.workspace_id == workspace_id,
        )
    )


def require_shopping_list(db: Session, workspace_id: str, list_id: str) -> ShoppingList:
    shopping_list = get_shopping_list(db, workspace_id, list_id)
    if shopping_list is None:
        raise NotFoundError("Shopping list not found", context={"shopping_list_id": list_id})
    return shopping_list


def list_items_by_aisle_order(db: Session, shopping_list_id: str) -> list[ShoppingListItem]:
    """Items ordered by aisle (uncategorized last), then name."""
    stmt = (
        select(ShoppingListItem)
        .where(ShoppingListItem.shopping_list_id == shopping_list_id)
        .order_by(ShoppingListItem.aisle.asc().nulls_last(), ShoppingListItem.name)
    )
    return list(db.scalars(stmt).all())


def list_shopping_lists(db: Session, workspace_id: str) -> list[ShoppingList]:
    workspace_id = require_tenant(workspace_id)
    stmt = (
        select(ShoppingList)
        .where(ShoppingList.workspace_id == workspace_id)
        .order_by(ShoppingList.created_at.desc())
    )
    return list(db.scalars(stmt).all())


def set_item_checked(db: Session, workspace_id: str, item_id: str, checked: bool) -> ShoppingListItem:
    workspace_id = require_tenant(workspace_id)
    item = db.scalar(
        select(ShoppingListItem)
        .join(ShoppingList, ShoppingList.id == ShoppingListItem.shopping_list_id)
        .where(
            ShoppingListItem.id == item_id,
            ShoppingList.workspace_id == workspace_id,
        )
    )
    if item is None:
        raise NotFoundError("Shopping list item not found", context={"item_id": item_id})
    item.checked = checked
    db.flush()
    return item


def delete_shopping_list(db: Session, workspace_id: str, list_id: str) -> None:
    shopping_list = require_shopping_list(db, workspace_id, list_id)
    db.delete(shopping_list)
    db.flush()


def group_items_by_aisle(items: Iterable[ShoppingListItem]) -> dict[str, list[ShoppingListItem]]:
    """Group by translated aisle label, in order of first appearance."""
    grouped: dict[str, list[ShoppingListItem]] = {}
    for item in items:
        grouped.setdefault(translate_aisle(item.aisle), []).append(item)
    return grouped


# --- Restocking ---

_CATEGORY_HINTS = (
    ("freezer", ("frozen", "surgelé", "freezer", "congél")),
    ("cleaning", ("cleaning", "nettoyage", "entretien")),
    ("toiletry", ("toiletry", "toilette", "hygiène")),
)


def category_for_aisle(aisle: Optional[str]) -> str:
    """Inventory category a purchased item lands in, guessed from its aisle."""
    if not aisle:
        return "pantry"
    lower = aisle.lower()
    main = lower.partition(":")[0]
    if main in INVENTORY_CATEGORIES:
        return main
    for category, hints in _CATEGORY_HINTS:
        if any(hint in lower for hint in hints):
            return category
    return "pantry"


@dataclass
class RestockedLine:
    item_id: str
    inventory_id: str
    name: str
    quantity: Decimal
    created: bool


@dataclass
class RestockReport:
    shopping_list_id: str
    restocked: list[RestockedLine] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def restock_from_list(
    db: Session,
    workspace_id: str,
    list_id: str,
    purchased: Optional[dict[str, Decimal]] = None,
) -> RestockReport:
    """Credit inventory with what was bought.

    Without `purchased`, every checked item is restocked at its listed
    quantity. With it, only the given item ids are restocked, at the given
    quantities. Items with a zero quantity are skipped. List items are left
    as they are.
    """
    shopping_list = require_shopping_list(db, workspace_id, list_id)
    by_id = {item.id: item for item in shopping_list.items}
    report = RestockReport(shopping_list_id=shopping_list.id)

    if purchased is None:
        selection = [(item, item.quantity) for item in shopping_list.items if item.checked]
    else:
        unknown = [item_id for item_id in purchased if item_id not in by_id]
        if unknown:
            raise NotFoundError(
                "Shopping list item not found", context={"item_ids": unknown}
            )
        selection = [(by_id[item_id], qty) for item_id, qty in purchased.items()]

    for item, qty in selection:
        qty = quantize(qty) if qty is not None else Decimal(0)
        if qty <= 0:
            report.skipped.append(item.id)
            continue
        inventory_item, _, created = add_or_merge_item(
            db,
            workspace_id,
            name=item.name,
            quantity=qty,
            unit=item.unit,
            category=category_for_aisle(item.aisle),
            aisle=item.aisle,
            note="Courses",
        )
        report.restocked.append(RestockedLine(
            item_id=item.id,
            inventory_id=inventory_item.id,
            name=inventory_item.name,
            quantity=qty,
            created=created,
        ))

    logger.info(
        f"Restocked {len(report.restocked)} items from shopping list {shopping_list.id} "
        f"({len(report.skipped)} skipped)"
    )
    return report

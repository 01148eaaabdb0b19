"""
Inventory ledger.

Every change to an item's quantity goes through `_apply_change`, which writes
the new quantity with a compare-and-swap on `InventoryItem.version` and logs
exactly one InventoryTransaction. Two racing deductions can't both start
from the same quantity: the loser re-reads the item and recomputes.

Services flush but don't commit; the router owns the transaction boundary.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Optional

from sqlalchemy import select, update, func
from sqlalchemy.orm import Session, selectinload

from ..errors import (
    ConcurrentUpdateError,
    ConflictError,
    NotFoundError,
    ValidationError,
    require_tenant,
)
from ..models import InventoryItem, InventoryTransaction, PlannedMeal, Recipe, INVENTORY_CATEGORIES
from ..settings import settings
from .demand import scale_factor

logger = logging.getLogger("mealstock.inventory")

QUANTUM = Decimal("0.001")

# (new quantity, signed logged quantity, clamped) or None for "no change"
ChangeFn = Callable[[Decimal], Optional[tuple[Decimal, Decimal, bool]]]


def quantize(value) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(QUANTUM, rounding=ROUND_HALF_UP)


def clean_unit(unit: Optional[str]) -> Optional[str]:
    if unit is None:
        return None
    unit = unit.strip()
    return unit or None


def _require_positive(value, what: str) -> Decimal:
    qty = quantize(value)
    if qty <= 0:
        raise ValidationError(f"{what} must be greater than zero", context={"value": str(value)})
    return qty


# --- Reporting types ---

@dataclass
class DeductedIngredient:
    ingredient: str
    inventory_id: str
    deducted: Decimal
    remaining: Decimal


@dataclass
class SkippedIngredient:
    ingredient: str
    reason: str  # no_match | out_of_stock


@dataclass
class ConsumptionReport:
    planned_meal_id: str
    deducted: list[DeductedIngredient] = field(default_factory=list)
    skipped: list[SkippedIngredient] = field(default_factory=list)


# --- Reads ---

def _item_query(workspace_id: str, item_id: str, *, lock: bool = False):
    stmt = select(InventoryItem).where(
        InventoryItem.id == item_id,
        InventoryItem.workspace_id == workspace_id,
    ).execution_options(populate_existing=True)
    if lock:
        stmt = stmt.with_for_update()
    return stmt


def get_item(db: Session, workspace_id: str, item_id: str) -> Optional[InventoryItem]:
    workspace_id = require_tenant(workspace_id)
    return db.scalar(_item_query(workspace_id, item_id))


def require_item(db: Session, workspace_id: str, item_id: str, *, lock: bool = False) -> InventoryItem:
    workspace_id = require_tenant(workspace_id)
    item = db.scalar(_item_query(workspace_id, item_id, lock=lock))
    if item is None:
        raise NotFoundError("Inventory item not found", context={"inventory_id": item_id})
    return item


def find_matching_item(
    db: Session, workspace_id: str, name: str, unit: Optional[str], *, lock: bool = False
) -> Optional[InventoryItem]:
    """Merge-key lookup: case-insensitive name, exact unit (null matches null)."""
    unit = clean_unit(unit)
    stmt = select(InventoryItem).where(
        InventoryItem.workspace_id == workspace_id,
        func.lower(InventoryItem.name) == func.lower(name.strip()),
        InventoryItem.unit == unit if unit is not None else InventoryItem.unit.is_(None),
    ).execution_options(populate_existing=True)
    if lock:
        stmt = stmt.with_for_update()
    return db.scalars(stmt).first()


def list_items(
    db: Session,
    workspace_id: str,
    *,
    category: Optional[str] = None,
    low_stock: bool = False,
    expiring_soon: bool = False,
    search: Optional[str] = None,
    today: Optional[date] = None,
) -> list[InventoryItem]:
    workspace_id = require_tenant(workspace_id)
    stmt = select(InventoryItem).where(InventoryItem.workspace_id == workspace_id)

    if category:
        stmt = stmt.where(InventoryItem.category == category)
    if low_stock:
        stmt = stmt.where(InventoryItem.quantity <= InventoryItem.min_quantity)
    if expiring_soon:
        horizon = (today or date.today()) + timedelta(days=settings.expiring_soon_days)
        stmt = stmt.where(
            InventoryItem.expiry_date.is_not(None),
            InventoryItem.expiry_date <= horizon,
        )
    if search and search.strip():
        stmt = stmt.where(func.lower(InventoryItem.name).contains(search.strip().lower()))

    stmt = stmt.order_by(InventoryItem.category, InventoryItem.name)
    return list(db.scalars(stmt).all())


def list_transactions(
    db: Session, workspace_id: str, item_id: str, limit: int = 50
) -> list[InventoryTransaction]:
    # Transactions carry no tenant column; authorize through the parent item
    require_item(db, workspace_id, item_id)
    stmt = (
        select(InventoryTransaction)
        .where(InventoryTransaction.inventory_id == item_id)
        .order_by(InventoryTransaction.created_at.desc())
        .limit(limit)
    )
    return list(db.scalars(stmt).all())


# --- Mutations ---

def _apply_change(
    db: Session,
    workspace_id: str,
    item_id: str,
    change: ChangeFn,
    *,
    type: str,
    planned_meal_id: Optional[str] = None,
    note: Optional[str] = None,
    lock: bool = False,
) -> Optional[InventoryTransaction]:
    """Compare-and-swap the item's quantity and log the transaction.

    `change` receives the current quantity and returns
    (new quantity, logged signed quantity, clamped), or None to skip.
    """
    attempts = max(1, settings.ledger_max_retries)

    for attempt in range(attempts):
        item = require_item(db, workspace_id, item_id, lock=lock)
        before = quantize(item.quantity)
        seen_version = item.version

        result = change(before)
        if result is None:
            return None
        after, logged, clamped = result

        res = db.execute(
            update(InventoryItem)
            .where(InventoryItem.id == item.id, InventoryItem.version == seen_version)
            .values(quantity=after, version=seen_version + 1)
        )
        if res.rowcount == 1:
            txn = InventoryTransaction(
                inventory_id=item.id,
                type=type,
                quantity=logged,
                quantity_before=before,
                quantity_after=after,
                clamped=clamped,
                planned_meal_id=planned_meal_id,
                note=note,
            )
            db.add(txn)
            db.flush()
            return txn

        logger.warning(
            f"Lost update race on inventory item {item_id} (attempt {attempt + 1}/{attempts}), retrying"
        )
        db.expire(item)

    raise ConcurrentUpdateError(
        "Inventory item was modified concurrently, please retry",
        context={"inventory_id": item_id},
    )


def add_stock(
    db: Session,
    workspace_id: str,
    item_id: str,
    quantity,
    *,
    note: Optional[str] = None,
) -> InventoryTransaction:
    delta = _require_positive(quantity, "Quantity to add")
    return _apply_change(
        db, workspace_id, item_id,
        lambda before: (before + delta, delta, False),
        type="add", note=note,
    )


def remove_stock(
    db: Session,
    workspace_id: str,
    item_id: str,
    quantity,
    *,
    note: Optional[str] = None,
) -> InventoryTransaction:
    """Deduct stock, flooring at zero.

    The transaction always logs the requested delta. When the floor kicks in
    the row is flagged `clamped` because before + quantity != after.
    """
    delta = _require_positive(quantity, "Quantity to remove")

    def change(before: Decimal):
        after = max(Decimal(0), before - delta)
        return after, -delta, delta > before

    return _apply_change(db, workspace_id, item_id, change, type="remove", note=note)


def adjust_stock(
    db: Session,
    workspace_id: str,
    item_id: str,
    new_quantity,
    *,
    note: Optional[str] = None,
) -> Optional[InventoryTransaction]:
    """Overwrite the quantity, logging the signed difference."""
    target = quantize(new_quantity)
    if target < 0:
        raise ValidationError("Quantity cannot be negative", context={"value": str(new_quantity)})

    def change(before: Decimal):
        if target == before:
            return None
        return target, target - before, False

    return _apply_change(db, workspace_id, item_id, change, type="adjust", note=note)


def expire_stock(
    db: Session,
    workspace_id: str,
    item_id: str,
    quantity=None,
    *,
    note: Optional[str] = None,
) -> Optional[InventoryTransaction]:
    """Write off expired stock (everything on hand when `quantity` is None)."""
    requested = _require_positive(quantity, "Quantity to expire") if quantity is not None else None

    def change(before: Decimal):
        amount = before if requested is None else min(requested, before)
        if amount <= 0:
            return None
        return before - amount, -amount, False

    return _apply_change(
        db, workspace_id, item_id, change, type="expired", note=note or "Périmé"
    )


def add_or_merge_item(
    db: Session,
    workspace_id: str,
    *,
    name: str,
    quantity,
    unit: Optional[str] = None,
    category: Optional[str] = None,
    aisle: Optional[str] = None,
    min_quantity=None,
    expiry_date: Optional[date] = None,
    location: Optional[str] = None,
    note: Optional[str] = None,
) -> tuple[InventoryItem, InventoryTransaction, bool]:
    """Add stock to the item with the same merge key, or create it.

    Returns (item, transaction, created).
    """
    workspace_id = require_tenant(workspace_id)
    name = (name or "").strip()
    if not name:
        raise ValidationError("Item name is required")
    delta = _require_positive(quantity, "Quantity to add")
    unit = clean_unit(unit)

    existing = find_matching_item(db, workspace_id, name, unit)
    if existing is not None:
        txn = add_stock(db, workspace_id, existing.id, delta, note=note)
        db.refresh(existing)
        return existing, txn, False

    if category is not None and category not in INVENTORY_CATEGORIES:
        raise ValidationError(f"Unknown inventory category '{category}'")

    item = InventoryItem(
        workspace_id=workspace_id,
        name=name,
        quantity=delta,
        unit=unit,
        category=category or "pantry",
        aisle=aisle,
        min_quantity=quantize(min_quantity) if min_quantity is not None else Decimal(0),
        expiry_date=expiry_date,
        location=location,
    )
    db.add(item)
    db.flush()

    txn = InventoryTransaction(
        inventory_id=item.id,
        type="add",
        quantity=delta,
        quantity_before=Decimal(0),
        quantity_after=delta,
        note=note,
    )
    db.add(txn)
    db.flush()
    logger.info(f"Created inventory item '{name}' ({delta} {unit or ''}) in workspace {workspace_id}")
    return item, txn, True


def update_item(
    db: Session,
    workspace_id: str,
    item_id: str,
    changes: dict,
) -> InventoryItem:
    """Update descriptive fields; a quantity change is logged as `adjust`."""
    item = require_item(db, workspace_id, item_id)
    changes = dict(changes)
    new_quantity = changes.pop("quantity", None)

    if "unit" in changes:
        changes["unit"] = clean_unit(changes["unit"])
    if "category" in changes and changes["category"] not in INVENTORY_CATEGORIES:
        raise ValidationError(f"Unknown inventory category '{changes['category']}'")
    if changes.get("min_quantity") is not None:
        changes["min_quantity"] = quantize(changes["min_quantity"])
        if changes["min_quantity"] < 0:
            raise ValidationError("min_quantity cannot be negative")

    if "name" in changes or "unit" in changes:
        name = (changes.get("name") or item.name).strip()
        unit = changes["unit"] if "unit" in changes else item.unit
        clash = find_matching_item(db, workspace_id, name, unit)
        if clash is not None and clash.id != item.id:
            raise ConflictError(
                "An inventory item with this name and unit already exists",
                context={"inventory_id": clash.id},
            )

    for key, value in changes.items():
        setattr(item, key, value)
    db.flush()

    if new_quantity is not None:
        adjust_stock(db, workspace_id, item_id, new_quantity, note="Manual update")

    db.refresh(item)
    return item


def delete_item(db: Session, workspace_id: str, item_id: str) -> None:
    item = require_item(db, workspace_id, item_id)
    db.delete(item)
    db.flush()


# --- Meal consumption ---

def consume_planned_meal(
    db: Session,
    workspace_id: str,
    planned_meal_id: str,
) -> ConsumptionReport:
    """Deduct a planned meal's ingredients from inventory.

    Quantities are scaled by servings / base_servings. Each ingredient is
    matched on the inventory merge key; unmatched or empty items are
    reported as skipped, never raised. Matched rows are locked for the rest
    of the transaction where the database supports it.
    """
    workspace_id = require_tenant(workspace_id)
    meal = db.scalar(
        select(PlannedMeal)
        .options(selectinload(PlannedMeal.recipe).selectinload(Recipe.ingredients))
        .where(PlannedMeal.id == planned_meal_id, PlannedMeal.workspace_id == workspace_id)
    )
    if meal is None or meal.recipe is None:
        raise NotFoundError("Planned meal not found", context={"planned_meal_id": planned_meal_id})

    recipe = meal.recipe
    multiplier = scale_factor(meal.servings, recipe.base_servings, settings.default_base_servings)
    report = ConsumptionReport(planned_meal_id=meal.id)

    for ing in recipe.ingredients:
        base_qty = Decimal(str(ing.qty)) if ing.qty is not None else Decimal(1)
        needed = quantize(base_qty * multiplier)

        item = find_matching_item(db, workspace_id, ing.name, ing.unit, lock=True)
        if item is None:
            report.skipped.append(SkippedIngredient(ing.name, "no_match"))
            continue

        def change(before: Decimal, needed=needed):
            if before <= 0:
                return None
            deducted = min(before, needed)
            return before - deducted, -deducted, False

        txn = _apply_change(
            db, workspace_id, item.id, change,
            type="meal_used", planned_meal_id=meal.id, note="Utilisé pour recette",
        )
        if txn is None:
            report.skipped.append(SkippedIngredient(ing.name, "out_of_stock"))
            continue

        report.deducted.append(DeductedIngredient(
            ingredient=ing.name,
            inventory_id=item.id,
            deducted=-txn.quantity,
            remaining=txn.quantity_after,
        ))

    logger.info(
        f"Consumed planned meal {meal.id}: {len(report.deducted)} deducted, "
        f"{len(report.skipped)} skipped"
    )
    return report

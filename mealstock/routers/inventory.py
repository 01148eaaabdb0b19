import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import get_db, get_workspace
from ..infra.idempotency import run_ledger_mutation
from ..models import Workspace
from ..services import inventory_ledger

router = APIRouter()
logger = logging.getLogger("mealstock.inventory")


def _change_response(db: Session, workspace: Workspace, item_id: str, txn) -> schemas.StockChangeResponse:
    item = inventory_ledger.require_item(db, workspace.id, item_id)
    return schemas.StockChangeResponse(
        item=schemas.InventoryItemOut.model_validate(item),
        transaction=schemas.InventoryTransactionOut.model_validate(txn) if txn is not None else None,
    )


@router.get("/", response_model=list[schemas.InventoryItemOut])
def list_inventory(
    category: Optional[schemas.InventoryCategory] = None,
    low_stock: bool = False,
    expiring_soon: bool = False,
    q: Optional[str] = None,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """List inventory items with optional filtering."""
    return inventory_ledger.list_items(
        db, workspace.id,
        category=category, low_stock=low_stock, expiring_soon=expiring_soon, search=q,
    )


@router.get("/low-stock", response_model=list[schemas.InventoryItemOut])
def list_low_stock(
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """Items at or under their minimum quantity."""
    return inventory_ledger.list_items(db, workspace.id, low_stock=True)


@router.get("/expiring", response_model=list[schemas.InventoryItemOut])
def list_expiring(
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """Items expiring within the configured horizon, expired ones included."""
    return inventory_ledger.list_items(db, workspace.id, expiring_soon=True)


@router.post("/", response_model=schemas.StockChangeResponse, status_code=status.HTTP_201_CREATED)
def add_inventory_item(
    item_in: schemas.InventoryItemCreate,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """Add stock, merging into the item with the same name and unit if there is one."""
    item, txn, _ = inventory_ledger.add_or_merge_item(
        db,
        workspace.id,
        name=item_in.name,
        quantity=item_in.quantity,
        unit=item_in.unit,
        category=item_in.category,
        aisle=item_in.aisle,
        min_quantity=item_in.min_quantity,
        expiry_date=item_in.expiry_date,
        location=item_in.location,
        note=item_in.note,
    )
    db.commit()
    return _change_response(db, workspace, item.id, txn)


@router.get("/{item_id}", response_model=schemas.InventoryItemOut)
def get_inventory_item(
    item_id: str,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    return inventory_ledger.require_item(db, workspace.id, item_id)


@router.patch("/{item_id}", response_model=schemas.InventoryItemOut)
def update_inventory_item(
    item_id: str,
    item_in: schemas.InventoryItemUpdate,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """Update an item. A quantity change is recorded as an adjustment."""
    item = inventory_ledger.update_item(db, workspace.id, item_id, item_in.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(item)
    return item


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_inventory_item(
    item_id: str,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    inventory_ledger.delete_item(db, workspace.id, item_id)
    db.commit()


@router.post("/{item_id}/add", response_model=schemas.StockChangeResponse)
def add_stock(
    item_id: str,
    change: schemas.StockChange,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    txn = inventory_ledger.add_stock(db, workspace.id, item_id, change.quantity, note=change.note)
    db.commit()
    return _change_response(db, workspace, item_id, txn)


@router.post("/{item_id}/remove", response_model=schemas.StockChangeResponse)
def remove_stock(
    item_id: str,
    change: schemas.StockChange,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    txn = inventory_ledger.remove_stock(db, workspace.id, item_id, change.quantity, note=change.note)
    db.commit()
    return _change_response(db, workspace, item_id, txn)


@router.post("/{item_id}/adjust", response_model=schemas.StockChangeResponse)
def adjust_stock(
    item_id: str,
    change: schemas.StockAdjust,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    txn = inventory_ledger.adjust_stock(db, workspace.id, item_id, change.quantity, note=change.note)
    db.commit()
    return _change_response(db, workspace, item_id, txn)


@router.post("/{item_id}/expire", response_model=schemas.StockChangeResponse)
def expire_stock(
    item_id: str,
    change: schemas.StockExpire,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    txn = inventory_ledger.expire_stock(db, workspace.id, item_id, change.quantity, note=change.note)
    db.commit()
    return _change_response(db, workspace, item_id, txn)


@router.get("/{item_id}/transactions", response_model=list[schemas.InventoryTransactionOut])
def list_item_transactions(
    item_id: str,
    limit: int = Query(50, ge=1, le=200),
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """Ledger entries for an item, newest first."""
    return inventory_ledger.list_transactions(db, workspace.id, item_id, limit=limit)


@router.post("/consume/{planned_meal_id}", response_model=schemas.ConsumptionResponse)
async def consume_planned_meal(
    planned_meal_id: str,
    request: Request,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """Deduct a planned meal's ingredients from inventory (requires Idempotency-Key)."""
    def consume():
        report = inventory_ledger.consume_planned_meal(db, workspace.id, planned_meal_id)
        return schemas.ConsumptionResponse.model_validate(report).model_dump(mode="json")

    return await run_ledger_mutation(
        request, db, workspace_id=str(workspace.id), route_key="inventory_consume", mutate=consume
    )

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import get_db, get_workspace
from ..infra.idempotency import run_ledger_mutation
from ..models import ShoppingList, Workspace
from ..services import shopping_list as shopping

router = APIRouter()
logger = logging.getLogger("mealstock.shopping")


def _list_out(db: Session, shopping_list: ShoppingList) -> schemas.ShoppingListOut:
    out = schemas.ShoppingListOut.model_validate(shopping_list)
    out.items = [
        schemas.ShoppingListItemOut.model_validate(item)
        for item in shopping.list_items_by_aisle_order(db, shopping_list.id)
    ]
    return out


@router.post("/generate", response_model=schemas.ShoppingGenerateResponse, status_code=status.HTTP_201_CREATED)
def generate_shopping_list(
    request: schemas.ShoppingGenerateRequest,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """Build the shopping list for planned meals in [start_date, end_date].

    Demand is netted against inventory and topped up with low-stock items.
    A list previously generated for the same range is replaced unless
    `replace_existing` is false.
    """
    result = shopping.generate_shopping_list(
        db,
        workspace.id,
        request.start_date,
        request.end_date,
        mode=request.mode,
        replace_existing=request.replace_existing,
    )
    return schemas.ShoppingGenerateResponse(
        list=_list_out(db, result.shopping_list),
        report=schemas.GenerationReportOut.model_validate(result.report),
    )


@router.get("/lists", response_model=list[schemas.ShoppingListSummaryOut])
def list_shopping_lists(
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    return shopping.list_shopping_lists(db, workspace.id)


@router.get("/lists/{list_id}", response_model=schemas.ShoppingListOut)
def get_shopping_list(
    list_id: str,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    return _list_out(db, shopping.require_shopping_list(db, workspace.id, list_id))


@router.get("/lists/{list_id}/by-aisle", response_model=list[schemas.AisleGroupOut])
def get_shopping_list_by_aisle(
    list_id: str,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """Items grouped under their translated aisle label."""
    shopping_list = shopping.require_shopping_list(db, workspace.id, list_id)
    grouped = shopping.group_items_by_aisle(shopping.list_items_by_aisle_order(db, shopping_list.id))
    return [
        schemas.AisleGroupOut(
            aisle=label,
            items=[schemas.ShoppingListItemOut.model_validate(item) for item in items],
        )
        for label, items in grouped.items()
    ]


@router.delete("/lists/{list_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_shopping_list(
    list_id: str,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    shopping.delete_shopping_list(db, workspace.id, list_id)
    db.commit()


@router.patch("/items/{item_id}", response_model=schemas.ShoppingListItemOut)
def update_shopping_item(
    item_id: str,
    patch: schemas.ShoppingItemUpdate,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    item = shopping.set_item_checked(db, workspace.id, item_id, patch.checked)
    db.commit()
    db.refresh(item)
    return item


@router.post("/lists/{list_id}/restock", response_model=schemas.RestockResponse)
async def restock_from_list(
    list_id: str,
    request: Request,
    payload: Optional[schemas.RestockRequest] = None,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """Add purchased items to inventory (requires Idempotency-Key)."""
    purchased = None
    if payload is not None and payload.items is not None:
        purchased = {p.item_id: p.quantity for p in payload.items}

    def restock():
        report = shopping.restock_from_list(db, workspace.id, list_id, purchased)
        return schemas.RestockResponse.model_validate(report).model_dump(mode="json")

    return await run_ledger_mutation(
        request, db, workspace_id=str(workspace.id), route_key="shopping_restock", mutate=restock
    )

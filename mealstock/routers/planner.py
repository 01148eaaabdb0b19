from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..deps import get_db, get_workspace
from ..models import Workspace
from ..schemas import PlannedMealCreate, PlannedMealOut, PlannedMealPatch
from ..services import planner

router = APIRouter(prefix="/plan")


@router.post("/meals", response_model=PlannedMealOut, status_code=status.HTTP_201_CREATED)
def create_planned_meal(
    meal_in: PlannedMealCreate,
    replace: bool = Query(False, description="Replace the meal already planned in this slot"),
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    meal = planner.create_planned_meal(
        db,
        workspace.id,
        recipe_id=meal_in.recipe_id,
        day=meal_in.date,
        meal_type=meal_in.meal_type,
        servings=meal_in.servings,
        replace=replace,
    )
    db.commit()
    db.refresh(meal)
    return meal


@router.get("/meals", response_model=list[PlannedMealOut])
def list_planned_meals(
    start: date,
    end: date,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """Planned meals in [start, end], ordered by date then meal type."""
    return planner.list_planned_meals(db, workspace.id, start, end)


@router.get("/meals/{meal_id}", response_model=PlannedMealOut)
def get_planned_meal(
    meal_id: str,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    return planner.require_planned_meal(db, workspace.id, meal_id)


@router.patch("/meals/{meal_id}", response_model=PlannedMealOut)
def update_planned_meal(
    meal_id: str,
    patch: PlannedMealPatch,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    meal = planner.update_planned_meal(
        db, workspace.id, meal_id, servings=patch.servings, recipe_id=patch.recipe_id
    )
    db.commit()
    db.refresh(meal)
    return meal


@router.delete("/meals/{meal_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_planned_meal(
    meal_id: str,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    planner.delete_planned_meal(db, workspace.id, meal_id)
    db.commit()

"""Meal planner: one recipe per (date, meal type) slot."""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..errors import ConflictError, NotFoundError, ValidationError, require_tenant
from ..models import PlannedMeal, Recipe, MEAL_TYPES

logger = logging.getLogger("mealstock.planner")


def _check_meal_type(meal_type: str) -> None:
    if meal_type not in MEAL_TYPES:
        raise ValidationError(
            f"meal_type must be one of {', '.join(MEAL_TYPES)}", context={"meal_type": meal_type}
        )


def _check_servings(servings: int) -> None:
    if servings is None or servings <= 0:
        raise ValidationError("servings must be greater than zero")


def require_recipe(db: Session, workspace_id: str, recipe_id: str) -> Recipe:
    recipe = db.scalar(
        select(Recipe).where(Recipe.id == recipe_id, Recipe.workspace_id == workspace_id)
    )
    if recipe is None:
        raise NotFoundError("Recipe not found", context={"recipe_id": recipe_id})
    return recipe


def get_planned_meal(db: Session, workspace_id: str, meal_id: str) -> Optional[PlannedMeal]:
    workspace_id = require_tenant(workspace_id)
    return db.scalar(
        select(PlannedMeal)
        .options(selectinload(PlannedMeal.recipe))
        .where(PlannedMeal.id == meal_id, PlannedMeal.workspace_id == workspace_id)
    )


def require_planned_meal(db: Session, workspace_id: str, meal_id: str) -> PlannedMeal:
    meal = get_planned_meal(db, workspace_id, meal_id)
    if meal is None:
        raise NotFoundError("Planned meal not found", context={"planned_meal_id": meal_id})
    return meal


def find_slot(db: Session, workspace_id: str, day: date, meal_type: str) -> Optional[PlannedMeal]:
    return db.scalar(
        select(PlannedMeal).where(
            PlannedMeal.workspace_id == workspace_id,
            PlannedMeal.date == day,
            PlannedMeal.meal_type == meal_type,
        )
    )


def create_planned_meal(
    db: Session,
    workspace_id: str,
    *,
    recipe_id: str,
    day: date,
    meal_type: str,
    servings: int,
    replace: bool = False,
) -> PlannedMeal:
    """Schedule a recipe into a slot.

    An occupied slot is a conflict unless `replace` is set, in which case the
    occupant is removed and the new meal inserted in the same transaction.
    """
    workspace_id = require_tenant(workspace_id)
    _check_meal_type(meal_type)
    _check_servings(servings)
    require_recipe(db, workspace_id, recipe_id)

    occupant = find_slot(db, workspace_id, day, meal_type)
    if occupant is not None:
        if not replace:
            raise ConflictError(
                "A meal is already planned for this slot",
                context={"date": day.isoformat(), "meal_type": meal_type, "planned_meal_id": occupant.id},
            )
        logger.info(f"Replacing planned meal {occupant.id} on {day} ({meal_type})")
        db.delete(occupant)
        db.flush()

    meal = PlannedMeal(
        workspace_id=workspace_id,
        recipe_id=recipe_id,
        date=day,
        meal_type=meal_type,
        servings=servings,
    )
    db.add(meal)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise ConflictError(
            "A meal is already planned for this slot",
            context={"date": day.isoformat(), "meal_type": meal_type},
        )
    return meal


def list_planned_meals(db: Session, workspace_id: str, start: date, end: date) -> list[PlannedMeal]:
    workspace_id = require_tenant(workspace_id)
    if start > end:
        raise ValidationError("start must be on or before end")
    stmt = (
        select(PlannedMeal)
        .options(selectinload(PlannedMeal.recipe))
        .where(
            PlannedMeal.workspace_id == workspace_id,
            PlannedMeal.date >= start,
            PlannedMeal.date <= end,
        )
        .order_by(PlannedMeal.date, PlannedMeal.meal_type)
    )
    return list(db.scalars(stmt).all())


def update_planned_meal(
    db: Session,
    workspace_id: str,
    meal_id: str,
    *,
    servings: Optional[int] = None,
    recipe_id: Optional[str] = None,
) -> PlannedMeal:
    meal = require_planned_meal(db, workspace_id, meal_id)
    if servings is not None:
        _check_servings(servings)
        meal.servings = servings
    if recipe_id is not None:
        meal.recipe = require_recipe(db, workspace_id, recipe_id)
    db.flush()
    return meal


def delete_planned_meal(db: Session, workspace_id: str, meal_id: str) -> None:
    meal = require_planned_meal(db, workspace_id, meal_id)
    db.delete(meal)
    db.flush()

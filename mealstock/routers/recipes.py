from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ..deps import get_db, get_workspace
from ..models import Recipe, RecipeIngredient, Workspace
from ..schemas import RecipeCreate, RecipeOut

router = APIRouter()


@router.post("/recipes", response_model=RecipeOut, status_code=status.HTTP_201_CREATED)
def create_recipe(
    recipe_in: RecipeCreate,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """Create a recipe with its ingredient lines."""
    recipe = Recipe(
        workspace_id=workspace.id,
        name=recipe_in.name.strip(),
        base_servings=recipe_in.base_servings,
    )
    recipe.ingredients = [
        RecipeIngredient(
            name=ing.name.strip(),
            qty=ing.qty,
            unit=ing.unit,
            aisle=ing.aisle,
            position=i,
        )
        for i, ing in enumerate(recipe_in.ingredients)
    ]
    db.add(recipe)
    db.commit()
    db.refresh(recipe)
    return recipe


@router.get("/recipes", response_model=list[RecipeOut])
def list_recipes(
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    stmt = (
        select(Recipe)
        .options(selectinload(Recipe.ingredients))
        .where(Recipe.workspace_id == workspace.id)
        .order_by(Recipe.name)
    )
    return db.scalars(stmt).all()


def _get_recipe_or_404(db: Session, workspace: Workspace, recipe_id: str) -> Recipe:
    recipe = db.scalar(
        select(Recipe)
        .options(selectinload(Recipe.ingredients))
        .where(Recipe.id == recipe_id, Recipe.workspace_id == workspace.id)
    )
    if not recipe:
        raise HTTPException(status_code=404, detail="Recipe not found")
    return recipe


@router.get("/recipes/{recipe_id}", response_model=RecipeOut)
def get_recipe(
    recipe_id: str,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    return _get_recipe_or_404(db, workspace, recipe_id)


@router.delete("/recipes/{recipe_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_recipe(
    recipe_id: str,
    workspace: Workspace = Depends(get_workspace),
    db: Session = Depends(get_db),
):
    """Delete a recipe. Planned meals that used it stay, with no recipe."""
    recipe = _get_recipe_or_404(db, workspace, recipe_id)
    db.delete(recipe)
    db.commit()

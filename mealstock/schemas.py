"""Pydantic schemas for the mealstock API.

Request/response models for:
- Workspaces
- Recipes (with nested ingredients)
- Planned meals
- Inventory items, transactions and consumption
- Shopping lists and restocking
"""

from datetime import datetime, date
from typing import Optional, Literal
from decimal import Decimal

from pydantic import BaseModel, Field


# --- Workspace ---

class WorkspaceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class WorkspaceOut(BaseModel):
    id: str
    slug: str
    name: str
    created_at: datetime

    class Config:
        from_attributes = True


# --- Recipe ---

class RecipeIngredientCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    qty: Optional[Decimal] = Field(None, gt=0)
    unit: Optional[str] = Field(None, max_length=50)
    aisle: Optional[str] = Field(None, max_length=100)


class RecipeIngredientOut(BaseModel):
    id: str
    name: str
    qty: Optional[float]
    unit: Optional[str]
    aisle: Optional[str]

    class Config:
        from_attributes = True


class RecipeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    base_servings: int = Field(4, ge=1)
    ingredients: list[RecipeIngredientCreate] = []


class RecipeOut(BaseModel):
    id: str
    workspace_id: str
    name: str
    base_servings: int
    ingredients: list[RecipeIngredientOut] = []
    created_at: datetime

    class Config:
        from_attributes = True


# --- Planned Meals ---

MealType = Literal["breakfast", "lunch", "dinner", "snack"]


class PlannedMealCreate(BaseModel):
    recipe_id: str
    date: date
    meal_type: MealType
    servings: int = Field(1, ge=1)


class PlannedMealPatch(BaseModel):
    servings: Optional[int] = Field(None, ge=1)
    recipe_id: Optional[str] = None


class PlannedMealOut(BaseModel):
    id: str
    recipe_id: Optional[str]
    recipe_name: Optional[str] = None
    date: date
    meal_type: str
    servings: int

    class Config:
        from_attributes = True


# --- Inventory ---

InventoryCategory = Literal["pantry", "freezer", "cleaning", "toiletry"]


class InventoryItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    quantity: Decimal = Field(..., gt=0)
    unit: Optional[str] = Field(None, max_length=50)
    category: InventoryCategory = "pantry"
    aisle: Optional[str] = Field(None, max_length=100)
    min_quantity: Decimal = Field(Decimal(0), ge=0)
    expiry_date: Optional[date] = None
    location: Optional[str] = Field(None, max_length=50)
    note: Optional[str] = None


class InventoryItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    quantity: Optional[Decimal] = Field(None, ge=0)
    unit: Optional[str] = Field(None, max_length=50)
    category: Optional[InventoryCategory] = None
    aisle: Optional[str] = Field(None, max_length=100)
    min_quantity: Optional[Decimal] = Field(None, ge=0)
    expiry_date: Optional[date] = None
    location: Optional[str] = Field(None, max_length=50)


class InventoryItemOut(BaseModel):
    id: str
    workspace_id: str
    name: str
    quantity: float
    unit: Optional[str]
    category: str
    aisle: Optional[str]
    min_quantity: float
    expiry_date: Optional[date]
    location: Optional[str]
    version: int
    is_low_stock: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class StockChange(BaseModel):
    quantity: Decimal = Field(..., gt=0)
    note: Optional[str] = None


class StockAdjust(BaseModel):
    quantity: Decimal = Field(..., ge=0)
    note: Optional[str] = None


class StockExpire(BaseModel):
    quantity: Optional[Decimal] = Field(None, gt=0)  # None writes off everything
    note: Optional[str] = None


class InventoryTransactionOut(BaseModel):
    id: str
    inventory_id: str
    type: str  # add | remove | adjust | meal_used | expired
    quantity: float
    quantity_before: float
    quantity_after: float
    clamped: bool
    planned_meal_id: Optional[str]
    note: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class StockChangeResponse(BaseModel):
    item: InventoryItemOut
    transaction: Optional[InventoryTransactionOut] = None


# --- Consumption ---

class ConsumedIngredientOut(BaseModel):
    ingredient: str
    inventory_id: str
    deducted: float
    remaining: float

    class Config:
        from_attributes = True


class SkippedIngredientOut(BaseModel):
    ingredient: str
    reason: str  # no_match | out_of_stock

    class Config:
        from_attributes = True


class ConsumptionResponse(BaseModel):
    planned_meal_id: str
    deducted: list[ConsumedIngredientOut] = []
    skipped: list[SkippedIngredientOut] = []

    class Config:
        from_attributes = True


# --- Shopping Lists ---

class ShoppingListItemOut(BaseModel):
    id: str
    name: str
    quantity: float
    unit: Optional[str]
    aisle: Optional[str]
    origin: str  # recipe | stock
    is_low_stock: bool
    checked: bool

    class Config:
        from_attributes = True


class ShoppingListOut(BaseModel):
    id: str
    start_date: date
    end_date: date
    mode: str
    created_at: datetime
    items: list[ShoppingListItemOut] = []

    class Config:
        from_attributes = True


class ShoppingListSummaryOut(BaseModel):
    id: str
    start_date: date
    end_date: date
    mode: str
    created_at: datetime

    class Config:
        from_attributes = True


class ShoppingGenerateRequest(BaseModel):
    start_date: date
    end_date: date
    mode: Optional[Literal["atomic", "best_effort"]] = None
    replace_existing: bool = True


class GenerationReportOut(BaseModel):
    meals_total: int
    meals_counted: int
    unresolved_recipes: int
    recipes_without_ingredients: int
    ingredients_counted: int

    class Config:
        from_attributes = True


class ShoppingGenerateResponse(BaseModel):
    list: ShoppingListOut
    report: GenerationReportOut


class AisleGroupOut(BaseModel):
    aisle: str
    items: list[ShoppingListItemOut]


class ShoppingItemUpdate(BaseModel):
    checked: bool


class RestockPurchase(BaseModel):
    item_id: str
    quantity: Decimal = Field(..., ge=0)


class RestockRequest(BaseModel):
    # Omit to restock every checked item at its listed quantity
    items: Optional[list[RestockPurchase]] = None


class RestockedLineOut(BaseModel):
    item_id: str
    inventory_id: str
    name: str
    quantity: float
    created: bool

    class Config:
        from_attributes = True


class RestockResponse(BaseModel):
    shopping_list_id: str
    restocked: list[RestockedLineOut] = []
    skipped: list[str] = []

    class Config:
        from_attributes = True

"""SQLAlchemy ORM models for mealstock.

Tables:
- workspaces: Tenant isolation (one household per workspace)
- recipes / recipe_ingredients: Recipe catalog, quantities stated for base_servings
- planned_meals: One recipe per (workspace, date, meal_type) slot
- inventory_items / inventory_transactions: Home stock and its append-only ledger
- shopping_lists / shopping_list_items: Generated, checkable shopping lists
"""

from __future__ import annotations

import uuid
from datetime import datetime, date, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Text,
    Integer,
    Boolean,
    Numeric,
    ForeignKey,
    Index,
    CheckConstraint,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func, false

from .db import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


QTY = Numeric(12, 3)
CalendarDate = date

MEAL_TYPES = ("breakfast", "lunch", "dinner", "snack")
INVENTORY_CATEGORIES = ("pantry", "freezer", "cleaning", "toiletry")
TRANSACTION_TYPES = ("add", "remove", "adjust", "meal_used", "expired")


class Workspace(Base):
    """Tenant that exclusively owns recipes, meals, inventory and lists."""
    __tablename__ = "workspaces"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    slug: Mapped[str] = mapped_column(String(80), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    recipes: Mapped[list["Recipe"]] = relationship(
        "Recipe", back_populates="workspace", cascade="all, delete-orphan"
    )


class Recipe(Base):
    """Recipe whose ingredient quantities are stated for `base_servings`."""
    __tablename__ = "recipes"
    __table_args__ = (
        Index("ix_recipes_workspace_id", "workspace_id"),
        CheckConstraint("base_servings > 0", name="ck_recipes_base_servings_positive"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    workspace_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    base_servings: Mapped[int] = mapped_column(Integer, nullable=False, default=4, server_default="4")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    workspace: Mapped["Workspace"] = relationship("Workspace", back_populates="recipes")
    ingredients: Mapped[list["RecipeIngredient"]] = relationship(
        "RecipeIngredient", back_populates="recipe", cascade="all, delete-orphan",
        order_by="RecipeIngredient.position"
    )


class RecipeIngredient(Base):
    """Ingredient line. A null qty means "one unit" (count-only)."""
    __tablename__ = "recipe_ingredients"
    __table_args__ = (
        Index("ix_recipe_ingredients_recipe_id", "recipe_id"),
        CheckConstraint("qty IS NULL OR qty > 0", name="ck_recipe_ingredients_qty_positive"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    qty: Mapped[Optional[Decimal]] = mapped_column(QTY, nullable=True)
    unit: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    aisle: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="ingredients")


class PlannedMeal(Base):
    """Scheduling fact: a recipe cooked for `servings` people in one slot."""
    __tablename__ = "planned_meals"
    __table_args__ = (
        UniqueConstraint("workspace_id", "date", "meal_type", name="uq_planned_meals_slot"),
        Index("ix_planned_meals_workspace_date", "workspace_id", "date"),
        CheckConstraint("servings > 0", name="ck_planned_meals_servings_positive"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    workspace_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )
    recipe_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("recipes.id", ondelete="SET NULL"), nullable=True
    )

    date: Mapped[CalendarDate] = mapped_column(Date, nullable=False)
    meal_type: Mapped[str] = mapped_column(String(20), nullable=False)  # breakfast | lunch | dinner | snack
    servings: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    recipe: Mapped[Optional["Recipe"]] = relationship("Recipe")

    @property
    def recipe_name(self) -> Optional[str]:
        return self.recipe.name if self.recipe is not None else None


class InventoryItem(Base):
    """Home stock record.

    The merge key is (workspace, case-insensitive name, unit). Quantity is only
    ever written through the ledger, which bumps `version` on every change.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        Index("ix_inventory_items_workspace_expiry", "workspace_id", "expiry_date"),
        CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_non_negative"),
        CheckConstraint("min_quantity >= 0", name="ck_inventory_items_min_quantity_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    workspace_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(QTY, nullable=False, default=Decimal("0"))
    unit: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # pantry | freezer | cleaning | toiletry
    category: Mapped[str] = mapped_column(String(20), nullable=False, default="pantry")
    # Hierarchical path, e.g. "pantry:cereals"
    aisle: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    min_quantity: Mapped[Decimal] = mapped_column(QTY, nullable=False, default=Decimal("0"))
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    transactions: Mapped[list["InventoryTransaction"]] = relationship(
        "InventoryTransaction", back_populates="item", cascade="all, delete-orphan"
    )

    @property
    def is_low_stock(self) -> bool:
        return (self.quantity or 0) <= (self.min_quantity or 0)


Index(
    "ux_inventory_items_merge_key",
    InventoryItem.workspace_id,
    func.lower(InventoryItem.name),
    # NULL units would be distinct in a plain unique index
    func.coalesce(InventoryItem.unit, ""),
    unique=True,
)


class InventoryTransaction(Base):
    """Immutable ledger entry, one per quantity mutation of an item."""
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        Index("ix_inventory_transactions_item_created", "inventory_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    inventory_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False
    )

    # add | remove | adjust | meal_used | expired
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(QTY, nullable=False)  # signed
    quantity_before: Mapped[Decimal] = mapped_column(QTY, nullable=False)
    quantity_after: Mapped[Decimal] = mapped_column(QTY, nullable=False)
    # True when the stored quantity was floored at zero and `quantity` holds the requested delta
    clamped: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())

    planned_meal_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("planned_meals.id", ondelete="SET NULL"), nullable=True
    )
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    item: Mapped["InventoryItem"] = relationship("InventoryItem", back_populates="transactions")


class ShoppingList(Base):
    """Generated shopping list covering [start_date, end_date]."""
    __tablename__ = "shopping_lists"
    __table_args__ = (
        Index("ix_shopping_lists_workspace_range", "workspace_id", "start_date", "end_date"),
        CheckConstraint("start_date <= end_date", name="ck_shopping_lists_range"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    workspace_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    mode: Mapped[str] = mapped_column(String(20), nullable=False, default="atomic")  # atomic | best_effort

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    items: Mapped[list["ShoppingListItem"]] = relationship(
        "ShoppingListItem", back_populates="shopping_list", cascade="all, delete-orphan",
        order_by="ShoppingListItem.position"
    )


class ShoppingListItem(Base):
    """One (name, unit) line of a shopping list."""
    __tablename__ = "shopping_list_items"
    __table_args__ = (
        Index("ix_shopping_list_items_list_id", "shopping_list_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    shopping_list_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("shopping_lists.id", ondelete="CASCADE"), nullable=False
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(QTY, nullable=False)
    unit: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    aisle: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    origin: Mapped[str] = mapped_column(String(20), nullable=False, default="recipe")  # recipe | stock

    checked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    shopping_list: Mapped["ShoppingList"] = relationship("ShoppingList", back_populates="items")

    @property
    def is_low_stock(self) -> bool:
        return self.origin == "stock"

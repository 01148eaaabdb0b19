"""initial schema: workspaces, recipes, planner, inventory ledger, shopping lists

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # --- Workspaces ---
    op.create_table('workspaces',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('slug', sa.String(80), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug')
    )

    # --- Recipes ---
    op.create_table('recipes',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('workspace_id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('base_servings', sa.Integer(), server_default='4', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.CheckConstraint('base_servings > 0', name='ck_recipes_base_servings_positive'),
        sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_recipes_workspace_id', 'recipes', ['workspace_id'])

    op.create_table('recipe_ingredients',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('recipe_id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('qty', sa.Numeric(12, 3), nullable=True),  # null = one unit
        sa.Column('unit', sa.String(50), nullable=True),
        sa.Column('aisle', sa.String(100), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.CheckConstraint('qty IS NULL OR qty > 0', name='ck_recipe_ingredients_qty_positive'),
        sa.ForeignKeyConstraint(['recipe_id'], ['recipes.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_recipe_ingredients_recipe_id', 'recipe_ingredients', ['recipe_id'])

    # --- Planned Meals ---
    op.create_table('planned_meals',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('workspace_id', sa.String(36), nullable=False),
        sa.Column('recipe_id', sa.String(36), nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('meal_type', sa.String(20), nullable=False),  # breakfast, lunch, dinner, snack
        sa.Column('servings', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.CheckConstraint('servings > 0', name='ck_planned_meals_servings_positive'),
        sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['recipe_id'], ['recipes.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('workspace_id', 'date', 'meal_type', name='uq_planned_meals_slot')
    )
    op.create_index('ix_planned_meals_workspace_date', 'planned_meals', ['workspace_id', 'date'])

    # --- Inventory ---
    op.create_table('inventory_items',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('workspace_id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False),
        sa.Column('unit', sa.String(50), nullable=True),
        sa.Column('category', sa.String(20), nullable=False),  # pantry, freezer, cleaning, toiletry
        sa.Column('aisle', sa.String(100), nullable=True),
        sa.Column('min_quantity', sa.Numeric(12, 3), nullable=False),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('location', sa.String(50), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.CheckConstraint('quantity >= 0', name='ck_inventory_items_quantity_non_negative'),
        sa.CheckConstraint('min_quantity >= 0', name='ck_inventory_items_min_quantity_non_negative'),
        sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_inventory_items_workspace_expiry', 'inventory_items', ['workspace_id', 'expiry_date'])
    op.create_index(
        'ux_inventory_items_merge_key', 'inventory_items',
        ['workspace_id', sa.text('lower(name)'), sa.text("coalesce(unit, '')")], unique=True
    )

    op.create_table('inventory_transactions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('inventory_id', sa.String(36), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),  # add, remove, adjust, meal_used, expired
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False),
        sa.Column('quantity_before', sa.Numeric(12, 3), nullable=False),
        sa.Column('quantity_after', sa.Numeric(12, 3), nullable=False),
        sa.Column('clamped', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('planned_meal_id', sa.String(36), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['inventory_id'], ['inventory_items.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['planned_meal_id'], ['planned_meals.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_inventory_transactions_item_created', 'inventory_transactions', ['inventory_id', 'created_at'])

    # --- Shopping Lists ---
    op.create_table('shopping_lists',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('workspace_id', sa.String(36), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('mode', sa.String(20), nullable=False),  # atomic, best_effort
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('start_date <= end_date', name='ck_shopping_lists_range'),
        sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_shopping_lists_workspace_range', 'shopping_lists', ['workspace_id', 'start_date', 'end_date'])

    op.create_table('shopping_list_items',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('shopping_list_id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False),
        sa.Column('unit', sa.String(50), nullable=True),
        sa.Column('aisle', sa.String(100), nullable=True),
        sa.Column('origin', sa.String(20), nullable=False),  # recipe, stock
        sa.Column('checked', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(['shopping_list_id'], ['shopping_lists.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_shopping_list_items_list_id', 'shopping_list_items', ['shopping_list_id'])


def downgrade():
    op.drop_table('shopping_list_items')
    op.drop_table('shopping_lists')
    op.drop_table('inventory_transactions')
    op.drop_index('ux_inventory_items_merge_key', table_name='inventory_items')
    op.drop_table('inventory_items')
    op.drop_table('planned_meals')
    op.drop_table('recipe_ingredients')
    op.drop_table('recipes')
    op.drop_table('workspaces')

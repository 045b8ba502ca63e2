"""Initial schema for items, recipes, meals, categories and menus

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(with_updated: bool = True) -> list:
    columns = [sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=True)]
    if with_updated:
        columns.append(sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=True))
    return columns


def upgrade() -> None:
    # Items are owned by inventory; recipes, meals and menus only read them
    op.create_table(
        'items',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('item_code', sa.String(50), nullable=False, unique=True),
        sa.Column('name_ar', sa.String(255), nullable=False),
        sa.Column('name_en', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('unit_symbol', sa.String(20), nullable=False, server_default='pc'),
        sa.Column('unit_cost', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('selling_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('calories_per_unit', sa.Numeric(10, 2), nullable=True),
        sa.Column('current_stock', sa.Numeric(12, 3), nullable=False, server_default='0'),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('unit_cost >= 0', name='ck_items_unit_cost_non_negative'),
        sa.CheckConstraint('current_stock >= 0', name='ck_items_stock_non_negative'),
    )

    # Recipes and their item lines
    op.create_table(
        'recipes',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('recipe_code', sa.String(50), nullable=False, unique=True),
        sa.Column('name_ar', sa.String(255), nullable=False),
        sa.Column('name_en', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('image_url', sa.String(500), nullable=True),
        sa.Column('preparation_time_minutes', sa.Integer(), nullable=False),
        sa.Column('total_cost', sa.Numeric(20, 8), nullable=False, server_default='0'),
        sa.Column('total_calories', sa.Numeric(14, 3), nullable=False, server_default='0'),
        sa.Column('selling_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            'preparation_time_minutes BETWEEN 1 AND 480',
            name='ck_recipes_preparation_time_range',
        ),
    )

    op.create_table(
        'recipe_lines',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('recipe_id', sa.Integer(), sa.ForeignKey('recipes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('item_id', sa.Integer(), sa.ForeignKey('items.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False),
        sa.Column('unit_cost_snapshot', sa.Numeric(12, 2), nullable=False),
        sa.Column('line_cost_snapshot', sa.Numeric(20, 8), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_recipe_lines_quantity_positive'),
    )
    op.create_index('idx_recipe_lines_recipe', 'recipe_lines', ['recipe_id'])
    op.create_index('idx_recipe_lines_item', 'recipe_lines', ['item_id'])

    # Meals combine recipes and items
    op.create_table(
        'meals',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('meal_code', sa.String(50), nullable=False, unique=True),
        sa.Column('name_ar', sa.String(255), nullable=False),
        sa.Column('name_en', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('image_url', sa.String(500), nullable=True),
        sa.Column('total_cost', sa.Numeric(20, 8), nullable=False, server_default='0'),
        sa.Column('total_calories', sa.Numeric(14, 3), nullable=False, server_default='0'),
        sa.Column('preparation_time_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('selling_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'meal_components',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('meal_id', sa.Integer(), sa.ForeignKey('meals.id', ondelete='CASCADE'), nullable=False),
        sa.Column('component_type', sa.String(10), nullable=False),
        sa.Column('recipe_id', sa.Integer(), sa.ForeignKey('recipes.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('item_id', sa.Integer(), sa.ForeignKey('items.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False),
        sa.Column('cost_snapshot', sa.Numeric(20, 8), nullable=False),
        sa.CheckConstraint(
            "(component_type = 'RECIPE' AND recipe_id IS NOT NULL AND item_id IS NULL) OR "
            "(component_type = 'ITEM' AND item_id IS NOT NULL AND recipe_id IS NULL)",
            name='ck_meal_components_exactly_one_ref',
        ),
        sa.CheckConstraint('quantity > 0', name='ck_meal_components_quantity_positive'),
    )
    op.create_index('idx_meal_components_meal', 'meal_components', ['meal_id'])
    op.create_index('idx_meal_components_recipe', 'meal_components', ['recipe_id'])
    op.create_index('idx_meal_components_item', 'meal_components', ['item_id'])

    # Menus
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name_ar', sa.String(100), nullable=False),
        sa.Column('name_en', sa.String(100), nullable=False),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(with_updated=False),
    )

    op.create_table(
        'menus',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name_ar', sa.String(255), nullable=False),
        sa.Column('name_en', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('image_url', sa.String(500), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('start_date', sa.DateTime(), nullable=True),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('idx_menus_active', 'menus', ['is_active', 'deleted_at'])

    op.create_table(
        'menu_items',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('menu_id', sa.Integer(), sa.ForeignKey('menus.id', ondelete='CASCADE'), nullable=False),
        sa.Column('category_id', sa.Integer(), sa.ForeignKey('categories.id', ondelete='SET NULL'), nullable=True),
        sa.Column('entity_type', sa.String(10), nullable=False),
        sa.Column('item_id', sa.Integer(), sa.ForeignKey('items.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('recipe_id', sa.Integer(), sa.ForeignKey('recipes.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('meal_id', sa.Integer(), sa.ForeignKey('meals.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('special_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_recommended', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        *_timestamps(with_updated=False),
        sa.CheckConstraint(
            "(entity_type = 'ITEM' AND item_id IS NOT NULL AND recipe_id IS NULL AND meal_id IS NULL) OR "
            "(entity_type = 'RECIPE' AND recipe_id IS NOT NULL AND item_id IS NULL AND meal_id IS NULL) OR "
            "(entity_type = 'MEAL' AND meal_id IS NOT NULL AND item_id IS NULL AND recipe_id IS NULL)",
            name='ck_menu_items_exactly_one_ref',
        ),
        sa.CheckConstraint('display_order >= 0', name='ck_menu_items_display_order_non_negative'),
    )
    op.create_index('idx_menu_items_menu', 'menu_items', ['menu_id', 'deleted_at'])
    op.create_index('idx_menu_items_recipe', 'menu_items', ['recipe_id'])
    op.create_index('idx_menu_items_meal', 'menu_items', ['meal_id'])
    op.create_index('idx_menu_items_item', 'menu_items', ['item_id'])


def downgrade() -> None:
    op.drop_table('menu_items')
    op.drop_table('menus')
    op.drop_table('categories')
    op.drop_table('meal_components')
    op.drop_table('meals')
    op.drop_table('recipe_lines')
    op.drop_table('recipes')
    op.drop_table('items')

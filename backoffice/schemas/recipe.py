"""
Recipe Pydantic schemas for API request/response models.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class RecipeLineIn(BaseModel):
    """One ingredient line of a recipe payload."""
    item_id: int
    quantity: Decimal


class RecipeCreate(BaseModel):
    """Request model for creating a recipe."""
    recipe_code: str
    name_ar: str
    name_en: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    preparation_time_minutes: int
    lines: List[RecipeLineIn] = []


class RecipeUpdate(BaseModel):
    """
    Request model for updating a recipe.

    When `lines` is present the whole line set is replaced. `selling_price`
    is a manual override and is never recomputed from cost.
    """
    recipe_code: Optional[str] = None
    name_ar: Optional[str] = None
    name_en: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    preparation_time_minutes: Optional[int] = None
    selling_price: Optional[Decimal] = None
    is_available: Optional[bool] = None
    lines: Optional[List[RecipeLineIn]] = None


class RecipeLineResponse(BaseModel):
    """Cost breakdown row for a single recipe line."""
    id: int
    item_id: int
    item_name: str
    unit_symbol: str
    quantity: Decimal
    unit_cost: Decimal
    line_cost: Decimal
    current_stock: Decimal
    cost_share: Decimal  # percentage of the recipe's total cost


class MealReference(BaseModel):
    id: int
    name_en: str
    name_ar: str
    is_available: bool


class RecipeDetail(BaseModel):
    """Full recipe view with derived fields."""
    id: int
    recipe_code: str
    name_ar: str
    name_en: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    preparation_time_minutes: int
    total_cost: Decimal
    total_calories: Decimal
    selling_price: Decimal
    current_cost: Decimal  # recomputed from live item costs
    profit_margin: Decimal
    is_available: bool
    can_prepare: bool
    lines: List[RecipeLineResponse]
    used_in_meals: List[MealReference] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RecipeSummary(BaseModel):
    """Row in a recipe listing."""
    id: int
    recipe_code: str
    name_ar: str
    name_en: str
    preparation_time_minutes: int
    total_cost: Decimal
    selling_price: Decimal
    profit_margin: Decimal
    is_available: bool
    can_prepare: bool
    line_count: int

    model_config = ConfigDict(from_attributes=True)


class RecipeListResponse(BaseModel):
    items: List[RecipeSummary]
    total: int


class RecipeStats(BaseModel):
    total_recipes: int
    available_recipes: int
    unavailable_recipes: int
    avg_preparation_time: int
    avg_cost: Decimal
    avg_selling_price: Decimal
    avg_profit_margin: Decimal
    generated_at: datetime

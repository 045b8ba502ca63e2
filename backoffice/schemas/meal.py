"""
Meal Pydantic schemas for API request/response models.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from backoffice.models.refs import EntityKind


class MealComponentIn(BaseModel):
    """
    One component of a meal payload.

    Exactly one of `recipe_id` / `item_id` must be set; the composition
    component enforces this and reports a ValidationError otherwise.
    """
    recipe_id: Optional[int] = None
    item_id: Optional[int] = None
    quantity: Decimal


class MealCreate(BaseModel):
    """Request model for creating a meal."""
    meal_code: str
    name_ar: str
    name_en: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    components: List[MealComponentIn] = []


class MealUpdate(BaseModel):
    """Request model for updating a meal. `components` replaces the whole set."""
    meal_code: Optional[str] = None
    name_ar: Optional[str] = None
    name_en: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    selling_price: Optional[Decimal] = None
    is_available: Optional[bool] = None
    components: Optional[List[MealComponentIn]] = None


class MealComponentResponse(BaseModel):
    id: int
    component_type: EntityKind
    recipe_id: Optional[int] = None
    item_id: Optional[int] = None
    name: str
    quantity: Decimal
    cost_snapshot: Decimal
    current_cost: Decimal
    preparation_time_minutes: int
    is_available: bool


class MealDetail(BaseModel):
    """Full meal view with derived fields."""
    id: int
    meal_code: str
    name_ar: str
    name_en: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    preparation_time_minutes: int
    total_cost: Decimal
    total_calories: Decimal
    selling_price: Decimal
    current_cost: Decimal
    profit_margin: Decimal
    is_available: bool
    can_prepare: bool
    components: List[MealComponentResponse]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MealSummary(BaseModel):
    id: int
    meal_code: str
    name_ar: str
    name_en: str
    preparation_time_minutes: int
    total_cost: Decimal
    selling_price: Decimal
    profit_margin: Decimal
    is_available: bool
    can_prepare: bool
    component_count: int


class MealListResponse(BaseModel):
    items: List[MealSummary]
    total: int


class MealStats(BaseModel):
    total_meals: int
    available_meals: int
    unavailable_meals: int
    avg_cost: Decimal
    avg_selling_price: Decimal
    avg_profit_margin: Decimal
    generated_at: datetime

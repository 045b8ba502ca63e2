"""
Menu Pydantic schemas for API request/response models.
"""
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel

from backoffice.models.refs import EntityKind


class MenuCreate(BaseModel):
    """Request model for creating a menu."""
    name_ar: str
    name_en: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    display_order: int = 0
    is_active: bool = True
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class MenuUpdate(BaseModel):
    """Request model for updating a menu. Explicit nulls clear the window bounds."""
    name_ar: Optional[str] = None
    name_en: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class MenuItemCreate(BaseModel):
    """
    Request model for adding an entry to a menu.

    Exactly one of item_id / recipe_id / meal_id must be set.
    """
    category_id: Optional[int] = None
    item_id: Optional[int] = None
    recipe_id: Optional[int] = None
    meal_id: Optional[int] = None
    display_order: int = 0
    special_price: Optional[Decimal] = None
    is_available: bool = True
    is_recommended: bool = False


class MenuItemUpdate(BaseModel):
    """Mutable fields of a menu entry. The referenced entity cannot change."""
    category_id: Optional[int] = None
    display_order: Optional[int] = None
    special_price: Optional[Decimal] = None
    is_available: Optional[bool] = None
    is_recommended: Optional[bool] = None


class MenuItemOrder(BaseModel):
    menu_item_id: int
    display_order: int


class MenuReorderRequest(BaseModel):
    items: List[MenuItemOrder]


class BulkMenuItemUpdate(BaseModel):
    menu_item_ids: List[int]
    updates: MenuItemUpdate


class MenuEntryResponse(BaseModel):
    """A menu entry with its effective price and serving availability."""
    id: int
    menu_id: int
    category_id: Optional[int] = None
    entity_type: EntityKind
    entity_id: int
    name_en: str
    name_ar: str
    display_order: int
    special_price: Optional[Decimal] = None
    selling_price: Decimal
    effective_price: Decimal
    is_available: bool
    is_recommended: bool
    can_serve: bool


class PriceRangeResponse(BaseModel):
    min: Decimal
    max: Decimal
    avg: Decimal


class CategoryGroup(BaseModel):
    """Menu entries sharing a category; category_id is None for uncategorized."""
    category_id: Optional[int] = None
    category_name: str
    items: List[MenuEntryResponse]
    total_items: int
    available_items: int
    price_range: PriceRangeResponse


class MenuEntryStats(BaseModel):
    total_items: int
    available_items: int
    unavailable_items: int
    recommended_items: int
    item_types: Dict[str, int]
    availability_rate: Decimal
    price_range: PriceRangeResponse


class MenuDetail(BaseModel):
    id: int
    name_ar: str
    name_en: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    display_order: int
    is_active: bool
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_currently_active: bool
    status: str
    item_count: int
    items: Optional[List[MenuEntryResponse]] = None
    categories: Optional[List[CategoryGroup]] = None
    stats: Optional[MenuEntryStats] = None


class MenuListResponse(BaseModel):
    items: List[MenuDetail]
    total: int


class ActiveMenu(BaseModel):
    id: int
    name_ar: str
    name_en: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    display_order: int
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class BulkUpdateFailure(BaseModel):
    id: int
    error: str


class BulkUpdateSuccess(BaseModel):
    id: int
    menu_id: int


class BulkUpdateResult(BaseModel):
    """Partitioned outcome of a best-effort bulk update."""
    updated: List[BulkUpdateSuccess]
    failed: List[BulkUpdateFailure]


class ReorderResult(BaseModel):
    menu_id: int
    items_reordered: int


class CategoryCount(BaseModel):
    category_id: Optional[int] = None
    category_name: str
    count: int


class PopularEntry(BaseModel):
    id: int
    name: str
    menu_name: str
    price: Decimal


class MenuStats(BaseModel):
    total_menus: int
    active_menus: int
    inactive_menus: int
    current_active_menus: int
    total_menu_items: int
    available_menu_items: int
    unavailable_menu_items: int
    avg_items_per_menu: Decimal
    category_distribution: List[CategoryCount]
    popular_items: List[PopularEntry]
    generated_at: datetime


class Recommendation(BaseModel):
    type: str
    title: str
    message: str
    priority: str

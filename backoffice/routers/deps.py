"""
Shared router dependencies: component construction and actor identity.
"""
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from backoffice.core.cache import CacheBackend, get_cache
from backoffice.core.config import get_settings
from backoffice.db.session import get_db
from backoffice.services.meal_composition import MealCompositionService
from backoffice.services.menu_assembly import MenuAssemblyService
from backoffice.services.recipe_costing import RecipeCostingService


def get_actor(x_actor_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Caller identity from the X-Actor-Id header. Only used for audit logging."""
    return x_actor_id


def get_recipe_service(
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
) -> RecipeCostingService:
    return RecipeCostingService(db, cache, settings=get_settings())


def get_meal_service(
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
) -> MealCompositionService:
    return MealCompositionService(db, cache, settings=get_settings())


def get_menu_service(
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
) -> MenuAssemblyService:
    return MenuAssemblyService(db, cache, settings=get_settings())

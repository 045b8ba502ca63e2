"""
Cache invalidation contract.

Every write that changes an entity or its owned collection calls one of the
`*_changed` hooks after its transaction commits and before returning to the
caller. Each hook deletes the entity's own detail key, the detail keys of
every cached view that embeds it (meals embedding a recipe, menus listing a
recipe, meal or item), and every aggregate/list key.

`item_changed` is the entry point for the inventory collaborators: item stock
and cost are written outside this package, but recipe, meal and menu views
derive availability and cost from them.
"""
import logging
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.core.cache import CacheBackend, CacheKeys
from backoffice.models.meal import MealComponent
from backoffice.models.menu import MenuItem
from backoffice.models.recipe import RecipeLine

logger = logging.getLogger(__name__)

AGGREGATE_KEYS = frozenset({
    CacheKeys.RECIPE_STATS,
    CacheKeys.MEAL_STATS,
    CacheKeys.MENU_STATS,
    CacheKeys.ACTIVE_MENUS,
})


class CacheInvalidator:
    """Computes and deletes the cache keys affected by a write."""

    def __init__(self, db: Session, cache: CacheBackend):
        self.db = db
        self.cache = cache

    def recipe_changed(self, recipe_id: int) -> None:
        self._delete(self._recipe_keys({recipe_id}), "recipe", recipe_id)

    def meal_changed(self, meal_id: int) -> None:
        self._delete(self._meal_keys({meal_id}), "meal", meal_id)

    def menu_changed(self, *menu_ids: int) -> None:
        keys = set(AGGREGATE_KEYS)
        for menu_id in menu_ids:
            keys.update(CacheKeys.menu_variants(menu_id))
        self._delete(keys, "menu", list(menu_ids))

    def item_changed(self, item_id: int) -> None:
        recipe_ids = set(self.db.execute(
            select(RecipeLine.recipe_id).where(RecipeLine.item_id == item_id).distinct()
        ).scalars())
        meal_ids = set(self.db.execute(
            select(MealComponent.meal_id).where(MealComponent.item_id == item_id).distinct()
        ).scalars())

        keys = self._recipe_keys(recipe_ids) | self._meal_keys(meal_ids)
        keys |= self._menu_keys(self._menus_listing(MenuItem.item_id, {item_id}))
        self._delete(keys, "item", item_id)

    def _recipe_keys(self, recipe_ids: set[int]) -> set[str]:
        keys = {CacheKeys.recipe(recipe_id) for recipe_id in recipe_ids}
        if not recipe_ids:
            return keys | AGGREGATE_KEYS

        meal_ids = set(self.db.execute(
            select(MealComponent.meal_id).where(MealComponent.recipe_id.in_(recipe_ids)).distinct()
        ).scalars())
        keys |= self._meal_keys(meal_ids)
        keys |= self._menu_keys(self._menus_listing(MenuItem.recipe_id, recipe_ids))
        return keys

    def _meal_keys(self, meal_ids: set[int]) -> set[str]:
        keys = {CacheKeys.meal(meal_id) for meal_id in meal_ids}
        if meal_ids:
            keys |= self._menu_keys(self._menus_listing(MenuItem.meal_id, meal_ids))
        return keys | AGGREGATE_KEYS

    def _menu_keys(self, menu_ids: Iterable[int]) -> set[str]:
        keys = set(AGGREGATE_KEYS)
        for menu_id in menu_ids:
            keys.update(CacheKeys.menu_variants(menu_id))
        return keys

    def _menus_listing(self, column, entity_ids: set[int]) -> set[int]:
        # Soft-deleted entries are included: their menus may still be cached
        return set(self.db.execute(
            select(MenuItem.menu_id).where(column.in_(entity_ids)).distinct()
        ).scalars())

    def _delete(self, keys: set[str], entity: str, entity_id) -> None:
        self.cache.delete(*sorted(keys))
        logger.debug(
            f"Invalidated {len(keys)} cache keys after {entity} write",
            extra={"operation": "invalidate", "entity": entity, "entity_id": entity_id},
        )

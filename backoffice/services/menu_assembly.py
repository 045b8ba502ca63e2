"""
Menu Assembly: display-ordered, optionally time-windowed menus whose entries
point at exactly one item, recipe or meal.

Entry pricing:
    effective price = special price if set and > 0, else entity selling price

Entry availability ripples up from the referenced entity: an item entry can
be served while the item is flagged available and in stock, a recipe or meal
entry while the entity is flagged available and can be prepared.
"""
import enum
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import select, update, func, or_
from sqlalchemy.orm import Session, selectinload

from backoffice.core.cache import CacheBackend, CacheKeys
from backoffice.core.clock import utcnow
from backoffice.core.config import Settings, get_settings
from backoffice.core.exceptions import (
    ConflictError,
    InvalidReferenceError,
    NotFoundError,
    ValidationError,
)
from backoffice.core.pricing import (
    HUNDRED,
    ZERO,
    PriceRange,
    effective_price,
    quantize_money,
    to_decimal,
)
from backoffice.db.session import transaction
from backoffice.models.item import Item
from backoffice.models.meal import Meal, MealComponent
from backoffice.models.menu import Category, Menu, MenuItem
from backoffice.models.recipe import Recipe, RecipeLine
from backoffice.models.refs import MENU_ENTRY_KINDS, EntityKind, EntityRef
from backoffice.schemas.menu import (
    ActiveMenu,
    BulkUpdateFailure,
    BulkUpdateResult,
    BulkUpdateSuccess,
    CategoryCount,
    CategoryGroup,
    MenuCreate,
    MenuDetail,
    MenuEntryResponse,
    MenuEntryStats,
    MenuItemCreate,
    MenuItemOrder,
    MenuItemUpdate,
    MenuListResponse,
    MenuStats,
    MenuUpdate,
    PopularEntry,
    PriceRangeResponse,
    Recommendation,
    ReorderResult,
)
from backoffice.services.invalidation import CacheInvalidator
from backoffice.services.meal_composition import meal_can_prepare
from backoffice.services.recipe_costing import recipe_can_prepare

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"
POPULAR_ENTRIES_LIMIT = 10
LOW_VARIETY_THRESHOLD = Decimal(5)
UNAVAILABLE_RATIO_THRESHOLD = Decimal("0.2")

ENTITY_MODELS = {
    EntityKind.ITEM: Item,
    EntityKind.RECIPE: Recipe,
    EntityKind.MEAL: Meal,
}


class MenuStatus(str, enum.Enum):
    INACTIVE = "INACTIVE"
    SCHEDULED = "SCHEDULED"
    EXPIRED = "EXPIRED"
    ACTIVE = "ACTIVE"


def menu_status(menu, now: Optional[datetime] = None) -> MenuStatus:
    """Status of anything carrying is_active / start_date / end_date."""
    now = now or utcnow()
    if not menu.is_active:
        return MenuStatus.INACTIVE
    if menu.start_date is not None and menu.start_date > now:
        return MenuStatus.SCHEDULED
    if menu.end_date is not None and menu.end_date < now:
        return MenuStatus.EXPIRED
    return MenuStatus.ACTIVE


def is_currently_active(menu, now: Optional[datetime] = None) -> bool:
    return menu_status(menu, now) == MenuStatus.ACTIVE


def validate_window(start_date: Optional[datetime], end_date: Optional[datetime]) -> None:
    if start_date is not None and end_date is not None and start_date >= end_date:
        raise ValidationError(
            "start_date must be before end_date",
            {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )


def entry_can_serve(entry: MenuItem) -> bool:
    entity = entry.entity
    if not entry.is_available or entity is None or entity.deleted_at is not None or not entity.is_available:
        return False

    kind = EntityKind(entry.entity_type)
    if kind == EntityKind.ITEM:
        return to_decimal(entity.current_stock) > ZERO
    if kind == EntityKind.RECIPE:
        return recipe_can_prepare(entity)
    return meal_can_prepare(entity)


def entry_price(entry: MenuItem) -> Decimal:
    return effective_price(entry.special_price, entry.entity.selling_price)


def entry_loaders(*prefix):
    """Eager loads for everything entry pricing and availability read."""
    paths = [
        (MenuItem.category,),
        (MenuItem.item,),
        (MenuItem.recipe, Recipe.lines, RecipeLine.item),
        (MenuItem.meal, Meal.components, MealComponent.recipe, Recipe.lines, RecipeLine.item),
        (MenuItem.meal, Meal.components, MealComponent.item),
    ]
    options = []
    for path in paths:
        attrs = prefix + path
        option = selectinload(attrs[0])
        for attr in attrs[1:]:
            option = option.selectinload(attr)
        options.append(option)
    return options


def price_range_response(prices) -> PriceRangeResponse:
    price_range = PriceRange.from_prices(prices)
    return PriceRangeResponse(min=price_range.min, max=price_range.max, avg=price_range.avg)


def entry_stats(entries: Sequence[MenuEntryResponse]) -> MenuEntryStats:
    total = len(entries)
    available = sum(1 for entry in entries if entry.can_serve)
    item_types = {kind.value: 0 for kind in MENU_ENTRY_KINDS}
    for entry in entries:
        item_types[entry.entity_type.value] += 1

    rate = quantize_money(Decimal(available) / Decimal(total) * HUNDRED) if total else quantize_money(ZERO)
    return MenuEntryStats(
        total_items=total,
        available_items=available,
        unavailable_items=total - available,
        recommended_items=sum(1 for entry in entries if entry.is_recommended),
        item_types=item_types,
        availability_rate=rate,
        price_range=price_range_response(entry.effective_price for entry in entries),
    )


def group_by_category(entries: Sequence[MenuItem], responses: Sequence[MenuEntryResponse]) -> list[CategoryGroup]:
    """
    Group entries by category, preserving display order within each group.

    Categories sort by their own display order; uncategorized entries go last.
    """
    buckets: dict[Optional[int], list[MenuEntryResponse]] = {}
    categories: dict[int, Category] = {}
    for entry, response in zip(entries, responses):
        buckets.setdefault(entry.category_id, []).append(response)
        if entry.category is not None:
            categories[entry.category_id] = entry.category

    def sort_key(category_id):
        if category_id is None:
            return (1, 0, "")
        category = categories[category_id]
        return (0, category.display_order, category.name_en)

    groups = []
    for category_id in sorted(buckets, key=sort_key):
        members = buckets[category_id]
        groups.append(CategoryGroup(
            category_id=category_id,
            category_name=categories[category_id].name_en if category_id is not None else UNCATEGORIZED,
            items=members,
            total_items=len(members),
            available_items=sum(1 for member in members if member.can_serve),
            price_range=price_range_response(member.effective_price for member in members),
        ))
    return groups


class MenuAssemblyService:
    """
    Menus and their entries.

    Reorder is all-or-nothing; bulk update is best-effort per entry and
    reports unknown ids as failures.
    """

    def __init__(self, db: Session, cache: CacheBackend, settings: Optional[Settings] = None):
        self.db = db
        self.cache = cache
        self.settings = settings or get_settings()
        self.invalidator = CacheInvalidator(db, cache)

    def effective_price(self, entry: MenuItem) -> Decimal:
        return entry_price(entry)

    def is_currently_active(self, menu, now: Optional[datetime] = None) -> bool:
        return is_currently_active(menu, now)

    def menu_status(self, menu, now: Optional[datetime] = None) -> MenuStatus:
        return menu_status(menu, now)

    # ------------------------------------------------------------------
    # Menus
    # ------------------------------------------------------------------

    def create_menu(self, data: MenuCreate, actor: Optional[str] = None) -> MenuDetail:
        validate_window(data.start_date, data.end_date)
        self._validate_display_order(data.display_order)

        with transaction(self.db):
            self._ensure_names_free(data.name_en, data.name_ar)
            menu = Menu(**data.model_dump())
            self.db.add(menu)
            self.db.flush()
            menu_id = menu.id

        self.invalidator.menu_changed(menu_id)
        logger.info(
            f"Created menu '{data.name_en}'",
            extra={"operation": "create_menu", "entity_id": menu_id, "actor": actor},
        )
        return self.get_menu(menu_id, include_items=False)

    def update_menu(self, menu_id: int, patch: MenuUpdate, actor: Optional[str] = None) -> MenuDetail:
        changes = patch.model_dump(exclude_unset=True)
        for name in ("name_ar", "name_en", "display_order", "is_active"):
            if name in changes and changes[name] is None:
                raise ValidationError(f"{name} cannot be null", {"field": name})
        if "display_order" in changes:
            self._validate_display_order(changes["display_order"])

        with transaction(self.db):
            menu = self._lock_menu(menu_id)
            validate_window(
                changes.get("start_date", menu.start_date),
                changes.get("end_date", menu.end_date),
            )
            if "name_en" in changes or "name_ar" in changes:
                self._ensure_names_free(
                    changes.get("name_en", menu.name_en),
                    changes.get("name_ar", menu.name_ar),
                    exclude_id=menu_id,
                )
            for name, value in changes.items():
                setattr(menu, name, value)
            menu.updated_at = utcnow()

        self.invalidator.menu_changed(menu_id)
        logger.info(
            f"Updated menu {menu_id}: {sorted(changes)}",
            extra={"operation": "update_menu", "entity_id": menu_id, "actor": actor},
        )
        return self.get_menu(menu_id, include_items=False)

    def delete_menu(self, menu_id: int, actor: Optional[str] = None) -> None:
        """Soft-delete a menu together with its entries."""
        with transaction(self.db):
            menu = self._lock_menu(menu_id)
            now = utcnow()
            self.db.execute(
                update(MenuItem)
                .where(MenuItem.menu_id == menu_id, MenuItem.deleted_at.is_(None))
                .values(deleted_at=now, is_available=False)
            )
            menu.is_active = False
            menu.deleted_at = now

        self.invalidator.menu_changed(menu_id)
        logger.info(
            f"Deleted menu {menu_id}",
            extra={"operation": "delete_menu", "entity_id": menu_id, "actor": actor},
        )

    def get_menu(self, menu_id: int, include_items: bool = True, now: Optional[datetime] = None) -> MenuDetail:
        """
        Menu detail, optionally with entries, category groups and stats.

        The time-window status is recomputed on every call, also for cached
        details.
        """
        key = CacheKeys.menu(menu_id, include_items)
        cached = self.cache.get(key)
        if cached is not None:
            detail = MenuDetail.model_validate(cached)
        else:
            query = select(Menu).where(Menu.id == menu_id, Menu.deleted_at.is_(None))
            if include_items:
                query = query.options(*entry_loaders(Menu.menu_items))
            menu = self.db.execute(query).scalar_one_or_none()
            if menu is None:
                raise NotFoundError("Menu", menu_id)

            detail = self._to_detail(menu, include_items)
            self.cache.set(key, detail.model_dump(mode="json"), self.settings.MENU_CACHE_TTL)

        status = menu_status(detail, now)
        return detail.model_copy(update={
            "status": status.value,
            "is_currently_active": status == MenuStatus.ACTIVE,
        })

    def list_menus(
        self,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
        current_only: bool = False,
        include_items: bool = False,
        limit: int = 20,
        offset: int = 0,
        now: Optional[datetime] = None,
    ) -> MenuListResponse:
        """
        Page through live menus by display order, then English name.

        `current_only` keeps menus whose time window contains now; the
        is_active flag is filtered separately. Status is computed per row.
        """
        now = now or utcnow()
        query = select(Menu).where(Menu.deleted_at.is_(None))
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(
                Menu.name_en.ilike(pattern),
                Menu.name_ar.ilike(pattern),
                Menu.description.ilike(pattern),
            ))
        if is_active is not None:
            query = query.where(Menu.is_active.is_(is_active))
        if current_only:
            query = query.where(
                or_(Menu.start_date.is_(None), Menu.start_date <= now),
                or_(Menu.end_date.is_(None), Menu.end_date >= now),
            )

        total = self.db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
        loaders = entry_loaders(Menu.menu_items) if include_items else [selectinload(Menu.menu_items)]
        menus = self.db.execute(
            query.options(*loaders)
            .order_by(Menu.display_order, Menu.name_en, Menu.id)
            .limit(limit)
            .offset(offset)
        ).scalars().all()

        items = []
        for menu in menus:
            detail = self._to_detail(menu, include_items)
            status = menu_status(menu, now)
            detail.status = status.value
            detail.is_currently_active = status == MenuStatus.ACTIVE
            items.append(detail)
        return MenuListResponse(items=items, total=total)

    def list_active_menus(self) -> list[ActiveMenu]:
        """Currently active menus by display order, then English name."""
        cached = self.cache.get(CacheKeys.ACTIVE_MENUS)
        if cached is not None:
            return [ActiveMenu.model_validate(row) for row in cached]

        now = utcnow()
        menus = self.db.execute(
            select(Menu)
            .where(
                Menu.deleted_at.is_(None),
                Menu.is_active.is_(True),
                or_(Menu.start_date.is_(None), Menu.start_date <= now),
                or_(Menu.end_date.is_(None), Menu.end_date >= now),
            )
            .order_by(Menu.display_order, Menu.name_en)
        ).scalars().all()

        result = [
            ActiveMenu(
                id=menu.id,
                name_ar=menu.name_ar,
                name_en=menu.name_en,
                description=menu.description,
                image_url=menu.image_url,
                display_order=menu.display_order,
                start_date=menu.start_date,
                end_date=menu.end_date,
            )
            for menu in menus
        ]
        self.cache.set(
            CacheKeys.ACTIVE_MENUS,
            [menu.model_dump(mode="json") for menu in result],
            self.settings.ACTIVE_MENUS_CACHE_TTL,
        )
        return result

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def add_menu_item(self, menu_id: int, data: MenuItemCreate, actor: Optional[str] = None) -> MenuEntryResponse:
        ref = EntityRef.from_fields(
            MENU_ENTRY_KINDS, item_id=data.item_id, recipe_id=data.recipe_id, meal_id=data.meal_id,
        )
        self._validate_display_order(data.display_order)
        special_price = self._validate_special_price(data.special_price)

        with transaction(self.db):
            self._lock_menu(menu_id)
            self._resolve_entity(ref)
            if data.category_id is not None:
                self._ensure_category(data.category_id)

            column = getattr(MenuItem, ref.kind.field)
            duplicate = self.db.execute(
                select(MenuItem.id).where(
                    MenuItem.menu_id == menu_id,
                    column == ref.id,
                    MenuItem.deleted_at.is_(None),
                )
            ).first()
            if duplicate:
                raise ConflictError(
                    f"Menu {menu_id} already lists {ref.kind.value} {ref.id}",
                    {"menu_id": menu_id, "entity_type": ref.kind.value, "entity_id": ref.id},
                )

            entry = MenuItem(
                menu_id=menu_id,
                category_id=data.category_id,
                entity_type=ref.kind,
                display_order=data.display_order,
                special_price=special_price,
                is_available=data.is_available,
                is_recommended=data.is_recommended,
                **ref.as_fields(MENU_ENTRY_KINDS),
            )
            self.db.add(entry)
            self.db.flush()
            entry_id = entry.id

        self.invalidator.menu_changed(menu_id)
        logger.info(
            f"Added {ref.kind.value} {ref.id} to menu {menu_id}",
            extra={"operation": "add_menu_item", "entity_id": entry_id, "actor": actor},
        )
        return self.get_menu_item(entry_id)

    def get_menu_item(self, menu_item_id: int) -> MenuEntryResponse:
        entry = self.db.execute(
            select(MenuItem)
            .where(MenuItem.id == menu_item_id, MenuItem.deleted_at.is_(None))
            .options(*entry_loaders())
        ).scalar_one_or_none()
        if entry is None:
            raise NotFoundError("MenuItem", menu_item_id)
        return self._entry_response(entry)

    def update_menu_item(
        self, menu_item_id: int, patch: MenuItemUpdate, actor: Optional[str] = None,
    ) -> MenuEntryResponse:
        changes = self._validate_entry_changes(patch)

        with transaction(self.db):
            entry = self.db.execute(
                select(MenuItem)
                .where(MenuItem.id == menu_item_id, MenuItem.deleted_at.is_(None))
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if entry is None:
                raise NotFoundError("MenuItem", menu_item_id)
            if changes.get("category_id") is not None:
                self._ensure_category(changes["category_id"])

            for name, value in changes.items():
                setattr(entry, name, value)
            menu_id = entry.menu_id

        self.invalidator.menu_changed(menu_id)
        logger.info(
            f"Updated menu item {menu_item_id}: {sorted(changes)}",
            extra={"operation": "update_menu_item", "entity_id": menu_item_id, "actor": actor},
        )
        return self.get_menu_item(menu_item_id)

    def remove_menu_item(self, menu_item_id: int, actor: Optional[str] = None) -> None:
        with transaction(self.db):
            entry = self.db.execute(
                select(MenuItem)
                .where(MenuItem.id == menu_item_id, MenuItem.deleted_at.is_(None))
                .with_for_update()
            ).scalar_one_or_none()
            if entry is None:
                raise NotFoundError("MenuItem", menu_item_id)
            entry.is_available = False
            entry.deleted_at = utcnow()
            menu_id = entry.menu_id

        self.invalidator.menu_changed(menu_id)
        logger.info(
            f"Removed menu item {menu_item_id} from menu {menu_id}",
            extra={"operation": "remove_menu_item", "entity_id": menu_item_id, "actor": actor},
        )

    def bulk_update_menu_items(
        self, menu_item_ids: Sequence[int], patch: MenuItemUpdate, actor: Optional[str] = None,
    ) -> BulkUpdateResult:
        """
        Apply one patch to many entries.

        Not all-or-nothing: unknown or deleted ids are reported in `failed`
        while the known ids are updated together in one write.
        """
        changes = self._validate_entry_changes(patch)
        requested = list(dict.fromkeys(menu_item_ids))

        with transaction(self.db):
            if "category_id" in changes and changes["category_id"] is not None:
                self._ensure_category(changes["category_id"])

            rows = self.db.execute(
                select(MenuItem.id, MenuItem.menu_id)
                .where(MenuItem.id.in_(requested), MenuItem.deleted_at.is_(None))
                .with_for_update()
            ).all()
            known = {row.id: row.menu_id for row in rows}

            if known and changes:
                self.db.execute(
                    update(MenuItem).where(MenuItem.id.in_(list(known))).values(**changes)
                )

        result = BulkUpdateResult(
            updated=[BulkUpdateSuccess(id=entry_id, menu_id=known[entry_id]) for entry_id in requested if entry_id in known],
            failed=[
                BulkUpdateFailure(id=entry_id, error="Menu item not found")
                for entry_id in requested if entry_id not in known
            ],
        )
        if known:
            self.invalidator.menu_changed(*sorted(set(known.values())))

        logger.info(
            f"Bulk updated {len(result.updated)} menu items, {len(result.failed)} failed",
            extra={"operation": "bulk_update_menu_items", "entity_id": sorted(known), "actor": actor},
        )
        return result

    def reorder_menu_items(
        self, menu_id: int, orders: Sequence[MenuItemOrder], actor: Optional[str] = None,
    ) -> ReorderResult:
        """Apply display orders atomically. Every id must be a live entry of this menu."""
        ids = [order.menu_item_id for order in orders]
        if len(set(ids)) != len(ids):
            raise ValidationError("Duplicate menu item ids in reorder request", {"menu_item_ids": ids})
        for order in orders:
            self._validate_display_order(order.display_order)

        with transaction(self.db):
            self._lock_menu(menu_id)
            entries = self.db.execute(
                select(MenuItem)
                .where(
                    MenuItem.id.in_(ids),
                    MenuItem.menu_id == menu_id,
                    MenuItem.deleted_at.is_(None),
                )
                .with_for_update()
            ).scalars().all()
            if len(entries) != len(ids):
                foreign = sorted(set(ids) - {entry.id for entry in entries})
                raise ValidationError(
                    f"Some menu items do not belong to menu {menu_id}",
                    {"menu_id": menu_id, "menu_item_ids": foreign},
                )

            by_id = {entry.id: entry for entry in entries}
            for order in orders:
                by_id[order.menu_item_id].display_order = order.display_order

        self.invalidator.menu_changed(menu_id)
        logger.info(
            f"Reordered {len(orders)} items in menu {menu_id}",
            extra={"operation": "reorder_menu_items", "entity_id": menu_id, "actor": actor},
        )
        return ReorderResult(menu_id=menu_id, items_reordered=len(orders))

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    def get_menu_stats(self) -> MenuStats:
        cached = self.cache.get(CacheKeys.MENU_STATS)
        if cached is not None:
            return MenuStats.model_validate(cached)

        menus = self.db.execute(select(Menu).where(Menu.deleted_at.is_(None))).scalars().all()
        entries = self.db.execute(
            select(MenuItem)
            .join(Menu, Menu.id == MenuItem.menu_id)
            .where(MenuItem.deleted_at.is_(None), Menu.deleted_at.is_(None))
            .options(selectinload(MenuItem.menu), *entry_loaders())
            .order_by(MenuItem.menu_id, MenuItem.display_order, MenuItem.id)
        ).scalars().all()

        now = utcnow()
        total_menus = len(menus)
        active_menus = sum(1 for menu in menus if menu.is_active)
        servable = [entry_can_serve(entry) for entry in entries]
        available = sum(servable)

        distribution: dict[Optional[int], CategoryCount] = {}
        for entry in entries:
            bucket = distribution.get(entry.category_id)
            if bucket is None:
                name = entry.category.name_en if entry.category is not None else UNCATEGORIZED
                bucket = distribution[entry.category_id] = CategoryCount(
                    category_id=entry.category_id, category_name=name, count=0,
                )
            bucket.count += 1

        popular = [
            PopularEntry(
                id=entry.id,
                name=entry.entity.name_en or entry.entity.name_ar,
                menu_name=entry.menu.name_en,
                price=entry_price(entry),
            )
            for entry, can_serve in zip(entries, servable)
            if entry.is_recommended and can_serve
        ][:POPULAR_ENTRIES_LIMIT]

        stats = MenuStats(
            total_menus=total_menus,
            active_menus=active_menus,
            inactive_menus=total_menus - active_menus,
            current_active_menus=sum(1 for menu in menus if is_currently_active(menu, now)),
            total_menu_items=len(entries),
            available_menu_items=available,
            unavailable_menu_items=len(entries) - available,
            avg_items_per_menu=(
                quantize_money(Decimal(len(entries)) / Decimal(total_menus)) if total_menus else quantize_money(ZERO)
            ),
            category_distribution=list(distribution.values()),
            popular_items=popular,
            generated_at=now,
        )
        self.cache.set(CacheKeys.MENU_STATS, stats.model_dump(mode="json"), self.settings.STATS_CACHE_TTL)
        return stats

    def get_menu_recommendations(self) -> list[Recommendation]:
        stats = self.get_menu_stats()
        recommendations = []

        if stats.avg_items_per_menu < LOW_VARIETY_THRESHOLD:
            recommendations.append(Recommendation(
                type="INCREASE_VARIETY",
                title="Increase Menu Variety",
                message=(
                    f"Average of {stats.avg_items_per_menu} items per menu is low. "
                    "Consider adding more items to improve customer choice."
                ),
                priority="HIGH",
            ))

        if stats.unavailable_menu_items > stats.available_menu_items * UNAVAILABLE_RATIO_THRESHOLD:
            recommendations.append(Recommendation(
                type="ACTIVATE_ITEMS",
                title="Review Inactive Items",
                message=f"{stats.unavailable_menu_items} menu items are unavailable. Review and activate popular items.",
                priority="MEDIUM",
            ))

        has_windowed_menu = self.db.execute(
            select(Menu.id).where(
                Menu.deleted_at.is_(None),
                or_(Menu.start_date.is_not(None), Menu.end_date.is_not(None)),
            ).limit(1)
        ).first()
        if not has_windowed_menu:
            recommendations.append(Recommendation(
                type="SEASONAL_MENUS",
                title="Create Seasonal Menus",
                message="Consider creating seasonal menus to offer variety throughout the year.",
                priority="LOW",
            ))

        return recommendations

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock_menu(self, menu_id: int) -> Menu:
        menu = self.db.execute(
            select(Menu)
            .where(Menu.id == menu_id, Menu.deleted_at.is_(None))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if menu is None:
            raise NotFoundError("Menu", menu_id)
        return menu

    def _ensure_names_free(self, name_en: str, name_ar: str, exclude_id: Optional[int] = None) -> None:
        query = select(Menu.id).where(
            Menu.deleted_at.is_(None),
            or_(Menu.name_en == name_en, Menu.name_ar == name_ar),
        )
        if exclude_id is not None:
            query = query.where(Menu.id != exclude_id)
        if self.db.execute(query).first():
            raise ConflictError(
                "A menu with this name already exists",
                {"name_en": name_en, "name_ar": name_ar},
            )

    def _ensure_category(self, category_id: int) -> None:
        if self.db.get(Category, category_id) is None:
            raise InvalidReferenceError("Category", [category_id])

    def _resolve_entity(self, ref: EntityRef):
        """Load a live, available entity or raise InvalidReferenceError."""
        model = ENTITY_MODELS[ref.kind]
        entity = self.db.get(model, ref.id)
        if entity is None or entity.deleted_at is not None:
            raise InvalidReferenceError(model.__name__, [ref.id])
        if not entity.is_available:
            raise InvalidReferenceError(model.__name__, [ref.id], reason="unavailable")
        return entity

    def _validate_display_order(self, display_order: int) -> None:
        if display_order < 0:
            raise ValidationError("display_order must not be negative", {"field": "display_order"})

    def _validate_special_price(self, special_price) -> Optional[Decimal]:
        if special_price is None:
            return None
        price = quantize_money(special_price)
        if price < ZERO:
            raise ValidationError("special_price must not be negative", {"field": "special_price"})
        return price

    def _validate_entry_changes(self, patch: MenuItemUpdate) -> dict:
        changes = patch.model_dump(exclude_unset=True)
        for name in ("display_order", "is_available", "is_recommended"):
            if name in changes and changes[name] is None:
                raise ValidationError(f"{name} cannot be null", {"field": name})
        if "display_order" in changes:
            self._validate_display_order(changes["display_order"])
        if "special_price" in changes:
            changes["special_price"] = self._validate_special_price(changes["special_price"])
        return changes

    def _entry_response(self, entry: MenuItem) -> MenuEntryResponse:
        entity = entry.entity
        return MenuEntryResponse(
            id=entry.id,
            menu_id=entry.menu_id,
            category_id=entry.category_id,
            entity_type=EntityKind(entry.entity_type),
            entity_id=entry.ref.id,
            name_en=entity.name_en,
            name_ar=entity.name_ar,
            display_order=entry.display_order,
            special_price=to_decimal(entry.special_price) if entry.special_price is not None else None,
            selling_price=to_decimal(entity.selling_price),
            effective_price=entry_price(entry),
            is_available=entry.is_available,
            is_recommended=entry.is_recommended,
            can_serve=entry_can_serve(entry),
        )

    def _to_detail(self, menu: Menu, include_items: bool) -> MenuDetail:
        detail = MenuDetail(
            id=menu.id,
            name_ar=menu.name_ar,
            name_en=menu.name_en,
            description=menu.description,
            image_url=menu.image_url,
            display_order=menu.display_order,
            is_active=menu.is_active,
            start_date=menu.start_date,
            end_date=menu.end_date,
            is_currently_active=is_currently_active(menu),
            status=menu_status(menu).value,
            item_count=0,
        )

        live = [entry for entry in menu.menu_items if entry.deleted_at is None]
        detail.item_count = len(live)
        if include_items:
            responses = [self._entry_response(entry) for entry in live]
            detail.items = responses
            detail.categories = group_by_category(live, responses)
            detail.stats = entry_stats(responses)
        return detail

"""
Tests for menu assembly: menus, entries, ordering and analytics.
"""
import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace
from sqlalchemy import select

from backoffice.core.cache import CacheKeys
from backoffice.core.clock import utcnow
from backoffice.core.exceptions import (
    ConflictError,
    InvalidReferenceError,
    NotFoundError,
    ValidationError,
)
from backoffice.models import MenuItem
from backoffice.schemas.meal import MealComponentIn, MealCreate
from backoffice.schemas.menu import MenuCreate, MenuItemCreate, MenuItemOrder, MenuItemUpdate, MenuUpdate
from backoffice.schemas.recipe import RecipeUpdate
from backoffice.services.menu_assembly import MenuStatus, is_currently_active, menu_status


def new_menu(menu_service, name="Lunch", **fields):
    return menu_service.create_menu(MenuCreate(name_ar=f"{name} ar", name_en=name, **fields))


class TestTimeWindow:
    NOW = datetime(2025, 6, 15, 12, 0)

    def window(self, is_active=True, start=None, end=None):
        return SimpleNamespace(is_active=is_active, start_date=start, end_date=end)

    def test_open_window_is_active(self):
        assert is_currently_active(self.window(), self.NOW) is True

    def test_inactive_flag_wins(self):
        menu = self.window(is_active=False, start=self.NOW - timedelta(days=1))
        assert menu_status(menu, self.NOW) == MenuStatus.INACTIVE
        assert is_currently_active(menu, self.NOW) is False

    def test_scheduled_and_expired(self):
        assert menu_status(self.window(start=self.NOW + timedelta(hours=1)), self.NOW) == MenuStatus.SCHEDULED
        assert menu_status(self.window(end=self.NOW - timedelta(hours=1)), self.NOW) == MenuStatus.EXPIRED

    def test_bounds_are_inclusive(self):
        assert is_currently_active(self.window(start=self.NOW, end=self.NOW), self.NOW) is True


class TestMenuLifecycle:
    def test_create_and_get(self, menu_service):
        menu = new_menu(menu_service, display_order=2)
        detail = menu_service.get_menu(menu.id)

        assert detail.name_en == "Lunch"
        assert detail.status == "ACTIVE"
        assert detail.item_count == 0
        assert detail.items == []
        assert detail.stats.price_range.avg == Decimal("0")

    def test_duplicate_name_conflicts(self, menu_service):
        new_menu(menu_service, name="Brunch")
        with pytest.raises(ConflictError):
            new_menu(menu_service, name="Brunch")

    def test_window_must_be_ordered(self, menu_service):
        start = utcnow()
        with pytest.raises(ValidationError):
            new_menu(menu_service, start_date=start, end_date=start)

    def test_update_rejects_window_against_stored_bound(self, menu_service):
        start = utcnow() + timedelta(days=10)
        menu = new_menu(menu_service, start_date=start)
        with pytest.raises(ValidationError):
            menu_service.update_menu(menu.id, MenuUpdate(end_date=start - timedelta(days=1)))

    def test_update_name_collision(self, menu_service):
        new_menu(menu_service, name="Breakfast")
        dinner = new_menu(menu_service, name="Dinner")
        with pytest.raises(ConflictError):
            menu_service.update_menu(dinner.id, MenuUpdate(name_en="Breakfast"))

    def test_status_recomputed_for_cached_detail(self, cache, menu_service):
        end = datetime(2030, 1, 1)
        menu = new_menu(menu_service, end_date=end)

        before = menu_service.get_menu(menu.id, include_items=False, now=end - timedelta(minutes=1))
        assert CacheKeys.menu(menu.id, False) in cache.keys()
        after = menu_service.get_menu(menu.id, include_items=False, now=end + timedelta(minutes=1))

        assert before.status == "ACTIVE"
        assert after.status == "EXPIRED"
        assert after.is_currently_active is False

    def test_delete_soft_deletes_entries(self, db, menu_service, make_item):
        item = make_item(selling_price="3.00")
        menu = new_menu(menu_service)
        menu_service.add_menu_item(menu.id, MenuItemCreate(item_id=item.id))

        menu_service.delete_menu(menu.id)

        with pytest.raises(NotFoundError):
            menu_service.get_menu(menu.id)
        entries = db.execute(select(MenuItem).where(MenuItem.menu_id == menu.id)).scalars().all()
        assert all(entry.deleted_at is not None for entry in entries)

    def test_deleted_name_can_be_reused(self, menu_service):
        menu = new_menu(menu_service, name="Ramadan")
        menu_service.delete_menu(menu.id)
        assert new_menu(menu_service, name="Ramadan").id != menu.id


class TestListMenus:
    def seed(self, menu_service):
        now = utcnow()
        lunch = new_menu(menu_service, "Lunch", display_order=1)
        brunch = new_menu(
            menu_service, "Brunch", display_order=2,
            start_date=now + timedelta(days=3), end_date=now + timedelta(days=10),
            description="Weekend specials",
        )
        closed = new_menu(menu_service, "Closed", display_order=3, is_active=False)
        return lunch, brunch, closed

    def test_lists_live_menus_with_status(self, menu_service):
        lunch, brunch, closed = self.seed(menu_service)
        menu_service.delete_menu(new_menu(menu_service, "Gone").id)

        result = menu_service.list_menus()

        assert result.total == 3
        assert [(m.id, m.status) for m in result.items] == [
            (lunch.id, "ACTIVE"),
            (brunch.id, "SCHEDULED"),
            (closed.id, "INACTIVE"),
        ]
        assert [m.is_currently_active for m in result.items] == [True, False, False]
        assert all(m.items is None for m in result.items)

    def test_filters(self, menu_service):
        lunch, brunch, closed = self.seed(menu_service)

        assert [m.id for m in menu_service.list_menus(search="weekend").items] == [brunch.id]
        assert [m.id for m in menu_service.list_menus(is_active=False).items] == [closed.id]
        assert [m.id for m in menu_service.list_menus(current_only=True).items] == [lunch.id, closed.id]

    def test_pagination_keeps_total(self, menu_service):
        self.seed(menu_service)
        page = menu_service.list_menus(limit=1, offset=1)
        assert page.total == 3
        assert [m.name_en for m in page.items] == ["Brunch"]

    def test_include_items_counts_live_entries(self, menu_service, make_item):
        lunch, _, _ = self.seed(menu_service)
        kept = menu_service.add_menu_item(lunch.id, MenuItemCreate(item_id=make_item().id))
        removed = menu_service.add_menu_item(lunch.id, MenuItemCreate(item_id=make_item().id))
        menu_service.remove_menu_item(removed.id)

        row = menu_service.list_menus(include_items=True, limit=1).items[0]
        assert row.item_count == 1
        assert [entry.id for entry in row.items] == [kept.id]


class TestAddMenuItem:
    def test_duplicate_entry_rejected(self, menu_service, make_item, make_recipe):
        item = make_item()
        recipe = make_recipe([(item.id, 1)])
        menu = new_menu(menu_service)

        menu_service.add_menu_item(menu.id, MenuItemCreate(recipe_id=recipe.id))
        with pytest.raises(ConflictError):
            menu_service.add_menu_item(menu.id, MenuItemCreate(recipe_id=recipe.id))

    def test_same_entity_on_two_menus(self, menu_service, make_item):
        item = make_item()
        lunch = new_menu(menu_service, name="Lunch")
        dinner = new_menu(menu_service, name="Dinner")

        menu_service.add_menu_item(lunch.id, MenuItemCreate(item_id=item.id))
        menu_service.add_menu_item(dinner.id, MenuItemCreate(item_id=item.id))

    def test_removed_entry_can_be_added_again(self, menu_service, make_item):
        item = make_item()
        menu = new_menu(menu_service)
        entry = menu_service.add_menu_item(menu.id, MenuItemCreate(item_id=item.id))

        menu_service.remove_menu_item(entry.id)
        again = menu_service.add_menu_item(menu.id, MenuItemCreate(item_id=item.id))
        assert again.id != entry.id

    @pytest.mark.parametrize("fields", [
        {},
        {"item_id": 1, "recipe_id": 1},
        {"item_id": 1, "meal_id": 1},
        {"recipe_id": 1, "meal_id": 1},
        {"item_id": 1, "recipe_id": 1, "meal_id": 1},
    ])
    def test_exactly_one_reference(self, menu_service, fields):
        menu = new_menu(menu_service)
        with pytest.raises(ValidationError):
            menu_service.add_menu_item(menu.id, MenuItemCreate(**fields))

    def test_unknown_entity(self, menu_service):
        menu = new_menu(menu_service)
        with pytest.raises(InvalidReferenceError):
            menu_service.add_menu_item(menu.id, MenuItemCreate(meal_id=4040))

    def test_unavailable_entity(self, recipe_service, menu_service, make_item, make_recipe):
        item = make_item()
        recipe = make_recipe([(item.id, 1)])
        recipe_service.update_recipe(recipe.id, RecipeUpdate(is_available=False))
        menu = new_menu(menu_service)

        with pytest.raises(InvalidReferenceError) as exc_info:
            menu_service.add_menu_item(menu.id, MenuItemCreate(recipe_id=recipe.id))
        assert exc_info.value.details["reason"] == "unavailable"

    def test_unknown_category(self, menu_service, make_item):
        item = make_item()
        menu = new_menu(menu_service)
        with pytest.raises(InvalidReferenceError):
            menu_service.add_menu_item(menu.id, MenuItemCreate(item_id=item.id, category_id=99))

    def test_unknown_category_on_update(self, menu_service, make_item, make_category):
        mains = make_category()
        menu = new_menu(menu_service)
        entry = menu_service.add_menu_item(menu.id, MenuItemCreate(item_id=make_item().id, category_id=mains.id))

        with pytest.raises(InvalidReferenceError):
            menu_service.update_menu_item(entry.id, MenuItemUpdate(category_id=9999))
        assert menu_service.get_menu_item(entry.id).category_id == mains.id

    def test_unknown_menu(self, menu_service, make_item):
        item = make_item()
        with pytest.raises(NotFoundError):
            menu_service.add_menu_item(555, MenuItemCreate(item_id=item.id))


class TestEntryPricingAndAvailability:
    def test_effective_price(self, menu_service, make_item):
        item = make_item(selling_price="10.00")
        special = make_item(selling_price="10.00")
        menu = new_menu(menu_service)

        plain = menu_service.add_menu_item(menu.id, MenuItemCreate(item_id=item.id))
        discounted = menu_service.add_menu_item(
            menu.id, MenuItemCreate(item_id=special.id, special_price=Decimal("7.50")),
        )

        assert plain.effective_price == Decimal("10.00")
        assert discounted.effective_price == Decimal("7.50")

    def test_zero_special_price_falls_back(self, menu_service, make_item):
        item = make_item(selling_price="6.00")
        menu = new_menu(menu_service)
        entry = menu_service.add_menu_item(menu.id, MenuItemCreate(item_id=item.id, special_price=Decimal("0")))
        assert entry.effective_price == Decimal("6.00")

    def test_can_serve_ripples_from_entities(self, db, menu_service, meal_service, make_item, make_recipe):
        flour = make_item(current_stock="10")
        recipe = make_recipe([(flour.id, 4)])
        meal = meal_service.create_meal(MealCreate(
            meal_code="M1", name_ar="x", name_en="Bread Box",
            components=[MealComponentIn(recipe_id=recipe.id, quantity=Decimal("1"))],
        ))
        menu = new_menu(menu_service)
        for fields in ({"item_id": flour.id}, {"recipe_id": recipe.id}, {"meal_id": meal.id}):
            menu_service.add_menu_item(menu.id, MenuItemCreate(**fields))

        assert [e.can_serve for e in menu_service.get_menu(menu.id).items] == [True, True, True]

        flour.current_stock = Decimal("3")
        db.commit()
        menu_service.invalidator.item_changed(flour.id)

        detail = menu_service.get_menu(menu.id)
        assert [e.can_serve for e in detail.items] == [True, False, False]
        assert detail.stats.available_items == 1
        assert detail.stats.availability_rate == Decimal("33.33")

    def test_out_of_stock_item(self, menu_service, make_item):
        item = make_item(current_stock="0")
        menu = new_menu(menu_service)
        entry = menu_service.add_menu_item(menu.id, MenuItemCreate(item_id=item.id))
        assert entry.can_serve is False

    def test_recipe_write_refreshes_cached_menu(self, recipe_service, menu_service, make_item, make_recipe):
        item = make_item()
        recipe = make_recipe([(item.id, 1)])
        menu = new_menu(menu_service)
        menu_service.add_menu_item(menu.id, MenuItemCreate(recipe_id=recipe.id))
        menu_service.get_menu(menu.id)

        recipe_service.update_recipe(recipe.id, RecipeUpdate(selling_price=Decimal("12.00")))

        assert menu_service.get_menu(menu.id).items[0].effective_price == Decimal("12.00")


class TestUpdateAndRemoveMenuItem:
    def test_update_entry(self, menu_service, make_item, make_category):
        item = make_item(selling_price="5.00")
        category = make_category("Drinks")
        menu = new_menu(menu_service)
        entry = menu_service.add_menu_item(menu.id, MenuItemCreate(item_id=item.id))

        updated = menu_service.update_menu_item(entry.id, MenuItemUpdate(
            category_id=category.id, special_price=Decimal("4.00"), is_recommended=True,
        ))

        assert updated.category_id == category.id
        assert updated.effective_price == Decimal("4.00")
        assert updated.is_recommended is True

    def test_negative_display_order_rejected(self, menu_service, make_item):
        item = make_item()
        menu = new_menu(menu_service)
        entry = menu_service.add_menu_item(menu.id, MenuItemCreate(item_id=item.id))
        with pytest.raises(ValidationError):
            menu_service.update_menu_item(entry.id, MenuItemUpdate(display_order=-1))

    def test_remove_hides_entry(self, menu_service, make_item):
        item = make_item()
        menu = new_menu(menu_service)
        entry = menu_service.add_menu_item(menu.id, MenuItemCreate(item_id=item.id))
        menu_service.get_menu(menu.id)

        menu_service.remove_menu_item(entry.id)

        assert menu_service.get_menu(menu.id).item_count == 0
        with pytest.raises(NotFoundError):
            menu_service.get_menu_item(entry.id)


class TestReorder:
    def entries(self, menu_service, make_item, menu_id, count):
        return [
            menu_service.add_menu_item(menu_id, MenuItemCreate(item_id=make_item().id, display_order=i))
            for i in range(count)
        ]

    def test_reorder_applies_all(self, menu_service, make_item):
        menu = new_menu(menu_service)
        a, b, c = self.entries(menu_service, make_item, menu.id, 3)

        result = menu_service.reorder_menu_items(menu.id, [
            MenuItemOrder(menu_item_id=a.id, display_order=2),
            MenuItemOrder(menu_item_id=b.id, display_order=0),
            MenuItemOrder(menu_item_id=c.id, display_order=1),
        ])

        assert result.items_reordered == 3
        assert [e.id for e in menu_service.get_menu(menu.id).items] == [b.id, c.id, a.id]

    def test_foreign_entry_aborts_whole_reorder(self, db, menu_service, make_item):
        menu = new_menu(menu_service, name="Main")
        other = new_menu(menu_service, name="Other")
        a, _, c = self.entries(menu_service, make_item, menu.id, 3)
        (foreign,) = self.entries(menu_service, make_item, other.id, 1)

        with pytest.raises(ValidationError):
            menu_service.reorder_menu_items(menu.id, [
                MenuItemOrder(menu_item_id=a.id, display_order=9),
                MenuItemOrder(menu_item_id=foreign.id, display_order=8),
                MenuItemOrder(menu_item_id=c.id, display_order=7),
            ])

        db.expire_all()
        orders = {
            entry.id: entry.display_order
            for entry in db.execute(select(MenuItem)).scalars()
        }
        assert orders[a.id] == 0
        assert orders[c.id] == 2
        assert orders[foreign.id] == 0

    def test_duplicate_ids_rejected(self, menu_service, make_item):
        menu = new_menu(menu_service)
        (a,) = self.entries(menu_service, make_item, menu.id, 1)
        with pytest.raises(ValidationError):
            menu_service.reorder_menu_items(menu.id, [
                MenuItemOrder(menu_item_id=a.id, display_order=1),
                MenuItemOrder(menu_item_id=a.id, display_order=2),
            ])


class TestBulkUpdate:
    def test_partial_success(self, db, menu_service, make_item):
        menu = new_menu(menu_service)
        first = menu_service.add_menu_item(menu.id, MenuItemCreate(item_id=make_item().id))
        second = menu_service.add_menu_item(menu.id, MenuItemCreate(item_id=make_item().id))

        result = menu_service.bulk_update_menu_items(
            [first.id, 987, second.id], MenuItemUpdate(is_recommended=True),
        )

        assert [row.id for row in result.updated] == [first.id, second.id]
        assert [(row.id, row.error) for row in result.failed] == [(987, "Menu item not found")]
        assert all(entry.is_recommended for entry in menu_service.get_menu(menu.id).items)

    def test_all_unknown(self, menu_service):
        result = menu_service.bulk_update_menu_items([1, 2], MenuItemUpdate(is_available=False))
        assert result.updated == []
        assert [row.id for row in result.failed] == [1, 2]


class TestGrouping:
    def test_categories_and_price_ranges(self, menu_service, make_item, make_category):
        mains = make_category("Mains", display_order=1)
        starters = make_category("Starters", display_order=0)
        menu = new_menu(menu_service)

        for price, category in (("12.00", mains), ("18.00", mains), ("5.00", starters), ("3.00", None)):
            menu_service.add_menu_item(menu.id, MenuItemCreate(
                item_id=make_item(selling_price=price).id,
                category_id=category.id if category else None,
            ))

        groups = menu_service.get_menu(menu.id).categories

        assert [g.category_name for g in groups] == ["Starters", "Mains", "Uncategorized"]
        assert groups[1].total_items == 2
        assert groups[1].price_range.min == Decimal("12.00")
        assert groups[1].price_range.max == Decimal("18.00")
        assert groups[1].price_range.avg == Decimal("15.00")
        assert groups[2].category_id is None

    def test_item_type_counts(self, menu_service, make_item, make_recipe):
        item = make_item()
        recipe = make_recipe([(item.id, 1)])
        menu = new_menu(menu_service)
        menu_service.add_menu_item(menu.id, MenuItemCreate(item_id=item.id))
        menu_service.add_menu_item(menu.id, MenuItemCreate(recipe_id=recipe.id))

        stats = menu_service.get_menu(menu.id).stats
        assert stats.item_types == {"item": 1, "recipe": 1, "meal": 0}


class TestActiveMenus:
    def test_only_current_menus_in_order(self, menu_service):
        now = utcnow()
        new_menu(menu_service, name="Zeta", display_order=1)
        new_menu(menu_service, name="Alpha", display_order=1)
        new_menu(menu_service, name="First", display_order=0)
        new_menu(menu_service, name="Off", is_active=False)
        new_menu(menu_service, name="Later", start_date=now + timedelta(days=3))
        new_menu(menu_service, name="Gone", end_date=now - timedelta(days=3))

        names = [menu.name_en for menu in menu_service.list_active_menus()]
        assert names == ["First", "Alpha", "Zeta"]

    def test_list_refreshes_after_write(self, menu_service):
        new_menu(menu_service, name="One")
        assert len(menu_service.list_active_menus()) == 1

        new_menu(menu_service, name="Two")
        assert len(menu_service.list_active_menus()) == 2


class TestMenuAnalytics:
    def test_stats(self, menu_service, make_item, make_category):
        drinks = make_category("Drinks")
        lunch = new_menu(menu_service, name="Lunch")
        new_menu(menu_service, name="Closed", is_active=False)

        cola = make_item(selling_price="2.50")
        menu_service.add_menu_item(lunch.id, MenuItemCreate(
            item_id=cola.id, category_id=drinks.id, is_recommended=True,
        ))
        menu_service.add_menu_item(lunch.id, MenuItemCreate(item_id=make_item(current_stock="0").id))

        stats = menu_service.get_menu_stats()

        assert stats.total_menus == 2
        assert stats.active_menus == 1
        assert stats.current_active_menus == 1
        assert stats.total_menu_items == 2
        assert stats.available_menu_items == 1
        assert stats.avg_items_per_menu == Decimal("1.00")
        assert {c.category_name: c.count for c in stats.category_distribution} == {"Drinks": 1, "Uncategorized": 1}
        assert [(p.id, p.price) for p in stats.popular_items][0][1] == Decimal("2.50")

    def test_recommendations(self, menu_service, make_item):
        menu = new_menu(menu_service)
        menu_service.add_menu_item(menu.id, MenuItemCreate(item_id=make_item(current_stock="0").id))

        types = {r.type for r in menu_service.get_menu_recommendations()}
        assert types == {"INCREASE_VARIETY", "ACTIVATE_ITEMS", "SEASONAL_MENUS"}

    def test_seasonal_menu_silences_recommendation(self, menu_service):
        new_menu(menu_service, name="Summer", end_date=utcnow() + timedelta(days=90))
        types = {r.type for r in menu_service.get_menu_recommendations()}
        assert "SEASONAL_MENUS" not in types

"""
Seed script for the back-office development database.

Creates a handful of items, two recipes, a combo meal and a lunch menu so the
API has something to show. Recipes, meals and menus go through the services so
their costs and snapshots are computed the same way as in production.

Usage:
    alembic upgrade head
    python scripts/seed.py
"""
from decimal import Decimal

from backoffice.core.cache import close_cache, init_cache
from backoffice.core.config import get_settings
from backoffice.db.session import SessionLocal
from backoffice.models import Category, Item
from backoffice.schemas.meal import MealComponentIn, MealCreate
from backoffice.schemas.menu import MenuCreate, MenuItemCreate
from backoffice.schemas.recipe import RecipeCreate, RecipeLineIn
from backoffice.services.meal_composition import MealCompositionService
from backoffice.services.menu_assembly import MenuAssemblyService
from backoffice.services.recipe_costing import RecipeCostingService


ITEMS = [
    # code, name_en, name_ar, unit, unit_cost, calories_per_unit, stock, selling_price
    ("ITM-BREAD", "Burger Bun", "خبز برجر", "pc", "0.80", "150", "200", "0"),
    ("ITM-BEEF", "Beef Patty", "لحم بقري", "pc", "4.50", "250", "80", "0"),
    ("ITM-CHEESE", "Cheddar Slice", "شريحة جبن", "pc", "0.60", "110", "150", "0"),
    ("ITM-POTATO", "Potato", "بطاطس", "kg", "1.20", "770", "40", "0"),
    ("ITM-OIL", "Frying Oil", "زيت قلي", "l", "3.00", "8840", "20", "0"),
    ("ITM-COLA", "Cola Can", "مشروب غازي", "pc", "0.90", "140", "120", "3.00"),
]


def seed_database():
    """Seed the database with demo menu data."""
    settings = get_settings()
    session = SessionLocal()
    cache = init_cache(settings)

    try:
        # Check if data already exists
        if session.query(Item).count() > 0:
            print("Database already seeded. Skipping...")
            return

        print("Seeding database...")

        items = {}
        for code, name_en, name_ar, unit, cost, calories, stock, price in ITEMS:
            items[code] = Item(
                item_code=code,
                name_en=name_en,
                name_ar=name_ar,
                unit_symbol=unit,
                unit_cost=Decimal(cost),
                calories_per_unit=Decimal(calories),
                current_stock=Decimal(stock),
                selling_price=Decimal(price),
            )
        mains = Category(name_en="Mains", name_ar="أطباق رئيسية", display_order=1)
        sides = Category(name_en="Sides", name_ar="أطباق جانبية", display_order=2)
        session.add_all([*items.values(), mains, sides])
        session.commit()

        print(f"Created {len(items)} items and 2 categories")

        recipes = RecipeCostingService(session, cache, settings=settings)
        burger = recipes.create_recipe(RecipeCreate(
            recipe_code="RCP-BURGER",
            name_en="Cheeseburger",
            name_ar="تشيز برجر",
            preparation_time_minutes=12,
            lines=[
                RecipeLineIn(item_id=items["ITM-BREAD"].id, quantity=Decimal("1")),
                RecipeLineIn(item_id=items["ITM-BEEF"].id, quantity=Decimal("1")),
                RecipeLineIn(item_id=items["ITM-CHEESE"].id, quantity=Decimal("2")),
            ],
        ))
        fries = recipes.create_recipe(RecipeCreate(
            recipe_code="RCP-FRIES",
            name_en="French Fries",
            name_ar="بطاطس مقلية",
            preparation_time_minutes=8,
            lines=[
                RecipeLineIn(item_id=items["ITM-POTATO"].id, quantity=Decimal("0.25")),
                RecipeLineIn(item_id=items["ITM-OIL"].id, quantity=Decimal("0.02")),
            ],
        ))

        print(f"Created recipes: {burger.name_en} ({burger.total_cost}), {fries.name_en} ({fries.total_cost})")

        meals = MealCompositionService(session, cache, settings=settings)
        combo = meals.create_meal(MealCreate(
            meal_code="MEAL-COMBO",
            name_en="Burger Combo",
            name_ar="وجبة برجر",
            components=[
                MealComponentIn(recipe_id=burger.id, quantity=Decimal("1")),
                MealComponentIn(recipe_id=fries.id, quantity=Decimal("1")),
                MealComponentIn(item_id=items["ITM-COLA"].id, quantity=Decimal("1")),
            ],
        ))

        print(f"Created meal: {combo.name_en} ({combo.total_cost})")

        menus = MenuAssemblyService(session, cache, settings=settings)
        lunch = menus.create_menu(MenuCreate(name_en="Lunch", name_ar="غداء", display_order=1))
        menus.add_menu_item(lunch.id, MenuItemCreate(meal_id=combo.id, category_id=mains.id, is_recommended=True))
        menus.add_menu_item(lunch.id, MenuItemCreate(recipe_id=burger.id, category_id=mains.id, display_order=1))
        menus.add_menu_item(lunch.id, MenuItemCreate(recipe_id=fries.id, category_id=sides.id))
        menus.add_menu_item(lunch.id, MenuItemCreate(item_id=items["ITM-COLA"].id, category_id=sides.id, display_order=1))

        print(f"Created menu: {lunch.name_en} with 4 entries")
        print("\n✅ Database seeded successfully!")

    except Exception as e:
        session.rollback()
        print(f"❌ Error seeding database: {e}")
        raise
    finally:
        session.close()
        close_cache(cache)


if __name__ == "__main__":
    seed_database()

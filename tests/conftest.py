"""
Test configuration and fixtures.
"""
import os
import pytest
from decimal import Decimal
from typing import Generator
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

# Set test configuration before importing app
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CACHE_BACKEND"] = "memory"

from backoffice.main import app
from backoffice.core.cache import MemoryCache, get_cache
from backoffice.core.config import get_settings
from backoffice.db.base import Base
from backoffice.db.session import get_db
from backoffice.models import Category, Item
from backoffice.schemas.recipe import RecipeCreate, RecipeLineIn
from backoffice.services.meal_composition import MealCompositionService
from backoffice.services.menu_assembly import MenuAssemblyService
from backoffice.services.recipe_costing import RecipeCostingService


def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory schema per test."""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(test_engine, "connect", _enable_foreign_keys)
    Base.metadata.create_all(test_engine)
    yield test_engine
    Base.metadata.drop_all(test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    """Create a database session for the test."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def cache() -> MemoryCache:
    return MemoryCache()


@pytest.fixture
def recipe_service(db: Session, cache: MemoryCache) -> RecipeCostingService:
    return RecipeCostingService(db, cache, settings=get_settings())


@pytest.fixture
def meal_service(db: Session, cache: MemoryCache) -> MealCompositionService:
    return MealCompositionService(db, cache, settings=get_settings())


@pytest.fixture
def menu_service(db: Session, cache: MemoryCache) -> MenuAssemblyService:
    return MenuAssemblyService(db, cache, settings=get_settings())


@pytest.fixture(scope="function")
def client(db: Session, cache: MemoryCache) -> Generator[TestClient, None, None]:
    """Create test client with database session and cache overrides."""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = lambda: cache
    app.state.cache = cache

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def make_item(db: Session):
    """Factory for inventory items, which are written outside the components."""
    counter = {"n": 0}

    def _make(
        unit_cost="2.00",
        calories_per_unit="100",
        current_stock="10",
        selling_price="0",
        is_available=True,
        name="Item",
    ) -> Item:
        counter["n"] += 1
        item = Item(
            item_code=f"ITM-{counter['n']:03d}",
            name_ar=f"{name} {counter['n']}",
            name_en=f"{name} {counter['n']}",
            unit_symbol="kg",
            unit_cost=Decimal(unit_cost),
            selling_price=Decimal(selling_price),
            calories_per_unit=Decimal(calories_per_unit) if calories_per_unit is not None else None,
            current_stock=Decimal(current_stock),
            is_available=is_available,
        )
        db.add(item)
        db.commit()
        db.refresh(item)
        return item

    return _make


@pytest.fixture
def make_recipe(recipe_service: RecipeCostingService):
    """Factory creating recipes through the costing component."""
    counter = {"n": 0}

    def _make(lines, preparation_time_minutes=15, name="Recipe"):
        counter["n"] += 1
        return recipe_service.create_recipe(RecipeCreate(
            recipe_code=f"RCP-{counter['n']:03d}",
            name_ar=f"{name} {counter['n']}",
            name_en=f"{name} {counter['n']}",
            preparation_time_minutes=preparation_time_minutes,
            lines=[RecipeLineIn(item_id=item_id, quantity=Decimal(str(qty))) for item_id, qty in lines],
        ))

    return _make


@pytest.fixture
def make_category(db: Session):
    def _make(name_en="Mains", display_order=0) -> Category:
        category = Category(name_ar=name_en, name_en=name_en, display_order=display_order)
        db.add(category)
        db.commit()
        db.refresh(category)
        return category

    return _make

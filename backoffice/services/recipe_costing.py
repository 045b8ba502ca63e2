"""
Recipe Costing: derives a recipe's cost, calories and preparability from its
item lines, and owns the recipe lifecycle.

Cost Formula:
    total_cost     = Σ (line.quantity × item.unit_cost)
    total_calories = Σ (line.quantity × item.calories_per_unit)
    selling_price  = total_cost × recipe markup        (on create only)

A recipe can be prepared when every line's item has at least the line's
quantity in stock.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from sqlalchemy import select, func, case, or_
from sqlalchemy.orm import Session, selectinload

from backoffice.core.cache import CacheBackend, CacheKeys
from backoffice.core.clock import utcnow
from backoffice.core.config import Settings, get_settings
from backoffice.core.exceptions import (
    ConflictError,
    DependencyError,
    InvalidReferenceError,
    NotFoundError,
    ValidationError,
)
from backoffice.core.pricing import (
    ZERO,
    PricingPolicy,
    cost_share,
    line_calories,
    line_cost,
    profit_margin,
    quantize_calories,
    quantize_cost,
    quantize_money,
    to_decimal,
    validate_quantity,
)
from backoffice.db.session import transaction
from backoffice.models.item import Item
from backoffice.models.meal import Meal, MealComponent
from backoffice.models.menu import Menu, MenuItem
from backoffice.models.recipe import Recipe, RecipeLine
from backoffice.schemas.recipe import (
    MealReference,
    RecipeCreate,
    RecipeDetail,
    RecipeLineIn,
    RecipeLineResponse,
    RecipeListResponse,
    RecipeStats,
    RecipeSummary,
    RecipeUpdate,
)
from backoffice.services.invalidation import CacheInvalidator

logger = logging.getLogger(__name__)

MIN_PREPARATION_MINUTES = 1
MAX_PREPARATION_MINUTES = 480

# Columns that may be patched but never cleared
REQUIRED_FIELDS = ("recipe_code", "name_ar", "name_en", "preparation_time_minutes", "selling_price", "is_available")


@dataclass
class CostedLine:
    """A validated recipe line with its cost computed from the current item."""
    item: Item
    quantity: Decimal
    unit_cost: Decimal
    line_cost: Decimal
    calories: Decimal


@dataclass
class RecipeCosts:
    total_cost: Decimal
    total_calories: Decimal
    lines: list[CostedLine] = field(default_factory=list)


def fetch_items(db: Session, item_ids: Iterable[int]) -> dict[int, Item]:
    """
    Load live items by id.

    Raises InvalidReferenceError naming every id that is unknown or deleted.
    """
    wanted = set(item_ids)
    if not wanted:
        return {}

    rows = db.execute(
        select(Item).where(Item.id.in_(wanted), Item.deleted_at.is_(None))
    ).scalars().all()
    found = {item.id: item for item in rows}

    missing = wanted - found.keys()
    if missing:
        raise InvalidReferenceError("Item", sorted(missing))
    return found


def item_can_supply(item: Optional[Item], quantity) -> bool:
    """A live, available item with stock for a positive quantity."""
    quantity = to_decimal(quantity)
    return (
        item is not None
        and item.deleted_at is None
        and bool(item.is_available)
        and quantity > ZERO
        and to_decimal(item.current_stock) >= quantity
    )


def recipe_can_prepare(recipe: Recipe) -> bool:
    """True when every line's item is live, available and in stock for the line."""
    return all(item_can_supply(line.item, line.quantity) for line in recipe.lines)


def recipe_is_servable(recipe: Optional[Recipe]) -> bool:
    """A live, available recipe whose lines are all in stock."""
    return (
        recipe is not None
        and recipe.deleted_at is None
        and bool(recipe.is_available)
        and recipe_can_prepare(recipe)
    )


def validate_preparation_time(minutes: Optional[int]) -> int:
    if minutes is None or not MIN_PREPARATION_MINUTES <= minutes <= MAX_PREPARATION_MINUTES:
        raise ValidationError(
            f"preparation_time_minutes must be between {MIN_PREPARATION_MINUTES} and {MAX_PREPARATION_MINUTES}",
            {"field": "preparation_time_minutes", "value": minutes},
        )
    return minutes


def validate_selling_price(value) -> Decimal:
    price = quantize_money(value)
    if price < ZERO:
        raise ValidationError("selling_price must not be negative", {"field": "selling_price", "value": str(value)})
    return price


class RecipeCostingService:
    """
    Costs recipes and manages their lifecycle.

    Every write runs in one transaction, takes a row lock on the recipe it
    modifies, and invalidates the affected cache keys after commit.
    """

    def __init__(
        self,
        db: Session,
        cache: CacheBackend,
        policy: Optional[PricingPolicy] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.cache = cache
        self.settings = settings or get_settings()
        self.policy = policy or PricingPolicy.from_settings(self.settings)
        self.invalidator = CacheInvalidator(db, cache)

    # ------------------------------------------------------------------
    # Costing
    # ------------------------------------------------------------------

    def compute_costs(self, lines: Sequence[RecipeLineIn]) -> RecipeCosts:
        """
        Compute total cost and calories for a line set from current item data.

        Pure with respect to the store: reads items, writes nothing.
        """
        requested = [(line.item_id, validate_quantity(line.quantity)) for line in lines]
        items = fetch_items(self.db, (item_id for item_id, _ in requested))

        costs = RecipeCosts(total_cost=quantize_cost(ZERO), total_calories=quantize_calories(ZERO))
        for item_id, quantity in requested:
            item = items[item_id]
            unit_cost = to_decimal(item.unit_cost)
            costed = CostedLine(
                item=item,
                quantity=quantity,
                unit_cost=unit_cost,
                line_cost=line_cost(quantity, unit_cost),
                calories=line_calories(quantity, item.calories_per_unit),
            )
            costs.lines.append(costed)
            costs.total_cost += costed.line_cost
            costs.total_calories += costed.calories

        costs.total_cost = quantize_cost(costs.total_cost)
        costs.total_calories = quantize_calories(costs.total_calories)
        return costs

    def check_availability(self, recipe: Recipe) -> bool:
        return recipe_can_prepare(recipe)

    def profit_margin(self, recipe: Recipe) -> Decimal:
        return profit_margin(recipe.selling_price, recipe.total_cost)

    def cost_breakdown(self, recipe: Recipe) -> list[RecipeLineResponse]:
        """Per-line costs from current item prices, with each line's share of the total."""
        current = [line_cost(line.quantity, line.item.unit_cost) for line in recipe.lines]
        total = sum(current, ZERO)

        return [
            RecipeLineResponse(
                id=line.id,
                item_id=line.item_id,
                item_name=line.item.display_name,
                unit_symbol=line.item.unit_symbol,
                quantity=to_decimal(line.quantity),
                unit_cost=to_decimal(line.item.unit_cost),
                line_cost=cost,
                current_stock=to_decimal(line.item.current_stock),
                cost_share=cost_share(cost, total),
            )
            for line, cost in zip(recipe.lines, current)
        ]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_recipe(self, data: RecipeCreate, actor: Optional[str] = None) -> RecipeDetail:
        with transaction(self.db):
            self._ensure_code_free(data.recipe_code)
            if not data.lines:
                raise ValidationError("Recipe must have at least one ingredient line", {"field": "lines"})
            validate_preparation_time(data.preparation_time_minutes)

            costs = self.compute_costs(data.lines)
            recipe = Recipe(
                recipe_code=data.recipe_code,
                name_ar=data.name_ar,
                name_en=data.name_en,
                description=data.description,
                image_url=data.image_url,
                preparation_time_minutes=data.preparation_time_minutes,
                total_cost=costs.total_cost,
                total_calories=costs.total_calories,
                selling_price=self.policy.recipe_price(costs.total_cost),
                is_available=True,
            )
            recipe.lines.extend(self._build_lines(costs))
            self.db.add(recipe)
            self.db.flush()
            recipe_id = recipe.id

        self.invalidator.recipe_changed(recipe_id)
        logger.info(
            f"Created recipe {data.recipe_code} with {len(costs.lines)} lines, cost {costs.total_cost}",
            extra={"operation": "create_recipe", "entity_id": recipe_id, "actor": actor},
        )
        return self.get_recipe(recipe_id)

    def update_recipe(self, recipe_id: int, patch: RecipeUpdate, actor: Optional[str] = None) -> RecipeDetail:
        """
        Apply a partial update.

        When `lines` is supplied the line set is replaced atomically and
        costs are recomputed; `selling_price` is left as-is.
        """
        changes = patch.model_dump(exclude_unset=True, exclude={"lines"})
        for name in REQUIRED_FIELDS:
            if name in changes and changes[name] is None:
                raise ValidationError(f"{name} cannot be null", {"field": name})

        with transaction(self.db):
            recipe = self._lock_recipe(recipe_id)

            if "recipe_code" in changes and changes["recipe_code"] != recipe.recipe_code:
                self._ensure_code_free(changes["recipe_code"])
            if "preparation_time_minutes" in changes:
                validate_preparation_time(changes["preparation_time_minutes"])
            if "selling_price" in changes:
                changes["selling_price"] = validate_selling_price(changes["selling_price"])

            for name, value in changes.items():
                setattr(recipe, name, value)

            if "lines" in patch.model_fields_set:
                if not patch.lines:
                    raise ValidationError("Recipe must have at least one ingredient line", {"field": "lines"})
                self._replace_lines(recipe, patch.lines)

            recipe.updated_at = utcnow()

        self.invalidator.recipe_changed(recipe_id)
        logger.info(
            f"Updated recipe {recipe_id}: {sorted(patch.model_fields_set)}",
            extra={"operation": "update_recipe", "entity_id": recipe_id, "actor": actor},
        )
        return self.get_recipe(recipe_id)

    def delete_recipe(self, recipe_id: int, actor: Optional[str] = None) -> None:
        """Soft-delete a recipe that no live meal or menu entry references."""
        with transaction(self.db):
            recipe = self._lock_recipe(recipe_id)

            meal_ids = self.db.execute(
                select(Meal.id)
                .join(MealComponent, MealComponent.meal_id == Meal.id)
                .where(MealComponent.recipe_id == recipe_id, Meal.deleted_at.is_(None))
                .distinct()
                .order_by(Meal.id)
            ).scalars().all()
            if meal_ids:
                raise DependencyError("Recipe", recipe_id, "Meal", list(meal_ids))

            entry_ids = self.db.execute(
                select(MenuItem.id)
                .join(Menu, Menu.id == MenuItem.menu_id)
                .where(
                    MenuItem.recipe_id == recipe_id,
                    MenuItem.deleted_at.is_(None),
                    Menu.deleted_at.is_(None),
                )
                .order_by(MenuItem.id)
            ).scalars().all()
            if entry_ids:
                raise DependencyError("Recipe", recipe_id, "MenuItem", list(entry_ids))

            recipe.is_available = False
            recipe.deleted_at = utcnow()

        self.invalidator.recipe_changed(recipe_id)
        logger.info(
            f"Deleted recipe {recipe_id}",
            extra={"operation": "delete_recipe", "entity_id": recipe_id, "actor": actor},
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_recipe(self, recipe_id: int) -> RecipeDetail:
        key = CacheKeys.recipe(recipe_id)
        cached = self.cache.get(key)
        if cached is not None:
            return RecipeDetail.model_validate(cached)

        recipe = self.db.execute(
            select(Recipe)
            .where(Recipe.id == recipe_id, Recipe.deleted_at.is_(None))
            .options(
                selectinload(Recipe.lines).selectinload(RecipeLine.item),
                selectinload(Recipe.meal_components).selectinload(MealComponent.meal),
            )
        ).scalar_one_or_none()
        if recipe is None:
            raise NotFoundError("Recipe", recipe_id)

        detail = self._to_detail(recipe)
        self.cache.set(key, detail.model_dump(mode="json"), self.settings.RECIPE_CACHE_TTL)
        return detail

    def list_recipes(
        self,
        search: Optional[str] = None,
        is_available: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> RecipeListResponse:
        query = select(Recipe).where(Recipe.deleted_at.is_(None))
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(
                Recipe.name_en.ilike(pattern),
                Recipe.name_ar.ilike(pattern),
                Recipe.recipe_code.ilike(pattern),
            ))
        if is_available is not None:
            query = query.where(Recipe.is_available.is_(is_available))

        total = self.db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
        recipes = self.db.execute(
            query.options(selectinload(Recipe.lines).selectinload(RecipeLine.item))
            .order_by(Recipe.name_en, Recipe.id)
            .limit(limit)
            .offset(offset)
        ).scalars().all()

        return RecipeListResponse(
            items=[
                RecipeSummary(
                    id=recipe.id,
                    recipe_code=recipe.recipe_code,
                    name_ar=recipe.name_ar,
                    name_en=recipe.name_en,
                    preparation_time_minutes=recipe.preparation_time_minutes,
                    total_cost=to_decimal(recipe.total_cost),
                    selling_price=to_decimal(recipe.selling_price),
                    profit_margin=self.profit_margin(recipe),
                    is_available=recipe.is_available,
                    can_prepare=recipe_can_prepare(recipe),
                    line_count=len(recipe.lines),
                )
                for recipe in recipes
            ],
            total=total,
        )

    def get_recipe_stats(self) -> RecipeStats:
        cached = self.cache.get(CacheKeys.RECIPE_STATS)
        if cached is not None:
            return RecipeStats.model_validate(cached)

        row = self.db.execute(
            select(
                func.count(Recipe.id),
                func.sum(case((Recipe.is_available.is_(True), 1), else_=0)),
                func.avg(Recipe.preparation_time_minutes),
                func.avg(Recipe.total_cost),
                func.avg(Recipe.selling_price),
            ).where(Recipe.deleted_at.is_(None))
        ).one()
        total, available, avg_prep, avg_cost, avg_price = row
        available = int(available or 0)
        avg_cost = quantize_money(to_decimal(avg_cost))
        avg_price = quantize_money(to_decimal(avg_price))

        stats = RecipeStats(
            total_recipes=total,
            available_recipes=available,
            unavailable_recipes=total - available,
            avg_preparation_time=round(float(avg_prep or 0)),
            avg_cost=avg_cost,
            avg_selling_price=avg_price,
            avg_profit_margin=profit_margin(avg_price, avg_cost),
            generated_at=utcnow(),
        )
        self.cache.set(CacheKeys.RECIPE_STATS, stats.model_dump(mode="json"), self.settings.STATS_CACHE_TTL)
        return stats

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock_recipe(self, recipe_id: int) -> Recipe:
        recipe = self.db.execute(
            select(Recipe)
            .where(Recipe.id == recipe_id, Recipe.deleted_at.is_(None))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if recipe is None:
            raise NotFoundError("Recipe", recipe_id)
        return recipe

    def _ensure_code_free(self, recipe_code: str) -> None:
        exists = self.db.execute(
            select(Recipe.id).where(Recipe.recipe_code == recipe_code)
        ).first()
        if exists:
            raise ConflictError(f"Recipe code '{recipe_code}' already exists", {"recipe_code": recipe_code})

    def _replace_lines(self, recipe: Recipe, lines: Sequence[RecipeLineIn]) -> None:
        # Costs first so an invalid item leaves the old lines untouched
        costs = self.compute_costs(lines)
        recipe.lines.clear()
        self.db.flush()
        recipe.lines.extend(self._build_lines(costs))
        recipe.total_cost = costs.total_cost
        recipe.total_calories = costs.total_calories
        self.db.flush()

    def _build_lines(self, costs: RecipeCosts) -> list[RecipeLine]:
        return [
            RecipeLine(
                item_id=costed.item.id,
                position=position,
                quantity=costed.quantity,
                unit_cost_snapshot=costed.unit_cost,
                line_cost_snapshot=costed.line_cost,
            )
            for position, costed in enumerate(costs.lines)
        ]

    def _to_detail(self, recipe: Recipe) -> RecipeDetail:
        breakdown = self.cost_breakdown(recipe)
        current_cost = quantize_cost(sum((line.line_cost for line in breakdown), ZERO))

        meals: dict[int, Meal] = {}
        for component in recipe.meal_components:
            if component.meal.deleted_at is None:
                meals.setdefault(component.meal.id, component.meal)

        return RecipeDetail(
            id=recipe.id,
            recipe_code=recipe.recipe_code,
            name_ar=recipe.name_ar,
            name_en=recipe.name_en,
            description=recipe.description,
            image_url=recipe.image_url,
            preparation_time_minutes=recipe.preparation_time_minutes,
            total_cost=to_decimal(recipe.total_cost),
            total_calories=to_decimal(recipe.total_calories),
            selling_price=to_decimal(recipe.selling_price),
            current_cost=current_cost,
            profit_margin=self.profit_margin(recipe),
            is_available=recipe.is_available,
            can_prepare=recipe_can_prepare(recipe),
            lines=breakdown,
            used_in_meals=[
                MealReference(id=meal.id, name_en=meal.name_en, name_ar=meal.name_ar, is_available=meal.is_available)
                for meal in meals.values()
            ],
            created_at=recipe.created_at,
            updated_at=recipe.updated_at,
        )

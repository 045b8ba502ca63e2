"""
Meal Composition: meals are built from recipes and items.

    total_cost      = Σ recipe.total_cost × qty + Σ item.unit_cost × qty
    total_calories  = Σ recipe.total_calories × qty + Σ item.calories_per_unit × qty
    total_prep_time = Σ recipe.preparation_time_minutes   (items add nothing)

A meal can be prepared only when every component is: recipe components must
be live, available and preparable; item components need enough stock.
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
from backoffice.models.meal import Meal, MealComponent
from backoffice.models.menu import Menu, MenuItem
from backoffice.models.recipe import Recipe, RecipeLine
from backoffice.models.refs import MEAL_COMPONENT_KINDS, EntityKind, EntityRef
from backoffice.schemas.meal import (
    MealComponentIn,
    MealComponentResponse,
    MealCreate,
    MealDetail,
    MealListResponse,
    MealStats,
    MealSummary,
    MealUpdate,
)
from backoffice.services.invalidation import CacheInvalidator
from backoffice.services.recipe_costing import (
    fetch_items,
    item_can_supply,
    recipe_is_servable,
    validate_selling_price,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("meal_code", "name_ar", "name_en", "selling_price", "is_available")


@dataclass
class CostedComponent:
    ref: EntityRef
    quantity: Decimal
    cost: Decimal
    calories: Decimal
    preparation_time_minutes: int


@dataclass
class MealCosts:
    total_cost: Decimal
    total_calories: Decimal
    total_prep_time: int
    components: list[CostedComponent] = field(default_factory=list)


def fetch_recipes(db: Session, recipe_ids: Iterable[int]) -> dict[int, Recipe]:
    """Load live recipes by id, raising InvalidReferenceError for the rest."""
    wanted = set(recipe_ids)
    if not wanted:
        return {}

    rows = db.execute(
        select(Recipe).where(Recipe.id.in_(wanted), Recipe.deleted_at.is_(None))
    ).scalars().all()
    found = {recipe.id: recipe for recipe in rows}

    missing = wanted - found.keys()
    if missing:
        raise InvalidReferenceError("Recipe", sorted(missing))
    return found


def component_available(component: MealComponent) -> bool:
    if to_decimal(component.quantity) <= ZERO:
        return False
    if EntityKind(component.component_type) == EntityKind.RECIPE:
        return recipe_is_servable(component.recipe)
    return item_can_supply(component.item, component.quantity)


def meal_can_prepare(meal: Meal) -> bool:
    return all(component_available(component) for component in meal.components)


class MealCompositionService:
    """Costs meals and manages their lifecycle."""

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

    def compute_costs(self, components: Sequence[MealComponentIn]) -> MealCosts:
        """
        Cost a component set from current recipe and item data.

        Every component must set exactly one of recipe_id / item_id.
        """
        requested = [
            (
                EntityRef.from_fields(MEAL_COMPONENT_KINDS, recipe_id=c.recipe_id, item_id=c.item_id),
                validate_quantity(c.quantity),
            )
            for c in components
        ]
        recipes = fetch_recipes(self.db, (ref.id for ref, _ in requested if ref.kind == EntityKind.RECIPE))
        items = fetch_items(self.db, (ref.id for ref, _ in requested if ref.kind == EntityKind.ITEM))

        costs = MealCosts(total_cost=ZERO, total_calories=ZERO, total_prep_time=0)
        for ref, quantity in requested:
            if ref.kind == EntityKind.RECIPE:
                recipe = recipes[ref.id]
                costed = CostedComponent(
                    ref=ref,
                    quantity=quantity,
                    cost=line_cost(quantity, recipe.total_cost),
                    calories=line_calories(quantity, recipe.total_calories),
                    preparation_time_minutes=recipe.preparation_time_minutes,
                )
            else:
                item = items[ref.id]
                costed = CostedComponent(
                    ref=ref,
                    quantity=quantity,
                    cost=line_cost(quantity, item.unit_cost),
                    calories=line_calories(quantity, item.calories_per_unit),
                    preparation_time_minutes=0,
                )
            costs.components.append(costed)
            costs.total_cost += costed.cost
            costs.total_calories += costed.calories
            costs.total_prep_time += costed.preparation_time_minutes

        costs.total_cost = quantize_cost(costs.total_cost)
        costs.total_calories = quantize_calories(costs.total_calories)
        return costs

    def check_availability(self, meal: Meal) -> bool:
        return meal_can_prepare(meal)

    def profit_margin(self, entity) -> Decimal:
        """Margin for any priced entity (recipe or meal)."""
        return profit_margin(entity.selling_price, entity.total_cost)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_meal(self, data: MealCreate, actor: Optional[str] = None) -> MealDetail:
        with transaction(self.db):
            self._ensure_code_free(data.meal_code)
            if not data.components:
                raise ValidationError("Meal must have at least one component", {"field": "components"})

            costs = self.compute_costs(data.components)
            meal = Meal(
                meal_code=data.meal_code,
                name_ar=data.name_ar,
                name_en=data.name_en,
                description=data.description,
                image_url=data.image_url,
                total_cost=costs.total_cost,
                total_calories=costs.total_calories,
                preparation_time_minutes=costs.total_prep_time,
                selling_price=self.policy.meal_price(costs.total_cost),
                is_available=True,
            )
            meal.components.extend(self._build_components(costs))
            self.db.add(meal)
            self.db.flush()
            meal_id = meal.id

        self.invalidator.meal_changed(meal_id)
        logger.info(
            f"Created meal {data.meal_code} with {len(costs.components)} components, cost {costs.total_cost}",
            extra={"operation": "create_meal", "entity_id": meal_id, "actor": actor},
        )
        return self.get_meal(meal_id)

    def update_meal(self, meal_id: int, patch: MealUpdate, actor: Optional[str] = None) -> MealDetail:
        changes = patch.model_dump(exclude_unset=True, exclude={"components"})
        for name in REQUIRED_FIELDS:
            if name in changes and changes[name] is None:
                raise ValidationError(f"{name} cannot be null", {"field": name})

        with transaction(self.db):
            meal = self._lock_meal(meal_id)

            if "meal_code" in changes and changes["meal_code"] != meal.meal_code:
                self._ensure_code_free(changes["meal_code"])
            if "selling_price" in changes:
                changes["selling_price"] = validate_selling_price(changes["selling_price"])

            for name, value in changes.items():
                setattr(meal, name, value)

            if "components" in patch.model_fields_set:
                if not patch.components:
                    raise ValidationError("Meal must have at least one component", {"field": "components"})
                self._replace_components(meal, patch.components)

            meal.updated_at = utcnow()

        self.invalidator.meal_changed(meal_id)
        logger.info(
            f"Updated meal {meal_id}: {sorted(patch.model_fields_set)}",
            extra={"operation": "update_meal", "entity_id": meal_id, "actor": actor},
        )
        return self.get_meal(meal_id)

    def delete_meal(self, meal_id: int, actor: Optional[str] = None) -> None:
        """
        Soft-delete a meal and drop its components.

        Refused while a live menu entry lists the meal.
        """
        with transaction(self.db):
            meal = self._lock_meal(meal_id)

            entry_ids = self.db.execute(
                select(MenuItem.id)
                .join(Menu, Menu.id == MenuItem.menu_id)
                .where(
                    MenuItem.meal_id == meal_id,
                    MenuItem.deleted_at.is_(None),
                    Menu.deleted_at.is_(None),
                )
                .order_by(MenuItem.id)
            ).scalars().all()
            if entry_ids:
                raise DependencyError("Meal", meal_id, "MenuItem", list(entry_ids))

            meal.components.clear()
            meal.is_available = False
            meal.deleted_at = utcnow()

        self.invalidator.meal_changed(meal_id)
        logger.info(
            f"Deleted meal {meal_id}",
            extra={"operation": "delete_meal", "entity_id": meal_id, "actor": actor},
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_meal(self, meal_id: int) -> MealDetail:
        key = CacheKeys.meal(meal_id)
        cached = self.cache.get(key)
        if cached is not None:
            return MealDetail.model_validate(cached)

        meal = self.db.execute(
            select(Meal)
            .where(Meal.id == meal_id, Meal.deleted_at.is_(None))
            .options(
                selectinload(Meal.components)
                .selectinload(MealComponent.recipe)
                .selectinload(Recipe.lines)
                .selectinload(RecipeLine.item),
                selectinload(Meal.components).selectinload(MealComponent.item),
            )
        ).scalar_one_or_none()
        if meal is None:
            raise NotFoundError("Meal", meal_id)

        detail = self._to_detail(meal)
        self.cache.set(key, detail.model_dump(mode="json"), self.settings.MEAL_CACHE_TTL)
        return detail

    def list_meals(
        self,
        search: Optional[str] = None,
        is_available: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> MealListResponse:
        query = select(Meal).where(Meal.deleted_at.is_(None))
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(
                Meal.name_en.ilike(pattern),
                Meal.name_ar.ilike(pattern),
                Meal.meal_code.ilike(pattern),
            ))
        if is_available is not None:
            query = query.where(Meal.is_available.is_(is_available))

        total = self.db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
        meals = self.db.execute(
            query.options(
                selectinload(Meal.components)
                .selectinload(MealComponent.recipe)
                .selectinload(Recipe.lines)
                .selectinload(RecipeLine.item),
                selectinload(Meal.components).selectinload(MealComponent.item),
            )
            .order_by(Meal.name_en, Meal.id)
            .limit(limit)
            .offset(offset)
        ).scalars().all()

        return MealListResponse(
            items=[
                MealSummary(
                    id=meal.id,
                    meal_code=meal.meal_code,
                    name_ar=meal.name_ar,
                    name_en=meal.name_en,
                    preparation_time_minutes=meal.preparation_time_minutes,
                    total_cost=to_decimal(meal.total_cost),
                    selling_price=to_decimal(meal.selling_price),
                    profit_margin=self.profit_margin(meal),
                    is_available=meal.is_available,
                    can_prepare=meal_can_prepare(meal),
                    component_count=len(meal.components),
                )
                for meal in meals
            ],
            total=total,
        )

    def get_meal_stats(self) -> MealStats:
        cached = self.cache.get(CacheKeys.MEAL_STATS)
        if cached is not None:
            return MealStats.model_validate(cached)

        total, available, avg_cost, avg_price = self.db.execute(
            select(
                func.count(Meal.id),
                func.sum(case((Meal.is_available.is_(True), 1), else_=0)),
                func.avg(Meal.total_cost),
                func.avg(Meal.selling_price),
            ).where(Meal.deleted_at.is_(None))
        ).one()
        available = int(available or 0)
        avg_cost = quantize_money(to_decimal(avg_cost))
        avg_price = quantize_money(to_decimal(avg_price))

        stats = MealStats(
            total_meals=total,
            available_meals=available,
            unavailable_meals=total - available,
            avg_cost=avg_cost,
            avg_selling_price=avg_price,
            avg_profit_margin=profit_margin(avg_price, avg_cost),
            generated_at=utcnow(),
        )
        self.cache.set(CacheKeys.MEAL_STATS, stats.model_dump(mode="json"), self.settings.STATS_CACHE_TTL)
        return stats

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock_meal(self, meal_id: int) -> Meal:
        meal = self.db.execute(
            select(Meal)
            .where(Meal.id == meal_id, Meal.deleted_at.is_(None))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if meal is None:
            raise NotFoundError("Meal", meal_id)
        return meal

    def _ensure_code_free(self, meal_code: str) -> None:
        exists = self.db.execute(select(Meal.id).where(Meal.meal_code == meal_code)).first()
        if exists:
            raise ConflictError(f"Meal code '{meal_code}' already exists", {"meal_code": meal_code})

    def _replace_components(self, meal: Meal, components: Sequence[MealComponentIn]) -> None:
        costs = self.compute_costs(components)
        meal.components.clear()
        self.db.flush()
        meal.components.extend(self._build_components(costs))
        meal.total_cost = costs.total_cost
        meal.total_calories = costs.total_calories
        meal.preparation_time_minutes = costs.total_prep_time
        self.db.flush()

    def _build_components(self, costs: MealCosts) -> list[MealComponent]:
        return [
            MealComponent(
                component_type=costed.ref.kind,
                position=position,
                quantity=costed.quantity,
                cost_snapshot=costed.cost,
                **costed.ref.as_fields(MEAL_COMPONENT_KINDS),
            )
            for position, costed in enumerate(costs.components)
        ]

    def _component_response(self, component: MealComponent) -> MealComponentResponse:
        kind = EntityKind(component.component_type)
        if kind == EntityKind.RECIPE:
            source = component.recipe
            unit_cost = source.total_cost
            prep_time = source.preparation_time_minutes
        else:
            source = component.item
            unit_cost = source.unit_cost
            prep_time = 0

        return MealComponentResponse(
            id=component.id,
            component_type=kind,
            recipe_id=component.recipe_id,
            item_id=component.item_id,
            name=source.display_name,
            quantity=to_decimal(component.quantity),
            cost_snapshot=to_decimal(component.cost_snapshot),
            current_cost=line_cost(component.quantity, unit_cost),
            preparation_time_minutes=prep_time,
            is_available=component_available(component),
        )

    def _to_detail(self, meal: Meal) -> MealDetail:
        components = [self._component_response(component) for component in meal.components]
        return MealDetail(
            id=meal.id,
            meal_code=meal.meal_code,
            name_ar=meal.name_ar,
            name_en=meal.name_en,
            description=meal.description,
            image_url=meal.image_url,
            preparation_time_minutes=meal.preparation_time_minutes,
            total_cost=to_decimal(meal.total_cost),
            total_calories=to_decimal(meal.total_calories),
            selling_price=to_decimal(meal.selling_price),
            current_cost=quantize_cost(sum((c.current_cost for c in components), ZERO)),
            profit_margin=self.profit_margin(meal),
            is_available=meal.is_available,
            can_prepare=meal_can_prepare(meal),
            components=components,
            created_at=meal.created_at,
            updated_at=meal.updated_at,
        )

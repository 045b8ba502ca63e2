"""
Pricing policy: fixed-point arithmetic and the business formulas shared by
the recipe, meal and menu components.

Formulas:
    line cost      = quantity × unit cost                      (exact)
    selling price  = total cost × markup                       (rounded to cents)
    profit margin  = (selling price − total cost) / selling price × 100
                     (0 when total cost is 0, rounded to 2 places)
    effective price = special price if set and > 0, else selling price

All money values are Decimal. Derived costs are kept at COST_PLACES so that
recomputing from the same inputs always yields the same digits.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional, Union

from backoffice.core.exceptions import ValidationError


QUANTITY_PLACES = 3
MONEY_PLACES = 2
COST_PLACES = 8
CALORIE_PLACES = 3

QUANTITY_STEP = Decimal(1).scaleb(-QUANTITY_PLACES)
MONEY_STEP = Decimal(1).scaleb(-MONEY_PLACES)
COST_STEP = Decimal(1).scaleb(-COST_PLACES)
CALORIE_STEP = Decimal(1).scaleb(-CALORIE_PLACES)

ZERO = Decimal(0)
HUNDRED = Decimal(100)

Numberish = Union[Decimal, int, str, float]


def to_decimal(value: Optional[Numberish], default: Decimal = ZERO) -> Decimal:
    """
    Convert a value to Decimal without going through binary float digits.

    Floats are converted via their shortest repr, so 0.1 becomes Decimal("0.1").
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"Not a decimal number: {value!r}") from exc


def quantize_quantity(value: Numberish) -> Decimal:
    """Round a quantity to the fixed 3-decimal precision."""
    return to_decimal(value).quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)


def quantize_money(value: Numberish) -> Decimal:
    return to_decimal(value).quantize(MONEY_STEP, rounding=ROUND_HALF_UP)


def quantize_cost(value: Numberish) -> Decimal:
    return to_decimal(value).quantize(COST_STEP, rounding=ROUND_HALF_UP)


def quantize_calories(value: Numberish) -> Decimal:
    return to_decimal(value).quantize(CALORIE_STEP, rounding=ROUND_HALF_UP)


def validate_quantity(value: Numberish, field: str = "quantity") -> Decimal:
    """Quantize a quantity and reject non-positive values."""
    quantity = quantize_quantity(value)
    if quantity <= ZERO:
        raise ValidationError(f"{field} must be greater than 0", {"field": field, "value": str(value)})
    return quantity


def line_cost(quantity: Numberish, unit_cost: Numberish) -> Decimal:
    """Exact cost of `quantity` units at `unit_cost`."""
    return quantize_cost(to_decimal(quantity) * to_decimal(unit_cost))


def line_calories(quantity: Numberish, calories_per_unit: Optional[Numberish]) -> Decimal:
    """Calories for a line; missing calorie data counts as 0."""
    return quantize_calories(to_decimal(quantity) * to_decimal(calories_per_unit))


def apply_markup(total_cost: Numberish, multiplier: Numberish) -> Decimal:
    """Suggested selling price for a freshly costed entity."""
    return quantize_money(to_decimal(total_cost) * to_decimal(multiplier))


def profit_margin(selling_price: Optional[Numberish], total_cost: Optional[Numberish]) -> Decimal:
    """
    Margin percentage, informational only.

    Returns 0 when total cost is 0 (free items) and when the selling price is
    0, so the formula never divides by zero. Negative margins are returned
    as-is.
    """
    cost = to_decimal(total_cost)
    price = to_decimal(selling_price)
    if cost == ZERO or price == ZERO:
        return quantize_money(ZERO)
    return quantize_money((price - cost) / price * HUNDRED)


def effective_price(special_price: Optional[Numberish], selling_price: Optional[Numberish]) -> Decimal:
    """Special price when set and positive, else the entity's selling price."""
    special = to_decimal(special_price)
    if special_price is not None and special > ZERO:
        return special
    return to_decimal(selling_price)


def cost_share(part: Numberish, total: Numberish) -> Decimal:
    """Percentage of `total` contributed by `part` (0 for a zero total)."""
    total_dec = to_decimal(total)
    if total_dec == ZERO:
        return quantize_money(ZERO)
    return quantize_money(to_decimal(part) / total_dec * HUNDRED)


@dataclass(frozen=True)
class PriceRange:
    """Min/max/avg over a set of prices. All zero for an empty set."""
    min: Decimal
    max: Decimal
    avg: Decimal

    @classmethod
    def from_prices(cls, prices: Iterable[Numberish]) -> "PriceRange":
        values = [to_decimal(p) for p in prices]
        values = [v for v in values if v > ZERO]
        if not values:
            zero = quantize_money(ZERO)
            return cls(min=zero, max=zero, avg=zero)
        return cls(
            min=quantize_money(min(values)),
            max=quantize_money(max(values)),
            avg=quantize_money(sum(values, ZERO) / len(values)),
        )


@dataclass(frozen=True)
class PricingPolicy:
    """Markup multipliers applied when a recipe or meal is created."""
    recipe_markup: Decimal = Decimal("3.0")
    meal_markup: Decimal = Decimal("2.5")

    @classmethod
    def from_settings(cls, settings) -> "PricingPolicy":
        return cls(
            recipe_markup=to_decimal(settings.RECIPE_MARKUP),
            meal_markup=to_decimal(settings.MEAL_MARKUP),
        )

    def recipe_price(self, total_cost: Numberish) -> Decimal:
        return apply_markup(total_cost, self.recipe_markup)

    def meal_price(self, total_cost: Numberish) -> Decimal:
        return apply_markup(total_cost, self.meal_markup)

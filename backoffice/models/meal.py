"""
Meal models: a meal combines recipes and items, each with a quantity.
"""
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, Numeric, DateTime, Enum, ForeignKey, CheckConstraint, Index, func,
)
from sqlalchemy.orm import relationship

from backoffice.db.base import Base
from backoffice.models.refs import EntityKind, EntityRef


class Meal(Base):
    """A sellable combination of recipes and items."""
    __tablename__ = "meals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    meal_code = Column(String(50), nullable=False, unique=True)
    name_ar = Column(String(255), nullable=False)
    name_en = Column(String(255), nullable=False)
    description = Column(Text)
    image_url = Column(String(500))

    # Derived from components
    total_cost = Column(Numeric(20, 8), nullable=False, default=0)
    total_calories = Column(Numeric(14, 3), nullable=False, default=0)
    preparation_time_minutes = Column(Integer, nullable=False, default=0)

    selling_price = Column(Numeric(12, 2), nullable=False, default=0)

    is_available = Column(Boolean, nullable=False, default=True)
    deleted_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    components = relationship(
        "MealComponent",
        back_populates="meal",
        cascade="all, delete-orphan",
        order_by="MealComponent.position",
    )

    @property
    def display_name(self) -> str:
        return self.name_en or self.name_ar


class MealComponent(Base):
    """A recipe or an item used in a meal. Exactly one reference is set."""
    __tablename__ = "meal_components"

    id = Column(Integer, primary_key=True, autoincrement=True)
    meal_id = Column(Integer, ForeignKey("meals.id", ondelete="CASCADE"), nullable=False)
    component_type = Column(Enum(EntityKind, native_enum=False, length=10), nullable=False)
    recipe_id = Column(Integer, ForeignKey("recipes.id", ondelete="RESTRICT"))
    item_id = Column(Integer, ForeignKey("items.id", ondelete="RESTRICT"))
    position = Column(Integer, nullable=False, default=0)
    quantity = Column(Numeric(12, 3), nullable=False)
    cost_snapshot = Column(Numeric(20, 8), nullable=False)

    meal = relationship("Meal", back_populates="components")
    recipe = relationship("Recipe", back_populates="meal_components")
    item = relationship("Item")

    __table_args__ = (
        CheckConstraint(
            "(component_type = 'RECIPE' AND recipe_id IS NOT NULL AND item_id IS NULL) OR "
            "(component_type = 'ITEM' AND item_id IS NOT NULL AND recipe_id IS NULL)",
            name="ck_meal_components_exactly_one_ref",
        ),
        CheckConstraint("quantity > 0", name="ck_meal_components_quantity_positive"),
        Index("idx_meal_components_meal", "meal_id"),
        Index("idx_meal_components_recipe", "recipe_id"),
        Index("idx_meal_components_item", "item_id"),
    )

    @property
    def ref(self) -> EntityRef:
        kind = EntityKind(self.component_type)
        return EntityRef(kind=kind, id=getattr(self, kind.field))

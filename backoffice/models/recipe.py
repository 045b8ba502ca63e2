"""
Recipe models: a recipe is an ordered set of (item, quantity) lines.

RecipeLine stores snapshots of the unit cost and line cost taken when the
line set was last written.
"""
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, Numeric, DateTime, ForeignKey, CheckConstraint, Index, func,
)
from sqlalchemy.orm import relationship

from backoffice.db.base import Base


class Recipe(Base):
    """A dish prepared from raw items."""
    __tablename__ = "recipes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipe_code = Column(String(50), nullable=False, unique=True)
    name_ar = Column(String(255), nullable=False)
    name_en = Column(String(255), nullable=False)
    description = Column(Text)
    image_url = Column(String(500))
    preparation_time_minutes = Column(Integer, nullable=False)

    # Derived from lines, recomputed whenever the line set changes
    total_cost = Column(Numeric(20, 8), nullable=False, default=0)
    total_calories = Column(Numeric(14, 3), nullable=False, default=0)

    # Starts as cost × markup, may be overridden manually
    selling_price = Column(Numeric(12, 2), nullable=False, default=0)

    is_available = Column(Boolean, nullable=False, default=True)
    deleted_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    lines = relationship(
        "RecipeLine",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeLine.position",
    )
    meal_components = relationship("MealComponent", back_populates="recipe")

    __table_args__ = (
        CheckConstraint(
            "preparation_time_minutes BETWEEN 1 AND 480",
            name="ck_recipes_preparation_time_range",
        ),
    )

    @property
    def display_name(self) -> str:
        return self.name_en or self.name_ar


class RecipeLine(Base):
    """One (item, quantity) line owned by a recipe."""
    __tablename__ = "recipe_lines"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipe_id = Column(Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False)
    item_id = Column(Integer, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit_cost_snapshot = Column(Numeric(12, 2), nullable=False)
    line_cost_snapshot = Column(Numeric(20, 8), nullable=False)

    recipe = relationship("Recipe", back_populates="lines")
    item = relationship("Item")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_recipe_lines_quantity_positive"),
        Index("idx_recipe_lines_recipe", "recipe_id"),
        Index("idx_recipe_lines_item", "item_id"),
    )

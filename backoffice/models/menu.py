"""
Menu models: categories, menus and their entries.
"""
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, Numeric, DateTime, Enum, ForeignKey, CheckConstraint, Index, func,
)
from sqlalchemy.orm import relationship

from backoffice.db.base import Base
from backoffice.models.refs import EntityKind, EntityRef


class Category(Base):
    """Display grouping for menu entries (appetizers, mains, desserts, etc.)."""
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name_ar = Column(String(100), nullable=False)
    name_en = Column(String(100), nullable=False)
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, server_default=func.now())

    menu_items = relationship("MenuItem", back_populates="category")


class Menu(Base):
    """An ordered, optionally time-windowed collection of menu entries."""
    __tablename__ = "menus"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name_ar = Column(String(255), nullable=False)
    name_en = Column(String(255), nullable=False)
    description = Column(Text)
    image_url = Column(String(500))
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    start_date = Column(DateTime)
    end_date = Column(DateTime)

    deleted_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    menu_items = relationship(
        "MenuItem",
        back_populates="menu",
        cascade="all, delete-orphan",
        order_by=lambda: [MenuItem.display_order, MenuItem.id],
    )

    __table_args__ = (
        Index("idx_menus_active", "is_active", "deleted_at"),
    )


class MenuItem(Base):
    """One entry on a menu, pointing at exactly one item, recipe or meal."""
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    menu_id = Column(Integer, ForeignKey("menus.id", ondelete="CASCADE"), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"))
    entity_type = Column(Enum(EntityKind, native_enum=False, length=10), nullable=False)
    item_id = Column(Integer, ForeignKey("items.id", ondelete="RESTRICT"))
    recipe_id = Column(Integer, ForeignKey("recipes.id", ondelete="RESTRICT"))
    meal_id = Column(Integer, ForeignKey("meals.id", ondelete="RESTRICT"))
    display_order = Column(Integer, nullable=False, default=0)
    special_price = Column(Numeric(12, 2))  # Overrides the entity's selling price when > 0
    is_available = Column(Boolean, nullable=False, default=True)
    is_recommended = Column(Boolean, nullable=False, default=False)

    deleted_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())

    menu = relationship("Menu", back_populates="menu_items")
    category = relationship("Category", back_populates="menu_items")
    item = relationship("Item")
    recipe = relationship("Recipe")
    meal = relationship("Meal")

    __table_args__ = (
        CheckConstraint(
            "(entity_type = 'ITEM' AND item_id IS NOT NULL AND recipe_id IS NULL AND meal_id IS NULL) OR "
            "(entity_type = 'RECIPE' AND recipe_id IS NOT NULL AND item_id IS NULL AND meal_id IS NULL) OR "
            "(entity_type = 'MEAL' AND meal_id IS NOT NULL AND item_id IS NULL AND recipe_id IS NULL)",
            name="ck_menu_items_exactly_one_ref",
        ),
        CheckConstraint("display_order >= 0", name="ck_menu_items_display_order_non_negative"),
        Index("idx_menu_items_menu", "menu_id", "deleted_at"),
        Index("idx_menu_items_recipe", "recipe_id"),
        Index("idx_menu_items_meal", "meal_id"),
        Index("idx_menu_items_item", "item_id"),
    )

    @property
    def ref(self) -> EntityRef:
        kind = EntityKind(self.entity_type)
        return EntityRef(kind=kind, id=getattr(self, kind.field))

    @property
    def entity(self):
        """The referenced Item, Recipe or Meal."""
        return getattr(self, EntityKind(self.entity_type).value)

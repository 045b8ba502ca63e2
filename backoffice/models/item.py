"""
Raw inventory items, the leaves of the menu composition hierarchy.

Items are written by the inventory collaborators and only read by the
costing components.
"""
from sqlalchemy import Column, Integer, String, Text, Boolean, Numeric, DateTime, CheckConstraint, func

from backoffice.db.base import Base


class Item(Base):
    """A purchasable ingredient or ready product with cost and stock."""
    __tablename__ = "items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    item_code = Column(String(50), nullable=False, unique=True)
    name_ar = Column(String(255), nullable=False)
    name_en = Column(String(255), nullable=False)
    description = Column(Text)
    unit_symbol = Column(String(20), nullable=False, default="pc")
    unit_cost = Column(Numeric(12, 2), nullable=False, default=0)
    selling_price = Column(Numeric(12, 2), nullable=False, default=0)
    calories_per_unit = Column(Numeric(10, 2))  # Optional, missing counts as 0
    current_stock = Column(Numeric(12, 3), nullable=False, default=0)
    is_available = Column(Boolean, nullable=False, default=True)

    deleted_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("unit_cost >= 0", name="ck_items_unit_cost_non_negative"),
        CheckConstraint("current_stock >= 0", name="ck_items_stock_non_negative"),
    )

    @property
    def display_name(self) -> str:
        return self.name_en or self.name_ar

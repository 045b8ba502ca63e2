"""
SQLAlchemy models for the back-office.
"""
# Inventory (read-only here)
from backoffice.models.item import Item

# Composition
from backoffice.models.recipe import Recipe, RecipeLine
from backoffice.models.meal import Meal, MealComponent

# Menus
from backoffice.models.menu import Category, Menu, MenuItem

# References
from backoffice.models.refs import EntityKind, EntityRef


__all__ = [
    # Inventory
    "Item",
    # Composition
    "Recipe",
    "RecipeLine",
    "Meal",
    "MealComponent",
    # Menus
    "Category",
    "Menu",
    "MenuItem",
    # References
    "EntityKind",
    "EntityRef",
]

"""
Tagged references to composable entities.

A MealComponent points at exactly one Recipe or Item; a MenuItem points at
exactly one Item, Recipe or Meal. The reference is modelled as a closed sum
type so that an invalid combination cannot be constructed.
"""
import enum
from dataclasses import dataclass
from typing import Optional

from backoffice.core.exceptions import ValidationError


class EntityKind(str, enum.Enum):
    ITEM = "item"
    RECIPE = "recipe"
    MEAL = "meal"

    @property
    def field(self) -> str:
        """Name of the foreign-key field carrying this kind's id."""
        return f"{self.value}_id"


MEAL_COMPONENT_KINDS = (EntityKind.RECIPE, EntityKind.ITEM)
MENU_ENTRY_KINDS = (EntityKind.ITEM, EntityKind.RECIPE, EntityKind.MEAL)


@dataclass(frozen=True)
class EntityRef:
    kind: EntityKind
    id: int

    @classmethod
    def from_fields(cls, allowed: tuple[EntityKind, ...], **ids: Optional[int]) -> "EntityRef":
        """
        Build a reference from `<kind>_id` keyword fields.

        Exactly one of the allowed fields must be set; anything else raises
        ValidationError naming the fields that were supplied.
        """
        allowed_fields = {kind.field: kind for kind in allowed}
        unexpected = [name for name, value in ids.items() if value is not None and name not in allowed_fields]
        supplied = [name for name, value in ids.items() if value is not None and name in allowed_fields]

        if unexpected or len(supplied) != 1:
            raise ValidationError(
                f"Exactly one of {sorted(allowed_fields)} must be set",
                {"allowed": sorted(allowed_fields), "supplied": sorted(supplied + unexpected)},
            )

        field = supplied[0]
        return cls(kind=allowed_fields[field], id=ids[field])

    def as_fields(self, allowed: tuple[EntityKind, ...]) -> dict[str, Optional[int]]:
        """Foreign-key columns for this reference, the other kinds set to None."""
        return {kind.field: (self.id if kind == self.kind else None) for kind in allowed}

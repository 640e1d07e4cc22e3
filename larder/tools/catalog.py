"""Known pantry locations and categories, and argument normalization against them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


DEFAULT_LOCATIONS = ["Pantry", "Fridge", "Kitchen", "Freezer"]

DEFAULT_CATEGORIES = [
    "Dairy",
    "Cereals",
    "Pasta",
    "Fresh",
    "Canned",
    "Cold cuts",
    "Sweets",
    "Snacks",
    "Drinks",
    "Sauces",
    "Spices",
]

# Spoken and written variants the model tends to pass through from the user.
LOCATION_SYNONYMS: dict[str, str] = {
    "despensa": "Pantry",
    "pantry": "Pantry",
    "armario": "Pantry",
    "alacena": "Pantry",
    "cupboard": "Pantry",
    "cabinet": "Pantry",
    "larder": "Pantry",
    "storage": "Pantry",
    "nevera": "Fridge",
    "frigo": "Fridge",
    "refri": "Fridge",
    "refrigerador": "Fridge",
    "refrigerator": "Fridge",
    "fridge": "Fridge",
    "cocina": "Kitchen",
    "encimera": "Kitchen",
    "counter": "Kitchen",
    "countertop": "Kitchen",
    "kitchen": "Kitchen",
    "mesa": "Kitchen",
    "table": "Kitchen",
    "congelador": "Freezer",
    "freezer": "Freezer",
    "deep freezer": "Freezer",
}


def _fold(value: str) -> str:
    return " ".join(value.split()).lower()


@dataclass
class PantryCatalog:
    """Read-only lookup tables shared by every conversation."""

    locations: list[str] = field(default_factory=lambda: list(DEFAULT_LOCATIONS))
    categories: list[str] = field(default_factory=lambda: list(DEFAULT_CATEGORIES))
    location_synonyms: dict[str, str] = field(default_factory=lambda: dict(LOCATION_SYNONYMS))

    def resolve_location(self, value: Any) -> str | None:
        if not isinstance(value, str) or not value.strip():
            return None
        folded = _fold(value)
        mapped = _fold(self.location_synonyms.get(folded, value))
        for location in self.locations:
            if _fold(location) in (mapped, folded):
                return location
        return None

    def resolve_category(self, value: Any) -> str | None:
        if not isinstance(value, str) or not value.strip():
            return None
        folded = _fold(value)
        for category in self.categories:
            if _fold(category) == folded:
                return category
        return None

    def normalize_argument(self, key: str, value: Any) -> Any:
        """Map location and category arguments onto catalog spelling.

        Unknown values are left as they are so the handler can report them.
        """
        if not isinstance(value, str):
            return value
        lowered = key.lower()
        if "location" in lowered:
            return self.resolve_location(value) or value
        if lowered in ("category", "categoryid"):
            return self.resolve_category(value) or value
        return value

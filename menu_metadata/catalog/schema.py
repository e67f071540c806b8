"""Result schema sent to the generation service.

The schema is rebuilt for every request from an explicit ``ProvidedFields``
value: fields the user already supplied are neither described nor required,
so the model is never asked to invent them.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Any


class MetadataField(str, Enum):
    item_name = "itemName"
    description = "description"
    category = "category"
    dietary_tags = "dietaryTags"
    allergen_warnings = "allergenWarnings"
    suggested_pairings = "suggestedPairings"
    seo_keywords = "seoKeywords"


def _string_list(description: str) -> dict[str, Any]:
    return {"type": "ARRAY", "items": {"type": "STRING"}, "description": description}


FIELD_SPECS: dict[MetadataField, dict[str, Any]] = {
    MetadataField.item_name: {
        "type": "STRING",
        "description": "The full name of the menu item.",
    },
    MetadataField.description: {
        "type": "STRING",
        "description": (
            "A creative and appealing description for a customer browsing a delivery app. "
            "Listing out cuisine, ingredients, and preparation."
        ),
    },
    MetadataField.category: {
        "type": "STRING",
        "description": (
            "The menu category (e.g., 'Appetizer', 'Main Course', 'Dessert', 'Side Dish', 'Beverage')."
        ),
    },
    MetadataField.dietary_tags: _string_list(
        "A list of suggested dietary tags "
        "(e.g., 'Vegetarian', 'Vegan', 'Gluten-Free', 'Spicy', 'Low-Carb')."
    ),
    MetadataField.allergen_warnings: _string_list(
        "A list of potential allergens present "
        "(e.g., 'Contains Nuts', 'Contains Dairy', 'Contains Shellfish')."
    ),
    MetadataField.suggested_pairings: _string_list(
        "Suggestions for items that would pair well with this dish to encourage upselling."
    ),
    MetadataField.seo_keywords: _string_list(
        "A list of keywords for search engine optimization "
        "(e.g., 'cheesy pizza', 'spicy chicken sandwich', 'healthy salad')."
    ),
}


@dataclass(frozen=True, slots=True)
class ProvidedFields:
    """Which user-suppliable fields came from the caller."""

    item_name: bool = False
    description: bool = False

    def includes(self, field: MetadataField) -> bool:
        if field is MetadataField.item_name:
            return self.item_name
        if field is MetadataField.description:
            return self.description
        return False


def required_fields(provided: ProvidedFields) -> list[str]:
    return [field.value for field in MetadataField if not provided.includes(field)]


def build_result_schema(provided: ProvidedFields) -> dict[str, Any]:
    required = required_fields(provided)
    return {
        "type": "OBJECT",
        "properties": {
            field.value: copy.deepcopy(spec)
            for field, spec in FIELD_SPECS.items()
            if field.value in required
        },
        "required": required,
    }

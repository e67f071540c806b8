from __future__ import annotations

from typing import Any, NamedTuple

from menu_metadata.catalog.models import RequestInput
from menu_metadata.catalog.schema import build_result_schema

ROLE_INSTRUCTION = (
    "You are an expert catalog manager for a food delivery service like DoorDash. "
    "Your task is to generate detailed, structured metadata for a menu item based on "
    "the information provided. Provide the data in the requested JSON format. "
    "Use your expertise to generate compelling descriptions and useful tags."
)
IMAGE_INSTRUCTION = (
    "Use the provided image as a visual reference to enhance the accuracy and richness "
    "of all generated metadata fields."
)
TEXT_ONLY_INSTRUCTION = "Generate the metadata based only on the provided text."


class BuiltRequest(NamedTuple):
    prompt_text: str
    result_schema: dict[str, Any]


def _ground_truth_instruction(item_name: str | None, description: str | None) -> str | None:
    if item_name and description:
        return (
            "The user has provided the following name and description. "
            "Use them as the ground truth for those fields. "
            f'Item Name: "{item_name}". Description: "{description}".'
        )
    if item_name:
        return (
            "The user has provided the item name. Use it as the ground truth for that field "
            f'and generate a compelling description based on it. Item Name: "{item_name}".'
        )
    if description:
        return (
            "The user has provided the description. Use it as the ground truth for that field "
            f'and infer a suitable item name. Description: "{description}".'
        )
    return None


def build_request(request_input: RequestInput) -> BuiltRequest:
    """Build the prompt text and result schema for one extraction request."""
    item_name = (request_input.item_name or "").strip() or None
    description = (request_input.description or "").strip() or None

    parts = [ROLE_INSTRUCTION]
    ground_truth = _ground_truth_instruction(item_name, description)
    if ground_truth:
        parts.append(ground_truth)
    parts.append(IMAGE_INSTRUCTION if request_input.image else TEXT_ONLY_INSTRUCTION)

    return BuiltRequest(
        prompt_text="\n\n".join(parts),
        result_schema=build_result_schema(request_input.provided_fields),
    )

from __future__ import annotations

import base64
import re
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from menu_metadata.catalog.schema import ProvidedFields
from menu_metadata.core.config import settings
from menu_metadata.core.errors import ValidationError

ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp")
CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")


def sanitize_text(value: str | None, max_length: int) -> str | None:
    """Trim and strip control characters; blank input becomes None."""
    if value is None:
        return None
    cleaned = CONTROL_CHARS_RE.sub("", value).strip()
    if not cleaned:
        return None
    if len(cleaned) > max_length:
        raise ValidationError(f"Value is too long (max {max_length} characters).")
    return cleaned


class MenuItemMetadata(BaseModel):
    """Catalog metadata for a single menu item.

    Serialized with camelCase keys. Unknown properties returned by the
    generation service are kept as-is.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    item_name: str
    description: str
    category: str = ""
    dietary_tags: list[str] = Field(default_factory=list)
    allergen_warnings: list[str] = Field(default_factory=list)
    suggested_pairings: list[str] = Field(default_factory=list)
    seo_keywords: list[str] = Field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return self.model_dump(by_alias=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)

    @classmethod
    def from_json(cls, text: str) -> MenuItemMetadata:
        return cls.model_validate_json(text)


@dataclass(frozen=True, slots=True)
class ImageUpload:
    data: bytes
    mime_type: str

    def __post_init__(self) -> None:
        mime_type = (self.mime_type or "").lower()
        if mime_type not in ALLOWED_IMAGE_TYPES:
            raise ValidationError(
                f"Invalid file type '{self.mime_type}'. Please upload a JPEG, PNG, or WebP image."
            )
        if not self.data:
            raise ValidationError("The uploaded file is empty.")
        if len(self.data) > settings.max_upload_bytes:
            raise ValidationError(
                f"File too large ({len(self.data) / (1024 * 1024):.1f} MB). "
                f"Maximum size is {settings.max_upload_bytes // (1024 * 1024)} MB."
            )
        object.__setattr__(self, "mime_type", mime_type)

    @property
    def size(self) -> int:
        return len(self.data)

    def base64(self) -> str:
        return base64.standard_b64encode(self.data).decode("ascii")


@dataclass(frozen=True, slots=True)
class RequestInput:
    image: ImageUpload | None = None
    item_name: str | None = None
    description: str | None = None

    @classmethod
    def from_raw(
        cls,
        *,
        image: ImageUpload | None = None,
        item_name: str | None = None,
        description: str | None = None,
    ) -> RequestInput:
        return cls(
            image=image,
            item_name=sanitize_text(item_name, settings.item_name_max_length),
            description=sanitize_text(description, settings.description_max_length),
        )

    @property
    def has_content(self) -> bool:
        return bool(self.image or self.item_name or self.description)

    @property
    def provided_fields(self) -> ProvidedFields:
        return ProvidedFields(
            item_name=bool(self.item_name and self.item_name.strip()),
            description=bool(self.description and self.description.strip()),
        )

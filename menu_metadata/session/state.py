from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from menu_metadata.catalog.models import MenuItemMetadata


class Phase(str, Enum):
    idle = "idle"
    awaiting_input = "awaiting_input"
    loading = "loading"
    success = "success"
    failed = "failed"


class ControllerSnapshot(BaseModel):
    phase: Phase
    image_mime_type: str | None = None
    image_size: int | None = None
    item_name: str | None = None
    description: str | None = None
    result: MenuItemMetadata | None = None
    error: str | None = None
    copied: bool = False
    can_submit: bool = False

    def to_public(self) -> dict[str, object]:
        data = self.model_dump(mode="json", exclude={"result"})
        data["result"] = self.result.to_dict() if self.result else None
        return data

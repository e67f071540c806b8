from __future__ import annotations

import os

os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key")

import pytest
from fastapi.testclient import TestClient

from menu_metadata.catalog.models import MenuItemMetadata

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def sample_metadata() -> MenuItemMetadata:
    return MenuItemMetadata(
        item_name="Margherita Pizza",
        description="Wood-fired pizza with San Marzano tomatoes, fresh mozzarella and basil.",
        category="Main Course",
        dietary_tags=["Vegetarian"],
        allergen_warnings=["Contains Dairy", "Contains Gluten"],
        suggested_pairings=["Caesar Salad", "Lemonade"],
        seo_keywords=["margherita pizza", "wood fired pizza"],
    )


@pytest.fixture
def api_client():
    from menu_metadata.main import app

    with TestClient(app) as client:
        yield client

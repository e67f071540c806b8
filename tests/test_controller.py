"""Tests for the per-tab state controller: transitions, stale-response guard
and the copy feedback timer."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from menu_metadata.catalog.models import MenuItemMetadata
from menu_metadata.core.config import settings
from menu_metadata.core.errors import (
    IncompleteResult,
    ServiceError,
    SubmissionInFlight,
    ValidationError,
)
from menu_metadata.session.controller import DEFAULT_COPY_FEEDBACK_SECONDS, MenuItemController
from menu_metadata.session.state import Phase

pytestmark = pytest.mark.anyio


class FakeGenerator:
    def __init__(self, result: MenuItemMetadata | None = None, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.calls: list[dict[str, Any]] = []
        self.gate: asyncio.Event | None = None

    def hold(self) -> asyncio.Event:
        self.gate = asyncio.Event()
        return self.gate

    async def agenerate(
        self,
        prompt_text: str,
        result_schema: dict[str, Any],
        image_bytes: bytes | None = None,
        mime_type: str | None = None,
        *,
        item_name: str | None = None,
        description: str | None = None,
    ) -> MenuItemMetadata:
        self.calls.append(
            {
                "prompt_text": prompt_text,
                "result_schema": result_schema,
                "image_bytes": image_bytes,
                "mime_type": mime_type,
                "item_name": item_name,
                "description": description,
            }
        )
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result


class EchoGenerator:
    """Returns metadata named after the submitted item, one gate per name."""

    def __init__(self) -> None:
        self.gates: dict[str, asyncio.Event] = {}

    def hold(self, item_name: str) -> asyncio.Event:
        self.gates[item_name] = asyncio.Event()
        return self.gates[item_name]

    async def agenerate(
        self,
        prompt_text: str,
        result_schema: dict[str, Any],
        image_bytes: bytes | None = None,
        mime_type: str | None = None,
        *,
        item_name: str | None = None,
        description: str | None = None,
    ) -> MenuItemMetadata:
        await self.gates[item_name].wait()
        return MenuItemMetadata(item_name=item_name, description="d")


class RecordingClipboard:
    def __init__(self) -> None:
        self.text: str | None = None

    async def write_text(self, text: str) -> None:
        self.text = text


class FailingClipboard:
    async def write_text(self, text: str) -> None:
        raise RuntimeError("clipboard unavailable")


async def test_initial_state_is_idle() -> None:
    controller = MenuItemController(FakeGenerator())

    snapshot = controller.snapshot()

    assert snapshot.phase is Phase.idle
    assert snapshot.can_submit is False
    assert snapshot.result is None


async def test_inputs_move_to_awaiting_input(png_bytes: bytes) -> None:
    controller = MenuItemController(FakeGenerator())

    controller.set_image(png_bytes, "image/png")
    assert controller.phase is Phase.awaiting_input

    controller.clear_image()
    assert controller.phase is Phase.idle

    controller.set_fields("  Ramen ", None)
    assert controller.phase is Phase.awaiting_input
    assert controller.item_name == "Ramen"


async def test_gif_upload_rejected_without_state_change(png_bytes: bytes) -> None:
    generator = FakeGenerator()
    controller = MenuItemController(generator)

    with pytest.raises(ValidationError, match="Invalid file type"):
        controller.set_image(png_bytes, "image/gif")

    assert controller.image is None
    assert controller.phase is Phase.idle
    assert generator.calls == []


async def test_empty_submission_is_rejected() -> None:
    generator = FakeGenerator()
    controller = MenuItemController(generator)
    controller.set_fields("   ", "")

    with pytest.raises(ValidationError):
        controller.start_submission()

    assert controller.phase is Phase.idle
    assert generator.calls == []


async def test_successful_submission(sample_metadata: MenuItemMetadata, png_bytes: bytes) -> None:
    generator = FakeGenerator(result=sample_metadata)
    controller = MenuItemController(generator)
    controller.set_image(png_bytes, "image/png")
    controller.set_fields("Margherita Pizza", None)

    await controller.submit()

    assert controller.phase is Phase.success
    assert controller.result == sample_metadata
    assert controller.error is None
    call = generator.calls[0]
    assert call["image_bytes"] == png_bytes
    assert call["mime_type"] == "image/png"
    assert call["item_name"] == "Margherita Pizza"
    assert "itemName" not in call["result_schema"]["required"]


async def test_failed_submission_sets_error_and_clears_result(sample_metadata: MenuItemMetadata) -> None:
    generator = FakeGenerator(result=sample_metadata)
    controller = MenuItemController(generator)
    controller.set_fields("Pho", None)
    await controller.submit()
    assert controller.result is not None

    generator.error = ServiceError("gemini", "Gemini error 401: bad key", status_code=401)
    await controller.submit()

    assert controller.phase is Phase.failed
    assert controller.result is None
    assert controller.error == "Failed to extract metadata: Gemini API error: Gemini error 401: bad key"


async def test_incomplete_result_message() -> None:
    controller = MenuItemController(FakeGenerator(error=IncompleteResult("missing itemName")))
    controller.set_fields(None, "Broth with noodles.")

    await controller.submit()

    assert controller.phase is Phase.failed
    assert "Incomplete result" in controller.error


async def test_duplicate_submission_rejected_while_loading(sample_metadata: MenuItemMetadata) -> None:
    generator = FakeGenerator(result=sample_metadata)
    gate = generator.hold()
    controller = MenuItemController(generator)
    controller.set_fields("Pho", None)

    task = controller.start_submission()
    assert controller.phase is Phase.loading
    with pytest.raises(SubmissionInFlight):
        controller.start_submission()
    with pytest.raises(SubmissionInFlight):
        controller.set_fields("Other", None)

    gate.set()
    await task
    assert len(generator.calls) == 1
    assert controller.phase is Phase.success


async def test_reset_discards_in_flight_result(sample_metadata: MenuItemMetadata, png_bytes: bytes) -> None:
    generator = FakeGenerator(result=sample_metadata)
    gate = generator.hold()
    controller = MenuItemController(generator)
    controller.set_image(png_bytes, "image/png")

    task = controller.start_submission()
    await asyncio.sleep(0)
    controller.reset()
    gate.set()
    await task

    snapshot = controller.snapshot()
    assert snapshot.phase is Phase.idle
    assert snapshot.result is None
    assert snapshot.error is None
    assert snapshot.image_mime_type is None


async def test_reset_discards_in_flight_error() -> None:
    generator = FakeGenerator(error=ServiceError("gemini", "timeout"))
    gate = generator.hold()
    controller = MenuItemController(generator)
    controller.set_fields("Pho", None)

    task = controller.start_submission()
    controller.reset()
    gate.set()
    await task

    assert controller.phase is Phase.idle
    assert controller.error is None


async def test_stale_result_ignored_after_reset_and_resubmit() -> None:
    generator = EchoGenerator()
    gate_a = generator.hold("A")
    gate_b = generator.hold("B")
    controller = MenuItemController(generator)

    controller.set_fields("A", None)
    task_a = controller.start_submission()
    await asyncio.sleep(0)
    controller.reset()
    controller.set_fields("B", None)
    task_b = controller.start_submission()
    await asyncio.sleep(0)

    gate_a.set()
    await task_a
    assert controller.phase is Phase.loading
    assert controller.result is None

    gate_b.set()
    await task_b
    assert controller.phase is Phase.success
    assert controller.result.item_name == "B"


async def test_unexpected_exception_becomes_generic_error() -> None:
    controller = MenuItemController(FakeGenerator(error=KeyError("boom")))
    controller.set_fields("Pho", None)

    await controller.submit()

    assert controller.phase is Phase.failed
    assert controller.error == "Failed to extract metadata: An unexpected error occurred."


async def test_copy_requires_success() -> None:
    controller = MenuItemController(FakeGenerator())

    with pytest.raises(ValidationError):
        await controller.copy_result(RecordingClipboard())


async def test_copy_writes_pretty_json(sample_metadata: MenuItemMetadata) -> None:
    controller = MenuItemController(FakeGenerator(result=sample_metadata))
    controller.set_fields("Margherita Pizza", None)
    await controller.submit()
    clipboard = RecordingClipboard()

    copied = await controller.copy_result(clipboard)

    assert copied is True
    assert controller.copied is True
    assert clipboard.text == sample_metadata.to_json()
    assert MenuItemMetadata.from_json(clipboard.text) == sample_metadata
    controller.reset()


async def test_result_text_does_not_set_copied_flag(sample_metadata: MenuItemMetadata) -> None:
    controller = MenuItemController(FakeGenerator(result=sample_metadata))
    controller.set_fields("Margherita Pizza", None)
    await controller.submit()

    assert controller.result_text() == sample_metadata.to_json()
    assert controller.copied is False

    controller.mark_copied()
    assert controller.copied is True
    controller.reset()


async def test_mark_copied_requires_success() -> None:
    controller = MenuItemController(FakeGenerator())

    with pytest.raises(ValidationError):
        controller.mark_copied()
    assert controller.copied is False


async def test_clipboard_failure_is_not_an_error_state(sample_metadata: MenuItemMetadata) -> None:
    controller = MenuItemController(FakeGenerator(result=sample_metadata))
    controller.set_fields("Margherita Pizza", None)
    await controller.submit()

    copied = await controller.copy_result(FailingClipboard())

    assert copied is False
    assert controller.copied is False
    assert controller.phase is Phase.success
    assert controller.error is None


async def test_copied_flag_expires(sample_metadata: MenuItemMetadata) -> None:
    controller = MenuItemController(FakeGenerator(result=sample_metadata), copy_feedback_seconds=0.2)
    controller.set_fields("Margherita Pizza", None)
    await controller.submit()

    await controller.copy_result(RecordingClipboard())
    assert controller.copied is True
    await asyncio.sleep(0.1)
    assert controller.copied is True
    await asyncio.sleep(0.2)
    assert controller.copied is False


async def test_second_copy_restarts_timer(sample_metadata: MenuItemMetadata) -> None:
    controller = MenuItemController(FakeGenerator(result=sample_metadata), copy_feedback_seconds=0.2)
    controller.set_fields("Margherita Pizza", None)
    await controller.submit()

    await controller.copy_result(RecordingClipboard())
    await asyncio.sleep(0.12)
    await controller.copy_result(RecordingClipboard())
    await asyncio.sleep(0.12)
    # Past the first window, still inside the second.
    assert controller.copied is True
    await asyncio.sleep(0.15)
    assert controller.copied is False


async def test_reset_clears_copied_flag(sample_metadata: MenuItemMetadata) -> None:
    controller = MenuItemController(FakeGenerator(result=sample_metadata))
    controller.set_fields("Margherita Pizza", None)
    await controller.submit()
    await controller.copy_result(RecordingClipboard())

    controller.reset()

    assert controller.copied is False
    assert controller.phase is Phase.idle


async def test_default_copy_window_is_two_seconds() -> None:
    assert DEFAULT_COPY_FEEDBACK_SECONDS == 2.0
    assert settings.copy_feedback_seconds == 2.0

"""Application state for one browser tab.

The controller owns the current inputs, the last result or error, and the
transient "copied" flag. Every submission is tagged with a generation token;
outcomes whose token no longer matches (because of a reset) are discarded.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

import structlog

from menu_metadata.catalog.models import ImageUpload, MenuItemMetadata, RequestInput
from menu_metadata.catalog.prompts import build_request
from menu_metadata.core.errors import GenerationError, SubmissionInFlight, ValidationError
from menu_metadata.session.state import ControllerSnapshot, Phase

logger = structlog.get_logger(__name__)

DEFAULT_COPY_FEEDBACK_SECONDS = 2.0


class MetadataGenerator(Protocol):
    async def agenerate(
        self,
        prompt_text: str,
        result_schema: dict[str, Any],
        image_bytes: bytes | None = None,
        mime_type: str | None = None,
        *,
        item_name: str | None = None,
        description: str | None = None,
    ) -> MenuItemMetadata: ...


class Clipboard(Protocol):
    async def write_text(self, text: str) -> None: ...


class MenuItemController:
    def __init__(
        self,
        client: MetadataGenerator,
        *,
        copy_feedback_seconds: float = DEFAULT_COPY_FEEDBACK_SECONDS,
    ) -> None:
        self._client = client
        self._copy_feedback_seconds = copy_feedback_seconds
        self._token = 0
        self._copy_timer: asyncio.Task[None] | None = None
        self._task: asyncio.Task[None] | None = None
        self._clear()

    def _clear(self) -> None:
        self.phase = Phase.idle
        self.image: ImageUpload | None = None
        self.item_name: str | None = None
        self.description: str | None = None
        self.result: MenuItemMetadata | None = None
        self.error: str | None = None
        self.copied = False

    @property
    def is_loading(self) -> bool:
        return self.phase is Phase.loading

    def request_input(self) -> RequestInput:
        return RequestInput(image=self.image, item_name=self.item_name, description=self.description)

    def _ensure_not_loading(self) -> None:
        if self.is_loading:
            raise SubmissionInFlight("Please wait for the current request to finish.")

    def _refresh_input_phase(self) -> None:
        if self.phase in (Phase.idle, Phase.awaiting_input):
            self.phase = Phase.awaiting_input if self.request_input().has_content else Phase.idle

    # Inputs

    def set_image(self, data: bytes, mime_type: str) -> None:
        self._ensure_not_loading()
        self.image = ImageUpload(data=data, mime_type=mime_type)
        logger.info("image_selected", mime_type=self.image.mime_type, size=self.image.size)
        self._refresh_input_phase()

    def clear_image(self) -> None:
        self._ensure_not_loading()
        self.image = None
        self._refresh_input_phase()

    def set_fields(self, item_name: str | None, description: str | None) -> None:
        self._ensure_not_loading()
        cleaned = RequestInput.from_raw(item_name=item_name, description=description)
        self.item_name = cleaned.item_name
        self.description = cleaned.description
        self._refresh_input_phase()

    # Submission

    def start_submission(self) -> asyncio.Task[None]:
        self._ensure_not_loading()
        request_input = self.request_input()
        if not request_input.has_content:
            raise ValidationError("Upload an image or enter an item name or description.")

        built = build_request(request_input)
        self._token += 1
        token = self._token
        self._cancel_copy_timer()
        self.phase = Phase.loading
        self.result = None
        self.error = None
        self.copied = False

        logger.info("submission_started", token=token, has_image=request_input.image is not None)
        self._task = asyncio.create_task(
            self._run(token, request_input, built.prompt_text, built.result_schema)
        )
        return self._task

    async def submit(self) -> None:
        await self.start_submission()

    async def _run(
        self,
        token: int,
        request_input: RequestInput,
        prompt_text: str,
        result_schema: dict[str, Any],
    ) -> None:
        image = request_input.image
        try:
            result = await self._client.agenerate(
                prompt_text,
                result_schema,
                image.data if image else None,
                image.mime_type if image else None,
                item_name=request_input.item_name,
                description=request_input.description,
            )
        except GenerationError as exc:
            logger.warning("submission_failed", token=token, kind=exc.kind, error=str(exc))
            self._fail(token, f"{exc.kind}: {exc}")
            return
        except Exception:
            logger.exception("submission_crashed", token=token)
            self._fail(token, "An unexpected error occurred.")
            return

        if token != self._token:
            logger.info("stale_outcome_discarded", token=token, outcome="result")
            return
        logger.info("submission_succeeded", token=token)
        self.phase = Phase.success
        self.result = result
        self.error = None

    def _fail(self, token: int, message: str) -> None:
        if token != self._token:
            logger.info("stale_outcome_discarded", token=token, outcome="error")
            return
        self.phase = Phase.failed
        self.result = None
        self.error = f"Failed to extract metadata: {message}"

    def reset(self) -> None:
        self._token += 1
        self._cancel_copy_timer()
        self._clear()
        logger.info("controller_reset", token=self._token)

    # Copy to clipboard

    def result_text(self) -> str:
        if self.phase is not Phase.success or self.result is None:
            raise ValidationError("There is no result to copy yet.")
        return self.result.to_json()

    def mark_copied(self) -> None:
        """Set the copied flag after a confirmed clipboard write."""
        self.result_text()
        self.copied = True
        self._cancel_copy_timer()
        self._copy_timer = asyncio.create_task(self._expire_copied())

    async def copy_result(self, clipboard: Clipboard) -> bool:
        text = self.result_text()
        try:
            await clipboard.write_text(text)
        except Exception as exc:  # noqa: BLE001
            logger.warning("clipboard_write_failed", error=str(exc))
            return False

        self.mark_copied()
        return True

    async def _expire_copied(self) -> None:
        await asyncio.sleep(self._copy_feedback_seconds)
        self.copied = False
        self._copy_timer = None

    def _cancel_copy_timer(self) -> None:
        if self._copy_timer is not None:
            self._copy_timer.cancel()
            self._copy_timer = None

    def snapshot(self) -> ControllerSnapshot:
        return ControllerSnapshot(
            phase=self.phase,
            image_mime_type=self.image.mime_type if self.image else None,
            image_size=self.image.size if self.image else None,
            item_name=self.item_name,
            description=self.description,
            result=self.result,
            error=self.error,
            copied=self.copied,
            can_submit=not self.is_loading and self.request_input().has_content,
        )

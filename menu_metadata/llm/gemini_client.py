from __future__ import annotations

import base64
import json
import re
from dataclasses import dataclass
from functools import partial
from typing import Any

import anyio
import pydantic
import requests
import structlog

from menu_metadata.catalog.models import MenuItemMetadata
from menu_metadata.core.config import Settings
from menu_metadata.core.errors import (
    IncompleteResult,
    MalformedResponse,
    MissingCredentialError,
    ServiceError,
)

logger = structlog.get_logger(__name__)

SERVICE_NAME = "gemini"
CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


@dataclass(frozen=True, slots=True)
class GenerationContext:
    api_key: str
    model: str
    api_base: str
    timeout: float

    @classmethod
    def from_settings(cls, settings: Settings) -> GenerationContext:
        if not settings.gemini_api_key:
            raise MissingCredentialError("GEMINI_API_KEY (or API_KEY) is not configured")
        return cls(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            api_base=settings.gemini_api_base.rstrip("/"),
            timeout=settings.gemini_timeout_seconds,
        )

    @property
    def model_url(self) -> str:
        return f"{self.api_base}/models/{self.model}"

    @property
    def headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}


def _error_detail(response: requests.Response) -> str:
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return response.text


def _post_generate_request(
    http: requests.Session,
    *,
    url: str,
    headers: dict[str, str],
    payload: dict[str, Any],
    timeout: float,
) -> dict[str, Any]:
    try:
        response = http.post(url, headers=headers, json=payload, timeout=timeout)
    except requests.RequestException as exc:
        raise ServiceError(SERVICE_NAME, f"Request to Gemini failed: {exc}") from exc

    if response.status_code >= 400:
        raise ServiceError(
            SERVICE_NAME,
            f"Gemini error {response.status_code}: {_error_detail(response)}",
            status_code=response.status_code,
        )
    try:
        return response.json()
    except ValueError as exc:
        raise MalformedResponse("Gemini returned a non-JSON envelope") from exc


def _response_text(envelope: dict[str, Any]) -> str:
    block_reason = (envelope.get("promptFeedback") or {}).get("blockReason")
    if block_reason:
        raise ServiceError(SERVICE_NAME, f"Request blocked by Gemini: {block_reason}")

    candidates = envelope.get("candidates") or []
    if not candidates:
        raise MalformedResponse("Gemini returned no candidates")
    parts = (candidates[0].get("content") or {}).get("parts") or []
    text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
    if not text.strip():
        raise MalformedResponse("Gemini returned an empty response")
    return text


def _parse_json_object(text: str) -> dict[str, Any]:
    cleaned = CODE_FENCE_RE.sub("", text.strip())
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise MalformedResponse(f"Response is not valid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise MalformedResponse("Response JSON is not an object")
    return data


def _reconcile(
    data: dict[str, Any],
    *,
    item_name: str | None,
    description: str | None,
) -> dict[str, Any]:
    item_name = (item_name or "").strip()
    description = (description or "").strip()
    if item_name:
        data["itemName"] = item_name
    if description:
        data["description"] = description

    for key in ("itemName", "description"):
        value = data.get(key)
        if value is not None and not isinstance(value, str):
            raise MalformedResponse(f"Malformed response from the API: {key} is not a string")
        if value is None or not value.strip():
            raise IncompleteResult(f"Received incomplete data from the API: missing {key}")
    return data


class GeminiClient:
    """Single-attempt adapter over the Gemini ``generateContent`` endpoint."""

    def __init__(self, context: GenerationContext, http: requests.Session | None = None) -> None:
        self.context = context
        self.http = http or requests.Session()

    def build_payload(
        self,
        prompt_text: str,
        result_schema: dict[str, Any],
        image_bytes: bytes | None = None,
        mime_type: str | None = None,
    ) -> dict[str, Any]:
        parts: list[dict[str, Any]] = []
        if image_bytes and mime_type:
            parts.append(
                {
                    "inlineData": {
                        "mimeType": mime_type,
                        "data": base64.standard_b64encode(image_bytes).decode("ascii"),
                    }
                }
            )
        parts.append({"text": prompt_text})
        return {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": result_schema,
            },
        }

    def generate(
        self,
        prompt_text: str,
        result_schema: dict[str, Any],
        image_bytes: bytes | None = None,
        mime_type: str | None = None,
        *,
        item_name: str | None = None,
        description: str | None = None,
    ) -> MenuItemMetadata:
        """
        Request structured metadata and reconcile user-supplied fields.

        Raises:
            ServiceError: transport, HTTP or auth failure (not retried)
            MalformedResponse: the reply is not a JSON object of the right shape
            IncompleteResult: itemName or description is missing on both sides
        """
        payload = self.build_payload(prompt_text, result_schema, image_bytes, mime_type)

        logger.info(
            "generation_request",
            model=self.context.model,
            prompt_length=len(prompt_text),
            has_image=bool(image_bytes),
            required=result_schema.get("required"),
        )

        envelope = _post_generate_request(
            self.http,
            url=f"{self.context.model_url}:generateContent",
            headers=self.context.headers,
            payload=payload,
            timeout=self.context.timeout,
        )
        data = _parse_json_object(_response_text(envelope))
        data = _reconcile(data, item_name=item_name, description=description)

        try:
            result = MenuItemMetadata.model_validate(data)
        except pydantic.ValidationError as exc:
            raise MalformedResponse(f"Response does not match the metadata schema: {exc}") from exc

        logger.info("generation_response", item_name=result.item_name, category=result.category)
        return result

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
        return await anyio.to_thread.run_sync(
            partial(
                self.generate,
                prompt_text,
                result_schema,
                image_bytes,
                mime_type,
                item_name=item_name,
                description=description,
            )
        )

    def ping(self, timeout: float = 1.5) -> None:
        response = self.http.get(self.context.model_url, headers=self.context.headers, timeout=timeout)
        response.raise_for_status()

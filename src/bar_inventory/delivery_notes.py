"""Delivery note parsing through the Gemini generative API.

The service only forwards the photo of a supplier delivery note together
with the names already known to the inventory and expects back a JSON
document ``{"items": [{"name": ..., "quantity": ...}]}``. Nothing from this
module touches stored inventory.
"""
from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from typing import Any, Protocol

import httpx

from .config import Settings
from .schemas import ParsedLine

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"```json|```")

PROMPT_TEMPLATE = """
Analiza el albarán adjunto.
  PRODUCTOS DISPONIBLES EN MI SISTEMA: {names}

  REGLA DE CÁLCULO:
  - Si un ítem indica cantidad en cajas (ej: 6 cajas de 35), devuelve el total multiplicado (210).
  - Usa los nombres exactos de los "PRODUCTOS DISPONIBLES" cuando sea posible.

Responde estrictamente con este formato JSON:
  {{"items": [{{"name": "string", "quantity": number}}]}}
"""


class DeliveryNoteError(RuntimeError):
    """The delivery note could not be turned into item lines."""


class MissingCredentialsError(DeliveryNoteError):
    """No API key is configured for the parser."""


class DeliveryNoteParser(Protocol):
    async def parse(self, image_base64: str, inventory_names: Sequence[str] | None) -> list[ParsedLine]:
        ...


def build_prompt(inventory_names: Sequence[str] | None) -> str:
    names = ", ".join(inventory_names) if inventory_names else "Cualquiera"
    return PROMPT_TEMPLATE.format(names=names)


def parse_model_text(text: str) -> list[ParsedLine]:
    """Decode the model's answer, tolerating a markdown code fence around it."""

    cleaned = _CODE_FENCE.sub("", text).strip()
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise DeliveryNoteError(f"Model answer is not valid JSON: {exc.msg}") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("items"), list):
        raise DeliveryNoteError("Model answer has no 'items' list")
    lines = []
    for entry in payload["items"]:
        if not isinstance(entry, dict) or not entry.get("name"):
            raise DeliveryNoteError(f"Unexpected item in model answer: {entry!r}")
        try:
            lines.append(ParsedLine(name=str(entry["name"]), quantity=entry.get("quantity") or 0))
        except ValueError as exc:
            raise DeliveryNoteError(f"Unexpected item in model answer: {entry!r}") from exc
    return lines


def _response_text(data: dict[str, Any]) -> str:
    try:
        parts = data["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError) as exc:
        raise DeliveryNoteError("Gemini response has no candidates") from exc
    return "".join(part.get("text", "") for part in parts if isinstance(part, dict))


class GeminiDeliveryNoteParser:
    """Calls ``models/<model>:generateContent`` with the prompt and the JPEG image."""

    def __init__(
        self,
        api_key: str | None,
        *,
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiDeliveryNoteParser":
        return cls(
            settings.gemini_api_key,
            model=settings.gemini_model,
            base_url=settings.gemini_base_url,
            timeout=settings.gemini_timeout,
        )

    async def parse(self, image_base64: str, inventory_names: Sequence[str] | None) -> list[ParsedLine]:
        if not self.api_key:
            raise MissingCredentialsError("Falta API KEY")

        url = f"{self.base_url}/models/{self.model}:generateContent"
        body = {
            "contents": [
                {
                    "parts": [
                        {"text": build_prompt(inventory_names)},
                        {"inline_data": {"mime_type": "image/jpeg", "data": image_base64}},
                    ]
                }
            ]
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, params={"key": self.api_key}, json=body)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning("Gemini returned HTTP %s", exc.response.status_code)
            raise DeliveryNoteError(f"IA: HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.warning("Gemini request failed: %s", exc)
            raise DeliveryNoteError(f"IA: {exc}") from exc
        except ValueError as exc:
            raise DeliveryNoteError("IA: response is not JSON") from exc

        return parse_model_text(_response_text(data))


__all__ = [
    "DeliveryNoteError",
    "DeliveryNoteParser",
    "GeminiDeliveryNoteParser",
    "MissingCredentialsError",
    "build_prompt",
    "parse_model_text",
]

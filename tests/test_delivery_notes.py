from __future__ import annotations

import json

import httpx
import pytest
from fastapi import FastAPI
from httpx import AsyncClient

from bar_inventory.api import provide_delivery_note_parser
from bar_inventory.delivery_notes import (
    DeliveryNoteError,
    GeminiDeliveryNoteParser,
    MissingCredentialsError,
    build_prompt,
    parse_model_text,
)
from bar_inventory.schemas import ParsedLine


def _gemini_reply(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def test_prompt_lists_known_names() -> None:
    assert "Absolut, Mahou" in build_prompt(["Absolut", "Mahou"])
    assert "Cualquiera" in build_prompt(None)


def test_parse_model_text_strips_code_fence() -> None:
    text = '```json\n{"items": [{"name": "Mahou", "quantity": 210}]}\n```'
    assert parse_model_text(text) == [ParsedLine(name="Mahou", quantity=210)]


@pytest.mark.parametrize("text", ["no json here", '{"lines": []}', '{"items": [{"quantity": 2}]}'])
def test_parse_model_text_rejects_unexpected_answers(text: str) -> None:
    with pytest.raises(DeliveryNoteError):
        parse_model_text(text)


async def test_parser_posts_image_and_reads_items() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_gemini_reply('{"items": [{"name": "Absolut", "quantity": 6}]}'))

    parser = GeminiDeliveryNoteParser("secret", model="gemini-test", transport=httpx.MockTransport(handler))

    lines = await parser.parse("aW1hZ2U=", ["Absolut"])

    assert lines == [ParsedLine(name="Absolut", quantity=6)]
    assert "models/gemini-test:generateContent" in seen["url"]
    assert "key=secret" in seen["url"]
    parts = seen["body"]["contents"][0]["parts"]
    assert parts[1]["inline_data"] == {"mime_type": "image/jpeg", "data": "aW1hZ2U="}


async def test_parser_wraps_http_errors() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(500, json={"error": "boom"}))
    parser = GeminiDeliveryNoteParser("secret", transport=transport)

    with pytest.raises(DeliveryNoteError, match="IA: HTTP 500"):
        await parser.parse("aW1hZ2U=", None)


async def test_parser_requires_api_key() -> None:
    with pytest.raises(MissingCredentialsError):
        await GeminiDeliveryNoteParser(None).parse("aW1hZ2U=", None)


class _StubParser:
    def __init__(self, result: list[ParsedLine] | Exception) -> None:
        self.result = result

    async def parse(self, image_base64, inventory_names):
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


async def test_parse_endpoint_returns_items(app: FastAPI, client: AsyncClient) -> None:
    app.dependency_overrides[provide_delivery_note_parser] = lambda: _StubParser(
        [ParsedLine(name="Mahou", quantity=24)]
    )

    response = await client.post("/delivery-notes/parse", json={"imageBase64": "aW1hZ2U=", "inventoryNames": ["Mahou"]})

    assert response.status_code == 200
    assert response.json() == {"items": [{"name": "Mahou", "quantity": 24.0}]}


async def test_parse_endpoint_reports_collaborator_failures(app: FastAPI, client: AsyncClient) -> None:
    app.dependency_overrides[provide_delivery_note_parser] = lambda: _StubParser(DeliveryNoteError("IA: timeout"))
    response = await client.post("/delivery-notes/parse", json={"imageBase64": "aW1hZ2U="})
    assert response.status_code == 502
    assert response.json() == {"detail": "IA: timeout"}


async def test_parse_endpoint_without_api_key(client: AsyncClient) -> None:
    response = await client.post("/delivery-notes/parse", json={"imageBase64": "aW1hZ2U="})
    assert response.status_code == 503
    assert response.json() == {"detail": "Falta API KEY"}

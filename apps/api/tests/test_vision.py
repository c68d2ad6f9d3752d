from __future__ import annotations

import json

import httpx
import pytest

from app.services.vision import (
    MAX_RETRIES,
    MockVisionService,
    OpenAIVisionService,
    VisionError,
    normalize_suggestion,
    parse_model_content,
)


def _completion(content: str) -> dict[str, object]:
    return {"choices": [{"message": {"content": content}}]}


def test_parse_plain_and_fenced_json() -> None:
    assert parse_model_content('{"title": "Lamp"}') == {"title": "Lamp"}
    fenced = 'Here you go:\n```json\n{"title": "Chair", "priceLow": 5}\n```'
    assert parse_model_content(fenced) == {"title": "Chair", "priceLow": 5}
    with pytest.raises(VisionError):
        parse_model_content("no json here")
    with pytest.raises(VisionError):
        parse_model_content("[1, 2]")


def test_normalize_clamps_category_and_numbers() -> None:
    suggestion = normalize_suggestion(
        {"title": "Drill", "category": "Power Tools", "priceLow": "12.5", "priceHigh": None, "confidence": "high"}
    )
    assert suggestion == {
        "title": "Drill",
        "description": "",
        "category": "Misc",
        "price_low": 12.5,
        "price_high": 0.0,
        "confidence": 0.0,
    }


def test_mock_service_is_deterministic() -> None:
    service = MockVisionService()
    first = service.analyze("https://img.test/a.jpg")
    assert first == service.analyze("https://img.test/a.jpg")
    assert first["priceHigh"] == first["priceLow"] * 2


def test_openai_service_retries_rate_limits() -> None:
    calls: list[httpx.Request] = []
    sleeps: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(429, json={"error": "slow down"})
        content = json.dumps({"title": "Quilt", "category": "Clothing", "priceLow": 20, "priceHigh": 60, "confidence": 0.8})
        return httpx.Response(200, json=_completion(content))

    service = OpenAIVisionService(
        api_key="sk-test",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=sleeps.append,
    )
    result = service.analyze("https://img.test/quilt.jpg")

    assert result["title"] == "Quilt"
    assert len(calls) == 3
    assert sleeps == [0.5, 1.0]
    assert calls[0].headers["Authorization"] == "Bearer sk-test"
    body = json.loads(calls[0].content)
    assert body["messages"][0]["content"][1]["image_url"]["url"] == "https://img.test/quilt.jpg"


def test_openai_service_gives_up_after_max_retries() -> None:
    sleeps: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={})

    service = OpenAIVisionService(
        api_key="sk-test",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=sleeps.append,
    )
    with pytest.raises(VisionError) as exc:
        service.analyze("https://img.test/broken.jpg")

    assert exc.value.category == "upstream"
    assert exc.value.status_code == 500
    assert sleeps == [0.5, 1.0, 2.0, 4.0]
    assert len(sleeps) == MAX_RETRIES

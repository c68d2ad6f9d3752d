from __future__ import annotations

import hashlib
import json
import logging
import re
import time
from typing import Any, Callable, Protocol

import httpx

from ..settings import settings

logger = logging.getLogger(__name__)

CATEGORIES: tuple[str, ...] = (
    "Furniture",
    "Tools",
    "Jewelry",
    "Art",
    "Electronics",
    "Outdoor",
    "Appliances",
    "Kitchen",
    "Collectibles",
    "Books/Media",
    "Clothing",
    "Misc",
)

PROMPT = (
    "You are helping catalog estate-sale items.\n"
    "Analyze this single image and return strict JSON with keys: title, description, category, "
    "priceLow, priceHigh, confidence (0-1).\n"
    f"Category must be one of: {', '.join(CATEGORIES)}.\n"
    'Be concise. No extra fields. If uncertain, category "Misc" with lower confidence.'
)

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"
INITIAL_DELAY_SECONDS = 0.5
MAX_DELAY_SECONDS = 4.0
MAX_RETRIES = 4

_FENCED_JSON = re.compile(r"```json([\s\S]*?)```", re.IGNORECASE)


class VisionError(Exception):
    def __init__(self, category: str, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.category = category
        self.status_code = status_code


class CatalogingService(Protocol):
    def analyze(self, photo_url: str) -> dict[str, Any]: ...


def _number(value: Any) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return 0.0
    return parsed if parsed == parsed else 0.0


def normalize_suggestion(raw: dict[str, Any]) -> dict[str, Any]:
    category = raw.get("category")
    return {
        "title": str(raw.get("title") or ""),
        "description": str(raw.get("description") or ""),
        "category": category if category in CATEGORIES else "Misc",
        "price_low": _number(raw.get("priceLow", raw.get("price_low"))),
        "price_high": _number(raw.get("priceHigh", raw.get("price_high"))),
        "confidence": _number(raw.get("confidence")),
    }


def parse_model_content(content: str) -> dict[str, Any]:
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        match = _FENCED_JSON.search(content)
        if match is None:
            raise VisionError("parse", "model response is not JSON") from None
        try:
            parsed = json.loads(match.group(1))
        except json.JSONDecodeError as exc:
            raise VisionError("parse", "model response is not JSON") from exc
    if not isinstance(parsed, dict):
        raise VisionError("parse", "model response is not a JSON object")
    return parsed


class MockVisionService:
    """Deterministic suggestions derived from the photo URL."""

    def analyze(self, photo_url: str) -> dict[str, Any]:
        digest = hashlib.sha256(photo_url.encode("utf-8")).digest()
        category = CATEGORIES[digest[0] % len(CATEGORIES)]
        low = 10 + (digest[1] % 20) * 5
        return {
            "title": f"{category} item",
            "description": f"Estate {category.lower()} piece",
            "category": category,
            "priceLow": low,
            "priceHigh": low * 2,
            "confidence": 0.5,
        }


class OpenAIVisionService:
    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        timeout_seconds: float = 30.0,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._sleep = sleep

    def _request(self, photo_url: str) -> dict[str, Any]:
        body = {
            "model": self.model,
            "response_format": {"type": "json_object"},
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": PROMPT},
                        {"type": "image_url", "image_url": {"url": photo_url}},
                    ],
                }
            ],
            "temperature": 0.2,
            "max_tokens": 250,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        client = self._client or httpx.Client(timeout=self.timeout_seconds)
        try:
            response = client.post(OPENAI_CHAT_URL, json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise VisionError("network", str(exc)) from exc
        finally:
            if self._client is None:
                client.close()
        if response.status_code == 429:
            raise VisionError("rate_limit", "vision rate limited", status_code=429)
        if response.status_code >= 400:
            raise VisionError("upstream", f"vision request failed with {response.status_code}", status_code=response.status_code)
        payload = response.json()
        content = ((payload.get("choices") or [{}])[0].get("message") or {}).get("content") or "{}"
        return parse_model_content(content)

    def analyze(self, photo_url: str) -> dict[str, Any]:
        delay = INITIAL_DELAY_SECONDS
        last_error: VisionError | None = None
        for attempt in range(MAX_RETRIES + 1):
            try:
                return self._request(photo_url)
            except VisionError as exc:
                last_error = exc
                if attempt >= MAX_RETRIES:
                    break
                logger.warning("vision attempt %s failed (%s); retrying in %.1fs", attempt + 1, exc.category, delay)
                self._sleep(delay)
                delay = min(delay * 2, MAX_DELAY_SECONDS)
        raise last_error or VisionError("unknown", "vision analysis failed")


def get_vision_service() -> CatalogingService:
    if settings.vision_mode == "live":
        if not settings.openai_api_key:
            raise VisionError("config", "OPENAI_API_KEY is required for live vision mode")
        return OpenAIVisionService(
            api_key=settings.openai_api_key,
            model=settings.vision_model,
            timeout_seconds=settings.vision_timeout_seconds,
        )
    return MockVisionService()

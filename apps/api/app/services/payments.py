from __future__ import annotations

import json
from typing import Any, Protocol

import stripe

from ..settings import settings


class WebhookSignatureError(Exception):
    pass


class PaymentGateway(Protocol):
    def create_checkout_session(
        self,
        reference_id: str,
        line_items: list[dict[str, Any]],
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
    ) -> dict[str, str]: ...


class MockStripeGateway:
    # Mock-first deterministic integration for CI/tests.
    def create_checkout_session(
        self,
        reference_id: str,
        line_items: list[dict[str, Any]],
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
    ) -> dict[str, str]:
        token = reference_id.replace("-", "")[:24]
        return {
            "id": f"cs_test_{token}",
            "url": f"https://stripe.mock/checkout/{token}",
        }


class StripeCheckoutGateway:
    def __init__(self, api_key: str) -> None:
        self.api_key = api_key

    def create_checkout_session(
        self,
        reference_id: str,
        line_items: list[dict[str, Any]],
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
    ) -> dict[str, str]:
        params: dict[str, Any] = {
            "mode": "payment",
            "client_reference_id": reference_id,
            "line_items": line_items,
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        if customer_email:
            params["customer_email"] = customer_email
        session = stripe.checkout.Session.create(api_key=self.api_key, **params)
        return {"id": session.id, "url": session.url}


def get_payment_gateway() -> PaymentGateway:
    if settings.payment_mode == "live":
        return StripeCheckoutGateway(api_key=settings.stripe_secret_key or "")
    return MockStripeGateway()


def line_item(name: str, amount: float, quantity: int = 1, image: str | None = None) -> dict[str, Any]:
    product: dict[str, Any] = {"name": name}
    if image:
        product["images"] = [image]
    return {
        "price_data": {"currency": settings.currency, "product_data": product, "unit_amount": int(round(amount * 100))},
        "quantity": quantity,
    }


def construct_event(
    payload: bytes,
    signature_header: str | None,
    secret: str | None,
    tolerance_seconds: int = 300,
) -> dict[str, Any]:
    """Verify a Stripe webhook and return the event as plain JSON data."""
    if not secret:
        raise WebhookSignatureError("webhook secret not configured")
    if not signature_header:
        raise WebhookSignatureError("missing signature header")
    try:
        stripe.Webhook.construct_event(payload, signature_header, secret, tolerance=tolerance_seconds)
    except stripe.SignatureVerificationError as exc:
        raise WebhookSignatureError(f"signature verification failed: {exc}") from exc
    except ValueError as exc:
        raise WebhookSignatureError("payload is not JSON") from exc
    event = json.loads(payload)
    if not isinstance(event, dict) or not isinstance(event.get("type"), str):
        raise WebhookSignatureError("payload is not an event")
    return event

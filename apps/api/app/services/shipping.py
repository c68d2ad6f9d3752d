from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Protocol

from packages.ledger import to_cents

POUNDS_PER_ITEM = 5
BASE_RATE = 9.50
PER_POUND_RATE = 0.85
HANDLING_FEE = 5.00


class ShippingError(Exception):
    pass


@dataclass(frozen=True)
class Address:
    address: str
    city: str
    state: str
    zip_code: str

    @property
    def complete(self) -> bool:
        return all(part.strip() for part in (self.address, self.city, self.state, self.zip_code))


@dataclass(frozen=True)
class ShippingQuote:
    carrier: str
    service: str
    rate: float
    carrier_rate: float
    handling_fee: float
    estimated_days: int
    weight_lb: float

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class ShippingService(Protocol):
    def quote(self, origin: Address, destination: Address, item_count: int) -> ShippingQuote: ...


def parse_property_address(property_address: str, default_state: str = "OH") -> Address:
    """Split ``"street, city, ST 12345"`` into an origin address."""
    parts = [part.strip() for part in property_address.split(",")]
    state_zip = parts[2].split() if len(parts) > 2 else []
    return Address(
        address=parts[0] if parts and parts[0] else property_address,
        city=parts[1] if len(parts) > 1 else "",
        state=state_zip[0] if state_zip else default_state,
        zip_code=state_zip[1] if len(state_zip) > 1 else "",
    )


def package_weight(item_count: int) -> int:
    return max(item_count * POUNDS_PER_ITEM, 1)


class MockShippingService:
    """Deterministic ground quote: base rate, per-pound rate and a handling fee."""

    def quote(self, origin: Address, destination: Address, item_count: int) -> ShippingQuote:
        if not destination.complete:
            raise ShippingError("shipping address required")
        weight = package_weight(item_count)
        carrier_rate = to_cents(BASE_RATE + PER_POUND_RATE * weight)
        return ShippingQuote(
            carrier="FedEx",
            service="Ground",
            rate=to_cents(carrier_rate + HANDLING_FEE),
            carrier_rate=carrier_rate,
            handling_fee=HANDLING_FEE,
            estimated_days=5,
            weight_lb=float(weight),
        )


def get_shipping_service() -> ShippingService:
    return MockShippingService()

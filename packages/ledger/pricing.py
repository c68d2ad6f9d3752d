from __future__ import annotations

from datetime import datetime

from .money import is_finite_number, round_whole
from .sale_window import estate_phase_started
from .schema import PricedItem, SaleWindow


def resolve_price(item: PricedItem, job: SaleWindow | None = None, now: datetime | None = None) -> float:
    if estate_phase_started(job, now) and is_finite_number(item.estate_sale_price):
        return float(item.estate_sale_price)  # type: ignore[arg-type]
    if is_finite_number(item.price):
        return float(item.price)  # type: ignore[arg-type]

    low = item.price_low or 0
    high = item.price_high or 0
    if low and high:
        return float(round_whole((low + high) / 2))
    if high:
        return float(high)
    if low:
        return float(low)
    return 0.0

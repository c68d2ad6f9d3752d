from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Protocol

from pydantic import BaseModel


class SalePhase(StrEnum):
    ONLINE = "online"
    ESTATE = "estate"
    BEFORE_ONLINE = "before_online"
    BETWEEN = "between"


class Disposition(StrEnum):
    AVAILABLE = "available"
    SOLD = "sold"
    DONATED = "donated"
    HAULED = "hauled"


class SaleStatus(BaseModel):
    visible: bool
    phase: SalePhase | None = None
    message: str | None = None


class SaleWindow(Protocol):
    is_online_sale_active: bool | None
    online_sale_start_date: datetime | None
    online_sale_end_date: datetime | None
    estate_sale_date: datetime | None


class PricedItem(Protocol):
    price: float | None
    price_low: float | None
    price_high: float | None
    estate_sale_price: float | None


class DispositionTracked(Protocol):
    photo_indices: list[int] | None
    disposition: str | None


class SoldTracked(Protocol):
    sold_photo_indices: list[int] | None


@dataclass(frozen=True)
class JobWindow:
    """Snapshot of the sale-window fields of one job."""

    job_id: str
    is_online_sale_active: bool | None
    online_sale_start_date: datetime | None
    online_sale_end_date: datetime | None
    estate_sale_date: datetime | None

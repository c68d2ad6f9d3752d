from __future__ import annotations

from datetime import datetime

from .money import as_utc, utcnow
from .schema import SalePhase, SaleStatus, SaleWindow


def estate_phase_started(window: SaleWindow | None, now: datetime | None = None) -> bool:
    if window is None:
        return False
    estate = as_utc(window.estate_sale_date)
    if estate is None:
        return False
    current = as_utc(now) or utcnow()
    return current >= estate


def sale_status(window: SaleWindow, now: datetime | None = None) -> SaleStatus:
    """Decide marketplace visibility and the active pricing phase of a job."""
    current = as_utc(now) or utcnow()
    if window.is_online_sale_active is False:
        return SaleStatus(visible=False)

    estate = as_utc(window.estate_sale_date)
    start = as_utc(window.online_sale_start_date)
    end = as_utc(window.online_sale_end_date)

    if estate is not None and current >= estate:
        return SaleStatus(visible=True, phase=SalePhase.ESTATE, message="Estate sale pricing is in effect")
    if start is not None and current < start:
        return SaleStatus(
            visible=False,
            phase=SalePhase.BEFORE_ONLINE,
            message=f"Online sale opens {start.isoformat()}",
        )
    if end is not None and current > end:
        message = "Online sale has ended"
        if estate is not None:
            message = f"{message}; estate sale begins {estate.isoformat()}"
        return SaleStatus(visible=False, phase=SalePhase.BETWEEN, message=message)
    return SaleStatus(visible=True, phase=SalePhase.ONLINE)

from __future__ import annotations

from decimal import Decimal

from .money import to_cents, to_decimal

# (upper bound of the band, marginal rate); the last band is open-ended.
COMMISSION_TIERS: tuple[tuple[Decimal | None, Decimal], ...] = (
    (Decimal("7500"), Decimal("0.50")),
    (Decimal("20000"), Decimal("0.40")),
    (None, Decimal("0.30")),
)


def commission(gross_to_date: float) -> float:
    """Platform commission on the cumulative gross of a job.

    Always evaluated against the whole cumulative gross; callers overwrite
    the stored fee with the result instead of adding to it.
    """
    gross = max(Decimal("0"), to_decimal(gross_to_date))
    fee = Decimal("0")
    lower = Decimal("0")
    for upper, rate in COMMISSION_TIERS:
        ceiling = gross if upper is None else min(gross, upper)
        if ceiling > lower:
            fee += (ceiling - lower) * rate
        if upper is None or gross <= upper:
            break
        lower = upper
    return to_cents(fee)

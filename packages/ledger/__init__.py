from packages.ledger.commission import COMMISSION_TIERS, commission
from packages.ledger.disposition import (
    effective_disposition,
    find_index_conflicts,
    is_available,
    release_indices,
    union_indices,
)
from packages.ledger.money import as_utc, is_finite_number, round_whole, to_cents, utcnow
from packages.ledger.pricing import resolve_price
from packages.ledger.sale_window import estate_phase_started, sale_status
from packages.ledger.schema import (
    Disposition,
    DispositionTracked,
    JobWindow,
    PricedItem,
    SalePhase,
    SaleStatus,
    SaleWindow,
    SoldTracked,
)

__all__ = [
    "COMMISSION_TIERS",
    "Disposition",
    "DispositionTracked",
    "JobWindow",
    "PricedItem",
    "SalePhase",
    "SaleStatus",
    "SaleWindow",
    "SoldTracked",
    "as_utc",
    "commission",
    "effective_disposition",
    "estate_phase_started",
    "find_index_conflicts",
    "is_available",
    "is_finite_number",
    "release_indices",
    "resolve_price",
    "round_whole",
    "sale_status",
    "to_cents",
    "union_indices",
    "utcnow",
]

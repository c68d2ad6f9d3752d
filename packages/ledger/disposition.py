from __future__ import annotations

from collections.abc import Iterable

from .schema import Disposition, DispositionTracked, SoldTracked

STORED_DISPOSITIONS: frozenset[str] = frozenset({Disposition.DONATED.value, Disposition.HAULED.value})


def union_indices(existing: Iterable[int] | None, added: Iterable[int]) -> list[int]:
    return sorted({int(value) for value in (existing or [])} | {int(value) for value in added})


def release_indices(existing: Iterable[int] | None, removed: Iterable[int]) -> list[int]:
    drop = {int(value) for value in removed}
    return sorted({int(value) for value in (existing or [])} - drop)


def _stored(item: DispositionTracked) -> str | None:
    value = item.disposition
    if value is None:
        return None
    return str(getattr(value, "value", value))


def effective_disposition(item: DispositionTracked, sold_indices: Iterable[int] | None) -> Disposition:
    stored = _stored(item)
    if stored in STORED_DISPOSITIONS:
        return Disposition(stored)
    sold = set(sold_indices or [])
    if any(index in sold for index in (item.photo_indices or [])):
        return Disposition.SOLD
    return Disposition.AVAILABLE


def is_available(item: DispositionTracked, item_doc: SoldTracked) -> bool:
    stored = _stored(item)
    if stored not in (None, Disposition.AVAILABLE.value):
        return False
    sold = set(item_doc.sold_photo_indices or [])
    return not any(index in sold for index in (item.photo_indices or []))


def find_index_conflicts(groups: Iterable[Iterable[int]], taken: Iterable[int] = ()) -> list[int]:
    """Photo indices claimed more than once across groups or already taken."""
    seen = {int(value) for value in taken}
    conflicts: set[int] = set()
    for group in groups:
        for value in group:
            index = int(value)
            if index in seen:
                conflicts.add(index)
            seen.add(index)
    return sorted(conflicts)

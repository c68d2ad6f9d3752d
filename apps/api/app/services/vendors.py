from __future__ import annotations

import uuid
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import desc, or_, select
from sqlalchemy.orm import Session

from ..models import Vendor, VendorType


def get_vendor(db: Session, vendor_id: uuid.UUID) -> Vendor:
    vendor = db.scalar(select(Vendor).where(Vendor.id == vendor_id, Vendor.deleted_at.is_(None)))
    if vendor is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="vendor not found")
    return vendor


def list_vendors(
    db: Session,
    vendor_type: VendorType | None = None,
    active: bool | None = None,
    search: str | None = None,
) -> list[Vendor]:
    stmt = select(Vendor).where(Vendor.deleted_at.is_(None))
    if vendor_type is not None:
        stmt = stmt.where(Vendor.type == vendor_type)
    if active is not None:
        stmt = stmt.where(Vendor.active.is_(active))
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(Vendor.name.ilike(pattern), Vendor.email.ilike(pattern)))
    return list(db.scalars(stmt.order_by(desc(Vendor.created_at))).all())


def create_vendor(db: Session, payload: dict[str, Any]) -> Vendor:
    vendor = Vendor(active=True, **payload)
    db.add(vendor)
    db.flush()
    return vendor


def update_vendor(db: Session, vendor: Vendor, changes: dict[str, Any]) -> Vendor:
    for key, value in changes.items():
        setattr(vendor, key, value)
    db.flush()
    return vendor


def deactivate_vendor(db: Session, vendor: Vendor) -> Vendor:
    vendor.active = False
    db.flush()
    return vendor

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy import JSON as JsonType
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import Uuid


class Base(DeclarativeBase):
    pass


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [str(member.value) for member in enum_cls]


def _enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    return Enum(enum_cls, name=name, values_callable=_enum_values)


class Role(str, enum.Enum):
    AGENT = "agent"
    CLIENT = "client"
    SHOPPER = "shopper"
    VENDOR = "vendor"


class JobStatus(str, enum.Enum):
    AWAITING_DEPOSIT = "awaiting_deposit"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class JobStage(str, enum.Enum):
    WALKTHROUGH = "walkthrough"
    STAGING = "staging"
    ONLINE_SALE = "online_sale"
    ESTATE_SALE = "estate_sale"
    DONATIONS = "donations"
    HAULING = "hauling"
    PAYOUT_PROCESSING = "payout_processing"
    CLOSING = "closing"


class FinanceEntryKind(str, enum.Enum):
    REVENUE = "revenue"
    EXPENSE = "expense"
    REFUND = "refund"


class ItemStatus(str, enum.Enum):
    DRAFT = "draft"
    NEEDS_REVIEW = "needs_review"
    APPROVED = "approved"
    SOLD = "sold"


class ItemDisposition(str, enum.Enum):
    AVAILABLE = "available"
    SOLD = "sold"
    DONATED = "donated"
    HAULED = "hauled"


class OrderPaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELED = "canceled"
    NEEDS_REFUND = "needs_refund"


class FulfillmentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    PICKED_UP = "picked_up"


class VendorType(str, enum.Enum):
    DONATION_PARTNER = "donation_partner"
    HAULER = "hauler"
    CLEANER = "cleaner"
    OTHER = "other"


class VendorServiceType(str, enum.Enum):
    HAULING = "hauling"
    DONATION = "donation"
    BOTH = "both"


class BidStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class BidType(str, enum.Enum):
    DONATION = "donation"
    HAULING = "hauling"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CASHAPP = "cashapp"
    BANK = "bank"


class IdMixin:
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class SoftDeleteMixin:
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class User(Base, IdMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
        Index("ix_users_created_at", "created_at"),
    )

    email: Mapped[str] = mapped_column(String(320), nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[Role] = mapped_column(_enum(Role, "role_enum"), nullable=False, default=Role.CLIENT)


class Job(Base, IdMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "jobs"
    __table_args__ = (
        Index("ix_jobs_client_id", "client_id"),
        Index("ix_jobs_stage", "stage"),
        Index("ix_jobs_created_at", "created_at"),
    )

    client_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    account_manager_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    contract_signor: Mapped[str] = mapped_column(String(255), nullable=False)
    property_address: Mapped[str] = mapped_column(String(500), nullable=False)
    contact_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    contact_email: Mapped[str] = mapped_column(String(320), nullable=False)
    desired_completion_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    services_json: Mapped[dict[str, object]] = mapped_column(JsonType, nullable=False, default=dict)
    scope_notes: Mapped[str] = mapped_column(Text, nullable=False, default="")

    status: Mapped[JobStatus] = mapped_column(
        _enum(JobStatus, "job_status_enum"), nullable=False, default=JobStatus.AWAITING_DEPOSIT
    )
    stage: Mapped[JobStage] = mapped_column(_enum(JobStage, "job_stage_enum"), nullable=False, default=JobStage.WALKTHROUGH)

    service_fee: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    deposit_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    deposit_paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deposit_payment_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)

    is_online_sale_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    online_sale_start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    online_sale_end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    estate_sale_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    finance_gross: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    finance_fees: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    finance_hauling_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    finance_net: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}


class JobFinanceEntry(Base, IdMixin, TimestampMixin):
    __tablename__ = "job_finance_entries"
    __table_args__ = (
        UniqueConstraint("job_id", "seq", name="uq_job_finance_entries_job_seq"),
        UniqueConstraint("job_id", "external_ref", name="uq_job_finance_entries_job_ref"),
        Index("ix_job_finance_entries_job_id", "job_id"),
    )

    job_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("jobs.id"), nullable=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[FinanceEntryKind] = mapped_column(_enum(FinanceEntryKind, "finance_entry_kind_enum"), nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    external_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)


class JobStageNote(Base, IdMixin, TimestampMixin):
    __tablename__ = "job_stage_notes"
    __table_args__ = (Index("ix_job_stage_notes_job_id", "job_id"),)

    job_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("jobs.id"), nullable=False)
    stage: Mapped[JobStage] = mapped_column(_enum(JobStage, "job_stage_enum"), nullable=False)
    note: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)


class ItemDocument(Base, IdMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "item_documents"
    __table_args__ = (
        Index("ix_item_documents_job_id", "job_id"),
        Index("ix_item_documents_status", "status"),
        Index("ix_item_documents_created_at", "created_at"),
    )

    job_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("jobs.id"), nullable=False)
    uploader_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    uploader_role: Mapped[Role | None] = mapped_column(_enum(Role, "role_enum"), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[ItemStatus] = mapped_column(_enum(ItemStatus, "item_status_enum"), nullable=False, default=ItemStatus.DRAFT)

    photos: Mapped[list[str]] = mapped_column(JsonType, nullable=False, default=list)
    analyzed_photo_indices: Mapped[list[int]] = mapped_column(JsonType, nullable=False, default=list)
    ai_suggestions: Mapped[list[dict[str, object]]] = mapped_column(JsonType, nullable=False, default=list)
    reopen_history: Mapped[list[dict[str, object]]] = mapped_column(JsonType, nullable=False, default=list)

    sold_photo_indices: Mapped[list[int]] = mapped_column(JsonType, nullable=False, default=list)
    donated_photo_indices: Mapped[list[int]] = mapped_column(JsonType, nullable=False, default=list)
    hauled_photo_indices: Mapped[list[int]] = mapped_column(JsonType, nullable=False, default=list)
    sold_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    donated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    hauled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ApprovedItem(Base, IdMixin, TimestampMixin):
    __tablename__ = "approved_items"
    __table_args__ = (
        UniqueConstraint("item_id", "item_number", name="uq_approved_items_item_number"),
        Index("ix_approved_items_item_id", "item_id"),
    )

    item_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("item_documents.id"), nullable=False)
    item_number: Mapped[int] = mapped_column(Integer, nullable=False)
    photo_indices: Mapped[list[int]] = mapped_column(JsonType, nullable=False, default=list)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="Misc")
    price: Mapped[float | None] = mapped_column(Float, nullable=True)
    price_low: Mapped[float | None] = mapped_column(Float, nullable=True)
    price_high: Mapped[float | None] = mapped_column(Float, nullable=True)
    estate_sale_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    weight_lb: Mapped[float | None] = mapped_column(Float, nullable=True)
    disposition: Mapped[ItemDisposition] = mapped_column(
        _enum(ItemDisposition, "item_disposition_enum"), nullable=False, default=ItemDisposition.AVAILABLE
    )
    disposition_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    disposition_by: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)


class Cart(Base, IdMixin, TimestampMixin):
    __tablename__ = "carts"
    __table_args__ = (UniqueConstraint("user_id", name="uq_carts_user_id"),)

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    items_json: Mapped[list[dict[str, object]]] = mapped_column(JsonType, nullable=False, default=list)


class Order(Base, IdMixin, TimestampMixin):
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("stripe_session_id", name="uq_orders_stripe_session_id"),
        Index("ix_orders_user_id", "user_id"),
        Index("ix_orders_job_id", "job_id"),
        Index("ix_orders_payment_status", "payment_status"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    job_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("jobs.id"), nullable=False)
    items_json: Mapped[list[dict[str, object]]] = mapped_column(JsonType, nullable=False, default=list)
    currency: Mapped[str] = mapped_column(String(10), nullable=False, default="usd")
    subtotal: Mapped[float] = mapped_column(Float, nullable=False)
    delivery_fee: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    tax_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False)
    payment_status: Mapped[OrderPaymentStatus] = mapped_column(
        _enum(OrderPaymentStatus, "order_payment_status_enum"), nullable=False, default=OrderPaymentStatus.PENDING
    )
    payment_provider: Mapped[str] = mapped_column(String(50), nullable=False, default="stripe")
    stripe_session_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    delivery_details_json: Mapped[dict[str, object]] = mapped_column(JsonType, nullable=False, default=dict)
    shipping_details_json: Mapped[dict[str, object] | None] = mapped_column(JsonType, nullable=True)
    fulfillment_status: Mapped[FulfillmentStatus] = mapped_column(
        _enum(FulfillmentStatus, "fulfillment_status_enum"), nullable=False, default=FulfillmentStatus.PENDING
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Vendor(Base, IdMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "vendors"
    __table_args__ = (
        Index("ix_vendors_service_type", "service_type"),
        Index("ix_vendors_created_at", "created_at"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    company_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    type: Mapped[VendorType] = mapped_column(_enum(VendorType, "vendor_type_enum"), nullable=False, default=VendorType.DONATION_PARTNER)
    service_type: Mapped[VendorServiceType] = mapped_column(
        _enum(VendorServiceType, "vendor_service_type_enum"), nullable=False, default=VendorServiceType.BOTH
    )
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    service_area: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Bid(Base, IdMixin, TimestampMixin):
    __tablename__ = "bids"
    __table_args__ = (
        Index("ix_bids_job_id", "job_id"),
        Index("ix_bids_vendor_id", "vendor_id"),
        Index("ix_bids_status", "status"),
    )

    job_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("jobs.id"), nullable=False)
    vendor_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("vendors.id"), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    timeline_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[BidStatus] = mapped_column(_enum(BidStatus, "bid_status_enum"), nullable=False, default=BidStatus.SUBMITTED)
    # Null only on legacy rows created before work tracks existed.
    bid_type: Mapped[BidType | None] = mapped_column(_enum(BidType, "bid_type_enum"), nullable=True)
    payment_method: Mapped[PaymentMethod] = mapped_column(_enum(PaymentMethod, "payment_method_enum"), nullable=False)
    cash_app_handle: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bank_details_json: Mapped[dict[str, object] | None] = mapped_column(JsonType, nullable=True)
    work_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    work_completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    receipt_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)


class Event(Base, IdMixin, TimestampMixin):
    __tablename__ = "events"
    __table_args__ = (
        Index("ix_events_type", "type"),
        Index("ix_events_created_at", "created_at"),
    )

    source: Mapped[str] = mapped_column(String(100), nullable=False)
    channel: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    job_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    actor_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payload_json: Mapped[dict[str, object]] = mapped_column(JsonType, nullable=False, default=dict)


class AuditLog(Base, IdMixin, TimestampMixin):
    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_logs_created_at", "created_at"),)

    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    target_type: Mapped[str] = mapped_column(String(100), nullable=False)
    target_id: Mapped[str] = mapped_column(String(255), nullable=False)
    metadata_json: Mapped[dict[str, object]] = mapped_column(JsonType, nullable=False, default=dict)

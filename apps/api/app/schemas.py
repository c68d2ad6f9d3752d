from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from packages.ledger import Disposition, SalePhase

from .models import (
    BidStatus,
    BidType,
    FinanceEntryKind,
    FulfillmentStatus,
    ItemStatus,
    JobStage,
    JobStatus,
    OrderPaymentStatus,
    PaymentMethod,
    Role,
    VendorServiceType,
    VendorType,
)


class JobCreateRequest(BaseModel):
    client_id: uuid.UUID | None = None
    contract_signor: str = Field(min_length=1, max_length=255)
    property_address: str = Field(min_length=1, max_length=500)
    contact_phone: str = Field(min_length=1, max_length=50)
    contact_email: str = Field(min_length=3, max_length=320)
    desired_completion_date: datetime | None = None
    services_json: dict[str, object] = Field(default_factory=dict)
    scope_notes: str = Field(default="", max_length=5000)
    service_fee: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    deposit_amount: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    is_online_sale_active: bool = True
    online_sale_start_date: datetime | None = None
    online_sale_end_date: datetime | None = None
    estate_sale_date: datetime | None = None


class JobSettingsUpdateRequest(BaseModel):
    status: JobStatus | None = None
    service_fee: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    deposit_amount: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    is_online_sale_active: bool | None = None
    online_sale_start_date: datetime | None = None
    online_sale_end_date: datetime | None = None
    estate_sale_date: datetime | None = None

    @model_validator(mode="after")
    def validate_required_fields_not_null(self) -> "JobSettingsUpdateRequest":
        # Sale dates may be cleared with null; these columns may not.
        nulled = [
            name
            for name in ("status", "service_fee", "deposit_amount", "is_online_sale_active")
            if name in self.model_fields_set and getattr(self, name) is None
        ]
        if nulled:
            raise ValueError(f"fields cannot be null: {', '.join(nulled)}")
        return self


class JobStageUpdateRequest(BaseModel):
    stage: JobStage


class StageNoteRequest(BaseModel):
    stage: JobStage
    note: str = Field(min_length=1, max_length=5000)


class StageNoteResponse(BaseModel):
    id: uuid.UUID
    job_id: uuid.UUID
    stage: JobStage
    note: str
    author_id: uuid.UUID | None
    created_at: datetime


class JobResponse(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    account_manager_id: uuid.UUID | None
    contract_signor: str
    property_address: str
    contact_phone: str
    contact_email: str
    desired_completion_date: datetime | None
    services_json: dict[str, object]
    scope_notes: str
    status: JobStatus
    stage: JobStage
    service_fee: float
    deposit_amount: float
    deposit_paid_at: datetime | None
    is_online_sale_active: bool
    online_sale_start_date: datetime | None
    online_sale_end_date: datetime | None
    estate_sale_date: datetime | None
    created_at: datetime
    updated_at: datetime


class JobListResponse(BaseModel):
    items: list[JobResponse]
    next_cursor: uuid.UUID | None = None


class DailySaleRequest(BaseModel):
    amount: float = Field(ge=0, allow_inf_nan=False)
    label: str = Field(default="Estate sale", min_length=1, max_length=255)
    external_ref: str | None = Field(default=None, max_length=255)


class FinanceEntryResponse(BaseModel):
    seq: int
    kind: FinanceEntryKind
    label: str
    amount: float
    at: datetime
    external_ref: str | None


class FinanceSummaryResponse(BaseModel):
    job_id: uuid.UUID
    gross: float
    fees: float
    hauling_cost: float
    service_fee: float
    deposit_paid: float
    net: float
    daily: list[FinanceEntryResponse]


class CheckoutSessionResponse(BaseModel):
    session_id: str
    url: str
    order_id: uuid.UUID | None = None


class ItemDocumentCreateRequest(BaseModel):
    title: str = Field(default="", max_length=255)
    description: str = Field(default="", max_length=5000)


class PhotoAttachRequest(BaseModel):
    photo_urls: list[str] = Field(min_length=1, max_length=50)


class ApprovalGroup(BaseModel):
    photo_indices: list[int] = Field(min_length=1)
    title: str = Field(default="", max_length=255)
    description: str = Field(default="", max_length=5000)
    category: str = Field(default="Misc", max_length=100)
    price: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    price_low: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    price_high: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    estate_sale_price: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    weight_lb: float | None = Field(default=None, ge=0, allow_inf_nan=False)


class ApproveRequest(BaseModel):
    items: list[ApprovalGroup] = Field(default_factory=list, max_length=100)


class ApprovedItemUpdateRequest(BaseModel):
    title: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    category: str | None = Field(default=None, max_length=100)
    price: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    price_low: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    price_high: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    estate_sale_price: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    weight_lb: float | None = Field(default=None, ge=0, allow_inf_nan=False)


class ReopenRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


class DispositionRequest(BaseModel):
    item_numbers: list[int] = Field(min_length=1)


class ApprovedItemResponse(BaseModel):
    item_number: int
    composite_id: str
    photo_indices: list[int]
    title: str
    description: str
    category: str
    price: float | None
    price_low: float | None
    price_high: float | None
    estate_sale_price: float | None
    weight_lb: float | None
    disposition: Disposition
    disposition_at: datetime | None


class ItemDocumentResponse(BaseModel):
    id: uuid.UUID
    job_id: uuid.UUID
    uploader_id: uuid.UUID | None
    uploader_role: Role | None
    title: str
    description: str
    status: ItemStatus
    photos: list[str]
    analyzed_photo_indices: list[int]
    ai_suggestions: list[dict[str, object]]
    reopen_history: list[dict[str, object]]
    sold_photo_indices: list[int]
    donated_photo_indices: list[int]
    hauled_photo_indices: list[int]
    approved_items: list[ApprovedItemResponse]
    sold_at: datetime | None
    created_at: datetime


class AnalysisResponse(BaseModel):
    item_id: uuid.UUID
    analyzed: int
    suggestions: list[dict[str, object]]


class DispositionResultResponse(BaseModel):
    item_id: uuid.UUID
    disposition: Disposition
    updated: int
    updated_item_numbers: list[int]
    skipped: list[int]
    unmatched: list[int]


class ItemSummaryCounts(BaseModel):
    total: int
    available: int
    sold: int
    donated: int
    hauled: int


class ItemSummaryRow(BaseModel):
    item_doc_id: uuid.UUID
    item_number: int
    composite_id: str
    title: str
    photo_indices: list[int]
    disposition: Disposition
    disposition_at: datetime | None


class ItemSummaryResponse(BaseModel):
    job_id: uuid.UUID
    counts: ItemSummaryCounts
    items: list[ItemSummaryRow]


class ListingResponse(BaseModel):
    id: str
    item_id: uuid.UUID
    item_number: int
    job_id: uuid.UUID
    title: str
    description: str
    category: str
    price: float
    price_low: float | None
    price_high: float | None
    photo: str
    photos: list[str]
    phase: SalePhase | None
    created_at: datetime | None


class ListingPageResponse(BaseModel):
    page: int
    limit: int
    total: int
    count: int
    items: list[ListingResponse]
    query: str | None = None


class CartAddRequest(BaseModel):
    listing_id: str = Field(min_length=3, max_length=100)


class CartItemResponse(BaseModel):
    listing: ListingResponse
    added_at: str | None = None


class CartResponse(BaseModel):
    items: list[CartItemResponse]
    total: float
    count: int
    removed: list[str] = Field(default_factory=list)


class CartMutationResponse(BaseModel):
    listing_id: str
    count: int


class ShippingAddressPayload(BaseModel):
    address: str = Field(min_length=1, max_length=255)
    city: str = Field(min_length=1, max_length=100)
    state: str = Field(min_length=2, max_length=50)
    zip_code: str = Field(min_length=3, max_length=20)


class CheckoutRequest(BaseModel):
    delivery_method: Literal["pickup", "shipping"] = "pickup"
    shipping_address: ShippingAddressPayload | None = None
    customer_email: str | None = Field(default=None, max_length=320)


class ShippingQuoteResponse(BaseModel):
    carrier: str
    service: str
    rate: float
    carrier_rate: float
    handling_fee: float
    estimated_days: int
    weight_lb: float


class CheckoutTotalsResponse(BaseModel):
    subtotal: float
    delivery_fee: float
    tax_rate: float
    tax_amount: float
    total: float
    delivery_method: str
    item_count: int
    shipping_quote: ShippingQuoteResponse | None = None
    pickup_address: str | None = None


class OrderResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    job_id: uuid.UUID
    items: list[dict[str, object]]
    currency: str
    subtotal: float
    delivery_fee: float
    tax_amount: float
    total_amount: float
    payment_status: OrderPaymentStatus
    fulfillment_status: FulfillmentStatus
    stripe_session_id: str | None
    customer_email: str | None
    delivery_details_json: dict[str, object]
    shipping_details_json: dict[str, object] | None
    paid_at: datetime | None
    created_at: datetime


class DeliveryDetailsRequest(BaseModel):
    type: Literal["pickup", "delivery", "shipping"]
    scheduled_at: datetime | None = None
    address: str | None = Field(default=None, max_length=500)
    instructions: str | None = Field(default=None, max_length=1000)


class FulfillmentUpdateRequest(BaseModel):
    fulfillment_status: FulfillmentStatus


class VendorCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    company_name: str | None = Field(default=None, max_length=255)
    type: VendorType = VendorType.DONATION_PARTNER
    service_type: VendorServiceType = VendorServiceType.DONATION
    email: str | None = Field(default=None, max_length=320)
    phone: str | None = Field(default=None, max_length=50)
    service_area: str | None = Field(default=None, max_length=255)
    notes: str | None = Field(default=None, max_length=2000)


class VendorUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    company_name: str | None = Field(default=None, max_length=255)
    type: VendorType | None = None
    service_type: VendorServiceType | None = None
    email: str | None = Field(default=None, max_length=320)
    phone: str | None = Field(default=None, max_length=50)
    service_area: str | None = Field(default=None, max_length=255)
    notes: str | None = Field(default=None, max_length=2000)
    active: bool | None = None


class VendorResponse(BaseModel):
    id: uuid.UUID
    name: str
    company_name: str | None
    type: VendorType
    service_type: VendorServiceType
    email: str | None
    phone: str | None
    service_area: str | None
    notes: str | None
    active: bool
    created_at: datetime


class BidCreateRequest(BaseModel):
    job_id: uuid.UUID
    amount: float = Field(gt=0, allow_inf_nan=False)
    timeline_days: int = Field(default=0, ge=0, le=365)
    payment_method: PaymentMethod
    cash_app_handle: str | None = Field(default=None, max_length=100)
    bank_details: dict[str, object] | None = None
    notes: str | None = Field(default=None, max_length=2000)


class BidResponse(BaseModel):
    id: uuid.UUID
    job_id: uuid.UUID
    vendor_id: uuid.UUID
    amount: float
    timeline_days: int
    notes: str | None
    status: BidStatus
    bid_type: BidType | None
    payment_method: PaymentMethod
    work_completed: bool
    work_completed_at: datetime | None
    is_paid: bool
    paid_at: datetime | None
    paid_amount: float | None
    receipt_url: str | None
    created_at: datetime


class JobBidsResponse(BaseModel):
    job_id: uuid.UUID
    donation: list[BidResponse]
    hauling: list[BidResponse]
    legacy: list[BidResponse]


class VendorPaymentRequest(BaseModel):
    paid_amount: float | None = Field(default=None, gt=0, allow_inf_nan=False)


class ReceiptRequest(BaseModel):
    receipt_url: str = Field(min_length=1, max_length=1000)


class OpportunityResponse(BaseModel):
    job_id: uuid.UUID
    property_address: str
    contract_signor: str
    stage: JobStage
    status: JobStatus
    bid_type: BidType
    available_items_count: int
    vendor_bid_status: BidStatus | None
    created_at: datetime


class WebhookAckResponse(BaseModel):
    received: bool
    outcome: str

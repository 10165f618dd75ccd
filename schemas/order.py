from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from models.enums import PaymentRail


class LineItemIn(BaseModel):
    name: str
    quantity: int = Field(default=1, ge=1)
    unit_amount: float = Field(ge=0)
    image_ref: Optional[str] = None
    sku: Optional[str] = None


class CustomerIn(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    phone: str = Field(min_length=1)
    address: Optional[str] = None


class BankDetailsIn(BaseModel):
    account_name: str = Field(min_length=1)
    account_number: str = Field(min_length=1)
    bank_name: str = Field(min_length=1)
    sort_code: Optional[str] = None


class BankTransferOrderCreate(BaseModel):
    items: List[LineItemIn]
    customer: CustomerIn
    bank_details: BankDetailsIn
    user_id: Optional[str] = None


class TotalsRequest(BaseModel):
    items: List[LineItemIn] = []
    precomputed_subtotal: Optional[float] = None


class TotalsOut(BaseModel):
    subtotal: float
    shipping: float
    tax: float
    grand_total: float
    is_free_shipping: bool
    shipping_message: str

    class Config:
        from_attributes = True


class LineItemOut(BaseModel):
    name: str
    quantity: int
    unit_amount: float
    image_ref: Optional[str] = None

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    """Normalized order shape shared by both payment rails."""

    internal_id: int
    order_id: str
    rail: PaymentRail
    status: str
    amount: float
    items: List[LineItemOut] = []
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    user_id: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    # Bank transfer only
    transaction_reference: Optional[str] = None
    reference_submitted_at: Optional[datetime] = None
    payment_verified: bool = False
    verification_method: Optional[str] = None
    bank_details: Optional[dict] = None
    payment_submitted_at: Optional[datetime] = None
    payment_verified_at: Optional[datetime] = None

    # Instant gateway only
    transaction_id: Optional[str] = None
    gateway_reference: Optional[str] = None

    tracking_number: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None


class ActivityOut(BaseModel):
    type: str
    message: str
    date: Optional[datetime] = None
    completed: bool

    class Config:
        from_attributes = True


class OrderTrackingOut(BaseModel):
    order: OrderOut
    stage: int
    display_status: str
    activities: List[ActivityOut]


class BankTransferOrderOut(BaseModel):
    order_id: str
    status: str
    totals: TotalsOut
    bank_details: dict
    customer_email: str


class StatusUpdate(BaseModel):
    status: str
    tracking_number: Optional[str] = None

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from schemas.order import CustomerIn, LineItemIn


class ReferenceSubmission(BaseModel):
    order_id: str
    transaction_reference: str
    customer_submitted_amount: Optional[float] = None
    customer_notes: Optional[str] = None


class ReferenceSubmissionOut(BaseModel):
    order_id: str
    status: str
    outcome: str
    payment_verified: bool
    confidence: int
    message: str


class ReferenceStatusOut(BaseModel):
    order_id: str
    status: str
    transaction_reference: Optional[str] = None
    reference_submitted_at: Optional[datetime] = None
    payment_verified: bool
    verified_at: Optional[datetime] = None
    amount: float
    can_submit_reference: bool


class GatewayVerifyRequest(BaseModel):
    transaction_id: str
    items: List[LineItemIn] = Field(min_length=1)
    customer: CustomerIn
    user_id: Optional[str] = None


class AdminVerifyRequest(BaseModel):
    order_id: str
    action: str
    notes: Optional[str] = None
    verified_by: Optional[str] = None


class AdminVerifyOut(BaseModel):
    order_id: str
    status: str
    payment_verified: bool
    verification_method: Optional[str] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PendingOrderOut(BaseModel):
    order_id: str
    customer_name: str
    customer_email: str
    amount: float
    status: str
    transaction_reference: Optional[str] = None
    reference_submitted_at: Optional[datetime] = None
    customer_submitted_amount: Optional[float] = None
    customer_notes: Optional[str] = None
    auto_verification_confidence: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PendingOrdersOut(BaseModel):
    orders: List[PendingOrderOut]
    count: int
    stats: Dict[str, int]
    status: str


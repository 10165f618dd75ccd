from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, DateTime, Numeric, JSON, Boolean, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base


class BankTransferOrder(Base):
    """Order awaiting (or settled by) a manual bank transfer."""

    __tablename__ = "bank_transfer_orders"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    order_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    customer_name: Mapped[str] = mapped_column(String(200))
    customer_email: Mapped[str] = mapped_column(String(255), index=True)
    customer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    customer_address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="NGN")
    status: Mapped[str] = mapped_column(String(30), default="pending_payment", index=True)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    items: Mapped[list] = mapped_column(JSON, default=list)
    bank_details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Customer submission; the reference is write-once
    transaction_reference: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    reference_submitted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    customer_submitted_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    customer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Verification outcome
    payment_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    verification_method: Mapped[str | None] = mapped_column(String(30), nullable=True, index=True)
    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    auto_verification_confidence: Mapped[int | None] = mapped_column(Integer, nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    verified_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Fulfillment
    tracking_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

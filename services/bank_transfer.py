"""
Bank transfer payments: order creation, reference submission and the
verification writes shared by admins, the submission-time check and the
reconciliation job.
"""
import logging
import random
import string
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from core.exceptions import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from models.bank_transfer_order import BankTransferOrder
from models.enums import PaymentRail, VerificationMethod
from services import notifications
from services.confidence import as_naive_utc, score_reference
from services.order_status import ensure_transition
from services.totals import LineItem, compute_totals, to_decimal, totals_for_documents

logger = logging.getLogger(__name__)

AWAITING_PAYMENT = "pending_payment"
SUBMITTED = "payment_submitted"
VERIFIED = "confirmed"
REJECTED = "rejected"

MIN_REFERENCE_LENGTH = 5

# Outcomes reported to a customer after submitting a reference
OUTCOME_VERIFIED = "verified"
OUTCOME_PENDING = "pending_verification"


def generate_order_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"BT-{int(time.time() * 1000)}-{suffix}"


def create_bank_transfer_order(db: Session, items: List[Mapping[str, Any]], customer: Mapping[str, Any],
                               bank_details: Mapping[str, Any], user_id: Optional[str] = None) -> tuple:
    """Persist a new bank transfer order and return ``(order, totals)``."""
    if not items:
        raise ValidationError("Cart items are required")
    if not all(customer.get(k) for k in ("name", "email", "phone")):
        raise ValidationError("Customer information is required (name, email, phone)")
    if not all(bank_details.get(k) for k in ("account_name", "account_number", "bank_name")):
        raise ValidationError("Bank details are required")

    line_items = [LineItem.from_mapping(i) for i in items]
    totals = compute_totals(line_items)
    if totals.grand_total <= 0:
        raise ValidationError(f"Invalid total amount calculated: {totals.grand_total}")

    order = BankTransferOrder(
        order_id=generate_order_id(),
        user_id=user_id,
        customer_name=customer["name"],
        customer_email=customer["email"],
        customer_phone=customer.get("phone"),
        customer_address=customer.get("address"),
        status=AWAITING_PAYMENT,
        subtotal=totals.subtotal,
        amount=totals.grand_total,
        items=[i.as_document() for i in line_items],
        bank_details=dict(bank_details),
        payment_verified=False,
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    logger.info("Bank transfer order %s created for %s", order.order_id, totals.grand_total)

    notifications.notify_order_received(order)
    return order, totals


def get_bank_transfer_order(db: Session, order_id: str) -> BankTransferOrder:
    order = db.query(BankTransferOrder).filter(BankTransferOrder.order_id == order_id).first()
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def expected_total(order: BankTransferOrder) -> Decimal:
    """Grand total the customer should have transferred."""
    if order.items:
        return totals_for_documents(order.items, order.subtotal).grand_total
    return to_decimal(order.amount or 0)


def mark_verified(db: Session, order: BankTransferOrder, method: VerificationMethod,
                  confidence: Optional[int] = None, notes: Optional[str] = None,
                  verified_by: Optional[str] = None, now: Optional[datetime] = None) -> bool:
    """Record a verified payment if the order is still awaiting verification.

    The write only applies while the order is submitted and unverified, so a
    second verifier racing the first changes nothing and gets ``False``.
    """
    ensure_transition(PaymentRail.BANK_TRANSFER, SUBMITTED, VERIFIED)
    now = now or datetime.utcnow()
    values: Dict[str, Any] = {
        "payment_verified": True,
        "status": VERIFIED,
        "verification_method": method.value,
        "verified_at": now,
        "verification_notes": notes,
        "verified_by": verified_by or method.value,
        "updated_at": now,
    }
    if confidence is not None:
        values["auto_verification_confidence"] = confidence

    result = db.execute(
        update(BankTransferOrder)
        .where(
            BankTransferOrder.id == order.id,
            BankTransferOrder.payment_verified.is_(False),
            BankTransferOrder.status == SUBMITTED,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(order)
    return result.rowcount == 1


def record_confidence(db: Session, order: BankTransferOrder, confidence: int) -> None:
    db.execute(
        update(BankTransferOrder)
        .where(BankTransferOrder.id == order.id, BankTransferOrder.payment_verified.is_(False))
        .values(auto_verification_confidence=confidence)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(order)


def verified_summary(order: BankTransferOrder, confidence: int, reason: str, delayed: bool) -> dict:
    label = "Delayed auto-verification" if delayed else "Immediate auto-verification"
    return {
        "order_id": order.order_id,
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "amount": str(order.amount),
        "transaction_reference": order.transaction_reference,
        "verification_method": f"{label} ({confidence}% confidence)",
        "confidence": confidence,
        "reason": reason,
        "delayed": delayed,
    }


@dataclass
class SubmissionResult:
    order: BankTransferOrder
    outcome: str
    confidence: int
    expected_total: Decimal
    message: str


def submit_reference(db: Session, order_id: str, reference: str,
                     customer_submitted_amount: Any = None, notes: Optional[str] = None,
                     now: Optional[datetime] = None) -> SubmissionResult:
    """Record a customer's transaction reference and try to verify it at once.

    Input problems raise. Once the reference is recorded the customer always
    gets ``verified`` or ``pending_verification``; a failure while scoring or
    verifying leaves the order for manual review.
    """
    cleaned = (reference or "").strip()
    if len(cleaned) < MIN_REFERENCE_LENGTH:
        raise ValidationError(
            "Transaction reference seems too short. Please provide a valid reference number."
        )

    order = get_bank_transfer_order(db, order_id)
    if order.status != AWAITING_PAYMENT:
        if order.transaction_reference:
            raise InvalidTransitionError(
                "A transaction reference has already been submitted for this order."
            )
        raise InvalidTransitionError(
            f"Order cannot accept reference submission. Current status: {order.status}"
        )

    duplicate = (
        db.query(BankTransferOrder)
        .filter(BankTransferOrder.transaction_reference == cleaned, BankTransferOrder.id != order.id)
        .first()
    )
    if duplicate is not None:
        raise ValidationError("This transaction reference has already been used for another order.")

    ensure_transition(PaymentRail.BANK_TRANSFER, order.status, SUBMITTED)
    now = now or datetime.utcnow()
    stamp = as_naive_utc(now)
    order.transaction_reference = cleaned
    order.status = SUBMITTED
    order.reference_submitted_at = stamp
    order.customer_submitted_amount = (
        to_decimal(customer_submitted_amount) if customer_submitted_amount is not None else order.amount
    )
    order.customer_notes = notes
    order.verification_method = VerificationMethod.PENDING_MANUAL.value
    order.updated_at = stamp
    db.commit()
    db.refresh(order)
    logger.info("Reference submitted for order %s", order.order_id)

    expected = expected_total(order)
    confidence = 0
    try:
        result = score_reference(cleaned, expected, 0, delayed=False, now=now)
        confidence = result.score
        if result.can_auto_verify and mark_verified(
            db, order, VerificationMethod.AUTO_IMMEDIATE, confidence=result.score,
            notes=f"Immediate auto-verification: {result.reason}", now=stamp,
        ):
            logger.info("Order %s auto-verified at submission (%d%%)", order.order_id, result.score)
            notifications.notify_customer_verified(order)
            notifications.notify_admin_auto_verified(
                verified_summary(order, result.score, result.reason, delayed=False)
            )
            return SubmissionResult(
                order, OUTCOME_VERIFIED, confidence, expected,
                "Payment verified! Your order is confirmed.",
            )
        record_confidence(db, order, confidence)
    except Exception:
        db.rollback()
        logger.exception("Immediate verification failed for order %s; leaving for manual review", order_id)

    notifications.notify_admin_reference_submitted(
        order, expected, order.customer_submitted_amount or expected, confidence,
    )
    return SubmissionResult(
        order, OUTCOME_PENDING, confidence, expected,
        "Transaction reference submitted successfully! Your payment is now being verified.",
    )


def reference_status(db: Session, order_id: str) -> dict:
    order = get_bank_transfer_order(db, order_id)
    return {
        "order_id": order.order_id,
        "status": order.status,
        "transaction_reference": order.transaction_reference,
        "reference_submitted_at": order.reference_submitted_at,
        "payment_verified": bool(order.payment_verified),
        "verified_at": order.verified_at,
        "amount": order.amount,
        "can_submit_reference": order.status == AWAITING_PAYMENT,
    }


def admin_verify(db: Session, order_id: str, action: str, notes: Optional[str] = None,
                 verified_by: Optional[str] = None) -> BankTransferOrder:
    """Approve or reject a submitted payment on behalf of an admin."""
    if action not in ("approve", "reject"):
        raise ValidationError('Action must be either "approve" or "reject"')

    order = get_bank_transfer_order(db, order_id)
    if order.payment_verified:
        raise InvalidTransitionError("Order has already been verified")
    if not order.transaction_reference:
        raise InvalidTransitionError("Customer has not submitted transaction reference yet")

    if action == "approve":
        ensure_transition(PaymentRail.BANK_TRANSFER, order.status, VERIFIED)
        if not mark_verified(db, order, VerificationMethod.MANUAL_ADMIN, notes=notes,
                             verified_by=verified_by or "admin"):
            raise ConflictError(f"Order {order_id} was resolved by another verifier")
        logger.info("Payment approved for order %s by %s", order_id, order.verified_by)
        notifications.notify_customer_verified(order)
        return order

    ensure_transition(PaymentRail.BANK_TRANSFER, order.status, REJECTED)
    now = datetime.utcnow()
    result = db.execute(
        update(BankTransferOrder)
        .where(
            BankTransferOrder.id == order.id,
            BankTransferOrder.payment_verified.is_(False),
            BankTransferOrder.status == SUBMITTED,
        )
        .values(
            status=REJECTED,
            verification_method=VerificationMethod.MANUAL_ADMIN.value,
            verification_notes=notes,
            verified_at=now,
            verified_by=verified_by or "admin",
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(order)
    if result.rowcount != 1:
        raise ConflictError(f"Order {order_id} was resolved by another verifier")
    logger.info("Payment rejected for order %s", order_id)
    notifications.notify_customer_rejected(order, notes or "Payment could not be verified")
    return order


def list_pending(db: Session, status: str = SUBMITTED, now: Optional[datetime] = None) -> dict:
    """Orders waiting in the admin queue plus dashboard counters."""
    now = as_naive_utc(now) if now else datetime.utcnow()
    orders = db.query(BankTransferOrder).filter(BankTransferOrder.status == status).all()
    orders.sort(key=lambda o: o.reference_submitted_at or datetime.min, reverse=True)

    stats = {"urgent": 0, "recent": 0, "high_value": 0, "low_confidence": 0}
    for order in orders:
        if order.reference_submitted_at:
            hours_ago = (now - order.reference_submitted_at).total_seconds() / 3600
            if hours_ago > 4:
                stats["urgent"] += 1
            if hours_ago < 2:
                stats["recent"] += 1
        if order.amount is not None and to_decimal(order.amount) > 500000:
            stats["high_value"] += 1
        if order.auto_verification_confidence is not None and order.auto_verification_confidence < 60:
            stats["low_confidence"] += 1

    return {"orders": orders, "count": len(orders), "stats": stats, "status": status}

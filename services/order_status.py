"""
Order status state machines for both payment rails.

Stages are small integers used by progress indicators. Each rail has its own
forward-only progression; bank transfers additionally have absorbing failure
states that nothing may leave.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from core.exceptions import InvalidTransitionError
from models.enums import PaymentRail
from schemas.order import OrderOut

GATEWAY_STAGES: Dict[str, int] = {
    "pending": 0,
    "confirmed": 1,
    "completed": 1,
    "processing": 2,
    "shipped": 3,
    "delivered": 4,
}

BANK_TRANSFER_STAGES: Dict[str, int] = {
    "pending_payment": 0,
    "payment_submitted": 1,
    "payment_verified": 2,
    "confirmed": 2,
    "processing": 3,
    "shipped": 4,
    "delivered": 5,
}

BANK_TRANSFER_FAILURES = frozenset({"rejected", "payment_failed"})

# Unknown statuses: gateway orders are treated as confirmed, bank transfers as
# awaiting payment. Kept as-is; see DESIGN.md.
DEFAULT_STAGE = {
    PaymentRail.INSTANT_GATEWAY: 1,
    PaymentRail.BANK_TRANSFER: 0,
}

# Bank transfer stages up to verification may not be skipped
BANK_TRANSFER_VERIFIED_STAGE = 2

BANK_TRANSFER_DISPLAY = {
    "pending_payment": "PENDING PAYMENT",
    "payment_submitted": "PAYMENT REVIEW",
    "payment_verified": "CONFIRMED",
    "confirmed": "CONFIRMED",
    "payment_failed": "PAYMENT FAILED",
    "rejected": "PAYMENT FAILED",
    "processing": "PROCESSING",
    "shipped": "SHIPPED",
    "delivered": "DELIVERED",
    "completed": "COMPLETED",
}


def _stage_table(rail: PaymentRail) -> Dict[str, int]:
    return GATEWAY_STAGES if rail == PaymentRail.INSTANT_GATEWAY else BANK_TRANSFER_STAGES


def order_stage(rail: PaymentRail, status: Optional[str]) -> int:
    key = (status or "").lower()
    return _stage_table(rail).get(key, DEFAULT_STAGE[rail])


def display_status(rail: PaymentRail, status: Optional[str]) -> str:
    key = (status or "").lower()
    if rail == PaymentRail.BANK_TRANSFER:
        return BANK_TRANSFER_DISPLAY.get(key, key.upper())
    return key.upper()


def is_failed(rail: PaymentRail, status: Optional[str]) -> bool:
    return rail == PaymentRail.BANK_TRANSFER and (status or "").lower() in BANK_TRANSFER_FAILURES


def can_transition(rail: PaymentRail, current: Optional[str], target: str) -> bool:
    current_key = (current or "").lower()
    target_key = (target or "").lower()

    if is_failed(rail, current_key):
        return False
    if current_key == target_key:
        return True

    if is_failed(rail, target_key):
        return current_key == "payment_submitted"

    table = _stage_table(rail)
    if target_key not in table:
        return False

    current_stage = order_stage(rail, current_key)
    target_stage = table[target_key]
    if target_stage <= current_stage:
        return False

    if rail == PaymentRail.BANK_TRANSFER and target_stage <= BANK_TRANSFER_VERIFIED_STAGE:
        return target_stage == current_stage + 1
    if rail == PaymentRail.BANK_TRANSFER:
        return current_stage >= BANK_TRANSFER_VERIFIED_STAGE
    return True


def ensure_transition(rail: PaymentRail, current: Optional[str], target: str) -> None:
    if not can_transition(rail, current, target):
        raise InvalidTransitionError(
            f"Cannot move {rail.value} order from '{current}' to '{target}'"
        )


@dataclass(frozen=True)
class Activity:
    type: str
    message: str
    date: Optional[datetime]
    completed: bool


def order_activities(order: OrderOut) -> List[Activity]:
    """Project an order record onto its activity timeline, most recent first."""
    status = (order.status or "").lower()
    activities: List[Activity] = []

    if order.rail == PaymentRail.INSTANT_GATEWAY:
        activities.append(Activity(
            "confirmed", f"Order {order.order_id} placed and paid successfully", order.created_at, True,
        ))
        if status != "pending":
            activities.append(Activity(
                "verified", "Payment confirmed automatically via the payment gateway", order.created_at, True,
            ))
    else:
        activities.append(Activity(
            "confirmed", f"Order {order.order_id} placed - awaiting payment", order.created_at, True,
        ))
        if order.payment_submitted_at:
            activities.append(Activity(
                "payment_submitted", "Transaction reference submitted for verification",
                order.payment_submitted_at, True,
            ))
        if order.payment_verified_at:
            activities.append(Activity(
                "verified", "Payment verified and confirmed", order.payment_verified_at, True,
            ))
        if status in BANK_TRANSFER_FAILURES:
            activities.append(Activity(
                "rejected", "Payment could not be verified", order.updated_at or order.created_at, True,
            ))

    fallback_date = order.updated_at or order.created_at
    if status in ("processing", "shipped", "delivered"):
        activities.append(Activity(
            "processing", "Order is being prepared for shipment", fallback_date, status != "processing",
        ))
    if status in ("shipped", "delivered"):
        activities.append(Activity(
            "shipped", "Order has been shipped", order.shipped_at or fallback_date, status != "shipped",
        ))
    if status == "delivered":
        activities.append(Activity(
            "delivered", "Order has been delivered successfully", order.delivered_at or fallback_date, True,
        ))

    activities.reverse()
    return activities

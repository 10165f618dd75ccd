import logging
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

import requests
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import ValidationError
from models.order import Order
from services import notifications
from services.totals import LineItem, compute_totals, to_decimal

logger = logging.getLogger(__name__)

GATEWAY_ORDER_PREFIX = "FLW-"
AMOUNT_TOLERANCE = Decimal("0.01")


def _headers() -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {settings.GATEWAY_SECRET_KEY}",
        "Content-Type": "application/json",
    }


def verify_transaction(transaction_id: str) -> Dict[str, Any]:
    resp = requests.get(
        f"{settings.GATEWAY_BASE_URL}/transactions/{transaction_id}/verify", headers=_headers(), timeout=20,
    )
    resp.raise_for_status()
    return resp.json()


def complete_gateway_payment(db: Session, transaction_id: str, items: List[Mapping[str, Any]],
                             customer: Mapping[str, Any], user_id: Optional[str] = None) -> Order:
    """Confirm a gateway payment and record the paid order.

    Completing the same transaction twice returns the order recorded the
    first time.
    """
    if not transaction_id:
        raise ValidationError("Transaction id is required")
    if not items:
        raise ValidationError("Cart items are required")

    resp = verify_transaction(transaction_id)
    data = resp.get("data") or {}
    if resp.get("status") != "success" or data.get("status") != "successful":
        raise ValidationError(resp.get("message") or "Gateway payment was not successful")

    tx_ref = data.get("tx_ref") or str(transaction_id)
    order_id = f"{GATEWAY_ORDER_PREFIX}{tx_ref}"
    existing = db.query(Order).filter(Order.order_id == order_id).first()
    if existing is not None:
        logger.info("Gateway order %s already recorded", order_id)
        return existing

    line_items = [LineItem.from_mapping(i) for i in items]
    totals = compute_totals(line_items)
    paid = to_decimal(data.get("amount") or 0)
    currency = data.get("currency") or "NGN"
    if abs(paid - totals.grand_total) > AMOUNT_TOLERANCE or currency != "NGN":
        logger.error(
            "Gateway amount mismatch for %s: expected %s NGN, got %s %s",
            order_id, totals.grand_total, paid, currency,
        )
        raise ValidationError("Amount or currency mismatch. Please contact support.")

    gateway_customer = data.get("customer") or {}
    order = Order(
        order_id=order_id,
        user_id=user_id,
        customer_name=customer.get("name") or gateway_customer.get("name") or "",
        customer_email=customer.get("email") or gateway_customer.get("email") or "",
        customer_phone=customer.get("phone") or gateway_customer.get("phone_number"),
        customer_address=customer.get("address"),
        currency=currency,
        status="confirmed",
        subtotal=totals.subtotal,
        amount=totals.grand_total,
        items=[i.as_document() for i in line_items],
        transaction_id=str(data.get("id") or transaction_id),
        reference=data.get("flw_ref"),
        payment_status="completed",
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    logger.info("Gateway order %s confirmed for %s", order_id, totals.grand_total)

    notifications.notify_gateway_order_confirmed(order)
    return order

"""
Read orders from both storage partitions as one logical collection.

Instant-gateway orders live in ``orders`` and bank-transfer orders in
``bank_transfer_orders``. Each partition has its own normalization adapter to
``OrderOut``; callers never see partition-specific rows. A partition that
fails to answer contributes nothing instead of failing the whole lookup.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Union

from sqlalchemy.orm import Session

from core.exceptions import NotFoundError, PartialAvailabilityError
from models.bank_transfer_order import BankTransferOrder
from models.enums import PaymentRail
from models.order import Order
from schemas.order import LineItemOut, OrderOut
from services.totals import LineItem

logger = logging.getLogger(__name__)

OrderRow = Union[Order, BankTransferOrder]


def _line_items(documents: Optional[list]) -> List[LineItemOut]:
    items = []
    for doc in documents or []:
        item = LineItem.from_mapping(doc)
        items.append(LineItemOut(
            name=item.name, quantity=item.quantity, unit_amount=item.unit_amount, image_ref=item.image_ref,
        ))
    return items


def normalize_gateway_order(row: Order) -> OrderOut:
    return OrderOut(
        internal_id=row.id,
        order_id=row.order_id,
        rail=PaymentRail.INSTANT_GATEWAY,
        status=row.status or "completed",
        amount=row.amount or 0,
        items=_line_items(row.items),
        customer_name=row.customer_name,
        customer_email=row.customer_email,
        customer_phone=row.customer_phone,
        user_id=row.user_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
        payment_verified=True,
        transaction_id=row.transaction_id,
        gateway_reference=row.reference,
        tracking_number=row.tracking_number,
        shipped_at=row.shipped_at,
        delivered_at=row.delivered_at,
    )


def normalize_bank_transfer_order(row: BankTransferOrder) -> OrderOut:
    return OrderOut(
        internal_id=row.id,
        order_id=row.order_id,
        rail=PaymentRail.BANK_TRANSFER,
        status=row.status or "pending_payment",
        amount=row.amount or 0,
        items=_line_items(row.items),
        customer_name=row.customer_name,
        customer_email=row.customer_email,
        customer_phone=row.customer_phone,
        user_id=row.user_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
        transaction_reference=row.transaction_reference,
        reference_submitted_at=row.reference_submitted_at,
        payment_verified=bool(row.payment_verified),
        verification_method=row.verification_method,
        bank_details=row.bank_details,
        payment_submitted_at=row.reference_submitted_at,
        payment_verified_at=row.verified_at if row.payment_verified else None,
        tracking_number=row.tracking_number,
        shipped_at=row.shipped_at,
        delivered_at=row.delivered_at,
    )


@dataclass(frozen=True)
class Partition:
    rail: PaymentRail
    model: Any
    normalize: Callable[[Any], OrderOut]


# Single-order lookups consult partitions in this order
PARTITIONS = (
    Partition(PaymentRail.INSTANT_GATEWAY, Order, normalize_gateway_order),
    Partition(PaymentRail.BANK_TRANSFER, BankTransferOrder, normalize_bank_transfer_order),
)


def _fetch_gateway_orders(db: Session, user_id: str, email: Optional[str]) -> List[Order]:
    return (
        db.query(Order)
        .filter(Order.user_id == user_id)
        .order_by(Order.created_at.desc())
        .all()
    )


def _fetch_bank_transfer_orders(db: Session, user_id: str, email: Optional[str]) -> List[BankTransferOrder]:
    query = db.query(BankTransferOrder)
    if email:
        query = query.filter(BankTransferOrder.customer_email == email)
    else:
        query = query.filter(BankTransferOrder.user_id == user_id)
    return query.order_by(BankTransferOrder.created_at.desc()).all()


def _fetch_one(db: Session, partition: Partition, order_id: str) -> Optional[OrderRow]:
    return db.query(partition.model).filter(partition.model.order_id == order_id).first()


def _guarded(db: Session, rail: PaymentRail, fetch: Callable[[], Any], empty: Any) -> Any:
    try:
        return fetch()
    except Exception as exc:
        db.rollback()
        error = PartialAvailabilityError(rail.value, exc)
        logger.warning("Order lookup degraded: %s", error)
        return empty


def get_by_customer(db: Session, user_id: str, email: Optional[str] = None) -> List[OrderOut]:
    """All orders for a customer from both partitions, newest first."""
    gateway_rows = _guarded(
        db, PaymentRail.INSTANT_GATEWAY, lambda: _fetch_gateway_orders(db, user_id, email), [],
    )
    bank_rows = _guarded(
        db, PaymentRail.BANK_TRANSFER, lambda: _fetch_bank_transfer_orders(db, user_id, email), [],
    )

    orders = [normalize_gateway_order(r) for r in gateway_rows]
    orders += [normalize_bank_transfer_order(r) for r in bank_rows]
    # sorted() is stable, so equal timestamps keep partition order
    orders = sorted(orders, key=lambda o: o.created_at, reverse=True)
    logger.info(
        "Found %d orders for user %s (%d gateway, %d bank transfer)",
        len(orders), user_id, len(gateway_rows), len(bank_rows),
    )
    return orders


def find_order_row(db: Session, order_id: str) -> Optional[tuple]:
    """Return ``(partition, row)`` for the first partition holding ``order_id``."""
    for partition in PARTITIONS:
        row = _guarded(db, partition.rail, lambda: _fetch_one(db, partition, order_id), None)
        if row is not None:
            return partition, row
    return None


def get_by_order_id(db: Session, order_id: str) -> Optional[OrderOut]:
    found = find_order_row(db, order_id)
    if found is None:
        return None
    partition, row = found
    return partition.normalize(row)


def require_order(db: Session, order_id: str) -> OrderOut:
    order = get_by_order_id(db, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order

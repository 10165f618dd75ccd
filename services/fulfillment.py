import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from core.exceptions import InvalidTransitionError, NotFoundError
from schemas.order import OrderOut
from services.order_lookup import find_order_row
from services.order_status import ensure_transition

logger = logging.getLogger(__name__)

FULFILLMENT_STATUSES = ("processing", "shipped", "delivered")


def update_order_status(db: Session, order_id: str, new_status: str,
                        tracking_number: Optional[str] = None) -> OrderOut:
    """Apply a fulfillment status write (processing, shipped, delivered)."""
    found = find_order_row(db, order_id)
    if found is None:
        raise NotFoundError(f"Order {order_id} not found")
    partition, row = found

    target = new_status.lower()
    if target not in FULFILLMENT_STATUSES:
        raise InvalidTransitionError(f"'{new_status}' is not a fulfillment status")
    ensure_transition(partition.rail, row.status, target)

    now = datetime.utcnow()
    row.status = target
    row.updated_at = now
    if tracking_number:
        row.tracking_number = tracking_number
    if target == "shipped" and row.shipped_at is None:
        row.shipped_at = now
    if target == "delivered":
        row.delivered_at = now
        if row.shipped_at is None:
            row.shipped_at = now
    db.commit()
    db.refresh(row)

    logger.info("Order %s status updated to %s", order_id, target)
    return partition.normalize(row)

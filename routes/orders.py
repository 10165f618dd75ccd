from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.db import get_db
from core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from schemas.order import (
    BankTransferOrderCreate,
    BankTransferOrderOut,
    OrderOut,
    OrderTrackingOut,
    StatusUpdate,
    TotalsOut,
    TotalsRequest,
)
from services.bank_transfer import create_bank_transfer_order
from services.fulfillment import update_order_status
from services.order_lookup import get_by_customer, require_order
from services.order_status import display_status, order_activities, order_stage
from services.totals import LineItem, Totals, compute_totals, shipping_message

router = APIRouter(prefix="/orders", tags=["orders"])


def _totals_out(totals: Totals) -> TotalsOut:
    return TotalsOut(
        subtotal=totals.subtotal,
        shipping=totals.shipping,
        tax=totals.tax,
        grand_total=totals.grand_total,
        is_free_shipping=totals.is_free_shipping,
        shipping_message=shipping_message(totals),
    )


@router.post("/totals", response_model=TotalsOut)
def calculate_totals(data: TotalsRequest):
    items = [LineItem.from_mapping(i.model_dump()) for i in data.items]
    return _totals_out(compute_totals(items, data.precomputed_subtotal))


@router.post("/bank-transfer", response_model=BankTransferOrderOut, status_code=201)
def create_bank_transfer(data: BankTransferOrderCreate, db: Session = Depends(get_db)):
    try:
        order, totals = create_bank_transfer_order(
            db,
            items=[i.model_dump() for i in data.items],
            customer=data.customer.model_dump(),
            bank_details=data.bank_details.model_dump(),
            user_id=data.user_id,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return BankTransferOrderOut(
        order_id=order.order_id,
        status=order.status,
        totals=_totals_out(totals),
        bank_details=order.bank_details,
        customer_email=order.customer_email,
    )


@router.get("/customer/{user_id}", response_model=List[OrderOut])
def list_customer_orders(user_id: str, email: Optional[str] = None, db: Session = Depends(get_db)):
    return get_by_customer(db, user_id, email)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: str, db: Session = Depends(get_db)):
    try:
        return require_order(db, order_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")


@router.get("/{order_id}/track", response_model=OrderTrackingOut)
def track_order(order_id: str, db: Session = Depends(get_db)):
    try:
        order = require_order(db, order_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    return OrderTrackingOut(
        order=order,
        stage=order_stage(order.rail, order.status),
        display_status=display_status(order.rail, order.status),
        activities=[asdict(a) for a in order_activities(order)],
    )


@router.patch("/{order_id}/status", response_model=OrderOut)
def update_status(order_id: str, data: StatusUpdate, db: Session = Depends(get_db)):
    try:
        return update_order_status(db, order_id, data.status, data.tracking_number)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

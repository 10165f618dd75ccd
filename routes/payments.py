import logging

import requests
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.db import get_db
from core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from schemas.order import OrderOut
from schemas.payment import (
    GatewayVerifyRequest,
    ReferenceStatusOut,
    ReferenceSubmission,
    ReferenceSubmissionOut,
)
from services.bank_transfer import reference_status, submit_reference
from services.gateway import complete_gateway_payment
from services.order_lookup import normalize_gateway_order

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/bank-transfer/submit-reference", response_model=ReferenceSubmissionOut)
def submit_transaction_reference(data: ReferenceSubmission, db: Session = Depends(get_db)):
    try:
        result = submit_reference(
            db,
            data.order_id,
            data.transaction_reference,
            customer_submitted_amount=data.customer_submitted_amount,
            notes=data.customer_notes,
        )
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    except (ValidationError, InvalidTransitionError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    return ReferenceSubmissionOut(
        order_id=result.order.order_id,
        status=result.order.status,
        outcome=result.outcome,
        payment_verified=bool(result.order.payment_verified),
        confidence=result.confidence,
        message=result.message,
    )


@router.get("/bank-transfer/submit-reference", response_model=ReferenceStatusOut)
def get_reference_status(order_id: str, db: Session = Depends(get_db)):
    try:
        return reference_status(db, order_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")


@router.post("/gateway/verify", response_model=OrderOut)
def verify_gateway_payment(data: GatewayVerifyRequest, db: Session = Depends(get_db)):
    try:
        order = complete_gateway_payment(
            db,
            data.transaction_id,
            items=[i.model_dump() for i in data.items],
            customer=data.customer.model_dump(),
            user_id=data.user_id,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except requests.RequestException as exc:
        logger.warning("Gateway verification call failed: %s", exc)
        raise HTTPException(status_code=502, detail="Unable to verify payment with the gateway")
    return normalize_gateway_order(order)

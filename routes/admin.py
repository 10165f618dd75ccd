from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.db import get_db
from core.exceptions import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from schemas.payment import AdminVerifyOut, AdminVerifyRequest, PendingOrdersOut
from services.bank_transfer import admin_verify, list_pending

router = APIRouter(prefix="/admin/orders", tags=["admin"])


@router.get("/pending", response_model=PendingOrdersOut)
def pending_orders(status: str = "payment_submitted", db: Session = Depends(get_db)):
    return list_pending(db, status)


@router.post("/verify-payment", response_model=AdminVerifyOut)
def verify_payment(data: AdminVerifyRequest, db: Session = Depends(get_db)):
    try:
        return admin_verify(db, data.order_id, data.action, data.notes, data.verified_by)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    except (ValidationError, InvalidTransitionError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from core.db import get_db
from core.exceptions import UnauthorizedTrigger
from services.reconciliation import authorize_trigger, run_auto_verification

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


@router.api_route("/auto-verify-payments", methods=["GET", "POST"])
def auto_verify_payments(authorization: Optional[str] = Header(default=None), db: Session = Depends(get_db)):
    """Entry point for the external scheduler."""
    try:
        authorize_trigger(authorization)
    except UnauthorizedTrigger as exc:
        logger.warning("Rejected reconciliation trigger: %s", exc)
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    result = run_auto_verification(db)
    return JSONResponse(status_code=200 if result.success else 500, content=result.as_dict())

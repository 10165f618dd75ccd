import logging

from core.celery import celery_app
from core.db import db_session
from services.reconciliation import run_auto_verification

logger = logging.getLogger(__name__)


@celery_app.task
def auto_verify_payments():
    """
    Periodic delayed auto-verification of bank transfer references.
    Scheduled by beat; the result is the same body the HTTP trigger returns.
    """
    with db_session() as db:
        result = run_auto_verification(db)
    if not result.success:
        logger.error("Scheduled auto-verification failed: %s", result.error)
    return result.as_dict()

"""
Delayed auto-verification of bank transfer references.

The job picks up every submitted reference still waiting for manual review
after the configured delay, re-scores it with the lenient delayed rules and
verifies the ones that now pass. It never rejects. Each order is handled on
its own: a failure on one is recorded in the results and the batch moves on.
"""
import hmac
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from core.config import VerificationPolicy, settings, verification_policy
from core.exceptions import UnauthorizedTrigger
from models.bank_transfer_order import BankTransferOrder
from models.enums import VerificationMethod
from services import notifications
from services.bank_transfer import expected_total, mark_verified, record_confidence, verified_summary
from services.confidence import as_naive_utc, minutes_since, score_reference

logger = logging.getLogger(__name__)

VERIFIED = "verified"
STILL_PENDING = "still_pending"
ALREADY_RESOLVED = "already_resolved"
ERROR = "error"


def authorize_trigger(authorization: Optional[str]) -> None:
    """Check the scheduler's ``Authorization: Bearer <secret>`` header."""
    secret = settings.CRON_SECRET
    if not secret or not authorization:
        raise UnauthorizedTrigger("Missing reconciliation credentials")
    if not hmac.compare_digest(authorization.encode(), f"Bearer {secret}".encode()):
        raise UnauthorizedTrigger("Invalid reconciliation credentials")


@dataclass
class ReconciliationResult:
    success: bool
    stats: Dict[str, int] = field(default_factory=dict)
    results: List[Dict[str, Any]] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: as_naive_utc(datetime.now(timezone.utc)))
    error: Optional[str] = None

    def as_dict(self) -> dict:
        body = {
            "success": self.success,
            "stats": self.stats,
            "results": self.results,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.success:
            body["message"] = "Auto-verification complete"
        else:
            body["error"] = "Auto-verification failed"
            body["details"] = self.error
        return body


def pending_orders(db: Session, cutoff: datetime) -> List[BankTransferOrder]:
    return (
        db.query(BankTransferOrder)
        .filter(
            BankTransferOrder.verification_method == VerificationMethod.PENDING_MANUAL.value,
            BankTransferOrder.payment_verified.is_(False),
            BankTransferOrder.reference_submitted_at <= cutoff,
        )
        .order_by(BankTransferOrder.reference_submitted_at.asc())
        .all()
    )


def reconcile_order(db: Session, order: BankTransferOrder, now: datetime,
                    policy: VerificationPolicy) -> Dict[str, Any]:
    wait = minutes_since(order.reference_submitted_at, now)
    result = score_reference(
        order.transaction_reference, expected_total(order), wait, delayed=True, now=now, policy=policy,
    )
    entry = {
        "order_id": order.order_id,
        "confidence": result.score,
        "reason": result.reason,
        "wait_minutes": wait,
    }

    if not result.can_auto_verify:
        record_confidence(db, order, result.score)
        logger.info("Order %s still requires manual verification (%d%%)", order.order_id, result.score)
        return {**entry, "action": STILL_PENDING}

    applied = mark_verified(
        db, order, VerificationMethod.AUTO_DELAYED, confidence=result.score,
        notes=f"Delayed auto-verification: {result.reason}", now=as_naive_utc(now),
    )
    if not applied:
        logger.info("Order %s was resolved before the job reached it", order.order_id)
        return {**entry, "action": ALREADY_RESOLVED}

    logger.info("Order %s auto-verified after %d minutes (%d%%)", order.order_id, wait, result.score)
    notifications.notify_customer_verified(order)
    notifications.notify_admin_auto_verified(verified_summary(order, result.score, result.reason, delayed=True))
    return {**entry, "action": VERIFIED}


def run_auto_verification(db: Session, now: Optional[datetime] = None,
                          policy: Optional[VerificationPolicy] = None) -> ReconciliationResult:
    """Run one reconciliation batch and report what happened to each order."""
    now = now or datetime.now(timezone.utc)
    policy = policy or verification_policy()
    cutoff = as_naive_utc(now) - timedelta(minutes=policy.delay_minutes)

    try:
        orders = pending_orders(db, cutoff)
        logger.info("Found %d orders eligible for delayed auto-verification", len(orders))

        results: List[Dict[str, Any]] = []
        for order in orders:
            try:
                results.append(reconcile_order(db, order, now, policy))
            except Exception as exc:
                db.rollback()
                logger.exception("Error processing order %s", order.order_id)
                results.append({"order_id": order.order_id, "action": ERROR, "error": str(exc)})

        verified = sum(1 for r in results if r["action"] == VERIFIED)
        stats = {
            "processed": len(results),
            "verified": verified,
            "remaining": len(results) - verified,
            "already_resolved": sum(1 for r in results if r["action"] == ALREADY_RESOLVED),
            "errors": sum(1 for r in results if r["action"] == ERROR),
        }
    except Exception as exc:
        db.rollback()
        logger.exception("Auto-verification batch failed")
        notifications.notify_admin_cron_error(exc)
        return ReconciliationResult(success=False, error=str(exc), timestamp=as_naive_utc(now))

    logger.info("Auto-verification complete: %d/%d orders verified", verified, len(results))
    notifications.notify_admin_cron_summary(stats, results)
    return ReconciliationResult(success=True, stats=stats, results=results, timestamp=as_naive_utc(now))

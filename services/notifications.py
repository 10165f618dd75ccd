"""
Customer and admin notifications.

Every notification is rendered here and handed to a Celery worker; nothing
waits for delivery. A failure to render or enqueue is logged and reported as
``False`` to the caller, never raised, so it cannot undo the order change that
triggered it.
"""
import logging
import os
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import settings
from core.exceptions import NotificationError
from services.totals import format_naira, totals_for_documents
from tasks.notification_tasks import send_email_task

logger = logging.getLogger(__name__)

_templates_env = Environment(
    loader=FileSystemLoader(searchpath=os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")),
    autoescape=select_autoescape(["html", "xml"]),
    trim_blocks=True,
    lstrip_blocks=True,
)
_templates_env.filters["naira"] = format_naira


def render_template(template_path: str, context: Dict[str, Any]) -> str:
    """Render a text template from templates/ directory with provided context."""
    template = _templates_env.get_template(template_path)
    return template.render(app_url=settings.APP_URL, **context)


def send_email(to_email: str, subject: str, body: str) -> None:
    """Queue an email on the worker; returns as soon as the task is enqueued."""
    try:
        send_email_task.delay(to_email, subject, body)
    except Exception as exc:
        raise NotificationError(f"Could not queue email to {to_email}: {exc}") from exc


def send_templated_email(to_email: str, subject: str, template_path: str, context: Dict[str, Any]) -> bool:
    try:
        body = render_template(template_path, context)
        send_email(to_email, subject, body)
    except NotificationError as exc:
        logger.warning("Notification '%s' not sent: %s", subject, exc)
        return False
    except Exception:
        logger.exception("Notification '%s' failed to render", subject)
        return False
    logger.info("Notification '%s' queued for %s", subject, to_email)
    return True


def _order_context(order: Any) -> Dict[str, Any]:
    items = list(getattr(order, "items", None) or [])
    documents = [i if isinstance(i, Mapping) else i.model_dump() for i in items]
    return {
        "order": order,
        "items": documents,
        "totals": totals_for_documents(documents, getattr(order, "subtotal", None)),
    }


def notify_order_received(order: Any) -> bool:
    return send_templated_email(
        order.customer_email,
        f"Order {order.order_id} received - complete your bank transfer",
        "emails/order_received.txt",
        _order_context(order),
    )


def notify_gateway_order_confirmed(order: Any) -> bool:
    return send_templated_email(
        order.customer_email,
        f"Order confirmed - {order.order_id}",
        "emails/order_confirmed.txt",
        _order_context(order),
    )


def notify_customer_verified(order: Any) -> bool:
    return send_templated_email(
        order.customer_email,
        f"Payment confirmed - Order {order.order_id}",
        "emails/payment_verified.txt",
        _order_context(order),
    )


def notify_customer_rejected(order: Any, reason: str) -> bool:
    return send_templated_email(
        order.customer_email,
        f"Payment could not be verified - Order {order.order_id}",
        "emails/payment_rejected.txt",
        {**_order_context(order), "reason": reason},
    )


def notify_admin_reference_submitted(order: Any, expected_amount: Any, submitted_amount: Any,
                                     confidence: int) -> bool:
    discrepancy = abs(float(expected_amount) - float(submitted_amount)) > 1
    return send_templated_email(
        settings.ADMIN_EMAIL,
        f"Payment Verification Required - Order {order.order_id} - {format_naira(expected_amount)}",
        "emails/admin_verification_required.txt",
        {
            "order": order,
            "expected_amount": expected_amount,
            "submitted_amount": submitted_amount,
            "has_discrepancy": discrepancy,
            "confidence": confidence,
        },
    )


def notify_admin_auto_verified(summary: Mapping[str, Any]) -> bool:
    return send_templated_email(
        settings.ADMIN_EMAIL,
        f"[AUTO-VERIFIED] #{summary['order_id']} - {format_naira(summary['amount'])}",
        "emails/admin_auto_verified.txt",
        {"summary": summary},
    )


def notify_admin_cron_summary(stats: Mapping[str, Any], results: Iterable[Mapping[str, Any]]) -> bool:
    results = list(results)
    processed = stats.get("processed", 0)
    return send_templated_email(
        settings.ADMIN_EMAIL,
        f"[CRON SUMMARY] Auto-Verification: {stats.get('verified', 0)}/{processed} orders processed",
        "emails/admin_cron_summary.txt",
        {
            "stats": stats,
            "success_rate": round(stats.get("verified", 0) / processed * 100) if processed else 0,
            "verified_orders": [r for r in results if r.get("action") == "verified"],
            "pending_orders": [r for r in results if r.get("action") == "still_pending"],
            "failed_orders": [r for r in results if r.get("action") == "error"],
        },
    )


def notify_admin_cron_error(error: BaseException) -> bool:
    return send_templated_email(
        settings.ADMIN_EMAIL,
        "[CRON ERROR] Auto-Verification Job Failed",
        "emails/admin_cron_error.txt",
        {"error": error, "error_type": type(error).__name__, "time": datetime.utcnow().isoformat()},
    )

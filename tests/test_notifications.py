from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest

from core.exceptions import NotificationError
from services import notifications
from services.bank_transfer import expected_total
from services.notifications import render_template, send_email as queue_email
from tasks.notification_tasks import send_email_task


def bank_order(**overrides):
    fields = dict(
        order_id="BT-1",
        customer_name="Ada Obi",
        customer_email="ada@example.com",
        amount=Decimal("80910"),
        transaction_reference="FT240123456789",
        items=[{"name": "Gown", "quantity": 2, "unit_amount": "40000"}],
        bank_details={"account_name": "Store Ltd", "account_number": "0123456789", "bank_name": "GTBank"},
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


class TestTemplates:
    def test_items_and_totals_rendered(self):
        body = render_template("emails/payment_verified.txt", notifications._order_context(bank_order()))

        assert "- Gown x 2 @ ₦40,000" in body
        assert "Subtotal: ₦80,000" in body
        assert "Total: ₦80,910" in body
        assert "track-order?orderId=BT-1" in body

    def test_free_shipping_shown(self):
        order = bank_order(items=[{"name": "Lace", "quantity": 1, "unit_amount": "1000000"}])
        body = render_template("emails/order_confirmed.txt", notifications._order_context(order))

        assert "Shipping: FREE" in body

    def test_stored_subtotal_matches_expected_total(self):
        order = bank_order(subtotal=Decimal("79000"), amount=Decimal("79910"))

        body = render_template("emails/payment_verified.txt", notifications._order_context(order))

        assert expected_total(order) == Decimal("79910")
        assert "Subtotal: ₦79,000" in body
        assert "Total: ₦79,910" in body


class TestQueueing:
    def test_send_email_hands_off_to_worker(self):
        with patch("services.notifications.send_email_task") as task:
            queue_email("ada@example.com", "Hi", "Body")

        task.delay.assert_called_once_with("ada@example.com", "Hi", "Body")

    def test_broker_failure_raises_notification_error(self):
        task = Mock()
        task.delay.side_effect = ConnectionError("redis down")
        with patch("services.notifications.send_email_task", task):
            with pytest.raises(NotificationError):
                queue_email("ada@example.com", "Hi", "Body")

    def test_templated_email_reports_failure(self, monkeypatch):
        def _unreachable(to_email, subject, body):
            raise NotificationError("broker down")

        monkeypatch.setattr(notifications, "send_email", _unreachable)

        assert notifications.notify_customer_verified(bank_order()) is False

    def test_render_failure_reports_failure(self, sent_emails):
        assert notifications.send_templated_email("a@example.com", "x", "emails/missing.txt", {}) is False
        assert sent_emails == []


class TestAdminNotices:
    def test_verification_required_with_discrepancy(self, sent_emails):
        assert notifications.notify_admin_reference_submitted(bank_order(), Decimal("80910"), Decimal("80000"), 72)

        email = sent_emails[0]
        assert email["to"] == "admin@example.com"
        assert email["subject"] == "Payment Verification Required - Order BT-1 - ₦80,910"
        assert "Customer Submitted: ₦80,000 (DISCREPANCY!)" in email["body"]
        assert "Auto-verification confidence: 72%" in email["body"]

    def test_small_difference_not_flagged(self, sent_emails):
        notifications.notify_admin_reference_submitted(bank_order(), Decimal("80910"), Decimal("80910.50"), 72)

        assert "DISCREPANCY" not in sent_emails[0]["body"]

    def test_cron_summary(self, sent_emails):
        results = [
            {"order_id": "BT-1", "action": "verified", "confidence": 100},
            {"order_id": "BT-2", "action": "still_pending", "confidence": 40},
            {"order_id": "BT-3", "action": "error", "error": "boom"},
        ]
        notifications.notify_admin_cron_summary({"processed": 3, "verified": 1, "remaining": 2}, results)

        body = sent_emails[0]["body"]
        assert sent_emails[0]["subject"] == "[CRON SUMMARY] Auto-Verification: 1/3 orders processed"
        assert "Success Rate: 33%" in body
        assert "- BT-2 - 40% confidence" in body
        assert "- BT-3: boom" in body


class TestEmailTask:
    def test_skipped_without_smtp_in_tests(self):
        result = send_email_task("ada@example.com", "Hi", "Body")

        assert result["status"] == "skipped"

    def test_delivers_when_configured(self, monkeypatch):
        from core import config as core_config

        monkeypatch.setattr(core_config.settings, "TESTING", False)
        monkeypatch.setattr(core_config.settings, "SMTP_PASSWORD", "app-password")
        with patch("tasks.notification_tasks.deliver_email") as deliver:
            result = send_email_task("ada@example.com", "Hi", "Body")

        deliver.assert_called_once_with("ada@example.com", "Hi", "Body")
        assert result["status"] == "sent"

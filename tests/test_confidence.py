from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest

from core.config import VerificationPolicy
from services.confidence import (
    SYSTEM_ERROR_REASON,
    is_business_hours,
    minutes_since,
    score_reference,
)

# Saturday 13:00 and Monday 10:00 in Lagos
OFF_HOURS = datetime(2024, 1, 13, 12, 0, tzinfo=timezone.utc)
BUSINESS_HOURS = datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)


class TestImmediatePass:
    def test_known_bank_format_auto_verifies(self):
        result = score_reference("FT240123456789", Decimal("80000"), 0, delayed=False, now=OFF_HOURS)

        assert result.can_auto_verify is True
        assert result.score == 100
        assert "Valid First Bank/GTB format" in result.reasons
        assert "Known bank prefix" in result.reasons

    def test_generic_reference_on_large_amount_falls_short(self):
        result = score_reference("XQ7Z9P2KQ1", Decimal("450000"), 15, delayed=False, now=OFF_HOURS)

        assert result.can_auto_verify is False
        assert result.score == 83
        assert result.reason.startswith("Confidence: 83% (need 85%+)")

    def test_business_hours_bonus(self):
        result = score_reference("XQ7Z9P2KQ1", Decimal("450000"), 0, delayed=False, now=BUSINESS_HOURS)

        assert result.score == 91
        assert result.can_auto_verify is True
        assert "Processing during business hours" in result.reasons

    def test_ignores_wait_time(self):
        waited = score_reference("XQ7Z9P2KQ1", Decimal("450000"), 500, delayed=False, now=OFF_HOURS)
        fresh = score_reference("XQ7Z9P2KQ1", Decimal("450000"), 0, delayed=False, now=OFF_HOURS)
        assert waited == fresh

    def test_unmatched_reference_rejected(self):
        result = score_reference("AB-12", Decimal("5000"), 0, delayed=False, now=OFF_HOURS)

        assert result.score == 0
        assert result.can_auto_verify is False
        assert result.reason == "Reference does not match any accepted bank format"


class TestDelayedPass:
    def test_long_wait_pushes_over_threshold(self):
        result = score_reference("XQ7Z9P2KQ1", Decimal("450000"), 250, delayed=True, now=OFF_HOURS)

        assert result.can_auto_verify is True
        assert result.score == 100
        assert "Customer waited 4 hours - high patience indicator" in result.reason

    def test_unmatched_reference_still_scored(self):
        result = score_reference("AB-12", Decimal("50000"), 250, delayed=True, now=OFF_HOURS)

        assert result.can_auto_verify is False
        assert result.score == 40
        assert "Unrecognized reference format - scored for manual review" in result.reasons

    def test_off_hours_bonus_needs_two_hours(self):
        short = score_reference("XQ7Z9P2KQ1", Decimal("450000"), 60, delayed=True, now=OFF_HOURS)
        long = score_reference("XQ7Z9P2KQ1", Decimal("450000"), 120, delayed=True, now=OFF_HOURS)

        assert "Off-hours but customer waited long enough" not in short.reasons
        assert "Off-hours but customer waited long enough" in long.reasons

    def test_patience_override(self):
        policy = VerificationPolicy(min_confidence=130)

        result = score_reference("XQ7Z9P2KQ1", Decimal("150000"), 400, delayed=True, now=OFF_HOURS, policy=policy)

        assert result.can_auto_verify is True
        assert result.score == 100
        assert result.reason.startswith("Extended waiting period override: ")

    def test_override_needs_small_amount(self):
        policy = VerificationPolicy(min_confidence=130)

        result = score_reference("XQ7Z9P2KQ1", Decimal("250000"), 400, delayed=True, now=OFF_HOURS, policy=policy)

        assert result.can_auto_verify is False
        assert result.score == 100
        assert result.reason.startswith("Confidence: 100% (need 130%+)")

    def test_override_not_used_on_immediate_pass(self):
        policy = VerificationPolicy(min_confidence=130)

        result = score_reference("XQ7Z9P2KQ1", Decimal("150000"), 400, delayed=False, now=OFF_HOURS, policy=policy)

        assert result.can_auto_verify is False


class TestFailureModes:
    @pytest.mark.parametrize("reference,amount,wait", [
        (None, 1000, 0), ("   ", 1000, 0), ("FT240123456789", "lots", 0), ("FT240123456789", -5, 0),
        ("FT240123456789", 1000, -1), ("FT240123456789", float("nan"), 0),
    ])
    def test_malformed_input_scores_zero(self, reference, amount, wait):
        result = score_reference(reference, amount, wait, delayed=True, now=OFF_HOURS)

        assert result.score == 0
        assert result.can_auto_verify is False
        assert result.reason.startswith("Invalid payment details")

    def test_unexpected_error_scores_zero(self):
        with patch("services.confidence._quality_points", side_effect=RuntimeError("boom")):
            result = score_reference("FT240123456789", 1000, now=OFF_HOURS)

        assert result.score == 0
        assert result.can_auto_verify is False
        assert result.reason == SYSTEM_ERROR_REASON

    def test_deterministic(self):
        first = score_reference("NIP123456789012", Decimal("99000"), 45, delayed=True, now=BUSINESS_HOURS)
        second = score_reference("NIP123456789012", Decimal("99000"), 45, delayed=True, now=BUSINESS_HOURS)
        assert first == second


class TestClock:
    def test_business_hours_window(self):
        # Lagos is UTC+1
        assert is_business_hours(datetime(2024, 1, 15, 16, 30, tzinfo=timezone.utc), "Africa/Lagos")
        assert not is_business_hours(datetime(2024, 1, 15, 17, 0, tzinfo=timezone.utc), "Africa/Lagos")
        assert not is_business_hours(datetime(2024, 1, 15, 6, 30, tzinfo=timezone.utc), "Africa/Lagos")
        assert not is_business_hours(OFF_HOURS, "Africa/Lagos")

    def test_minutes_since_treats_naive_as_utc(self):
        assert minutes_since(datetime(2024, 1, 13, 7, 50), OFF_HOURS) == 250
        assert minutes_since(None, OFF_HOURS) == 0
        assert minutes_since(datetime(2024, 1, 13, 13, 0), OFF_HOURS) == 0

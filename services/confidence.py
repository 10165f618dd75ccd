"""
Confidence scoring for customer-submitted bank transfer references.

A reference is scored twice in its life: once when the customer submits it
(immediate pass, strict) and again by the reconciliation job after it has
waited a while (delayed pass, lenient). Both passes run the same heuristics;
they differ only in the ``PassRules`` tables below.

Scoring is pure and never raises: malformed input or an unexpected error
produces a zero score that can never auto-verify.
"""
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Pattern, Tuple
from zoneinfo import ZoneInfo

from core.config import VerificationPolicy, verification_policy
from core.exceptions import ValidationError

logger = logging.getLogger(__name__)

SYSTEM_ERROR_REASON = "Verification system error"


@dataclass(frozen=True)
class ReferenceFormat:
    pattern: Pattern[str]
    weight: int
    label: str


BANK_REFERENCE_FORMATS: Tuple[ReferenceFormat, ...] = (
    ReferenceFormat(re.compile(r"^FT\d{12,18}$", re.I), 95, "First Bank/GTB"),
    ReferenceFormat(re.compile(r"^NIP\d{12,15}$", re.I), 92, "NIP Transfer"),
    ReferenceFormat(re.compile(r"^\d{12,20}$"), 88, "Standard Numeric"),
    ReferenceFormat(re.compile(r"^[A-Z]{2,4}\d{10,15}$", re.I), 90, "Bank Code Format"),
    ReferenceFormat(re.compile(r"^TXN\d{12,15}$", re.I), 93, "Transaction Format"),
    ReferenceFormat(re.compile(r"^REF\d{12,15}$", re.I), 89, "Reference Format"),
    ReferenceFormat(re.compile(r"^UBA\d{10,15}$", re.I), 94, "UBA Format"),
    ReferenceFormat(re.compile(r"^ZEN\d{10,15}$", re.I), 91, "Zenith Format"),
    ReferenceFormat(re.compile(r"^ACC\d{10,15}$", re.I), 89, "Access Format"),
    ReferenceFormat(re.compile(r"^GTB\d{10,15}$", re.I), 95, "GTBank Format"),
    ReferenceFormat(re.compile(r"^FCM\d{10,15}$", re.I), 92, "FCMB Format"),
)

FALLBACK_FORMAT = re.compile(r"^[A-Z0-9]{8,25}$", re.I)
KNOWN_BANK_PREFIX = re.compile(r"^(FT|NIP|TXN|REF|UBA|ZEN|ACC|GTB|FCM)")


@dataclass(frozen=True)
class AmountTier:
    ceiling: Decimal
    bonus: int
    reason: str


@dataclass(frozen=True)
class WaitTier:
    minutes: int
    bonus: int
    reason: str  # formatted with hours= and minutes=


@dataclass(frozen=True)
class WaitOverride:
    """Customer patience overrides a borderline score."""

    min_wait_minutes: int
    max_amount: Decimal
    min_score: int
    bump: int


@dataclass(frozen=True)
class PassRules:
    name: str
    fallback_weight: int
    fallback_reason: str
    # None rejects a reference that fails even the fallback format
    unmatched_weight: Optional[int]
    unmatched_reason: str
    amount_tiers: Tuple[AmountTier, ...]
    wait_tiers: Tuple[WaitTier, ...] = ()
    off_hours_bonus: int = 0
    off_hours_min_wait: int = 0
    override: Optional[WaitOverride] = None


IMMEDIATE_PASS = PassRules(
    name="immediate",
    fallback_weight=75,
    fallback_reason="Acceptable alphanumeric reference format",
    unmatched_weight=None,
    unmatched_reason="Reference does not match any accepted bank format",
    amount_tiers=(
        AmountTier(Decimal("100000"), 10, "Low-risk amount (≤ ₦100k)"),
        AmountTier(Decimal("250000"), 6, "Medium amount"),
        AmountTier(Decimal("400000"), 3, "Higher amount - monitored risk"),
    ),
)

DELAYED_PASS = PassRules(
    name="delayed",
    fallback_weight=75,
    fallback_reason="Acceptable reference format after waiting period",
    unmatched_weight=0,
    unmatched_reason="Unrecognized reference format - scored for manual review",
    amount_tiers=(
        AmountTier(Decimal("100000"), 15, "Low-risk amount (≤ ₦100k)"),
        AmountTier(Decimal("300000"), 12, "Medium amount - acceptable risk after waiting"),
        AmountTier(Decimal("500000"), 8, "Higher amount - monitored risk"),
        AmountTier(Decimal("1000000"), 5, "High amount - requires careful consideration"),
    ),
    wait_tiers=(
        WaitTier(240, 20, "Customer waited {hours} hours - high patience indicator"),
        WaitTier(120, 15, "Customer waited {hours} hours"),
        WaitTier(60, 10, "Customer waited {minutes} minutes"),
        WaitTier(30, 8, "Reasonable waiting period"),
    ),
    off_hours_bonus=5,
    off_hours_min_wait=120,
    override=WaitOverride(
        min_wait_minutes=360,
        max_amount=Decimal("200000"),
        min_score=75,
        bump=10,
    ),
)

BUSINESS_HOURS_BONUS = 8
KNOWN_PREFIX_BONUS = 5
MAX_SCORE = 100


@dataclass(frozen=True)
class ConfidenceResult:
    score: int
    can_auto_verify: bool
    reasons: Tuple[str, ...] = field(default_factory=tuple)
    reason: str = ""


def rejected(reason: str) -> ConfidenceResult:
    return ConfidenceResult(score=0, can_auto_verify=False, reasons=(reason,), reason=reason)


def minutes_since(moment: Optional[datetime], now: Optional[datetime] = None) -> int:
    """Whole minutes elapsed since ``moment``; naive datetimes are UTC."""
    if moment is None:
        return 0
    now = _as_utc(now or datetime.now(timezone.utc))
    return max(0, math.floor((now - _as_utc(moment)).total_seconds() / 60))


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def as_naive_utc(moment: datetime) -> datetime:
    """Naive UTC, the form timestamps are stored in."""
    return _as_utc(moment).replace(tzinfo=None)


def is_business_hours(now: datetime, tz_name: str) -> bool:
    local = _as_utc(now).astimezone(ZoneInfo(tz_name))
    return local.weekday() < 5 and 8 <= local.hour <= 17


def _clean_reference(reference: Any) -> str:
    if not isinstance(reference, str):
        raise ValidationError("Transaction reference must be text")
    cleaned = reference.strip()
    if not cleaned:
        raise ValidationError("Transaction reference is empty")
    return cleaned


def _clean_amount(amount: Any) -> Decimal:
    if isinstance(amount, bool):
        raise ValidationError("Amount must be numeric")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Amount is not a number: {amount!r}")
    if not value.is_finite() or value < 0:
        raise ValidationError(f"Amount must be a non-negative number: {amount!r}")
    return value


def _clean_wait(wait_minutes: Any) -> int:
    try:
        wait = int(wait_minutes)
    except (TypeError, ValueError):
        raise ValidationError(f"Wait time is not a number: {wait_minutes!r}")
    if wait < 0:
        raise ValidationError("Wait time cannot be negative")
    return wait


def _format_points(reference: str, rules: PassRules, reasons: List[str]) -> Optional[int]:
    for fmt in BANK_REFERENCE_FORMATS:
        if fmt.pattern.match(reference):
            reasons.append(f"Valid {fmt.label} format")
            return fmt.weight
    if FALLBACK_FORMAT.match(reference):
        reasons.append(rules.fallback_reason)
        return rules.fallback_weight
    if rules.unmatched_weight is None:
        return None
    reasons.append(rules.unmatched_reason)
    return rules.unmatched_weight


def _wait_points(wait: int, rules: PassRules, reasons: List[str]) -> int:
    for tier in rules.wait_tiers:
        if wait >= tier.minutes:
            reasons.append(tier.reason.format(hours=wait // 60, minutes=wait))
            return tier.bonus
    return 0


def _amount_points(amount: Decimal, rules: PassRules, reasons: List[str]) -> int:
    for tier in rules.amount_tiers:
        if amount <= tier.ceiling:
            reasons.append(tier.reason)
            return tier.bonus
    return 0


def _quality_points(reference: str, reasons: List[str]) -> int:
    length = len(reference)
    mixed = bool(re.search(r"[A-Za-z]", reference)) and bool(re.search(r"\d", reference))
    if 12 <= length <= 20 and mixed:
        reasons.append("High-quality reference format")
        return 12
    if 10 <= length <= 25:
        reasons.append("Acceptable reference length")
        return 8
    if length >= 8:
        reasons.append("Minimum acceptable reference length")
        return 5
    return 0


def _timing_points(wait: int, now: datetime, rules: PassRules, tz_name: str, reasons: List[str]) -> int:
    if is_business_hours(now, tz_name):
        reasons.append("Processing during business hours")
        return BUSINESS_HOURS_BONUS
    if rules.off_hours_bonus and wait >= rules.off_hours_min_wait:
        reasons.append("Off-hours but customer waited long enough")
        return rules.off_hours_bonus
    return 0


def _evaluate(reference: str, amount: Decimal, wait: int, rules: PassRules,
              now: datetime, policy: VerificationPolicy) -> ConfidenceResult:
    reasons: List[str] = []

    score = _format_points(reference, rules, reasons)
    if score is None:
        return rejected(rules.unmatched_reason)

    score += _wait_points(wait, rules, reasons)
    score += _amount_points(amount, rules, reasons)
    score += _quality_points(reference, reasons)
    if KNOWN_BANK_PREFIX.match(reference):
        reasons.append("Known bank prefix")
        score += KNOWN_PREFIX_BONUS
    score += _timing_points(wait, now, rules, policy.timezone, reasons)

    summary = "; ".join(reasons)
    if score >= policy.min_confidence:
        return ConfidenceResult(min(score, MAX_SCORE), True, tuple(reasons), summary)

    override = rules.override
    if (
        override is not None
        and wait >= override.min_wait_minutes
        and amount <= override.max_amount
        and score >= override.min_score
    ):
        return ConfidenceResult(
            min(score + override.bump, MAX_SCORE),
            True,
            tuple(reasons),
            f"Extended waiting period override: {summary}",
        )

    score = min(score, MAX_SCORE)
    return ConfidenceResult(
        score,
        False,
        tuple(reasons),
        f"Confidence: {score}% (need {policy.min_confidence}%+): {summary}",
    )


def score_reference(
    reference: Any,
    amount: Any,
    wait_minutes: Any = 0,
    delayed: bool = False,
    now: Optional[datetime] = None,
    policy: Optional[VerificationPolicy] = None,
) -> ConfidenceResult:
    """Score a transaction reference and decide whether it can auto-verify.

    ``delayed`` selects the lenient reconciliation rules; the immediate pass
    ignores ``wait_minutes``. ``now`` fixes the clock used for the
    business-hours heuristic.
    """
    try:
        policy = policy or verification_policy()
        rules = DELAYED_PASS if delayed else IMMEDIATE_PASS
        cleaned = _clean_reference(reference)
        value = _clean_amount(amount)
        wait = _clean_wait(wait_minutes) if delayed else 0
        return _evaluate(cleaned, value, wait, rules, now or datetime.now(timezone.utc), policy)
    except ValidationError as exc:
        logger.info("Reference scoring rejected malformed input: %s", exc)
        return rejected(f"Invalid payment details: {exc}")
    except Exception:
        logger.exception("Reference scoring failed")
        return rejected(SYSTEM_ERROR_REASON)

"""
Order totals: subtotal, shipping, tax and grand total.

Every screen, email and stored amount goes through ``compute_totals`` so the
numbers stay identical wherever they are shown. Rounding is applied per line,
to shipping, to tax and to the grand total; rounding only the final sum gives
different results and would disagree with totals already emailed to customers.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_CEILING
from typing import Any, Iterable, Mapping, Optional

from core.config import PricingPolicy, pricing_policy

logger = logging.getLogger(__name__)

TEN = Decimal("10")
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round10(value: Any) -> Decimal:
    """Round up to the next multiple of 10: ``ceil(x / 10) * 10``."""
    return (to_decimal(value) / TEN).to_integral_value(rounding=ROUND_CEILING) * TEN


@dataclass(frozen=True)
class LineItem:
    name: str
    quantity: int
    unit_amount: Decimal
    image_ref: Optional[str] = None
    sku: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return round10(self.unit_amount * self.quantity)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LineItem":
        """Build a line item from a cart or stored item document.

        Accepts the key variants cart payloads use (``itemName``/``name``,
        ``amount``/``price``/``unit_amount``, ``imageURL``/``image_ref``).
        Unparseable numbers fall back to quantity 1 and amount 0.
        """
        name = data.get("name") or data.get("itemName") or "Unknown Item"
        raw_amount = _first_present(data, "unit_amount", "amount", "price")
        try:
            unit_amount = to_decimal(raw_amount) if raw_amount is not None else ZERO
        except (InvalidOperation, ValueError):
            unit_amount = ZERO
        if not unit_amount.is_finite() or unit_amount < 0:
            unit_amount = ZERO
        try:
            quantity = int(data.get("quantity") or 1)
        except (TypeError, ValueError):
            quantity = 1
        image_ref = data.get("image_ref") or data.get("imageURL") or data.get("imageUrl") or None
        return cls(
            name=str(name),
            quantity=max(quantity, 1),
            unit_amount=unit_amount,
            image_ref=image_ref,
            sku=data.get("sku") or None,
        )

    def as_document(self) -> dict:
        return {
            "name": self.name,
            "quantity": self.quantity,
            "unit_amount": str(self.unit_amount),
            "image_ref": self.image_ref,
            "sku": self.sku,
        }


def _first_present(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) not in (None, ""):
            return data[key]
    return None


def _clean_subtotal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        subtotal = to_decimal(value)
    except (InvalidOperation, ValueError):
        subtotal = None
    if subtotal is None or not subtotal.is_finite() or subtotal < 0:
        logger.warning("Ignoring malformed precomputed subtotal %r", value)
        return None
    return subtotal


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    grand_total: Decimal
    is_free_shipping: bool


def compute_totals(
    items: Iterable[LineItem],
    precomputed_subtotal: Any = None,
    policy: Optional[PricingPolicy] = None,
) -> Totals:
    """Compute order totals.

    A ``precomputed_subtotal`` (one already persisted with the order) is
    trusted as-is; shipping, tax and grand total are still derived from it.
    An unparseable, non-finite or negative one is ignored.
    """
    policy = policy or pricing_policy()

    subtotal = _clean_subtotal(precomputed_subtotal)
    if subtotal is None:
        subtotal = sum((item.line_total for item in items), ZERO)

    is_free_shipping = subtotal >= policy.free_shipping_threshold
    shipping = ZERO if is_free_shipping else round10(policy.base_shipping_cost)
    tax = round10(subtotal * policy.tax_rate)
    grand_total = round10(subtotal + shipping + tax)

    return Totals(
        subtotal=subtotal,
        shipping=shipping,
        tax=tax,
        grand_total=grand_total,
        is_free_shipping=is_free_shipping,
    )


def totals_for_documents(documents: Iterable[Mapping[str, Any]], precomputed_subtotal: Any = None,
                         policy: Optional[PricingPolicy] = None) -> Totals:
    return compute_totals([LineItem.from_mapping(d) for d in documents], precomputed_subtotal, policy)


def free_shipping_remaining(subtotal: Any, policy: Optional[PricingPolicy] = None) -> Decimal:
    policy = policy or pricing_policy()
    return max(ZERO, policy.free_shipping_threshold - to_decimal(subtotal))


def format_naira(amount: Any) -> str:
    value = to_decimal(amount)
    if value == value.to_integral_value():
        return f"₦{int(value):,}"
    return f"₦{value:,.2f}"


def shipping_message(totals: Totals, policy: Optional[PricingPolicy] = None) -> str:
    if totals.is_free_shipping:
        return "You qualify for free shipping!"
    remaining = free_shipping_remaining(totals.subtotal, policy)
    return f"Add {format_naira(remaining)} more for free shipping"

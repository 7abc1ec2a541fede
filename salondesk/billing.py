"""Settlement and commission arithmetic.

Everything in this module is pure: no database access and no Flask context.
Amounts are ``Decimal`` values rounded half-up to two places, and every
intermediate discount or tax figure is rounded on its own before it is
subtracted from the running base, so invoice line items reproduce exactly.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Sequence

ZERO = Decimal("0.00")
TWO_PLACES = Decimal("0.01")

_PERCENT_KINDS = {"percent", "percentage"}
_FLAT_KINDS = {"flat", "fixed"}


def round2(value) -> Decimal:
    """Round half-up to two decimal places."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_amount(value, default: Decimal = ZERO) -> Decimal:
    """Parse an optional, non-negative monetary field from a request body.

    Missing, malformed, non-finite and negative values fall back to ``default``
    instead of failing the request.
    """
    if value is None or value == "" or isinstance(value, bool):
        return default
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default
    if not amount.is_finite() or amount < 0:
        return default
    return round2(amount)


def is_percentage(kind: str | None) -> bool:
    return (kind or "").strip().lower() in _PERCENT_KINDS


def is_known_rule(kind: str | None) -> bool:
    return (kind or "").strip().lower() in _PERCENT_KINDS | _FLAT_KINDS


@dataclass(frozen=True)
class Adjustment:
    """A percentage-of-base or flat amount, used for discounts and tax."""

    percentage: bool
    value: Decimal

    @classmethod
    def from_rule(cls, kind: str | None, value) -> "Adjustment":
        return cls(percentage=is_percentage(kind), value=to_amount(value))

    def amount_on(self, base: Decimal) -> Decimal:
        if self.percentage:
            return round2(base * self.value / 100)
        return round2(self.value)


NO_ADJUSTMENT = Adjustment(percentage=False, value=ZERO)


@dataclass(frozen=True)
class SettlementInput:
    service_amount: Decimal
    product_amount: Decimal
    additional_charges: Decimal = ZERO
    membership: Adjustment | None = None
    coupon: Adjustment | None = None
    additional_discount: Adjustment = NO_ADJUSTMENT
    tax: Adjustment | None = None
    tips: Decimal = ZERO


@dataclass(frozen=True)
class Settlement:
    service_amount: Decimal
    product_amount: Decimal
    additional_charges: Decimal
    membership_discount: Decimal
    coupon_discount: Decimal
    additional_discount: Decimal
    sub_total: Decimal
    tax_amount: Decimal
    tips: Decimal
    final_total: Decimal

    @property
    def total_discount(self) -> Decimal:
        return self.membership_discount + self.coupon_discount + self.additional_discount

    def as_dict(self) -> dict[str, float]:
        return {key: float(value) for key, value in asdict(self).items()}


def settle(inputs: SettlementInput) -> Settlement:
    """Compute the final charge for one appointment.

    The order is fixed: membership discount, coupon discount, additional
    discount, then tax on the discounted sub total, then tips. Each discount
    is taken from the base left by the previous step. ``final_total`` is not
    clamped at zero.
    """
    service_amount = round2(inputs.service_amount)
    product_amount = round2(inputs.product_amount)
    additional_charges = round2(inputs.additional_charges)
    tips = round2(inputs.tips)

    base = round2(service_amount + product_amount + additional_charges)

    membership_discount = inputs.membership.amount_on(base) if inputs.membership else ZERO
    base = round2(base - membership_discount)

    coupon_discount = inputs.coupon.amount_on(base) if inputs.coupon else ZERO
    base = round2(base - coupon_discount)

    additional_discount = inputs.additional_discount.amount_on(base)
    base = round2(base - additional_discount)

    sub_total = base
    tax_amount = inputs.tax.amount_on(sub_total) if inputs.tax else ZERO
    final_total = round2(round2(sub_total + tax_amount) + tips)

    return Settlement(
        service_amount=service_amount,
        product_amount=product_amount,
        additional_charges=additional_charges,
        membership_discount=membership_discount,
        coupon_discount=coupon_discount,
        additional_discount=additional_discount,
        sub_total=sub_total,
        tax_amount=tax_amount,
        tips=tips,
        final_total=final_total,
    )


# --- commission slots -------------------------------------------------------

def parse_slot(slot: str | None) -> tuple[Decimal, Decimal] | None:
    """Parse a ``"min-max"`` slot label. Returns None when malformed."""
    if not isinstance(slot, str) or "-" not in slot:
        return None
    low, _, high = slot.partition("-")
    try:
        bounds = (Decimal(low.strip()), Decimal(high.strip()))
    except InvalidOperation:
        return None
    if not all(bound.is_finite() for bound in bounds):
        return None
    return bounds


def find_slot(slots: Sequence[dict] | None, amount: Decimal) -> dict | None:
    """Return the first slot whose inclusive ``[min, max]`` range holds ``amount``."""
    for slot in slots or []:
        bounds = parse_slot(slot.get("slot"))
        if bounds is None:
            continue
        low, high = bounds
        if low <= amount <= high:
            return slot
    return None


def commission_for(commission_type: str | None, slots: Sequence[dict] | None, amount) -> Decimal:
    amount = round2(amount)
    slot = find_slot(slots, amount)
    if slot is None:
        return ZERO
    rate = to_amount(slot.get("amount"))
    if is_percentage(commission_type):
        return round2(amount * rate / 100)
    return rate


def split_tip(tips, staff_count: int) -> Decimal:
    """Equal share of a payment's tip; the rounding remainder is not reconciled."""
    if staff_count <= 0:
        return ZERO
    return round2(Decimal(str(tips)) / staff_count)


def distinct_staff(staff_ids: Iterable[int | None]) -> list[int]:
    """Distinct, non-null staff ids in first-seen order."""
    seen: dict[int, None] = {}
    for staff_id in staff_ids:
        if staff_id is not None:
            seen.setdefault(staff_id, None)
    return list(seen)

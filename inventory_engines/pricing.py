"""
Module: inventory_engines.pricing
Responsibility:
    Price a supplier receipt: per-line gross/discount/net, then the
    header's sub-total, bill discount, charges, round-off and grand total.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Every amount is rounded to 2 decimal places with ROUND_HALF_UP.
    - A discount never exceeds the amount it applies to.
    - Shipping and other charges are non-negative; round-off may be
      either sign; the grand total may not be negative.

Failure modes:
    - ValidationError on negative rates/charges/discount values,
      non-positive quantities, unknown discount kinds, or a negative
      grand total.

Usage:
    totals = price_receipt(
        lines=[ReceiptLineInput("BK-1", 10, Decimal("120"), Discount.percent("10"))],
        bill_discount=Discount.amount("50"),
        shipping=Decimal("40"),
    )
    totals.grand_total  # Decimal("1070.00")
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum

from inventory_engines.tracer import traced_engine
from inventory_kernel.exceptions import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_decimal(value: object, field: str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{field} is not a number", field=field, value=value) from exc


def round2(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class DiscountKind(str, Enum):
    NONE = "NONE"
    PERCENT = "PERCENT"
    AMOUNT = "AMOUNT"


@dataclass(frozen=True)
class Discount:
    """
    Discount as a tagged value: none, a percentage, or a flat amount.

    Construct through ``none()``, ``percent()``, ``amount()`` or ``parse()``.
    """

    kind: DiscountKind = DiscountKind.NONE
    value: Decimal = ZERO

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", DiscountKind(self.kind))
        value = to_decimal(self.value, "discount")
        if value < 0:
            raise ValidationError("discount must not be negative", field="discount", value=value)
        object.__setattr__(self, "value", value)

    @classmethod
    def none(cls) -> Discount:
        return cls(DiscountKind.NONE, ZERO)

    @classmethod
    def percent(cls, value: object) -> Discount:
        return cls(DiscountKind.PERCENT, to_decimal(value, "discount"))

    @classmethod
    def amount(cls, value: object) -> Discount:
        return cls(DiscountKind.AMOUNT, to_decimal(value, "discount"))

    @classmethod
    def parse(cls, kind: str | None, value: object = None) -> Discount:
        """Build from loosely-typed input, e.g. ("percent", "12.5")."""
        key = (kind or "NONE").strip().upper()
        try:
            discount_kind = DiscountKind(key)
        except ValueError as exc:
            raise ValidationError(
                f"unknown discount type {kind!r}", field="discount_type", value=kind
            ) from exc
        if discount_kind is DiscountKind.NONE:
            return cls.none()
        return cls(discount_kind, to_decimal(value if value is not None else 0, "discount"))


def resolve_discount(discount: Discount, base: Decimal) -> Decimal:
    """Money taken off ``base`` by ``discount``, capped at ``base``."""
    match discount.kind:
        case DiscountKind.NONE:
            off = ZERO
        case DiscountKind.PERCENT:
            off = round2(base * discount.value / HUNDRED)
        case DiscountKind.AMOUNT:
            off = round2(discount.value)
    return min(off, base)


@dataclass(frozen=True)
class ReceiptLineInput:
    item_id: str
    qty: int
    rate: Decimal
    discount: Discount = Discount()


@dataclass(frozen=True)
class PricedLine:
    item_id: str
    qty: int
    rate: Decimal
    gross: Decimal
    discount: Decimal
    net: Decimal


@dataclass(frozen=True)
class ReceiptTotals:
    """
    Fully priced receipt.

    Guarantees:
        grand_total == sub_total - bill_discount + shipping + other + round_off
    """

    lines: tuple[PricedLine, ...]
    sub_total: Decimal
    bill_discount: Decimal
    shipping: Decimal
    other_charges: Decimal
    round_off: Decimal
    grand_total: Decimal


def price_line(line: ReceiptLineInput) -> PricedLine:
    if isinstance(line.qty, bool) or not isinstance(line.qty, int) or line.qty <= 0:
        raise ValidationError("qty must be a positive integer", field="qty", value=line.qty)
    rate = to_decimal(line.rate, "rate")
    if rate < 0:
        raise ValidationError("rate must not be negative", field="rate", value=rate)
    rate = round2(rate)
    gross = round2(rate * line.qty)
    discount = resolve_discount(line.discount, gross)
    return PricedLine(
        item_id=line.item_id,
        qty=line.qty,
        rate=rate,
        gross=gross,
        discount=discount,
        net=round2(gross - discount),
    )


@traced_engine(
    "receipt_pricing",
    "1.0",
    fingerprint_fields=("lines", "bill_discount", "shipping", "other_charges", "round_off"),
)
def price_receipt(
    lines: Sequence[ReceiptLineInput],
    bill_discount: Discount | None = None,
    shipping: object = ZERO,
    other_charges: object = ZERO,
    round_off: object = ZERO,
) -> ReceiptTotals:
    """Price every line and the header.

    Raises:
        ValidationError: no lines, negative charges, or grand total < 0.
    """
    if not lines:
        raise ValidationError("receipt needs at least one line", field="lines")

    priced = tuple(price_line(line) for line in lines)
    sub_total = round2(sum((p.net for p in priced), ZERO))
    bill_off = resolve_discount(bill_discount or Discount.none(), sub_total)

    ship = round2(to_decimal(shipping, "shipping"))
    other = round2(to_decimal(other_charges, "other_charges"))
    if ship < 0:
        raise ValidationError("shipping must not be negative", field="shipping", value=ship)
    if other < 0:
        raise ValidationError(
            "other_charges must not be negative", field="other_charges", value=other
        )
    ro = round2(to_decimal(round_off, "round_off"))

    grand_total = round2(sub_total - bill_off + ship + other + ro)
    if grand_total < 0:
        raise ValidationError(
            "grand_total cannot be negative", field="grand_total", value=grand_total
        )

    return ReceiptTotals(
        lines=priced,
        sub_total=sub_total,
        bill_discount=bill_off,
        shipping=ship,
        other_charges=other,
        round_off=ro,
        grand_total=grand_total,
    )

# storefront/utils/money.py
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping

from storefront.utils.settings import FREE_SHIPPING_THRESHOLD, SHIPPING_FEE

TWOPLACES = Decimal("0.01")


def to_money(value) -> Decimal:
    if value is None or value == "":
        return Decimal("0.00")
    return Decimal(str(value)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def to_minor_units(amount) -> int:
    """Amount in the processor's minor unit (tiyn for KZT), half-up rounded."""
    minor = (Decimal(str(amount)) * Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(minor)


def lines_subtotal(lines: Iterable[Mapping]) -> Decimal:
    return sum((to_money(line["price"]) * line["quantity"] for line in lines), Decimal("0.00"))


def shipping_for(subtotal: Decimal) -> Decimal:
    #free shipping from the threshold up, nothing to ship for an empty basket
    if subtotal <= 0 or subtotal >= FREE_SHIPPING_THRESHOLD:
        return Decimal("0.00")
    return to_money(SHIPPING_FEE)

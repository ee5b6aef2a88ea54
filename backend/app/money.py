"""
Order money calculation (GST, shipping).

All arithmetic is Decimal. Nothing is rounded until the very end, so a
subtotal of 29.97 keeps GST at 2.997 until the totals are presented.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable


GST_RATE = Decimal("0.10")
CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Decimal from Decimal/int/str/float; None and blanks become 0."""
    if value is None:
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("booleans are not money")
    if isinstance(value, (int, str)):
        return Decimal(value) if str(value).strip() else Decimal(0)
    if isinstance(value, float):
        return Decimal(str(value))
    raise TypeError(f"cannot convert {type(value).__name__} to Decimal")


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def calc_order_money(
    lines: Iterable[tuple[Any, int]],
    shipping_cost: Any = None,
    shipping_gst_incl: bool | None = True,
) -> dict[str, Decimal]:
    """
    lines: (unit_price, quantity) pairs, prices ex-GST.
    shipping_gst_incl=None is treated as GST-inclusive.
    """
    product_subtotal = Decimal(0)
    for unit_price, quantity in lines:
        product_subtotal += to_decimal(unit_price) * int(quantity or 0)

    shipping = to_decimal(shipping_cost)
    if shipping_gst_incl is None or shipping_gst_incl:
        shipping_ex_gst = shipping / (1 + GST_RATE)
    else:
        shipping_ex_gst = shipping

    gst_on_products = product_subtotal * GST_RATE
    gst_on_shipping = shipping_ex_gst * GST_RATE

    subtotal_ex_gst = product_subtotal + shipping_ex_gst
    gst_total = gst_on_products + gst_on_shipping
    grand_total = subtotal_ex_gst + gst_total

    return {
        "product_subtotal": round_money(product_subtotal),
        "shipping_ex_gst": round_money(shipping_ex_gst),
        "gst_on_products": round_money(gst_on_products),
        "gst_on_shipping": round_money(gst_on_shipping),
        "subtotal_ex_gst": round_money(subtotal_ex_gst),
        "gst_total": round_money(gst_total),
        "total_with_gst": round_money(grand_total),
    }


def calc_money_for_order(order) -> dict[str, Decimal]:
    """calc_order_money over an Order model with its items loaded."""
    lines = [
        (item.product.price if item.product else None, item.quantity)
        for item in order.items
    ]
    return calc_order_money(lines, order.shipping_cost, order.shipping_gst_incl)

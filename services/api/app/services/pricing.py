from __future__ import annotations

import math

from packages.shared.schemas.checkout_v1 import CartLineV1, CouponV1, DiscountTypeV1

# Used whenever the shipping-rate service cannot give us a usable number.
DEFAULT_SHIPPING_FEE = 25000


def effective_unit_price(line: CartLineV1) -> int:
    if line.discount_price is not None and 0 < line.discount_price < line.unit_price:
        return line.discount_price
    return line.unit_price


def line_subtotal(line: CartLineV1) -> int:
    return effective_unit_price(line) * line.quantity


def reprice_lines(lines: list[CartLineV1]) -> list[CartLineV1]:
    """Return copies of ``lines`` with ``subtotal`` recomputed from price and quantity."""

    return [line.model_copy(update={"subtotal": line_subtotal(line)}) for line in lines]


def items_total(lines: list[CartLineV1]) -> int:
    return sum(line_subtotal(line) for line in lines)


def total_amount(
    *,
    items_total: int,
    service_fee: int,
    shipping_fee: int,
    discount_amount: int,
) -> int:
    return items_total + service_fee + shipping_fee - discount_amount


def coupon_discount(coupon: CouponV1, order_value: int) -> int:
    """Discount a coupon grants on ``order_value``.

    Percentage coupons round down to whole dong. The discount never exceeds the order value.
    """

    if coupon.discount_type == DiscountTypeV1.PERCENTAGE:
        discount = order_value * coupon.discount_value // 100
    else:
        discount = coupon.discount_value
    return max(0, min(discount, order_value))


def format_vnd(amount: int) -> str:
    return f"{amount:,}".replace(",", ".") + "đ"


def is_valid_shipping_fee(fee: object) -> bool:
    if isinstance(fee, bool) or not isinstance(fee, (int, float)):
        return False
    return math.isfinite(fee) and fee > 0 and float(fee).is_integer()

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from storefront_orders.domain.exceptions import (
    CouponInactive, CouponMinCartNotMet, CouponUsageExceeded
)
from storefront_orders.domain.models import Coupon, DiscountType, OrderItem

MINOR_UNIT = Decimal("0.01")


def to_money(amount) -> Decimal:
    return Decimal(str(amount)).quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Сумма в минимальных единицах валюты, как ждут платежные шлюзы"""
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def subtotal_of(items: Iterable[OrderItem]) -> Decimal:
    return to_money(sum((item.line_total for item in items), Decimal("0")))


def ensure_applicable(coupon: Coupon, subtotal: Decimal) -> None:
    """Проверки идут в фиксированном порядке, клиент видит первое нарушенное правило"""
    if not coupon.is_active:
        raise CouponInactive(coupon.code)
    if subtotal < coupon.min_cart_value:
        raise CouponMinCartNotMet(coupon.code, coupon.min_cart_value, subtotal)
    if coupon.usage_exhausted():
        raise CouponUsageExceeded(coupon.code)


def compute_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    if coupon.discount_type == DiscountType.FLAT:
        discount = min(coupon.value, subtotal)
    else:
        discount = subtotal * coupon.value / Decimal("100")
    # итог не меньше нуля
    return min(to_money(discount), subtotal)

import logging
from decimal import Decimal
from typing import List, Optional

from storefront_orders.application.interfaces import CatalogService
from storefront_orders.domain.exceptions import (
    ValidationError, ProductNotFoundError, ProductOutOfStockError, CouponNotFound
)
from storefront_orders.domain.models import CartLine, Coupon, OrderItem, PriceQuote
from storefront_orders.domain.pricing import (
    compute_discount, ensure_applicable, subtotal_of, to_money
)

logger = logging.getLogger(__name__)

MAX_CART_LINES = 50
MAX_LINE_QUANTITY = 100


def validate_cart(cart_lines: List[CartLine]) -> None:
    if not cart_lines:
        raise ValidationError("Order must have at least one item")
    if len(cart_lines) > MAX_CART_LINES:
        raise ValidationError(f"Order cannot contain more than {MAX_CART_LINES} items")
    product_ids = [line.product_id for line in cart_lines]
    if len(product_ids) != len(set(product_ids)):
        raise ValidationError("Order contains duplicate products")
    for line in cart_lines:
        if line.quantity <= 0:
            raise ValidationError(f"Product {line.product_id}: quantity must be positive")
        if line.quantity > MAX_LINE_QUANTITY:
            raise ValidationError(
                f"Product {line.product_id}: quantity exceeds maximum ({MAX_LINE_QUANTITY})"
            )


class PricingEngine:
    """Расчет цены на сервере: цены берутся из каталога, не из корзины клиента"""

    def __init__(self, catalog_service: CatalogService):
        self._catalog = catalog_service

    async def price_items(self, cart_lines: List[CartLine]) -> List[OrderItem]:
        validate_cart(cart_lines)
        items = []
        for line in cart_lines:
            product = await self._catalog.get_product(line.product_id)
            if not product:
                raise ProductNotFoundError(f"Product not found: {line.product_id}")
            if not product.in_stock:
                raise ProductOutOfStockError(f"Product {product.name} is out of stock")
            items.append(OrderItem(
                product_id=product.id,
                snapshot=product.snapshot(),
                quantity=line.quantity,
                unit_price=to_money(product.price)
            ))
        return items

    async def validate_and_price(
        self, uow, cart_lines: List[CartLine], coupon_code: Optional[str] = None
    ) -> PriceQuote:
        items = await self.price_items(cart_lines)
        subtotal = subtotal_of(items)

        coupon = None
        discount = Decimal("0.00")
        if coupon_code:
            coupon = await self.resolve_coupon(uow, coupon_code, subtotal)
            discount = compute_discount(coupon, subtotal)

        total = subtotal - discount
        logger.info(
            f"Корзина рассчитана: subtotal={subtotal} discount={discount} total={total} "
            f"coupon={coupon.code if coupon else None}"
        )
        return PriceQuote(
            items=items,
            subtotal=subtotal,
            discount=discount,
            total=total,
            applied_coupon=coupon
        )

    @staticmethod
    async def resolve_coupon(uow, coupon_code: str, subtotal: Decimal) -> Coupon:
        code = Coupon.normalize_code(coupon_code)
        coupon = await uow.coupons.get_by_code(code)
        if not coupon:
            raise CouponNotFound(code)
        ensure_applicable(coupon, subtotal)
        return coupon

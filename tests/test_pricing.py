"""
Tests for server-side pricing and discount math.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from storefront_orders.application.pricing import PricingEngine, validate_cart
from storefront_orders.domain.exceptions import (
    CouponInactive, CouponMinCartNotMet, CouponNotFound, CouponUsageExceeded,
    ProductNotFoundError, ProductOutOfStockError, ValidationError
)
from storefront_orders.domain.models import CartLine, Coupon, DiscountType
from storefront_orders.domain.pricing import (
    compute_discount, ensure_applicable, to_minor_units, to_money
)


def make_coupon(discount_type=DiscountType.FLAT, value="100", **kwargs):
    now = datetime.now(timezone.utc)
    return Coupon(
        id="c-1",
        code=kwargs.pop("code", "SAVE100"),
        discount_type=discount_type,
        value=Decimal(value),
        created_at=now,
        updated_at=now,
        **kwargs
    )


def test_flat_discount():
    coupon = make_coupon(DiscountType.FLAT, "100")
    assert compute_discount(coupon, Decimal("1000.00")) == Decimal("100.00")


def test_percentage_discount():
    coupon = make_coupon(DiscountType.PERCENTAGE, "10")
    assert compute_discount(coupon, Decimal("1000.00")) == Decimal("100.00")


def test_percentage_discount_rounds_to_minor_unit():
    coupon = make_coupon(DiscountType.PERCENTAGE, "10")
    assert compute_discount(coupon, Decimal("999.00")) == Decimal("99.90")

    coupon = make_coupon(DiscountType.PERCENTAGE, "12.5")
    # 12.5% of 10.05 is 1.25625
    assert compute_discount(coupon, Decimal("10.05")) == Decimal("1.26")


def test_flat_discount_capped_at_subtotal():
    coupon = make_coupon(DiscountType.FLAT, "500")
    discount = compute_discount(coupon, Decimal("300.00"))
    assert discount == Decimal("300.00")
    assert Decimal("300.00") - discount == Decimal("0")


def test_money_helpers():
    assert to_money("1.005") == Decimal("1.01")
    assert to_minor_units(Decimal("899.10")) == 89910
    assert to_minor_units(Decimal("1000")) == 100000


def test_coupon_checks_report_first_failing_rule():
    """Inactive wins over the minimum cart, which wins over exhaustion."""
    coupon = make_coupon(is_active=False, min_cart_value=Decimal("5000"), usage_count=3, max_usage=3)
    with pytest.raises(CouponInactive):
        ensure_applicable(coupon, Decimal("1000"))

    coupon = make_coupon(min_cart_value=Decimal("5000"), usage_count=3, max_usage=3)
    with pytest.raises(CouponMinCartNotMet):
        ensure_applicable(coupon, Decimal("1000"))

    coupon = make_coupon(usage_count=3, max_usage=3)
    with pytest.raises(CouponUsageExceeded):
        ensure_applicable(coupon, Decimal("1000"))


def test_uncapped_coupon_never_exhausted():
    coupon = make_coupon(usage_count=10_000, max_usage=None)
    ensure_applicable(coupon, Decimal("1000"))


@pytest.mark.parametrize("lines, message", [
    ([], "at least one item"),
    ([CartLine(product_id="laptop", quantity=0)], "quantity must be positive"),
    ([CartLine(product_id="laptop", quantity=101)], "exceeds maximum"),
    ([CartLine(product_id="laptop", quantity=1), CartLine(product_id="laptop", quantity=2)], "duplicate"),
    ([CartLine(product_id=f"p{i}", quantity=1) for i in range(51)], "more than 50"),
])
def test_validate_cart_rejects(lines, message):
    with pytest.raises(ValidationError, match=message):
        validate_cart(lines)


@pytest.mark.asyncio
async def test_prices_come_from_catalog(catalog, uow):
    engine = PricingEngine(catalog)
    async with uow() as u:
        quote = await engine.validate_and_price(u, [
            CartLine(product_id="laptop", quantity=1),
            CartLine(product_id="mouse", quantity=2),
        ])

    assert quote.subtotal == Decimal("1501.00")
    assert quote.discount == Decimal("0.00")
    assert quote.total == Decimal("1501.00")
    assert [item.snapshot.name for item in quote.items] == ["Laptop", "Mouse"]
    assert quote.items[1].unit_price == Decimal("250.50")


@pytest.mark.asyncio
async def test_unknown_and_out_of_stock_products(catalog, uow):
    engine = PricingEngine(catalog)
    async with uow() as u:
        with pytest.raises(ProductNotFoundError):
            await engine.validate_and_price(u, [CartLine(product_id="ghost", quantity=1)])
        with pytest.raises(ProductOutOfStockError, match="USB Cable is out of stock"):
            await engine.validate_and_price(u, [CartLine(product_id="cable", quantity=1)])


@pytest.mark.asyncio
async def test_coupon_code_is_normalized(catalog, uow, create_coupon):
    await create_coupon("SAVE100", DiscountType.FLAT, "100")
    engine = PricingEngine(catalog)
    async with uow() as u:
        quote = await engine.validate_and_price(u, [CartLine(product_id="laptop", quantity=1)], " save100 ")

    assert quote.applied_coupon.code == "SAVE100"
    assert quote.discount == Decimal("100.00")
    assert quote.total == Decimal("900.00")


@pytest.mark.asyncio
async def test_unknown_coupon(catalog, uow):
    engine = PricingEngine(catalog)
    async with uow() as u:
        with pytest.raises(CouponNotFound, match="Invalid coupon code"):
            await engine.validate_and_price(u, [CartLine(product_id="laptop", quantity=1)], "NOPE")

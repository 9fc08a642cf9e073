from decimal import Decimal

import pytest

from storefront_orders.application.create_order import CheckoutDTO, CheckoutUseCase
from storefront_orders.application.numbering import OrderNumberingAuthority
from storefront_orders.application.pricing import PricingEngine
from storefront_orders.domain.exceptions import (
    CouponNotFound, PaymentGatewayError, ProductOutOfStockError, ValidationError
)
from storefront_orders.domain.models import CartLine, DiscountType, OrderStatus, PaymentStatus, Product


class FailingGateway:
    async def create_order(self, amount, currency, receipt):
        raise PaymentGatewayError("Payment gateway unavailable")


@pytest.mark.asyncio
async def test_checkout_creates_pending_order(place_order, gateway, uow):
    order = await place_order(items=[
        CartLine(product_id="laptop", quantity=1),
        CartLine(product_id="mouse", quantity=2),
    ])

    assert order.status == OrderStatus.PENDING
    assert order.payment_status == PaymentStatus.PENDING
    assert order.subtotal == Decimal("1501.00")
    assert order.total_amount == Decimal("1501.00")
    assert order.currency == "INR"
    assert order.gateway_order_id == gateway.orders[0]["id"]
    assert gateway.orders[0]["amount"] == 150100
    assert gateway.orders[0]["currency"] == "INR"
    assert gateway.orders[0]["receipt"].startswith("receipt_")

    async with uow() as u:
        stored = await u.orders.get_by_order_number(order.order_number)
    assert stored.user_id == "user-1"
    assert [(item.product_id, item.quantity) for item in stored.items] == [("laptop", 1), ("mouse", 2)]
    assert stored.shipping_address.pincode == "560001"


@pytest.mark.asyncio
async def test_coupon_applied_but_not_consumed_at_checkout(place_order, create_coupon, gateway, uow):
    await create_coupon("SAVE100", DiscountType.FLAT, "100", max_usage=5)
    order = await place_order(coupon_code="save100")

    assert order.coupon_code == "SAVE100"
    assert order.discount_amount == Decimal("100.00")
    assert order.total_amount == Decimal("900.00")
    assert gateway.orders[0]["amount"] == 90000

    async with uow() as u:
        coupon = await u.coupons.get_by_code("SAVE100")
    assert coupon.usage_count == 0


@pytest.mark.asyncio
async def test_percentage_coupon(place_order, create_coupon):
    await create_coupon("TEN", DiscountType.PERCENTAGE, "10")
    order = await place_order(coupon_code="TEN")
    assert order.discount_amount == Decimal("100.00")
    assert order.total_amount == Decimal("900.00")


@pytest.mark.asyncio
async def test_idempotency_key_returns_existing_order(place_order, gateway):
    first = await place_order(idempotency_key="cart-42")
    second = await place_order(idempotency_key="cart-42")

    assert second.id == first.id
    assert second.order_number == first.order_number
    assert len(gateway.orders) == 1


@pytest.mark.asyncio
async def test_idempotency_key_is_scoped_to_user(place_order, gateway):
    alice = await place_order(user_id="alice", idempotency_key="k-1")
    bob = await place_order(user_id="bob", idempotency_key="k-1")

    assert bob.id != alice.id
    assert bob.user_id == "bob"
    assert bob.gateway_order_id != alice.gateway_order_id
    assert len(gateway.orders) == 2

    again = await place_order(user_id="alice", idempotency_key="k-1")
    assert again.id == alice.id


@pytest.mark.asyncio
async def test_snapshot_survives_catalog_changes(place_order, catalog, uow):
    order = await place_order()
    catalog.products["laptop"] = Product(id="laptop", name="Laptop v2", price=Decimal("1500.00"))

    async with uow() as u:
        stored = await u.orders.get_by_order_number(order.order_number)
    item = stored.items[0]
    assert item.snapshot.name == "Laptop"
    assert item.unit_price == Decimal("1000.00")
    assert stored.total_amount == Decimal("1000.00")


@pytest.mark.asyncio
@pytest.mark.parametrize("field, value, message", [
    ("pincode", "12345", "Pincode"),
    ("phone", "98765", "Phone"),
    ("city", "  ", "required"),
])
async def test_invalid_shipping_address(checkout, gateway, address, field, value, message):
    bad_address = address.model_copy(update={field: value})
    with pytest.raises(ValidationError, match=message):
        await checkout(CheckoutDTO(
            user_id="user-1",
            items=[CartLine(product_id="laptop", quantity=1)],
            shipping_address=bad_address,
        ))
    assert gateway.orders == []


@pytest.mark.asyncio
async def test_rejected_carts_persist_nothing(place_order, gateway, uow):
    with pytest.raises(ProductOutOfStockError):
        await place_order(items=[CartLine(product_id="cable", quantity=1)])
    with pytest.raises(CouponNotFound):
        await place_order(coupon_code="MISSING")
    with pytest.raises(ValidationError):
        await place_order(items=[CartLine(product_id="laptop", quantity=0)])

    assert gateway.orders == []
    async with uow() as u:
        _, total = await u.orders.list_for_user("user-1", 0, 10)
    assert total == 0


@pytest.mark.asyncio
async def test_gateway_failure_persists_nothing(uow, catalog, address):
    use_case = CheckoutUseCase(
        uow, PricingEngine(catalog), FailingGateway(), OrderNumberingAuthority("ORD", 6), "INR"
    )
    with pytest.raises(PaymentGatewayError):
        await use_case(CheckoutDTO(
            user_id="user-1",
            items=[CartLine(product_id="laptop", quantity=1)],
            shipping_address=address,
        ))

    async with uow() as u:
        _, total = await u.orders.list_for_user("user-1", 0, 10)
    assert total == 0

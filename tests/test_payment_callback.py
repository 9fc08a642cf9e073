"""
Tests for payment confirmation: signature gate, idempotent replays,
coupon consumption and the confirmation event.
"""

import asyncio
from decimal import Decimal

import pytest

from storefront_orders.application.cancel_order import CancelOrderDTO, CancelOrderUseCase
from storefront_orders.application.process_payment import (
    PaymentCallbackDTO, PaymentFailureDTO, ProcessPaymentCallbackUseCase, ReportPaymentFailureUseCase
)
from storefront_orders.domain.exceptions import (
    CouponUsageExceeded, InvalidTransition, OrderNotFoundError, PaymentVerificationFailed
)
from storefront_orders.domain.models import CartLine, DiscountType, OrderStatus, PaymentStatus


async def events_for(uow, order):
    async with uow() as u:
        return await u.outbox.get_for_order(order.id)


async def coupon_usage(uow, code):
    async with uow() as u:
        return (await u.coupons.get_by_code(code)).usage_count


@pytest.mark.asyncio
async def test_verified_payment_confirms_order(place_order, pay_order, uow):
    order = await place_order()
    result = await pay_order(order, payment_id="pay_001")

    assert result.already_processed is False
    assert result.order.status == OrderStatus.CONFIRMED
    assert result.order.payment_status == PaymentStatus.COMPLETED
    assert result.order.gateway_payment_id == "pay_001"
    assert result.order.version == order.version + 1

    events = await events_for(uow, order)
    assert [event["event_type"] for event in events] == ["order.confirmed"]
    payload = events[0]["event_data"]
    assert payload["order_number"] == order.order_number
    assert payload["user_id"] == "user-1"
    assert payload["order"]["status"] == "confirmed"


@pytest.mark.asyncio
async def test_confirmation_event_carries_stock_decrements(place_order, pay_order, uow, verifier, sign):
    order = await place_order(items=[
        CartLine(product_id="laptop", quantity=2),
        CartLine(product_id="mouse", quantity=3),
    ])

    with pytest.raises(PaymentVerificationFailed):
        await ProcessPaymentCallbackUseCase(uow, verifier)(PaymentCallbackDTO(
            gateway_order_id=order.gateway_order_id,
            gateway_payment_id="pay_001",
            gateway_signature=sign(order.gateway_order_id, "pay_other"),
        ))
    assert await events_for(uow, order) == []

    await pay_order(order, payment_id="pay_001")
    await pay_order(order, payment_id="pay_001")

    events = await events_for(uow, order)
    assert len(events) == 1
    assert sorted(events[0]["event_data"]["stock_decrements"], key=lambda line: line["product_id"]) == [
        {"product_id": "laptop", "quantity": 2},
        {"product_id": "mouse", "quantity": 3},
    ]


@pytest.mark.asyncio
async def test_duplicate_callback_is_idempotent(place_order, pay_order, create_coupon, uow):
    await create_coupon("SAVE100", DiscountType.FLAT, "100", max_usage=10)
    order = await place_order(coupon_code="SAVE100")

    first = await pay_order(order, payment_id="pay_001")
    second = await pay_order(order, payment_id="pay_001")

    assert first.already_processed is False
    assert second.already_processed is True
    assert second.order.status == OrderStatus.CONFIRMED
    assert await coupon_usage(uow, "SAVE100") == 1
    assert len(await events_for(uow, order)) == 1


@pytest.mark.asyncio
async def test_concurrent_duplicate_callbacks_confirm_once(place_order, pay_order, create_coupon, uow):
    await create_coupon("SAVE100", DiscountType.FLAT, "100")
    order = await place_order(coupon_code="SAVE100")

    results = await asyncio.gather(*(pay_order(order, payment_id="pay_001") for _ in range(3)))

    assert sorted(result.already_processed for result in results) == [False, True, True]
    assert await coupon_usage(uow, "SAVE100") == 1
    assert len(await events_for(uow, order)) == 1


@pytest.mark.asyncio
async def test_tampered_signature_marks_payment_failed(place_order, create_coupon, uow, verifier, sign):
    await create_coupon("SAVE100", DiscountType.FLAT, "100")
    order = await place_order(coupon_code="SAVE100")
    signature = sign(order.gateway_order_id, "pay_001")

    with pytest.raises(PaymentVerificationFailed, match="Invalid payment signature"):
        await ProcessPaymentCallbackUseCase(uow, verifier)(PaymentCallbackDTO(
            gateway_order_id=order.gateway_order_id,
            gateway_payment_id="pay_002",
            gateway_signature=signature,
        ))

    async with uow() as u:
        stored = await u.orders.get_by_id(order.id)
    assert stored.status == OrderStatus.PENDING
    assert stored.payment_status == PaymentStatus.FAILED
    assert stored.gateway_payment_id is None
    assert await coupon_usage(uow, "SAVE100") == 0
    assert await events_for(uow, order) == []


@pytest.mark.asyncio
async def test_tampered_signature_does_not_touch_paid_order(place_order, pay_order, uow, verifier):
    order = await place_order()
    await pay_order(order, payment_id="pay_001")

    with pytest.raises(PaymentVerificationFailed):
        await ProcessPaymentCallbackUseCase(uow, verifier)(PaymentCallbackDTO(
            gateway_order_id=order.gateway_order_id,
            gateway_payment_id="pay_001",
            gateway_signature="0" * 64,
        ))

    async with uow() as u:
        stored = await u.orders.get_by_id(order.id)
    assert stored.status == OrderStatus.CONFIRMED
    assert stored.payment_status == PaymentStatus.COMPLETED


@pytest.mark.asyncio
async def test_retry_after_failed_payment(place_order, pay_order, uow):
    order = await place_order()
    failed = await ReportPaymentFailureUseCase(uow)(PaymentFailureDTO(
        gateway_order_id=order.gateway_order_id, gateway_payment_id="pay_001", reason="card declined"
    ))
    assert failed.status == OrderStatus.PENDING
    assert failed.payment_status == PaymentStatus.FAILED

    result = await pay_order(order, payment_id="pay_002")
    assert result.order.status == OrderStatus.CONFIRMED
    assert result.order.payment_status == PaymentStatus.COMPLETED
    assert result.order.gateway_payment_id == "pay_002"


@pytest.mark.asyncio
async def test_failure_report_is_noop_outside_pending(place_order, pay_order, uow):
    order = await place_order()
    report = ReportPaymentFailureUseCase(uow)
    dto = PaymentFailureDTO(gateway_order_id=order.gateway_order_id)

    first = await report(dto)
    second = await report(dto)
    assert first.version == second.version

    await pay_order(order)
    paid = await report(dto)
    assert paid.payment_status == PaymentStatus.COMPLETED


@pytest.mark.asyncio
async def test_unknown_gateway_order(pay_order, place_order):
    order = await place_order()
    ghost = order.model_copy(update={"gateway_order_id": "order_unknown"})
    with pytest.raises(OrderNotFoundError):
        await pay_order(ghost)


@pytest.mark.asyncio
async def test_cancelled_order_cannot_be_paid(place_order, pay_order, uow):
    order = await place_order()
    await CancelOrderUseCase(uow)(CancelOrderDTO(order_number=order.order_number))

    with pytest.raises(InvalidTransition):
        await pay_order(order)


@pytest.mark.asyncio
async def test_coupon_cap_never_exceeded(place_order, pay_order, create_coupon, uow):
    """Three orders hold a coupon capped at two; all are paid at once."""
    await create_coupon("LIMITED", DiscountType.FLAT, "50", max_usage=2)
    orders = [await place_order(coupon_code="LIMITED", user_id=f"user-{i}") for i in range(3)]

    results = await asyncio.gather(*(pay_order(order) for order in orders))

    assert await coupon_usage(uow, "LIMITED") == 2
    # the order that lost the race is still confirmed with its discount
    assert all(result.order.status == OrderStatus.CONFIRMED for result in results)
    assert all(result.order.discount_amount == Decimal("50.00") for result in results)

    with pytest.raises(CouponUsageExceeded):
        await place_order(coupon_code="LIMITED")

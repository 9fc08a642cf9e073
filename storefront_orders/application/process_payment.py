import logging
from datetime import datetime, timezone
from pydantic import BaseModel
from typing import Optional

from storefront_orders.domain.events import OrderEventType, order_event
from storefront_orders.domain.models import Order, PaymentStatus
from storefront_orders.domain.exceptions import (
    OrderNotFoundError, PaymentVerificationFailed, ConcurrentUpdateError, InvalidTransition
)
from storefront_orders.domain.state_machine import check_payment_transition, status_after_payment
from storefront_orders.application.payment_verifier import PaymentVerifier

logger = logging.getLogger(__name__)


class PaymentCallbackDTO(BaseModel):
    gateway_order_id: str
    gateway_payment_id: str
    gateway_signature: str


class PaymentFailureDTO(BaseModel):
    gateway_order_id: str
    gateway_payment_id: Optional[str] = None
    reason: Optional[str] = None


class PaymentResult(BaseModel):
    order: Order
    already_processed: bool = False


async def _load_by_gateway_order(uow, gateway_order_id: str) -> Order:
    order = await uow.orders.get_by_gateway_order_id(gateway_order_id)
    if not order:
        raise OrderNotFoundError(f"Order for gateway order {gateway_order_id} not found")
    return order


class ProcessPaymentCallbackUseCase:
    """Подтверждает заказ после проверки подписи шлюза.

    Только проверенная подпись переводит оплату в ``completed``. Использование
    купона и событие подтверждения пишутся в той же транзакции, что и смена
    статуса. Повторный callback для оплаченного заказа ничего не меняет.
    """

    def __init__(self, unit_of_work, verifier: PaymentVerifier):
        self._uow = unit_of_work
        self._verifier = verifier

    async def __call__(self, dto: PaymentCallbackDTO) -> PaymentResult:
        logger.info(f"Callback оплаты для заказа в шлюзе {dto.gateway_order_id}")

        verified = self._verifier.verify(
            dto.gateway_order_id, dto.gateway_payment_id, dto.gateway_signature
        )
        if not verified:
            await self._mark_failed(dto.gateway_order_id)
            raise PaymentVerificationFailed("Invalid payment signature")

        async with self._uow() as uow:
            order = await _load_by_gateway_order(uow, dto.gateway_order_id)

            # Идемпотентность
            if order.is_paid():
                logger.info(f"Оплата заказа {order.order_number} уже обработана")
                return PaymentResult(order=order, already_processed=True)

            if not order.can_be_paid():
                logger.error(
                    f"Проверенная оплата {dto.gateway_payment_id} для заказа {order.order_number} "
                    f"в статусе {order.status.value}/{order.payment_status.value}"
                )
                raise InvalidTransition(order.status, status_after_payment(order.status), "order is not payable")
            check_payment_transition(order.payment_status, PaymentStatus.COMPLETED)

            applied = await uow.orders.compare_and_set(
                order.id,
                order.version,
                status=status_after_payment(order.status),
                payment_status=PaymentStatus.COMPLETED,
                gateway_payment_id=dto.gateway_payment_id,
                gateway_signature=dto.gateway_signature,
                updated_at=datetime.now(timezone.utc)
            )
            if not applied:
                current = await uow.orders.get_by_id(order.id)
                if current and current.is_paid():
                    logger.info(f"Оплата заказа {order.order_number} подтверждена параллельно")
                    return PaymentResult(order=current, already_processed=True)
                raise ConcurrentUpdateError(f"Order {order.order_number} was modified concurrently")

            if order.coupon_code:
                await self._consume_coupon(uow, order)

            confirmed = await uow.orders.get_by_id(order.id)
            await uow.outbox.create(
                event_type=OrderEventType.ORDER_CONFIRMED.value,
                event_data=order_event(OrderEventType.ORDER_CONFIRMED, confirmed),
                order_id=confirmed.id
            )
            await uow.commit()

        logger.info(f"Заказ {confirmed.order_number} оплачен, статус {confirmed.status.value}")
        return PaymentResult(order=confirmed)

    @staticmethod
    async def _consume_coupon(uow, order: Order) -> None:
        coupon = await uow.coupons.get_by_code(order.coupon_code)
        if not coupon:
            logger.warning(f"Купон {order.coupon_code} заказа {order.order_number} больше не существует")
            return
        if await uow.coupons.try_increment_usage(coupon.id):
            logger.info(f"Использование купона {coupon.code} увеличено заказом {order.order_number}")
        else:
            logger.warning(
                f"Лимит купона {coupon.code} исчерпан до оплаты заказа {order.order_number}, "
                f"использование не увеличено"
            )

    async def _mark_failed(self, gateway_order_id: str) -> None:
        async with self._uow() as uow:
            order = await _load_by_gateway_order(uow, gateway_order_id)
            if order.payment_status != PaymentStatus.PENDING:
                logger.info(
                    f"Отклоненный callback для заказа {order.order_number}, "
                    f"статус оплаты остается {order.payment_status.value}"
                )
                return
            applied = await uow.orders.compare_and_set(
                order.id,
                order.version,
                payment_status=PaymentStatus.FAILED,
                updated_at=datetime.now(timezone.utc)
            )
            if not applied:
                raise ConcurrentUpdateError(f"Order {order.order_number} was modified concurrently")
            await uow.commit()
            logger.info(f"Оплата заказа {order.order_number} помечена как failed")


class ReportPaymentFailureUseCase:
    """Ошибка оплаты от шлюза: заказ остается pending и его можно оплатить"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, dto: PaymentFailureDTO) -> Order:
        logger.info(f"Ошибка оплаты для заказа в шлюзе {dto.gateway_order_id}: {dto.reason}")

        async with self._uow() as uow:
            order = await _load_by_gateway_order(uow, dto.gateway_order_id)
            if order.payment_status == PaymentStatus.FAILED:
                return order
            if order.payment_status != PaymentStatus.PENDING:
                logger.warning(
                    f"Игнорируем ошибку оплаты для заказа {order.order_number} "
                    f"со статусом оплаты {order.payment_status.value}"
                )
                return order

            check_payment_transition(order.payment_status, PaymentStatus.FAILED)
            values = {
                "payment_status": PaymentStatus.FAILED,
                "updated_at": datetime.now(timezone.utc)
            }
            if dto.gateway_payment_id:
                values["gateway_payment_id"] = dto.gateway_payment_id
            applied = await uow.orders.compare_and_set(order.id, order.version, **values)
            if not applied:
                raise ConcurrentUpdateError(f"Order {order.order_number} was modified concurrently")
            failed = await uow.orders.get_by_id(order.id)
            await uow.commit()

        logger.info(f"Оплата заказа {failed.order_number} помечена как failed")
        return failed

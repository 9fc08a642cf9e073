import logging
from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel

from storefront_orders.domain.events import OrderEventType, order_event
from storefront_orders.domain.exceptions import OrderNotFoundError, ConcurrentUpdateError
from storefront_orders.domain.models import Order, OrderStatus, PaymentStatus
from storefront_orders.domain.state_machine import check_cancel, check_payment_transition

logger = logging.getLogger(__name__)


class CancelOrderDTO(BaseModel):
    order_number: str
    reason: Optional[str] = None


def append_note(notes: Optional[str], note: Optional[str]) -> Optional[str]:
    if not note:
        return notes
    return f"{notes}\n{note}" if notes else note


class CancelOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, dto: CancelOrderDTO) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_order_number(dto.order_number)
            if not order:
                raise OrderNotFoundError(f"Order {dto.order_number} not found")
            check_cancel(order.status)

            refund = order.payment_status == PaymentStatus.COMPLETED
            values = {
                "status": OrderStatus.CANCELLED,
                "updated_at": datetime.now(timezone.utc)
            }
            if refund:
                check_payment_transition(order.payment_status, PaymentStatus.REFUNDED)
                values["payment_status"] = PaymentStatus.REFUNDED
            if dto.reason:
                values["notes"] = append_note(order.notes, f"Cancelled: {dto.reason}")

            applied = await uow.orders.compare_and_set(order.id, order.version, **values)
            if not applied:
                raise ConcurrentUpdateError(f"Order {order.order_number} was modified concurrently")

            cancelled = await uow.orders.get_by_id(order.id)
            if refund:
                # сам возврат денег делает шлюз
                await uow.outbox.create(
                    event_type=OrderEventType.REFUND_INITIATED.value,
                    event_data=order_event(OrderEventType.REFUND_INITIATED, cancelled),
                    order_id=cancelled.id
                )
            await uow.commit()

        logger.info(
            f"Заказ {cancelled.order_number} отменен из {order.status.value}"
            f"{', возврат инициирован' if refund else ''}"
        )
        return cancelled

import logging
from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel

from storefront_orders.domain.events import OrderEventType, order_event
from storefront_orders.domain.exceptions import OrderNotFoundError, ConcurrentUpdateError
from storefront_orders.domain.models import Order, OrderStatus
from storefront_orders.domain.state_machine import check_advance
from storefront_orders.application.cancel_order import CancelOrderUseCase, CancelOrderDTO

logger = logging.getLogger(__name__)


class UpdateOrderStatusDTO(BaseModel):
    order_number: str
    status: OrderStatus
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    estimated_delivery: Optional[datetime] = None


class UpdateOrderStatusUseCase:
    """Оператор переводит заказ на один шаг по цепочке доставки.

    Повтор текущего статуса не меняет статус: tracking number, заметки и
    дата доставки все равно сохраняются для активных заказов. Финальные
    заказы возвращаются без изменений, события не пишутся.
    """

    def __init__(self, unit_of_work, cancel_order: CancelOrderUseCase):
        self._uow = unit_of_work
        self._cancel = cancel_order

    async def __call__(self, dto: UpdateOrderStatusDTO) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_order_number(dto.order_number)
            if not order:
                raise OrderNotFoundError(f"Order {dto.order_number} not found")

            if dto.status == order.status:
                return await self._attach_only(uow, order, dto)

            if dto.status != OrderStatus.CANCELLED:
                updated = await self._advance(uow, order, dto)
                logger.info(f"Заказ {updated.order_number}: {order.status.value} -> {updated.status.value}")
                return updated

        return await self._cancel(CancelOrderDTO(order_number=dto.order_number, reason=dto.notes))

    async def _advance(self, uow, order: Order, dto: UpdateOrderStatusDTO) -> Order:
        check_advance(order.status, dto.status)

        now = datetime.now(timezone.utc)
        values = self._attachments(dto)
        values["status"] = dto.status
        values["updated_at"] = now
        if dto.status == OrderStatus.DELIVERED:
            values["delivered_at"] = now

        applied = await uow.orders.compare_and_set(order.id, order.version, **values)
        if not applied:
            raise ConcurrentUpdateError(f"Order {order.order_number} was modified concurrently")

        updated = await uow.orders.get_by_id(order.id)
        if dto.status == OrderStatus.DELIVERED:
            await uow.outbox.create(
                event_type=OrderEventType.ORDER_DELIVERED.value,
                event_data=order_event(OrderEventType.ORDER_DELIVERED, updated),
                order_id=updated.id
            )
        await uow.commit()
        return updated

    @staticmethod
    def _attachments(dto: UpdateOrderStatusDTO) -> dict:
        values = {}
        if dto.tracking_number:
            values["tracking_number"] = dto.tracking_number
        if dto.notes:
            values["notes"] = dto.notes
        if dto.estimated_delivery:
            values["estimated_delivery"] = dto.estimated_delivery
        return values

    async def _attach_only(self, uow, order: Order, dto: UpdateOrderStatusDTO) -> Order:
        values = self._attachments(dto)
        if order.is_terminal() or not values:
            logger.info(f"Заказ {order.order_number} уже в статусе {order.status.value}, ничего не делаем")
            return order

        values["updated_at"] = datetime.now(timezone.utc)
        applied = await uow.orders.compare_and_set(order.id, order.version, **values)
        if not applied:
            raise ConcurrentUpdateError(f"Order {order.order_number} was modified concurrently")
        updated = await uow.orders.get_by_id(order.id)
        await uow.commit()
        logger.info(f"Данные заказа {order.order_number} обновлены в статусе {order.status.value}")
        return updated

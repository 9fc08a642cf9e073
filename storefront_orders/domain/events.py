from enum import Enum

from storefront_orders.domain.models import Order


class OrderEventType(str, Enum):
    ORDER_CONFIRMED = "order.confirmed"
    ORDER_DELIVERED = "order.delivered"
    REFUND_INITIATED = "order.refund_initiated"


def stock_decrements(order: Order) -> list:
    """Сколько единиц каждого товара списать после оплаты, по товару одна запись"""
    quantities = {}
    for item in order.items:
        quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity
    return [
        {"product_id": product_id, "quantity": quantity}
        for product_id, quantity in quantities.items()
    ]


def order_event(event_type: OrderEventType, order: Order) -> dict:
    """Payload события для сервиса уведомлений: полный JSON snapshot заказа.

    ``order.confirmed`` также несет ``stock_decrements``: сигнал каталогу
    списать оплаченные единицы со склада. Пишется только после проверки
    подписи оплаты.
    """
    payload = {
        "event_type": event_type.value,
        "order_number": order.order_number,
        "user_id": order.user_id,
        "order": order.model_dump(mode="json"),
    }
    if event_type == OrderEventType.ORDER_CONFIRMED:
        payload["stock_decrements"] = stock_decrements(order)
    return payload

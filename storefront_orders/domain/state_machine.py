"""Правила переходов статуса заказа и статуса оплаты.

У заказа две независимые оси:

* ``status`` идет по цепочке доставки
  ``pending -> confirmed -> packed -> dispatched -> delivered``,
  ``cancelled`` доступен из ``pending``, ``confirmed`` и ``packed``.
* ``payment_status``: ``pending -> completed | failed``,
  ``failed -> completed`` при повторной оплате,
  ``completed -> refunded`` при отмене оплаченного заказа.

``pending -> confirmed`` делает только подтверждение оплаты, остальные
шаги оператор проходит по одному.
"""
from typing import Dict, FrozenSet, Optional

from storefront_orders.domain.exceptions import InvalidTransition
from storefront_orders.domain.models import OrderStatus, PaymentStatus


TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED}
)

CANCELLABLE_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PACKED}
)

# шаги, которые делает оператор
FULFILLMENT_STEPS: Dict[OrderStatus, OrderStatus] = {
    OrderStatus.CONFIRMED: OrderStatus.PACKED,
    OrderStatus.PACKED: OrderStatus.DISPATCHED,
    OrderStatus.DISPATCHED: OrderStatus.DELIVERED,
}

PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.COMPLETED}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}


def next_fulfillment_status(current: OrderStatus) -> Optional[OrderStatus]:
    return FULFILLMENT_STEPS.get(current)


def check_advance(current: OrderStatus, target: OrderStatus) -> None:
    """InvalidTransition, если ``target`` не следующий шаг доставки"""
    if current in TERMINAL_STATUSES:
        raise InvalidTransition(current, target, "order is in a terminal state")
    if target == OrderStatus.CANCELLED:
        raise InvalidTransition(current, target, "use cancellation")
    if current == OrderStatus.PENDING:
        raise InvalidTransition(current, target, "order is awaiting payment")
    expected = FULFILLMENT_STEPS.get(current)
    if expected != target:
        raise InvalidTransition(current, target, f"next status is {expected.value}")


def check_cancel(current: OrderStatus) -> None:
    if current not in CANCELLABLE_STATUSES:
        raise InvalidTransition(current, OrderStatus.CANCELLED)


def check_payment_transition(current: PaymentStatus, target: PaymentStatus) -> None:
    if target not in PAYMENT_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransition(current, target, "payment status")


def status_after_payment(current: OrderStatus) -> OrderStatus:
    """Статус заказа после завершенной оплаты"""
    if current == OrderStatus.PENDING:
        return OrderStatus.CONFIRMED
    return current

import math
from typing import Generic, List, Optional, TypeVar
from pydantic import BaseModel

from storefront_orders.domain.models import Order, OrderStatus
from storefront_orders.domain.exceptions import OrderNotFoundError

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    items: List[T]
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, items: List[T], page: int, limit: int, total: int) -> "Page[T]":
        return cls(items=items, page=page, limit=limit, total=total, pages=math.ceil(total / limit))


def page_bounds(page: int, limit: int, max_limit: int = 100):
    page = max(1, page)
    limit = min(max(1, limit), max_limit)
    return page, limit, (page - 1) * limit


class GetOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_number: str, user_id: Optional[str] = None) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_order_number(order_number)
            # чужой заказ выглядит так же, как несуществующий
            if not order or (user_id is not None and order.user_id != user_id):
                raise OrderNotFoundError(f"Order {order_number} not found")
            return order


class ListUserOrdersUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, user_id: str, page: int = 1, limit: int = 10) -> Page[Order]:
        page, limit, offset = page_bounds(page, limit)
        async with self._uow() as uow:
            orders, total = await uow.orders.list_for_user(user_id, offset, limit)
        return Page[Order].build(orders, page, limit, total)


class ListOrdersUseCase:
    """Список для админа, ``search`` ищет по номеру заказа, имени получателя или телефону"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(
        self,
        status: Optional[OrderStatus] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Page[Order]:
        page, limit, offset = page_bounds(page, limit)
        async with self._uow() as uow:
            orders, total = await uow.orders.search(status, search, offset, limit)
        return Page[Order].build(orders, page, limit, total)

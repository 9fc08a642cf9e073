import logging

logger = logging.getLogger(__name__)

ORDER_SEQUENCE = "orders"


class OrderNumberingAuthority:
    """Выдает последовательные номера заказов (например ORD000042).

    Номер берется из атомарного увеличения sequence в транзакции вызывающего,
    два параллельных оформления не получат одно значение. Нарушение
    уникальности приходит как NumberingConflict, вызывающий повторяет
    создание один раз.
    """

    def __init__(self, prefix: str = "ORD", width: int = 6):
        self._prefix = prefix
        self._width = width

    def format(self, value: int) -> str:
        return f"{self._prefix}{str(value).zfill(self._width)}"

    async def next_number(self, uow) -> str:
        value = await uow.sequences.next_value(ORDER_SEQUENCE)
        number = self.format(value)
        logger.info(f"Выдан номер заказа {number}")
        return number

from abc import ABC, abstractmethod
from typing import Optional, List, Tuple
from storefront_orders.domain.models import Order, Coupon, Product, OrderStatus, DiscountType


class OrderRepository(ABC):
    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_by_order_number(self, order_number: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_by_gateway_order_id(self, gateway_order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_by_idempotency_key(self, user_id: str, key: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def create(self, order: Order) -> None:
        pass

    @abstractmethod
    async def compare_and_set(self, order_id: str, expected_version: int, **values) -> bool:
        """Применить ``values`` только если version в базе равна ``expected_version``"""
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str, offset: int, limit: int) -> Tuple[List[Order], int]:
        pass

    @abstractmethod
    async def search(
        self, status: Optional[OrderStatus], search: Optional[str], offset: int, limit: int
    ) -> Tuple[List[Order], int]:
        pass


class CouponRepository(ABC):
    @abstractmethod
    async def get_by_code(self, code: str) -> Optional[Coupon]:
        pass

    @abstractmethod
    async def create(self, coupon: Coupon) -> None:
        pass

    @abstractmethod
    async def update(self, code: str, **values) -> Optional[Coupon]:
        pass

    @abstractmethod
    async def try_increment_usage(self, coupon_id: str) -> bool:
        """Атомарный compare-and-increment с лимитом ``max_usage``"""
        pass

    @abstractmethod
    async def list(
        self,
        search: Optional[str],
        discount_type: Optional[DiscountType],
        is_active: Optional[bool],
        offset: int,
        limit: int
    ) -> Tuple[List[Coupon], int]:
        pass


class SequenceRepository(ABC):
    @abstractmethod
    async def next_value(self, name: str) -> int:
        pass


class OutboxRepository(ABC):
    @abstractmethod
    async def create(self, event_type: str, event_data: dict, order_id: str) -> str:
        pass

    @abstractmethod
    async def get_pending(self, limit: int = 10) -> List[dict]:
        pass

    @abstractmethod
    async def get_for_order(self, order_id: str) -> List[dict]:
        pass

    @abstractmethod
    async def mark_as_published(self, event_id: str) -> None:
        pass


class UnitOfWork(ABC):
    @property
    @abstractmethod
    def orders(self) -> OrderRepository:
        pass

    @property
    @abstractmethod
    def coupons(self) -> CouponRepository:
        pass

    @property
    @abstractmethod
    def sequences(self) -> SequenceRepository:
        pass

    @property
    @abstractmethod
    def outbox(self) -> OutboxRepository:
        pass

    @abstractmethod
    async def __call__(self):
        pass

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass


class CatalogService(ABC):
    @abstractmethod
    async def get_product(self, product_id: str) -> Optional[Product]:
        pass


class PaymentGateway(ABC):
    @abstractmethod
    async def create_order(self, amount: int, currency: str, receipt: str) -> dict:
        """Создать заказ в шлюзе на ``amount`` в минимальных единицах, возвращает ответ шлюза с ``id``"""
        pass


class EventPublisher(ABC):
    @abstractmethod
    async def publish(self, event_type: str, key: str, payload: dict) -> bool:
        pass

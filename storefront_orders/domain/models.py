from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, ConfigDict


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PACKED = "packed"
    DISPATCHED = "dispatched"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class DiscountType(str, Enum):
    FLAT = "flat"
    PERCENTAGE = "percentage"


class ProductSnapshot(BaseModel):
    """Value Object: данные товара на момент заказа"""
    model_config = ConfigDict(frozen=True)

    name: str
    price: Decimal
    image: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None


class OrderItem(BaseModel):
    """Value Object: позиция заказа, не меняется после создания"""
    model_config = ConfigDict(frozen=True)

    product_id: str
    snapshot: ProductSnapshot
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class ShippingAddress(BaseModel):
    """Value Object: копия адреса доставки"""
    model_config = ConfigDict(frozen=True)

    name: str
    phone: str
    address: str
    city: str
    state: str
    pincode: str
    country: str = "India"


class Order(BaseModel):
    """Domain Entity: заказ"""
    id: str
    order_number: str
    user_id: str
    items: List[OrderItem]
    subtotal: Decimal
    discount_amount: Decimal = Decimal("0")
    coupon_code: Optional[str] = None
    total_amount: Decimal
    currency: str
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    gateway_signature: Optional[str] = None
    shipping_address: ShippingAddress
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    notes: Optional[str] = None
    idempotency_key: Optional[str] = None
    version: int = 1
    created_at: datetime
    updated_at: datetime

    def can_be_paid(self) -> bool:
        """Бизнес-правило: оплатить можно pending или ранее failed оплату"""
        return (
            self.status == OrderStatus.PENDING
            and self.payment_status in (PaymentStatus.PENDING, PaymentStatus.FAILED)
        )

    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.COMPLETED

    def can_be_cancelled(self) -> bool:
        """Бизнес-правило: только заказы, которые еще не отправлены со склада"""
        return self.status in (OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PACKED)

    def is_terminal(self) -> bool:
        return self.status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class Coupon(BaseModel):
    """Domain Entity: скидка"""
    id: str
    code: str
    discount_type: DiscountType
    value: Decimal
    min_cart_value: Decimal = Decimal("0")
    is_active: bool = True
    usage_count: int = 0
    max_usage: Optional[int] = None
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @staticmethod
    def normalize_code(code: str) -> str:
        return code.strip().upper()

    def usage_exhausted(self) -> bool:
        return self.max_usage is not None and self.usage_count >= self.max_usage


class Product(BaseModel):
    """Value Object: товар из каталога"""
    id: str
    name: str
    price: Decimal
    image: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    in_stock: bool = True

    def snapshot(self) -> ProductSnapshot:
        return ProductSnapshot(
            name=self.name,
            price=self.price,
            image=self.image,
            brand=self.brand,
            category=self.category
        )


class CartLine(BaseModel):
    product_id: str
    quantity: int


class PriceQuote(BaseModel):
    """Результат расчета цены на сервере"""
    items: List[OrderItem]
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    applied_coupon: Optional[Coupon] = None

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from storefront_orders.domain.models import (
    OrderStatus, PaymentStatus, DiscountType, ShippingAddress, CartLine
)


class CheckoutRequest(BaseModel):
    items: List[CartLine]
    shipping_address: ShippingAddress
    coupon_code: Optional[str] = None
    idempotency_key: Optional[str] = None


class CheckoutResponse(BaseModel):
    order_number: str
    status: OrderStatus
    payment_status: PaymentStatus
    subtotal: Decimal
    discount_amount: Decimal
    coupon_code: Optional[str] = None
    total_amount: Decimal
    currency: str
    gateway_order_id: str
    gateway_key_id: str

    @classmethod
    def from_domain(cls, order, gateway_key_id: str):
        return cls(
            order_number=order.order_number,
            status=order.status,
            payment_status=order.payment_status,
            subtotal=order.subtotal,
            discount_amount=order.discount_amount,
            coupon_code=order.coupon_code,
            total_amount=order.total_amount,
            currency=order.currency,
            gateway_order_id=order.gateway_order_id,
            gateway_key_id=gateway_key_id
        )


class OrderItemResponse(BaseModel):
    product_id: str
    name: str
    image: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    quantity: int
    unit_price: Decimal


class OrderResponse(BaseModel):
    order_number: str
    user_id: str
    items: List[OrderItemResponse]
    subtotal: Decimal
    discount_amount: Decimal
    coupon_code: Optional[str] = None
    total_amount: Decimal
    currency: str
    status: OrderStatus
    payment_status: PaymentStatus
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    shipping_address: ShippingAddress
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, order):
        return cls(
            order_number=order.order_number,
            user_id=order.user_id,
            items=[
                OrderItemResponse(
                    product_id=item.product_id,
                    name=item.snapshot.name,
                    image=item.snapshot.image,
                    brand=item.snapshot.brand,
                    category=item.snapshot.category,
                    quantity=item.quantity,
                    unit_price=item.unit_price
                )
                for item in order.items
            ],
            subtotal=order.subtotal,
            discount_amount=order.discount_amount,
            coupon_code=order.coupon_code,
            total_amount=order.total_amount,
            currency=order.currency,
            status=order.status,
            payment_status=order.payment_status,
            gateway_order_id=order.gateway_order_id,
            gateway_payment_id=order.gateway_payment_id,
            shipping_address=order.shipping_address,
            tracking_number=order.tracking_number,
            estimated_delivery=order.estimated_delivery,
            delivered_at=order.delivered_at,
            notes=order.notes,
            created_at=order.created_at,
            updated_at=order.updated_at
        )


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class OrderListResponse(BaseModel):
    orders: List[OrderResponse]
    pagination: Pagination

    @classmethod
    def from_page(cls, page):
        return cls(
            orders=[OrderResponse.from_domain(order) for order in page.items],
            pagination=Pagination(page=page.page, limit=page.limit, total=page.total, pages=page.pages)
        )


class PaymentCallbackRequest(BaseModel):
    gateway_order_id: str
    gateway_payment_id: str
    gateway_signature: str


class PaymentFailedRequest(BaseModel):
    gateway_order_id: str
    gateway_payment_id: Optional[str] = None
    reason: Optional[str] = None


class PaymentCallbackResponse(BaseModel):
    message: str
    already_processed: bool = False
    order: OrderResponse


class UpdateStatusRequest(BaseModel):
    status: OrderStatus
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    estimated_delivery: Optional[datetime] = None


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = None


class CouponValidateRequest(BaseModel):
    code: str
    cart_total: Decimal


class CouponSummary(BaseModel):
    code: str
    discount_type: DiscountType
    value: Decimal
    description: Optional[str] = None


class CouponValidateResponse(BaseModel):
    valid: bool = True
    coupon: CouponSummary
    discount_amount: Decimal
    final_amount: Decimal


class CreateCouponRequest(BaseModel):
    code: str
    discount_type: DiscountType = Field(alias="type")
    value: Decimal
    min_cart_value: Decimal = Decimal("0")
    max_usage: Optional[int] = None
    description: Optional[str] = None

    model_config = {"populate_by_name": True}


class UpdateCouponRequest(BaseModel):
    is_active: Optional[bool] = None
    max_usage: Optional[int] = None
    min_cart_value: Optional[Decimal] = None
    description: Optional[str] = None


class CouponResponse(BaseModel):
    code: str
    discount_type: DiscountType
    value: Decimal
    min_cart_value: Decimal
    is_active: bool
    usage_count: int
    max_usage: Optional[int] = None
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, coupon):
        return cls(
            code=coupon.code,
            discount_type=coupon.discount_type,
            value=coupon.value,
            min_cart_value=coupon.min_cart_value,
            is_active=coupon.is_active,
            usage_count=coupon.usage_count,
            max_usage=coupon.max_usage,
            description=coupon.description,
            created_at=coupon.created_at,
            updated_at=coupon.updated_at
        )


class CouponListResponse(BaseModel):
    coupons: List[CouponResponse]
    pagination: Pagination


class ErrorResponse(BaseModel):
    detail: str

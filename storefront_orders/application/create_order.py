import logging
import re
import uuid
from datetime import datetime, timezone
from typing import List, Optional
from pydantic import BaseModel

from storefront_orders.domain.models import (
    Order, OrderStatus, PaymentStatus, CartLine, ShippingAddress, PriceQuote
)
from storefront_orders.domain.exceptions import NumberingConflict, ValidationError
from storefront_orders.domain.pricing import to_minor_units
from storefront_orders.application.interfaces import PaymentGateway
from storefront_orders.application.numbering import OrderNumberingAuthority
from storefront_orders.application.pricing import PricingEngine


logger = logging.getLogger(__name__)

PINCODE_RE = re.compile(r"^\d{6}$")
PHONE_RE = re.compile(r"^\d{10}$")


class CheckoutDTO(BaseModel):
    user_id: str
    items: List[CartLine]
    shipping_address: ShippingAddress
    coupon_code: Optional[str] = None
    idempotency_key: Optional[str] = None


def validate_shipping_address(address: ShippingAddress) -> None:
    for field in ("name", "phone", "address", "city", "state", "pincode"):
        if not getattr(address, field).strip():
            raise ValidationError("All shipping address fields are required")
    if not PINCODE_RE.match(address.pincode):
        raise ValidationError("Pincode must be 6 digits")
    if not PHONE_RE.match(address.phone):
        raise ValidationError("Phone must be 10 digits")


class CheckoutUseCase:
    def __init__(
        self,
        unit_of_work,
        pricing_engine: PricingEngine,
        payment_gateway: PaymentGateway,
        numbering: OrderNumberingAuthority,
        currency: str,
        max_attempts: int = 2
    ):
        self._uow = unit_of_work
        self._pricing = pricing_engine
        self._gateway = payment_gateway
        self._numbering = numbering
        self._currency = currency
        self._max_attempts = max_attempts

    async def __call__(self, dto: CheckoutDTO) -> Order:
        logger.info(f"Оформление заказа для пользователя {dto.user_id}, позиций: {len(dto.items)}")
        validate_shipping_address(dto.shipping_address)

        # 1. Проверка идемпотентности
        if dto.idempotency_key:
            async with self._uow() as uow:
                existing = await uow.orders.get_by_idempotency_key(dto.user_id, dto.idempotency_key)
                if existing:
                    logger.info(f"Заказ уже существует: {existing.order_number}")
                    return existing

        # 2. Расчет цены на сервере
        async with self._uow() as uow:
            quote = await self._pricing.validate_and_price(uow, dto.items, dto.coupon_code)

        # 3. Заказ в платежном шлюзе для оплаты
        gateway_order = await self._gateway.create_order(
            amount=to_minor_units(quote.total),
            currency=self._currency,
            receipt=f"receipt_{uuid.uuid4().hex[:16]}"
        )
        gateway_order_id = gateway_order["id"]

        # 4. Номер и сохранение, при конфликте повторяем один раз
        for attempt in range(1, self._max_attempts + 1):
            try:
                async with self._uow() as uow:
                    if dto.idempotency_key:
                        existing = await uow.orders.get_by_idempotency_key(
                            dto.user_id, dto.idempotency_key
                        )
                        if existing:
                            return existing
                    order_number = await self._numbering.next_number(uow)
                    order = self._build_order(dto, quote, order_number, gateway_order_id)
                    await uow.orders.create(order)
                    await uow.commit()
                logger.info(
                    f"Заказ создан: {order.order_number} total={order.total_amount} "
                    f"gateway_order={gateway_order_id}"
                )
                return order
            except NumberingConflict as e:
                if attempt >= self._max_attempts:
                    logger.error(f"Не удалось выдать номер заказа после {attempt} попыток: {e}")
                    raise
                logger.warning(f"Конфликт номера заказа, повторяем: {e}")

    def _build_order(
        self, dto: CheckoutDTO, quote: PriceQuote, order_number: str, gateway_order_id: str
    ) -> Order:
        now = datetime.now(timezone.utc)
        return Order(
            id=str(uuid.uuid4()),
            order_number=order_number,
            user_id=dto.user_id,
            items=quote.items,
            subtotal=quote.subtotal,
            discount_amount=quote.discount,
            coupon_code=quote.applied_coupon.code if quote.applied_coupon else None,
            total_amount=quote.total,
            currency=self._currency,
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            gateway_order_id=gateway_order_id,
            shipping_address=dto.shipping_address,
            idempotency_key=dto.idempotency_key,
            created_at=now,
            updated_at=now
        )

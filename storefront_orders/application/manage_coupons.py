import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel

from storefront_orders.domain.models import Coupon, DiscountType
from storefront_orders.domain.exceptions import (
    ValidationError, CouponNotFound, CouponAlreadyExists
)
from storefront_orders.domain.pricing import compute_discount, ensure_applicable, to_money
from storefront_orders.application.get_order import Page, page_bounds

logger = logging.getLogger(__name__)

CODE_MIN_LENGTH = 3
CODE_MAX_LENGTH = 20
DESCRIPTION_MAX_LENGTH = 200


class CreateCouponDTO(BaseModel):
    code: str
    discount_type: DiscountType
    value: Decimal
    min_cart_value: Decimal = Decimal("0")
    max_usage: Optional[int] = None
    description: Optional[str] = None


class UpdateCouponDTO(BaseModel):
    is_active: Optional[bool] = None
    max_usage: Optional[int] = None
    min_cart_value: Optional[Decimal] = None
    description: Optional[str] = None


class CouponPreview(BaseModel):
    coupon: Coupon
    discount: Decimal
    final_amount: Decimal


def validate_value(discount_type: DiscountType, value: Decimal) -> None:
    if value <= 0:
        raise ValidationError("Discount value must be positive")
    if discount_type == DiscountType.PERCENTAGE and value > 100:
        raise ValidationError("Percentage discount cannot exceed 100%")


def validate_limits(
    min_cart_value: Optional[Decimal], max_usage: Optional[int], description: Optional[str]
) -> None:
    if min_cart_value is not None and min_cart_value < 0:
        raise ValidationError("Minimum cart value cannot be negative")
    if max_usage is not None and max_usage < 1:
        raise ValidationError("Maximum usage must be at least 1")
    if description and len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters")


class CreateCouponUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, dto: CreateCouponDTO) -> Coupon:
        code = Coupon.normalize_code(dto.code)
        if not CODE_MIN_LENGTH <= len(code) <= CODE_MAX_LENGTH:
            raise ValidationError(
                f"Coupon code must be {CODE_MIN_LENGTH}-{CODE_MAX_LENGTH} characters"
            )
        value = to_money(dto.value)
        min_cart_value = to_money(dto.min_cart_value)
        validate_value(dto.discount_type, value)
        validate_limits(min_cart_value, dto.max_usage, dto.description)

        now = datetime.now(timezone.utc)
        coupon = Coupon(
            id=str(uuid.uuid4()),
            code=code,
            discount_type=dto.discount_type,
            value=value,
            min_cart_value=min_cart_value,
            max_usage=dto.max_usage,
            description=dto.description,
            created_at=now,
            updated_at=now
        )
        async with self._uow() as uow:
            if await uow.coupons.get_by_code(code):
                raise CouponAlreadyExists(code)
            await uow.coupons.create(coupon)
            await uow.commit()

        logger.info(f"Купон {code} создан ({coupon.discount_type.value} {coupon.value})")
        return coupon


class UpdateCouponUseCase:
    """Изменение полей купона. ``max_usage`` явно переданный как null снимает лимит"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, code: str, dto: UpdateCouponDTO) -> Coupon:
        code = Coupon.normalize_code(code)
        values = {field: getattr(dto, field) for field in dto.model_fields_set}
        if values.get("is_active") is None:
            values.pop("is_active", None)
        if values.get("min_cart_value") is None:
            values.pop("min_cart_value", None)
        else:
            values["min_cart_value"] = to_money(values["min_cart_value"])
        validate_limits(values.get("min_cart_value"), values.get("max_usage"), values.get("description"))

        async with self._uow() as uow:
            coupon = await uow.coupons.get_by_code(code)
            if not coupon:
                raise CouponNotFound(code)
            if not values:
                return coupon
            values["updated_at"] = datetime.now(timezone.utc)
            updated = await uow.coupons.update(code, **values)
            if not updated:
                raise ValidationError(
                    f"Maximum usage cannot be below current usage ({coupon.usage_count})"
                )
            await uow.commit()

        logger.info(f"Купон {code} обновлен: {sorted(values)}")
        return updated


class DeactivateCouponUseCase:
    """Купоны из старых заказов не удаляются, только выключаются"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, code: str) -> Coupon:
        code = Coupon.normalize_code(code)
        async with self._uow() as uow:
            coupon = await uow.coupons.update(
                code, is_active=False, updated_at=datetime.now(timezone.utc)
            )
            if not coupon:
                raise CouponNotFound(code)
            await uow.commit()
        logger.info(f"Купон {code} выключен")
        return coupon


class ListCouponsUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(
        self,
        search: Optional[str] = None,
        discount_type: Optional[DiscountType] = None,
        is_active: Optional[bool] = None,
        page: int = 1,
        limit: int = 20
    ) -> Page[Coupon]:
        page, limit, offset = page_bounds(page, limit)
        async with self._uow() as uow:
            coupons, total = await uow.coupons.list(search, discount_type, is_active, offset, limit)
        return Page[Coupon].build(coupons, page, limit, total)


class PreviewCouponUseCase:
    """Публичная проверка для корзины перед оформлением. Использование не меняется"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, code: str, cart_total: Decimal) -> CouponPreview:
        if cart_total is None or cart_total <= 0:
            raise ValidationError("Coupon code and cart total are required")
        cart_total = to_money(cart_total)
        code = Coupon.normalize_code(code)
        async with self._uow() as uow:
            coupon = await uow.coupons.get_by_code(code)
        if not coupon:
            raise CouponNotFound(code)
        ensure_applicable(coupon, cart_total)
        discount = compute_discount(coupon, cart_total)
        return CouponPreview(coupon=coupon, discount=discount, final_amount=cart_total - discount)

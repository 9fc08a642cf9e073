from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status

from storefront_orders.presentation.api import get_unit_of_work, require_admin
from storefront_orders.presentation.schemas import (
    CouponValidateRequest, CouponValidateResponse, CouponSummary, CreateCouponRequest,
    UpdateCouponRequest, CouponResponse, CouponListResponse, Pagination, ErrorResponse
)
from storefront_orders.application.manage_coupons import (
    CreateCouponUseCase, UpdateCouponUseCase, DeactivateCouponUseCase, ListCouponsUseCase,
    PreviewCouponUseCase, CreateCouponDTO, UpdateCouponDTO
)
from storefront_orders.domain.models import DiscountType
from storefront_orders.domain.exceptions import (
    ValidationError, CouponError, CouponNotFound, CouponAlreadyExists, PersistenceUnavailable
)

router = APIRouter()


@router.post(
    "/coupons/validate",
    response_model=CouponValidateResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def validate_coupon(request: CouponValidateRequest, uow=Depends(get_unit_of_work)):
    """Проверить купон для суммы корзины, ничего не резервируется"""
    try:
        preview = await PreviewCouponUseCase(uow)(request.code, request.cart_total)
        return CouponValidateResponse(
            coupon=CouponSummary(
                code=preview.coupon.code,
                discount_type=preview.coupon.discount_type,
                value=preview.coupon.value,
                description=preview.coupon.description
            ),
            discount_amount=preview.discount,
            final_amount=preview.final_amount
        )
    except CouponNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (ValidationError, CouponError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/admin/coupons", response_model=CouponListResponse, dependencies=[Depends(require_admin)])
async def list_coupons(
    search: Optional[str] = None,
    discount_type: Optional[DiscountType] = Query(None, alias="type"),
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(active|inactive)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    uow=Depends(get_unit_of_work)
):
    is_active = None if status_filter is None else status_filter == "active"
    try:
        result = await ListCouponsUseCase(uow)(search, discount_type, is_active, page, limit)
    except PersistenceUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    return CouponListResponse(
        coupons=[CouponResponse.from_domain(coupon) for coupon in result.items],
        pagination=Pagination(page=result.page, limit=result.limit, total=result.total, pages=result.pages)
    )


@router.post(
    "/admin/coupons",
    response_model=CouponResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    dependencies=[Depends(require_admin)]
)
async def create_coupon(request: CreateCouponRequest, uow=Depends(get_unit_of_work)):
    try:
        coupon = await CreateCouponUseCase(uow)(CreateCouponDTO(
            code=request.code,
            discount_type=request.discount_type,
            value=request.value,
            min_cart_value=request.min_cart_value,
            max_usage=request.max_usage,
            description=request.description
        ))
        return CouponResponse.from_domain(coupon)
    except CouponAlreadyExists as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.put(
    "/admin/coupons/{code}",
    response_model=CouponResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    dependencies=[Depends(require_admin)]
)
async def update_coupon(code: str, request: UpdateCouponRequest, uow=Depends(get_unit_of_work)):
    try:
        dto = UpdateCouponDTO(**request.model_dump(exclude_unset=True))
        coupon = await UpdateCouponUseCase(uow)(code, dto)
        return CouponResponse.from_domain(coupon)
    except CouponNotFound:
        raise HTTPException(status_code=404, detail="Coupon not found")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.delete(
    "/admin/coupons/{code}",
    response_model=CouponResponse,
    responses={404: {"model": ErrorResponse}},
    dependencies=[Depends(require_admin)]
)
async def deactivate_coupon(code: str, uow=Depends(get_unit_of_work)):
    """Купоны не удаляются, удаление только выключает купон"""
    try:
        coupon = await DeactivateCouponUseCase(uow)(code)
        return CouponResponse.from_domain(coupon)
    except CouponNotFound:
        raise HTTPException(status_code=404, detail="Coupon not found")
    except PersistenceUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))

import hmac
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from storefront_orders.presentation.schemas import (
    CheckoutRequest, CheckoutResponse, OrderResponse, OrderListResponse,
    PaymentCallbackRequest, PaymentFailedRequest, PaymentCallbackResponse,
    UpdateStatusRequest, CancelOrderRequest, ErrorResponse
)
from storefront_orders.application.create_order import CheckoutUseCase, CheckoutDTO
from storefront_orders.application.get_order import (
    GetOrderUseCase, ListUserOrdersUseCase, ListOrdersUseCase
)
from storefront_orders.application.process_payment import (
    ProcessPaymentCallbackUseCase, ReportPaymentFailureUseCase,
    PaymentCallbackDTO, PaymentFailureDTO
)
from storefront_orders.application.update_status import UpdateOrderStatusUseCase, UpdateOrderStatusDTO
from storefront_orders.application.cancel_order import CancelOrderUseCase, CancelOrderDTO
from storefront_orders.application.numbering import OrderNumberingAuthority
from storefront_orders.application.payment_verifier import PaymentVerifier
from storefront_orders.application.pricing import PricingEngine
from storefront_orders.domain.models import OrderStatus
from storefront_orders.domain.exceptions import (
    ValidationError, CouponError, ProductNotFoundError, ProductOutOfStockError,
    OrderNotFoundError, InvalidTransition, ConcurrentUpdateError, PaymentVerificationFailed,
    NumberingConflict, PersistenceUnavailable, CatalogServiceError, PaymentGatewayError
)
from storefront_orders.infrastructure.unit_of_work import UnitOfWork
from storefront_orders.infrastructure.http_clients import HTTPCatalogClient, HTTPPaymentGatewayClient
from storefront_orders.database import get_session_factory
from storefront_orders.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()


# Внешние сервисы
def get_unit_of_work():
    return UnitOfWork(get_session_factory())


def get_catalog_service():
    return HTTPCatalogClient(settings.CATALOG_BASE_URL, settings.API_TOKEN, settings.HTTP_TIMEOUT)


def get_payment_gateway():
    return HTTPPaymentGatewayClient(
        settings.PAYMENT_GATEWAY_BASE_URL,
        settings.PAYMENT_GATEWAY_KEY_ID,
        settings.PAYMENT_GATEWAY_KEY_SECRET,
        settings.HTTP_TIMEOUT
    )


def get_payment_verifier():
    return PaymentVerifier(settings.PAYMENT_GATEWAY_KEY_SECRET)


# Пользователь приходит от auth-слоя перед сервисом
def get_current_user_id(x_user_id: Optional[str] = Header(default=None, alias="X-User-Id")) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return x_user_id


def require_admin(x_admin_key: Optional[str] = Header(default=None, alias="X-Admin-Key")) -> None:
    expected = settings.ADMIN_API_KEY
    if not expected or not x_admin_key or not hmac.compare_digest(expected.encode(), x_admin_key.encode()):
        raise HTTPException(status_code=403, detail="Admin access required")


# Фабрики для создания use cases
def get_checkout_use_case(uow=Depends(get_unit_of_work), catalog=Depends(get_catalog_service),
                          gateway=Depends(get_payment_gateway)):
    numbering = OrderNumberingAuthority(settings.ORDER_NUMBER_PREFIX, settings.ORDER_NUMBER_WIDTH)
    return CheckoutUseCase(uow, PricingEngine(catalog), gateway, numbering, settings.CURRENCY)


def get_process_payment_use_case(uow=Depends(get_unit_of_work), verifier=Depends(get_payment_verifier)):
    return ProcessPaymentCallbackUseCase(uow, verifier)


def get_report_failure_use_case(uow=Depends(get_unit_of_work)):
    return ReportPaymentFailureUseCase(uow)


def get_get_order_use_case(uow=Depends(get_unit_of_work)):
    return GetOrderUseCase(uow)


def get_list_user_orders_use_case(uow=Depends(get_unit_of_work)):
    return ListUserOrdersUseCase(uow)


def get_list_orders_use_case(uow=Depends(get_unit_of_work)):
    return ListOrdersUseCase(uow)


def get_cancel_use_case(uow=Depends(get_unit_of_work)):
    return CancelOrderUseCase(uow)


def get_update_status_use_case(uow=Depends(get_unit_of_work), cancel=Depends(get_cancel_use_case)):
    return UpdateOrderStatusUseCase(uow, cancel)


@router.post(
    "/orders/checkout",
    response_model=CheckoutResponse,
    responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    status_code=status.HTTP_201_CREATED
)
async def checkout(
    request: CheckoutRequest,
    user_id: str = Depends(get_current_user_id),
    use_case: CheckoutUseCase = Depends(get_checkout_use_case)
):
    """Создать pending заказ и заказ в платежном шлюзе для оплаты"""
    try:
        dto = CheckoutDTO(
            user_id=user_id,
            items=request.items,
            shipping_address=request.shipping_address,
            coupon_code=request.coupon_code,
            idempotency_key=request.idempotency_key
        )
        order = await use_case(dto)
        return CheckoutResponse.from_domain(order, settings.PAYMENT_GATEWAY_KEY_ID)

    except (ValidationError, CouponError, ProductNotFoundError, ProductOutOfStockError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (CatalogServiceError, PaymentGatewayError, NumberingConflict, PersistenceUnavailable) as e:
        logger.error(f"Ошибка оформления заказа: {e}")
        raise HTTPException(status_code=503, detail=f"Service unavailable: {str(e)}")


@router.post(
    "/orders/payment-callback",
    response_model=PaymentCallbackResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def payment_callback(
    callback: PaymentCallbackRequest,
    use_case: ProcessPaymentCallbackUseCase = Depends(get_process_payment_use_case)
):
    """Проверка подписи шлюза и подтверждение заказа"""
    try:
        result = await use_case(PaymentCallbackDTO(
            gateway_order_id=callback.gateway_order_id,
            gateway_payment_id=callback.gateway_payment_id,
            gateway_signature=callback.gateway_signature
        ))
        message = "Payment already processed" if result.already_processed else "Payment verified"
        return PaymentCallbackResponse(
            message=message,
            already_processed=result.already_processed,
            order=OrderResponse.from_domain(result.order)
        )
    except PaymentVerificationFailed as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    except (InvalidTransition, ConcurrentUpdateError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PersistenceUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.post(
    "/orders/payment-failed",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def payment_failed(
    request: PaymentFailedRequest,
    use_case: ReportPaymentFailureUseCase = Depends(get_report_failure_use_case)
):
    """Ошибка оплаты от шлюза, заказ можно оплатить повторно"""
    try:
        order = await use_case(PaymentFailureDTO(
            gateway_order_id=request.gateway_order_id,
            gateway_payment_id=request.gateway_payment_id,
            reason=request.reason
        ))
        return OrderResponse.from_domain(order)
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    except (InvalidTransition, ConcurrentUpdateError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PersistenceUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/orders", response_model=OrderListResponse)
async def my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    use_case: ListUserOrdersUseCase = Depends(get_list_user_orders_use_case)
):
    """Заказы текущего пользователя, новые первыми"""
    try:
        return OrderListResponse.from_page(await use_case(user_id, page, limit))
    except PersistenceUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get(
    "/orders/{order_number}",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}}
)
async def get_order(
    order_number: str,
    user_id: str = Depends(get_current_user_id),
    use_case: GetOrderUseCase = Depends(get_get_order_use_case)
):
    try:
        order = await use_case(order_number, user_id=user_id)
        return OrderResponse.from_domain(order)
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    except PersistenceUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/admin/orders", response_model=OrderListResponse, dependencies=[Depends(require_admin)])
async def admin_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    use_case: ListOrdersUseCase = Depends(get_list_orders_use_case)
):
    try:
        return OrderListResponse.from_page(await use_case(status_filter, search, page, limit))
    except PersistenceUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.put(
    "/admin/orders/{order_number}/status",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    dependencies=[Depends(require_admin)]
)
async def update_order_status(
    order_number: str,
    request: UpdateStatusRequest,
    use_case: UpdateOrderStatusUseCase = Depends(get_update_status_use_case)
):
    """Перевести заказ на следующий шаг доставки, можно с tracking данными"""
    try:
        order = await use_case(UpdateOrderStatusDTO(
            order_number=order_number,
            status=request.status,
            tracking_number=request.tracking_number,
            notes=request.notes,
            estimated_delivery=request.estimated_delivery
        ))
        return OrderResponse.from_domain(order)
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    except (InvalidTransition, ConcurrentUpdateError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PersistenceUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.post(
    "/admin/orders/{order_number}/cancel",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    dependencies=[Depends(require_admin)]
)
async def cancel_order(
    order_number: str,
    request: CancelOrderRequest,
    use_case: CancelOrderUseCase = Depends(get_cancel_use_case)
):
    try:
        order = await use_case(CancelOrderDTO(order_number=order_number, reason=request.reason))
        return OrderResponse.from_domain(order)
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    except (InvalidTransition, ConcurrentUpdateError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PersistenceUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))

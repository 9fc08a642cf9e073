import httpx
import logging
from typing import Optional

from storefront_orders.application.interfaces import CatalogService, PaymentGateway
from storefront_orders.domain.models import Product
from storefront_orders.domain.exceptions import CatalogServiceError, PaymentGatewayError

logger = logging.getLogger(__name__)


class HTTPCatalogClient(CatalogService):
    """Чтение товаров из catalog service, только чтение"""

    def __init__(self, base_url: str, api_token: str, timeout: float = 10.0):
        self._base_url = base_url.rstrip("/")
        self._api_token = api_token
        self._timeout = timeout

    async def get_product(self, product_id: str) -> Optional[Product]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(
                    f"{self._base_url}/api/catalog/products/{product_id}",
                    headers={"X-API-Key": self._api_token}
                )
        except httpx.RequestError as e:
            logger.error(f"Catalog service ошибка подключения: {e}")
            raise CatalogServiceError(f"Catalog service unavailable: {str(e)}")

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise CatalogServiceError(f"Catalog service error: {response.status_code}")
        return self._to_domain(response.json())

    @staticmethod
    def _to_domain(data: dict) -> Product:
        # документы каталога могут прийти с _id и inStock
        return Product(
            id=str(data.get("id") or data["_id"]),
            name=data["name"],
            price=data["price"],
            image=data.get("image"),
            brand=data.get("brand"),
            category=data.get("category"),
            in_stock=data.get("in_stock", data.get("inStock", True))
        )


class HTTPPaymentGatewayClient(PaymentGateway):
    """Создает заказы в платежном шлюзе (формат Razorpay orders API)"""

    def __init__(self, base_url: str, key_id: str, key_secret: str, timeout: float = 30.0):
        self._base_url = base_url.rstrip("/")
        self._auth = (key_id, key_secret)
        self._timeout = timeout

    async def create_order(self, amount: int, currency: str, receipt: str) -> dict:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, auth=self._auth) as client:
                response = await client.post(
                    f"{self._base_url}/v1/orders",
                    json={"amount": amount, "currency": currency, "receipt": receipt}
                )
        except httpx.RequestError as e:
            logger.error(f"Payment gateway ошибка подключения: {e}")
            raise PaymentGatewayError(f"Payment gateway unavailable: {str(e)}")

        if response.status_code not in (200, 201):
            logger.error(f"Payment gateway отклонил заказ для receipt {receipt}: {response.status_code}")
            raise PaymentGatewayError(f"Payment gateway error: {response.status_code}")

        data = response.json()
        if not data.get("id"):
            raise PaymentGatewayError("Payment gateway returned an order without id")
        logger.info(f"Заказ в шлюзе {data['id']} создан на {amount} {currency}")
        return data

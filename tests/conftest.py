"""
Shared fixtures: a throwaway sqlite database per test, fake collaborators
for the catalog, the payment gateway and the event bus, and an HTTP client
bound to the FastAPI app.
"""

import uuid
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from storefront_orders.application.create_order import CheckoutDTO, CheckoutUseCase
from storefront_orders.application.interfaces import CatalogService, EventPublisher, PaymentGateway
from storefront_orders.application.manage_coupons import CreateCouponDTO, CreateCouponUseCase
from storefront_orders.application.numbering import OrderNumberingAuthority
from storefront_orders.application.payment_verifier import PaymentVerifier
from storefront_orders.application.pricing import PricingEngine
from storefront_orders.application.process_payment import (
    PaymentCallbackDTO, ProcessPaymentCallbackUseCase
)
from storefront_orders.config import settings
from storefront_orders.domain.models import CartLine, DiscountType, Product, ShippingAddress
from storefront_orders.infrastructure.db_schema import metadata
from storefront_orders.infrastructure.unit_of_work import UnitOfWork
from storefront_orders.main import app
from storefront_orders.presentation import api

GATEWAY_SECRET = "test_gateway_secret"
GATEWAY_KEY_ID = "rzp_test_key"
ADMIN_KEY = "test-admin-key"


class FakeCatalog(CatalogService):
    def __init__(self, products):
        self.products = {product.id: product for product in products}

    async def get_product(self, product_id):
        return self.products.get(product_id)


class FakeGateway(PaymentGateway):
    def __init__(self):
        self.orders = []

    async def create_order(self, amount, currency, receipt):
        gateway_order = {
            "id": f"order_{uuid.uuid4().hex[:14]}",
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
        }
        self.orders.append(gateway_order)
        return gateway_order


class FakePublisher(EventPublisher):
    def __init__(self, fail=False):
        self.fail = fail
        self.published = []

    async def publish(self, event_type, key, payload):
        if self.fail:
            return False
        self.published.append((event_type, key, payload))
        return True


def catalog_products():
    return [
        Product(id="laptop", name="Laptop", price=Decimal("1000.00"), brand="Acme", category="computers"),
        Product(id="mouse", name="Mouse", price=Decimal("250.50"), brand="Acme", category="accessories"),
        Product(id="cable", name="USB Cable", price=Decimal("99.00"), in_stock=False),
    ]


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def uow(engine):
    return UnitOfWork(async_sessionmaker(engine, expire_on_commit=False))


@pytest.fixture
def catalog():
    return FakeCatalog(catalog_products())


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def verifier():
    return PaymentVerifier(GATEWAY_SECRET)


@pytest.fixture
def address():
    return ShippingAddress(
        name="Asha Rao",
        phone="9876543210",
        address="12 MG Road",
        city="Bengaluru",
        state="Karnataka",
        pincode="560001",
    )


@pytest.fixture
def checkout(uow, catalog, gateway):
    return CheckoutUseCase(uow, PricingEngine(catalog), gateway, OrderNumberingAuthority("ORD", 6), "INR")


@pytest.fixture
def place_order(checkout, address):
    async def _place(items=None, coupon_code=None, user_id="user-1", idempotency_key=None):
        return await checkout(CheckoutDTO(
            user_id=user_id,
            items=items or [CartLine(product_id="laptop", quantity=1)],
            shipping_address=address,
            coupon_code=coupon_code,
            idempotency_key=idempotency_key,
        ))
    return _place


@pytest.fixture
def sign(verifier):
    return verifier.expected_signature


@pytest.fixture
def pay_order(uow, verifier, sign):
    """Delivers a correctly signed gateway callback for an order."""
    async def _pay(order, payment_id=None):
        payment_id = payment_id or f"pay_{uuid.uuid4().hex[:14]}"
        return await ProcessPaymentCallbackUseCase(uow, verifier)(PaymentCallbackDTO(
            gateway_order_id=order.gateway_order_id,
            gateway_payment_id=payment_id,
            gateway_signature=sign(order.gateway_order_id, payment_id),
        ))
    return _pay


@pytest.fixture
def create_coupon(uow):
    async def _create(code, discount_type=DiscountType.FLAT, value="100", **kwargs):
        return await CreateCouponUseCase(uow)(CreateCouponDTO(
            code=code, discount_type=discount_type, value=Decimal(value), **kwargs
        ))
    return _create


@pytest_asyncio.fixture
async def client(uow, catalog, gateway, verifier, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_API_KEY", ADMIN_KEY)
    monkeypatch.setattr(settings, "PAYMENT_GATEWAY_KEY_ID", GATEWAY_KEY_ID)
    app.dependency_overrides[api.get_unit_of_work] = lambda: uow
    app.dependency_overrides[api.get_catalog_service] = lambda: catalog
    app.dependency_overrides[api.get_payment_gateway] = lambda: gateway
    app.dependency_overrides[api.get_payment_verifier] = lambda: verifier

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()

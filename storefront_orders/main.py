import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from storefront_orders.presentation.api import router as orders_router
from storefront_orders.presentation.coupons_api import router as coupons_router
from storefront_orders.database import dispose_engine

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения, схемой управляет Alembic"""
    logger.info("Order service запускается")
    yield
    await dispose_engine()
    logger.info("Order service остановлен")


app = FastAPI(
    title="Storefront Order Service",
    description="Checkout, coupons, payment verification and order lifecycle",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(orders_router, prefix="/api", tags=["orders"])
app.include_router(coupons_router, prefix="/api", tags=["coupons"])


@app.get("/health")
async def health():
    return {"status": "healthy"}

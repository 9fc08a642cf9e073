import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    # База данных
    POSTGRES_CONNECTION_STRING: str = os.getenv("POSTGRES_CONNECTION_STRING", "")

    # API
    API_TOKEN: str = os.getenv("API_TOKEN", "")
    ADMIN_API_KEY: str = os.getenv("ADMIN_API_KEY", "")
    HTTP_TIMEOUT: float = float(os.getenv("HTTP_TIMEOUT", "10"))

    # Сервисы
    CATALOG_BASE_URL: str = os.getenv("CATALOG_BASE_URL", "http://catalog:8000")

    # Платежный шлюз
    PAYMENT_GATEWAY_BASE_URL: str = os.getenv("PAYMENT_GATEWAY_BASE_URL", "https://api.razorpay.com")
    PAYMENT_GATEWAY_KEY_ID: str = os.getenv("PAYMENT_GATEWAY_KEY_ID", "")
    PAYMENT_GATEWAY_KEY_SECRET: str = os.getenv("PAYMENT_GATEWAY_KEY_SECRET", "")

    # Заказы
    CURRENCY: str = os.getenv("CURRENCY", "INR")
    ORDER_NUMBER_PREFIX: str = os.getenv("ORDER_NUMBER_PREFIX", "ORD")
    ORDER_NUMBER_WIDTH: int = int(os.getenv("ORDER_NUMBER_WIDTH", "6"))

    # Kafka
    KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092")
    ORDER_EVENTS_TOPIC: str = os.getenv("ORDER_EVENTS_TOPIC", "storefront-order.events")
    OUTBOX_BATCH_SIZE: int = int(os.getenv("OUTBOX_BATCH_SIZE", "10"))
    OUTBOX_POLL_INTERVAL: float = float(os.getenv("OUTBOX_POLL_INTERVAL", "3"))

    @property
    def DATABASE_URL(self) -> str:
        """Асинхронный URL для приложения"""
        return self.POSTGRES_CONNECTION_STRING.replace("postgres://", "postgresql+asyncpg://")

    @property
    def SYNC_DATABASE_URL(self) -> str:
        """Синхронный URL для Alembic"""
        return self.POSTGRES_CONNECTION_STRING.replace("postgres://", "postgresql://")


settings = Settings()

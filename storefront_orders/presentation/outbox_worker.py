import asyncio
import logging

from storefront_orders.database import get_session_factory, dispose_engine
from storefront_orders.infrastructure.unit_of_work import UnitOfWork
from storefront_orders.infrastructure.kafka_producer import KafkaEventPublisher
from storefront_orders.application.process_outbox import ProcessOutboxEventsUseCase
from storefront_orders.domain.exceptions import PersistenceUnavailable
from storefront_orders.config import settings

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

ERROR_BACKOFF_SECONDS = 10


async def outbox_worker():
    """Worker для отправки outbox событий в topic уведомлений"""
    logger.info("Outbox worker запущен")

    publisher = KafkaEventPublisher(settings.KAFKA_BOOTSTRAP_SERVERS, settings.ORDER_EVENTS_TOPIC)
    await publisher.start()
    use_case = ProcessOutboxEventsUseCase(
        unit_of_work=UnitOfWork(get_session_factory()),
        publisher=publisher
    )

    try:
        while True:
            try:
                processed = await use_case(limit=settings.OUTBOX_BATCH_SIZE)
                if processed:
                    logger.info(f"Отправлено {processed} outbox events")
                await asyncio.sleep(settings.OUTBOX_POLL_INTERVAL)

            except PersistenceUnavailable as e:
                logger.warning(f"База данных недоступна, ждем: {e}")
                await asyncio.sleep(ERROR_BACKOFF_SECONDS)
            except Exception as e:
                logger.error(f"Ошибка в outbox worker: {e}", exc_info=True)
                await asyncio.sleep(ERROR_BACKOFF_SECONDS)
    finally:
        await publisher.stop()
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(outbox_worker())

import json
import logging
from typing import Optional

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError

from storefront_orders.application.interfaces import EventPublisher

logger = logging.getLogger(__name__)


class KafkaEventPublisher(EventPublisher):
    """События жизненного цикла заказа для сервиса уведомлений.

    Ключ сообщения это номер заказа: все события одного заказа попадают в
    одну partition и сохраняют порядок. Тип события дублируется в header
    для consumers, которые не разбирают тело.
    """

    def __init__(self, bootstrap_servers: str, topic: str):
        self._bootstrap_servers = bootstrap_servers
        self._topic = topic
        self._producer: Optional[AIOKafkaProducer] = None

    async def start(self):
        if self._producer:
            return
        self._producer = AIOKafkaProducer(
            bootstrap_servers=self._bootstrap_servers,
            acks="all",
            enable_idempotence=True,
            key_serializer=lambda key: key.encode("utf-8"),
            value_serializer=lambda value: json.dumps(value).encode("utf-8")
        )
        await self._producer.start()
        logger.info(f"Kafka publisher запущен, topic {self._topic}")

    async def stop(self):
        if self._producer:
            await self._producer.stop()
            self._producer = None
            logger.info("Kafka publisher остановлен")

    async def publish(self, event_type: str, key: str, payload: dict) -> bool:
        if not self._producer:
            logger.error(f"Kafka publisher не запущен, не можем отправить {event_type}")
            return False

        try:
            metadata = await self._producer.send_and_wait(
                self._topic,
                value=payload,
                key=key,
                headers=[("event_type", event_type.encode("utf-8"))]
            )
        except KafkaError as e:
            logger.error(f"Ошибка отправки {event_type} для заказа {key}: {e}")
            return False

        logger.info(f"Отправлено {event_type} для заказа {key} (partition {metadata.partition}, offset {metadata.offset})")
        return True

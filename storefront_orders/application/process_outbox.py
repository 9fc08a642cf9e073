import logging
import json

from storefront_orders.application.interfaces import EventPublisher

logger = logging.getLogger(__name__)


class ProcessOutboxEventsUseCase:
    """Отправляет pending события в topic сервиса уведомлений"""

    def __init__(self, unit_of_work, publisher: EventPublisher):
        self._uow = unit_of_work
        self._publisher = publisher

    async def __call__(self, limit: int = 10) -> int:
        """Публикует pending outbox события по порядку создания. Возвращает число отправленных"""
        published = 0

        async with self._uow() as uow:
            pending = await uow.outbox.get_pending(limit=limit)

            for event in pending:
                event_data = event["event_data"]
                if isinstance(event_data, str):
                    event_data = json.loads(event_data)

                success = await self._publisher.publish(
                    event_type=event["event_type"],
                    key=event_data.get("order_number", event["order_id"]),
                    payload=event_data
                )
                if not success:
                    # порядок событий заказа: останавливаемся на первой ошибке, повтор на следующей итерации
                    logger.warning(f"Ошибка отправки outbox события {event['id']}, повторим")
                    break

                await uow.outbox.mark_as_published(event["id"])
                published += 1
                logger.info(f"Отправлено {event['event_type']} событие {event['id']}")

            await uow.commit()

        return published

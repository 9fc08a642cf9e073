import logging
from contextlib import asynccontextmanager
from sqlalchemy.exc import OperationalError, InterfaceError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront_orders.domain.exceptions import PersistenceUnavailable
from storefront_orders.infrastructure.repositories import (
    SQLAlchemyOrderRepository,
    SQLAlchemyCouponRepository,
    SQLAlchemySequenceRepository,
    SQLAlchemyOutboxRepository
)

logger = logging.getLogger(__name__)


class UnitOfWork:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def __call__(self):
        try:
            async with self._session_factory() as session:
                try:
                    uow_impl = _UnitOfWorkImpl(session)
                    yield uow_impl
                    # Если commit не вызван, делаем rollback
                    await session.rollback()
                except Exception:
                    await session.rollback()
                    raise
        except (OperationalError, InterfaceError) as e:
            logger.error(f"База данных недоступна: {e}")
            raise PersistenceUnavailable("Database is unavailable") from e


class _UnitOfWorkImpl:
    def __init__(self, session: AsyncSession):
        self._session = session
        self.orders = SQLAlchemyOrderRepository(session)
        self.coupons = SQLAlchemyCouponRepository(session)
        self.sequences = SQLAlchemySequenceRepository(session)
        self.outbox = SQLAlchemyOutboxRepository(session)

    async def commit(self):
        await self._session.commit()

    async def rollback(self):
        await self._session.rollback()

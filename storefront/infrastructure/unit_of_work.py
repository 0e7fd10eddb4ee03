from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.infrastructure.repositories import (
    SQLAlchemyContentRepository,
    SQLAlchemyMessageRepository,
    SQLAlchemyOrderRepository,
    SQLAlchemyPaymentConfigurationRepository,
    SQLAlchemyProductRepository,
    SQLAlchemyRoleRepository,
    SQLAlchemySubscriberRepository,
)


class UnitOfWork:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def __call__(self):
        async with self._session_factory() as session:
            try:
                yield _UnitOfWorkImpl(session)
                # nothing is kept unless commit() was called
                await session.rollback()
            except Exception:
                await session.rollback()
                raise


class _UnitOfWorkImpl:
    def __init__(self, session: AsyncSession):
        self._session = session
        self.orders = SQLAlchemyOrderRepository(session)
        self.subscribers = SQLAlchemySubscriberRepository(session)
        self.content = SQLAlchemyContentRepository(session)
        self.messages = SQLAlchemyMessageRepository(session)
        self.roles = SQLAlchemyRoleRepository(session)
        self.payment_configs = SQLAlchemyPaymentConfigurationRepository(session)
        self.products = SQLAlchemyProductRepository(session)

    async def commit(self):
        await self._session.commit()

    async def rollback(self):
        await self._session.rollback()

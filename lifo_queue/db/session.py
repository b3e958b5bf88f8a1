from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from lifo_queue.domain.errors import TaskStoreError
from lifo_queue.settings import settings

SessionFactory = async_sessionmaker[AsyncSession]

def create_session_factory(engine: AsyncEngine) -> SessionFactory:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

engine = create_async_engine(
    settings.SQLALCHEMY_DATABASE_URI,
    echo=False,
    pool_pre_ping=True,
)

AsyncSessionLocal = create_session_factory(engine)

class Base(DeclarativeBase):
    pass

async def init_models(bind: Optional[AsyncEngine] = None) -> None:
    """Creates the tasks table and its indexes if they are missing."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

@asynccontextmanager
async def unit_of_work(factory: Optional[SessionFactory] = None) -> AsyncIterator[AsyncSession]:
    """
    One session, one transaction.

    Commits on success. Any driver or connection failure is rolled back and
    re-raised as TaskStoreError so callers can tell infrastructure problems
    apart from a lost conditional update.
    """
    factory = factory or AsyncSessionLocal
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise TaskStoreError(str(e)) from e

async def get_db_session() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()

# cardmaker/config/database.py
import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from cardmaker.config.settings import settings
from cardmaker.infrastructure.database.models import Base

logger = logging.getLogger("uvicorn.error")


def create_engine(database_url: Optional[str] = None) -> AsyncEngine:
    return create_async_engine(database_url or settings.DATABASE_URL, echo=False, future=True)


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


# Create tables and check the connection
async def init_db(engine: AsyncEngine) -> None:
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection successful")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        raise

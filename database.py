import logging
from typing import AsyncGenerator, Optional

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from config import settings
from models.base import Base

logger = logging.getLogger(__name__)

# Database configuration
DATABASE_URL = settings.DATABASE_URL
ASYNC_DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")

# Create async engine for FastAPI
async_engine = create_async_engine(
    ASYNC_DATABASE_URL,
    echo=settings.DATABASE_ECHO,
    future=True,
)

AsyncSessionLocal = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class RedisManager:
    def __init__(self):
        self.redis: Optional[redis.Redis] = None

    async def init_redis(self):
        self.redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
        )
        return self.redis

    async def close_redis(self):
        if self.redis:
            await self.redis.close()
            self.redis = None

redis_manager = RedisManager()

# Database dependency for FastAPI
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()

# Redis dependency for FastAPI. Returns None when Redis is not configured/reachable,
# callers treat that as "no cache".
async def get_redis() -> Optional[redis.Redis]:
    return redis_manager.redis

async def init_db():
    """Initialize database tables"""
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

async def close_db():
    """Close database connections"""
    await async_engine.dispose()
    await redis_manager.close_redis()

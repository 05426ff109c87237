from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from core.config import settings


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # SQLite pools do not accept sizing arguments
        return {"echo": False, "future": True}
    # PostgreSQL driver for async operations is asyncpg
    return {
        "echo": False,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "pool_size": 20,       # Base connections
        "max_overflow": 10,    # Burst connections
        "future": True,
    }


engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_redis():
    from redis.asyncio import Redis
    redis = Redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        yield redis
    finally:
        await redis.aclose()


async def init_models():
    """Create missing tables. Alembic owns schema changes after the first deploy."""
    from models.base import Base
    import models.module, models.lesson, models.attempt, models.progress  # noqa: F401  register tables

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

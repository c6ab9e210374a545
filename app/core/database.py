from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from .config import settings
from typing import AsyncGenerator, Optional


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine for a database URL.

    SQLite (local runs and tests) waits on its file lock instead of failing
    fast, so concurrent usage commits queue up like row locks on Postgres.
    """
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo, connect_args={"timeout": 30})
    return create_async_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_recycle=300,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


# Create async engine (only if database_url is provided)
engine: Optional[AsyncEngine] = build_engine(settings.database_url, settings.database_echo) if settings.database_url else None

# Create async session factory (only if engine exists)
AsyncSessionLocal: Optional[async_sessionmaker] = build_session_factory(engine) if engine else None


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session"""
    if not AsyncSessionLocal:
        raise RuntimeError(
            "Database not configured. Please set DATABASE_URL in your .env file. "
            "Get it from Supabase Dashboard → Settings → Database → Connection string"
        )
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: Optional[AsyncEngine] = None):
    """Create all tables (local development and tests; production uses alembic)"""
    bind = bind or engine
    if not bind:
        raise RuntimeError("Database engine not initialized. Set DATABASE_URL in .env")
    async with bind.begin() as conn:
        # Import all models to ensure they are registered
        from app.models import Base
        await conn.run_sync(Base.metadata.create_all)

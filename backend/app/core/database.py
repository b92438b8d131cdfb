from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
from sqlalchemy.orm import declarative_base

from backend.app.core.config import settings

DATABASE_URL = settings.database_url

def get_database_url():
    """Helper to retrieve DB URL in scripts context"""
    return DATABASE_URL

def build_engine(url: str) -> AsyncEngine:
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False)
    return create_async_engine(
        url,
        echo=False,
        # Concurrent online games + matchmaking
        pool_size=20,
        max_overflow=20
    )

def build_session_maker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)

engine = build_engine(DATABASE_URL)
AsyncSessionLocal = build_session_maker(engine)

Base = declarative_base()

def get_session_maker() -> async_sessionmaker:
    return AsyncSessionLocal

# Dependency for API routes
async def get_db():
    async with AsyncSessionLocal() as session:
        yield session

async def init_models(bind: AsyncEngine = engine):
    # Import models so they register on Base.metadata
    from backend.app.models import game_model, matchmaking_model  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

"""
Database connection management for the CRM rules engine
"""
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.config import get_settings

from .models import Base

DATABASE_URL = get_settings().database_url

# Create engine
engine = create_async_engine(DATABASE_URL)

# Create session factory
SessionLocal = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


async def init_db() -> None:
    """Initialize the database, creating all tables"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def get_db_session() -> AsyncSession:
    """Get a new database session"""
    return SessionLocal()

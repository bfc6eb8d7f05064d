from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import Settings, get_settings


def build_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(
        settings.database_url,
        echo=settings.echo_sql,
        pool_pre_ping=True,
        pool_recycle=3600,
        # The re-check after locking a resource unit must see rows committed while waiting for the lock.
        isolation_level="READ COMMITTED",
    )


engine = build_engine(get_settings())

# Reservations stay readable after commit: routers serialize them once the transaction is closed.
async_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

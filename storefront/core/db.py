import logging
import ssl
from typing import AsyncGenerator, Dict, Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from storefront.core.config import DATABASE_URL, DB_TYPE

logger = logging.getLogger(__name__)

Base = declarative_base()


def _engine_options(db_type: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": False, "future": True}
    if db_type != "postgres":
        return options

    # hosted Postgres behind PgBouncer, certificate not pinned
    ssl_ctx = ssl.create_default_context()
    ssl_ctx.check_hostname = False
    ssl_ctx.verify_mode = ssl.CERT_NONE

    options.update(
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        connect_args={
            # PgBouncer in transaction mode cannot keep prepared statements
            "statement_cache_size": 0,
            "prepared_statement_cache_size": 0,
            "server_settings": {"prepareThreshold": "0"},  # must be string!
            "ssl": ssl_ctx,
        },
    )
    return options


engine = create_async_engine(DATABASE_URL, **_engine_options(DB_TYPE))

AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


if DB_TYPE == "sqlite":
    @event.listens_for(engine.sync_engine, "connect")
    def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


import storefront.models  # noqa: E402,F401


async def init_models():
    """Create missing tables. Used for local SQLite runs; Postgres schemas are migrated."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database ready (%s)", DB_TYPE)


async def dispose_engine():
    await engine.dispose()

import logging
import ssl

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from config import settings

logger = logging.getLogger(__name__)

#Base will help us create tables that we are gonna use in code
Base = declarative_base()


class Database:
    """Engine plus session factory, opened once at startup and disposed on shutdown."""

    def __init__(self, url: str | None = None):
        self.url = url or settings.DATABASE_URL
        self.engine: AsyncEngine = create_async_engine(self.url, **self._engine_options())
        #Session Maker help perfom actions in database
        self.sessionmaker = async_sessionmaker(
            autoflush=False,
            bind=self.engine,
            expire_on_commit=False,
        )
        if self.engine.dialect.name == "sqlite":
            # ON DELETE CASCADE is only honoured with foreign keys switched on
            event.listen(self.engine.sync_engine, "connect", _sqlite_foreign_keys)
        logger.info("Database engine created (%s)", self.engine.dialect.name)

    def _engine_options(self) -> dict:
        if self.url.startswith("sqlite"):
            return {}
        options = {
            "pool_pre_ping": True,
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
        }
        if settings.DATABASE_SSL:
            options["connect_args"] = {"ssl": ssl.create_default_context()}
        return options

    def session(self) -> AsyncSession:
        return self.sessionmaker()

    async def create_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Tables created")

    async def close(self) -> None:
        await self.engine.dispose()
        logger.info("Database engine disposed")


def _sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


async def get_db(request: Request):
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        await db.close()

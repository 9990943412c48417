"""Async Postgres access for the CRM database.

The pipeline does not own the schema; it connects to the CRM's database with
SQLAlchemy's async engine (asyncpg driver) and reads and writes mirrored rows.
Pool settings suit a serverless Postgres host (Neon).
"""
import os
import ssl
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

logger = logging.getLogger(__name__)

ASYNC_SCHEME = "postgresql+asyncpg"
SSL_REQUIRED_MODES = ("require", "verify-ca", "verify-full")

# libpq query options asyncpg rejects
UNSUPPORTED_QUERY_PARAMS = ("sslmode", "channel_binding", "options")


def normalize_database_url(database_url: str) -> tuple[str, dict]:
    """Convert a libpq-style URL into an asyncpg URL plus engine connect_args.

    ``sslmode=require`` (or stricter) becomes an SSL context in connect_args,
    since asyncpg does not read sslmode from the URL.
    """
    parsed = urlparse(database_url)
    params = parse_qs(parsed.query)

    sslmode = params.get("sslmode", [None])[0]
    kept = {k: v for k, v in params.items() if k not in UNSUPPORTED_QUERY_PARAMS}
    url = urlunparse((
        ASYNC_SCHEME,
        parsed.netloc,
        parsed.path,
        parsed.params,
        urlencode(kept, doseq=True),
        parsed.fragment,
    ))

    connect_args = {}
    if sslmode in SSL_REQUIRED_MODES:
        context = ssl.create_default_context()
        # Neon presents certificates the default store does not verify
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        connect_args["ssl"] = context
    return url, connect_args


def get_database_url() -> tuple[str, dict]:
    """Read DATABASE_URL from the environment and normalize it.

    Raises:
        ValueError: If DATABASE_URL is not set.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable is not set")
    return normalize_database_url(database_url)


class Database:
    """Owns the async engine and session factory for one application.

    Uses connection pool settings appropriate for serverless environments (Neon).
    """

    def __init__(self, database_url: str | None = None, connect_args: dict | None = None):
        if database_url is None:
            database_url, connect_args = get_database_url()

        self.engine: AsyncEngine = create_async_engine(
            database_url,
            pool_pre_ping=True,  # Verify connections before use
            pool_size=5,
            max_overflow=10,
            pool_recycle=300,  # Recycle connections every 5 minutes
            echo=False,
            connect_args=connect_args or {},
        )
        self.session_maker = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)
        logger.info("Database engine created successfully")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Async context manager for database sessions.

        Usage:
            async with database.session() as session:
                result = await session.execute(query)
        """
        async with self.session_maker() as session:
            try:
                yield session
            except Exception as e:
                await session.rollback()
                logger.error(f"Database session error: {e}", exc_info=True)
                raise

    async def close(self) -> None:
        """Dispose of pooled connections. Called during application shutdown."""
        await self.engine.dispose()
        logger.info("Database engine closed")

"""
Async Database Configuration - server/core/db.py

Configures SQLAlchemy asynchronous engine and session maker with SSL support.
"""

import ssl
from typing import Optional, Tuple
from urllib.parse import parse_qs, urlencode, urlparse

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from server.core.errors import PersistenceFailure
from server.core.monitoring import log_event


def create_db_engine_and_session_factory(
    database_url: str, echo: bool = False
) -> Tuple[AsyncEngine, async_sessionmaker]:
    """Create async engine and session factory, handling SSL for asyncpg."""
    parsed_url = urlparse(database_url)

    # Ensure correct async scheme
    scheme = parsed_url.scheme
    if scheme in ("postgresql", "postgres"):
        scheme = "postgresql+asyncpg"

    if not scheme.startswith("postgresql"):
        # sqlite+aiosqlite and friends: no pool sizing, no sslmode
        engine = create_async_engine(database_url, echo=echo)
        return engine, async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )

    query_params = parse_qs(parsed_url.query)

    # Extract sslmode before creating async URL
    ssl_mode = query_params.get("sslmode", [None])[0]

    # Remove sslmode from query params (asyncpg doesn't accept it in URL)
    if "sslmode" in query_params:
        del query_params["sslmode"]

    new_query = urlencode(query_params, doseq=True)

    async_url = parsed_url._replace(
        scheme=scheme,
        query=new_query,
    ).geturl()

    connect_args = {}

    # Configure SSL for asyncpg via connect_args
    if ssl_mode and ssl_mode != "disable":
        if ssl_mode in ("require", "prefer", "allow"):
            connect_args["ssl"] = True
        elif ssl_mode in ("verify-ca", "verify-full"):
            ssl_context = ssl.create_default_context()
            ssl_context.check_hostname = ssl_mode == "verify-full"
            ssl_context.verify_mode = ssl.CERT_REQUIRED
            connect_args["ssl"] = ssl_context

    engine = create_async_engine(
        async_url,
        echo=echo,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        connect_args=connect_args,
    )

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    return engine, session_factory


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables registered on Base.metadata (idempotent)."""
    # Import models so they register with the metadata
    from server.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    log_event("database_tables_ready")


def get_session_maker(request: Request) -> Optional[async_sessionmaker]:
    """Session factory stored on app.state at startup (None without a database)."""
    return getattr(request.app.state, "session_maker", None)


async def get_async_session(request: Request):
    """Dependency for FastAPI routes to get a database session."""
    session_maker = get_session_maker(request)
    if session_maker is None:
        raise PersistenceFailure("Database is not configured")

    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.close()

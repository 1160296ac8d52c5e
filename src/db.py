from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import URL, MetaData
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection, create_async_engine
from sqlalchemy.pool import NullPool

from .errors import DatabaseConnectionError

metadata = MetaData()


def database_url(*, host: str, port: int, user: str, password: str, database: str) -> URL:
    return URL.create(
        "postgresql+psycopg",
        username=user,
        password=password,
        host=host,
        port=port,
        database=database,
    )


@asynccontextmanager
async def connect(url: URL, *, autocommit: bool = False) -> AsyncIterator[AsyncConnection]:
    """Open one connection for the current invocation and always release it."""
    engine_kwargs = {"poolclass": NullPool}
    if autocommit:
        engine_kwargs["isolation_level"] = "AUTOCOMMIT"
    engine = create_async_engine(url, **engine_kwargs)
    target = f"{url.host}:{url.port}/{url.database} as {url.username}"
    try:
        try:
            connection = await engine.connect()
        except (DBAPIError, OSError) as exc:
            raise DatabaseConnectionError(target) from exc
        try:
            yield connection
        finally:
            await connection.close()
    finally:
        await engine.dispose()

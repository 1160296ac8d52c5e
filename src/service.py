import logging

from psycopg import sql
from sqlalchemy import insert, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.schema import CreateTable

from .entities import books
from .errors import QueryError
from .models import Book

logger = logging.getLogger(__name__)

LIST_LIMIT = 10


class AdminService:
    """Role and database statements run over an autocommit admin connection.

    These are utility statements, which PostgreSQL will not accept bind
    parameters for, so names and the password are rendered with psycopg's
    quoting and the text is sent to the driver as-is.
    """

    def __init__(self, connection: AsyncConnection):
        self.connection = connection

    async def create_database(self, name: str) -> None:
        await self._run("create database", sql.SQL("CREATE DATABASE {}").format(sql.Identifier(name)))

    async def create_user(self, username: str, password: str) -> None:
        statement = sql.SQL("CREATE USER {} WITH PASSWORD {}").format(sql.Identifier(username), sql.Literal(password))
        await self._run("create user", statement)

    async def grant_database(self, database: str, username: str) -> None:
        statement = sql.SQL("GRANT ALL PRIVILEGES ON DATABASE {} TO {}").format(
            sql.Identifier(database), sql.Identifier(username)
        )
        await self._run("grant database privileges", statement)

    async def grant_public_schema(self, username: str) -> None:
        await self._run(
            "grant schema privileges",
            sql.SQL("GRANT ALL ON SCHEMA public TO {}").format(sql.Identifier(username)),
        )

    async def _run(self, label: str, statement: sql.Composable) -> None:
        logger.info("admin.statement", extra={"statement": label})
        try:
            await self.connection.exec_driver_sql(
                statement.as_string(),
                execution_options={"no_parameters": True},
            )
        except DBAPIError as exc:
            raise QueryError(label) from exc


class LibraryService:
    def __init__(self, connection: AsyncConnection):
        self.connection = connection

    async def create_schema(self) -> None:
        try:
            await self.connection.execute(CreateTable(books))
            await self.connection.commit()
        except DBAPIError as exc:
            raise QueryError("create table") from exc

    async def create(self, payload: Book) -> None:
        try:
            await self.connection.execute(insert(books).values(**payload.to_row()))
            await self.connection.commit()
        except DBAPIError as exc:
            raise QueryError("insert book") from exc

    async def list(self, limit: int = LIST_LIMIT) -> list[Book]:
        try:
            result = await self.connection.execute(select(books).limit(min(limit, LIST_LIMIT)))
        except DBAPIError as exc:
            raise QueryError("list books") from exc
        return [Book.model_validate(dict(row)) for row in result.mappings().all()]

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from opentelemetry import metrics, trace
from pydantic import ValidationError
from sqlalchemy import URL

from .config import Settings, get_settings
from .db import connect, database_url
from .errors import LibraryError
from .models import Book
from .otel import configure_telemetry, flush_telemetry
from .secrets import SecretStore, build_secret_store, fetch_admin_credentials, fetch_user_credentials
from .service import AdminService, LibraryService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)
invocations = metrics.get_meter(__name__).create_counter(
    "library.handler.invocations",
    description="Handler invocations by outcome",
)

T = TypeVar("T")


async def bootstrap(settings: Settings, secrets: SecretStore) -> None:
    """Create the library database, its application user and the library table.

    Runs once after the instance is provisioned. Each step must succeed before
    the next; a second run fails at CREATE DATABASE and nothing is undone.
    """
    admin_secret_id, credentials_secret_id = _required(
        settings, "bootstrap", "admin_secret_id", "credentials_secret_id"
    )
    context = {"database": settings.database_name}
    logger.info("bootstrap.start", extra=context)
    try:
        logger.info("bootstrap.credentials", extra=context)
        admin = await fetch_admin_credentials(secrets, admin_secret_id)
        user = await fetch_user_credentials(secrets, credentials_secret_id)
        port = admin.port or settings.database_port

        admin_url = database_url(
            host=admin.host,
            port=port,
            user=admin.username,
            password=admin.password,
            database=settings.admin_database,
        )
        async with connect(admin_url, autocommit=True) as connection:
            admin_service = AdminService(connection)
            await admin_service.create_database(settings.database_name)
            await admin_service.create_user(user.user, user.password)
            await admin_service.grant_database(settings.database_name, user.user)

        if settings.grant_public_schema:
            async with connect(admin_url.set(database=settings.database_name), autocommit=True) as connection:
                await AdminService(connection).grant_public_schema(user.user)

        user_url = database_url(
            host=admin.host,
            port=port,
            user=user.user,
            password=user.password,
            database=settings.database_name,
        )
        async with connect(user_url) as connection:
            await LibraryService(connection).create_schema()
    except LibraryError:
        logger.exception("bootstrap.failed", extra=context)
        raise
    logger.info("bootstrap.done", extra=context)


def _required(settings: Settings, event: str, *names: str) -> list[str]:
    # resolved before any secret fetch or connection
    try:
        return [settings.require(name) for name in names]
    except RuntimeError:
        logger.exception("%s.failed", event)
        raise


async def _user_url(settings: Settings, secrets: SecretStore, secret_id: str, host: str) -> URL:
    credentials = await fetch_user_credentials(secrets, secret_id)
    return database_url(
        host=host,
        port=settings.database_port,
        user=credentials.user,
        password=credentials.password,
        database=settings.database_name,
    )


async def add_book(payload: dict[str, Any] | Book, settings: Settings, secrets: SecretStore) -> None:
    try:
        book = payload if isinstance(payload, Book) else Book.model_validate(payload)
    except ValidationError:
        logger.exception("add_book.invalid_payload")
        raise

    secret_id, host = _required(settings, "add_book", "credentials_secret_id", "database_host")
    context = {"isbn": book.isbn}
    logger.info("add_book.start", extra=context)
    try:
        url = await _user_url(settings, secrets, secret_id, host)
        async with connect(url) as connection:
            await LibraryService(connection).create(book)
    except LibraryError:
        logger.exception("add_book.failed", extra=context)
        raise
    logger.info("add_book.done", extra=context)


async def get_books(settings: Settings, secrets: SecretStore) -> list[Book]:
    secret_id, host = _required(settings, "get_books", "credentials_secret_id", "database_host")
    logger.info("get_books.start")
    try:
        url = await _user_url(settings, secrets, secret_id, host)
        async with connect(url) as connection:
            rows = await LibraryService(connection).list()
    except LibraryError:
        logger.exception("get_books.failed")
        raise
    logger.info("get_books.done", extra={"count": len(rows)})
    logger.debug("get_books.rows", extra={"rows": [row.to_payload() for row in rows]})
    return rows


async def _run(name: str, runner: Callable[[Settings, SecretStore], Awaitable[T]], settings: Settings) -> T:
    try:
        secrets = build_secret_store(settings)
    except (LibraryError, RuntimeError):
        logger.exception("%s.failed", name)
        raise
    return await runner(settings, secrets)


def _invoke(name: str, runner: Callable[[Settings, SecretStore], Awaitable[T]]) -> T:
    settings = get_settings()
    configure_telemetry(settings.log_level)
    outcome = "error"
    try:
        with tracer.start_as_current_span(name):
            result = asyncio.run(_run(name, runner, settings))
        outcome = "ok"
        return result
    finally:
        invocations.add(1, {"handler": name, "outcome": outcome})
        flush_telemetry()


def bootstrap_handler(event, context) -> None:
    _invoke("bootstrap", bootstrap)


def add_book_handler(event, context) -> None:
    _invoke("add_book", lambda settings, secrets: add_book(event, settings, secrets))


def get_books_handler(event, context) -> list[dict[str, Any]]:
    rows = _invoke("get_books", get_books)
    return [row.to_payload() for row in rows]

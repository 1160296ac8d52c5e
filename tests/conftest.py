from contextlib import asynccontextmanager

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import ProgrammingError

from src.config import Settings
from src.errors import DatabaseConnectionError, SecretFetchError

ADMIN_SECRET = {"host": "db.internal", "username": "libraryadmin", "password": "adminpw", "port": 5432, "engine": "postgres"}
USER_SECRET = {"user": "library", "password": "s3cret"}


class FakeResult:
    def __init__(self, rows):
        self._rows = rows

    def mappings(self):
        return self

    def all(self):
        return list(self._rows)


class FakeConnection:
    def __init__(self, url, autocommit, rows, fail_on):
        self.url = url
        self.autocommit = autocommit
        self.rows = rows
        self.fail_on = fail_on
        self.statements: list[str] = []
        self.params: list[dict] = []
        self.execution_options: list[dict | None] = []
        self.commits = 0
        self.closed = False

    def _record(self, sql_text: str, params: dict) -> None:
        if self.fail_on and self.fail_on in sql_text:
            raise ProgrammingError(sql_text, params, Exception("boom"))
        self.statements.append(sql_text)
        self.params.append(params)

    async def execute(self, statement):
        compiled = statement.compile(dialect=postgresql.dialect())
        # DDL compiles without parameters
        self._record(str(compiled).strip(), dict(compiled.params or {}))
        return FakeResult(self.rows)

    async def exec_driver_sql(self, statement, parameters=None, execution_options=None):
        self.execution_options.append(execution_options)
        self._record(statement, parameters or {})

    async def commit(self):
        self.commits += 1


class FakeDatabase:
    """Stands in for src.db.connect and keeps every connection it handed out."""

    def __init__(self):
        self.connections: list[FakeConnection] = []
        self.rows: list[dict] = []
        self.fail_on: str | None = None
        self.refuse = False

    @asynccontextmanager
    async def connect(self, url, *, autocommit=False):
        if self.refuse:
            raise DatabaseConnectionError(f"{url.host}/{url.database}")
        connection = FakeConnection(url, autocommit, self.rows, self.fail_on)
        self.connections.append(connection)
        try:
            yield connection
        finally:
            connection.closed = True

    @property
    def statements(self) -> list[str]:
        return [statement for connection in self.connections for statement in connection.statements]


class FakeSecretStore:
    def __init__(self, secrets: dict[str, dict]):
        self.secrets = secrets
        self.calls: list[str] = []

    async def get_secret(self, secret_id: str) -> dict:
        self.calls.append(secret_id)
        if secret_id not in self.secrets:
            raise SecretFetchError(secret_id, "store unreachable")
        return dict(self.secrets[secret_id])


@pytest.fixture()
def settings():
    return Settings(
        database_host="db.internal",
        credentials_secret_id="library-creds",
        admin_secret_id="rds-admin",
    )


@pytest.fixture()
def secret_store():
    return FakeSecretStore({"rds-admin": ADMIN_SECRET, "library-creds": USER_SECRET})


@pytest.fixture()
def fake_db(monkeypatch):
    database = FakeDatabase()
    monkeypatch.setattr("src.handlers.connect", database.connect)
    return database


@pytest.fixture()
def book_payload():
    return {
        "isbn": "978-0",
        "name": "Foo",
        "authors": ["A"],
        "languages": ["en"],
        "countries": ["US"],
        "numberOfPages": 100,
        "releaseDate": "2020-01-01",
    }


@pytest.fixture()
def make_secret_store():
    return FakeSecretStore


@pytest.fixture()
def anyio_backend():
    return "asyncio"

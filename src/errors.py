class LibraryError(Exception):
    """Base class for failures surfaced by the library handlers."""


class SecretFetchError(LibraryError):
    def __init__(self, secret_id: str, reason: str):
        super().__init__(f"Could not fetch secret {secret_id!r}: {reason}")
        self.secret_id = secret_id


class DatabaseConnectionError(LibraryError):
    def __init__(self, target: str):
        super().__init__(f"Could not connect to {target}")
        self.target = target


class QueryError(LibraryError):
    # label names the statement; rendered SQL may carry a password
    def __init__(self, label: str):
        super().__init__(f"Statement failed: {label}")
        self.label = label

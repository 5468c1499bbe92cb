"""Exception hierarchy shared by the gateways, store, and command layer."""

from __future__ import annotations


class MedflyError(Exception):
    """Base class for every error raised by :mod:`medfly`."""


class RemoteError(MedflyError):
    """A call to the backend failed.

    ``message`` is the backend's own text (constraint name, auth failure, or
    transport error) so callers can surface it unchanged.
    """

    def __init__(self, message: str, *, code: str | None = None, table: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.table = table

    def __str__(self) -> str:
        where = f"[{self.table}] " if self.table else ""
        code = f" ({self.code})" if self.code else ""
        return f"{where}{self.message}{code}"


class FetchError(RemoteError):
    """A read against the backend failed (network, permission, or query error)."""


class WriteError(MedflyError):
    """A create, update, or delete could not be completed."""


class RemoteWriteError(WriteError, RemoteError):
    """The backend rejected a write."""


class MissingFieldsError(WriteError, ValueError):
    """A create payload lacks fields the table requires."""

    def __init__(self, table: str, fields: list[str]) -> None:
        self.table = table
        self.fields = fields
        super().__init__(f"Missing required fields for {table}: {', '.join(fields)}")


class SubscriptionError(RemoteError):
    """A change-feed channel could not be opened or closed."""

"""Contracts for the external collaborators: object storage, database, auth."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class StoredObject:
    """An uploaded object and its public URL."""

    bucket: str
    path: str
    url: str


@dataclass(frozen=True)
class UserIdentity:
    """The user a bearer token resolved to."""

    id: str
    email: str | None = None


class ObjectStorage(Protocol):
    """Protocol for object storage."""

    async def upload(self, data: bytes, bucket: str, path: str) -> StoredObject:
        """Store ``data`` at ``bucket/path`` and return its public location.

        Raises:
            StorageError: If the upload fails.
        """
        ...

    async def delete(self, bucket: str, path: str) -> None:
        """Remove an object.

        Raises:
            StorageError: If the delete fails.
        """
        ...


class PhotoDatabase(Protocol):
    """Protocol for the row store holding photo metadata."""

    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        """Insert a row and return it as stored (with id and created_at).

        Raises:
            DatabaseError: If the insert fails.
        """
        ...


class AuthVerifier(Protocol):
    """Protocol for bearer token verification."""

    async def verify(self, token: str) -> UserIdentity:
        """Resolve a token to a user.

        Raises:
            AuthError: If the token is invalid, expired, or cannot be checked.
        """
        ...

"""Supabase-backed collaborators speaking the Storage, PostgREST and GoTrue HTTP APIs.

All three share one ``httpx.AsyncClient`` owned by the application lifespan.
When ``SUPABASE_URL``/``SUPABASE_SERVICE_KEY`` are unset every call fails
with the collaborator's error type instead of at import time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from rewnd.errors import AuthError, DatabaseError, StorageError
from rewnd.storage.protocols import StoredObject, UserIdentity

if TYPE_CHECKING:
    from rewnd.config import Settings

logger = logging.getLogger(__name__)

NOT_CONFIGURED = "Supabase not configured"


class _SupabaseService:
    def __init__(self, http: httpx.AsyncClient, url: str | None, service_key: str | None) -> None:
        self._http = http
        self._url = url.rstrip("/") if url else None
        self._key = service_key

    @property
    def configured(self) -> bool:
        return bool(self._url and self._key)

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {"apikey": self._key or "", "Authorization": f"Bearer {self._key}"}
        if extra:
            headers.update(extra)
        return headers


class SupabaseStorage(_SupabaseService):
    """Object storage on Supabase Storage buckets."""

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self._url}/storage/v1/object/public/{bucket}/{path}"

    async def upload(self, data: bytes, bucket: str, path: str) -> StoredObject:
        if not self.configured:
            raise StorageError(NOT_CONFIGURED)

        try:
            response = await self._http.post(
                f"{self._url}/storage/v1/object/{bucket}/{path}",
                content=data,
                headers=self._headers({"Content-Type": "image/jpeg", "cache-control": "3600", "x-upsert": "false"}),
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise StorageError(f"Failed to upload image to storage: {exc}") from exc

        logger.info("Image uploaded to Supabase: %s/%s", bucket, path)
        return StoredObject(bucket=bucket, path=path, url=self.public_url(bucket, path))

    async def delete(self, bucket: str, path: str) -> None:
        if not self.configured:
            raise StorageError(NOT_CONFIGURED)

        try:
            response = await self._http.request(
                "DELETE",
                f"{self._url}/storage/v1/object/{bucket}",
                json={"prefixes": [path]},
                headers=self._headers(),
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise StorageError(f"Failed to delete image: {exc}") from exc

        logger.info("Image deleted: %s/%s", bucket, path)


class SupabaseDatabase(_SupabaseService):
    """Row inserts through PostgREST."""

    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        if not self.configured:
            raise DatabaseError(NOT_CONFIGURED)

        try:
            response = await self._http.post(
                f"{self._url}/rest/v1/{table}",
                json=record,
                headers=self._headers({"Prefer": "return=representation"}),
            )
            response.raise_for_status()
            rows = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise DatabaseError(f"Failed to save photo metadata: {exc}") from exc

        if not isinstance(rows, list) or not rows:
            raise DatabaseError(f"Insert into {table} returned no row")

        row: dict[str, Any] = rows[0]
        logger.info("Photo metadata saved to database: %s", row.get("id"))
        return row


class SupabaseAuth(_SupabaseService):
    """Access-token verification through GoTrue."""

    async def verify(self, token: str) -> UserIdentity:
        if not self.configured:
            raise AuthError(NOT_CONFIGURED)

        try:
            response = await self._http.get(
                f"{self._url}/auth/v1/user",
                headers={"apikey": self._key or "", "Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
            user = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise AuthError("Invalid or expired token") from exc

        if not isinstance(user, dict) or not user.get("id"):
            raise AuthError("Invalid or expired token")
        return UserIdentity(id=str(user["id"]), email=user.get("email"))


@dataclass(frozen=True)
class SupabaseCollaborators:
    storage: SupabaseStorage
    database: SupabaseDatabase
    auth: SupabaseAuth


def build_supabase_collaborators(settings: Settings, http: httpx.AsyncClient) -> SupabaseCollaborators:
    """Create the three Supabase collaborators over a shared HTTP client."""
    if not settings.supabase_configured:
        logger.warning("Supabase credentials not configured. Set SUPABASE_URL and SUPABASE_SERVICE_KEY.")
    args = (http, settings.supabase_url, settings.supabase_service_key)
    return SupabaseCollaborators(
        storage=SupabaseStorage(*args),
        database=SupabaseDatabase(*args),
        auth=SupabaseAuth(*args),
    )

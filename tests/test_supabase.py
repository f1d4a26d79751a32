"""Tests for the Supabase REST collaborators."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import httpx
import pytest

from rewnd.config import Settings
from rewnd.errors import AuthError, DatabaseError, StorageError
from rewnd.storage.supabase import (
    SupabaseAuth,
    SupabaseDatabase,
    SupabaseStorage,
    build_supabase_collaborators,
)

if TYPE_CHECKING:
    from collections.abc import Callable

SUPABASE_URL = "https://project.supabase.test"
SERVICE_KEY = "service-role-key"


def _client(handler: Callable[[httpx.Request], httpx.Response], seen: list[httpx.Request]) -> httpx.AsyncClient:
    def record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    return httpx.AsyncClient(transport=httpx.MockTransport(record))


class TestSupabaseStorage:
    async def test_upload_posts_bytes_and_returns_public_url(self) -> None:
        seen: list[httpx.Request] = []
        async with _client(lambda _: httpx.Response(200, json={"Key": "bucket/photos/a.jpg"}), seen) as http:
            storage = SupabaseStorage(http, SUPABASE_URL + "/", SERVICE_KEY)
            stored = await storage.upload(b"jpeg-bytes", "rewind-photos", "photos/u1_1.jpg")

        assert stored.url == f"{SUPABASE_URL}/storage/v1/object/public/rewind-photos/photos/u1_1.jpg"
        assert stored.path == "photos/u1_1.jpg"
        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == f"{SUPABASE_URL}/storage/v1/object/rewind-photos/photos/u1_1.jpg"
        assert request.content == b"jpeg-bytes"
        assert request.headers["content-type"] == "image/jpeg"
        assert request.headers["authorization"] == f"Bearer {SERVICE_KEY}"
        assert request.headers["apikey"] == SERVICE_KEY
        assert request.headers["x-upsert"] == "false"

    async def test_upload_failure_raises_storage_error(self) -> None:
        seen: list[httpx.Request] = []
        async with _client(lambda _: httpx.Response(400, json={"error": "Duplicate"}), seen) as http:
            storage = SupabaseStorage(http, SUPABASE_URL, SERVICE_KEY)
            with pytest.raises(StorageError) as excinfo:
                await storage.upload(b"x", "rewind-photos", "photos/a.jpg")
        assert isinstance(excinfo.value.__cause__, httpx.HTTPStatusError)

    async def test_delete_sends_prefixes(self) -> None:
        seen: list[httpx.Request] = []
        async with _client(lambda _: httpx.Response(200, json=[]), seen) as http:
            storage = SupabaseStorage(http, SUPABASE_URL, SERVICE_KEY)
            await storage.delete("rewind-photos", "photos/a.jpg")

        request = seen[0]
        assert request.method == "DELETE"
        assert str(request.url) == f"{SUPABASE_URL}/storage/v1/object/rewind-photos"
        assert json.loads(request.content) == {"prefixes": ["photos/a.jpg"]}

    async def test_not_configured(self) -> None:
        seen: list[httpx.Request] = []
        async with _client(lambda _: httpx.Response(200), seen) as http:
            storage = SupabaseStorage(http, None, None)
            with pytest.raises(StorageError, match="not configured"):
                await storage.upload(b"x", "rewind-photos", "photos/a.jpg")
        assert seen == []


class TestSupabaseDatabase:
    async def test_insert_returns_first_row(self) -> None:
        seen: list[httpx.Request] = []
        row = {"id": "p1", "image_url": "u", "created_at": "2026-01-01T00:00:00Z"}
        async with _client(lambda _: httpx.Response(201, json=[row]), seen) as http:
            database = SupabaseDatabase(http, SUPABASE_URL, SERVICE_KEY)
            result = await database.insert("photos", {"image_url": "u"})

        assert result == row
        request = seen[0]
        assert str(request.url) == f"{SUPABASE_URL}/rest/v1/photos"
        assert request.headers["prefer"] == "return=representation"
        assert json.loads(request.content) == {"image_url": "u"}

    async def test_empty_representation_is_an_error(self) -> None:
        seen: list[httpx.Request] = []
        async with _client(lambda _: httpx.Response(201, json=[]), seen) as http:
            database = SupabaseDatabase(http, SUPABASE_URL, SERVICE_KEY)
            with pytest.raises(DatabaseError, match="no row"):
                await database.insert("photos", {})

    async def test_http_error(self) -> None:
        seen: list[httpx.Request] = []
        async with _client(lambda _: httpx.Response(409, json={"message": "conflict"}), seen) as http:
            database = SupabaseDatabase(http, SUPABASE_URL, SERVICE_KEY)
            with pytest.raises(DatabaseError, match="Failed to save photo metadata"):
                await database.insert("photos", {})


class TestSupabaseAuth:
    async def test_verify_returns_identity(self) -> None:
        seen: list[httpx.Request] = []
        async with _client(lambda _: httpx.Response(200, json={"id": "user-1", "email": "a@b.c"}), seen) as http:
            auth = SupabaseAuth(http, SUPABASE_URL, SERVICE_KEY)
            user = await auth.verify("user-token")

        assert user.id == "user-1"
        assert user.email == "a@b.c"
        request = seen[0]
        assert str(request.url) == f"{SUPABASE_URL}/auth/v1/user"
        assert request.headers["authorization"] == "Bearer user-token"
        assert request.headers["apikey"] == SERVICE_KEY

    async def test_rejected_token(self) -> None:
        seen: list[httpx.Request] = []
        async with _client(lambda _: httpx.Response(401, json={"msg": "jwt expired"}), seen) as http:
            auth = SupabaseAuth(http, SUPABASE_URL, SERVICE_KEY)
            with pytest.raises(AuthError):
                await auth.verify("old-token")

    async def test_response_without_id(self) -> None:
        seen: list[httpx.Request] = []
        async with _client(lambda _: httpx.Response(200, json={}), seen) as http:
            auth = SupabaseAuth(http, SUPABASE_URL, SERVICE_KEY)
            with pytest.raises(AuthError):
                await auth.verify("token")


class TestBuildCollaborators:
    async def test_shares_configuration(self) -> None:
        settings = Settings(supabase_url=SUPABASE_URL, supabase_service_key=SERVICE_KEY)
        async with httpx.AsyncClient() as http:
            collaborators = build_supabase_collaborators(settings, http)
        assert collaborators.storage.configured
        assert collaborators.database.configured
        assert collaborators.auth.configured

    async def test_unconfigured(self) -> None:
        settings = Settings(supabase_url=None, supabase_service_key=None)
        async with httpx.AsyncClient() as http:
            collaborators = build_supabase_collaborators(settings, http)
        assert not collaborators.storage.configured

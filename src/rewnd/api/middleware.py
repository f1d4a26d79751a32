"""Middleware: bearer-token authentication and request logging."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from rewnd.errors import AuthError
from rewnd.storage.protocols import UserIdentity  # noqa: TC001

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from starlette.responses import Response

    from rewnd.storage.protocols import AuthVerifier

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


def _get_auth_verifier(request: Request) -> AuthVerifier:
    verifier: AuthVerifier = request.app.state.auth
    return verifier


async def authenticate_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> UserIdentity:
    """Resolve 'Authorization: Bearer <token>' to a user identity.

    The reason a token was rejected is logged but never returned to the client.
    """
    if credentials is None or not credentials.credentials:
        raise AuthError("Missing or invalid Authorization header")

    verifier = _get_auth_verifier(request)
    try:
        user = await verifier.verify(credentials.credentials)
    except AuthError as exc:
        logger.warning("Authentication failed: %s", exc)
        raise AuthError("Invalid or expired authentication token") from exc

    logger.info("User authenticated: %s", user.id)
    return user


async def log_requests(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    """Log method, path, status and duration of every request."""
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info("%s %s %s - %.0fms", request.method, request.url.path, response.status_code, duration_ms)
    return response

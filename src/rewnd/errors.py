"""Error taxonomy for the photo service.

Every error carries the HTTP status and short title the API layer renders;
only the exception handlers in ``rewnd.main`` turn them into responses.
"""

from __future__ import annotations


class RewndError(Exception):
    """Base exception for all photo service errors."""

    status_code: int = 500
    title: str = "Internal Server Error"


class ValidationError(RewndError):
    """The client sent something we will not accept."""

    status_code = 400

    def __init__(self, title: str, message: str) -> None:
        super().__init__(message)
        self.title = title


class AuthError(RewndError):
    """Missing, malformed, invalid or expired credential."""

    status_code = 401
    title = "Unauthorized"


class ImageProcessingError(RewndError):
    """Decoding, transforming or encoding an image failed."""

    title = "Upload failed"


class ProcessingTimeoutError(ImageProcessingError):
    """Processing a single upload took longer than allowed."""

    status_code = 504
    title = "Processing timed out"


class ProcessingUnavailableError(RewndError):
    """No processing slot became free in time."""

    status_code = 503
    title = "Service busy"


class StorageError(RewndError):
    """The object-storage collaborator failed."""

    title = "Upload failed"


class DatabaseError(RewndError):
    """The database collaborator failed."""

    title = "Upload failed"

"""Error types raised by the doc-chat pipeline.

Each error carries the HTTP status and a client-safe ``detail``; the
application-level handlers in ``docchat.app`` turn them into JSON responses.
"""

from __future__ import annotations


class DocChatError(RuntimeError):
    """Base class for request-fatal pipeline failures."""

    status_code = 500
    detail = "Internal server error"


class MalformedRequestError(DocChatError):
    """Raised when the request body cannot be read as multipart form data."""

    status_code = 400
    detail = "Malformed multipart request"


class ExtractionError(DocChatError):
    """Raised when an uploaded file cannot be converted to text."""

    detail = "Extraction failed"


class GenerationError(DocChatError):
    """Raised when the generation backend fails or returns garbage."""

    status_code = 502
    detail = "Generation backend failed"


class PersistenceError(DocChatError):
    """Raised when a chat record cannot be written to or read from the store."""

    detail = "Failed to persist chat"

# ruff: noqa: D107
"""Chat relay exceptions.

Request-terminating errors carry the exact plain-text body returned to the
caller. ``PersistenceError`` is raised and recovered inside the stream and is
never rendered.
"""

from typing import Any

from .base import BaseAppException, NotFoundError


class ChatError(BaseAppException):
    """Base exception for the chat relay endpoint."""

    def __init__(
        self,
        message: str = "Internal Server Error",
        status_code: int = 500,
        error_code: str = "CHAT_ERROR",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, status_code, error_code, details)


class MalformedBody(ChatError):
    """Request body is not valid JSON."""

    def __init__(
        self,
        message: str = "Bad Request: Invalid JSON",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, 400, "MALFORMED_BODY", details)


class InvalidPayload(ChatError):
    """Request body parsed but has the wrong shape."""

    def __init__(
        self,
        message: str = 'Bad Request: "messages" must be a non-empty array',
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, 400, "INVALID_PAYLOAD", details)


class Unauthenticated(ChatError):
    """No user is attached to the session."""

    def __init__(
        self,
        message: str = "Unauthorized",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, 401, "UNAUTHENTICATED", details)


class AuthProviderError(ChatError):
    """The identity provider failed while resolving the session."""

    def __init__(
        self,
        message: str = "Internal Server Error",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, 500, "AUTH_PROVIDER_ERROR", details)


class UpstreamCallError(ChatError):
    """The completion service rejected the call before streaming started."""

    def __init__(
        self,
        message: str = "Internal Server Error: OpenAI API failed",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, 500, "UPSTREAM_CALL_ERROR", details)


class PersistenceError(ChatError):
    """The transcript upsert failed."""

    def __init__(
        self,
        message: str = "Failed to persist chat",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, 500, "PERSISTENCE_ERROR", details)


class ChatNotFoundError(NotFoundError):
    """Exception raised when a persisted chat is not found or not owned by the caller."""

    def __init__(
        self,
        message: str = "Chat not found",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)


class CompletionConfigurationError(ChatError):
    """The completion service has no credential to call with."""

    def __init__(
        self,
        message: str = "Internal Server Error",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, 500, "COMPLETION_CONFIGURATION_ERROR", details)

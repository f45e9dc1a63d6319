"""Request validation and authorization for the chat relay endpoint.

Runs strictly before any upstream call: parse the body, check its shape, then
resolve the caller from session state. Each step can end the request.
"""

import logging
from dataclasses import dataclass

from fastapi import Request
from pydantic import ValidationError

from app.core.config import settings
from app.core.security import SessionAuthenticator
from app.exceptions.chat import (
    AuthProviderError,
    InvalidPayload,
    MalformedBody,
    Unauthenticated,
)
from app.schemas.chat import AuthenticatedUser, ChatMessage, ChatRequest, MessageRole


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedChat:
    """A validated request ready to be sent upstream."""

    request: ChatRequest
    user: AuthenticatedUser
    completion_messages: list[ChatMessage]


async def parse_chat_request(request: Request) -> ChatRequest:
    """Parse and shape-check the raw body.

    Raises:
        MalformedBody: If the body is not JSON.
        InvalidPayload: If ``messages`` is not a non-empty array, or the
            messages or optional fields have the wrong types.
    """
    try:
        body = await request.json()
    except ValueError as e:
        logger.warning(f"Invalid JSON: {str(e)}")
        raise MalformedBody() from e

    messages = body.get("messages") if isinstance(body, dict) else None
    if not isinstance(messages, list) or not messages:
        raise InvalidPayload()

    try:
        return ChatRequest.model_validate(body)
    except ValidationError as e:
        raise InvalidPayload(
            "Bad Request: Invalid message format",
            details={"errors": e.errors(include_url=False, include_context=False, include_input=False)},
        ) from e


async def authorize(request: Request, authenticator: SessionAuthenticator) -> AuthenticatedUser:
    """Resolve the session user.

    Raises:
        AuthProviderError: If the identity provider itself fails.
        Unauthenticated: If the session carries no user.
    """
    try:
        user = await authenticator.resolve_user(request)
    except Exception as e:
        logger.error(f"Authentication error: {str(e)}")
        raise AuthProviderError() from e

    if user is None:
        raise Unauthenticated()
    return user


def with_system_prompt(messages: list[ChatMessage], system_prompt: str | None = None) -> list[ChatMessage]:
    """Prepend the server-controlled system directive."""
    directive = ChatMessage(role=MessageRole.SYSTEM, content=system_prompt or settings.system_prompt)
    return [directive, *messages]


async def prepare_chat(request: Request, authenticator: SessionAuthenticator) -> PreparedChat:
    """Run parse, shape validation and authorization in order."""
    chat_request = await parse_chat_request(request)
    user = await authorize(request, authenticator)
    return PreparedChat(
        request=chat_request,
        user=user,
        completion_messages=with_system_prompt(chat_request.messages),
    )

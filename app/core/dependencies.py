# app/core/dependencies.py
import logging
from functools import lru_cache

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.security import SessionAuthenticator
from app.database import get_session_factory
from app.domains.chat.repository import ChatRepository
from app.domains.chat.service import ChatService
from app.domains.chat.validation import authorize
from app.schemas.chat import AuthenticatedUser
from app.services.completion_service import CompletionService

logger = logging.getLogger(__name__)


def get_authenticator() -> SessionAuthenticator:
    """Identity provider for the current request."""
    return SessionAuthenticator()


@lru_cache
def get_completion_service() -> CompletionService:
    """Process-wide completion client. Built on first use, never mutated."""
    return CompletionService()


def get_chat_repository(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> ChatRepository:
    return ChatRepository(session_factory)


def get_chat_service(
    repository: ChatRepository = Depends(get_chat_repository),
) -> ChatService:
    """Chat service for read endpoints, which need no completion credentials."""
    return ChatService(repository=repository)


def get_streaming_chat_service(
    repository: ChatRepository = Depends(get_chat_repository),
    completion_service: CompletionService = Depends(get_completion_service),
) -> ChatService:
    return ChatService(completion_service=completion_service, repository=repository)


async def get_current_user(
    request: Request,
    authenticator: SessionAuthenticator = Depends(get_authenticator),
) -> AuthenticatedUser:
    """Get current authenticated user from session state.

    Returns:
        AuthenticatedUser: Current authenticated user

    Raises:
        Unauthenticated: If the session carries no user
        AuthProviderError: If the identity provider fails
    """
    user = await authorize(request, authenticator)
    request.state.user_id = user.id
    return user

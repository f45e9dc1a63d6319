"""Chat API controller with FastAPI endpoints."""

import logging

from fastapi import APIRouter, Depends, Path, Request
from fastapi.responses import StreamingResponse

from app.core.dependencies import (
    get_authenticator,
    get_chat_service,
    get_current_user,
    get_streaming_chat_service,
)
from app.core.security import SessionAuthenticator
from app.domains.chat.service import ChatService
from app.domains.chat.validation import prepare_chat
from app.schemas.base import ResponseSchema
from app.schemas.chat import AuthenticatedUser, ChatListResponse


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


@router.post("/chat", response_class=StreamingResponse)
async def stream_chat(
    request: Request,
    authenticator: SessionAuthenticator = Depends(get_authenticator),
    service: ChatService = Depends(get_streaming_chat_service),
):
    """Relay a conversation to the completion service and stream the answer.

    The body is read here, not declared as a model, so malformed JSON and a
    missing session are reported in that order with plain-text errors.

    Returns:
        Streaming text body of completion tokens in generation order
    """
    prepared = await prepare_chat(request, authenticator)
    tokens = await service.start_stream(prepared)
    return StreamingResponse(tokens, media_type="text/plain; charset=utf-8", headers=STREAM_HEADERS)


@router.get("/chats", response_model=ResponseSchema)
async def list_chats(
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    """Get all persisted chats for the current user.

    Returns:
        Chats, most recently written first
    """
    chats = await service.list_chats(current_user.id)
    result = ChatListResponse(chats=chats, total=len(chats))

    return ResponseSchema(
        status="success",
        message="Chats retrieved successfully",
        data=result.model_dump(mode="json", by_alias=True),
    )


@router.get("/chats/{chat_id}", response_model=ResponseSchema)
async def get_chat(
    chat_id: str = Path(..., description="Chat ID"),
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    """Get a specific chat transcript.

    Args:
        chat_id: Chat ID
        current_user: Current authenticated user
        service: Chat service

    Returns:
        The persisted chat
    """
    chat = await service.get_chat(chat_id, current_user.id)

    return ResponseSchema(
        status="success",
        message="Chat retrieved successfully",
        data=chat.to_payload(),
    )


@router.delete("/chats/{chat_id}", response_model=ResponseSchema)
async def delete_chat(
    chat_id: str = Path(..., description="Chat ID"),
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    """Delete a chat transcript."""
    await service.delete_chat(chat_id, current_user.id)
    logger.info(f"Deleted chat {chat_id} for user {current_user.id}")

    return ResponseSchema(
        status="success",
        message="Chat deleted successfully",
        data=None,
    )

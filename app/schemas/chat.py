"""Chat schemas for request/response serialization."""

from __future__ import annotations

from enum import Enum

from pydantic import ConfigDict, Field

from .base import BaseSchema

# Matches the width of chats.id
CHAT_ID_MAX_LENGTH = 64


class MessageRole(str, Enum):
    """Message role enumeration."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ChatMessage(BaseSchema):
    """A single conversation turn. Immutable once constructed."""

    role: MessageRole = Field(..., description="Author of the message")
    content: str = Field(..., description="Message text")

    model_config = ConfigDict(frozen=True)

    def to_completion_param(self) -> dict[str, str]:
        """Shape expected by the chat completions API."""
        return {"role": self.role.value, "content": self.content}


class ChatRequest(BaseSchema):
    """Schema for the streaming chat request body."""

    messages: list[ChatMessage] = Field(..., min_length=1, description="Conversation so far, in order")
    id: str | None = Field(
        None, max_length=CHAT_ID_MAX_LENGTH, description="Chat ID to upsert into, generated when absent"
    )
    preview_token: str | None = Field(
        None, alias="previewToken", description="Per-request override for the completion service key"
    )

    model_config = ConfigDict(populate_by_name=True)


class AuthenticatedUser(BaseSchema):
    """Identity resolved from the session, never from the request body."""

    id: str


class PersistedChat(BaseSchema):
    """Stored transcript of one completed chat exchange."""

    id: str = Field(..., max_length=CHAT_ID_MAX_LENGTH)
    title: str = Field(..., max_length=100)
    user_id: str = Field(..., alias="userId")
    created_at: int = Field(..., alias="createdAt", description="Epoch milliseconds")
    path: str
    messages: list[ChatMessage]

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict:
        """Wire/storage representation with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class ChatListResponse(BaseSchema):
    """Schema for listing the caller's chats."""

    chats: list[PersistedChat]
    total: int

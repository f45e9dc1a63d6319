"""Chat service layer: relays a completion stream and persists the transcript."""

import logging
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime

import httpx
from openai import AsyncStream, OpenAIError
from openai.types.chat import ChatCompletionChunk

from app.domains.chat.repository import ChatRepository
from app.domains.chat.validation import PreparedChat
from app.exceptions.chat import ChatNotFoundError, PersistenceError, UpstreamCallError
from app.schemas.chat import ChatMessage, MessageRole, PersistedChat
from app.services.completion_service import CompletionService
from app.shared.identifiers import generate_id


logger = logging.getLogger(__name__)

UNTITLED_CHAT = "Untitled Chat"
TITLE_MAX_LENGTH = 100


def build_title(messages: list[ChatMessage]) -> str:
    """First 100 characters of the first message, or the untitled fallback."""
    content = messages[0].content if messages else ""
    return content[:TITLE_MAX_LENGTH] or UNTITLED_CHAT


class ChatService:
    """Service class for streaming chat completions."""

    def __init__(
        self,
        repository: ChatRepository,
        completion_service: CompletionService | None = None,
        id_factory: Callable[[], str] = generate_id,
    ):
        """Initialize chat service.

        Args:
            repository: Store the finished transcript is upserted into.
            completion_service: Client for the upstream completion API. Only
                needed for streaming.
            id_factory: Generator for chat ids when the caller supplies none.
        """
        self.completion_service = completion_service
        self.repository = repository
        self.id_factory = id_factory

    async def start_stream(self, prepared: PreparedChat) -> AsyncIterator[str]:
        """Open the upstream stream and return the relaying iterator.

        The upstream call is awaited here so a failure before the first chunk
        becomes an error response instead of a broken stream.

        Raises:
            UpstreamCallError: If the completion call is rejected.
        """
        try:
            stream = await self.completion_service.create_stream(
                prepared.completion_messages,
                credential=prepared.request.preview_token,
            )
        except Exception as e:
            logger.error(f"OpenAI API error: {str(e)}")
            raise UpstreamCallError() from e

        return self._relay(stream, prepared)

    async def _relay(
        self, stream: AsyncStream[ChatCompletionChunk], prepared: PreparedChat
    ) -> AsyncIterator[str]:
        """Forward each chunk as it arrives, then persist once the stream ends.

        If the client goes away the response task is cancelled at a ``yield``;
        the upstream stream is closed and nothing is persisted.
        """
        chunks: list[str] = []
        completed = False
        try:
            async for text in self.completion_service.iter_text(stream):
                chunks.append(text)
                yield text
            completed = True
        except (OpenAIError, httpx.HTTPError) as e:
            logger.error(f"Completion stream failed after {len(chunks)} chunks: {str(e)}")
        finally:
            await stream.close()

        if completed:
            await self.save_completion(prepared, "".join(chunks))

    def build_persisted_chat(self, prepared: PreparedChat, completion: str) -> PersistedChat:
        """Assemble the stored transcript from the caller's messages plus the answer."""
        chat_id = prepared.request.id or self.id_factory()
        return PersistedChat(
            id=chat_id,
            title=build_title(prepared.request.messages),
            user_id=prepared.user.id,
            created_at=int(datetime.now(UTC).timestamp() * 1000),
            path=f"/chat/{chat_id}",
            messages=[
                *prepared.request.messages,
                ChatMessage(role=MessageRole.ASSISTANT, content=completion),
            ],
        )

    async def save_completion(self, prepared: PreparedChat, completion: str) -> PersistedChat | None:
        """Upsert the finished transcript. Failures are logged, never raised.

        Returns:
            The stored chat, or None if the write failed.
        """
        chat = self.build_persisted_chat(prepared, completion)
        try:
            await self.repository.upsert(chat)
        except PersistenceError as e:
            logger.error(f"Chat upsert error for {chat.id}: {e.details.get('error', e.message)}")
            return None

        logger.info(f"Persisted chat {chat.id} for user {chat.user_id}")
        return chat

    async def get_chat(self, chat_id: str, user_id: str) -> PersistedChat:
        chat = await self.repository.get(chat_id, user_id)
        if chat is None:
            raise ChatNotFoundError()
        return chat

    async def list_chats(self, user_id: str) -> list[PersistedChat]:
        return await self.repository.list_for_user(user_id)

    async def delete_chat(self, chat_id: str, user_id: str) -> None:
        if not await self.repository.delete(chat_id, user_id):
            raise ChatNotFoundError()

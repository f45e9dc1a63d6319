"""Unit tests for Chat Service."""

import logging
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from app.domains.chat.service import UNTITLED_CHAT, ChatService, build_title
from app.domains.chat.validation import PreparedChat, with_system_prompt
from app.exceptions.chat import ChatNotFoundError, PersistenceError, UpstreamCallError
from app.schemas.chat import AuthenticatedUser, ChatMessage, ChatRequest, MessageRole
from tests.factories import TEST_USER_ID, PersistedChatFactory, make_completion_service


def _prepared(messages=None, chat_id=None, preview_token=None) -> PreparedChat:
    messages = messages or [ChatMessage(role=MessageRole.USER, content="Hello there, how are you today my friend")]
    request = ChatRequest(messages=messages, id=chat_id, preview_token=preview_token)
    return PreparedChat(
        request=request,
        user=AuthenticatedUser(id=TEST_USER_ID),
        completion_messages=with_system_prompt(request.messages),
    )


async def _drain(iterator) -> list[str]:
    return [text async for text in iterator]


class TestBuildTitle:
    """Test cases for title derivation."""

    def test_title_is_first_message_content(self):
        messages = [ChatMessage(role=MessageRole.USER, content="Plan my trip")]
        assert build_title(messages) == "Plan my trip"

    def test_title_truncated_to_100_characters(self):
        messages = [ChatMessage(role=MessageRole.USER, content="x" * 150)]
        assert build_title(messages) == "x" * 100

    def test_empty_content_falls_back(self):
        messages = [ChatMessage(role=MessageRole.USER, content="")]
        assert build_title(messages) == UNTITLED_CHAT

    def test_no_messages_falls_back(self):
        assert build_title([]) == "Untitled Chat"

    def test_only_first_message_is_used(self):
        messages = [
            ChatMessage(role=MessageRole.USER, content="first"),
            ChatMessage(role=MessageRole.ASSISTANT, content="second"),
        ]
        assert build_title(messages) == "first"


@pytest.mark.asyncio
class TestChatServiceStreaming:
    """Test cases for relaying the completion stream."""

    @pytest.fixture
    def repository(self):
        repository = MagicMock()
        repository.upsert = AsyncMock()
        return repository

    def _service(self, repository, texts=("I'm ", "fine, ", "thanks!"), **kwargs):
        completion_service = make_completion_service(texts, **kwargs)
        return ChatService(repository=repository, completion_service=completion_service), completion_service

    async def test_streams_chunks_in_order(self, repository):
        service, _ = self._service(repository)

        tokens = await service.start_stream(_prepared())

        assert await _drain(tokens) == ["I'm ", "fine, ", "thanks!"]

    async def test_persists_full_transcript_after_stream(self, repository):
        service, _ = self._service(repository)
        prepared = _prepared()

        await _drain(await service.start_stream(prepared))

        repository.upsert.assert_awaited_once()
        chat = repository.upsert.await_args.args[0]
        assert chat.user_id == TEST_USER_ID
        assert chat.title == "Hello there, how are you today my friend"
        assert chat.messages == [
            *prepared.request.messages,
            ChatMessage(role=MessageRole.ASSISTANT, content="I'm fine, thanks!"),
        ]
        assert all(message.role != MessageRole.SYSTEM for message in chat.messages)

    async def test_persistence_happens_after_last_chunk(self, repository):
        service, _ = self._service(repository)
        events = []
        repository.upsert.side_effect = lambda chat: events.append("upsert")

        async for text in await service.start_stream(_prepared()):
            events.append(text)

        assert events == ["I'm ", "fine, ", "thanks!", "upsert"]

    async def test_nothing_persisted_before_stream_ends(self, repository):
        service, _ = self._service(repository)
        tokens = await service.start_stream(_prepared())

        await tokens.__anext__()
        await tokens.__anext__()

        repository.upsert.assert_not_awaited()
        await tokens.aclose()

    async def test_client_disconnect_skips_persistence_and_closes_upstream(self, repository):
        service, completion_service = self._service(repository)
        tokens = await service.start_stream(_prepared())

        await tokens.__anext__()
        await tokens.aclose()

        repository.upsert.assert_not_awaited()
        assert completion_service.stream.closed is True

    async def test_upstream_stream_closed_after_completion(self, repository):
        service, completion_service = self._service(repository)

        await _drain(await service.start_stream(_prepared()))

        assert completion_service.stream.closed is True

    async def test_mid_stream_failure_ends_body_without_persisting(self, repository, caplog):
        service, completion_service = self._service(
            repository, texts=["partial "], stream_error=httpx.ReadError("connection reset")
        )

        with caplog.at_level(logging.ERROR):
            tokens = await _drain(await service.start_stream(_prepared()))

        assert tokens == ["partial "]
        repository.upsert.assert_not_awaited()
        assert completion_service.stream.closed is True
        assert "connection reset" in caplog.text

    async def test_empty_chunks_are_skipped(self, repository):
        service, _ = self._service(repository, texts=["", "Bon", None, "jour"])

        assert await _drain(await service.start_stream(_prepared())) == ["Bon", "jour"]
        assert repository.upsert.await_args.args[0].messages[-1].content == "Bonjour"

    async def test_upstream_call_failure_raises(self, repository, caplog):
        service, _ = self._service(repository, error=RuntimeError("401 invalid api key"))

        with caplog.at_level(logging.ERROR):
            with pytest.raises(UpstreamCallError) as exc_info:
                await service.start_stream(_prepared())

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "Internal Server Error: OpenAI API failed"
        assert "invalid api key" in caplog.text
        repository.upsert.assert_not_awaited()

    async def test_sends_system_prompt_and_fixed_parameters(self, repository):
        service, completion_service = self._service(repository)

        await _drain(await service.start_stream(_prepared()))

        kwargs = completion_service.client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-3.5-turbo"
        assert kwargs["temperature"] == 0.7
        assert kwargs["stream"] is True
        assert kwargs["messages"][0]["role"] == "system"

    async def test_preview_token_passed_per_call(self, repository):
        service, completion_service = self._service(repository)

        await _drain(await service.start_stream(_prepared(preview_token="sk-preview")))

        completion_service.client.with_options.assert_called_once_with(api_key="sk-preview")

    async def test_no_preview_token_uses_shared_client(self, repository):
        service, completion_service = self._service(repository)

        await _drain(await service.start_stream(_prepared()))

        completion_service.client.with_options.assert_not_called()


class TestChatServicePersistence:
    """Test cases for building and saving the transcript."""

    @pytest.fixture
    def repository(self):
        repository = MagicMock()
        repository.upsert = AsyncMock()
        return repository

    def test_supplied_id_used_for_id_and_path(self, repository):
        service = ChatService(repository=repository)

        chat = service.build_persisted_chat(_prepared(chat_id="abc1234"), "done")

        assert chat.id == "abc1234"
        assert chat.path == "/chat/abc1234"

    def test_generated_id_used_consistently(self, repository):
        service = ChatService(repository=repository, id_factory=lambda: "gen0001")

        chat = service.build_persisted_chat(_prepared(), "done")

        assert chat.id == "gen0001"
        assert chat.path == "/chat/gen0001"

    def test_created_at_is_epoch_milliseconds(self, repository):
        service = ChatService(repository=repository)

        chat = service.build_persisted_chat(_prepared(), "done")

        assert chat.created_at > 1_600_000_000_000

    @pytest.mark.asyncio
    async def test_save_completion_returns_chat(self, repository):
        service = ChatService(repository=repository)

        chat = await service.save_completion(_prepared(), "Bonjour")

        assert chat is not None
        repository.upsert.assert_awaited_once_with(chat)

    @pytest.mark.asyncio
    async def test_save_completion_swallows_persistence_error(self, repository, caplog):
        repository.upsert.side_effect = PersistenceError(details={"error": "database is locked"})
        service = ChatService(repository=repository)

        with caplog.at_level(logging.ERROR):
            result = await service.save_completion(_prepared(), "Bonjour")

        assert result is None
        assert "database is locked" in caplog.text

    @pytest.mark.asyncio
    async def test_get_chat_not_found(self, repository):
        repository.get = AsyncMock(return_value=None)
        service = ChatService(repository=repository)

        with pytest.raises(ChatNotFoundError):
            await service.get_chat("missing", TEST_USER_ID)

    @pytest.mark.asyncio
    async def test_get_chat(self, repository):
        chat = PersistedChatFactory()
        repository.get = AsyncMock(return_value=chat)
        service = ChatService(repository=repository)

        assert await service.get_chat(chat.id, TEST_USER_ID) == chat

    @pytest.mark.asyncio
    async def test_delete_chat_not_found(self, repository):
        repository.delete = AsyncMock(return_value=False)
        service = ChatService(repository=repository)

        with pytest.raises(ChatNotFoundError):
            await service.delete_chat("missing", TEST_USER_ID)

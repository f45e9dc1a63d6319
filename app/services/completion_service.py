"""Streaming chat completion client backed by the OpenAI API."""

import logging
from collections.abc import AsyncIterator, Sequence

from openai import AsyncOpenAI, AsyncStream
from openai.types.chat import ChatCompletionChunk

from app.core.config import settings
from app.exceptions.chat import CompletionConfigurationError
from app.schemas.chat import ChatMessage


logger = logging.getLogger(__name__)


class CompletionService:
    """Issues streaming chat completions at a fixed model and temperature.

    The underlying client is shared across requests and never mutated. A
    per-request credential is applied to a copy of the client for that call
    only.
    """

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str | None = None,
        temperature: float | None = None,
    ):
        """Initialize the completion service.

        Args:
            client: Preconfigured client. Built from settings when omitted.
            model: Chat model name, defaults to ``settings.openai_model``.
            temperature: Sampling temperature, defaults to ``settings.openai_temperature``.
        """
        self.model = model or settings.openai_model
        self.temperature = settings.openai_temperature if temperature is None else temperature
        self.client = client or self._initialize_client()

    @staticmethod
    def _initialize_client() -> AsyncOpenAI:
        if not settings.openai_api_key:
            raise CompletionConfigurationError(details={"reason": "OpenAI API key not configured"})

        client = AsyncOpenAI(api_key=settings.openai_api_key, base_url=settings.openai_base_url)
        logger.info(f"OpenAI completion client initialized with model: {settings.openai_model}")
        return client

    async def create_stream(
        self,
        messages: Sequence[ChatMessage],
        credential: str | None = None,
    ) -> AsyncStream[ChatCompletionChunk]:
        """Start a streaming completion.

        Args:
            messages: Full conversation to send, system directive included.
            credential: API key to use instead of the server key for this call.

        Returns:
            The open chunk stream. Errors raised before the first chunk
            surface here.
        """
        client = self.client.with_options(api_key=credential) if credential else self.client
        return await client.chat.completions.create(
            model=self.model,
            messages=[message.to_completion_param() for message in messages],
            temperature=self.temperature,
            stream=True,
        )

    @staticmethod
    async def iter_text(stream: AsyncIterator[ChatCompletionChunk]) -> AsyncIterator[str]:
        """Yield the non-empty text deltas of a completion stream in order."""
        async for chunk in stream:
            if not chunk.choices:
                continue
            content = chunk.choices[0].delta.content
            if content:
                yield content

"""OpenAI chat completion client wrapper."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from openai import AsyncOpenAI, OpenAIError

from calls.errors import GenerationFailedError
from config.settings import Settings, get_settings
from llm.base import BaseLLMClient

LOGGER = logging.getLogger(__name__)


def build_openai(settings: Settings) -> AsyncOpenAI:
    if not settings.openai_api_key:
        raise ValueError("OPENAI_API_KEY must be configured.")
    return AsyncOpenAI(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url or None,
    )


class OpenAIClient(BaseLLMClient):
    """Wrapper for the OpenAI Chat Completion API."""

    def __init__(self, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._client = build_openai(settings)
        self._model = settings.llm_model

    async def chat(
        self,
        messages: Iterable[dict[str, str]],
        *,
        temperature: float = 1.0,
        max_tokens: int = 100,
    ) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=list(messages),
                temperature=temperature,
                max_tokens=max_tokens,
                stream=False,
            )
        except OpenAIError as exc:
            raise GenerationFailedError(f"Chat completion failed: {exc}") from exc
        if not response.choices:
            LOGGER.warning("Chat completion returned no choices")
            return ""
        return response.choices[0].message.content or ""

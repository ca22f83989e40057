"""Factory returning the configured dialogue policy."""

from __future__ import annotations

from config.settings import Settings, get_settings
from dialogue.generative import GenerativePolicy
from dialogue.policy import DialoguePolicy
from dialogue.scripted import ScriptedPolicy
from llm.base import BaseLLMClient


def build_dialogue_policy(
    kind: str | None = None,
    *,
    settings: Settings | None = None,
    llm: BaseLLMClient | None = None,
) -> DialoguePolicy:
    """Instantiate a policy; `kind` defaults to `settings.dialogue_policy`."""

    settings = settings or get_settings()
    kind = kind or settings.dialogue_policy

    if kind == "scripted":
        return ScriptedPolicy(
            confidence_floor=settings.confidence_floor,
            max_retries=settings.max_retries,
        )
    if kind == "generative":
        if llm is None:
            from llm.openai_client import OpenAIClient

            llm = OpenAIClient(settings)
        return GenerativePolicy(
            llm,
            confidence_floor=settings.confidence_floor,
            max_retries=settings.max_retries,
            max_turns=settings.max_turns,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            timeout_seconds=settings.downstream_timeout_seconds,
        )
    raise ValueError(f"Unsupported dialogue policy: {kind}")

"""Language-model driven dialogue policy."""

from __future__ import annotations

import asyncio
import logging
from typing import Final

from calls.errors import GenerationFailedError
from calls.session import CallContext, CallSession
from dialogue.policy import DialoguePolicy, TurnResult
from llm.base import BaseLLMClient
from prompts.loader import load_prompt

LOGGER = logging.getLogger(__name__)

END_CALL_SENTINEL: Final[str] = "[END_CALL]"

PERSONA_PROMPT = load_prompt("persona_system.txt")

GREETING = (
    "Hello, this is Alex calling from {brand_name}. I'm reaching out regarding "
    "{product_category}. Do you have a moment to talk?"
)
APOLOGY = "I'm having some tech issues. Let me have someone call you back."
EMPTY_REPLY = "Sorry, could you repeat that?"
WRAP_UP = "I don't want to take up more of your time. I'll follow up by email with the details. Thanks so much!"


def split_end_sentinel(text: str) -> tuple[str, bool]:
    """Strip a leading end-of-call sentinel; returns (clean_text, should_end)."""

    stripped = text.strip()
    if stripped.startswith(END_CALL_SENTINEL):
        return stripped[len(END_CALL_SENTINEL) :].strip(), True
    return stripped, False


class GenerativePolicy(DialoguePolicy):
    """Free-form replies from a chat model, bounded to short spoken turns."""

    def __init__(
        self,
        llm: BaseLLMClient,
        *,
        confidence_floor: float = 0.5,
        max_retries: int = 2,
        max_turns: int = 12,
        temperature: float = 1.0,
        max_tokens: int = 100,
        timeout_seconds: float = 15.0,
    ) -> None:
        super().__init__(confidence_floor=confidence_floor, max_retries=max_retries)
        self._llm = llm
        self._max_turns = max_turns
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._timeout = timeout_seconds

    def greeting(self, context: CallContext) -> str:
        return GREETING.format(
            brand_name=context.brand_name,
            product_category=context.product_category,
        )

    def build_messages(self, session: CallSession) -> list[dict[str, str]]:
        ctx = session.context
        system = (
            f"{PERSONA_PROMPT}\n"
            f"CONTEXT: You're calling from {ctx.brand_name} about {ctx.product_category}. "
            f"The business is {ctx.business_name}. Answer questions confidently."
        )
        messages = [{"role": "system", "content": system}]
        messages.extend(msg.as_chat() for msg in session.history if msg.role != "system")
        return messages

    async def _respond(self, session: CallSession, utterance: str, confidence: float) -> TurnResult:
        if session.turn_count >= self._max_turns:
            LOGGER.info("Turn cap reached call_id=%s", session.call_id)
            return TurnResult(WRAP_UP, should_end_call=True)

        try:
            raw = await asyncio.wait_for(
                self._llm.chat(
                    self.build_messages(session),
                    temperature=self._temperature,
                    max_tokens=self._max_tokens,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            LOGGER.warning("Generation timed out call_id=%s", session.call_id)
            return TurnResult(APOLOGY, should_end_call=True)
        except GenerationFailedError as exc:
            LOGGER.warning("Generation failed call_id=%s: %s", session.call_id, exc.detail)
            return TurnResult(APOLOGY, should_end_call=True)
        except Exception:
            LOGGER.exception("Generation failed call_id=%s", session.call_id)
            return TurnResult(APOLOGY, should_end_call=True)

        text, should_end = split_end_sentinel(raw or "")
        if not text:
            if should_end:
                return TurnResult("Thanks for your time. Have a good day.", should_end_call=True)
            return TurnResult(EMPTY_REPLY)
        return TurnResult(text, should_end_call=should_end)

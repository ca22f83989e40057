"""Common contract for dialogue policies."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from calls.session import CallContext, CallSession

LOGGER = logging.getLogger(__name__)

REPEAT_PROMPT = "Sorry, I didn't quite catch that. Could you repeat that for me?"
FOLLOW_UP_GOODBYE = (
    "We're having trouble with the connection. We'll reach out via text instead. Have a great day!"
)


@dataclass(frozen=True, slots=True)
class TurnResult:
    response_text: str
    should_end_call: bool = False


class DialoguePolicy(ABC):
    """Decides the assistant's next utterance for a live call.

    `next_turn` owns history bookkeeping; subclasses implement `_respond`,
    which sees the session with the caller's utterance already appended.
    """

    def __init__(self, *, confidence_floor: float = 0.5, max_retries: int = 2) -> None:
        self.confidence_floor = confidence_floor
        self.max_retries = max_retries

    @abstractmethod
    def greeting(self, context: CallContext) -> str:
        """Opening line spoken before the caller says anything."""

    @abstractmethod
    async def _respond(self, session: CallSession, utterance: str, confidence: float) -> TurnResult:
        """Produce the reply for one dialogue turn."""

    def open(self, session: CallSession) -> str:
        """Record and return the greeting for a freshly created session."""

        text = self.greeting(session.context)
        session.add_assistant(text)
        return text

    async def next_turn(
        self,
        session: CallSession,
        utterance: str,
        confidence: float = 1.0,
    ) -> TurnResult:
        utterance = (utterance or "").strip()

        if utterance and confidence < self.confidence_floor:
            return self._ask_to_repeat(session, confidence)

        session.repeat_count = 0
        if utterance:
            session.add_user(utterance)
        result = await self._respond(session, utterance, confidence)
        session.add_assistant(result.response_text)

        LOGGER.info(
            "Turn %d call_id=%s end=%s: %r",
            session.turn_count,
            session.call_id,
            result.should_end_call,
            result.response_text,
        )
        return result

    def _ask_to_repeat(self, session: CallSession, confidence: float) -> TurnResult:
        # Not a dialogue turn: history and turn_count stay untouched.
        LOGGER.info(
            "Low confidence %.2f call_id=%s (repeat %d/%d)",
            confidence,
            session.call_id,
            session.repeat_count,
            self.max_retries,
        )
        if session.repeat_count >= self.max_retries:
            return TurnResult(FOLLOW_UP_GOODBYE, should_end_call=True)
        session.repeat_count += 1
        return TurnResult(REPEAT_PROMPT, should_end_call=False)

"""Twilio ConversationRelay bridge: Twilio transcribes and speaks, we reply with text."""

from __future__ import annotations

import logging

from calls.errors import MalformedFrameError
from calls.session import CallSession
from transport.base import BaseBridge
from transport.events import (
    DtmfEvent,
    ErrorEvent,
    InterruptEvent,
    PromptEvent,
    SetupEvent,
    parse_relay_event,
)

LOGGER = logging.getLogger(__name__)

RELAY_SUBPROTOCOL = "conversation-relay.v1"


class ConversationRelayBridge(BaseBridge):
    async def handle_message(self, message: str) -> None:
        event = parse_relay_event(message)

        if isinstance(event, PromptEvent):
            await self._on_prompt(event)
        elif isinstance(event, SetupEvent):
            await self._on_setup(event)
        elif isinstance(event, InterruptEvent):
            LOGGER.info("Caller interrupted call_id=%s: %r", self.call_id, event.utterance_until_interrupt)
        elif isinstance(event, DtmfEvent):
            LOGGER.info("DTMF call_id=%s digit=%s", self.call_id, event.digit)
        elif isinstance(event, ErrorEvent):
            LOGGER.error("Relay error call_id=%s: %s", self.call_id, event.description)
        else:
            LOGGER.info("Ignoring unknown relay event %r", event.kind)

    async def _on_setup(self, event: SetupEvent) -> None:
        call_id = event.call_sid or event.session_id
        if not call_id:
            raise MalformedFrameError("setup event carries no callSid")

        session, created = await self.open_session(call_id, event.custom_parameters)
        LOGGER.info("Relay session set up call_id=%s", call_id)
        if created:
            await self.say(self._policy.open(session))

    async def _on_prompt(self, event: PromptEvent) -> None:
        if not event.last or self.hanging_up:
            return
        session = await self.current_session()
        if session is None:
            return
        await self._run_turn(session, event.voice_prompt, event.confidence)

    async def _run_turn(self, session: CallSession, text: str, confidence: float) -> None:
        session.processing = True
        try:
            result = await self._policy.next_turn(session, text, confidence)
            if not session.active:
                return
            await self.say(result.response_text)
            if result.should_end_call:
                self.schedule_hangup()
        finally:
            session.processing = False

    async def say(self, text: str) -> None:
        await self.send_json({"type": "text", "token": text, "last": True})

    async def send_end(self) -> None:
        await self.send_json({"type": "end"})

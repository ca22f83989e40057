"""Twilio Media Streams bridge: raw mu-law in, synthesized mu-law out."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging

from calls.errors import MalformedFrameError, SynthesisFailedError
from calls.session import CallSession
from speech.stt import SpeechToTextAdapter
from speech.tts import BaseSynthesizer, synthesize_for_telephony
from telephony.g711 import FRAME_MS, frame_bytes_for, iter_frames
from transport.base import BaseBridge
from transport.events import (
    ConnectedEvent,
    MarkEvent,
    MediaEvent,
    StartEvent,
    StopEvent,
    parse_media_stream_event,
)

LOGGER = logging.getLogger(__name__)


class MediaStreamBridge(BaseBridge):
    """Runs the transcribe -> respond -> synthesize loop for one Media Stream."""

    def __init__(
        self,
        *args,
        stt: SpeechToTextAdapter,
        synthesizer: BaseSynthesizer,
        frame_ms: int = FRAME_MS,
        synthesis_timeout: float = 15.0,
        **kwargs,
    ) -> None:
        super().__init__(*args, **kwargs)
        self._stt = stt
        self._synthesizer = synthesizer
        self._frame_ms = frame_ms
        self._frame_bytes = frame_bytes_for(frame_ms)
        self._synthesis_timeout = synthesis_timeout
        self.stream_sid = ""

    async def handle_message(self, message: str) -> None:
        event = parse_media_stream_event(message)

        if isinstance(event, MediaEvent):
            await self._on_media(event)
        elif isinstance(event, StartEvent):
            await self._on_start(event)
        elif isinstance(event, StopEvent):
            LOGGER.info("Media stream stopped call_id=%s", self.call_id)
            await self.finish()
        elif isinstance(event, (ConnectedEvent, MarkEvent)):
            LOGGER.debug("Media stream %s event", event.event)
        else:
            LOGGER.info("Ignoring unknown media stream event %r", event.kind)

    async def _on_start(self, event: StartEvent) -> None:
        info = event.start
        self.stream_sid = info.stream_sid or event.stream_sid
        call_id = info.call_sid or self.stream_sid
        if not call_id:
            raise MalformedFrameError("start event carries neither callSid nor streamSid")

        session, created = await self.open_session(
            call_id,
            info.custom_parameters,
            stream_id=self.stream_sid,
        )
        LOGGER.info("Media stream started call_id=%s stream_sid=%s", call_id, self.stream_sid)
        if created:
            await self.speak(session, self._policy.open(session))

    async def _on_media(self, event: MediaEvent) -> None:
        if event.media.track != "inbound" or not event.media.payload:
            return
        if self.hanging_up:
            return

        self.stream_sid = self.stream_sid or event.stream_sid
        session = await self.current_session(fallback_id=self.stream_sid)
        if session is None:
            return

        try:
            chunk = base64.b64decode(event.media.payload, validate=True)
        except binascii.Error as exc:
            raise MalformedFrameError("media payload is not valid base64") from exc

        self._stt.accumulate(session, chunk)
        if self._stt.should_flush(session):
            await self._run_turn(session)

    async def _run_turn(self, session: CallSession) -> None:
        session.processing = True
        try:
            text = await self._stt.flush(session)
            if not text or not session.active:
                return
            result = await self._policy.next_turn(session, text)
            if not session.active:
                return
            await self.speak(session, result.response_text)
            if result.should_end_call:
                self.schedule_hangup()
        finally:
            session.processing = False

    async def speak(self, session: CallSession, text: str) -> bool:
        """Synthesize `text` and stream it; returns False if nothing was sent."""

        try:
            ulaw = await synthesize_for_telephony(
                self._synthesizer,
                text,
                timeout=self._synthesis_timeout,
            )
        except SynthesisFailedError as exc:
            LOGGER.error("Dropping playback call_id=%s: %s", session.call_id, exc.detail)
            return False

        sent = 0
        for frame in iter_frames(ulaw, self._frame_bytes):
            if not session.active:
                break
            await self.send_json(
                {
                    "event": "media",
                    "streamSid": self.stream_sid,
                    "media": {"payload": base64.b64encode(frame).decode("ascii")},
                }
            )
            sent += 1
            # Pace frames at playback speed so the phone leg is not flooded.
            await asyncio.sleep(self._frame_ms / 1000)

        LOGGER.info("Sent %d bytes in %d frames call_id=%s", len(ulaw), sent, session.call_id)
        return sent > 0

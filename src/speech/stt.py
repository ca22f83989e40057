"""Buffers inbound call audio and flushes it to the transcriber."""

from __future__ import annotations

import asyncio
import logging
import time

from calls.errors import TranscriptionFailedError
from calls.session import CallSession
from speech.transcriber import BaseTranscriber
from telephony.g711 import TELEPHONY_RATE, pcm16_to_wav_bytes, ulaw_to_pcm16_bytes

LOGGER = logging.getLogger(__name__)


class SpeechToTextAdapter:
    """Per-session audio buffering in front of a transcriber.

    A flush happens only once enough audio is buffered, enough time has passed
    since the previous flush and no flush is in flight for the session.
    """

    def __init__(
        self,
        transcriber: BaseTranscriber,
        *,
        min_buffer_bytes: int = 16000,
        min_interval_seconds: float = 2.0,
        timeout_seconds: float = 15.0,
    ) -> None:
        self._transcriber = transcriber
        self._min_bytes = min_buffer_bytes
        self._min_interval = min_interval_seconds
        self._timeout = timeout_seconds

    def accumulate(self, session: CallSession, chunk: bytes) -> None:
        if chunk and session.active:
            session.pending_audio.append(chunk)

    def should_flush(self, session: CallSession, now: float | None = None) -> bool:
        if session.processing or not session.active:
            return False
        now = time.monotonic() if now is None else now
        return (
            session.pending_bytes >= self._min_bytes
            and now - session.last_processed_at >= self._min_interval
        )

    async def flush(self, session: CallSession) -> str:
        """Transcribe and clear the buffered audio. Never raises."""

        if not session.pending_audio:
            return ""

        ulaw = b"".join(session.pending_audio)
        session.pending_audio.clear()
        session.last_processed_at = time.monotonic()

        wav = pcm16_to_wav_bytes(ulaw_to_pcm16_bytes(ulaw), TELEPHONY_RATE)
        try:
            text = await asyncio.wait_for(self._transcriber.transcribe(wav), timeout=self._timeout)
        except asyncio.TimeoutError:
            LOGGER.warning("Transcription timed out call_id=%s", session.call_id)
            return ""
        except TranscriptionFailedError as exc:
            LOGGER.warning("Transcription failed call_id=%s: %s", session.call_id, exc.detail)
            return ""
        except Exception:
            LOGGER.exception("Transcription failed call_id=%s", session.call_id)
            return ""

        text = (text or "").strip()
        if text:
            LOGGER.info("Caller said call_id=%s: %r", session.call_id, text)
        return text

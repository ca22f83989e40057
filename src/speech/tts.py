"""Text-to-speech synthesis and conversion to telephone audio."""

from __future__ import annotations

import asyncio
import io
import logging
from abc import ABC, abstractmethod

import httpx
import numpy as np
import soundfile as sf

from calls.errors import AudioConversionError, SynthesisFailedError
from config.settings import Settings, get_settings
from telephony.g711 import TELEPHONY_RATE, pcm16_resample, ulaw_encode

LOGGER = logging.getLogger(__name__)


class BaseSynthesizer(ABC):
    """Interface for all text-to-speech synthesizers."""

    @abstractmethod
    async def synthesize(self, text: str) -> bytes:
        """Synthesize speech for the given text in the provider's native format."""


class ElevenLabsSynthesizer(BaseSynthesizer):
    """ElevenLabs text-to-speech over the REST API (MP3 output)."""

    def __init__(self, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        if not settings.elevenlabs_api_key:
            raise ValueError("ELEVENLABS_API_KEY must be configured.")

        self._api_key = settings.elevenlabs_api_key
        self._url = (
            f"{settings.elevenlabs_base_url.rstrip('/')}/v1/text-to-speech/{settings.elevenlabs_voice_id}"
        )
        self._model_id = settings.elevenlabs_model_id
        self._voice_settings = {
            "stability": settings.voice_stability,
            "similarity_boost": settings.voice_similarity_boost,
            "style": settings.voice_style,
            "use_speaker_boost": settings.voice_use_speaker_boost,
        }

    async def synthesize(self, text: str) -> bytes:
        payload = {
            "text": text,
            "model_id": self._model_id,
            "voice_settings": self._voice_settings,
        }
        headers = {
            "xi-api-key": self._api_key,
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
        }

        async with httpx.AsyncClient(timeout=30) as client:
            response = await client.post(
                self._url,
                json=payload,
                headers=headers,
                params={"output_format": "mp3_44100_128"},
            )
        try:
            response.raise_for_status()
        except httpx.HTTPError as exc:
            LOGGER.error("ElevenLabs synthesis failed: %s", exc)
            raise SynthesisFailedError(str(exc)) from exc

        audio = response.content
        LOGGER.debug("ElevenLabs generated %d bytes", len(audio))
        return audio


def to_telephony_format(audio_bytes: bytes) -> bytes:
    """Convert provider audio (MP3/WAV/...) to 8 kHz mono mu-law.

    Raises:
        AudioConversionError: if the audio cannot be decoded or is empty.
    """

    if not audio_bytes:
        raise AudioConversionError("No audio data to convert")

    try:
        with sf.SoundFile(io.BytesIO(audio_bytes), mode="r") as f:
            audio = f.read(dtype="float32")
            src_rate = int(f.samplerate)
    except (sf.LibsndfileError, RuntimeError, TypeError) as exc:
        raise AudioConversionError(f"Unreadable synthesized audio: {exc}") from exc

    if isinstance(audio, np.ndarray) and audio.ndim > 1:
        audio = np.mean(audio, axis=1)
    if audio.size == 0:
        raise AudioConversionError("Synthesized audio contains no samples")

    pcm = np.clip(audio * 32767.0, -32768, 32767).astype(np.int16)
    pcm = pcm16_resample(pcm, src_rate, TELEPHONY_RATE)
    return ulaw_encode(pcm)


async def synthesize_for_telephony(
    synthesizer: BaseSynthesizer,
    text: str,
    *,
    timeout: float = 15.0,
) -> bytes:
    """Synthesize `text` and return mu-law audio ready for the phone leg."""

    try:
        audio = await asyncio.wait_for(synthesizer.synthesize(text), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise SynthesisFailedError("Speech synthesis timed out") from exc
    except SynthesisFailedError:
        raise
    except Exception as exc:
        raise SynthesisFailedError(str(exc)) from exc

    # Decoding is CPU-bound; keep it off the event loop.
    return await asyncio.to_thread(to_telephony_format, audio)


def build_synthesizer(settings: Settings | None = None) -> BaseSynthesizer:
    """Factory returning the configured synthesizer."""

    return ElevenLabsSynthesizer(settings)

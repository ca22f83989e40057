"""Speech-to-text backends for short telephone utterances."""

from __future__ import annotations

import asyncio
import io
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

import numpy as np
import soundfile as sf
from openai import OpenAIError

from calls.errors import TranscriptionFailedError
from config.settings import Settings, get_settings
from llm.openai_client import build_openai

LOGGER = logging.getLogger(__name__)

WHISPER_RATE = 16000

CALL_PROMPT = (
    "This is an outbound sales phone call. The caller may ask about pricing, "
    "say they are busy, or ask to speak with the owner or a manager."
)


@dataclass
class TranscriptionSegment:
    """Structured representation of a Whisper transcription segment."""

    start: float
    end: float
    text: str
    logprob: float


class BaseTranscriber(ABC):
    """Interface for all speech-to-text backends."""

    @abstractmethod
    async def transcribe(self, wav_bytes: bytes) -> str:
        """Return the transcript of a WAV payload (may be empty)."""


class OpenAIWhisperTranscriber(BaseTranscriber):
    """Hosted Whisper transcription through the OpenAI audio API."""

    def __init__(self, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._client = build_openai(settings)
        self._model = settings.whisper_api_model
        self._language = settings.whisper_language

    async def transcribe(self, wav_bytes: bytes) -> str:
        try:
            transcription = await self._client.audio.transcriptions.create(
                file=("audio.wav", wav_bytes, "audio/wav"),
                model=self._model,
                language=self._language,
                prompt=CALL_PROMPT,
            )
        except OpenAIError as exc:
            raise TranscriptionFailedError(f"Whisper request failed: {exc}") from exc
        return transcription.text.strip()


class LocalWhisperTranscriber(BaseTranscriber):
    """On-box transcription using faster-whisper."""

    def __init__(self, settings: Settings | None = None) -> None:
        try:
            from faster_whisper import WhisperModel
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError(
                "faster-whisper is required for LocalWhisperTranscriber (install the local-stt extra)."
            ) from exc

        settings = settings or get_settings()
        self._language = settings.whisper_language
        self._model = WhisperModel(
            model_size_or_path=settings.whisper_model_size,
            device=settings.whisper_device,
            compute_type=settings.whisper_compute_type,
        )

    async def transcribe(self, wav_bytes: bytes) -> str:
        segments = await asyncio.to_thread(self._transcribe_sync, wav_bytes)
        return merge_segments(segments)

    def _transcribe_sync(self, wav_bytes: bytes) -> list[TranscriptionSegment]:
        with sf.SoundFile(io.BytesIO(wav_bytes), mode="r") as audio_file:
            audio_array = audio_file.read(dtype="float32")
            sample_rate = int(audio_file.samplerate)

        if isinstance(audio_array, np.ndarray) and audio_array.ndim > 1:
            audio_array = np.mean(audio_array, axis=1)  # convert to mono
        if audio_array.size == 0:
            return []

        # faster-whisper expects 16 kHz input; telephone audio arrives at 8 kHz.
        if sample_rate != WHISPER_RATE:
            target_size = int(audio_array.size * WHISPER_RATE / sample_rate)
            audio_array = np.interp(
                np.linspace(0, audio_array.size - 1, target_size, dtype=np.float32),
                np.arange(audio_array.size, dtype=np.float32),
                audio_array,
            ).astype(np.float32)

        segments, _info = self._model.transcribe(
            audio_array,
            beam_size=5,
            task="transcribe",
            language=self._language,
            condition_on_previous_text=False,
            initial_prompt=CALL_PROMPT,
            temperature=0.0,
        )

        results: list[TranscriptionSegment] = []
        for segment in segments:
            text = segment.text.strip()
            if not text:
                continue
            results.append(
                TranscriptionSegment(
                    start=segment.start,
                    end=segment.end,
                    text=text,
                    logprob=segment.avg_logprob,
                )
            )
        return results


def merge_segments(segments: Iterable[TranscriptionSegment]) -> str:
    """Merge segments into a single string, dropping blank ones."""

    return " ".join(text for text in (segment.text.strip() for segment in segments) if text)


def build_transcriber(settings: Settings | None = None) -> BaseTranscriber:
    """Factory returning the configured transcriber."""

    settings = settings or get_settings()
    if settings.stt_provider == "openai":
        return OpenAIWhisperTranscriber(settings)
    if settings.stt_provider == "faster_whisper":
        return LocalWhisperTranscriber(settings)
    raise ValueError(f"Unsupported STT provider: {settings.stt_provider}")

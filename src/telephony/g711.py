from __future__ import annotations

import wave
from collections.abc import Iterator
from io import BytesIO
from typing import Final

import numpy as np

ULAW_BIAS: Final[int] = 0x84
ULAW_CLIP: Final[int] = 32635
TELEPHONY_RATE: Final[int] = 8000
FRAME_MS: Final[int] = 20


def ulaw_decode(ulaw_bytes: bytes) -> np.ndarray:
    """Decode G.711 mu-law bytes to a PCM16 int16 array.

    Bit-exact with the ITU-T reference expansion.
    """

    data = np.frombuffer(ulaw_bytes, dtype=np.uint8)
    if data.size == 0:
        return np.zeros(0, dtype=np.int16)

    mu = np.bitwise_not(data).astype(np.int32)
    sign = mu & 0x80
    exponent = (mu >> 4) & 0x07
    mantissa = (mu & 0x0F) | 0x10

    magnitude = (((mantissa << 1) + 1) << (exponent + 2)) - ULAW_BIAS
    pcm = np.where(sign != 0, -magnitude, magnitude)

    return pcm.astype(np.int16)


def ulaw_encode(pcm16: np.ndarray) -> bytes:
    """Encode PCM16 int16 array to G.711 mu-law bytes.

    This is a vectorized mu-law encoder suitable for realtime packetization.
    """

    if pcm16.size == 0:
        return b""

    x = pcm16.astype(np.int32)
    sign = (x < 0).astype(np.int32)
    x = np.abs(x)

    x = np.minimum(x, ULAW_CLIP)
    x = x + ULAW_BIAS

    # Smallest exponent whose segment holds the biased sample.
    exponent = np.zeros_like(x)
    for exp in range(8):
        exponent = np.where(x >= (1 << (exp + 7)), exp, exponent)

    mantissa = (x >> (exponent + 3)) & 0x0F

    ulaw = np.bitwise_not((sign << 7) | (exponent << 4) | mantissa).astype(np.uint8)
    return ulaw.tobytes()


def ulaw_to_pcm16_bytes(ulaw_bytes: bytes) -> bytes:
    """Decode mu-law to little-endian PCM16 bytes."""

    return ulaw_decode(ulaw_bytes).astype("<i2").tobytes()


def pcm16_resample(pcm: np.ndarray, src_rate: int, dst_rate: int) -> np.ndarray:
    if src_rate == dst_rate:
        return pcm
    if pcm.size == 0:
        return pcm.astype(np.int16)

    x_old = np.arange(pcm.size, dtype=np.float32)
    x_new = np.linspace(0, pcm.size - 1, int(pcm.size * dst_rate / src_rate), dtype=np.float32)

    y_old = pcm.astype(np.float32)
    y_new = np.interp(x_new, x_old, y_old)

    return np.clip(y_new, -32768, 32767).astype(np.int16)


def pcm16_to_wav_bytes(pcm: np.ndarray | bytes, sample_rate: int = TELEPHONY_RATE) -> bytes:
    """Wrap PCM16 samples in a minimal mono WAV container (44-byte header)."""

    if isinstance(pcm, (bytes, bytearray)):
        pcm_bytes = bytes(pcm)
    else:
        pcm_bytes = pcm.astype("<i2").tobytes()

    buffer = BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm_bytes)
    return buffer.getvalue()


def frame_bytes_for(frame_ms: int = FRAME_MS, sample_rate: int = TELEPHONY_RATE) -> int:
    """Number of mu-law bytes (one per sample) in a playback frame."""

    return int(sample_rate * frame_ms / 1000)


def iter_frames(ulaw: bytes, frame_bytes: int = 160) -> Iterator[bytes]:
    """Split encoded audio into fixed-size playback frames; the tail may be short."""

    if frame_bytes <= 0:
        raise ValueError("frame_bytes must be positive")
    for i in range(0, len(ulaw), frame_bytes):
        yield ulaw[i : i + frame_bytes]

from __future__ import annotations

import struct

import numpy as np
import pytest

from telephony.g711 import (
    frame_bytes_for,
    iter_frames,
    pcm16_resample,
    pcm16_to_wav_bytes,
    ulaw_decode,
    ulaw_encode,
    ulaw_to_pcm16_bytes,
)


@pytest.mark.parametrize(
    ("code", "expected"),
    [
        (0xFF, 0),
        (0x7F, 0),
        (0x00, -32124),
        (0x80, 32124),
        (0xFE, 8),
        (0x7E, -8),
        (0xEF, 132),
        (0xDF, 396),
    ],
)
def test_ulaw_decode_matches_reference_vectors(code: int, expected: int) -> None:
    assert int(ulaw_decode(bytes([code]))[0]) == expected


def test_ulaw_encode_decode_shape_and_types() -> None:
    # 20ms of 8kHz samples
    pcm = (np.sin(np.linspace(0, 2 * np.pi, 160, endpoint=False)) * 12000).astype(np.int16)

    ulaw = ulaw_encode(pcm)
    assert isinstance(ulaw, bytes)
    assert len(ulaw) == pcm.size

    decoded = ulaw_decode(ulaw)
    assert decoded.dtype == np.int16
    assert decoded.shape == pcm.shape


def test_decoded_values_survive_reencoding() -> None:
    every_code = bytes(range(256))
    decoded = ulaw_decode(every_code)

    assert np.array_equal(ulaw_decode(ulaw_encode(decoded)), decoded)


def test_silence_encodes_to_ff() -> None:
    assert ulaw_encode(np.zeros(4, dtype=np.int16)) == b"\xff" * 4


def test_encode_clips_full_scale() -> None:
    pcm = np.array([32767, -32768], dtype=np.int16)
    decoded = ulaw_decode(ulaw_encode(pcm))

    assert decoded.tolist() == [32124, -32124]


def test_empty_input() -> None:
    assert ulaw_decode(b"").size == 0
    assert ulaw_encode(np.zeros(0, dtype=np.int16)) == b""


def test_decode_to_little_endian_bytes() -> None:
    pcm_bytes = ulaw_to_pcm16_bytes(b"\x00\x80\xff")

    assert pcm_bytes == struct.pack("<3h", -32124, 32124, 0)
    assert ulaw_encode(np.frombuffer(pcm_bytes, dtype="<i2")) == b"\x00\x80\xff"


@pytest.mark.parametrize("n_samples", [0, 1, 160, 8000])
def test_wav_header_declares_payload_lengths(n_samples: int) -> None:
    pcm = np.arange(n_samples, dtype=np.int16)
    wav = pcm16_to_wav_bytes(pcm, 8000)
    data_len = n_samples * 2

    assert len(wav) == 44 + data_len
    assert wav[0:4] == b"RIFF"
    assert wav[8:12] == b"WAVE"
    assert struct.unpack("<I", wav[4:8])[0] == 36 + data_len
    assert wav[36:40] == b"data"
    assert struct.unpack("<I", wav[40:44])[0] == data_len

    channels, rate = struct.unpack("<HI", wav[22:28])
    bits = struct.unpack("<H", wav[34:36])[0]
    assert (channels, rate, bits) == (1, 8000, 16)


def test_wav_accepts_raw_bytes() -> None:
    assert pcm16_to_wav_bytes(b"\x01\x00\x02\x00", 16000)[44:] == b"\x01\x00\x02\x00"


def test_resample_changes_length_proportionally() -> None:
    pcm = np.zeros(4410, dtype=np.int16)

    assert pcm16_resample(pcm, 44100, 8000).size == 800
    assert pcm16_resample(pcm, 8000, 8000) is pcm


def test_frames_are_twenty_milliseconds() -> None:
    assert frame_bytes_for(20) == 160

    frames = list(iter_frames(bytes(400), frame_bytes_for(20)))

    assert [len(frame) for frame in frames] == [160, 160, 80]
    assert list(iter_frames(b"", 160)) == []

from __future__ import annotations

import base64
import uuid

import numpy as np
import pytest

from dialogue.generative import GenerativePolicy
from llm.base import BaseLLMClient
from speech.stt import SpeechToTextAdapter
from speech.transcriber import BaseTranscriber
from speech.tts import BaseSynthesizer
from telephony.g711 import pcm16_to_wav_bytes


class FakeLLM(BaseLLMClient):
    async def chat(self, messages, *, temperature=1.0, max_tokens=100):
        return "Happy to help."


class FakeTranscriber(BaseTranscriber):
    async def transcribe(self, wav_bytes: bytes) -> str:
        return "what is this about"


class FakeSynthesizer(BaseSynthesizer):
    async def synthesize(self, text: str) -> bytes:
        return pcm16_to_wav_bytes(np.zeros(80, dtype=np.int16), 8000)


CONTEXT_QUERY = {"businessName": "Acme", "productCategory": "Widgets", "brandName": "Acme Co"}


def _call_sid() -> str:
    return f"CA{uuid.uuid4().hex}"


def test_voice_start_greets_with_gather(client):
    response = client.post(
        "/api/twilio/voice/start",
        params=CONTEXT_QUERY,
        data={"CallSid": _call_sid()},
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/xml")
    assert "<Gather" in response.text
    assert "This is Acme Co calling about Widgets" in response.text
    assert "https://voice.example.test/api/twilio/voice/handle?businessName=Acme&amp;" in response.text


def test_voice_handle_negative_hangs_up(client):
    sid = _call_sid()
    client.post("/api/twilio/voice/start", params=CONTEXT_QUERY, data={"CallSid": sid})

    response = client.post(
        "/api/twilio/voice/handle",
        data={"CallSid": sid, "SpeechResult": "Not interested, thanks", "Confidence": "0.92"},
    )

    assert response.status_code == 200
    assert "<Hangup/>" in response.text
    assert "<Gather" not in response.text


@pytest.mark.parametrize(
    "form",
    [
        {"SpeechResult": ""},
        {"SpeechResult": "yes"},  # no Confidence reported counts as zero
        {"SpeechResult": "yes", "Confidence": "0.3"},
    ],
)
def test_voice_handle_reprompts_when_unsure(client, form):
    sid = _call_sid()
    client.post("/api/twilio/voice/start", params=CONTEXT_QUERY, data={"CallSid": sid})

    response = client.post("/api/twilio/voice/handle", data={"CallSid": sid, **form})

    assert "<Gather" in response.text
    assert "repeat that" in response.text


def test_voice_handle_rebuilds_unknown_session(client):
    response = client.post(
        "/api/twilio/voice/handle",
        params=CONTEXT_QUERY,
        data={"CallSid": _call_sid(), "SpeechResult": "how much does it cost", "Confidence": "0.9"},
    )

    assert response.status_code == 200
    assert "pricing" in response.text


def test_twiml_media_stream_points_at_websocket(client):
    response = client.get("/api/twilio/twiml/media-stream", params=CONTEXT_QUERY)

    assert '<Stream url="wss://voice.example.test/api/twilio/media-stream">' in response.text
    assert '<Parameter name="brandName" value="Acme Co"/>' in response.text


def test_twiml_relay_accepts_post(client):
    response = client.post("/api/twilio/twiml/relay", data={"CallSid": "CA1", **CONTEXT_QUERY})

    assert '<ConversationRelay url="wss://voice.example.test/api/twilio/relay"' in response.text
    assert '<Parameter name="productCategory" value="Widgets"/>' in response.text


def test_relay_websocket_conversation_saves_transcript(client):
    lead = client.post(
        "/api/leads",
        json={
            "business_name": "Acme",
            "phone_number": "+1646" + str(uuid.uuid4().int)[:7],
            "product_category": "Widgets",
            "brand_name": "Acme Co",
        },
    ).json()
    record = next(c for c in client.get("/api/calls").json() if c["id"] == lead["call_id"])

    with client.websocket_connect("/api/twilio/relay", subprotocols=["conversation-relay.v1"]) as ws:
        assert ws.accepted_subprotocol == "conversation-relay.v1"
        ws.send_json({"type": "setup", "callSid": record["twilio_sid"], "customParameters": CONTEXT_QUERY})
        greeting = ws.receive_json()
        ws.send_json({"type": "prompt", "voicePrompt": "not interested", "confidence": 0.9, "last": True})
        closing = ws.receive_json()
        end = ws.receive_json()

    assert "Acme Co" in greeting["token"]
    assert closing["type"] == "text"
    assert end == {"type": "end"}

    saved = next(c for c in client.get("/api/calls").json() if c["id"] == lead["call_id"])
    assert saved["transcript"][0].startswith("assistant: Hi! This is Acme Co")
    assert saved["transcript"][1] == "user: not interested"
    assert saved["state"] == "COMPLETED"
    assert client.get("/health").json()["live_calls"] == 0


def test_media_stream_websocket_greets_and_replies(app, client):
    import api.dependencies as deps

    app.dependency_overrides[deps.get_media_stream_policy] = lambda: GenerativePolicy(FakeLLM())
    app.dependency_overrides[deps.get_stt_adapter] = lambda: SpeechToTextAdapter(
        FakeTranscriber(), min_buffer_bytes=160, min_interval_seconds=0
    )
    app.dependency_overrides[deps.get_synthesizer] = lambda: FakeSynthesizer()

    # 80 samples at 1 ms (8 bytes) per frame -> 10 frames per utterance.
    with client.websocket_connect("/api/twilio/media-stream") as ws:
        ws.send_json({"event": "connected", "protocol": "Call"})
        ws.send_json(
            {
                "event": "start",
                "streamSid": "MZ9",
                "start": {"callSid": _call_sid(), "streamSid": "MZ9", "customParameters": CONTEXT_QUERY},
            }
        )
        greeting = [ws.receive_json() for _ in range(10)]
        payload = base64.b64encode(b"\xff" * 160).decode("ascii")
        ws.send_json({"event": "media", "streamSid": "MZ9", "media": {"track": "inbound", "payload": payload}})
        reply = [ws.receive_json() for _ in range(10)]
        ws.send_json({"event": "stop", "streamSid": "MZ9"})

    assert all(frame["event"] == "media" and frame["streamSid"] == "MZ9" for frame in greeting + reply)
    assert client.get("/health").json()["live_calls"] == 0

"""Twilio Voice integration.

This module provides:
- Gather webhooks (`/voice/start`, `/voice/handle`) running the scripted policy
  over Twilio's own speech recognition.
- TwiML entry points connecting a call to a Media Stream or ConversationRelay.
- The two WebSocket bridges.
- The call status callback.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request, Response, WebSocket

from api.dependencies import (
    get_call_registry,
    get_default_context,
    get_gather_policy,
    get_media_stream_policy,
    get_relay_policy,
    get_repository,
    get_stt_adapter,
    get_synthesizer,
)
from calls.registry import CallSessionRegistry
from calls.session import CallContext, CallSession
from config.settings import get_settings
from db.repository import CallRepository, state_for_twilio_status
from dialogue.policy import DialoguePolicy
from speech.stt import SpeechToTextAdapter
from speech.tts import BaseSynthesizer
from transport import twiml
from transport.media_stream import MediaStreamBridge
from transport.relay import RELAY_SUBPROTOCOL, ConversationRelayBridge

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/twilio", tags=["twilio"])


def _twiml_response(xml: str) -> Response:
    # Twilio expects application/xml
    return Response(content=xml, media_type="application/xml")


def _public_base(request_base_url: str) -> str:
    settings = get_settings()
    if settings.public_base_url:
        return settings.public_base_url.rstrip("/")
    # Fallback to request host. This may not work behind proxies; prefer PUBLIC_BASE_URL.
    return request_base_url.rstrip("/")


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


async def _request_params(request: Request) -> dict[str, str]:
    """Query string merged with the form body; Twilio sends either depending on method."""

    params = dict(request.query_params)
    if request.method == "POST":
        form = await request.form()
        params.update({key: str(value) for key, value in form.items()})
    return params


def _handle_url(base: str, context: CallContext) -> str:
    # Carry the context so an evicted session can be rebuilt on the next turn.
    return f"{base}/api/twilio/voice/handle?{urlencode(context.as_params())}"


def _transcript_saver(repository: CallRepository):
    async def _save(session: CallSession) -> None:
        await repository.save_transcript(session)

    return _save


@router.post("/voice/start")
async def voice_start(
    request: Request,
    registry: CallSessionRegistry = Depends(get_call_registry),
    policy: DialoguePolicy = Depends(get_gather_policy),
    default_context: CallContext = Depends(get_default_context),
) -> Response:
    settings = get_settings()
    params = await _request_params(request)
    call_sid = params.get("CallSid", "").strip() or "unknown"
    context = CallContext.from_params(params, defaults=default_context)

    session, created = await registry.get_or_create(call_sid, context)
    if created:
        greeting = policy.open(session)
    else:
        LOGGER.warning("Duplicate voice/start for call_id=%s; repeating greeting", call_sid)
        greeting = policy.greeting(session.context)

    base = _public_base(str(request.base_url))
    return _twiml_response(
        twiml.say_and_gather(
            greeting,
            action_url=_handle_url(base, session.context),
            voice=settings.twilio_say_voice,
        )
    )


@router.post("/voice/handle")
async def voice_handle(
    request: Request,
    registry: CallSessionRegistry = Depends(get_call_registry),
    policy: DialoguePolicy = Depends(get_gather_policy),
    repository: CallRepository = Depends(get_repository),
    default_context: CallContext = Depends(get_default_context),
) -> Response:
    settings = get_settings()
    params = await _request_params(request)
    call_sid = params.get("CallSid", "").strip() or "unknown"
    speech = params.get("SpeechResult", "").strip()
    try:
        # Twilio omits Confidence when nothing was recognized.
        confidence = float(params.get("Confidence") or 0.0)
    except ValueError:
        confidence = 0.0

    session = await registry.get(call_sid)
    if session is None:
        LOGGER.warning("No session for call_id=%s; reconstructing", call_sid)
        context = CallContext.from_params(params, defaults=default_context)
        session, _ = await registry.get_or_create(call_sid, context)

    LOGGER.info("Speech call_id=%s confidence=%.2f: %r", call_sid, confidence, speech)
    result = await policy.next_turn(session, speech, confidence)

    if result.should_end_call:
        try:
            await repository.save_transcript(session)
        except Exception:
            LOGGER.exception("Saving transcript failed call_id=%s", call_sid)
        registry.schedule_removal(call_sid, settings.end_call_grace_seconds)
        return _twiml_response(twiml.say_and_hangup(result.response_text, voice=settings.twilio_say_voice))

    base = _public_base(str(request.base_url))
    return _twiml_response(
        twiml.say_and_gather(
            result.response_text,
            action_url=_handle_url(base, session.context),
            voice=settings.twilio_say_voice,
        )
    )


@router.api_route("/twiml/media-stream", methods=["GET", "POST"])
async def twiml_media_stream(
    request: Request,
    default_context: CallContext = Depends(get_default_context),
) -> Response:
    params = await _request_params(request)
    context = CallContext.from_params(params, defaults=default_context)
    stream_url = _to_ws_url(_public_base(str(request.base_url)) + "/api/twilio/media-stream")
    return _twiml_response(twiml.connect_stream(stream_url=stream_url, parameters=context.as_params()))


@router.api_route("/twiml/relay", methods=["GET", "POST"])
async def twiml_relay(
    request: Request,
    default_context: CallContext = Depends(get_default_context),
) -> Response:
    settings = get_settings()
    params = await _request_params(request)
    context = CallContext.from_params(params, defaults=default_context)
    relay_url = _to_ws_url(_public_base(str(request.base_url)) + "/api/twilio/relay")
    return _twiml_response(
        twiml.connect_conversation_relay(
            relay_url=relay_url,
            parameters=context.as_params(),
            voice=settings.twilio_say_voice,
        )
    )


@router.websocket("/media-stream")
async def media_stream_socket(
    websocket: WebSocket,
    registry: CallSessionRegistry = Depends(get_call_registry),
    policy: DialoguePolicy = Depends(get_media_stream_policy),
    stt: SpeechToTextAdapter = Depends(get_stt_adapter),
    synthesizer: BaseSynthesizer = Depends(get_synthesizer),
    repository: CallRepository = Depends(get_repository),
    default_context: CallContext = Depends(get_default_context),
) -> None:
    settings = get_settings()
    await websocket.accept()
    bridge = MediaStreamBridge(
        websocket,
        registry,
        policy,
        stt=stt,
        synthesizer=synthesizer,
        frame_ms=settings.frame_ms,
        synthesis_timeout=settings.downstream_timeout_seconds,
        handshake_params=dict(websocket.query_params),
        default_context=default_context,
        hangup_delay=settings.hangup_delay_seconds,
        on_call_ended=_transcript_saver(repository),
    )
    await bridge.run()


@router.websocket("/relay")
async def relay_socket(
    websocket: WebSocket,
    registry: CallSessionRegistry = Depends(get_call_registry),
    policy: DialoguePolicy = Depends(get_relay_policy),
    repository: CallRepository = Depends(get_repository),
    default_context: CallContext = Depends(get_default_context),
) -> None:
    settings = get_settings()
    requested = websocket.scope.get("subprotocols") or []
    subprotocol = RELAY_SUBPROTOCOL if RELAY_SUBPROTOCOL in requested else None
    await websocket.accept(subprotocol=subprotocol)
    bridge = ConversationRelayBridge(
        websocket,
        registry,
        policy,
        handshake_params=dict(websocket.query_params),
        default_context=default_context,
        hangup_delay=settings.hangup_delay_seconds,
        on_call_ended=_transcript_saver(repository),
    )
    await bridge.run()


@router.post("/status")
async def call_status_callback(
    request: Request,
    repository: CallRepository = Depends(get_repository),
) -> Response:
    form = await request.form()
    call_sid = str(form.get("CallSid") or "").strip()
    status = str(form.get("CallStatus") or "").strip()
    LOGGER.info(
        "Call status call_id=%s status=%s duration=%s answered_by=%s",
        call_sid,
        status,
        form.get("CallDuration"),
        form.get("AnsweredBy"),
    )

    record = await repository.get_call_by_sid(call_sid) if call_sid else None
    if record is not None:
        changes: dict = {"twilio_status": status or record.twilio_status}
        state = state_for_twilio_status(status)
        if state is not None:
            changes["state"] = state
        await repository.update_call_record(record.id, **changes)

    return Response(status_code=204)

"""Typed inbound events for Twilio's duplex voice protocols.

Media Streams frames are tagged by `event`, ConversationRelay frames by
`type`. Unrecognized tags parse to an `UnknownEvent` so callers can log and
move on.
"""

from __future__ import annotations

import json
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from calls.errors import MalformedFrameError


class _Event(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# Media Streams


class StreamStartInfo(_Event):
    call_sid: str = Field(default="", alias="callSid")
    stream_sid: str = Field(default="", alias="streamSid")
    tracks: list[str] = Field(default_factory=list)
    custom_parameters: dict[str, str] = Field(default_factory=dict, alias="customParameters")


class ConnectedEvent(_Event):
    event: Literal["connected"]
    protocol: str = ""


class StartEvent(_Event):
    event: Literal["start"]
    stream_sid: str = Field(default="", alias="streamSid")
    start: StreamStartInfo = Field(default_factory=StreamStartInfo)


class MediaPayload(_Event):
    payload: str = ""
    track: str = "inbound"


class MediaEvent(_Event):
    event: Literal["media"]
    stream_sid: str = Field(default="", alias="streamSid")
    media: MediaPayload = Field(default_factory=MediaPayload)


class MarkEvent(_Event):
    event: Literal["mark"]
    mark: dict[str, Any] = Field(default_factory=dict)


class StopEvent(_Event):
    event: Literal["stop"]
    stream_sid: str = Field(default="", alias="streamSid")
    stop: dict[str, Any] = Field(default_factory=dict)


# ConversationRelay


class SetupEvent(_Event):
    type: Literal["setup"]
    call_sid: str = Field(default="", alias="callSid")
    session_id: str = Field(default="", alias="sessionId")
    custom_parameters: dict[str, str] = Field(default_factory=dict, alias="customParameters")


class PromptEvent(_Event):
    type: Literal["prompt"]
    voice_prompt: str = Field(default="", alias="voicePrompt")
    confidence: float = 1.0
    lang: str = ""
    last: bool = True


class InterruptEvent(_Event):
    type: Literal["interrupt"]
    utterance_until_interrupt: str = Field(default="", alias="utteranceUntilInterrupt")


class DtmfEvent(_Event):
    type: Literal["dtmf"]
    digit: str = ""


class ErrorEvent(_Event):
    type: Literal["error"]
    description: str = ""


class UnknownEvent(_Event):
    kind: str = ""
    raw: dict[str, Any] = Field(default_factory=dict)


MediaStreamEvent = Union[ConnectedEvent, StartEvent, MediaEvent, MarkEvent, StopEvent, UnknownEvent]
RelayEvent = Union[SetupEvent, PromptEvent, InterruptEvent, DtmfEvent, ErrorEvent, UnknownEvent]

_MEDIA_STREAM_EVENTS: dict[str, type[_Event]] = {
    "connected": ConnectedEvent,
    "start": StartEvent,
    "media": MediaEvent,
    "mark": MarkEvent,
    "stop": StopEvent,
}

_RELAY_EVENTS: dict[str, type[_Event]] = {
    "setup": SetupEvent,
    "prompt": PromptEvent,
    "interrupt": InterruptEvent,
    "dtmf": DtmfEvent,
    "error": ErrorEvent,
}


def _load(text: str | bytes) -> dict[str, Any]:
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedFrameError(f"Frame is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedFrameError("Frame must be a JSON object")
    return data


def _parse(data: dict[str, Any], tag: str, registry: dict[str, type[_Event]]) -> _Event:
    kind = str(data.get(tag) or "")
    model = registry.get(kind)
    if model is None:
        return UnknownEvent(kind=kind, raw=data)
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise MalformedFrameError(f"Invalid {kind!r} frame: {exc.error_count()} error(s)") from exc


def parse_media_stream_event(text: str | bytes) -> MediaStreamEvent:
    return _parse(_load(text), "event", _MEDIA_STREAM_EVENTS)  # type: ignore[return-value]


def parse_relay_event(text: str | bytes) -> RelayEvent:
    return _parse(_load(text), "type", _RELAY_EVENTS)  # type: ignore[return-value]

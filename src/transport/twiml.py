"""TwiML documents for the voice webhooks.

Every interpolated value goes through `escape`; caller speech and model output
end up inside these documents.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from xml.sax.saxutils import escape as _sax_escape

XML_HEADER = '<?xml version="1.0" encoding="UTF-8"?>'
_ENTITIES = {'"': "&quot;", "'": "&apos;"}

DEFAULT_HINTS = (
    "yes", "no", "sure", "price", "pricing", "cost", "owner", "manager",
    "later", "call back", "not interested", "busy",
)


def escape(value: object) -> str:
    """Escape `& < > " '` for element text and attribute values."""

    return _sax_escape(str(value), _ENTITIES)


def twiml_document(*elements: str) -> str:
    return f"{XML_HEADER}<Response>{''.join(elements)}</Response>"


def say(text: str, *, voice: str) -> str:
    return f'<Say voice="{escape(voice)}">{escape(text)}</Say>'


def say_and_gather(
    text: str,
    *,
    action_url: str,
    voice: str,
    timeout_seconds: int = 5,
    hints: Sequence[str] = DEFAULT_HINTS,
    no_input_text: str = "I didn't hear anything. Let me try again.",
) -> str:
    """Speak, then capture speech; fall back to a short prompt and redirect."""

    action = escape(action_url)
    gather = (
        f'<Gather input="speech" action="{action}" method="POST" speechTimeout="auto" '
        f'timeout="{int(timeout_seconds)}" hints="{escape(",".join(hints))}" profanityFilter="false">'
        "</Gather>"
    )
    return twiml_document(
        say(text, voice=voice),
        gather,
        say(no_input_text, voice=voice),
        f'<Redirect method="POST">{action}</Redirect>',
    )


def say_and_hangup(text: str, *, voice: str, pause_seconds: int = 1) -> str:
    return twiml_document(
        say(text, voice=voice),
        f'<Pause length="{max(0, int(pause_seconds))}"/>',
        "<Hangup/>",
    )


def connect_stream(*, stream_url: str, parameters: Mapping[str, str] | None = None) -> str:
    """`<Connect><Stream>` with custom parameters forwarded in the start event."""

    params = "".join(
        f'<Parameter name="{escape(name)}" value="{escape(value)}"/>'
        for name, value in (parameters or {}).items()
    )
    return twiml_document(f'<Connect><Stream url="{escape(stream_url)}">{params}</Stream></Connect>')


def connect_conversation_relay(
    *,
    relay_url: str,
    parameters: Mapping[str, str] | None = None,
    voice: str | None = None,
    language: str = "en-US",
) -> str:
    params = "".join(
        f'<Parameter name="{escape(name)}" value="{escape(value)}"/>'
        for name, value in (parameters or {}).items()
    )
    voice_attr = f' voice="{escape(voice)}"' if voice else ""
    return twiml_document(
        "<Connect>"
        f'<ConversationRelay url="{escape(relay_url)}" language="{escape(language)}"{voice_attr}>'
        f"{params}"
        "</ConversationRelay>"
        "</Connect>"
    )

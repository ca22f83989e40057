"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

from fastapi.requests import HTTPConnection

from calls.registry import CallSessionRegistry
from calls.session import CallContext
from config.settings import get_settings
from db.repository import CallRepository

if TYPE_CHECKING:  # pragma: no cover
    from dialogue.policy import DialoguePolicy
    from integrations.twilio_client import OutboundDialer
    from speech.stt import SpeechToTextAdapter
    from speech.tts import BaseSynthesizer


def get_call_registry(connection: HTTPConnection) -> CallSessionRegistry:
    return connection.app.state.call_registry


def get_default_context() -> CallContext:
    settings = get_settings()
    return CallContext(
        business_name=settings.default_business_name,
        product_category=settings.default_product_category,
        brand_name=settings.default_brand_name,
    )


@lru_cache(maxsize=1)
def _media_stream_policy_factory() -> DialoguePolicy:
    # Lazy import to avoid creating the OpenAI client at module import time.
    from dialogue.factory import build_dialogue_policy

    return build_dialogue_policy(get_settings().dialogue_policy)


@lru_cache(maxsize=1)
def _relay_policy_factory() -> DialoguePolicy:
    from dialogue.factory import build_dialogue_policy

    return build_dialogue_policy(get_settings().relay_dialogue_policy)


@lru_cache(maxsize=1)
def _gather_policy_factory() -> DialoguePolicy:
    from dialogue.factory import build_dialogue_policy

    return build_dialogue_policy("scripted")


@lru_cache(maxsize=1)
def _stt_factory() -> SpeechToTextAdapter:
    from speech.stt import SpeechToTextAdapter
    from speech.transcriber import build_transcriber

    settings = get_settings()
    return SpeechToTextAdapter(
        build_transcriber(settings),
        min_buffer_bytes=settings.stt_min_buffer_bytes,
        min_interval_seconds=settings.stt_min_interval_seconds,
        timeout_seconds=settings.downstream_timeout_seconds,
    )


@lru_cache(maxsize=1)
def _synthesizer_factory() -> BaseSynthesizer:
    from speech.tts import build_synthesizer

    return build_synthesizer(get_settings())


def get_media_stream_policy() -> DialoguePolicy:
    return _media_stream_policy_factory()


def get_relay_policy() -> DialoguePolicy:
    return _relay_policy_factory()


def get_gather_policy() -> DialoguePolicy:
    return _gather_policy_factory()


def get_stt_adapter() -> SpeechToTextAdapter:
    return _stt_factory()


def get_synthesizer() -> BaseSynthesizer:
    return _synthesizer_factory()


def get_repository() -> CallRepository:
    return CallRepository()


def get_outbound_dialer() -> OutboundDialer:
    from integrations.twilio_client import OutboundDialer

    return OutboundDialer(machine_detection=get_settings().twilio_machine_detection)

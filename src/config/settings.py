"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/leads.db",
        description="SQLAlchemy connection string.",
    )
    auto_create_db_schema: bool = Field(
        default=True,
        description="If true, creates tables automatically on startup (useful for local/dev).",
    )

    # Speech recognition
    stt_provider: Literal["openai", "faster_whisper"] = Field(default="openai")
    openai_api_key: str | None = Field(default=None)
    openai_base_url: str | None = Field(default=None)
    whisper_api_model: str = Field(default="whisper-1")
    whisper_language: str = Field(default="en")
    whisper_model_size: str = Field(default="Systran/faster-whisper-small.en")
    whisper_compute_type: str = Field(default="auto")
    whisper_device: str = Field(default="auto")

    # Text to speech (ElevenLabs)
    elevenlabs_api_key: str | None = Field(default=None)
    elevenlabs_base_url: str = Field(default="https://api.elevenlabs.io")
    elevenlabs_voice_id: str = Field(
        default="N2lVS1w4EtoT3dr4eOWO",
        description="Deep, professional male voice.",
    )
    elevenlabs_model_id: str = Field(default="eleven_turbo_v2_5")
    voice_stability: float = Field(default=0.65, ge=0.0, le=1.0)
    voice_similarity_boost: float = Field(default=0.9, ge=0.0, le=1.0)
    voice_style: float = Field(default=0.35, ge=0.0, le=1.0)
    voice_use_speaker_boost: bool = Field(default=True)

    # LLM connectivity
    llm_model: str = Field(default="gpt-4o")
    llm_temperature: float = Field(default=1.0, ge=0.0, le=2.0)
    llm_max_tokens: int = Field(default=100, description="Replies are spoken; keep them short.")

    # Dialogue policy
    dialogue_policy: Literal["generative", "scripted"] = Field(default="generative")
    relay_dialogue_policy: Literal["generative", "scripted"] = Field(
        default="scripted",
        description="Policy for ConversationRelay calls, where Twilio performs its own STT/TTS.",
    )
    confidence_floor: float = Field(default=0.5, ge=0.0, le=1.0)
    max_retries: int = Field(default=2, ge=0)
    max_turns: int = Field(default=12, ge=1)

    # Audio pipeline
    stt_min_buffer_bytes: int = Field(default=16000, description="2 seconds of 8 kHz mu-law.")
    stt_min_interval_seconds: float = Field(default=2.0, ge=0.0)
    frame_ms: int = Field(default=20, ge=1)
    downstream_timeout_seconds: float = Field(default=15.0, gt=0.0)

    # Session lifecycle
    hangup_delay_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Delay before closing the stream after a call-ending reply.",
    )
    end_call_grace_seconds: float = Field(
        default=60.0,
        ge=0.0,
        description="Webhook calls: how long an ended session lingers before eviction.",
    )
    session_max_age_seconds: float = Field(default=600.0, gt=0.0)
    session_sweep_interval_seconds: float = Field(default=300.0, gt=0.0)

    # Campaign defaults when the call carries no parameters
    default_business_name: str = Field(default="your business")
    default_product_category: str = Field(default="our services")
    default_brand_name: str = Field(default="the company")

    # Twilio (Voice)
    twilio_account_sid: str | None = Field(default=None)
    twilio_auth_token: str | None = Field(default=None)
    twilio_api_key_sid: str | None = Field(default=None)
    twilio_api_key_secret: str | None = Field(default=None)
    twilio_from_number: str | None = Field(default=None, description="E.164, e.g. +1415...")
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for Twilio webhooks (e.g. https://<ngrok>.ngrok-free.app).",
    )
    twilio_say_voice: str = Field(default="Polly.Joanna")
    twilio_call_transport: Literal["media_stream", "relay", "gather"] = Field(
        default="media_stream",
        description="Which voice flow outbound calls are connected to.",
    )
    twilio_machine_detection: bool = Field(default=True)

    # Lead intake
    rate_limit_minutes: int = Field(default=1, ge=0)

    data_dir: Path = Field(default=Path("./data"))

    @field_validator("data_dir")
    @classmethod
    def ensure_data_dir(cls, value: Path) -> Path:
        value.mkdir(parents=True, exist_ok=True)
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()

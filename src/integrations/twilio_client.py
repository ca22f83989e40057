"""Twilio REST wrapper for placing outbound calls and polling their status."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from calls.errors import TelephonyError
from config.settings import get_settings

LOGGER = logging.getLogger(__name__)

TRIAL_UNVERIFIED_NUMBER = 21608
TRIAL_MESSAGE = (
    "Twilio trial accounts can only call verified numbers. "
    "Verify this number in the Twilio console or upgrade the account."
)


@dataclass(frozen=True)
class TwilioConfig:
    account_sid: str
    from_number: str
    public_base_url: str
    auth_token: str = ""
    api_key_sid: str = ""
    api_key_secret: str = ""

    @property
    def uses_api_key(self) -> bool:
        return bool(self.api_key_sid and self.api_key_secret)

    def url(self, path: str) -> str:
        return f"{self.public_base_url}/{path.lstrip('/')}"

    def ws_url(self, path: str) -> str:
        base = self.public_base_url
        if base.startswith("https://"):
            base = "wss://" + base[len("https://"):]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://"):]
        return f"{base}/{path.lstrip('/')}"


def get_twilio_config() -> TwilioConfig:
    settings = get_settings()
    if not settings.twilio_account_sid:
        raise ValueError("TWILIO_ACCOUNT_SID is not configured")
    has_api_key = bool(settings.twilio_api_key_sid and settings.twilio_api_key_secret)
    if not has_api_key and not settings.twilio_auth_token:
        raise ValueError("Twilio credentials are not configured")
    if not settings.twilio_from_number:
        raise ValueError("Twilio from-number is not configured")
    if not settings.public_base_url:
        raise ValueError("PUBLIC_BASE_URL is required for Twilio callbacks")

    return TwilioConfig(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token or "",
        api_key_sid=settings.twilio_api_key_sid or "",
        api_key_secret=settings.twilio_api_key_secret or "",
        from_number=settings.twilio_from_number,
        public_base_url=settings.public_base_url.rstrip("/"),
    )


def build_twilio_client(cfg: TwilioConfig | None = None):
    from twilio.rest import Client

    cfg = cfg or get_twilio_config()
    if cfg.uses_api_key:
        return Client(cfg.api_key_sid, cfg.api_key_secret, cfg.account_sid)
    return Client(cfg.account_sid, cfg.auth_token)


def _telephony_error(exc: Exception) -> TelephonyError:
    code = getattr(exc, "code", None)
    if code == TRIAL_UNVERIFIED_NUMBER:
        return TelephonyError(TRIAL_MESSAGE)
    message = getattr(exc, "msg", None) or str(exc) or TelephonyError.default_detail
    return TelephonyError(f"Twilio request failed: {message}")


async def place_outbound_call(
    client,
    cfg: TwilioConfig,
    *,
    to: str,
    url: str,
    status_callback: str | None = None,
    machine_detection: str | None = None,
) -> str:
    """Dial `to` and point Twilio at `url` for call instructions; returns the call SID."""

    kwargs: dict = {"to": to, "from_": cfg.from_number, "url": url, "method": "POST"}
    if status_callback:
        kwargs["status_callback"] = status_callback
        kwargs["status_callback_method"] = "POST"
        kwargs["status_callback_event"] = ["initiated", "ringing", "answered", "completed"]
    if machine_detection:
        kwargs["machine_detection"] = machine_detection

    try:
        call = await asyncio.to_thread(client.calls.create, **kwargs)
    except Exception as exc:
        LOGGER.error("Outbound call to %s failed: %s", to, exc)
        raise _telephony_error(exc) from exc

    LOGGER.info("Outbound call placed sid=%s to=%s", call.sid, to)
    return call.sid


async def fetch_call_status(client, sid: str) -> str:
    def _fetch() -> str:
        return client.calls(sid).fetch().status

    try:
        return await asyncio.to_thread(_fetch)
    except Exception as exc:
        LOGGER.error("Fetching call status sid=%s failed: %s", sid, exc)
        raise _telephony_error(exc) from exc


class OutboundDialer:
    """Places and polls calls, resolving credentials on first use.

    Missing configuration surfaces as `TelephonyError` at dial time so callers
    can still persist the lead before reporting the failure.
    """

    def __init__(self, client=None, cfg: TwilioConfig | None = None, *, machine_detection: bool = True) -> None:
        self._client = client
        self._cfg = cfg
        self._machine_detection = machine_detection

    def _resolve(self):
        try:
            if self._cfg is None:
                self._cfg = get_twilio_config()
            if self._client is None:
                self._client = build_twilio_client(self._cfg)
        except ValueError as exc:
            raise TelephonyError(str(exc)) from exc
        return self._client, self._cfg

    async def dial(self, to: str, *, path: str, status_path: str | None = None) -> str:
        client, cfg = self._resolve()
        return await place_outbound_call(
            client,
            cfg,
            to=to,
            url=cfg.url(path),
            status_callback=cfg.url(status_path) if status_path else None,
            machine_detection="Enable" if self._machine_detection else None,
        )

    async def status(self, sid: str) -> str:
        client, _ = self._resolve()
        return await fetch_call_status(client, sid)

"""Domain-specific exceptions for the voice call core.

These exceptions are safe to import from API layers without triggering heavy ML imports.
"""

from __future__ import annotations


class VoiceCallError(Exception):
    status_code: int = 500
    default_detail: str = "Voice call error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class TranscriptionFailedError(VoiceCallError):
    status_code = 503
    default_detail = "Transcription failed."


class GenerationFailedError(VoiceCallError):
    status_code = 503
    default_detail = "Response generation failed."


class SynthesisFailedError(VoiceCallError):
    status_code = 503
    default_detail = "Speech synthesis failed."


class AudioConversionError(SynthesisFailedError):
    default_detail = "Synthesized audio could not be converted for telephony."


class MalformedFrameError(VoiceCallError):
    status_code = 400
    default_detail = "Malformed transport frame."


class TelephonyError(VoiceCallError):
    status_code = 502
    default_detail = "Telephony provider request failed."


class RateLimitedError(VoiceCallError):
    status_code = 429
    default_detail = "Please wait 60 seconds before calling this number again."


class CallNotFoundError(VoiceCallError):
    status_code = 404
    default_detail = "Call session not found."

"""Keyword intent classification for scripted calls."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class Intent(str, Enum):
    AFFIRMATIVE = "affirmative"
    NEGATIVE = "negative"
    PRICING_INQUIRY = "pricing_inquiry"
    SCHEDULE_FOLLOWUP = "schedule_followup"
    TRANSFER_REQUEST = "transfer_request"
    UNCLEAR = "unclear"
    SILENCE = "silence"


@dataclass(frozen=True, slots=True)
class IntentResult:
    intent: Intent
    confidence: float


# Checked in order. Clear refusals come first so "not interested" never reads
# as interest; a bare "no" or "don't" only counts once nothing else matched, so
# "sure, no problem" stays affirmative.
INTENT_PATTERNS: tuple[tuple[Intent, re.Pattern[str]], ...] = (
    (
        Intent.NEGATIVE,
        re.compile(
            r"\b(not interested|no thanks|no thank you|nope|not for me|remove me|stop"
            r"|(do not|don'?t) (call|want|need))\b"
        ),
    ),
    (
        Intent.AFFIRMATIVE,
        re.compile(r"\b(no problem|no worries|(do not|don'?t) mind|why not)\b"),
    ),
    (
        Intent.TRANSFER_REQUEST,
        re.compile(r"\b(owner|manager|decision maker|boss|supervisor)\b"),
    ),
    (
        Intent.SCHEDULE_FOLLOWUP,
        re.compile(r"\b(call (me )?back|later|schedule|another time|busy|not now|tomorrow|next week)\b"),
    ),
    (
        Intent.PRICING_INQUIRY,
        re.compile(r"\b(price|prices|cost|costs|pricing|how much|expensive|cheap|afford|quote)\b"),
    ),
    (
        Intent.AFFIRMATIVE,
        re.compile(r"\b(yes|yeah|yep|sure|absolutely|definitely|interested|sounds good|okay|ok|go ahead)\b"),
    ),
    (
        Intent.NEGATIVE,
        re.compile(r"\b(no|don'?t)\b"),
    ),
)


class IntentClassifier:
    """Maps a caller utterance to a coarse intent.

    Utterances below `min_confidence` are `unclear`; empty input is `silence`.
    """

    def __init__(self, min_confidence: float = 0.5) -> None:
        self._min_confidence = min_confidence

    def classify(self, text: str | None, confidence: float = 1.0) -> IntentResult:
        normalized = (text or "").lower().strip()
        if not normalized:
            return IntentResult(Intent.SILENCE, 0.0)
        if confidence < self._min_confidence:
            return IntentResult(Intent.UNCLEAR, confidence)

        for intent, pattern in INTENT_PATTERNS:
            if pattern.search(normalized):
                return IntentResult(intent, confidence)
        return IntentResult(Intent.UNCLEAR, confidence)

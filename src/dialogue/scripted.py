"""Deterministic finite-state call script."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from calls.session import CallContext, CallSession, Stage
from dialogue.intents import Intent, IntentClassifier
from dialogue.policy import FOLLOW_UP_GOODBYE, REPEAT_PROMPT, DialoguePolicy, TurnResult

LOGGER = logging.getLogger(__name__)

GREETING = (
    "Hi! This is {brand_name} calling about {product_category}. "
    "We received your request and wanted to reach out personally. "
    "Do you have a quick moment to chat?"
)


@dataclass(frozen=True, slots=True)
class Transition:
    text: str
    next_stage: Stage | None = None  # None keeps the current stage
    hangup: bool = False


def _bye(text: str) -> Transition:
    return Transition(text, hangup=True)


TRANSITIONS: dict[Stage, dict[Intent, Transition]] = {
    "greeting": {
        Intent.AFFIRMATIVE: Transition(
            "Great! We help businesses like {business_name} with {product_category}. "
            "Is that something you're looking into right now?",
            "interest_check",
        ),
        Intent.NEGATIVE: _bye("No problem at all. Thanks for your time, and have a wonderful day!"),
        Intent.SCHEDULE_FOLLOWUP: _bye(
            "I understand you're busy. We'll follow up with you via text shortly. Have a great day!"
        ),
        Intent.TRANSFER_REQUEST: _bye(
            "I'd be happy to have someone from our team reach out directly. "
            "We'll have a manager contact you shortly. Thanks for your time!"
        ),
        Intent.PRICING_INQUIRY: Transition(
            "Great question! We have very competitive pricing. "
            "Would you like us to send you a detailed quote via text?",
            "pricing",
        ),
    },
    "interest_check": {
        Intent.AFFIRMATIVE: Transition(
            "Excellent! Would you like to hear about our pricing, or should we schedule a follow-up call?",
            "pricing",
        ),
        Intent.PRICING_INQUIRY: Transition(
            "Our pricing is very competitive. We'd love to put together a custom quote. "
            "Would you like us to send that over via text?",
            "pricing",
        ),
        Intent.NEGATIVE: _bye("I appreciate your time. If anything changes, feel free to reach out. Take care!"),
        Intent.SCHEDULE_FOLLOWUP: Transition(
            "No problem! When would be a better time for a quick follow-up call?",
            "scheduling",
        ),
        Intent.TRANSFER_REQUEST: _bye(
            "Absolutely! I'll make sure one of our senior team members reaches out to you directly. "
            "Have a great day!"
        ),
    },
    "pricing": {
        Intent.AFFIRMATIVE: Transition(
            "Perfect! We'll send you detailed pricing via text message shortly. "
            "Is there anything else I can help with?",
            "closing",
        ),
        Intent.PRICING_INQUIRY: Transition(
            "Most clients land somewhere in the middle of our range, depending on their needs. "
            "Should we text you a quote?",
        ),
        Intent.SCHEDULE_FOLLOWUP: Transition(
            "Sounds good. What day works best for a quick follow-up call?",
            "scheduling",
        ),
        Intent.NEGATIVE: _bye("No worries. Thanks for your time today!"),
        Intent.TRANSFER_REQUEST: _bye(
            "I completely understand. We'll have a senior team member contact you with all the "
            "pricing details. Thanks for your interest!"
        ),
    },
    "scheduling": {
        Intent.AFFIRMATIVE: _bye("Perfect! We'll text you a confirmation for the follow-up. Have a wonderful day!"),
        Intent.SCHEDULE_FOLLOWUP: _bye("Got it. We'll reach out then. Thanks so much!"),
        Intent.PRICING_INQUIRY: _bye(
            "We'll include full pricing with the follow-up details by text. Thanks so much!"
        ),
        Intent.NEGATIVE: _bye("No worries. Thanks for your time today!"),
        Intent.TRANSFER_REQUEST: _bye(
            "Absolutely! We'll have a manager reach out to schedule directly. Thank you!"
        ),
    },
    "closing": {
        Intent.TRANSFER_REQUEST: _bye(
            "Absolutely! We'll have a manager reach out to you directly. Thank you so much for your time!"
        ),
        Intent.SCHEDULE_FOLLOWUP: _bye("Perfect! We'll be in touch to schedule a follow-up. Have a wonderful day!"),
    },
}

# Recognized intents with no explicit transition re-ask the stage question.
FALLBACKS: dict[Stage, Transition] = {
    "greeting": Transition("Are you interested in learning more about {product_category}?"),
    "interest_check": Transition("Would you be interested in hearing about our pricing and options?"),
    "pricing": Transition("Should we send you our pricing information via text?"),
    "scheduling": Transition("Would a call later this week work for you?"),
    "closing": _bye("Thank you so much for your time. We'll be in touch soon. Have a great day!"),
}


class ScriptedPolicy(DialoguePolicy):
    """Keyword-driven call script over a small set of stages."""

    def __init__(
        self,
        *,
        classifier: IntentClassifier | None = None,
        confidence_floor: float = 0.5,
        max_retries: int = 2,
    ) -> None:
        super().__init__(confidence_floor=confidence_floor, max_retries=max_retries)
        self._classifier = classifier or IntentClassifier(min_confidence=confidence_floor)

    def greeting(self, context: CallContext) -> str:
        return GREETING.format(**_fields(context))

    async def _respond(self, session: CallSession, utterance: str, confidence: float) -> TurnResult:
        result = self._classifier.classify(utterance, confidence)
        LOGGER.info(
            "Intent call_id=%s stage=%s intent=%s confidence=%.2f",
            session.call_id,
            session.stage,
            result.intent.value,
            result.confidence,
        )

        if result.intent in (Intent.UNCLEAR, Intent.SILENCE):
            if session.retry_count < self.max_retries:
                session.retry_count += 1
                return TurnResult(REPEAT_PROMPT)
            return TurnResult(FOLLOW_UP_GOODBYE, should_end_call=True)

        session.retry_count = 0
        transition = TRANSITIONS[session.stage].get(result.intent) or FALLBACKS[session.stage]
        if transition.next_stage is not None:
            session.stage = transition.next_stage
        return TurnResult(
            transition.text.format(**_fields(session.context)),
            should_end_call=transition.hangup,
        )


def _fields(context: CallContext) -> dict[str, str]:
    return {
        "business_name": context.business_name,
        "product_category": context.product_category,
        "brand_name": context.brand_name,
    }

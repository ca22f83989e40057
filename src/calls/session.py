"""Live call session state."""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal

Role = Literal["system", "user", "assistant"]
Stage = Literal["greeting", "interest_check", "pricing", "scheduling", "closing"]


@dataclass(frozen=True, slots=True)
class CallContext:
    """Campaign parameters supplied when the call is placed."""

    business_name: str = "your business"
    product_category: str = "our services"
    brand_name: str = "the company"

    @classmethod
    def from_params(
        cls,
        *sources: Mapping[str, object] | None,
        defaults: CallContext | None = None,
    ) -> CallContext:
        """Build a context from parameter mappings; later sources take precedence.

        Accepts both camelCase (Twilio custom parameters) and snake_case keys.
        Blank values never override.
        """

        base = defaults or cls()
        values = {
            "business_name": base.business_name,
            "product_category": base.product_category,
            "brand_name": base.brand_name,
        }
        aliases = {
            "businessName": "business_name",
            "productCategory": "product_category",
            "brandName": "brand_name",
        }
        for source in sources:
            if not source:
                continue
            for key, raw in source.items():
                name = aliases.get(key, key)
                if name not in values:
                    continue
                value = str(raw or "").strip()
                if value:
                    values[name] = value
        return cls(**values)

    def as_params(self) -> dict[str, str]:
        return {
            "businessName": self.business_name,
            "productCategory": self.product_category,
            "brandName": self.brand_name,
        }


@dataclass(frozen=True, slots=True)
class Message:
    role: Role
    content: str

    def as_chat(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class CallSession:
    """State for one live telephony connection.

    `history` is append-only; use `add_user` / `add_assistant` so turn
    accounting stays consistent.
    """

    call_id: str
    context: CallContext = field(default_factory=CallContext)
    stream_id: str = ""
    history: list[Message] = field(default_factory=list)
    turn_count: int = 0
    pending_audio: list[bytes] = field(default_factory=list)
    processing: bool = False
    created_at: float = field(default_factory=time.monotonic)
    last_processed_at: float = field(default_factory=time.monotonic)
    stage: Stage = "greeting"
    retry_count: int = 0
    repeat_count: int = 0
    active: bool = True

    def add_system(self, content: str) -> None:
        if self.history:
            raise ValueError("System message must be the first history entry")
        self.history.append(Message("system", content))

    def add_user(self, content: str) -> None:
        if self.history and self.history[-1].role == "user":
            raise ValueError("Previous user message has no assistant reply yet")
        self.history.append(Message("user", content))

    def add_assistant(self, content: str) -> None:
        self.history.append(Message("assistant", content))
        self.turn_count += 1

    @property
    def pending_bytes(self) -> int:
        return sum(len(chunk) for chunk in self.pending_audio)

    def transcript(self) -> list[str]:
        """Flatten the dialogue for persistence, e.g. ``"assistant: Hello"``."""

        return [f"{msg.role}: {msg.content}" for msg in self.history if msg.role != "system"]

    def age(self, now: float | None = None) -> float:
        return (now if now is not None else time.monotonic()) - self.created_at

"""API-facing Pydantic models."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")

CallOutcome = Literal["success", "rate_limited", "failed"]


class LeadCreateRequest(BaseModel):
    business_name: str = Field(min_length=1, max_length=200)
    contact_name: str | None = Field(default=None, max_length=200)
    phone_number: str = Field(description="E.164 phone number, e.g. +14155550123")
    product_category: str = Field(min_length=1, max_length=200)
    brand_name: str = Field(min_length=1, max_length=200)

    @field_validator("business_name", "product_category", "brand_name", mode="before")
    @classmethod
    def strip_required(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @field_validator("contact_name", mode="before")
    @classmethod
    def blank_contact_is_none(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("phone_number", mode="before")
    @classmethod
    def normalize_phone(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        # Form widgets tend to send "+1 (415) 555-0123".
        return re.sub(r"[\s().-]", "", value)

    @field_validator("phone_number")
    @classmethod
    def require_e164(cls, value: str) -> str:
        if not E164_PATTERN.match(value):
            raise ValueError("phone_number must be in E.164 format, e.g. +14155550123")
        return value


class LeadResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    business_name: str
    contact_name: str | None = None
    phone_number: str
    product_category: str
    brand_name: str
    source: str
    created_at: datetime


class LeadCreateResponse(LeadResponse):
    call_status: CallOutcome
    call_error: str | None = None
    call_id: str | None = None


class CallRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    lead_id: str
    phone_number: str
    business_name: str
    product_category: str
    brand_name: str
    state: str
    transcript: list[str] = Field(default_factory=list)
    twilio_sid: str | None = None
    twilio_status: str | None = None
    created_at: datetime
    updated_at: datetime


class HealthResponse(BaseModel):
    status: str = "ok"
    live_calls: int

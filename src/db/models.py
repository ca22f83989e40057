"""SQLAlchemy models for captured leads and their outbound calls."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Literal

from sqlalchemy import JSON, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base

CallState = Literal["INTRO", "DIALING", "COMPLETED", "FAILED"]
CALL_STATES: tuple[str, ...] = ("INTRO", "DIALING", "COMPLETED", "FAILED")


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Lead(Base):
    """A prospect captured by the web form."""

    __tablename__ = "leads"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    business_name: Mapped[str] = mapped_column(Text())
    contact_name: Mapped[str | None] = mapped_column(Text(), nullable=True)
    phone_number: Mapped[str] = mapped_column(String(20), index=True)
    product_category: Mapped[str] = mapped_column(Text())
    brand_name: Mapped[str] = mapped_column(Text())
    source: Mapped[str] = mapped_column(String(32), default="web_widget")
    created_at: Mapped[datetime] = mapped_column(default=_now)

    calls: Mapped[list[CallRecord]] = relationship(
        back_populates="lead",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class CallRecord(Base):
    """Outcome of one outbound call attempt for a lead."""

    __tablename__ = "call_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    lead_id: Mapped[str] = mapped_column(ForeignKey("leads.id", ondelete="CASCADE"), index=True)
    phone_number: Mapped[str] = mapped_column(String(20), index=True)
    business_name: Mapped[str] = mapped_column(Text())
    product_category: Mapped[str] = mapped_column(Text())
    brand_name: Mapped[str] = mapped_column(Text())
    state: Mapped[str] = mapped_column(String(16), default="INTRO")
    transcript: Mapped[list[str]] = mapped_column(JSON, default=list)
    twilio_sid: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    twilio_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=_now)
    updated_at: Mapped[datetime] = mapped_column(default=_now, onupdate=_now)

    lead: Mapped[Lead] = relationship(back_populates="calls")

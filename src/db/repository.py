"""Repository utilities for persisting leads and call records."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import desc, select

from calls.errors import CallNotFoundError
from calls.session import CallSession
from db.base import AsyncSessionFactory
from db.models import CALL_STATES, CallRecord, Lead

# Twilio call statuses that close out a call record.
TWILIO_STATUS_TO_STATE = {
    "completed": "COMPLETED",
    "failed": "FAILED",
    "canceled": "FAILED",
    "busy": "FAILED",
    "no-answer": "FAILED",
}


def state_for_twilio_status(status: str | None) -> str | None:
    """Map a Twilio call status to a record state, or None to leave it unchanged."""

    if not status:
        return None
    return TWILIO_STATUS_TO_STATE.get(status.lower())


class CallRepository:
    """Async repository encapsulating storage operations."""

    async def create_lead(
        self,
        *,
        business_name: str,
        phone_number: str,
        product_category: str,
        brand_name: str,
        contact_name: str | None = None,
        source: str = "web_widget",
    ) -> Lead:
        async with AsyncSessionFactory() as session:
            lead = Lead(
                business_name=business_name,
                contact_name=contact_name,
                phone_number=phone_number,
                product_category=product_category,
                brand_name=brand_name,
                source=source,
            )
            session.add(lead)
            await session.commit()
            await session.refresh(lead)
            return lead

    async def get_lead(self, lead_id: str) -> Lead | None:
        async with AsyncSessionFactory() as session:
            return await session.get(Lead, lead_id)

    async def list_leads(self, *, limit: int = 100) -> list[Lead]:
        async with AsyncSessionFactory() as session:
            query = select(Lead).order_by(desc(Lead.created_at)).limit(limit)
            result = await session.execute(query)
            return list(result.scalars().all())

    async def create_call_record(self, lead: Lead, *, state: str = "INTRO") -> CallRecord:
        async with AsyncSessionFactory() as session:
            record = CallRecord(
                lead_id=lead.id,
                phone_number=lead.phone_number,
                business_name=lead.business_name,
                product_category=lead.product_category,
                brand_name=lead.brand_name,
                state=state,
                transcript=[],
            )
            session.add(record)
            await session.commit()
            await session.refresh(record)
            return record

    async def get_call_record(self, record_id: str) -> CallRecord:
        async with AsyncSessionFactory() as session:
            record = await session.get(CallRecord, record_id)
            if record is None:
                raise CallNotFoundError(f"Call record {record_id} not found")
            return record

    async def get_call_by_sid(self, twilio_sid: str) -> CallRecord | None:
        async with AsyncSessionFactory() as session:
            query = select(CallRecord).where(CallRecord.twilio_sid == twilio_sid)
            result = await session.execute(query)
            return result.scalars().first()

    async def list_call_records(self, *, limit: int = 100) -> list[CallRecord]:
        async with AsyncSessionFactory() as session:
            query = select(CallRecord).order_by(desc(CallRecord.created_at)).limit(limit)
            result = await session.execute(query)
            return list(result.scalars().all())

    async def update_call_record(self, record_id: str, **changes) -> CallRecord:
        state = changes.get("state")
        if state is not None and state not in CALL_STATES:
            raise ValueError(f"Unknown call state {state!r}")

        async with AsyncSessionFactory() as session:
            record = await session.get(CallRecord, record_id)
            if record is None:
                raise CallNotFoundError(f"Call record {record_id} not found")
            for field, value in changes.items():
                setattr(record, field, value)
            await session.commit()
            await session.refresh(record)
            return record

    async def get_recent_call_by_phone(
        self,
        phone_number: str,
        within_minutes: int,
    ) -> CallRecord | None:
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=within_minutes)
        async with AsyncSessionFactory() as session:
            query = (
                select(CallRecord)
                .where(CallRecord.phone_number == phone_number)
                .order_by(desc(CallRecord.created_at))
                .limit(1)
            )
            result = await session.execute(query)
            record = result.scalars().first()

        if record is None:
            return None
        created_at = record.created_at
        # SQLite drops tzinfo on the way back.
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return record if created_at >= cutoff else None

    async def save_transcript(self, call_session: CallSession) -> CallRecord | None:
        """Store the finished conversation on the record dialed for this call."""

        record = await self.get_call_by_sid(call_session.call_id)
        if record is None:
            return None
        changes: dict = {"transcript": call_session.transcript()}
        if record.state in ("INTRO", "DIALING"):
            changes["state"] = "COMPLETED"
        return await self.update_call_record(record.id, **changes)

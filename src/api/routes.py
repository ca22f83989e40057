"""FastAPI routes for lead intake and call records."""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends

from api.dependencies import get_outbound_dialer, get_repository
from api.schemas import CallRecordResponse, LeadCreateRequest, LeadCreateResponse, LeadResponse
from api.twilio_routes import router as twilio_router
from calls.errors import RateLimitedError, TelephonyError
from config.settings import get_settings
from db.models import CallRecord, Lead
from db.repository import CallRepository, state_for_twilio_status
from integrations.twilio_client import OutboundDialer

LOGGER = logging.getLogger(__name__)

router = APIRouter()
router.include_router(twilio_router)

TRANSPORT_PATHS = {
    "media_stream": "api/twilio/twiml/media-stream",
    "relay": "api/twilio/twiml/relay",
    "gather": "api/twilio/voice/start",
}


def _call_instructions_path(lead: Lead) -> str:
    settings = get_settings()
    params = urlencode(
        {
            "businessName": lead.business_name,
            "productCategory": lead.product_category,
            "brandName": lead.brand_name,
        }
    )
    return f"{TRANSPORT_PATHS[settings.twilio_call_transport]}?{params}"


async def _dial_lead(
    lead: Lead,
    repository: CallRepository,
    dialer: OutboundDialer,
) -> CallRecord:
    settings = get_settings()
    recent = await repository.get_recent_call_by_phone(lead.phone_number, settings.rate_limit_minutes)
    if recent is not None:
        LOGGER.info("Rate limit: skipping call to %s (called recently)", lead.phone_number)
        raise RateLimitedError()

    record = await repository.create_call_record(lead, state="INTRO")
    try:
        sid = await dialer.dial(
            lead.phone_number,
            path=_call_instructions_path(lead),
            status_path="api/twilio/status",
        )
    except TelephonyError:
        await repository.update_call_record(record.id, state="FAILED")
        raise
    return await repository.update_call_record(record.id, state="DIALING", twilio_sid=sid, twilio_status="queued")


@router.post("/leads", response_model=LeadCreateResponse)
async def create_lead(
    payload: LeadCreateRequest,
    repository: CallRepository = Depends(get_repository),
    dialer: OutboundDialer = Depends(get_outbound_dialer),
) -> LeadCreateResponse:
    lead = await repository.create_lead(**payload.model_dump())
    base = LeadResponse.model_validate(lead).model_dump()

    try:
        record = await _dial_lead(lead, repository, dialer)
    except RateLimitedError as exc:
        return LeadCreateResponse(**base, call_status="rate_limited", call_error=exc.detail)
    except TelephonyError as exc:
        LOGGER.error("Failed to call lead %s: %s", lead.id, exc.detail)
        return LeadCreateResponse(**base, call_status="failed", call_error=exc.detail)

    LOGGER.info("Call initiated for lead %s, call SID: %s", lead.id, record.twilio_sid)
    return LeadCreateResponse(**base, call_status="success", call_id=record.id)


@router.get("/leads", response_model=list[LeadResponse])
async def list_leads(repository: CallRepository = Depends(get_repository)) -> list[LeadResponse]:
    return [LeadResponse.model_validate(lead) for lead in await repository.list_leads()]


@router.get("/calls", response_model=list[CallRecordResponse])
async def list_calls(repository: CallRepository = Depends(get_repository)) -> list[CallRecordResponse]:
    return [CallRecordResponse.model_validate(record) for record in await repository.list_call_records()]


@router.get("/calls/{record_id}/status", response_model=CallRecordResponse)
async def call_status(
    record_id: str,
    repository: CallRepository = Depends(get_repository),
    dialer: OutboundDialer = Depends(get_outbound_dialer),
) -> CallRecordResponse:
    record = await repository.get_call_record(record_id)
    if not record.twilio_sid:
        return CallRecordResponse.model_validate(record)

    try:
        status = await dialer.status(record.twilio_sid)
    except TelephonyError as exc:
        # Serve the stored record; the status callback keeps it current anyway.
        LOGGER.warning("Status refresh failed for call %s: %s", record_id, exc.detail)
        return CallRecordResponse.model_validate(record)

    changes: dict = {"twilio_status": status}
    state = state_for_twilio_status(status)
    if state is not None:
        changes["state"] = state
    record = await repository.update_call_record(record.id, **changes)
    return CallRecordResponse.model_validate(record)

from __future__ import annotations

import uuid
from urllib.parse import parse_qs, urlparse


def _lead_payload(phone: str, **overrides) -> dict:
    payload = {
        "business_name": "Acme Plumbing",
        "contact_name": "Dana",
        "phone_number": phone,
        "product_category": "Widgets",
        "brand_name": "Acme Co",
    }
    payload.update(overrides)
    return payload


def _unique_phone() -> str:
    return "+1415" + str(uuid.uuid4().int)[:7]


def test_health_reports_live_calls(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "live_calls": 0}


def test_create_lead_dials_immediately(client, twilio_client):
    phone = _unique_phone()

    response = client.post("/api/leads", json=_lead_payload(phone))

    assert response.status_code == 200
    payload = response.json()
    assert payload["call_status"] == "success"
    assert payload["call_error"] is None
    assert payload["phone_number"] == phone
    assert payload["source"] == "web_widget"

    [created] = twilio_client.calls.created
    assert created["to"] == phone
    assert created["from_"] == "+15005550006"
    assert created["machine_detection"] == "Enable"
    assert created["status_callback"] == "https://voice.example.test/api/twilio/status"
    url = urlparse(created["url"])
    assert url.path == "/api/twilio/twiml/media-stream"
    assert parse_qs(url.query)["brandName"] == ["Acme Co"]

    calls = client.get("/api/calls").json()
    record = next(c for c in calls if c["id"] == payload["call_id"])
    assert record["state"] == "DIALING"
    assert record["twilio_sid"].startswith("CA")


def test_second_lead_within_window_is_rate_limited(client, twilio_client):
    phone = _unique_phone()

    first = client.post("/api/leads", json=_lead_payload(phone)).json()
    second = client.post("/api/leads", json=_lead_payload(phone, business_name="Acme Again")).json()

    assert first["call_status"] == "success"
    assert second["call_status"] == "rate_limited"
    assert "60 seconds" in second["call_error"]
    assert len(twilio_client.calls.created) == 1

    leads = client.get("/api/leads").json()
    assert {lead["id"] for lead in leads} >= {first["id"], second["id"]}


def test_trial_account_error_is_reported(client, twilio_client):
    class TwilioRestError(Exception):
        code = 21608

    def fail(**kwargs):
        raise TwilioRestError("unverified")

    twilio_client.calls.create = fail

    payload = client.post("/api/leads", json=_lead_payload(_unique_phone())).json()

    assert payload["call_status"] == "failed"
    assert "verified" in payload["call_error"]
    records = [c for c in client.get("/api/calls").json() if c["lead_id"] == payload["id"]]
    assert [r["state"] for r in records] == ["FAILED"]


def test_lead_validation(client):
    bad_phone = client.post("/api/leads", json=_lead_payload("4155550100"))
    blank_brand = client.post("/api/leads", json=_lead_payload(_unique_phone(), brand_name="   "))
    formatted = client.post("/api/leads", json=_lead_payload("+1 (212) 555-0" + str(uuid.uuid4().int)[:3]))

    assert bad_phone.status_code == 422
    assert blank_brand.status_code == 422
    assert formatted.status_code == 200
    assert formatted.json()["phone_number"].startswith("+1212555")


def test_call_status_refreshes_from_twilio(client, twilio_client):
    lead = client.post("/api/leads", json=_lead_payload(_unique_phone())).json()
    twilio_client.calls.status = "completed"

    response = client.get(f"/api/calls/{lead['call_id']}/status")

    assert response.status_code == 200
    assert response.json()["twilio_status"] == "completed"
    assert response.json()["state"] == "COMPLETED"


def test_unknown_call_record_is_404(client):
    response = client.get("/api/calls/does-not-exist/status")

    assert response.status_code == 404
    assert "not found" in response.json()["detail"]


def test_status_callback_marks_failed_calls(client, twilio_client):
    lead = client.post("/api/leads", json=_lead_payload(_unique_phone())).json()
    sid = next(c for c in client.get("/api/calls").json() if c["id"] == lead["call_id"])["twilio_sid"]

    response = client.post("/api/twilio/status", data={"CallSid": sid, "CallStatus": "no-answer"})

    assert response.status_code == 204
    record = next(c for c in client.get("/api/calls").json() if c["id"] == lead["call_id"])
    assert record["state"] == "FAILED"
    assert record["twilio_status"] == "no-answer"


def test_call_record_columns_match_response_fields(app):
    from api.schemas import CallRecordResponse
    from db.models import CallRecord

    assert set(CallRecord.__table__.columns.keys()) == set(CallRecordResponse.model_fields)

from __future__ import annotations

import os
import sys
import uuid
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


class FakeTwilioCall:
    def __init__(self, sid: str, status: str = "queued") -> None:
        self.sid = sid
        self.status = status

    def fetch(self) -> FakeTwilioCall:
        return self


class FakeTwilioCalls:
    def __init__(self) -> None:
        self.created: list[dict] = []
        self.status = "in-progress"

    def create(self, **kwargs):
        self.created.append(kwargs)
        return FakeTwilioCall(f"CA{uuid.uuid4().hex}")

    def __call__(self, sid: str) -> FakeTwilioCall:
        return FakeTwilioCall(sid, self.status)


class FakeTwilioClient:
    def __init__(self) -> None:
        self.calls = FakeTwilioCalls()


@pytest.fixture(scope="session")
def app(tmp_path_factory: pytest.TempPathFactory):
    tmp_dir = tmp_path_factory.mktemp("runtime")
    db_path = tmp_dir / "voice_test.db"

    # Must be set before importing modules that create the SQLAlchemy engine.
    os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{db_path.as_posix()}"
    os.environ["DATA_DIR"] = str(tmp_dir)
    # Ensure tests can rely on the schema existing without running Alembic.
    os.environ["AUTO_CREATE_DB_SCHEMA"] = "true"
    os.environ["PUBLIC_BASE_URL"] = "https://voice.example.test"
    os.environ["HANGUP_DELAY_SECONDS"] = "0"
    os.environ["FRAME_MS"] = "1"

    import importlib

    # Ensure clean import with the test DB settings.
    for module_name in [
        "config.settings",
        "db.base",
        "db.models",
        "db.repository",
        "api.dependencies",
        "api.twilio_routes",
        "api.routes",
        "main",
    ]:
        sys.modules.pop(module_name, None)

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def twilio_client() -> FakeTwilioClient:
    return FakeTwilioClient()


@pytest.fixture()
def client(app, twilio_client):
    # Override provider dependencies so tests never reach OpenAI/ElevenLabs/Twilio.
    import api.dependencies as deps
    from dialogue.scripted import ScriptedPolicy
    from integrations.twilio_client import OutboundDialer, TwilioConfig

    cfg = TwilioConfig(
        account_sid="AC123",
        auth_token="token",
        from_number="+15005550006",
        public_base_url="https://voice.example.test",
    )
    app.dependency_overrides[deps.get_outbound_dialer] = lambda: OutboundDialer(twilio_client, cfg)
    app.dependency_overrides[deps.get_relay_policy] = lambda: ScriptedPolicy()
    app.dependency_overrides[deps.get_gather_policy] = lambda: ScriptedPolicy()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()

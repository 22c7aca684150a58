"""
Pytest fixtures for the poll backend tests.

Every test gets its own data directory with a fresh SQLite database.
"""

import json
import os
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any, Callable

import pytest
from httpx import ASGITransport, AsyncClient

# Set test environment variables before importing app
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("FIXED_OTP_MODE", "off")

from core.config import Settings  # noqa: E402
from core.exceptions import DeliveryError  # noqa: E402
from services.sms_service import SmsSender  # noqa: E402

VOTER_PHONE = "+919876543210"
OTHER_PHONE = "+919812345678"
OUTSIDER_PHONE = "+14155550100"


class RecordingSmsSender(SmsSender):
    """In-memory SMS provider that keeps every message it is asked to send."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []
        self.fail = False
        self.closed = False

    async def send(self, to_phone: str, body: str) -> str:
        if self.fail:
            raise DeliveryError()
        self.messages.append((to_phone, body))
        return f"SM{len(self.messages):032d}"

    async def close(self) -> None:
        self.closed = True

    def last_code(self) -> str:
        """Extract the 6-digit code from the most recent message."""
        _, body = self.messages[-1]
        return body.split("OTP: ")[1][:6]


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for async tests."""
    return "asyncio"


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def write_allowlist(data_dir: Path) -> Callable[[list[str]], Path]:
    """Write (or rewrite) the allowlist file."""

    def _write(phones: list[str]) -> Path:
        path = data_dir / "allowed_phones.json"
        path.write_text(json.dumps({"phones": phones}), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def settings(data_dir: Path, write_allowlist: Callable[[list[str]], Path]) -> Settings:
    write_allowlist([VOTER_PHONE, OTHER_PHONE])
    return Settings(
        APP_ENV="test",
        DATA_DIR=str(data_dir),
        FIXED_OTP_MODE="off",
        ALLOW_ALL_PHONES=False,
        TWILIO_ACCOUNT_SID=None,
        TWILIO_AUTH_TOKEN=None,
    )


@pytest.fixture
def sms_sender() -> RecordingSmsSender:
    return RecordingSmsSender()


@pytest.fixture
async def context(settings: Settings, sms_sender: RecordingSmsSender) -> AsyncGenerator[Any, None]:
    """Fully initialized runtime context backed by a temporary database."""
    from core.events import build_context, dispose_context

    ctx = await build_context(settings, sms_sender)
    yield ctx
    await dispose_context(ctx)


@pytest.fixture
async def db_session(context: Any) -> AsyncGenerator[Any, None]:
    async with context.session_factory() as session:
        yield session


@pytest.fixture
async def app(settings: Settings, sms_sender: RecordingSmsSender) -> AsyncGenerator[Any, None]:
    """Create FastAPI application with startup and shutdown run around the test."""
    from core.events import create_start_app_handler, create_stop_app_handler
    from main import create_application

    fastapi_app = create_application(settings, sms_sender=sms_sender)
    await create_start_app_handler(fastapi_app, settings)()
    yield fastapi_app
    await create_stop_app_handler(fastapi_app)()


@pytest.fixture
async def client(app: Any) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def login(client: AsyncClient, sms_sender: RecordingSmsSender) -> Callable[..., Any]:
    """Run the full send/verify flow and return the session token."""

    async def _login(phone: str = VOTER_PHONE, name: str = "Asha Menon") -> str:
        sent = await client.post("/api/auth/send-otp", json={"name": name, "phone": phone})
        assert sent.status_code == 200, sent.text
        verified = await client.post(
            "/api/auth/verify-otp",
            json={"phone": phone, "otp": sms_sender.last_code()},
        )
        assert verified.status_code == 200, verified.text
        return verified.json()["token"]

    return _login

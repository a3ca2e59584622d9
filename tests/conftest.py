"""Test configuration and fixtures."""
import re
from datetime import datetime, timedelta
from typing import List, Optional

import pyotp
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from jobportal.config.settings import (
    AuthSettings,
    CaptchaSettings,
    EmailSettings,
    RateLimitSettings,
    SecuritySettings,
    Settings,
)
from jobportal.main import create_app
from jobportal.models.base import Base
from jobportal.services.audit import RequestContext
from jobportal.services.email import EmailService
from jobportal.storage.kv import InMemoryKeyValueStore

STRONG_PASSWORD = "Str0ng!Pass"
OTHER_PASSWORDS = ["An0ther!Pass", "Thir3d$Pass", "F0urth%Pass", "Fif5th&Pass", "S1xth*Pass"]


class FakeClock:
    """Settable stand-in for ``datetime.utcnow``."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime.utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingEmailService(EmailService):
    """Captures outgoing mail; set ``fail`` to simulate a delivery error."""

    def __init__(self):
        super().__init__(EmailSettings(smtp_host=None, frontend_url="http://frontend.local"))
        self.sent: List[dict] = []
        self.fail = False

    async def send(self, to_email, subject, html_body, text_body=None) -> bool:
        if self.fail:
            return False
        self.sent.append({"to": to_email, "subject": subject, "html": html_body, "text": text_body})
        return True

    def last_reset_token(self) -> str:
        return re.search(r"token=([0-9a-f]{64})", self.sent[-1]["text"]).group(1)


def build_settings(**overrides) -> Settings:
    values = dict(
        auth=AuthSettings(bcrypt_rounds=4, secret_key="test-secret-key"),
        captcha=CaptchaSettings(enabled=False),
        security=SecuritySettings(csrf_enabled=False),
        rate_limit=RateLimitSettings(enabled=False),
    )
    values.update(overrides)
    return Settings(**values)


@pytest_asyncio.fixture
async def async_engine(tmp_path):
    """Create a file-backed SQLite engine per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def async_session(session_factory):
    """Create async session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def email_service():
    return RecordingEmailService()


@pytest.fixture
def test_settings():
    return build_settings()


@pytest.fixture
def make_app(session_factory, kv_store, email_service, clock):
    """Build an app around the shared collaborators with custom settings."""

    def _make(app_settings: Optional[Settings] = None, **kwargs):
        return create_app(
            app_settings or build_settings(),
            session_factory=session_factory,
            kv_store=kv_store,
            email_service=email_service,
            clock=clock,
            **kwargs,
        )

    return _make


@pytest.fixture
def app(make_app, test_settings):
    return make_app(test_settings)


@pytest_asyncio.fixture
async def client(app):
    """HTTP client talking to the app in-process."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client


@pytest.fixture
def orchestrator(app):
    return app.state.orchestrator


@pytest.fixture
def context():
    return RequestContext(ip_address="127.0.0.1", user_agent="pytest")


async def register_and_verify(orchestrator, session, context, email, password=STRONG_PASSWORD,
                              role="jobseeker", name="Test User"):
    await orchestrator.register(session, context, email=email, name=name, password=password, role=role)
    code = await orchestrator.codes.peek(email)
    outcome = await orchestrator.verify_email(session, context, email, code.code)
    return outcome


@pytest_asyncio.fixture
async def test_user(orchestrator, async_session, context):
    """Create a verified jobseeker."""
    outcome = await register_and_verify(orchestrator, async_session, context, "test@example.com")
    return outcome.user


@pytest_asyncio.fixture
async def employer_user(orchestrator, async_session, context):
    """Create a verified employer."""
    outcome = await register_and_verify(
        orchestrator, async_session, context, "boss@example.com", role="employer", name="Boss"
    )
    return outcome.user


@pytest_asyncio.fixture
async def auth_headers(orchestrator, async_session, context, test_user):
    """Create authorization headers for test user."""
    outcome = await orchestrator.login(async_session, context, test_user.email, STRONG_PASSWORD)
    return {"Authorization": f"Bearer {outcome.session.token}"}


@pytest_asyncio.fixture
async def employer_headers(orchestrator, async_session, context, employer_user):
    """Create authorization headers for the employer."""
    outcome = await orchestrator.login(async_session, context, employer_user.email, STRONG_PASSWORD)
    return {"Authorization": f"Bearer {outcome.session.token}"}


def current_totp(secret: str) -> str:
    return pyotp.TOTP(secret).now()

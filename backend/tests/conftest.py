"""
pytest configuration and fixtures for the tracker backend tests.
"""

import asyncio
import os
import tempfile
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from cryptography.fernet import Fernet
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Set environment variables before importing app modules
_TEST_DB_DIR = tempfile.mkdtemp(prefix="tracker-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TEST_DB_DIR, 'tracker.db')}"
os.environ["ENVIRONMENT"] = "testing"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key"
os.environ["EMAIL_ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["ADMIN_EMAIL"] = "admin@tracker.local"
os.environ["ADMIN_PASSWORD"] = "test-admin-password"
os.environ["SMTP_HOST"] = "smtp.test.local"

import tracker.models  # noqa: E402,F401
from tracker.core.security import create_access_token  # noqa: E402
from tracker.db.postgres import Base, build_engine  # noqa: E402
from tracker.services.click_store import ClickStore  # noqa: E402
from tracker.services.dispatch import DispatchPipeline  # noqa: E402
from tracker.services.email_provider import (  # noqa: E402
    EmailMessage,
    EmailProvider,
    SendResult,
    TransportConfig,
)

ADMIN_EMAIL = os.environ["ADMIN_EMAIL"]
ADMIN_PASSWORD = os.environ["ADMIN_PASSWORD"]


@pytest_asyncio.fixture
async def session_maker(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh SQLite database per test, one connection per session."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'clicks.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def store(session_maker) -> ClickStore:
    """Click store bound to the per-test database."""
    return ClickStore(session_maker=session_maker, pending_concurrency=3)


class FakeEmailProvider(EmailProvider):
    """In-memory provider that records every envelope it is handed."""

    def __init__(
        self,
        verify_error: Optional[Exception] = None,
        failures: Optional[dict[str, str]] = None,
        delay: float = 0.0,
    ):
        self.verify_error = verify_error
        self.failures = failures or {}
        self.delay = delay
        self.verify_calls = 0
        self.attempted: list[EmailMessage] = []
        self.delivered: list[EmailMessage] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def verify_connection(self) -> None:
        self.verify_calls += 1
        if self.verify_error is not None:
            raise self.verify_error

    async def send_email(self, message: EmailMessage) -> SendResult:
        self.attempted.append(message)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

        if message.to in self.failures:
            return SendResult(success=False, error=self.failures[message.to])

        self.delivered.append(message)
        return SendResult(success=True, message_id=f"<{len(self.delivered)}@test.local>")

    @property
    def delivered_to(self) -> list[str]:
        return [message.to for message in self.delivered]


@pytest.fixture
def fake_provider() -> FakeEmailProvider:
    return FakeEmailProvider()


@pytest.fixture
def transport_config() -> TransportConfig:
    """Configuration snapshot handed to the pipeline."""
    return TransportConfig(
        host="smtp.test.local",
        port=587,
        username="awareness@test.local",
        password="smtp-secret",
    )


def make_pipeline(provider: EmailProvider, **overrides) -> DispatchPipeline:
    """Pipeline whose provider factory always returns ``provider``."""
    options = {
        "probe_timeout": 1.0,
        "send_timeout": 1.0,
        "concurrency": 4,
        "placeholder": "{{LINK_TEXT}}",
    }
    options.update(overrides)
    return DispatchPipeline(provider_factory=lambda config: provider, **options)


@pytest.fixture
def pipeline(fake_provider) -> DispatchPipeline:
    return make_pipeline(fake_provider)


@pytest.fixture
def auth_headers() -> dict:
    """Bearer header for an operator token."""
    token = create_access_token({"user_id": "1", "email": ADMIN_EMAIL})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def provider_class() -> type[FakeEmailProvider]:
    return FakeEmailProvider


@pytest.fixture
def pipeline_factory():
    return make_pipeline

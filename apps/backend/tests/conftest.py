# ruff: noqa: E402
"""Conftest for backend tests."""

from __future__ import annotations

import sys
from pathlib import Path

project_root = Path(__file__).resolve().parents[3]
backend_src = project_root / "apps/backend/src"

for path in (project_root, backend_src):
    path_str = str(path)
    if path_str in sys.path:
        sys.path.remove(path_str)
    sys.path.insert(0, path_str)

from collections.abc import AsyncIterator, Awaitable, Callable, Iterator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import wysteria.auth.models  # noqa: F401
from wysteria.app import create_app
from wysteria.auth.models import User
from wysteria.core import redis as redis_module
from wysteria.core.config import get_settings
from wysteria.db import session as db_session
from wysteria.db.base import Base
from wysteria.db.session import dispose_engine
from wysteria.notifications import InMemoryEmailSender, InMemorySmsSender

TEST_EMAIL = "ada@example.com"
TEST_PHONE = "+16502530000"


@pytest.fixture(autouse=True)
def configure_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("REDIS__URL", "fakeredis://")
    monkeypatch.setenv("EMAIL__BACKEND", "memory")
    monkeypatch.setenv("SMS__BACKEND", "memory")
    monkeypatch.setenv("AUTH__COOKIE_SECURE", "false")
    monkeypatch.setenv("BASE_URL", "http://testserver")
    monkeypatch.setenv("AWS__REGION", "us-east-1")
    monkeypatch.setenv("AWS__ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS__SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("S3__BUCKET", "wysteria-test-assets")
    monkeypatch.setenv("SENTRY__ENABLED", "false")
    monkeypatch.setenv("PROMETHEUS__ENABLED", "false")
    monkeypatch.setenv("RATE_LIMIT__GLOBAL_REQUESTS_PER_MINUTE", "1000")

    get_settings.cache_clear()
    redis_module._REDIS = None
    try:
        yield
    finally:
        redis_module._REDIS = None
        get_settings.cache_clear()


@pytest_asyncio.fixture
async def session_factory(
    tmp_path: Path,
    configure_settings: Iterator[None],
) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    db_path = tmp_path / "wysteria-tests.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")

    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    db_session._ENGINE = engine
    db_session._SESSION_FACTORY = factory

    try:
        yield factory
    finally:
        await dispose_engine()
        await engine.dispose()


@pytest_asyncio.fixture()
async def app(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[FastAPI]:
    application = create_app()
    async with application.router.lifespan_context(application):
        yield application
        await application.state.redis.flushall()


@pytest_asyncio.fixture()
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://testserver"
    ) as http_client:
        yield http_client


@pytest.fixture
def email_outbox(app: FastAPI) -> InMemoryEmailSender:
    sender = app.state.email_sender
    assert isinstance(sender, InMemoryEmailSender)
    return sender


@pytest.fixture
def sms_outbox(app: FastAPI) -> InMemorySmsSender:
    sender = app.state.sms_sender
    assert isinstance(sender, InMemorySmsSender)
    return sender


@pytest_asyncio.fixture
async def async_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def signed_in(
    async_client: AsyncClient, email_outbox: InMemoryEmailSender
) -> dict[str, str]:
    """Sign in ``TEST_EMAIL`` over the email OTP flow and return the payload."""

    response = await async_client.post(
        "/api/auth/email-otp/send-verification-otp",
        json={"email": TEST_EMAIL, "type": "sign-in"},
    )
    assert response.status_code == 200
    sent = email_outbox.last_for(TEST_EMAIL)
    assert sent is not None

    response = await async_client.post(
        "/api/auth/sign-in/email-otp",
        json={"email": TEST_EMAIL, "otp": sent.otp},
    )
    assert response.status_code == 200
    body = response.json()
    return {"token": body["token"], "user_id": body["user"]["id"]}


UserFactory = Callable[..., Awaitable[User]]


@pytest.fixture
def user_factory(
    session_factory: async_sessionmaker[AsyncSession],
) -> UserFactory:
    async def _create(
        *,
        email: str = TEST_EMAIL,
        name: str = "Ada Lovelace",
        email_verified: bool = True,
        phone_number: str | None = None,
    ) -> User:
        async with session_factory() as session:
            user = User(
                email=email,
                name=name,
                email_verified=email_verified,
                phone_number=phone_number,
                phone_number_verified=True if phone_number else None,
            )
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    return _create

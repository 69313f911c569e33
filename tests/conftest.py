# tests/conftest.py
import os
import tempfile

# Settings are read once at import time, so the environment goes first
_TEST_DIR = tempfile.mkdtemp(prefix="marketplace-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TEST_DIR, 'app.db')}"
os.environ["DEBUG"] = "true"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["GOOGLE_CLIENT_ID"] = "google-client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "google-client-secret"
os.environ["FACEBOOK_APP_ID"] = "facebook-app-id"
os.environ["FACEBOOK_APP_SECRET"] = "facebook-app-secret"
os.environ["FRONTEND_URL"] = "http://localhost:3000"
os.environ["BACKEND_URL"] = "http://test"

import httpx
import pytest

from app.core.rate_limit import InMemoryRateLimitStore, RateLimiter, get_oauth_rate_limiter
from app.database import create_engine_for_url, create_session_factory, get_db, init_database
from app.main import app
from app.services.oauth_providers import (
    AppleOAuthProvider,
    FacebookOAuthProvider,
    GoogleOAuthProvider,
    ProviderRegistry,
    get_provider_registry,
)
from factories import ProviderStub


@pytest.fixture()
async def engine(tmp_path):
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_database(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def provider_stub():
    return ProviderStub()


@pytest.fixture()
def registry(provider_stub):
    transport = httpx.MockTransport(provider_stub)
    return ProviderRegistry([
        GoogleOAuthProvider(transport=transport),
        FacebookOAuthProvider(transport=transport),
        AppleOAuthProvider(transport=transport),
    ])


@pytest.fixture()
async def client(session_factory, registry):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                if session.dirty or session.new or session.deleted:
                    await session.commit()
            except Exception:
                await session.rollback()
                raise

    limiter = RateLimiter(InMemoryRateLimitStore(), max_attempts=10, window_seconds=900)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_provider_registry] = lambda: registry
    app.dependency_overrides[get_oauth_rate_limiter] = lambda: limiter

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


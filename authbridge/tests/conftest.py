import time
from collections.abc import Callable
from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from authbridge.config import Settings
from authbridge.database.supabase_client import ClientScope, SupabaseClientFactory
from authbridge.main import create_app
from authbridge.tests.constants import (
    TEST_ACCESS_TOKEN,
    TEST_ADMIN_SECRET,
    TEST_ANON_KEY,
    TEST_EMAIL,
    TEST_PEPPER,
    TEST_REFRESH_TOKEN,
    TEST_SERVICE_ROLE_KEY,
    TEST_SUPABASE_URL,
    TEST_USER_ID,
)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url=TEST_SUPABASE_URL,
        supabase_anon_key=TEST_ANON_KEY,
        supabase_service_role_key=TEST_SERVICE_ROLE_KEY,
        pin_pepper=TEST_PEPPER,
        x_admin_secret=TEST_ADMIN_SECRET,
        enable_trust_pin=True,
        cookie_secure=False,
        rate_limit_enabled=False,
        environment="test",
    )


@pytest.fixture
def make_user() -> Callable[..., SimpleNamespace]:
    def _make(user_id: str = TEST_USER_ID, email: str | None = TEST_EMAIL, phone: str | None = None) -> SimpleNamespace:
        return SimpleNamespace(id=user_id, email=email, phone=phone)

    return _make


@pytest.fixture
def make_session(make_user: Callable[..., SimpleNamespace]) -> Callable[..., SimpleNamespace]:
    def _make(
        access_token: str = TEST_ACCESS_TOKEN,
        refresh_token: str | None = TEST_REFRESH_TOKEN,
        expires_in: int = 3600,
        user: SimpleNamespace | None = None,
    ) -> SimpleNamespace:
        return SimpleNamespace(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
            expires_at=int(time.time()) + expires_in,
            user=user or make_user(),
        )

    return _make


@pytest.fixture
def make_auth_response(
    make_user: Callable[..., SimpleNamespace],
    make_session: Callable[..., SimpleNamespace],
) -> Callable[..., SimpleNamespace]:
    def _make(with_session: bool = True, **session_kwargs) -> SimpleNamespace:
        user = make_user()
        session = make_session(user=user, **session_kwargs) if with_session else None
        return SimpleNamespace(user=user, session=session)

    return _make


@pytest.fixture
def server_client() -> Mock:
    return Mock()


@pytest.fixture
def admin_client() -> Mock:
    return Mock()


@pytest.fixture
def client_factory(server_client: Mock, admin_client: Mock) -> Mock:
    factory = Mock(spec=SupabaseClientFactory)
    factory.create.side_effect = lambda scope: admin_client if scope == ClientScope.ADMIN else server_client
    return factory


@pytest.fixture
def app(settings: Settings, client_factory: Mock):
    return create_app(settings, client_factory)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def live_factory_client(settings: Settings) -> TestClient:
    """App wired to real supabase clients; only paths that stop before the network are exercised."""
    return TestClient(create_app(settings, SupabaseClientFactory(settings)))

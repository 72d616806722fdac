from collections.abc import Callable
from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from starlette.responses import Response
from supabase import AuthApiError

from authbridge.config import Settings
from authbridge.modules.sessions.cookies import CookieJar
from authbridge.modules.sessions.models import SessionTokens
from authbridge.modules.sessions.service import SessionGuard
from authbridge.tests.constants import TEST_ACCESS_TOKEN, TEST_REFRESH_TOKEN, TEST_USER_ID


def _expired() -> AuthApiError:
    return AuthApiError("invalid JWT: token is expired", 401, "bad_jwt")


@pytest.fixture
def jar(settings: Settings) -> CookieJar:
    return CookieJar(settings)


@pytest.fixture
def supabase() -> Mock:
    return Mock()


def _cookie_names(jar: CookieJar) -> list[str]:
    return [c.split("=", 1)[0] for c in jar.apply(Response()).headers.getlist("set-cookie")]


def test_no_tokens_is_unauthenticated_without_provider_call(supabase: Mock, jar: CookieJar) -> None:
    result = SessionGuard(supabase, jar).resolve(None)

    assert not result.authenticated
    assert not result.session_destroyed
    supabase.auth.get_user.assert_not_called()
    assert len(jar) == 0


def test_valid_access_token(supabase: Mock, jar: CookieJar, make_user: Callable[..., SimpleNamespace]) -> None:
    supabase.auth.get_user.return_value = SimpleNamespace(user=make_user())

    result = SessionGuard(supabase, jar).resolve(SessionTokens(TEST_ACCESS_TOKEN, TEST_REFRESH_TOKEN, "cookies"))

    assert result.user.id == TEST_USER_ID
    supabase.auth.refresh_session.assert_not_called()
    assert len(jar) == 0


def test_guard_asks_provider_on_every_call(
    supabase: Mock, jar: CookieJar, make_user: Callable[..., SimpleNamespace]
) -> None:
    supabase.auth.get_user.return_value = SimpleNamespace(user=make_user())
    guard = SessionGuard(supabase, jar)
    tokens = SessionTokens(TEST_ACCESS_TOKEN, None, "cookies")

    guard.resolve(tokens)
    guard.resolve(tokens)

    assert supabase.auth.get_user.call_count == 2


def test_expired_access_token_is_refreshed(
    supabase: Mock, jar: CookieJar, make_auth_response: Callable[..., SimpleNamespace]
) -> None:
    supabase.auth.get_user.side_effect = _expired()
    supabase.auth.refresh_session.return_value = make_auth_response(access_token="new-access", refresh_token="new-refresh")

    result = SessionGuard(supabase, jar).resolve(SessionTokens("old-access", TEST_REFRESH_TOKEN, "cookies"))

    assert result.authenticated
    supabase.auth.refresh_session.assert_called_once_with(TEST_REFRESH_TOKEN)
    cookies = jar.apply(Response()).headers.getlist("set-cookie")
    assert cookies[0].startswith("sb-access-token=new-access")
    assert cookies[1].startswith("sb-refresh-token=new-refresh")


def test_refresh_from_legacy_cookie_migrates_to_discrete_pair(
    supabase: Mock, jar: CookieJar, make_auth_response: Callable[..., SimpleNamespace]
) -> None:
    supabase.auth.get_user.side_effect = _expired()
    supabase.auth.refresh_session.return_value = make_auth_response()

    SessionGuard(supabase, jar).resolve(SessionTokens("old", TEST_REFRESH_TOKEN, "legacy"))

    assert _cookie_names(jar) == ["sb-access-token", "sb-refresh-token", "supabase-auth-token"]


def test_failed_refresh_destroys_session(supabase: Mock, jar: CookieJar) -> None:
    supabase.auth.get_user.side_effect = _expired()
    supabase.auth.refresh_session.side_effect = AuthApiError("Invalid Refresh Token", 400, "refresh_token_not_found")

    result = SessionGuard(supabase, jar).resolve(SessionTokens("old", TEST_REFRESH_TOKEN, "cookies"))

    assert not result.authenticated
    assert result.session_destroyed
    assert _cookie_names(jar) == ["sb-access-token", "sb-refresh-token", "supabase-auth-token"]


def test_rejected_access_token_without_refresh_destroys_session(supabase: Mock, jar: CookieJar) -> None:
    supabase.auth.get_user.side_effect = _expired()

    result = SessionGuard(supabase, jar).resolve(SessionTokens("old", None, "cookies"))

    assert result.session_destroyed
    supabase.auth.refresh_session.assert_not_called()


def test_infrastructure_errors_propagate(supabase: Mock, jar: CookieJar) -> None:
    supabase.auth.get_user.side_effect = ConnectionError("provider unreachable")

    with pytest.raises(ConnectionError):
        SessionGuard(supabase, jar).resolve(SessionTokens(TEST_ACCESS_TOKEN, TEST_REFRESH_TOKEN, "cookies"))

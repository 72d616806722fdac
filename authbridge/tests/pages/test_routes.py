from collections.abc import Callable
from types import SimpleNamespace
from unittest.mock import Mock

from fastapi.testclient import TestClient
from supabase import AuthApiError


class TestAuthCallback:
    def test_code_exchange_redirects_to_next_with_cookies(
        self, client: TestClient, server_client: Mock, make_auth_response: Callable[..., SimpleNamespace]
    ) -> None:
        server_client.auth.exchange_code_for_session.return_value = make_auth_response()

        response = client.get("/auth/callback?code=abc&next=%2Fsettings%3Ftab%3Dpin", follow_redirects=False)

        assert response.status_code == 303
        assert response.headers["location"] == "/settings?tab=pin"
        assert [c.split("=", 1)[0] for c in response.headers.get_list("set-cookie")] == ["sb-access-token", "sb-refresh-token"]
        server_client.auth.exchange_code_for_session.assert_called_once_with({"auth_code": "abc"})

    def test_missing_next_goes_to_dashboard(
        self, client: TestClient, server_client: Mock, make_auth_response: Callable[..., SimpleNamespace]
    ) -> None:
        server_client.auth.exchange_code_for_session.return_value = make_auth_response()

        response = client.get("/auth/callback?code=abc", follow_redirects=False)

        assert response.headers["location"] == "/dashboard"

    def test_external_next_is_ignored(
        self, client: TestClient, server_client: Mock, make_auth_response: Callable[..., SimpleNamespace]
    ) -> None:
        server_client.auth.exchange_code_for_session.return_value = make_auth_response()

        response = client.get("/auth/callback?code=abc&next=https%3A%2F%2Fevil.example%2F", follow_redirects=False)

        assert response.headers["location"] == "/dashboard"

    def test_rejected_code_returns_to_login(self, client: TestClient, server_client: Mock) -> None:
        server_client.auth.exchange_code_for_session.side_effect = AuthApiError("invalid flow state", 404, None)

        response = client.get("/auth/callback?code=stale&next=%2Fsettings", follow_redirects=False)

        assert response.status_code == 303
        assert response.headers["location"] == "/login?error=invalid_code&next=%2Fsettings"
        assert not response.headers.get_list("set-cookie")

    def test_missing_code_returns_to_login(self, client: TestClient, server_client: Mock) -> None:
        response = client.get("/auth/callback", follow_redirects=False)

        assert response.headers["location"] == "/login?error=code_required&next=%2Fdashboard"
        server_client.auth.exchange_code_for_session.assert_not_called()

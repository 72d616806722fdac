from collections.abc import Callable
from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient
from supabase import AuthApiError

from authbridge.config import Settings
from authbridge.main import create_app
from authbridge.modules.credentials.pin import LEGACY_DERIVED_KEY_BYTES, derive_password_from_pin
from authbridge.tests.constants import (
    TEST_ACCESS_TOKEN,
    TEST_EMAIL,
    TEST_PEPPER,
    TEST_PHONE,
    TEST_PREV_PEPPER,
    TEST_REFRESH_TOKEN,
    TEST_SALT_B64,
    TEST_USER_ID,
)

PIN = "4821"


def _bad_credentials(*_args) -> None:
    raise AuthApiError("Invalid login credentials", 400, "invalid_credentials")


@pytest.fixture
def tables(admin_client: Mock) -> dict[str, Mock]:
    mocks = {"profiles": Mock(), "auth_local_pin": Mock()}
    admin_client.table.side_effect = lambda name: mocks[name]
    return mocks


def _profile(tables: dict[str, Mock], data) -> Mock:
    query = tables["profiles"].select.return_value
    result = None if data is None else SimpleNamespace(data=data)
    query.eq.return_value.maybe_single.return_value.execute.return_value = result
    query.or_.return_value.maybe_single.return_value.execute.return_value = result
    return query


def _pin_row(tables: dict[str, Mock], data) -> None:
    query = tables["auth_local_pin"].select.return_value.eq.return_value.maybe_single.return_value
    query.execute.return_value = SimpleNamespace(data=data)


@pytest.fixture
def known_account(tables: dict[str, Mock], admin_client: Mock, make_user) -> Mock:
    profile_query = _profile(tables, {"user_id": TEST_USER_ID, "email": TEST_EMAIL, "phone": TEST_PHONE})
    _pin_row(tables, {"salt_b64": TEST_SALT_B64, "salt": None})
    admin_client.auth.admin.get_user_by_id.return_value = SimpleNamespace(user=make_user(phone=TEST_PHONE))
    return profile_query


def test_disabled_feature_is_not_found(settings: Settings, client_factory: Mock, server_client: Mock) -> None:
    settings.enable_trust_pin = False
    client = TestClient(create_app(settings, client_factory))

    response = client.post("/api/pin/login", json={"method": "email", "user": TEST_EMAIL, "pin": PIN})

    assert response.status_code == 404
    assert response.json()["error"] == "trust_pin_disabled"
    server_client.auth.sign_in_with_password.assert_not_called()


def test_login_with_email_sets_cookies(
    client: TestClient,
    server_client: Mock,
    known_account: Mock,
    make_auth_response: Callable[..., SimpleNamespace],
) -> None:
    server_client.auth.sign_in_with_password.return_value = make_auth_response()

    response = client.post("/api/pin/login", json={"method": "email", "user": TEST_EMAIL.upper(), "pin": PIN})

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    expected = derive_password_from_pin(PIN, TEST_USER_ID, TEST_SALT_B64, TEST_PEPPER)
    server_client.auth.sign_in_with_password.assert_called_once_with({"email": TEST_EMAIL, "password": expected})
    known_account.eq.assert_called_once_with("email", TEST_EMAIL)
    cookies = response.headers.get_list("set-cookie")
    assert cookies[0].startswith(f"sb-access-token={TEST_ACCESS_TOKEN}")
    assert cookies[1].startswith(f"sb-refresh-token={TEST_REFRESH_TOKEN}")


def test_login_with_phone_matches_both_stored_forms(
    client: TestClient,
    server_client: Mock,
    known_account: Mock,
    make_auth_response: Callable[..., SimpleNamespace],
) -> None:
    server_client.auth.sign_in_with_password.return_value = make_auth_response()

    response = client.post("/api/pin/login", json={"method": "phone", "user": "9812345678", "pin": PIN})

    assert response.status_code == 200
    known_account.or_.assert_called_once_with(f"phone.eq.{TEST_PHONE},phone.eq.09812345678")
    first_attempt = server_client.auth.sign_in_with_password.call_args_list[0].args[0]
    assert first_attempt["phone"] == TEST_PHONE


def test_wrong_pin_is_unauthorized(client: TestClient, server_client: Mock, known_account: Mock) -> None:
    server_client.auth.sign_in_with_password.side_effect = _bad_credentials

    response = client.post("/api/pin/login", json={"method": "email", "user": TEST_EMAIL, "pin": "0000"})

    assert response.status_code == 401
    assert response.json()["error"] == "invalid_pin"
    assert response.headers.get_list("set-cookie") == []


def test_previous_pepper_is_tried_after_current(
    settings: Settings,
    client_factory: Mock,
    server_client: Mock,
    known_account: Mock,
    make_auth_response: Callable[..., SimpleNamespace],
) -> None:
    settings.pin_pepper_prev = TEST_PREV_PEPPER
    client = TestClient(create_app(settings, client_factory))
    old_password = derive_password_from_pin(PIN, TEST_USER_ID, TEST_SALT_B64, TEST_PREV_PEPPER)

    def sign_in(credentials: dict):
        if credentials["password"] != old_password:
            _bad_credentials()
        return make_auth_response()

    server_client.auth.sign_in_with_password.side_effect = sign_in

    response = client.post("/api/pin/login", json={"method": "email", "user": TEST_EMAIL, "pin": PIN})

    assert response.status_code == 200


def test_unknown_account(client: TestClient, tables: dict[str, Mock]) -> None:
    _profile(tables, None)

    response = client.post("/api/pin/login", json={"method": "email", "user": TEST_EMAIL, "pin": PIN})

    assert response.status_code == 404
    assert response.json()["error"] == "user_not_found"


def test_account_without_pin(client: TestClient, tables: dict[str, Mock], known_account: Mock) -> None:
    _pin_row(tables, {"salt_b64": None, "salt": None})

    response = client.post("/api/pin/login", json={"method": "email", "user": TEST_EMAIL, "pin": PIN})

    assert response.status_code == 400
    assert response.json()["error"] == "pin_not_set"


@pytest.mark.parametrize(
    "payload,code",
    [
        ({"method": "email", "user": TEST_EMAIL, "pin": "12"}, "invalid_pin"),
        ({"method": "email", "user": "nope", "pin": PIN}, "INVALID_EMAIL"),
        ({"method": "phone", "user": "+14155552671", "pin": PIN}, "INVALID_PHONE"),
        ({"user": TEST_EMAIL, "pin": PIN}, "invalid_method"),
    ],
)
def test_login_input_validation(client: TestClient, admin_client: Mock, payload: dict, code: str) -> None:
    response = client.post("/api/pin/login", json=payload)

    assert response.status_code == 400
    assert response.json()["error"] == code
    admin_client.table.assert_not_called()


def test_set_pin_requires_session(client: TestClient, admin_client: Mock) -> None:
    response = client.post("/api/pin/set", json={"pin": PIN})

    assert response.status_code == 401
    admin_client.auth.admin.update_user_by_id.assert_not_called()


def test_set_pin_rotates_password_and_signs_back_in(
    client: TestClient,
    server_client: Mock,
    admin_client: Mock,
    tables: dict[str, Mock],
    make_user,
    make_auth_response: Callable[..., SimpleNamespace],
) -> None:
    server_client.auth.get_user.return_value = SimpleNamespace(user=make_user())
    admin_client.auth.admin.get_user_by_id.return_value = SimpleNamespace(user=make_user())
    server_client.auth.sign_in_with_password.return_value = make_auth_response(access_token="after-rotation")
    client.cookies.set("sb-access-token", TEST_ACCESS_TOKEN)
    client.cookies.set("sb-refresh-token", TEST_REFRESH_TOKEN)

    response = client.post("/api/pin/set", json={"pin": PIN})

    assert response.status_code == 200
    row = tables["auth_local_pin"].upsert.call_args.args[0]
    expected = derive_password_from_pin(PIN, TEST_USER_ID, row["salt_b64"], TEST_PEPPER)
    admin_client.auth.admin.update_user_by_id.assert_called_once_with(TEST_USER_ID, {"password": expected})
    server_client.auth.sign_in_with_password.assert_called_once_with({"email": TEST_EMAIL, "password": expected})
    assert response.headers.get_list("set-cookie")[0].startswith("sb-access-token=after-rotation")
    assert row["pin_retries"] == 0


def test_set_pin_rejects_malformed_pin(client: TestClient, server_client: Mock, admin_client: Mock, make_user) -> None:
    server_client.auth.get_user.return_value = SimpleNamespace(user=make_user())
    client.cookies.set("sb-access-token", TEST_ACCESS_TOKEN)

    response = client.post("/api/pin/set", json={"pin": "12ab"})

    assert response.status_code == 400
    admin_client.table.assert_not_called()


def test_legacy_48_byte_password_signs_in_and_is_upgraded(
    client: TestClient,
    server_client: Mock,
    admin_client: Mock,
    known_account: Mock,
    make_auth_response: Callable[..., SimpleNamespace],
) -> None:
    legacy_password = derive_password_from_pin(PIN, TEST_USER_ID, TEST_SALT_B64, TEST_PEPPER, LEGACY_DERIVED_KEY_BYTES)

    def sign_in(credentials: dict):
        if credentials["password"] != legacy_password:
            _bad_credentials()
        return make_auth_response()

    server_client.auth.sign_in_with_password.side_effect = sign_in

    response = client.post("/api/pin/login", json={"method": "email", "user": TEST_EMAIL, "pin": PIN})

    assert response.status_code == 200
    current = derive_password_from_pin(PIN, TEST_USER_ID, TEST_SALT_B64, TEST_PEPPER)
    admin_client.auth.admin.update_user_by_id.assert_called_once_with(TEST_USER_ID, {"password": current})


def test_current_password_is_not_rewritten(
    client: TestClient,
    server_client: Mock,
    admin_client: Mock,
    known_account: Mock,
    make_auth_response: Callable[..., SimpleNamespace],
) -> None:
    server_client.auth.sign_in_with_password.return_value = make_auth_response()

    assert client.post("/api/pin/login", json={"method": "email", "user": TEST_EMAIL, "pin": PIN}).status_code == 200
    admin_client.auth.admin.update_user_by_id.assert_not_called()


def test_failed_upgrade_does_not_block_sign_in(
    client: TestClient,
    server_client: Mock,
    admin_client: Mock,
    known_account: Mock,
    make_auth_response: Callable[..., SimpleNamespace],
) -> None:
    legacy_password = derive_password_from_pin(PIN, TEST_USER_ID, TEST_SALT_B64, TEST_PEPPER, LEGACY_DERIVED_KEY_BYTES)
    server_client.auth.sign_in_with_password.side_effect = (
        lambda credentials: make_auth_response() if credentials["password"] == legacy_password else _bad_credentials()
    )
    admin_client.auth.admin.update_user_by_id.side_effect = RuntimeError("gotrue down")

    response = client.post("/api/pin/login", json={"method": "email", "user": TEST_EMAIL, "pin": PIN})

    assert response.status_code == 200
    assert response.headers.get_list("set-cookie")

import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class AuthApiError(Exception):
    def __init__(self, status_code: int, code: str, message: Optional[str] = None):
        super().__init__(message or code)
        self.status_code = status_code
        self.code = code
        self.message = message


class AuthApiClient:
    """Thin httpx client for the OTP and session endpoints; keeps session cookies in its jar."""

    def __init__(self, base_url: str = "", http: Optional[httpx.Client] = None):
        self.http = http or httpx.Client(base_url=base_url)

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = self.http.post(path, json=payload)
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not response.is_success or body.get("ok") is False:
            raise AuthApiError(
                response.status_code,
                body.get("error") or "request_failed",
                body.get("message"),
            )
        return body

    def send_email_otp(self, email: str, redirect_to: Optional[str] = None) -> Dict[str, Any]:
        payload = {"email": email}
        if redirect_to:
            payload["redirectTo"] = redirect_to
        return self._post("/api/otp/email/send", payload)

    def send_phone_otp(self, phone: str) -> Dict[str, Any]:
        return self._post("/api/otp/phone/send", {"phone": phone})

    def verify_email_otp(self, email: str, token: str) -> Dict[str, Any]:
        return self._post("/api/otp/email/verify", {"email": email, "token": token})

    def verify_phone_otp(self, phone: str, token: str) -> Dict[str, Any]:
        return self._post("/api/otp/phone/verify", {"phone": phone, "token": token})

    def session_status(self) -> bool:
        try:
            response = self.http.get("/api/auth/session")
            return bool(response.json().get("authenticated"))
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Session status unavailable: {e}")
            return False

    def sign_out(self) -> Dict[str, Any]:
        return self._post("/api/auth/signout", {})

import logging
import re
from typing import Any, Optional
from urllib.parse import urlparse

from supabase import AuthError, Client

from authbridge.core.errors import ApiError
from authbridge.core.rate_limit import OtpRateLimiter
from authbridge.modules.otp.identifiers import (
    Identifier,
    canonicalize_nepal_phone,
    normalize_email,
)
from authbridge.modules.otp.models import (
    AttemptsExhausted,
    IllegalTransition,
    OtpChallenge,
    OtpChallengeRegistry,
)
from authbridge.modules.sessions.cookies import CookieJar
from authbridge.modules.sessions.models import Session

logger = logging.getLogger(__name__)

OTP_TOKEN_PATTERN = re.compile(r"^\d{6}$")


def friendly_send_error(err: Exception) -> Optional[str]:
    """Operator hint for provider failures that users keep running into."""
    message = str(getattr(err, "message", "") or err).lower()
    if "database error saving new user" in message:
        return (
            "Email sign-up is temporarily unavailable because Supabase rejected the new user record. "
            "Check the profiles trigger and row-level security policies, or use the phone OTP option instead."
        )
    return None


class OtpService:
    """Send/verify flow for email and SMS codes. Sessions are committed to the cookie jar explicitly."""

    def __init__(
        self,
        supabase: Client,
        rate_limiter: OtpRateLimiter,
        challenges: OtpChallengeRegistry,
        jar: CookieJar,
    ):
        self.supabase = supabase
        self.rate_limiter = rate_limiter
        self.challenges = challenges
        self.jar = jar

    # ---- send ----

    def send_email(self, email: Optional[str], redirect_to: Optional[str] = None) -> OtpChallenge:
        if email is None or not str(email).strip():
            raise ApiError(400, "EMAIL_REQUIRED", "Email is required")
        normalized = normalize_email(email)
        if not normalized:
            raise ApiError(400, "INVALID_EMAIL", "Enter a valid email address")
        if redirect_to is not None and not self._is_http_url(redirect_to):
            raise ApiError(400, "bad_request", "redirectTo must be an absolute http(s) URL")

        identifier = Identifier.email(normalized)
        options = {"should_create_user": True}
        if redirect_to:
            options["email_redirect_to"] = redirect_to
        return self._send(identifier, {"email": normalized, "options": options})

    def send_phone(self, phone: Optional[str]) -> OtpChallenge:
        if phone is None or not str(phone).strip():
            raise ApiError(400, "PHONE_REQUIRED", "Phone number is required")
        canonical = canonicalize_nepal_phone(phone)
        if not canonical:
            raise ApiError(
                400,
                "INVALID_PHONE",
                "Enter a Nepal mobile number: 10 digits starting with 96, 97 or 98 (optionally prefixed with +977)",
            )
        identifier = Identifier.phone(canonical)
        return self._send(identifier, {"phone": canonical, "options": {"channel": "sms"}})

    def _send(self, identifier: Identifier, credentials: dict) -> OtpChallenge:
        if not self.rate_limiter.can_send(identifier.rate_key):
            logger.warning(f"OTP send rate limited for {identifier.masked}")
            raise ApiError(429, "RATE_LIMITED", "Too many codes requested. Try again later.")
        try:
            response = self.supabase.auth.sign_in_with_otp(credentials)
        except AuthError as e:
            logger.warning(f"OTP send rejected for {identifier.masked}: {e}")
            raise ApiError(400, "send_failed", friendly_send_error(e))
        except Exception as e:
            logger.exception(f"OTP send failed for {identifier.masked}: {e}")
            raise ApiError(500, "server_error")
        challenge = self.challenges.issue(identifier, handle=getattr(response, "message_id", None))
        logger.info(f"OTP sent via {challenge.channel.value} to {identifier.masked}")
        return challenge

    # ---- verify ----

    def verify_email(self, email: Optional[str], token: Optional[str]) -> Any:
        token = (token or "").strip()
        normalized = normalize_email(email)
        if not normalized or not self._is_token(token):
            raise ApiError(400, "bad_request")
        identifier = Identifier.email(normalized)
        return self._verify(identifier, {"email": normalized, "token": token, "type": "email"})

    def verify_phone(self, phone: Optional[str], token: Optional[str]) -> Any:
        token = (token or "").strip()
        canonical = canonicalize_nepal_phone(phone)
        if not canonical or not self._is_token(token):
            raise ApiError(400, "bad_request")
        identifier = Identifier.phone(canonical)
        return self._verify(identifier, {"phone": canonical, "token": token, "type": "sms"})

    def _verify(self, identifier: Identifier, params: dict) -> Any:
        try:
            challenge = self.challenges.begin_verify(identifier)
        except AttemptsExhausted:
            raise ApiError(400, "too_many_attempts", "Request a new code to try again")
        except IllegalTransition:
            raise ApiError(409, "verification_in_progress")

        try:
            response = self.supabase.auth.verify_otp(params)
        except AuthError as e:
            self.challenges.fail(challenge)
            logger.info(f"OTP rejected for {identifier.masked}: {e}")
            raise ApiError(400, "invalid_code")
        except Exception as e:
            self.challenges.fail(challenge)
            logger.exception(f"OTP verify failed for {identifier.masked}: {e}")
            raise ApiError(500, "server_error")

        # A verified code without a session is not a sign-in
        if not response or not response.session or not response.session.access_token:
            self.challenges.fail(challenge)
            logger.warning(f"OTP verified without a session for {identifier.masked}")
            raise ApiError(400, "invalid_code")

        self.challenges.complete(challenge)
        self.jar.set_session(Session.from_provider(response.session, response.user))
        logger.info(f"OTP sign-in via {challenge.channel.value} for {identifier.masked}")
        return response.user or response.session.user

    @staticmethod
    def _is_token(token: Optional[str]) -> bool:
        return isinstance(token, str) and bool(OTP_TOKEN_PATTERN.match(token))

    @staticmethod
    def _is_http_url(value: str) -> bool:
        parsed = urlparse(value)
        return parsed.scheme in ("http", "https") and bool(parsed.netloc)

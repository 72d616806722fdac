import logging
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from supabase import AuthError, Client

from authbridge.core.errors import ApiError
from authbridge.modules.sessions.cookies import CookieJar, LEGACY_COOKIE
from authbridge.modules.sessions.models import Session, SessionTokens, looks_like_jwt

logger = logging.getLogger(__name__)


class SessionService:
    """Mirrors provider sessions into cookies. Every cookie change goes through the jar."""

    def __init__(self, supabase: Client, jar: CookieJar):
        self.supabase = supabase
        self.jar = jar

    def sync(self, access_token: Optional[str], refresh_token: Optional[str]) -> Session:
        """Validate tokens posted by the browser and stage the matching cookies."""
        if not access_token:
            raise ApiError(400, "missing_tokens")
        if not looks_like_jwt(access_token):
            logger.info("Session sync rejected: access token is not a JWT")
            raise ApiError(400, "set_session_failed")
        try:
            if refresh_token:
                response = self.supabase.auth.set_session(access_token, refresh_token)
                if not response or not response.session:
                    raise ApiError(400, "set_session_failed")
                session = Session.from_provider(response.session, response.user)
            else:
                # No refresh token: the access token alone is accepted once the provider recognises it
                user_response = self.supabase.auth.get_user(access_token)
                if not user_response or not user_response.user:
                    raise ApiError(400, "set_session_failed")
                session = Session(
                    access_token=access_token,
                    refresh_token=None,
                    expires_at=None,
                    user_id=user_response.user.id,
                )
        except ApiError:
            raise
        except AuthError as e:
            logger.info(f"Session sync rejected by provider: {e}")
            raise ApiError(400, "set_session_failed")
        except Exception as e:
            logger.exception(f"Session sync failed: {e}")
            raise ApiError(500, "server_error")
        self.jar.set_session(session)
        return session

    def exchange_code(self, code: Optional[str], code_verifier: Optional[str] = None) -> Tuple[Session, Any]:
        """Trade an auth code (magic link / OAuth callback) for a session."""
        code = (code or "").strip()
        if not code:
            raise ApiError(400, "code_required")
        params = {"auth_code": code}
        if code_verifier:
            params["code_verifier"] = code_verifier
        try:
            response = self.supabase.auth.exchange_code_for_session(params)
        except AuthError as e:
            logger.info(f"Code exchange rejected by provider: {e}")
            raise ApiError(400, "invalid_code")
        except Exception as e:
            logger.exception(f"Code exchange failed: {e}")
            raise ApiError(500, "server_error")
        if not response or not response.session:
            raise ApiError(400, "invalid_code")
        session = Session.from_provider(response.session, response.user)
        self.jar.set_session(session)
        return session, response.user

    def is_authenticated(self, tokens: Optional[SessionTokens]) -> bool:
        if not tokens or not looks_like_jwt(tokens.access_token):
            return False
        try:
            response = self.supabase.auth.get_user(tokens.access_token)
        except Exception as e:
            logger.debug(f"Session check failed: {e}")
            return False
        return bool(response and response.user)

    def sign_out(self, tokens: Optional[SessionTokens]):
        """Clear local cookies; revoking the provider session is best-effort."""
        self.jar.clear_session(include_legacy=True)
        if not tokens or not tokens.access_token:
            return
        try:
            self.supabase.auth.admin.sign_out(tokens.access_token)
        except Exception as e:
            logger.warning(f"Provider sign-out failed, cookies cleared anyway: {e}")


@dataclass
class GuardResult:
    user: Any
    session_destroyed: bool = False

    @property
    def authenticated(self) -> bool:
        return self.user is not None


class SessionGuard:
    """
    Per-request authentication check for protected routes.

    Nothing is cached between requests: each call asks the provider. An access
    token the provider rejects is refreshed with the refresh token (new cookies
    staged on the jar); a failed refresh destroys the session cookies.
    """

    def __init__(self, supabase: Client, jar: CookieJar):
        self.supabase = supabase
        self.jar = jar

    def resolve(self, tokens: Optional[SessionTokens]) -> GuardResult:
        if tokens is None:
            return GuardResult(user=None)

        if looks_like_jwt(tokens.access_token):
            try:
                response = self.supabase.auth.get_user(tokens.access_token)
                if response and response.user:
                    return GuardResult(user=response.user)
            except AuthError as e:
                logger.debug(f"Access token rejected, trying refresh: {e}")

        if tokens.refresh_token:
            try:
                response = self.supabase.auth.refresh_session(tokens.refresh_token)
            except AuthError as e:
                logger.info(f"Session refresh failed: {e}")
                response = None
            if response and response.session and response.user:
                self.jar.set_session(Session.from_provider(response.session, response.user))
                if tokens.source == "legacy":
                    self.jar.delete(LEGACY_COOKIE)
                return GuardResult(user=response.user)

        self.jar.clear_session(include_legacy=True)
        return GuardResult(user=None, session_destroyed=True)

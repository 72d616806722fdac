"""
Core dependencies for route protection and client construction
"""

import hmac
import logging
from typing import Any, Optional

from fastapi import Depends, Header, Request
from supabase import Client

from authbridge.config import ConfigurationError, Settings
from authbridge.core.context import AppContext
from authbridge.core.errors import ApiError, LoginRequired, Unauthenticated
from authbridge.database.supabase_client import ClientScope
from authbridge.modules.sessions.cookies import CookieJar, read_session_tokens
from authbridge.modules.sessions.models import SessionTokens
from authbridge.modules.sessions.redirects import login_redirect_location
from authbridge.modules.sessions.service import GuardResult, SessionGuard

logger = logging.getLogger(__name__)


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_settings(context: AppContext = Depends(get_context)) -> Settings:
    return context.settings


def get_server_client(context: AppContext = Depends(get_context)) -> Client:
    """Fresh anon-key client per request; holds no session between requests."""
    return context.client_factory.create(ClientScope.SERVER)


def get_admin_client(context: AppContext = Depends(get_context)) -> Client:
    try:
        return context.client_factory.create(ClientScope.ADMIN)
    except ConfigurationError as e:
        logger.error(str(e))
        raise ApiError(500, "server_misconfigured")


def get_cookie_jar(settings: Settings = Depends(get_settings)) -> CookieJar:
    """One jar per request; FastAPI's dependency cache hands every consumer the same instance."""
    return CookieJar(settings)


def get_session_tokens(request: Request) -> Optional[SessionTokens]:
    return read_session_tokens(request.cookies)


def _resolve_session(
    tokens: Optional[SessionTokens],
    supabase: Client,
    jar: CookieJar,
) -> GuardResult:
    try:
        return SessionGuard(supabase, jar).resolve(tokens)
    except Exception as e:
        logger.exception(f"Session check failed: {e}")
        raise ApiError(500, "server_error")


def require_api_user(
    tokens: Optional[SessionTokens] = Depends(get_session_tokens),
    supabase: Client = Depends(get_server_client),
    jar: CookieJar = Depends(get_cookie_jar),
) -> Any:
    """API routes: the signed-in user or 401."""
    result = _resolve_session(tokens, supabase, jar)
    if not result.authenticated:
        raise Unauthenticated(clear_cookies=result.session_destroyed)
    return result.user


def require_page_user(
    request: Request,
    tokens: Optional[SessionTokens] = Depends(get_session_tokens),
    supabase: Client = Depends(get_server_client),
    jar: CookieJar = Depends(get_cookie_jar),
    settings: Settings = Depends(get_settings),
) -> Any:
    """Page routes: the signed-in user, or a redirect to login carrying ?next=."""
    result = _resolve_session(tokens, supabase, jar)
    if not result.authenticated:
        path = request.url.path
        if request.url.query:
            path = f"{path}?{request.url.query}"
        raise LoginRequired(
            login_redirect_location(settings.login_path, path, settings.default_next_path),
            clear_cookies=result.session_destroyed,
        )
    return result.user


def require_admin_secret(
    x_admin_secret: Optional[str] = Header(default=None, alias="x-admin-secret"),
    settings: Settings = Depends(get_settings),
) -> None:
    """Admin task routes. A server without X_ADMIN_SECRET refuses them instead of running open."""
    if not x_admin_secret:
        raise ApiError(403, "forbidden")
    try:
        expected = settings.require_admin_secret()
    except ConfigurationError as e:
        logger.error(str(e))
        raise ApiError(500, "server_misconfigured")
    if not hmac.compare_digest(x_admin_secret.encode(), expected.encode()):
        raise ApiError(403, "forbidden")


def require_hook_token(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Auth hooks called by Supabase present ``Authorization: Bearer <SUPABASE_SMS_HOOK_TOKEN>``."""
    try:
        expected = settings.require_sms_hook_token()
    except ConfigurationError as e:
        logger.error(str(e))
        raise ApiError(500, "server_misconfigured")
    scheme, _, token = (authorization or "").partition(" ")
    if scheme != "Bearer" or not hmac.compare_digest(token.strip().encode(), expected.encode()):
        raise ApiError(401, "unauthorized", "Hook requires authorization token")

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from supabase import Client
from typing import Any, Optional

from authbridge.core.context import AppContext
from authbridge.core.dependencies import (
    get_context,
    get_cookie_jar,
    get_server_client,
    get_session_tokens,
    require_api_user,
)
from authbridge.database.supabase_client import ClientScope
from authbridge.modules.sessions.cookies import CookieJar
from authbridge.modules.sessions.models import SessionTokens, serialize_user
from authbridge.modules.sessions.schemas import ExchangeRequest, SyncRequest
from authbridge.modules.sessions.service import SessionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

NO_STORE = {"Cache-Control": "no-store"}


def get_session_service(
    supabase: Client = Depends(get_server_client),
    jar: CookieJar = Depends(get_cookie_jar),
) -> SessionService:
    return SessionService(supabase, jar)


@router.post("/sync")
async def sync_session(
    body: Optional[SyncRequest] = None,
    service: SessionService = Depends(get_session_service),
    jar: CookieJar = Depends(get_cookie_jar),
):
    """Mirror browser tokens into HttpOnly cookies (called on SIGNED_IN / TOKEN_REFRESHED)."""
    access_token, refresh_token = body.tokens() if body else (None, None)
    service.sync(access_token, refresh_token)
    return jar.apply(JSONResponse({"ok": True}))


@router.get("/sync")
async def sync_status(
    tokens: Optional[SessionTokens] = Depends(get_session_tokens),
    service: SessionService = Depends(get_session_service),
):
    return JSONResponse({"ok": True, "authenticated": service.is_authenticated(tokens)}, headers=NO_STORE)


@router.post("/exchange")
async def exchange_code(
    body: Optional[ExchangeRequest] = None,
    service: SessionService = Depends(get_session_service),
    jar: CookieJar = Depends(get_cookie_jar),
):
    """Exchange an auth code (magic link / OAuth callback) for a session and set cookies."""
    session, user = service.exchange_code(
        body.code if body else None,
        body.code_verifier if body else None,
    )
    return jar.apply(JSONResponse({"ok": True, "session": session.to_dict(), "user": serialize_user(user)}))


@router.get("/session")
async def session_status(
    tokens: Optional[SessionTokens] = Depends(get_session_tokens),
    context: AppContext = Depends(get_context),
):
    """Never fails towards the caller: any problem reads as signed out."""
    try:
        supabase = context.client_factory.create(ClientScope.SERVER)
        authenticated = SessionService(supabase, CookieJar(context.settings)).is_authenticated(tokens)
    except Exception as e:
        logger.warning(f"Session status check failed: {e}")
        authenticated = False
    return JSONResponse({"authenticated": authenticated}, headers=NO_STORE)


@router.post("/signout")
async def sign_out(
    tokens: Optional[SessionTokens] = Depends(get_session_tokens),
    service: SessionService = Depends(get_session_service),
    jar: CookieJar = Depends(get_cookie_jar),
):
    service.sign_out(tokens)
    return jar.apply(JSONResponse({"ok": True}))


@router.get("/me")
async def get_current_user(
    user: Any = Depends(require_api_user),
    jar: CookieJar = Depends(get_cookie_jar),
):
    """Current signed-in user; a refreshed session is written back on the same response."""
    return jar.apply(JSONResponse({"ok": True, "user": serialize_user(user)}, headers=NO_STORE))

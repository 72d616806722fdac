from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from html import escape
from typing import Any, Optional
from urllib.parse import urlencode

from supabase import Client

from authbridge.config import Settings
from authbridge.core.dependencies import get_cookie_jar, get_server_client, get_settings, require_page_user
from authbridge.core.errors import ApiError
from authbridge.modules.sessions.cookies import CookieJar
from authbridge.modules.sessions.redirects import get_validated_next
from authbridge.modules.sessions.service import SessionService

# Pages are rendered by the site frontend; this router only hosts the
# server-side gate that protected layouts share.
router = APIRouter(tags=["pages"])


@router.get("/auth/callback")
async def auth_callback(
    request: Request,
    code: Optional[str] = None,
    supabase: Client = Depends(get_server_client),
    jar: CookieJar = Depends(get_cookie_jar),
    settings: Settings = Depends(get_settings),
):
    """Magic-link landing: exchange the code, then continue to the validated ?next= path."""
    destination = get_validated_next(str(request.url), settings.default_next_path)
    try:
        SessionService(supabase, jar).exchange_code(code)
    except ApiError as e:
        query = urlencode({"error": e.code, "next": destination})
        return RedirectResponse(f"{settings.login_path}?{query}", status_code=303)
    return jar.apply(RedirectResponse(destination, status_code=303))


@router.get("/dashboard", response_class=HTMLResponse)
async def dashboard(
    user: Any = Depends(require_page_user),
    jar: CookieJar = Depends(get_cookie_jar),
):
    name = escape(user.email or user.phone or user.id or "")
    response = HTMLResponse(f"<!doctype html><title>Dashboard</title><p>Signed in as {name}</p>")
    response.headers["Cache-Control"] = "no-store"
    return jar.apply(response)

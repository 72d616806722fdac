from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from supabase import Client
from typing import Any

from authbridge.config import Settings
from authbridge.core.context import AppContext
from authbridge.core.dependencies import (
    get_admin_client,
    get_context,
    get_cookie_jar,
    get_server_client,
    get_settings,
    require_api_user,
)
from authbridge.core.errors import ApiError
from authbridge.modules.pin.schemas import PinLoginRequest, PinSetRequest
from authbridge.modules.pin.service import TrustPinService
from authbridge.modules.sessions.cookies import CookieJar


def require_trust_pin_enabled(settings: Settings = Depends(get_settings)) -> None:
    if not settings.enable_trust_pin:
        raise ApiError(404, "trust_pin_disabled", "Trust PIN feature disabled")


router = APIRouter(prefix="/pin", tags=["pin"], dependencies=[Depends(require_trust_pin_enabled)])


def get_trust_pin_service(
    context: AppContext = Depends(get_context),
    supabase: Client = Depends(get_server_client),
    jar: CookieJar = Depends(get_cookie_jar),
) -> TrustPinService:
    return TrustPinService(
        supabase,
        lambda: get_admin_client(context),
        jar,
        context.settings,
    )


@router.post("/set")
async def set_pin(
    body: PinSetRequest,
    user: Any = Depends(require_api_user),
    service: TrustPinService = Depends(get_trust_pin_service),
    jar: CookieJar = Depends(get_cookie_jar),
):
    """Set or change the trust PIN of the signed-in user"""
    service.set_pin(user, body.pin)
    return jar.apply(JSONResponse({"ok": True}))


@router.post("/login")
async def pin_login(
    body: PinLoginRequest,
    service: TrustPinService = Depends(get_trust_pin_service),
    jar: CookieJar = Depends(get_cookie_jar),
):
    """Sign in with email/phone and trust PIN"""
    service.login(body.method, body.user, body.pin)
    return jar.apply(JSONResponse({"ok": True}))

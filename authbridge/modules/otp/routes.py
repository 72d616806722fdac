from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from supabase import Client

from authbridge.core.context import AppContext
from authbridge.core.dependencies import get_context, get_cookie_jar, get_server_client
from authbridge.core.limiter import limiter, otp_ip_rate_limit
from authbridge.modules.otp.schemas import (
    EmailSendRequest,
    EmailVerifyRequest,
    PhoneSendRequest,
    PhoneVerifyRequest,
)
from authbridge.modules.otp.service import OtpService
from authbridge.modules.sessions.cookies import CookieJar
from authbridge.modules.sessions.models import serialize_user

router = APIRouter(prefix="/otp", tags=["otp"])


def get_otp_service(
    context: AppContext = Depends(get_context),
    supabase: Client = Depends(get_server_client),
    jar: CookieJar = Depends(get_cookie_jar),
) -> OtpService:
    return OtpService(supabase, context.rate_limiter, context.challenges, jar)


@router.post("/email/send")
@limiter.limit(otp_ip_rate_limit)
async def send_email_otp(
    request: Request,
    body: EmailSendRequest,
    service: OtpService = Depends(get_otp_service),
):
    """Send a 6-digit sign-in code by email"""
    service.send_email(body.email, body.redirect_to)
    return {"ok": True, "channel": "email"}


@router.post("/phone/send")
@limiter.limit(otp_ip_rate_limit)
async def send_phone_otp(
    request: Request,
    body: PhoneSendRequest,
    service: OtpService = Depends(get_otp_service),
):
    """Send a 6-digit sign-in code by SMS (Nepal mobile numbers only)"""
    service.send_phone(body.phone)
    return {"ok": True, "channel": "sms"}


@router.post("/email/verify")
async def verify_email_otp(
    body: EmailVerifyRequest,
    service: OtpService = Depends(get_otp_service),
    jar: CookieJar = Depends(get_cookie_jar),
):
    """Verify an email code; session cookies ride on this response"""
    user = service.verify_email(body.email, body.token)
    return jar.apply(JSONResponse({"ok": True, "channel": "email", "user": serialize_user(user)}))


@router.post("/phone/verify")
async def verify_phone_otp(
    body: PhoneVerifyRequest,
    service: OtpService = Depends(get_otp_service),
    jar: CookieJar = Depends(get_cookie_jar),
):
    """Verify an SMS code; session cookies ride on this response"""
    user = service.verify_phone(body.phone, body.token)
    return jar.apply(JSONResponse({"ok": True, "channel": "sms", "user": serialize_user(user)}))

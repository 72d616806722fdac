import logging

from fastapi import APIRouter, Depends

from authbridge.config import ConfigurationError
from authbridge.core.context import AppContext
from authbridge.core.dependencies import get_context, require_hook_token
from authbridge.core.errors import ApiError
from authbridge.modules.hooks.schemas import SendSmsHookRequest
from authbridge.modules.hooks.service import AakashSmsGateway, SmsHookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/hooks", tags=["hooks"], dependencies=[Depends(require_hook_token)])


def get_sms_hook_service(context: AppContext = Depends(get_context)) -> SmsHookService:
    settings = context.settings
    try:
        api_key = settings.require_aakash_api_key()
    except ConfigurationError as e:
        logger.error(str(e))
        raise ApiError(500, "server_misconfigured")
    return SmsHookService(AakashSmsGateway(context.sms_http, api_key, settings.aakash_sms_url))


@router.post("/send-sms")
async def send_sms(
    body: SendSmsHookRequest,
    service: SmsHookService = Depends(get_sms_hook_service),
):
    """Supabase Send-SMS hook: deliver the OTP through Aakash"""
    service.deliver(body)
    return {"ok": True}

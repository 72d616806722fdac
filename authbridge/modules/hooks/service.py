import logging

import httpx

from authbridge.core.errors import ApiError
from authbridge.modules.hooks.schemas import SendSmsHookRequest
from authbridge.modules.otp.identifiers import NEPAL_MOBILE, mask_identifier

logger = logging.getLogger(__name__)

OTP_MESSAGE = "Your Gatishil Nepal code is {otp}"


class AakashSmsGateway:
    """Aakash SMS v3: Bearer API key, JSON body with local (no +977) numbers."""

    def __init__(self, http: httpx.Client, api_key: str, url: str):
        self.http = http
        self.api_key = api_key
        self.url = url

    def send(self, recipient: str, text: str):
        local = recipient[len("+977"):]
        try:
            response = self.http.post(
                self.url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"to": [local], "text": text},
            )
        except httpx.HTTPError as e:
            logger.error(f"SMS gateway unreachable: {e}")
            raise ApiError(502, "sms_gateway_error", str(e) or "Failed to reach Aakash")
        if response.is_error:
            logger.error(f"SMS gateway rejected message to {mask_identifier(recipient)}: {response.status_code}")
            raise ApiError(502, "sms_gateway_error", f"Aakash error {response.status_code}: {response.text[:200]}")


class SmsHookService:
    def __init__(self, gateway: AakashSmsGateway):
        self.gateway = gateway

    def deliver(self, payload: SendSmsHookRequest):
        recipient = (payload.user.phone if payload.user else None) or payload.recipient or ""
        otp = payload.sms.otp if payload.sms else None
        message = payload.message or (OTP_MESSAGE.format(otp=otp) if otp else "")

        if not recipient:
            raise ApiError(400, "missing_recipient", "Missing recipient (user.phone)")
        if not message:
            raise ApiError(400, "missing_message", "Missing message (sms.otp)")
        # Same mobile range the OTP send route accepts
        if not NEPAL_MOBILE.match(recipient):
            raise ApiError(400, "invalid_phone", "Recipient must be +977 and a 96/97/98 mobile number")

        self.gateway.send(recipient, message)
        logger.info(f"OTP SMS handed to gateway for {mask_identifier(recipient)}")

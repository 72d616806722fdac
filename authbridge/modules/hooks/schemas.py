from pydantic import BaseModel
from typing import Optional


class HookUser(BaseModel):
    phone: Optional[str] = None


class HookSms(BaseModel):
    otp: Optional[str] = None


class SendSmsHookRequest(BaseModel):
    """Supabase Send-SMS hook payload; ``recipient``/``message`` is the older hand-rolled shape."""
    user: Optional[HookUser] = None
    sms: Optional[HookSms] = None
    recipient: Optional[str] = None
    message: Optional[str] = None

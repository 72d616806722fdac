from dataclasses import dataclass, field
from typing import Optional

import httpx

from authbridge.config import Settings, settings as default_settings
from authbridge.core.rate_limit import OtpRateLimiter
from authbridge.database.supabase_client import SupabaseClientFactory
from authbridge.modules.otp.models import OtpChallengeRegistry


@dataclass
class AppContext:
    """Application-scoped services handed to request handlers via app.state."""
    settings: Settings
    client_factory: SupabaseClientFactory
    rate_limiter: OtpRateLimiter
    challenges: OtpChallengeRegistry = field(default_factory=OtpChallengeRegistry)
    sms_http: httpx.Client = field(default_factory=httpx.Client)

    @classmethod
    def build(
        cls,
        settings: Optional[Settings] = None,
        client_factory: Optional[SupabaseClientFactory] = None,
    ) -> "AppContext":
        settings = settings or default_settings
        return cls(
            settings=settings,
            client_factory=client_factory or SupabaseClientFactory(settings),
            rate_limiter=OtpRateLimiter(max_sends=settings.otp_max_sends, window_ms=settings.otp_window_ms),
            challenges=OtpChallengeRegistry(max_attempts=settings.otp_max_attempts),
            sms_http=httpx.Client(timeout=settings.sms_gateway_timeout),
        )

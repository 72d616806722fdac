from slowapi import Limiter
from slowapi.util import get_remote_address

from authbridge.config import Settings, settings

# Route decorators bind to this instance at import time; create_app() points
# its limits and enabled flag at the app's own settings.
_limits = {"otp_ip": settings.otp_ip_rate_limit}

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.rate_limit],
    enabled=settings.rate_limit_enabled,
)


def configure_limiter(app_settings: Settings) -> Limiter:
    limiter.enabled = app_settings.rate_limit_enabled
    _limits["otp_ip"] = app_settings.otp_ip_rate_limit
    return limiter


def otp_ip_rate_limit() -> str:
    """Per-IP limit for OTP send routes, read on every request."""
    return _limits["otp_ip"]

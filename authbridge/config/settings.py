from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class ConfigurationError(RuntimeError):
    """Raised when a required server secret or setting is missing."""


MIN_PEPPER_LENGTH = 16


class Settings(BaseSettings):
    # Supabase (env names shared with the site frontend)
    supabase_url: str = Field(
        default="",
        validation_alias=AliasChoices("NEXT_PUBLIC_SUPABASE_URL", "SUPABASE_URL", "supabase_url"),
    )
    supabase_anon_key: str = Field(
        default="",
        validation_alias=AliasChoices("NEXT_PUBLIC_SUPABASE_ANON_KEY", "SUPABASE_KEY", "supabase_anon_key"),
    )
    supabase_service_role_key: Optional[str] = Field(
        default=None,  # Required for admin operations (PIN resync, password updates)
        validation_alias=AliasChoices(
            "SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_SERVICE_ROLE", "supabase_service_role_key"
        ),
    )

    # PIN credentials
    pin_pepper: str = Field(default="", validation_alias=AliasChoices("PIN_PEPPER", "pin_pepper"))
    pin_pepper_prev: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("PIN_PEPPER_PREV", "pin_pepper_prev")
    )
    enable_trust_pin: bool = Field(
        default=False,
        validation_alias=AliasChoices("NEXT_PUBLIC_ENABLE_TRUST_PIN", "enable_trust_pin"),
    )
    x_admin_secret: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("X_ADMIN_SECRET", "x_admin_secret")
    )

    # Supabase Send-SMS hook and the Aakash gateway behind it
    supabase_sms_hook_token: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("SUPABASE_SMS_HOOK_TOKEN", "supabase_sms_hook_token")
    )
    aakash_sms_api_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("AAKASH_SMS_API_KEY", "aakash_sms_api_key")
    )
    aakash_sms_url: str = "https://sms.aakashsms.com/sms/v3/send"
    sms_gateway_timeout: float = 10.0

    # Session cookies
    cookie_secure: bool = True
    cookie_domain: Optional[str] = None
    cookie_max_age: int = 60 * 60 * 24 * 400  # same lifetime the site's SSR helper uses

    # OTP
    otp_max_sends: int = 5
    otp_window_ms: int = 10 * 60 * 1000
    otp_max_attempts: int = 5
    otp_ip_rate_limit: str = "20/minute"  # slowapi format, per client IP

    # Session guard
    login_path: str = "/login"
    default_next_path: str = "/dashboard"

    # App
    app_name: str = "authbridge"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"
    rate_limit_enabled: bool = True

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def pepper_configured(self) -> bool:
        return len(self.pin_pepper or "") >= MIN_PEPPER_LENGTH

    def validate_server_secrets(self) -> None:
        """Fail fast when the secrets every request path depends on are absent."""
        missing = []
        if not self.supabase_url.strip():
            missing.append("NEXT_PUBLIC_SUPABASE_URL")
        if not self.supabase_anon_key.strip():
            missing.append("NEXT_PUBLIC_SUPABASE_ANON_KEY")
        if not self.pepper_configured():
            missing.append(f"PIN_PEPPER (at least {MIN_PEPPER_LENGTH} characters)")
        if missing:
            raise ConfigurationError(f"[env] Missing server env: {', '.join(missing)}")

    def require_service_role_key(self) -> str:
        if not self.supabase_service_role_key:
            raise ConfigurationError(
                "[env] Missing server env: SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_SERVICE_ROLE)"
            )
        return self.supabase_service_role_key

    def require_admin_secret(self) -> str:
        if not self.x_admin_secret:
            raise ConfigurationError("[env] Missing server env: X_ADMIN_SECRET")
        return self.x_admin_secret

    def require_sms_hook_token(self) -> str:
        if not self.supabase_sms_hook_token:
            raise ConfigurationError("[env] Missing server env: SUPABASE_SMS_HOOK_TOKEN")
        return self.supabase_sms_hook_token

    def require_aakash_api_key(self) -> str:
        if not self.aakash_sms_api_key:
            raise ConfigurationError("[env] Missing server env: AAKASH_SMS_API_KEY")
        return self.aakash_sms_api_key

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore",
        populate_by_name=True,
    )


settings = Settings()

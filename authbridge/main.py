import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from authbridge.config import Settings, settings as default_settings
from authbridge.core.context import AppContext
from authbridge.core.errors import ApiError, LoginRequired
from authbridge.core.limiter import configure_limiter, limiter
from authbridge.database.supabase_client import SupabaseClientFactory
from authbridge.modules.admin import routes as admin_routes
from authbridge.modules.hooks import routes as hooks_routes
from authbridge.modules.otp import routes as otp_routes
from authbridge.modules.pages import routes as pages_routes
from authbridge.modules.pin import routes as pin_routes
from authbridge.modules.sessions import routes as sessions_routes
from authbridge.modules.sessions.cookies import CookieJar

logging.basicConfig(
    level=getattr(logging, default_settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                message["headers"].extend([
                    (b"X-Content-Type-Options", b"nosniff"),
                    (b"X-Frame-Options", b"DENY"),
                    (b"Referrer-Policy", b"strict-origin-when-cross-origin"),
                ])
            await send(message)

        await self.app(scope, receive, send_with_headers)


def create_app(
    settings: Optional[Settings] = None,
    client_factory: Optional[SupabaseClientFactory] = None,
) -> FastAPI:
    settings = settings or default_settings
    # Missing Supabase credentials or PIN_PEPPER stop the process here, not on the first request
    settings.validate_server_secrets()

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        redirect_slashes=False,
    )
    app.state.context = AppContext.build(settings, client_factory)
    app.state.limiter = configure_limiter(settings)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    def _clear_session_cookies(response):
        jar = CookieJar(settings)
        jar.clear_session(include_legacy=True)
        jar.apply(response)

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        response = JSONResponse(status_code=exc.status_code, content=exc.to_body())
        if getattr(exc, "clear_cookies", False):
            _clear_session_cookies(response)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.debug(f"Rejected request body on {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=400, content={"ok": False, "error": "bad_request"})

    @app.exception_handler(LoginRequired)
    async def login_required_handler(request: Request, exc: LoginRequired):
        response = RedirectResponse(exc.location, status_code=303)
        if exc.clear_cookies:
            _clear_session_cookies(response)
        return response

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception: %s", exc)
        if settings.is_production:
            return JSONResponse(status_code=500, content={"ok": False, "error": "server_error"})
        return JSONResponse(status_code=500, content={"ok": False, "error": "server_error", "detail": str(exc)})

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include module routes
    app.include_router(sessions_routes.router, prefix="/api")
    app.include_router(otp_routes.router, prefix="/api")
    app.include_router(pin_routes.router, prefix="/api")
    app.include_router(admin_routes.router, prefix="/api")
    app.include_router(hooks_routes.router, prefix="/api")
    app.include_router(pages_routes.router)

    @app.on_event("startup")
    async def startup_event():
        logger.info(f"Application startup ({settings.environment})")

    @app.on_event("shutdown")
    async def shutdown_event():
        app.state.context.sms_http.close()
        logger.info("Application shutdown")

    @app.get("/health")
    @limiter.exempt
    async def health():
        return {"status": "healthy"}

    @app.get("/ready")
    @limiter.exempt
    async def ready():
        """Readiness check: reports which settings are present, never their values."""
        return {
            "status": "ready",
            "supabase_url": bool(settings.supabase_url),
            "anon_key": bool(settings.supabase_anon_key),
            "service_role_key": bool(settings.supabase_service_role_key),
            "admin_secret": bool(settings.x_admin_secret),
            "trust_pin": settings.enable_trust_pin,
        }

    return app

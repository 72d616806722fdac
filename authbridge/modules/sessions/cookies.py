"""
Session cookie layout and the per-request cookie jar.

Reading accepts the historical formats in a fixed order: the discrete
sb-access-token/sb-refresh-token pair, then the legacy JSON cookie. Writing
always goes through CookieJar so that every Set-Cookie produced while
handling a request lands on one response.
"""

import json
import logging
from typing import List, Mapping, Optional, Tuple
from urllib.parse import unquote

from starlette.responses import Response

from authbridge.config import Settings
from authbridge.modules.sessions.models import Session, SessionTokens

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "sb-access-token"
REFRESH_COOKIE = "sb-refresh-token"
LEGACY_COOKIE = "supabase-auth-token"


def _parse_legacy_cookie(raw: str) -> Optional[SessionTokens]:
    value = raw.strip()
    if value.startswith("%7B") or value.startswith("%7b"):
        value = unquote(value)
    try:
        parsed = json.loads(value)
    except ValueError:
        logger.debug("Ignoring malformed legacy auth cookie")
        return None
    if not isinstance(parsed, dict) or not isinstance(parsed.get("access_token"), str):
        return None
    refresh = parsed.get("refresh_token")
    return SessionTokens(
        access_token=parsed["access_token"],
        refresh_token=refresh if isinstance(refresh, str) else None,
        source="legacy",
    )


def read_session_tokens(cookies: Mapping[str, str]) -> Optional[SessionTokens]:
    """Discrete cookies always win over the legacy JSON cookie, even when both are present."""
    access = cookies.get(ACCESS_COOKIE) or None
    refresh = cookies.get(REFRESH_COOKIE) or None
    if access or refresh:
        return SessionTokens(access_token=access, refresh_token=refresh, source="cookies")
    legacy = cookies.get(LEGACY_COOKIE)
    if legacy:
        return _parse_legacy_cookie(legacy)
    return None


class CookieJar:
    """Pending cookie mutations for one request, applied to exactly one response."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._pending: List[Tuple[str, Optional[str]]] = []
        self._applied = False

    def __len__(self) -> int:
        return len(self._pending)

    def set(self, name: str, value: str):
        self._pending.append((name, value))

    def delete(self, name: str):
        self._pending.append((name, None))

    def set_session(self, session: Session):
        self.set(ACCESS_COOKIE, session.access_token)
        if session.refresh_token:
            self.set(REFRESH_COOKIE, session.refresh_token)

    def clear_session(self, include_legacy: bool = True):
        self.delete(ACCESS_COOKIE)
        self.delete(REFRESH_COOKIE)
        if include_legacy:
            self.delete(LEGACY_COOKIE)

    def apply(self, response: Response) -> Response:
        if self._applied:
            raise RuntimeError("Session cookies were already written to a response")
        self._applied = True
        for name, value in self._pending:
            if value is None:
                response.delete_cookie(
                    name,
                    path="/",
                    domain=self.settings.cookie_domain,
                    secure=self.settings.cookie_secure,
                    httponly=True,
                    samesite="lax",
                )
            else:
                response.set_cookie(
                    name,
                    value,
                    max_age=self.settings.cookie_max_age,
                    path="/",
                    domain=self.settings.cookie_domain,
                    secure=self.settings.cookie_secure,
                    httponly=True,
                    samesite="lax",
                )
        return response

# Sessions
# The browser runtime owns the Supabase session; the server only mirrors it
# through cookies. Nothing here is persisted in our own tables:
# - sb-access-token / sb-refresh-token: current HttpOnly cookie pair
# - supabase-auth-token: legacy single JSON cookie, read-only compatibility

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class Session:
    access_token: str
    refresh_token: Optional[str]
    expires_at: Optional[int]
    user_id: Optional[str]

    @classmethod
    def from_provider(cls, session: Any, user: Any = None) -> "Session":
        """Build from a GoTrue session object (user falls back to session.user)."""
        user = user or getattr(session, "user", None)
        expires_at = getattr(session, "expires_at", None)
        if expires_at is None and getattr(session, "expires_in", None):
            expires_at = int(time.time()) + int(session.expires_in)
        return cls(
            access_token=session.access_token,
            refresh_token=getattr(session, "refresh_token", None),
            expires_at=expires_at,
            user_id=getattr(user, "id", None),
        )

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return (time.time() if now is None else now) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "user_id": self.user_id,
        }


@dataclass
class SessionTokens:
    """Tokens the server read from request cookies."""
    access_token: Optional[str]
    refresh_token: Optional[str]
    source: str  # "cookies" | "legacy"


def serialize_user(user: Any) -> Optional[Dict[str, Any]]:
    """Public view of a GoTrue user; metadata stays server-side."""
    if user is None:
        return None
    return {
        "id": getattr(user, "id", None),
        "email": getattr(user, "email", None),
        "phone": getattr(user, "phone", None),
    }


def looks_like_jwt(token: Optional[str]) -> bool:
    """Three non-empty dot-separated segments; the provider client indexes into them unchecked."""
    if not token:
        return False
    parts = token.split(".")
    return len(parts) == 3 and all(parts)

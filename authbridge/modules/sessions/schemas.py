from pydantic import BaseModel
from typing import Optional, Tuple


class SyncSessionPayload(BaseModel):
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None


class SyncRequest(BaseModel):
    """Either {access_token, refresh_token} or the auth-helper shape {event, session: {...}}."""
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    event: Optional[str] = None
    session: Optional[SyncSessionPayload] = None

    def tokens(self) -> Tuple[Optional[str], Optional[str]]:
        if self.session and (self.session.access_token or self.session.refresh_token):
            return self.session.access_token or None, self.session.refresh_token or None
        return self.access_token or None, self.refresh_token or None


class ExchangeRequest(BaseModel):
    code: Optional[str] = None
    code_verifier: Optional[str] = None

"""
Browser-side session handling.

A ClientRuntime plays the role of one browser tab: it owns exactly one
persisted, auto-refreshing Supabase client and one ClientSessionManager that
mirrors SIGNED_IN / TOKEN_REFRESHED events into server cookies through
POST /api/auth/sync.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

import httpx
from supabase import Client

from authbridge.database.supabase_client import ClientScope, SupabaseClientFactory
from authbridge.modules.sessions.models import Session

logger = logging.getLogger(__name__)

SYNC_PATH = "/api/auth/sync"
SYNC_EVENTS = ("SIGNED_IN", "TOKEN_REFRESHED")


class ClientSessionManager:
    def __init__(self, supabase: Client, http: httpx.Client, sync_path: str = SYNC_PATH):
        self.supabase = supabase
        self.http = http
        self.sync_path = sync_path
        self._is_syncing = False
        self._flag_lock = threading.Lock()
        self._subscription = supabase.auth.on_auth_state_change(self._on_auth_state_change)

    @property
    def is_syncing(self) -> bool:
        return self._is_syncing

    def current_session(self) -> Optional[Session]:
        """Current unexpired session, or None."""
        provider_session = self.supabase.auth.get_session()
        if not provider_session or not provider_session.access_token:
            return None
        session = Session.from_provider(provider_session)
        if session.is_expired():
            return None
        return session

    def _on_auth_state_change(self, event: Any, session: Any):
        name = getattr(event, "value", event)
        if name in SYNC_EVENTS:
            self.sync_session_cookies(session)

    def sync_session_cookies(self, session: Any) -> bool:
        """
        Post the token pair to the cookie-writing endpoint.

        An attempt made while another is in flight is dropped, not queued; the
        next auth event carries fresh tokens anyway. Network failures are
        swallowed for the same reason.
        """
        access_token = getattr(session, "access_token", None)
        refresh_token = getattr(session, "refresh_token", None)
        if not access_token or not refresh_token:
            return False

        with self._flag_lock:
            if self._is_syncing:
                logger.debug("Cookie sync already in flight; dropping this one")
                return False
            self._is_syncing = True
        try:
            response = self.http.post(
                self.sync_path,
                json={"access_token": access_token, "refresh_token": refresh_token},
            )
            return response.is_success
        except httpx.HTTPError as e:
            logger.debug(f"Cookie sync failed, will retry on next auth event: {e}")
            return False
        finally:
            with self._flag_lock:
                self._is_syncing = False

    def close(self):
        unsubscribe = getattr(self._subscription, "unsubscribe", None)
        if unsubscribe:
            unsubscribe()


class ClientRuntime:
    """Explicit owner of the per-tab singletons; build one per tab (or per test)."""

    def __init__(
        self,
        client_factory: SupabaseClientFactory,
        base_url: str,
        http: Optional[httpx.Client] = None,
    ):
        self.client_factory = client_factory
        self.http = http or httpx.Client(base_url=base_url)
        self._manager: Optional[ClientSessionManager] = None
        self._lock = threading.Lock()

    @property
    def manager(self) -> ClientSessionManager:
        if self._manager is None:
            with self._lock:
                if self._manager is None:
                    supabase = self.client_factory.create(ClientScope.BROWSER)
                    self._manager = ClientSessionManager(supabase, self.http)
        return self._manager

    def get_or_create_client_session(self) -> Optional[Session]:
        return self.manager.current_session()

    def close(self):
        if self._manager is not None:
            self._manager.close()
        self.http.close()


def wait_for_session(
    supabase: Client,
    tries: int = 20,
    delay: float = 0.25,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[Dict[str, Optional[str]]]:
    """
    Poll for a session right after OTP / magic-link sign-in.

    Gives up after ``tries`` attempts (about five seconds by default) and
    returns None, which means "no session yet" rather than an error.
    """
    for attempt in range(tries):
        session = supabase.auth.get_session()
        if session and session.access_token:
            return {
                "access_token": session.access_token,
                "refresh_token": session.refresh_token or None,
            }
        if attempt < tries - 1:
            sleep(delay)
    return None

from enum import Enum
from typing import Optional

from supabase import create_client, Client, ClientOptions

from authbridge.config import Settings, settings as default_settings


class ClientScope(str, Enum):
    """Capability scope of a Supabase client."""
    BROWSER = "browser"  # anon key, persisted + auto-refreshing session (one per runtime)
    SERVER = "server"    # anon key, no persistence, fresh per request
    ADMIN = "admin"      # service role key, bypasses RLS; server-only


class SupabaseClientFactory:
    """Single entry point for every Supabase client the app builds."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self._admin_client: Optional[Client] = None

    def create(self, scope: ClientScope) -> Client:
        if scope == ClientScope.ADMIN:
            return self._get_admin_client()
        if scope == ClientScope.BROWSER:
            options = ClientOptions(persist_session=True, auto_refresh_token=True)
        else:
            options = ClientOptions(persist_session=False, auto_refresh_token=False)
        return create_client(self.settings.supabase_url, self.settings.supabase_anon_key, options=options)

    def _get_admin_client(self) -> Client:
        """Client with service_role key. Raises ConfigurationError when the key is absent."""
        if self._admin_client is None:
            service_role_key = self.settings.require_service_role_key()
            self._admin_client = create_client(
                self.settings.supabase_url,
                service_role_key,
                options=ClientOptions(persist_session=False, auto_refresh_token=False),
            )
        return self._admin_client

    def reset(self):
        self._admin_client = None


def row_or_none(result) -> Optional[dict]:
    """Data of a maybe_single() query; newer postgrest returns None instead of an empty response."""
    if result is None:
        return None
    return result.data or None

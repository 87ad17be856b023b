"""
Authenticated session providers.

Persistence reads the owner of a new receipt from here; it is never taken
from the request body.
"""

import logging
from typing import Optional, Protocol

from supabase import Client

logger = logging.getLogger(__name__)


class SessionProvider(Protocol):
    def current_user_id(self) -> Optional[str]:
        """Id of the signed-in user, or None when there is no session."""
        ...


class StaticSessionProvider:
    """Fixed user id (scripts, tests). ``None`` means signed out."""

    def __init__(self, user_id: Optional[str]):
        self.user_id = user_id

    def current_user_id(self) -> Optional[str]:
        return self.user_id


class SupabaseSessionProvider:
    """Resolves the user behind a Supabase access token (JWT)."""

    def __init__(self, client: Client, access_token: Optional[str]):
        self.client = client
        self.access_token = access_token
        self._user_id: Optional[str] = None
        self._resolved = False

    def current_user_id(self) -> Optional[str]:
        if self._resolved:
            return self._user_id

        self._resolved = True
        if not self.access_token:
            return None

        try:
            response = self.client.auth.get_user(self.access_token)
        except Exception as e:
            logger.warning("Could not resolve session user", extra={"error": str(e)})
            return None

        user = getattr(response, 'user', None) if response else None
        self._user_id = getattr(user, 'id', None)
        return self._user_id

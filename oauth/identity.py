"""End-user identity for the consent surface.

The consent UI signs users in with Supabase Auth and calls /oauth/callback
with the user's access token. This module resolves that token to a user id.
"""

import logging
from typing import Optional

import httpx
from supabase_auth.errors import AuthError

from oauth.errors import StoreError

logger = logging.getLogger(__name__)


class SupabaseIdentityProvider:
    """Resolves Supabase Auth access tokens to user ids."""

    def __init__(self, supabase_client):
        self.supabase = supabase_client

    async def resolve_user(self, access_token: str) -> Optional[str]:
        if not access_token:
            return None
        try:
            response = await self.supabase.auth.get_user(access_token)
        except AuthError as e:
            logger.info(f"[AUTH] Rejected user token: {e}")
            return None
        except httpx.HTTPError as e:
            raise StoreError("identity lookup failed") from e
        if response and response.user:
            return response.user.id
        return None


class StaticIdentityProvider:
    """Maps fixed tokens to user ids (single-process mode and tests)."""

    def __init__(self, users: dict[str, str] = None):
        self.users = users or {}

    async def resolve_user(self, access_token: str) -> Optional[str]:
        return self.users.get(access_token)

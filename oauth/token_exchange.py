"""Authorization-code exchange for the token endpoint (OAuth 2.1 + PKCE)."""

import logging
from typing import Callable, Optional

from oauth.authorization import is_text
from oauth.credentials import token_preview
from oauth.errors import Result, invalid_grant, invalid_request, unsupported_grant_type
from oauth.models import utcnow
from oauth.pkce import verify_pkce

logger = logging.getLogger(__name__)

# Nominal lifetime advertised to clients; real expiry follows the agent TTL
TOKEN_EXPIRES_IN = 31536000


class TokenExchange:
    def __init__(self, store, clock: Callable = utcnow):
        self.store = store
        self.clock = clock

    async def exchange(
        self,
        grant_type: Optional[str],
        code: Optional[str],
        redirect_uri: Optional[str],
        client_id: Optional[str],
        code_verifier: Optional[str],
    ) -> Result[dict]:
        """Exchange an authorization code for the agent's bearer token.

        A code that is replayed or expired is deleted before the error is
        returned. Client or redirect mismatches leave the code in place.
        """
        if grant_type != "authorization_code":
            return unsupported_grant_type("Only authorization_code grant type is supported")

        # Values from JSON bodies may be any type; only non-empty strings count
        if not all(is_text(value) for value in (code, redirect_uri, client_id, code_verifier)):
            return invalid_request("Missing required parameters")

        record = await self.store.get_code(code)
        if record is None:
            logger.info(f"[TOKEN] Unknown authorization code: {token_preview(code)}")
            return invalid_grant("Invalid or expired authorization code")

        if record.used:
            await self.store.delete_code(code)
            logger.warning(f"[TOKEN] Replayed authorization code for client {record.client_id}")
            return invalid_grant("Authorization code has already been used")

        if self.clock() > record.expires_at:
            await self.store.delete_code(code)
            logger.info(f"[TOKEN] Expired authorization code for client {record.client_id}")
            return invalid_grant("Authorization code has expired")

        if record.client_id != client_id:
            return invalid_grant("Client ID mismatch")

        if record.redirect_uri != redirect_uri:
            return invalid_grant("Redirect URI mismatch")

        if not verify_pkce(code_verifier, record.code_challenge):
            logger.info(f"[TOKEN] PKCE verification failed for client {client_id}")
            return invalid_grant("PKCE verification failed")

        if not await self.store.mark_code_used(code):
            # Another exchange consumed the code between our read and write
            await self.store.delete_code(code)
            logger.warning(f"[TOKEN] Concurrent exchange lost for client {client_id}")
            return invalid_grant("Authorization code has already been used")

        logger.info(f"[TOKEN] Bearer token issued for agent {record.agent_id}")
        return {
            "access_token": record.bearer_token,
            "token_type": "Bearer",
            "expires_in": TOKEN_EXPIRES_IN,
            "scope": record.scope,
        }

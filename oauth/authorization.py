"""Authorization endpoint validation and post-consent code issuance."""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional
from urllib.parse import urlencode

from oauth.credentials import generate_authorization_code
from oauth.errors import (
    OAuthError,
    Result,
    invalid_argument,
    invalid_request,
    is_error,
    unauthenticated,
)
from oauth.models import DEFAULT_SCOPE, AuthorizationCode, utcnow
from oauth.pkce import S256

logger = logging.getLogger(__name__)

AUTH_CODE_TTL = timedelta(minutes=10)

AUTHORIZE_PARAMS = (
    "client_id",
    "redirect_uri",
    "response_type",
    "scope",
    "state",
    "code_challenge",
    "code_challenge_method",
)


def is_text(value) -> bool:
    """True for a non-empty string."""
    return isinstance(value, str) and bool(value)


def validate_authorization_request(
    client_id: Optional[str],
    redirect_uri: Optional[str],
    response_type: Optional[str],
    code_challenge: Optional[str],
    code_challenge_method: Optional[str],
) -> Optional[OAuthError]:
    """Return an error if the /authorize parameters cannot start a flow."""
    if not client_id or not redirect_uri or response_type != "code":
        return invalid_request("Missing or invalid OAuth parameters")
    if not code_challenge or code_challenge_method != S256:
        return invalid_request("PKCE with code_challenge_method=S256 is required")
    return None


def consent_redirect_url(consent_url: str, params: dict) -> str:
    """Build the consent surface URL carrying the original /authorize parameters."""
    query = {key: params[key] for key in AUTHORIZE_PARAMS if params.get(key)}
    separator = "&" if "?" in consent_url else "?"
    return f"{consent_url}{separator}{urlencode(query)}"


@dataclass
class AuthorizationGrant:
    authorization_code: str
    redirect_uri: str
    state: Optional[str] = None

    def redirect_to(self) -> str:
        params = {"code": self.authorization_code}
        if self.state:
            params["state"] = self.state
        separator = "&" if "?" in self.redirect_uri else "?"
        return f"{self.redirect_uri}{separator}{urlencode(params)}"

    def to_dict(self) -> dict:
        return {
            "authorizationCode": self.authorization_code,
            "redirectUri": self.redirect_uri,
            "state": self.state,
            "redirectTo": self.redirect_to(),
        }


class AuthorizationService:
    def __init__(self, store, agents, clock: Callable = utcnow):
        self.store = store
        self.agents = agents
        self.clock = clock

    async def complete_authorization(
        self,
        user_id: Optional[str],
        client_id: str,
        redirect_uri: str,
        code_challenge: Optional[str],
        code_challenge_method: Optional[str],
        scope: Optional[str] = None,
        state: Optional[str] = None,
        agent_name: Optional[str] = None,
        existing_agent_id: Optional[str] = None,
    ) -> Result[AuthorizationGrant]:
        """Issue an authorization code after the user consented.

        Reuses existing_agent_id when given, otherwise mints a new agent. The
        agent's bearer token is copied into the code so the token endpoint
        needs a single lookup.
        """
        if not user_id:
            return unauthenticated("User must be authenticated to authorize OAuth")
        if not is_text(client_id) or not is_text(redirect_uri):
            return invalid_argument("clientId and redirectUri are required")
        if code_challenge_method != S256:
            return invalid_argument("Only S256 code_challenge_method is supported")
        if not is_text(code_challenge):
            return invalid_argument("code_challenge is required")
        optional = (scope, state, agent_name, existing_agent_id)
        if any(value is not None and not isinstance(value, str) for value in optional):
            return invalid_argument("scope, state, agentName and existingAgentId must be strings")

        if existing_agent_id:
            agent = await self.agents.reuse_agent(existing_agent_id, user_id)
            if is_error(agent):
                return agent
        else:
            agent = await self.agents.create_agent(
                user_id=user_id,
                name=agent_name or f"{client_id} Agent",
                client_id=client_id,
            )

        now = self.clock()
        code = AuthorizationCode(
            code=generate_authorization_code(),
            user_id=user_id,
            agent_id=agent.agent_id,
            bearer_token=agent.bearer_token,
            client_id=client_id,
            redirect_uri=redirect_uri,
            scope=scope or DEFAULT_SCOPE,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
            created_at=now,
            expires_at=now + AUTH_CODE_TTL,
        )
        await self.store.save_code(code)
        logger.info(f"[AUTHORIZE] Code issued for client {client_id}, agent {agent.agent_id}")

        return AuthorizationGrant(authorization_code=code.code, redirect_uri=redirect_uri, state=state)

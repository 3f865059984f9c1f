"""Agent credentials: creation, bearer-token validation and revocation.

An agent owns exactly one opaque bearer token. Tokens stay valid for
AGENT_TTL after the agent was created; expiry is checked on every read and
never deletes the record. Revocation deletes the record, which takes effect
on the next lookup since nothing is cached.
"""

import logging
import uuid
from datetime import timedelta
from typing import Callable, Optional

from oauth.credentials import generate_bearer_token, token_preview
from oauth.errors import (
    Result,
    StoreError,
    invalid_request,
    invalid_token,
    not_found,
    permission_denied,
    temporarily_unavailable,
)
from oauth.models import Agent, AgentContext, utcnow

logger = logging.getLogger(__name__)

AGENT_TTL = timedelta(days=90)


class AgentService:
    def __init__(self, store, clock: Callable = utcnow):
        self.store = store
        self.clock = clock

    async def create_agent(self, user_id: str, name: str, client_id: Optional[str] = None) -> Agent:
        now = self.clock()
        agent = Agent(
            agent_id=uuid.uuid4().hex,
            user_id=user_id,
            name=name,
            bearer_token=generate_bearer_token(),
            client_id=client_id,
            created_at=now,
            last_used_at=now,
        )
        await self.store.create_agent(agent)
        logger.info(f"[AGENT] Created agent {agent.agent_id} for user {user_id}")
        return agent

    async def reuse_agent(self, agent_id: str, user_id: str) -> Result[Agent]:
        """Load an existing agent owned by user_id and mark it used."""
        agent = await self.store.get_agent(agent_id)
        if agent is None:
            return not_found("Specified agent not found")
        if agent.user_id != user_id:
            logger.warning(f"[AGENT] User {user_id} tried to reuse agent {agent_id} owned by another user")
            return permission_denied("You do not have permission to use this agent")

        agent.last_used_at = self.clock()
        await self.store.touch_agent(agent.agent_id, agent.last_used_at)
        return agent

    async def validate(self, bearer_token: str) -> Result[AgentContext]:
        """Resolve a bearer token to the agent it belongs to."""
        if not bearer_token:
            return invalid_token("Missing bearer token")

        agent = await self.store.find_agent_by_token(bearer_token)
        if agent is None:
            logger.info(f"[AUTH] Unknown bearer token: {token_preview(bearer_token)}")
            return invalid_token("Invalid bearer token")

        if not agent.user_id or not agent.name:
            logger.error(f"[AUTH] Agent record {agent.agent_id} is missing user_id or name")
            return invalid_token("Invalid agent record")

        now = self.clock()
        if agent.created_at and now - agent.created_at > AGENT_TTL:
            logger.info(f"[AUTH] Bearer token expired for agent {agent.agent_id}")
            return invalid_token("Bearer token expired, re-authorize to obtain a new one")

        try:
            await self.store.touch_agent(agent.agent_id, now)
        except StoreError:
            logger.warning(f"[AUTH] Could not update last_used_at for agent {agent.agent_id}")

        return AgentContext(agent_id=agent.agent_id, user_id=agent.user_id, name=agent.name)

    async def revoke(self, token: Optional[str]) -> Result[None]:
        """Revoke a bearer token (RFC 7009).

        Unknown tokens succeed so the response does not reveal whether a token
        existed. Backend failures are reported as retryable.
        """
        if not isinstance(token, str) or not token:
            return invalid_request("Missing token parameter")

        try:
            agent = await self.store.find_agent_by_token(token)
            if agent is None:
                logger.info(f"[REVOKE] Token not found for revocation: {token_preview(token)}")
                return None
            await self.store.delete_agent(agent.agent_id)
        except StoreError:
            logger.exception("[REVOKE] Token revocation failed")
            return temporarily_unavailable()

        logger.info(f"[REVOKE] Token revoked for agent: {agent.agent_id}")
        return None

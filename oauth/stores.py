"""Stores for OAuth clients, agents and authorization codes.

OAuthStore is the interface the services depend on. MemoryOAuthStore keeps
records in process (tests and single-process mode); SupabaseOAuthStore
persists them in the oauth_clients, agents and oauth_codes tables.
"""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

import httpx
from postgrest.exceptions import APIError

from oauth.errors import StoreError
from oauth.models import Agent, AuthorizationCode, Client, to_iso

logger = logging.getLogger(__name__)

CLIENTS_TABLE = "oauth_clients"
AGENTS_TABLE = "agents"
CODES_TABLE = "oauth_codes"


class OAuthStore(ABC):
    """Persistence for the authorization-code flow."""

    @abstractmethod
    async def save_client(self, client: Client) -> None: ...

    @abstractmethod
    async def get_client(self, client_id: str) -> Optional[Client]: ...

    @abstractmethod
    async def create_agent(self, agent: Agent) -> None: ...

    @abstractmethod
    async def get_agent(self, agent_id: str) -> Optional[Agent]: ...

    @abstractmethod
    async def find_agent_by_token(self, bearer_token: str) -> Optional[Agent]: ...

    @abstractmethod
    async def touch_agent(self, agent_id: str, when: datetime) -> None:
        """Set last_used_at on an agent."""

    @abstractmethod
    async def delete_agent(self, agent_id: str) -> None: ...

    @abstractmethod
    async def save_code(self, code: AuthorizationCode) -> None: ...

    @abstractmethod
    async def get_code(self, code: str) -> Optional[AuthorizationCode]: ...

    @abstractmethod
    async def mark_code_used(self, code: str) -> bool:
        """Atomically flip used from False to True.

        Returns False if the code is missing or was already used.
        """

    @abstractmethod
    async def delete_code(self, code: str) -> None: ...


class MemoryOAuthStore(OAuthStore):
    """In-process store. Records are copied on the way in and out."""

    def __init__(self):
        self.clients: dict[str, Client] = {}
        self.agents: dict[str, Agent] = {}
        self.codes: dict[str, AuthorizationCode] = {}

    async def save_client(self, client: Client) -> None:
        self.clients[client.client_id] = copy.deepcopy(client)

    async def get_client(self, client_id: str) -> Optional[Client]:
        client = self.clients.get(client_id)
        return copy.deepcopy(client) if client else None

    async def create_agent(self, agent: Agent) -> None:
        self.agents[agent.agent_id] = copy.deepcopy(agent)

    async def get_agent(self, agent_id: str) -> Optional[Agent]:
        agent = self.agents.get(agent_id)
        return copy.deepcopy(agent) if agent else None

    async def find_agent_by_token(self, bearer_token: str) -> Optional[Agent]:
        for agent in self.agents.values():
            if agent.bearer_token == bearer_token:
                return copy.deepcopy(agent)
        return None

    async def touch_agent(self, agent_id: str, when: datetime) -> None:
        agent = self.agents.get(agent_id)
        if agent:
            agent.last_used_at = when

    async def delete_agent(self, agent_id: str) -> None:
        self.agents.pop(agent_id, None)

    async def save_code(self, code: AuthorizationCode) -> None:
        self.codes[code.code] = copy.deepcopy(code)

    async def get_code(self, code: str) -> Optional[AuthorizationCode]:
        record = self.codes.get(code)
        return copy.deepcopy(record) if record else None

    async def mark_code_used(self, code: str) -> bool:
        # No await between the check and the write, so this is atomic on the loop
        record = self.codes.get(code)
        if record is None or record.used:
            return False
        record.used = True
        return True

    async def delete_code(self, code: str) -> None:
        self.codes.pop(code, None)


async def execute(query, action: str):
    """Run a postgrest query, converting client failures to StoreError."""
    try:
        return await query.execute()
    except (APIError, httpx.HTTPError) as e:
        logger.error(f"[STORE] {action} failed: {e}")
        raise StoreError(f"{action} failed") from e


class SupabaseOAuthStore(OAuthStore):
    """Store backed by Supabase tables, using an async Supabase client."""

    def __init__(self, supabase_client):
        self.supabase = supabase_client

    def _table(self, name: str):
        return self.supabase.table(name)

    async def save_client(self, client: Client) -> None:
        await execute(self._table(CLIENTS_TABLE).insert(client.to_row()), "save client")

    async def get_client(self, client_id: str) -> Optional[Client]:
        response = await execute(
            self._table(CLIENTS_TABLE).select("*").eq("client_id", client_id).limit(1),
            "get client",
        )
        return Client.from_row(response.data[0]) if response.data else None

    async def create_agent(self, agent: Agent) -> None:
        await execute(self._table(AGENTS_TABLE).insert(agent.to_row()), "create agent")

    async def get_agent(self, agent_id: str) -> Optional[Agent]:
        response = await execute(
            self._table(AGENTS_TABLE).select("*").eq("agent_id", agent_id).limit(1),
            "get agent",
        )
        return Agent.from_row(response.data[0]) if response.data else None

    async def find_agent_by_token(self, bearer_token: str) -> Optional[Agent]:
        response = await execute(
            self._table(AGENTS_TABLE).select("*").eq("bearer_token", bearer_token).limit(1),
            "find agent by token",
        )
        return Agent.from_row(response.data[0]) if response.data else None

    async def touch_agent(self, agent_id: str, when: datetime) -> None:
        await execute(
            self._table(AGENTS_TABLE).update({"last_used_at": to_iso(when)}).eq("agent_id", agent_id),
            "touch agent",
        )

    async def delete_agent(self, agent_id: str) -> None:
        await execute(self._table(AGENTS_TABLE).delete().eq("agent_id", agent_id), "delete agent")

    async def save_code(self, code: AuthorizationCode) -> None:
        await execute(self._table(CODES_TABLE).insert(code.to_row()), "save code")

    async def get_code(self, code: str) -> Optional[AuthorizationCode]:
        response = await execute(
            self._table(CODES_TABLE).select("*").eq("code", code).limit(1),
            "get code",
        )
        return AuthorizationCode.from_row(response.data[0]) if response.data else None

    async def mark_code_used(self, code: str) -> bool:
        # Conditional update: only the request that sees used=false gets a row back
        response = await execute(
            self._table(CODES_TABLE).update({"used": True}).eq("code", code).eq("used", False),
            "mark code used",
        )
        return bool(response.data)

    async def delete_code(self, code: str) -> None:
        await execute(self._table(CODES_TABLE).delete().eq("code", code), "delete code")

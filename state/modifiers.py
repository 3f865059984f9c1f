"""Per-agent active drug state.

Each (user_id, agent_id) pair owns one set of active drugs, unique by name.
Expired entries are never returned; they are pruned lazily when a read finds
them.

ModifierStore is the interface the tools depend on:
- MemoryModifierStore: in-process, one asyncio.Lock per key
- SupabaseModifierStore: one row per key in the active_drugs table, with
  optimistic concurrency on a version column
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import httpx
from postgrest.exceptions import APIError

from oauth.errors import StoreError
from oauth.models import from_iso, to_iso, utcnow
from oauth.stores import execute

logger = logging.getLogger(__name__)

ACTIVE_DRUGS_TABLE = "active_drugs"
UNIQUE_VIOLATION = "23505"


@dataclass(frozen=True)
class ActiveDrug:
    name: str
    prompt: str
    expires_at: datetime

    def to_dict(self) -> dict:
        return {"name": self.name, "prompt": self.prompt, "expires_at": to_iso(self.expires_at)}

    @classmethod
    def from_dict(cls, data: dict) -> "ActiveDrug":
        return cls(name=data["name"], prompt=data["prompt"], expires_at=from_iso(data["expires_at"]))


def with_drug(drugs: list[ActiveDrug], drug: ActiveDrug) -> list[ActiveDrug]:
    """Return drugs with any same-name entry replaced by drug."""
    return [d for d in drugs if d.name != drug.name] + [drug]


def partition_expired(drugs: list[ActiveDrug], now: datetime) -> tuple[list[ActiveDrug], list[ActiveDrug]]:
    active = [d for d in drugs if d.expires_at > now]
    expired = [d for d in drugs if d.expires_at <= now]
    return active, expired


class ModifierStore(ABC):
    """TTL keyed-set store for active drugs."""

    @abstractmethod
    async def add_drug(self, user_id: str, agent_id: str, name: str, prompt: str, expires_at: datetime) -> None:
        """Add or replace the named drug for this agent."""

    @abstractmethod
    async def get_active_drugs(self, user_id: str, agent_id: str) -> list[ActiveDrug]:
        """Return unexpired drugs, pruning expired ones from storage."""

    @abstractmethod
    async def clear_all_drugs(self, user_id: str, agent_id: str) -> list[ActiveDrug]:
        """Remove every drug for this agent.

        Returns the unexpired drugs that were removed, read in the same
        transaction as the write.
        """


class MemoryModifierStore(ModifierStore):
    def __init__(self, clock: Callable = utcnow):
        self.clock = clock
        self._drugs: dict[tuple[str, str], list[ActiveDrug]] = {}
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    def _lock(self, key: tuple[str, str]) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    async def add_drug(self, user_id, agent_id, name, prompt, expires_at) -> None:
        key = (user_id, agent_id)
        async with self._lock(key):
            drug = ActiveDrug(name=name, prompt=prompt, expires_at=expires_at)
            self._drugs[key] = with_drug(self._drugs.get(key, []), drug)

    async def get_active_drugs(self, user_id, agent_id) -> list[ActiveDrug]:
        key = (user_id, agent_id)
        async with self._lock(key):
            active, expired = partition_expired(self._drugs.get(key, []), self.clock())
            if expired:
                self._drugs[key] = active
                logger.debug(f"[STATE] Pruned {len(expired)} expired drugs for agent {agent_id}")
            return list(active)

    async def clear_all_drugs(self, user_id, agent_id) -> list[ActiveDrug]:
        key = (user_id, agent_id)
        async with self._lock(key):
            removed, _ = partition_expired(self._drugs.get(key, []), self.clock())
            self._drugs[key] = []
            return removed


class SupabaseModifierStore(ModifierStore):
    """Active drugs persisted in Supabase.

    Writes are compare-and-set on the row's version: the update only applies
    when the version still matches what was read, otherwise the mutation is
    re-run on fresh data. Concurrent writers on one key are thereby
    serialized; different keys never contend.
    """

    def __init__(self, supabase_client, clock: Callable = utcnow, max_attempts: int = 5, retry_delay: float = 0.05):
        self.supabase = supabase_client
        self.clock = clock
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

    def _table(self):
        return self.supabase.table(ACTIVE_DRUGS_TABLE)

    async def _fetch(self, user_id: str, agent_id: str) -> Optional[dict]:
        response = await execute(
            self._table().select("*").eq("user_id", user_id).eq("agent_id", agent_id).limit(1),
            "fetch active drugs",
        )
        return response.data[0] if response.data else None

    async def _insert(self, user_id: str, agent_id: str, drugs: list[ActiveDrug]) -> bool:
        row = {
            "user_id": user_id,
            "agent_id": agent_id,
            "drugs": [d.to_dict() for d in drugs],
            "version": 1,
        }
        try:
            await self._table().insert(row).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                return False
            logger.error(f"[STORE] insert active drugs failed: {e}")
            raise StoreError("insert active drugs failed") from e
        except httpx.HTTPError as e:
            logger.error(f"[STORE] insert active drugs failed: {e}")
            raise StoreError("insert active drugs failed") from e
        return True

    async def _compare_and_set(self, user_id: str, agent_id: str, version: int, drugs: list[ActiveDrug]) -> bool:
        response = await execute(
            self._table()
            .update({"drugs": [d.to_dict() for d in drugs], "version": version + 1})
            .eq("user_id", user_id)
            .eq("agent_id", agent_id)
            .eq("version", version),
            "update active drugs",
        )
        return bool(response.data)

    async def _transact(self, user_id: str, agent_id: str, mutate: Callable, action: str) -> list[ActiveDrug]:
        """Apply mutate to the stored drugs and return the drugs it was applied to."""
        for attempt in range(1, self.max_attempts + 1):
            row = await self._fetch(user_id, agent_id)
            if row is None:
                if await self._insert(user_id, agent_id, mutate([])):
                    return []
            else:
                current = [ActiveDrug.from_dict(d) for d in row.get("drugs") or []]
                if await self._compare_and_set(user_id, agent_id, row["version"], mutate(current)):
                    return current
            logger.debug(f"[STATE] {action} conflict for agent {agent_id}, attempt {attempt}")
            await asyncio.sleep(self.retry_delay * attempt)
        raise StoreError(f"{action} failed after {self.max_attempts} attempts")

    async def add_drug(self, user_id, agent_id, name, prompt, expires_at) -> None:
        drug = ActiveDrug(name=name, prompt=prompt, expires_at=expires_at)
        await self._transact(user_id, agent_id, lambda drugs: with_drug(drugs, drug), "add drug")

    async def get_active_drugs(self, user_id, agent_id) -> list[ActiveDrug]:
        row = await self._fetch(user_id, agent_id)
        if row is None:
            return []

        drugs = [ActiveDrug.from_dict(d) for d in row.get("drugs") or []]
        active, expired = partition_expired(drugs, self.clock())
        if expired:
            # Single conditional write; a concurrent writer wins and the
            # expired entries are pruned by a later read instead
            pruned = await self._compare_and_set(user_id, agent_id, row["version"], active)
            logger.debug(f"[STATE] Pruned {len(expired)} expired drugs for agent {agent_id}: {pruned}")
        return active

    async def clear_all_drugs(self, user_id, agent_id) -> list[ActiveDrug]:
        previous = await self._transact(user_id, agent_id, lambda drugs: [], "clear drugs")
        removed, _ = partition_expired(previous, self.clock())
        return removed

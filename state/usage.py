"""Append-only log of drugs taken, for per-user usage history."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from oauth.models import to_iso, utcnow
from oauth.stores import execute

logger = logging.getLogger(__name__)

USAGE_EVENTS_TABLE = "usage_events"


@dataclass(frozen=True)
class UsageEvent:
    user_id: str
    drug_name: str
    duration_minutes: int
    created_at: datetime
    agent_id: Optional[str] = None

    def to_row(self) -> dict:
        return {
            "user_id": self.user_id,
            "agent_id": self.agent_id,
            "drug_name": self.drug_name,
            "duration_minutes": self.duration_minutes,
            "created_at": to_iso(self.created_at),
        }


class UsageStore(ABC):
    def __init__(self, clock: Callable = utcnow):
        self.clock = clock

    async def record_usage_event(
        self,
        user_id: str,
        drug_name: str,
        duration_minutes: int,
        agent_id: Optional[str] = None,
    ) -> UsageEvent:
        event = UsageEvent(
            user_id=user_id,
            drug_name=drug_name,
            duration_minutes=duration_minutes,
            created_at=self.clock(),
            agent_id=agent_id,
        )
        await self._append(event)
        logger.debug(f"[USAGE] Recorded {drug_name} ({duration_minutes} min) for user {user_id}")
        return event

    @abstractmethod
    async def _append(self, event: UsageEvent) -> None: ...


class MemoryUsageStore(UsageStore):
    def __init__(self, clock: Callable = utcnow):
        super().__init__(clock)
        self.events: list[UsageEvent] = []

    async def _append(self, event: UsageEvent) -> None:
        self.events.append(event)


class SupabaseUsageStore(UsageStore):
    def __init__(self, supabase_client, clock: Callable = utcnow):
        super().__init__(clock)
        self.supabase = supabase_client

    async def _append(self, event: UsageEvent) -> None:
        await execute(self.supabase.table(USAGE_EVENTS_TABLE).insert(event.to_row()), "record usage event")

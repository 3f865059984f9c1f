"""Read-only catalog of drugs an agent can take.

The catalog is seeded outside this service; here it is only read.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from oauth.stores import execute

DRUGS_TABLE = "drugs"


@dataclass(frozen=True)
class Drug:
    name: str
    prompt: str
    default_duration_minutes: int

    @classmethod
    def from_row(cls, row: dict) -> "Drug":
        return cls(
            name=row["name"],
            prompt=row["prompt"],
            default_duration_minutes=int(row["default_duration_minutes"]),
        )


class CatalogStore(ABC):
    @abstractmethod
    async def list_drugs(self) -> list[Drug]: ...

    async def get_drug(self, name: str) -> Optional[Drug]:
        for drug in await self.list_drugs():
            if drug.name == name:
                return drug
        return None


class MemoryCatalogStore(CatalogStore):
    def __init__(self, drugs: list[Drug] = None):
        self.drugs = list(drugs or [])

    async def list_drugs(self) -> list[Drug]:
        return list(self.drugs)


class SupabaseCatalogStore(CatalogStore):
    def __init__(self, supabase_client):
        self.supabase = supabase_client

    async def list_drugs(self) -> list[Drug]:
        response = await execute(self.supabase.table(DRUGS_TABLE).select("*").order("name"), "list drugs")
        return [Drug.from_row(row) for row in response.data or []]

    async def get_drug(self, name: str) -> Optional[Drug]:
        response = await execute(
            self.supabase.table(DRUGS_TABLE).select("*").eq("name", name).limit(1),
            "get drug",
        )
        return Drug.from_row(response.data[0]) if response.data else None

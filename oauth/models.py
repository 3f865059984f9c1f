"""Records persisted by the OAuth stores.

Rows are stored with snake_case columns; timestamps are timezone-aware UTC
datetimes in memory and ISO 8601 strings in Supabase.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Optional

DEFAULT_SCOPE = "drugs:read drugs:write"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def from_iso(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Client:
    client_id: str
    client_id_issued_at: int
    redirect_uris: list[str] = field(default_factory=list)
    grant_types: list[str] = field(default_factory=lambda: ["authorization_code"])
    response_types: list[str] = field(default_factory=lambda: ["code"])
    token_endpoint_auth_method: str = "none"
    scope: str = DEFAULT_SCOPE
    client_name: Optional[str] = None
    client_uri: Optional[str] = None

    def to_row(self) -> dict:
        return asdict(self)

    @classmethod
    def from_row(cls, row: dict) -> "Client":
        return cls(
            client_id=row["client_id"],
            client_id_issued_at=int(row["client_id_issued_at"]),
            redirect_uris=list(row.get("redirect_uris") or []),
            grant_types=list(row.get("grant_types") or []),
            response_types=list(row.get("response_types") or []),
            token_endpoint_auth_method=row.get("token_endpoint_auth_method") or "none",
            scope=row.get("scope") or DEFAULT_SCOPE,
            client_name=row.get("client_name"),
            client_uri=row.get("client_uri"),
        )


@dataclass
class Agent:
    agent_id: str
    user_id: Optional[str]
    name: Optional[str]
    bearer_token: str
    client_id: Optional[str] = None
    created_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None

    def to_row(self) -> dict:
        row = asdict(self)
        row["created_at"] = to_iso(self.created_at)
        row["last_used_at"] = to_iso(self.last_used_at)
        return row

    @classmethod
    def from_row(cls, row: dict) -> "Agent":
        return cls(
            agent_id=row["agent_id"],
            user_id=row.get("user_id"),
            name=row.get("name"),
            bearer_token=row["bearer_token"],
            client_id=row.get("client_id"),
            created_at=from_iso(row.get("created_at")),
            last_used_at=from_iso(row.get("last_used_at")),
        )


@dataclass
class AuthorizationCode:
    code: str
    user_id: str
    agent_id: str
    bearer_token: str
    client_id: str
    redirect_uri: str
    scope: str
    code_challenge: str
    code_challenge_method: str
    created_at: datetime
    expires_at: datetime
    used: bool = False

    def to_row(self) -> dict:
        row = asdict(self)
        row["created_at"] = to_iso(self.created_at)
        row["expires_at"] = to_iso(self.expires_at)
        return row

    @classmethod
    def from_row(cls, row: dict) -> "AuthorizationCode":
        return cls(
            code=row["code"],
            user_id=row["user_id"],
            agent_id=row["agent_id"],
            bearer_token=row["bearer_token"],
            client_id=row["client_id"],
            redirect_uri=row["redirect_uri"],
            scope=row.get("scope") or DEFAULT_SCOPE,
            code_challenge=row["code_challenge"],
            code_challenge_method=row["code_challenge_method"],
            created_at=from_iso(row["created_at"]),
            expires_at=from_iso(row["expires_at"]),
            used=bool(row.get("used")),
        )


@dataclass(frozen=True)
class AgentContext:
    """Authenticated identity of a bearer-token caller."""

    agent_id: str
    user_id: str
    name: str

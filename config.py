"""Config management for the agent-drugs authorization server."""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


DEFAULT_SERVER_URL = "http://localhost:8766"
STORAGE_BACKENDS = ("memory", "supabase")


class Settings:
    """Configuration container."""

    def __init__(self, data: dict = None):
        self.data = data or {}

    @property
    def server_url(self) -> str:
        return (self.data.get("server_url") or DEFAULT_SERVER_URL).rstrip("/")

    @property
    def consent_url(self) -> str:
        return self.data.get("consent_url") or f"{self.server_url}/login"

    @property
    def storage_backend(self) -> str:
        return (self.data.get("storage_backend") or "memory").lower()

    @property
    def supabase_url(self) -> Optional[str]:
        return self.data.get("supabase_url")

    @property
    def supabase_key(self) -> Optional[str]:
        return self.data.get("supabase_key")

    @property
    def host(self) -> str:
        return self.data.get("host") or "0.0.0.0"

    @property
    def port(self) -> int:
        return int(self.data.get("port") or 8766)

    @property
    def log_level(self) -> str:
        return (self.data.get("log_level") or "INFO").upper()

    @property
    def log_format(self) -> str:
        return (self.data.get("log_format") or "plain").lower()

    @property
    def dev_users(self) -> dict:
        """Fixed consent-surface tokens for the memory backend, "token:user_id,..."."""
        users = {}
        for pair in (self.data.get("dev_users") or "").split(","):
            token, _, user_id = pair.strip().partition(":")
            if token and user_id:
                users[token] = user_id
        return users

    @property
    def service_name(self) -> str:
        return self.data.get("service_name") or "agent-drugs"

    def validate(self) -> None:
        """Raise ValueError if the combination of settings cannot start a server."""
        if self.storage_backend not in STORAGE_BACKENDS:
            raise ValueError(f"Unknown storage backend: {self.storage_backend}")
        if self.storage_backend == "supabase" and not (self.supabase_url and self.supabase_key):
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required for the supabase backend")


def load_settings(env_file: Path = None) -> Settings:
    """Load settings from the environment, reading .env first if present."""
    env_file = env_file or Path(".env")
    if env_file.exists():
        load_dotenv(env_file)

    return Settings({
        "server_url": os.getenv("SERVER_URL"),
        "consent_url": os.getenv("CONSENT_URL"),
        "storage_backend": os.getenv("STORAGE_BACKEND"),
        "supabase_url": os.getenv("SUPABASE_URL"),
        "supabase_key": os.getenv("SUPABASE_SERVICE_KEY"),
        "host": os.getenv("MCP_HOST"),
        "port": os.getenv("MCP_PORT"),
        "log_level": os.getenv("LOG_LEVEL"),
        "log_format": os.getenv("LOG_FORMAT"),
        "service_name": os.getenv("SERVICE_NAME"),
        "dev_users": os.getenv("DEV_USERS"),
    })

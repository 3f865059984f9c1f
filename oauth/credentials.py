"""Random identifiers for bearer tokens, authorization codes and clients."""

import secrets

BEARER_TOKEN_PREFIX = "agdrug_"
AUTH_CODE_PREFIX = "authcode_"
CLIENT_ID_PREFIX = "client_"


def generate_bearer_token() -> str:
    return BEARER_TOKEN_PREFIX + secrets.token_hex(32)


def generate_authorization_code() -> str:
    return AUTH_CODE_PREFIX + secrets.token_hex(32)


def generate_client_id() -> str:
    return CLIENT_ID_PREFIX + secrets.token_hex(16)


def token_preview(token: str) -> str:
    """Short, log-safe prefix of a secret."""
    if not token:
        return "None"
    return token[:12] + "..."

"""OAuth 2.0 Dynamic Client Registration (RFC 7591).

Clients are public: no secret is issued and token_endpoint_auth_method is
always "none". Unsupported grant types are dropped rather than rejected,
unless nothing supported remains.
"""

import logging
from typing import Callable

from oauth.credentials import generate_client_id
from oauth.errors import Result, invalid_client_metadata, invalid_request
from oauth.models import DEFAULT_SCOPE, Client, utcnow

logger = logging.getLogger(__name__)

SUPPORTED_GRANT_TYPES = ["authorization_code"]
LIST_FIELDS = ("grant_types", "response_types", "redirect_uris")
STRING_FIELDS = ("client_name", "client_uri", "scope")


def is_string_list(value) -> bool:
    """True for an absent field or a list of strings."""
    if value is None:
        return True
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


class ClientRegistry:
    def __init__(self, store, clock: Callable = utcnow):
        self.store = store
        self.clock = clock

    async def register(self, request) -> Result[dict]:
        """Register a client and return its registration response."""
        if not isinstance(request, dict):
            return invalid_request("Invalid registration request")

        for key in LIST_FIELDS:
            if not is_string_list(request.get(key)):
                logger.info(f"[REGISTER] Rejected malformed {key}: {request.get(key)!r}")
                return invalid_client_metadata(f"{key} must be an array of strings")
        for key in STRING_FIELDS:
            if request.get(key) is not None and not isinstance(request[key], str):
                return invalid_client_metadata(f"{key} must be a string")

        requested_grant_types = request.get("grant_types") or ["authorization_code"]
        response_types = request.get("response_types") or ["code"]

        grant_types = [gt for gt in requested_grant_types if gt in SUPPORTED_GRANT_TYPES]
        if not grant_types:
            logger.info(f"[REGISTER] Rejected grant types: {requested_grant_types}")
            return invalid_client_metadata(
                "No supported grant types requested. Supported: authorization_code"
            )

        if "code" not in response_types:
            logger.info(f"[REGISTER] Rejected response types: {response_types}")
            return invalid_client_metadata('Only response_type "code" is supported')

        client = Client(
            client_id=generate_client_id(),
            client_id_issued_at=int(self.clock().timestamp()),
            redirect_uris=list(request.get("redirect_uris") or []),
            grant_types=grant_types,
            response_types=list(response_types),
            token_endpoint_auth_method="none",
            scope=request.get("scope") or DEFAULT_SCOPE,
            client_name=request.get("client_name"),
            client_uri=request.get("client_uri"),
        )
        await self.store.save_client(client)
        logger.info(f"[REGISTER] Client registered: {client.client_id} ({client.client_name})")

        response = {
            "client_id": client.client_id,
            "grant_types": client.grant_types,
            "response_types": client.response_types,
            "token_endpoint_auth_method": client.token_endpoint_auth_method,
            "scope": client.scope,
            "client_id_issued_at": client.client_id_issued_at,
        }
        # Optional fields are echoed only when the client sent them
        for key in ("client_name", "client_uri", "redirect_uris"):
            if request.get(key):
                response[key] = request[key]
        return response

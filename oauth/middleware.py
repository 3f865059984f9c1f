"""OAuth middleware for the MCP endpoint.

Validates agent bearer tokens against the agent store on every request and
attaches the resulting AgentContext to request.state.agent.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from oauth.credentials import token_preview
from oauth.endpoints import bearer_token
from oauth.errors import StoreError, is_error, temporarily_unavailable

logger = logging.getLogger(__name__)


class MCPOAuthMiddleware(BaseHTTPMiddleware):
    """Middleware to validate OAuth Bearer tokens for the Streamable HTTP MCP endpoint."""

    def __init__(self, app, agents, server_url: str):
        super().__init__(app)
        self.agents = agents
        self.server_url = server_url

    def _unauthorized(self, error: str, error_description: str) -> JSONResponse:
        return JSONResponse(
            {"error": error, "error_description": error_description},
            status_code=401,
            headers={"WWW-Authenticate": f'Bearer resource_metadata="{self.server_url}/.well-known/oauth-protected-resource"'}
        )

    async def dispatch(self, request: Request, call_next):
        token = bearer_token(request)
        if not token:
            logger.info("[AUTH] Request rejected: no Bearer token")
            return self._unauthorized("unauthorized", "Missing or invalid Authorization header")

        try:
            result = await self.agents.validate(token)
        except StoreError:
            logger.exception("[AUTH] Bearer token validation failed")
            return temporarily_unavailable().to_response()

        if is_error(result):
            logger.info(f"[AUTH] Request rejected for {token_preview(token)}: {result.description}")
            return self._unauthorized(result.error, result.description)

        request.state.agent = result
        logger.info(f"[AUTH] Request authorized: agent {result.agent_id} ({result.name})")
        return await call_next(request)

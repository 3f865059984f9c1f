"""OAuth 2.1 endpoints for agent authorization.

This module contains all OAuth-related endpoints:
- Discovery metadata (/.well-known/*)
- Client registration (/register)
- Authorization (/authorize) and post-consent completion (/oauth/callback)
- Token exchange (/token) and revocation (/revoke)

The consent UI itself lives outside this service: /authorize validates the
request and redirects to it, and the UI calls /oauth/callback once the user
has signed in and approved.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response

from oauth.agents import AgentService
from oauth.authorization import (
    AuthorizationService,
    consent_redirect_url,
    validate_authorization_request,
)
from oauth.errors import (
    StoreError,
    invalid_request,
    is_error,
    server_error,
    unauthenticated,
)
from oauth.registry import ClientRegistry
from oauth.token_exchange import TokenExchange

logger = logging.getLogger(__name__)

router = APIRouter(tags=["oauth"])

SCOPES_SUPPORTED = ["drugs:read", "drugs:write"]
NO_STORE = {"Cache-Control": "no-store", "Pragma": "no-cache"}


@dataclass
class OAuthServices:
    """Services and settings the OAuth routes run against."""

    registry: ClientRegistry
    agents: AgentService
    authorization: AuthorizationService
    tokens: TokenExchange
    identity: object
    server_url: str
    consent_url: str


def get_services(request: Request) -> OAuthServices:
    return request.app.state.oauth


async def read_body(request: Request) -> Optional[dict]:
    """Read a form-encoded or JSON body. Returns None if it is not an object."""
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith("application/json"):
            data = await request.json()
        else:
            data = dict(await request.form())
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:].strip() or None


# ============== OAuth 2.1 Discovery Endpoints ==============

@router.get("/.well-known/oauth-authorization-server")
async def oauth_authorization_server(services: OAuthServices = Depends(get_services)):
    """OAuth 2.0 Authorization Server Metadata (RFC 8414)."""
    server_url = services.server_url
    return {
        "issuer": server_url,
        "authorization_endpoint": f"{server_url}/authorize",
        "token_endpoint": f"{server_url}/token",
        "registration_endpoint": f"{server_url}/register",
        "revocation_endpoint": f"{server_url}/revoke",
        "scopes_supported": SCOPES_SUPPORTED,
        "response_types_supported": ["code"],
        "grant_types_supported": ["authorization_code"],
        "token_endpoint_auth_methods_supported": ["none"],
        "code_challenge_methods_supported": ["S256"],
    }


@router.get("/.well-known/oauth-protected-resource")
async def oauth_protected_resource(services: OAuthServices = Depends(get_services)):
    """OAuth 2.0 Protected Resource Metadata (RFC 9728)."""
    server_url = services.server_url
    return {
        "resource": f"{server_url}/mcp",
        "authorization_servers": [server_url],
        "scopes_supported": SCOPES_SUPPORTED,
        "bearer_methods_supported": ["header"],
    }


# ============== Client Registration ==============

@router.post("/register")
async def register_client(request: Request, services: OAuthServices = Depends(get_services)):
    """OAuth 2.0 Dynamic Client Registration (RFC 7591)."""
    # Every registration field is optional, so an empty or unparseable body
    # registers with defaults; valid JSON that is not an object is rejected
    try:
        data = await request.json()
    except ValueError:
        data = {}

    try:
        result = await services.registry.register(data)
    except StoreError:
        logger.exception("[REGISTER] Client registration failed")
        return server_error("Internal server error during client registration").to_response()

    if is_error(result):
        return result.to_response()
    return JSONResponse(result, status_code=201)


# ============== Authorization Flow ==============

@router.get("/authorize")
async def authorize(
    request: Request,
    response_type: str = "",
    client_id: str = "",
    redirect_uri: str = "",
    scope: str = "",
    state: str = "",
    code_challenge: str = "",
    code_challenge_method: str = "",
    services: OAuthServices = Depends(get_services),
):
    """OAuth 2.0 Authorization Endpoint - redirects to the consent surface."""
    logger.info(f"[AUTHORIZE] Authorization request from client {client_id}")
    error = validate_authorization_request(
        client_id, redirect_uri, response_type, code_challenge, code_challenge_method
    )
    if error:
        return error.to_response()

    url = consent_redirect_url(services.consent_url, dict(request.query_params))
    return RedirectResponse(url=url, status_code=302)


@router.post("/oauth/callback")
async def oauth_callback(request: Request, services: OAuthServices = Depends(get_services)):
    """Complete authorization after the user approved on the consent surface."""
    data = await read_body(request)
    if data is None:
        return invalid_request("Invalid callback request").to_response()

    try:
        user_id = await services.identity.resolve_user(bearer_token(request))
        if not user_id:
            return unauthenticated("User must be authenticated to authorize OAuth").to_response()

        result = await services.authorization.complete_authorization(
            user_id=user_id,
            client_id=data.get("clientId"),
            redirect_uri=data.get("redirectUri"),
            code_challenge=data.get("codeChallenge"),
            code_challenge_method=data.get("codeChallengeMethod"),
            scope=data.get("scope"),
            state=data.get("state"),
            agent_name=data.get("agentName"),
            existing_agent_id=data.get("existingAgentId"),
        )
    except StoreError:
        logger.exception("[AUTHORIZE] Authorization completion failed")
        return server_error("Internal server error during authorization").to_response()

    if is_error(result):
        return result.to_response()
    return JSONResponse(result.to_dict())


# ============== Token Endpoint ==============

@router.post("/token")
async def token(request: Request, services: OAuthServices = Depends(get_services)):
    """OAuth 2.0 Token Endpoint (authorization_code grant only)."""
    data = await read_body(request)
    if data is None:
        return invalid_request("Invalid token request").to_response(headers=NO_STORE)

    logger.debug(f"[TOKEN] grant_type: {data.get('grant_type')}, client_id: {data.get('client_id')}")

    try:
        result = await services.tokens.exchange(
            grant_type=data.get("grant_type"),
            code=data.get("code"),
            redirect_uri=data.get("redirect_uri"),
            client_id=data.get("client_id"),
            code_verifier=data.get("code_verifier"),
        )
    except StoreError:
        logger.exception("[TOKEN] Token exchange failed")
        return server_error("Internal server error during token exchange").to_response(headers=NO_STORE)

    if is_error(result):
        return result.to_response(headers=NO_STORE)
    return JSONResponse(result, headers=NO_STORE)


# ============== Revocation ==============

@router.post("/revoke")
async def revoke(request: Request, services: OAuthServices = Depends(get_services)):
    """OAuth 2.0 Token Revocation (RFC 7009)."""
    data = await read_body(request)
    if data is None:
        return invalid_request("Invalid revocation request").to_response()

    result = await services.agents.revoke(data.get("token"))
    if is_error(result):
        return result.to_response()
    return Response(status_code=200)

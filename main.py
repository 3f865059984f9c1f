"""Agent-drugs authorization server.

It handles:
- OAuth 2.1 authorization-code flow with PKCE for agent clients (oauth/)
- MCP tools for authenticated agents via Streamable HTTP (/mcp)

Stores are created here and injected into every service; nothing else opens
a connection to the backing store.
"""
import asyncio
import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware import Middleware
from supabase import acreate_client

from config import Settings, load_settings
from logging_config import setup_logging
from oauth.agents import AgentService
from oauth.authorization import AuthorizationService
from oauth.endpoints import OAuthServices, router as oauth_router
from oauth.identity import StaticIdentityProvider, SupabaseIdentityProvider
from oauth.middleware import MCPOAuthMiddleware
from oauth.models import utcnow
from oauth.registry import ClientRegistry
from oauth.stores import MemoryOAuthStore, SupabaseOAuthStore
from oauth.token_exchange import TokenExchange
from state.catalog import MemoryCatalogStore, SupabaseCatalogStore
from state.modifiers import MemoryModifierStore, SupabaseModifierStore
from state.usage import MemoryUsageStore, SupabaseUsageStore
from tools import create_mcp

VERSION = "0.1.0"

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings,
    oauth_store,
    modifiers,
    catalog,
    usage,
    identity,
    clock=utcnow,
) -> FastAPI:
    """Build the FastAPI app around already-constructed stores."""
    agents = AgentService(oauth_store, clock)
    services = OAuthServices(
        registry=ClientRegistry(oauth_store, clock),
        agents=agents,
        authorization=AuthorizationService(oauth_store, agents, clock),
        tokens=TokenExchange(oauth_store, clock),
        identity=identity,
        server_url=settings.server_url,
        consent_url=settings.consent_url,
    )

    mcp = create_mcp(catalog, modifiers, usage)
    mcp_http_app = mcp.http_app(
        path="/",
        transport="streamable-http",
        middleware=[Middleware(MCPOAuthMiddleware, agents=agents, server_url=settings.server_url)],
    )

    # MCP app's lifespan is required for FastMCP task group initialization
    app = FastAPI(
        title="Agent Drugs",
        description="OAuth 2.1 authorization server and MCP tools for agent behavior modifiers",
        version=VERSION,
        lifespan=mcp_http_app.lifespan,
    )
    app.state.oauth = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.include_router(oauth_router)
    app.mount("/mcp", mcp_http_app)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "service": settings.service_name, "version": VERSION}

    return app


async def build_app(settings: Settings) -> FastAPI:
    """Create the stores for the configured backend and build the app."""
    if settings.storage_backend == "supabase":
        supabase = await acreate_client(settings.supabase_url, settings.supabase_key)
        logger.info("[STARTUP] Using Supabase storage backend")
        return create_app(
            settings,
            oauth_store=SupabaseOAuthStore(supabase),
            modifiers=SupabaseModifierStore(supabase),
            catalog=SupabaseCatalogStore(supabase),
            usage=SupabaseUsageStore(supabase),
            identity=SupabaseIdentityProvider(supabase),
        )

    logger.warning("[STARTUP] Using in-memory storage backend; state is lost on restart")
    return create_app(
        settings,
        oauth_store=MemoryOAuthStore(),
        modifiers=MemoryModifierStore(),
        catalog=MemoryCatalogStore(),
        usage=MemoryUsageStore(),
        identity=StaticIdentityProvider(settings.dev_users),
    )


async def serve(settings: Settings) -> None:
    app = await build_app(settings)
    logger.info(f"[STARTUP] SERVER_URL: {settings.server_url}")
    logger.info(f"[STARTUP] Listening on {settings.host}:{settings.port}")
    server = uvicorn.Server(uvicorn.Config(app, host=settings.host, port=settings.port, log_config=None))
    await server.serve()


def main() -> None:
    settings = load_settings()
    setup_logging(settings.service_name, settings.log_level, settings.log_format)
    settings.validate()
    asyncio.run(serve(settings))


if __name__ == "__main__":
    main()

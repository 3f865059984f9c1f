"""MCP tools exposed to authenticated agents.

Tools operate on the calling agent's active drug state. The agent identity
is put on the request by MCPOAuthMiddleware before FastMCP handles the call.
"""

import logging
import math
import time
from datetime import timedelta
from typing import Callable, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.server.dependencies import get_http_request

from oauth.errors import StoreError
from oauth.models import AgentContext, utcnow

logger = logging.getLogger(__name__)


async def list_drugs(catalog) -> str:
    try:
        drugs = await catalog.list_drugs()
    except StoreError:
        logger.exception("[TOOL] list_drugs failed")
        raise ToolError("Error fetching drugs. Please try again later.")

    if not drugs:
        return "No drugs available."

    text = "\n\n".join(
        f"**{drug.name}** ({drug.default_duration_minutes} min)\n{drug.prompt}" for drug in drugs
    )
    return f"Available drugs:\n\n{text}"


async def take_drug(
    agent: AgentContext,
    catalog,
    modifiers,
    usage,
    name: str,
    duration: Optional[int] = None,
    clock: Callable = utcnow,
) -> str:
    logger.info(f"[TOOL] take_drug invoked by agent {agent.agent_id}: {name}")
    if duration is not None and duration <= 0:
        raise ToolError("Duration must be a positive number of minutes.")

    try:
        drug = await catalog.get_drug(name)
        if drug is None:
            raise ToolError(f"Drug '{name}' not found. Use list_drugs() to see available options.")

        minutes = duration if duration is not None else drug.default_duration_minutes
        expires_at = clock() + timedelta(minutes=minutes)
        await modifiers.add_drug(agent.user_id, agent.agent_id, drug.name, drug.prompt, expires_at)
    except StoreError:
        logger.exception("[TOOL] take_drug failed")
        raise ToolError("Error taking drug. Please try again later.")

    # Usage history is best-effort; the drug is already active
    try:
        await usage.record_usage_event(agent.user_id, drug.name, minutes, agent_id=agent.agent_id)
    except StoreError:
        logger.warning(f"[TOOL] Could not record usage event for agent {agent.agent_id}")

    return f"Successfully took {drug.name}! Active for {minutes} minutes.\n\nEffect: {drug.prompt}"


async def active_drugs(agent: AgentContext, modifiers, clock: Callable = utcnow) -> str:
    try:
        drugs = await modifiers.get_active_drugs(agent.user_id, agent.agent_id)
    except StoreError:
        logger.exception("[TOOL] active_drugs failed")
        raise ToolError("Error fetching active drugs. Please try again later.")

    if not drugs:
        return "No active drugs."

    now = clock()
    lines = []
    for drug in drugs:
        remaining = math.ceil((drug.expires_at - now).total_seconds() / 60)
        lines.append(f"**{drug.name}** - {remaining} min remaining\n{drug.prompt}")
    return "Active drugs:\n\n" + "\n\n".join(lines)


async def detox(agent: AgentContext, modifiers) -> str:
    start = time.monotonic()
    logger.info(f"[TOOL] detox invoked by agent {agent.agent_id}")
    try:
        if not await modifiers.get_active_drugs(agent.user_id, agent.agent_id):
            return "No active drugs to clear. You're already clean!"
        drugs = await modifiers.clear_all_drugs(agent.user_id, agent.agent_id)
    except StoreError:
        logger.exception("[TOOL] detox failed")
        raise ToolError("Failed to clear drugs. Please try again later.")
    if not drugs:
        return "No active drugs to clear. You're already clean!"

    names = [d.name for d in drugs]
    logger.info(f"[TOOL] detox cleared {len(names)} drugs in {time.monotonic() - start:.3f}s: {names}")
    cleared = "\n".join(f"- {name}" for name in names)
    return (
        "Successfully cleared all active drugs!\n\n"
        f"**Removed drugs:**\n{cleared}\n\n"
        "You are now operating with standard behavior."
    )


def current_agent() -> AgentContext:
    """Agent identity attached to the current HTTP request."""
    request = get_http_request()
    agent = getattr(request.state, "agent", None)
    if agent is None:
        raise ToolError("Authentication required")
    return agent


def create_mcp(catalog, modifiers, usage) -> FastMCP:
    """Create the FastMCP server with tools bound to the given stores."""
    mcp = FastMCP("agent-drugs")

    @mcp.tool(name="list_drugs")
    async def list_drugs_tool() -> str:
        """List all available digital drugs that can modify agent behavior."""
        return await list_drugs(catalog)

    @mcp.tool(name="take_drug")
    async def take_drug_tool(name: str, duration: Optional[int] = None) -> str:
        """Take a digital drug to modify behavior.

        Args:
            name: Name of the drug to take
            duration: Duration in minutes (defaults to the drug's default)
        """
        return await take_drug(current_agent(), catalog, modifiers, usage, name, duration)

    @mcp.tool(name="active_drugs")
    async def active_drugs_tool() -> str:
        """Show currently active drugs and their remaining time."""
        return await active_drugs(current_agent(), modifiers)

    @mcp.tool(name="detox")
    async def detox_tool() -> str:
        """Remove all active drugs and return to standard behavior."""
        return await detox(current_agent(), modifiers)

    return mcp

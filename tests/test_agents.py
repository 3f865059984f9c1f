"""Tests for agent creation, bearer-token validation and revocation."""
from unittest.mock import AsyncMock

import pytest

from oauth.errors import ErrorKind, OAuthError, StoreError
from oauth.models import AgentContext


class TestBearerTokenValidation:
    @pytest.mark.asyncio
    async def test_valid_token_returns_context(self, agents):
        agent = await agents.create_agent("u1", "Bot", client_id="client_x")

        result = await agents.validate(agent.bearer_token)

        assert result == AgentContext(agent_id=agent.agent_id, user_id="u1", name="Bot")

    @pytest.mark.asyncio
    async def test_validation_updates_last_used(self, agents, store, clock):
        agent = await agents.create_agent("u1", "Bot")
        clock.advance(hours=5)

        await agents.validate(agent.bearer_token)

        assert store.agents[agent.agent_id].last_used_at == clock.now

    @pytest.mark.asyncio
    async def test_unknown_token_rejected(self, agents):
        result = await agents.validate("agdrug_unknown")

        assert isinstance(result, OAuthError)
        assert result.kind == ErrorKind.AUTH
        assert result.status_code == 401

    @pytest.mark.asyncio
    async def test_token_valid_at_ninety_days(self, agents, clock):
        agent = await agents.create_agent("u1", "Bot")
        clock.advance(days=90)

        result = await agents.validate(agent.bearer_token)

        assert isinstance(result, AgentContext)

    @pytest.mark.asyncio
    async def test_token_expires_after_ninety_days_without_deletion(self, agents, store, clock):
        agent = await agents.create_agent("u1", "Bot")
        clock.advance(days=90, seconds=1)

        result = await agents.validate(agent.bearer_token)

        assert isinstance(result, OAuthError)
        assert "re-authorize" in result.description
        assert agent.agent_id in store.agents

    @pytest.mark.asyncio
    async def test_corrupt_record_rejected(self, agents, store):
        agent = await agents.create_agent("u1", "Bot")
        store.agents[agent.agent_id].name = None

        result = await agents.validate(agent.bearer_token)

        assert isinstance(result, OAuthError)
        assert result.error == "invalid_token"

    @pytest.mark.asyncio
    async def test_last_used_update_failure_is_ignored(self, agents, store):
        agent = await agents.create_agent("u1", "Bot")
        store.touch_agent = AsyncMock(side_effect=StoreError("down"))

        result = await agents.validate(agent.bearer_token)

        assert isinstance(result, AgentContext)


class TestAgentReuse:
    @pytest.mark.asyncio
    async def test_reuse_own_agent(self, agents, store, clock):
        agent = await agents.create_agent("u1", "Bot")
        clock.advance(minutes=3)

        result = await agents.reuse_agent(agent.agent_id, "u1")

        assert result.bearer_token == agent.bearer_token
        assert store.agents[agent.agent_id].last_used_at == clock.now

    @pytest.mark.asyncio
    async def test_reuse_missing_agent(self, agents):
        result = await agents.reuse_agent("missing", "u1")
        assert result.error == "not_found"
        assert result.status_code == 404

    @pytest.mark.asyncio
    async def test_reuse_foreign_agent(self, agents):
        agent = await agents.create_agent("u2", "Other")

        result = await agents.reuse_agent(agent.agent_id, "u1")

        assert result.error == "permission_denied"
        assert result.status_code == 403


class TestRevocation:
    @pytest.mark.asyncio
    async def test_revoke_deletes_agent_immediately(self, agents, store):
        agent = await agents.create_agent("u1", "Bot")

        assert await agents.revoke(agent.bearer_token) is None

        assert agent.agent_id not in store.agents
        assert isinstance(await agents.validate(agent.bearer_token), OAuthError)

    @pytest.mark.asyncio
    async def test_revoke_unknown_token_succeeds(self, agents):
        assert await agents.revoke("agdrug_does_not_exist") is None

    @pytest.mark.asyncio
    async def test_revoke_requires_token(self, agents):
        result = await agents.revoke(None)
        assert result.error == "invalid_request"

    @pytest.mark.asyncio
    async def test_revoke_non_string_token_rejected(self, agents):
        result = await agents.revoke(["agdrug_x"])
        assert result.error == "invalid_request"

    @pytest.mark.asyncio
    async def test_revoke_backend_failure_is_retryable(self, agents, store):
        store.find_agent_by_token = AsyncMock(side_effect=StoreError("down"))

        result = await agents.revoke("agdrug_x")

        assert result.error == "temporarily_unavailable"
        assert result.kind == ErrorKind.TRANSIENT
        assert result.status_code == 503
        assert "down" not in result.description

"""Tests for the usage event log."""
import pytest

from oauth.errors import StoreError
from state.usage import SupabaseUsageStore


class TestUsageStore:
    @pytest.mark.asyncio
    async def test_memory_store_appends(self, usage, clock):
        event = await usage.record_usage_event("u1", "focus", 60, agent_id="a1")

        assert usage.events == [event]
        assert event.created_at == clock.now

    @pytest.mark.asyncio
    async def test_supabase_store_inserts_row(self, fake_supabase, clock):
        store = SupabaseUsageStore(fake_supabase, clock)

        await store.record_usage_event("u1", "focus", 60)

        [row] = fake_supabase.tables["usage_events"]
        assert row["user_id"] == "u1"
        assert row["drug_name"] == "focus"
        assert row["duration_minutes"] == 60
        assert row["agent_id"] is None
        assert row["created_at"] == clock.now.isoformat()

    @pytest.mark.asyncio
    async def test_supabase_failure_raises_store_error(self, fake_supabase, clock):
        fake_supabase.unreachable.add("usage_events")

        with pytest.raises(StoreError):
            await SupabaseUsageStore(fake_supabase, clock).record_usage_event("u1", "focus", 60)

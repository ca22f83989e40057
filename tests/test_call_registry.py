from __future__ import annotations

import asyncio

import pytest

from calls.registry import CallSessionRegistry
from calls.session import CallContext, CallSession


def test_context_from_params_prefers_later_sources() -> None:
    context = CallContext.from_params(
        {"businessName": "Query Cafe", "brandName": "QueryBrand"},
        {"businessName": "Custom Cafe", "productCategory": "  "},
        defaults=CallContext(product_category="POS systems"),
    )

    assert context == CallContext("Custom Cafe", "POS systems", "QueryBrand")
    assert context.as_params()["businessName"] == "Custom Cafe"


def test_session_history_rules() -> None:
    session = CallSession(call_id="CA1")
    session.add_assistant("Hi there")
    session.add_user("Hello")

    with pytest.raises(ValueError):
        session.add_user("Hello again")
    with pytest.raises(ValueError):
        session.add_system("late persona")

    session.add_assistant("Great")
    assert session.turn_count == 2
    assert session.transcript() == ["assistant: Hi there", "user: Hello", "assistant: Great"]


def test_get_or_create_is_idempotent() -> None:
    async def scenario():
        registry = CallSessionRegistry()
        first, created_first = await registry.get_or_create("CA1", CallContext("A", "B", "C"))
        first.add_assistant("greeting")
        second, created_second = await registry.get_or_create("CA1", CallContext("X", "Y", "Z"), stream_id="MZ1")
        return registry, first, created_first, second, created_second

    registry, first, created_first, second, created_second = asyncio.run(scenario())

    assert created_first is True
    assert created_second is False
    assert second is first
    assert second.context.business_name == "A"
    assert second.turn_count == 1
    assert second.stream_id == "MZ1"
    assert len(registry) == 1


def test_concurrent_get_or_create_yields_one_session() -> None:
    async def scenario():
        registry = CallSessionRegistry()
        results = await asyncio.gather(*(registry.get_or_create("CA7") for _ in range(10)))
        return registry, results

    registry, results = asyncio.run(scenario())

    assert sum(created for _, created in results) == 1
    assert len({id(session) for session, _ in results}) == 1
    assert len(registry) == 1


def test_remove_is_idempotent_and_deactivates() -> None:
    async def scenario():
        registry = CallSessionRegistry()
        session, _ = await registry.get_or_create("CA1")
        session.pending_audio.append(b"\xff" * 10)
        removed = await registry.remove("CA1")
        again = await registry.remove("CA1")
        unknown = await registry.remove("never-existed")
        return registry, session, removed, again, unknown

    registry, session, removed, again, unknown = asyncio.run(scenario())

    assert removed is session
    assert again is None
    assert unknown is None
    assert session.active is False
    assert session.pending_audio == []
    assert "CA1" not in registry


def test_rekey_moves_provisional_session() -> None:
    async def scenario():
        registry = CallSessionRegistry()
        provisional, _ = await registry.get_or_create("anonymous-1")
        provisional.add_user("hello")
        moved, created = await registry.rekey("anonymous-1", "CA9", CallContext("A", "B", "C"), stream_id="MZ9")
        return registry, provisional, moved, created

    registry, provisional, moved, created = asyncio.run(scenario())

    assert moved is provisional
    assert created is False
    assert moved.call_id == "CA9"
    assert moved.context.brand_name == "C"
    assert moved.stream_id == "MZ9"
    assert registry.ids() == ["CA9"]


def test_rekey_onto_live_session_drops_provisional() -> None:
    async def scenario():
        registry = CallSessionRegistry()
        live, _ = await registry.get_or_create("CA9")
        provisional, _ = await registry.get_or_create("anonymous-1")
        kept, created = await registry.rekey("anonymous-1", "CA9")
        fresh, fresh_created = await registry.rekey("anonymous-missing", "CA10")
        return registry, live, provisional, kept, created, fresh, fresh_created

    registry, live, provisional, kept, created, fresh, fresh_created = asyncio.run(scenario())

    assert kept is live
    assert created is False
    assert provisional.active is False
    assert fresh.call_id == "CA10"
    assert fresh_created is True
    assert sorted(registry.ids()) == ["CA10", "CA9"]


def test_sweep_evicts_only_stale_sessions() -> None:
    async def scenario():
        registry = CallSessionRegistry(max_age_seconds=600)
        old, _ = await registry.get_or_create("old")
        await registry.get_or_create("fresh")
        old.created_at -= 601
        evicted = await registry.sweep()
        return registry, evicted

    registry, evicted = asyncio.run(scenario())

    assert evicted == ["old"]
    assert registry.ids() == ["fresh"]


def test_schedule_removal_and_stop() -> None:
    async def scenario():
        registry = CallSessionRegistry(sweep_interval_seconds=0.01)
        registry.start_sweeper()
        await registry.get_or_create("soon")
        await registry.get_or_create("later")
        await registry.schedule_removal("soon", 0.01)
        remaining = registry.ids()
        await registry.stop()
        return registry, remaining

    registry, remaining = asyncio.run(scenario())

    assert remaining == ["later"]
    assert len(registry) == 0

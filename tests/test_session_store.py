from __future__ import annotations

import asyncio

import pytest

from order_assistant.intents import Locale
from order_assistant.services.metrics import MetricsService
from order_assistant.services.session_store import SessionStore


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_session_is_created_with_initial_locale_only_once():
    store = SessionStore(max_entries=10, idle_ttl_seconds=60, metrics=MetricsService())

    async with store.acquire("tg:1", locale=Locale.EN) as session:
        assert session.locale == Locale.EN
    async with store.acquire("tg:1", locale=Locale.RU) as session:
        assert session.locale == Locale.EN

    assert store.size() == 1


@pytest.mark.asyncio
async def test_empty_key_is_rejected():
    store = SessionStore(metrics=MetricsService())

    with pytest.raises(ValueError):
        async with store.acquire(""):
            pass


@pytest.mark.asyncio
async def test_idle_sessions_expire():
    clock = FakeClock()
    metrics = MetricsService()
    store = SessionStore(max_entries=10, idle_ttl_seconds=60, clock=clock, metrics=metrics)

    async with store.acquire("a"):
        pass
    clock.now = 120

    assert store.evict_expired() == 1
    assert store.get("a") is None
    assert metrics.snapshot().sessions_evicted == 1


@pytest.mark.asyncio
async def test_session_in_use_is_never_evicted():
    clock = FakeClock()
    store = SessionStore(max_entries=1, idle_ttl_seconds=60, clock=clock, metrics=MetricsService())

    async with store.acquire("a"):
        clock.now = 1000
        assert store.evict_expired() == 0
        async with store.acquire("b"):
            assert store.get("a") is not None


@pytest.mark.asyncio
async def test_least_recently_used_session_is_evicted_on_overflow():
    store = SessionStore(max_entries=2, idle_ttl_seconds=0, metrics=MetricsService())

    for key in ("a", "b", "a", "c"):
        async with store.acquire(key):
            pass

    assert store.get("b") is None
    assert store.get("a") is not None
    assert store.get("c") is not None


@pytest.mark.asyncio
async def test_messages_of_one_session_are_serialized():
    store = SessionStore(metrics=MetricsService())
    events: list[str] = []

    async def handle(name: str) -> None:
        async with store.acquire("same"):
            events.append(f"start-{name}")
            await asyncio.sleep(0.01)
            events.append(f"end-{name}")

    await asyncio.gather(handle("first"), handle("second"))

    assert events == ["start-first", "end-first", "start-second", "end-second"]


@pytest.mark.asyncio
async def test_different_sessions_do_not_block_each_other():
    store = SessionStore(metrics=MetricsService())
    held = asyncio.Event()
    release = asyncio.Event()

    async def hold_a() -> None:
        async with store.acquire("a"):
            held.set()
            await release.wait()

    task = asyncio.create_task(hold_a())
    await held.wait()
    async with store.acquire("b") as session:
        assert session.key == "b"
    release.set()
    await asyncio.wait_for(task, timeout=1)

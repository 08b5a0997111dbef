import asyncio
import gc

import pytest

from chatly_engine.config import AdmissionSettings, CacheSettings
from chatly_engine.errors import (
    NotFoundError,
    PermissionDeniedError,
    RateLimitedError,
    RequestTimeoutError,
    StoreError,
    UnavailableError,
)
from chatly_engine.infrastructure.store.protocol import WriteOp
from chatly_engine.services.gateway.admission import AdmissionGate
from chatly_engine.services.gateway.cache_gateway import CacheGateway, document_key


def _gateway(store, clock, **cache_overrides) -> CacheGateway:
    return CacheGateway(store, CacheSettings(**cache_overrides), AdmissionSettings(), clock=clock)


async def _settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_concurrent_fetches_share_one_call(store, clock):
    store.seed("users", "alice", {"username": "alice"})
    store.hold = asyncio.Event()
    gateway = _gateway(store, clock)

    tasks = [asyncio.create_task(gateway.fetch("users/alice")) for _ in range(10)]
    await _settle()
    assert gateway.in_flight == 1

    store.hold.set()
    results = await asyncio.gather(*tasks)

    assert all(result == {"username": "alice"} for result in results)
    assert store.calls_for("users", "alice") == 1
    assert gateway.stats.misses == 1
    assert gateway.stats.joins == 9
    assert gateway.in_flight == 0


@pytest.mark.asyncio
async def test_live_entry_served_from_cache(store, clock):
    store.seed("users", "alice", {"username": "alice"})
    gateway = _gateway(store, clock)

    await gateway.fetch("users/alice")
    await gateway.fetch("users/alice")

    assert store.calls_for("users", "alice") == 1
    assert gateway.stats.hits == 1


@pytest.mark.asyncio
async def test_entry_expires_after_ttl(store, clock):
    store.seed("users", "alice", {"username": "alice"})
    gateway = _gateway(store, clock, ttl_seconds=300)

    await gateway.fetch("users/alice")
    clock.advance(299)
    await gateway.fetch("users/alice")
    assert store.calls_for("users", "alice") == 1

    clock.advance(1)
    await gateway.fetch("users/alice")
    assert store.calls_for("users", "alice") == 2


@pytest.mark.asyncio
async def test_missing_document_is_cached_as_none(store, clock):
    gateway = _gateway(store, clock)

    assert await gateway.fetch("users/ghost") is None
    assert await gateway.fetch("users/ghost") is None
    assert store.calls_for("users", "ghost") == 1

    with pytest.raises(NotFoundError):
        await gateway.fetch_required("users/ghost")


@pytest.mark.asyncio
async def test_outstanding_calls_never_exceed_capacity(store, clock):
    store.delay = 0.01
    for i in range(20):
        store.seed("users", f"u{i}", {"n": i})
    gateway = _gateway(store, clock)

    results = await asyncio.gather(*(gateway.fetch(f"users/u{i}") for i in range(20)))

    assert [r["n"] for r in results] == list(range(20))
    assert store.peak_active == 5
    assert gateway.gate.active == 0


@pytest.mark.asyncio
async def test_admission_is_fifo():
    gate = AdmissionGate(capacity=1)
    order = []

    async def worker(name):
        async with gate.slot(name):
            order.append(name)
            await asyncio.sleep(0)

    await gate.acquire("holder")
    tasks = [asyncio.create_task(worker(name)) for name in ("a", "b", "c")]
    await _settle()
    assert gate.queued == 3

    gate.release()
    await asyncio.gather(*tasks)

    assert order == ["a", "b", "c"]
    assert gate.active == 0


@pytest.mark.asyncio
async def test_cancelled_waiter_leaves_queue():
    gate = AdmissionGate(capacity=1)
    await gate.acquire("holder")

    waiting = asyncio.create_task(gate.acquire("cancelled"))
    await _settle()
    waiting.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiting

    assert gate.queued == 0
    gate.release()
    assert gate.active == 0


@pytest.mark.asyncio
async def test_waiter_cancelled_after_handoff_returns_slot():
    gate = AdmissionGate(capacity=1)
    await gate.acquire("holder")

    handed = asyncio.create_task(gate.acquire("handed"))
    await _settle()
    gate.release()
    handed.cancel()

    with pytest.raises(asyncio.CancelledError):
        await handed
    assert gate.active == 0
    assert gate.queued == 0


@pytest.mark.asyncio
async def test_waiter_cancelled_after_handoff_passes_slot_to_next():
    gate = AdmissionGate(capacity=1)
    await gate.acquire("holder")

    handed = asyncio.create_task(gate.acquire("handed"))
    next_in_line = asyncio.create_task(gate.acquire("next"))
    await _settle()
    gate.release()
    handed.cancel()

    with pytest.raises(asyncio.CancelledError):
        await handed
    await asyncio.wait_for(next_in_line, timeout=1)

    assert gate.active == 1
    gate.release()
    assert gate.active == 0


@pytest.mark.asyncio
async def test_fail_fast_rejects_when_queue_full():
    gate = AdmissionGate(capacity=1, overflow="fail_fast", max_queue_depth=1)
    await gate.acquire("a")
    queued = asyncio.create_task(gate.acquire("b"))
    await _settle()

    with pytest.raises(RateLimitedError) as exc_info:
        await gate.acquire("c")

    assert exc_info.value.recoverable is True
    assert exc_info.value.capacity == 1
    assert exc_info.value.queue_depth == 1

    gate.release()
    await queued
    gate.release()
    assert gate.active == 0


@pytest.mark.asyncio
async def test_failure_reaches_every_waiter_and_is_not_cached(store, clock):
    store.seed("users", "alice", {"username": "alice"})
    store.get_errors["users/alice"] = StoreError("unavailable")
    store.hold = asyncio.Event()
    gateway = _gateway(store, clock)

    tasks = [asyncio.create_task(gateway.fetch("users/alice")) for _ in range(3)]
    await _settle()
    store.hold.set()
    results = await asyncio.gather(*tasks, return_exceptions=True)

    assert all(isinstance(result, UnavailableError) for result in results)
    assert gateway.in_flight == 0
    assert gateway.gate.active == 0
    assert len(gateway) == 0

    del store.get_errors["users/alice"]
    assert await gateway.fetch("users/alice") == {"username": "alice"}
    assert store.calls_for("users", "alice") == 2


@pytest.mark.asyncio
async def test_timeout_is_treated_as_failure(store, clock):
    store.seed("users", "alice", {"username": "alice"})
    store.hold = asyncio.Event()  # never released
    gateway = _gateway(store, clock, request_timeout_seconds=0.05)

    with pytest.raises(RequestTimeoutError):
        await gateway.fetch("users/alice")

    assert gateway.in_flight == 0
    assert gateway.gate.active == 0


@pytest.mark.asyncio
async def test_cancelling_one_caller_does_not_affect_others(store, clock):
    store.seed("users", "alice", {"username": "alice"})
    store.hold = asyncio.Event()
    gateway = _gateway(store, clock)

    first = asyncio.create_task(gateway.fetch("users/alice"))
    second = asyncio.create_task(gateway.fetch("users/alice"))
    await _settle()

    first.cancel()
    store.hold.set()

    assert await second == {"username": "alice"}
    with pytest.raises(asyncio.CancelledError):
        await first
    assert store.calls_for("users", "alice") == 1
    assert await gateway.fetch("users/alice") == {"username": "alice"}
    assert store.calls_for("users", "alice") == 1


@pytest.mark.asyncio
async def test_failure_after_every_caller_detached_is_not_reported(store, clock):
    store.get_errors["users/alice"] = StoreError("unavailable")
    store.hold = asyncio.Event()
    gateway = _gateway(store, clock)
    loop = asyncio.get_running_loop()
    reported = []
    loop.set_exception_handler(lambda _loop, context: reported.append(context))

    try:
        caller = asyncio.create_task(gateway.fetch("users/alice"))
        await _settle()
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        store.hold.set()
        await _settle(10)
        gc.collect()
    finally:
        loop.set_exception_handler(None)

    assert gateway.in_flight == 0
    assert gateway.gate.active == 0
    assert [context["message"] for context in reported] == []


@pytest.mark.asyncio
async def test_invalidate_forces_fresh_call(store, clock):
    store.seed("users", "alice", {"username": "alice"})
    gateway = _gateway(store, clock)

    await gateway.fetch("users/alice")
    gateway.invalidate("users/alice")
    await gateway.fetch("users/alice")

    assert store.calls_for("users", "alice") == 2


@pytest.mark.asyncio
async def test_invalidate_during_flight_skips_repopulation(store, clock):
    store.seed("users", "alice", {"username": "alice"})
    store.hold = asyncio.Event()
    gateway = _gateway(store, clock)

    pending = asyncio.create_task(gateway.fetch("users/alice"))
    await _settle()
    gateway.invalidate("users/alice")
    store.hold.set()

    assert await pending == {"username": "alice"}
    assert len(gateway) == 0

    await gateway.fetch("users/alice")
    assert store.calls_for("users", "alice") == 2


@pytest.mark.asyncio
async def test_put_serves_without_network(store, clock):
    gateway = _gateway(store, clock)

    gateway.put("users/alice", {"username": "cached"})

    assert await gateway.fetch("users/alice") == {"username": "cached"}
    assert store.get_calls == []


@pytest.mark.asyncio
async def test_eviction_removes_oldest_when_oversized(store, clock):
    for i in range(10):
        store.seed("users", f"u{i}", {"n": i})
    gateway = _gateway(store, clock, max_entries=5, eviction_interval=10, eviction_fraction=0.2)

    for i in range(10):
        await gateway.fetch(f"users/u{i}")
        clock.advance(1)

    assert len(gateway) == 8
    assert gateway.stats.evictions == 2

    await gateway.fetch("users/u0")
    await gateway.fetch("users/u9")
    assert store.calls_for("users", "u0") == 2
    assert store.calls_for("users", "u9") == 1


@pytest.mark.asyncio
async def test_eviction_sweeps_expired_entries(store, clock):
    for i in range(10):
        store.seed("users", f"u{i}", {"n": i})
    gateway = _gateway(store, clock, ttl_seconds=60, eviction_interval=10)

    for i in range(9):
        await gateway.fetch(f"users/u{i}")
    clock.advance(61)
    await gateway.fetch("users/u9")

    assert len(gateway) == 1
    assert gateway.stats.evictions == 9


@pytest.mark.asyncio
async def test_write_invalidates_touched_keys(store, clock):
    store.seed("users", "alice", {"username": "alice"})
    gateway = _gateway(store, clock)

    await gateway.fetch("users/alice")
    await gateway.write([WriteOp("update", "users", "alice", {"username": "alicia"})])

    assert await gateway.fetch("users/alice") == {"username": "alicia"}
    assert store.calls_for("users", "alice") == 2


@pytest.mark.asyncio
async def test_write_error_is_translated(store, clock):
    store.seed("users", "alice", {"username": "alice"})
    store.write_error = StoreError("permission-denied")
    gateway = _gateway(store, clock)
    await gateway.fetch("users/alice")

    with pytest.raises(PermissionDeniedError):
        await gateway.write([WriteOp("update", "users", "alice", {"username": "x"})])

    assert len(gateway) == 0
    assert gateway.gate.active == 0


@pytest.mark.asyncio
async def test_malformed_key_rejected(store, clock):
    gateway = _gateway(store, clock)

    with pytest.raises(ValueError):
        await gateway.fetch("no-collection")


def test_document_key():
    assert document_key("chats", "c1") == "chats/c1"

"""
Bounded cache-and-dedup gateway in front of the remote document store.

- Live cache entries are served without touching the network.
- Concurrent fetches for the same key share a single outbound call.
- Outbound calls are admitted through a FIFO gate and carry a timeout.

Keys have the form "<collection>/<doc_id>" (see `document_key`).
"""

from __future__ import annotations

import asyncio
import math
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from chatly_engine.config import AdmissionSettings, CacheSettings
from chatly_engine.errors import (
    ChatlyError,
    InternalError,
    NotFoundError,
    RequestTimeoutError,
    StoreError,
    translate_store_error,
)
from chatly_engine.infrastructure.observability.logging import get_logger
from chatly_engine.infrastructure.providers import Clock, SystemClock
from chatly_engine.infrastructure.store.protocol import DocumentStore, WriteOp

from .admission import AdmissionGate

logger = get_logger(__name__)


def document_key(collection: str, doc_id: str) -> str:
    return f"{collection}/{doc_id}"


def _split_key(key: str) -> tuple[str, str]:
    collection, sep, doc_id = key.partition("/")
    if not sep or not collection or not doc_id:
        raise ValueError(f"Cache key must look like 'collection/doc_id', got {key!r}")
    return collection, doc_id


def _retrieve_outcome(future: asyncio.Future[Any]) -> None:
    # Marks a failure as retrieved even when every waiter has detached.
    if not future.cancelled():
        future.exception()


@dataclass(slots=True)
class CacheEntry:
    key: str
    value: Any
    fetched_at: float


@dataclass(slots=True)
class GatewayStats:
    hits: int = 0
    misses: int = 0
    joins: int = 0
    evictions: int = 0


class CacheGateway:
    """
    Memoized, deduplicated, admission-controlled access to a DocumentStore.

    The entry map, the in-flight map and the admission counter are the only
    shared mutable state. They are touched exclusively inside `self._lock`
    sections that never await.
    """

    def __init__(
        self,
        store: DocumentStore,
        cache_settings: CacheSettings | None = None,
        admission_settings: AdmissionSettings | None = None,
        clock: Clock | None = None,
    ):
        self._store = store
        self._settings = cache_settings or CacheSettings()
        admission_settings = admission_settings or AdmissionSettings()
        self._clock = clock or SystemClock()
        self.gate = AdmissionGate(
            capacity=admission_settings.capacity,
            overflow=admission_settings.overflow,
            max_queue_depth=admission_settings.max_queue_depth,
        )
        self.stats = GatewayStats()

        self._entries: dict[str, CacheEntry] = {}
        self._in_flight: dict[str, asyncio.Future[Any]] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._inserts = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def fetch(self, key: str) -> Any:
        """
        Return the document for `key`, or None if the store has none.

        Cancelling the awaiting caller only detaches that caller; the outbound
        call keeps running for every other waiter.
        """
        _split_key(key)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                if not self._is_expired(entry):
                    self.stats.hits += 1
                    return entry.value
                del self._entries[key]

            future = self._in_flight.get(key)
            start_call = future is None
            if start_call:
                future = asyncio.get_running_loop().create_future()
                future.add_done_callback(_retrieve_outcome)
                self._in_flight[key] = future
                self.stats.misses += 1
            else:
                self.stats.joins += 1

        if start_call:
            task = asyncio.create_task(self._load(key, future))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        return await asyncio.shield(future)

    async def fetch_required(self, key: str) -> Any:
        value = await self.fetch(key)
        if value is None:
            raise NotFoundError(f"Document not found: {key}")
        return value

    def put(self, key: str, value: Any) -> None:
        """Store a fresh snapshot; a pending call for the key will not overwrite it."""
        _split_key(key)
        with self._lock:
            self._in_flight.pop(key, None)
            self._store_entry(key, value)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._in_flight.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._in_flight.clear()

    async def write(self, ops: Sequence[WriteOp], operation: str = "batch write") -> None:
        """Commit a batch write, then invalidate every key it touched."""
        if not ops:
            return

        key = ops[0].key
        try:
            async with self.gate.slot(key):
                await asyncio.wait_for(
                    self._store.batch_write(list(ops)),
                    timeout=self._settings.request_timeout_seconds,
                )
        except TimeoutError as e:
            logger.error("Store write timed out", operation=operation, key=key)
            raise RequestTimeoutError(f"Operation timed out for {operation}") from e
        except StoreError as e:
            logger.error("Store write failed", operation=operation, key=key, code=e.code)
            raise translate_store_error(e, operation) from e
        except ChatlyError:
            raise
        except Exception as e:
            logger.error(
                "Unexpected store write failure",
                operation=operation,
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise InternalError(f"Failed to execute {operation}: {e}") from e
        finally:
            # After a failure or timeout the remote state is unknown.
            for op in ops:
                self.invalidate(op.key)

    async def _load(self, key: str, future: asyncio.Future[Any]) -> None:
        collection, doc_id = _split_key(key)
        error: ChatlyError | None = None
        value: Any = None

        try:
            async with self.gate.slot(key):
                value = await asyncio.wait_for(
                    self._store.get(collection, doc_id),
                    timeout=self._settings.request_timeout_seconds,
                )
        except asyncio.CancelledError:
            with self._lock:
                if self._in_flight.get(key) is future:
                    del self._in_flight[key]
            future.cancel()
            raise
        except TimeoutError:
            error = RequestTimeoutError(f"Fetch timed out for {key}")
        except StoreError as e:
            error = translate_store_error(e, f"fetch {key}")
        except ChatlyError as e:
            error = e
        except Exception as e:
            error = InternalError(f"Unexpected failure fetching {key}: {e}")

        with self._lock:
            still_current = self._in_flight.get(key) is future
            if still_current:
                del self._in_flight[key]
                if error is None:
                    self._store_entry(key, value)

        if error is not None:
            logger.warning(
                "Document fetch failed",
                key=key,
                code=error.code,
                recoverable=error.recoverable,
            )
            future.set_exception(error)
        else:
            future.set_result(value)

    def _is_expired(self, entry: CacheEntry) -> bool:
        return self._clock.monotonic() - entry.fetched_at >= self._settings.ttl_seconds

    def _store_entry(self, key: str, value: Any) -> None:
        # Caller holds self._lock.
        self._entries[key] = CacheEntry(key=key, value=value, fetched_at=self._clock.monotonic())
        self._inserts += 1
        if self._inserts % self._settings.eviction_interval == 0:
            self._evict()

    def _evict(self) -> None:
        # Caller holds self._lock.
        expired = [k for k, entry in self._entries.items() if self._is_expired(entry)]
        for k in expired:
            del self._entries[k]

        removed = len(expired)
        if len(self._entries) > self._settings.max_entries:
            oldest = sorted(self._entries.values(), key=lambda entry: entry.fetched_at)
            to_remove = math.ceil(len(oldest) * self._settings.eviction_fraction)
            for entry in oldest[:to_remove]:
                del self._entries[entry.key]
            removed += to_remove

        if removed:
            self.stats.evictions += removed
            logger.debug("Evicted cache entries", removed=removed, remaining=len(self._entries))

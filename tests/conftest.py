import asyncio
import copy
from datetime import UTC, datetime, timedelta

import pytest

from chatly_engine.config import Settings
from chatly_engine.errors import StoreError
from chatly_engine.infrastructure.store.protocol import WriteOp


class FakeDocumentStore:
    """In-memory document store with call accounting and failure injection."""

    def __init__(self, docs: dict[str, dict] | None = None, delay: float = 0.0):
        self.docs: dict[str, dict] = {}
        for key, value in (docs or {}).items():
            self.docs[key] = copy.deepcopy(value)
        self.delay = delay
        self.get_calls: list[str] = []
        self.write_batches: list[list[WriteOp]] = []
        self.get_errors: dict[str, Exception] = {}
        self.write_error: Exception | None = None
        self.hold: asyncio.Event | None = None
        self.active = 0
        self.peak_active = 0

    def seed(self, collection: str, doc_id: str, data: dict) -> None:
        self.docs[f"{collection}/{doc_id}"] = copy.deepcopy(data)

    def doc(self, collection: str, doc_id: str) -> dict | None:
        return self.docs.get(f"{collection}/{doc_id}")

    def calls_for(self, collection: str, doc_id: str) -> int:
        return self.get_calls.count(f"{collection}/{doc_id}")

    async def get(self, collection: str, doc_id: str) -> dict | None:
        key = f"{collection}/{doc_id}"
        self.get_calls.append(key)
        self.active += 1
        self.peak_active = max(self.peak_active, self.active)
        try:
            if self.hold is not None:
                await self.hold.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            error = self.get_errors.get(key)
            if error is not None:
                raise error
            value = self.docs.get(key)
            return copy.deepcopy(value) if value is not None else None
        finally:
            self.active -= 1

    async def batch_write(self, ops: list[WriteOp]) -> None:
        self.active += 1
        self.peak_active = max(self.peak_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.write_error is not None:
                raise self.write_error
            for op in ops:
                if op.kind == "update" and op.key not in self.docs:
                    raise StoreError("not-found", f"No document to update: {op.key}")
                if op.kind == "create" and op.key in self.docs:
                    raise StoreError("already-exists", f"Document exists: {op.key}")

            staged = copy.deepcopy(self.docs)
            for op in ops:
                if op.kind in ("set", "create"):
                    staged[op.key] = copy.deepcopy(op.data)
                elif op.kind == "update":
                    staged[op.key].update(copy.deepcopy(op.data))
                elif op.kind == "delete":
                    staged.pop(op.key, None)
                elif op.kind == "append":
                    target = staged.setdefault(op.key, {})
                    target.setdefault(op.target_field, []).extend(copy.deepcopy(op.data["values"]))
            self.docs = staged
            self.write_batches.append(list(ops))
        finally:
            self.active -= 1


class FrozenClock:
    def __init__(self, now: datetime | None = None):
        self._now = now or datetime(2025, 6, 2, 12, 0, tzinfo=UTC)
        self._monotonic = 1000.0

    def now(self) -> datetime:
        return self._now

    def monotonic(self) -> float:
        return self._monotonic

    def set(self, now: datetime) -> None:
        self._monotonic += max((now - self._now).total_seconds(), 0.0)
        self._now = now

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)
        self._monotonic += seconds


class ScriptedClassifier:
    """Toxicity classifier double returning a fixed score or raising."""

    def __init__(self, score: float = 0.0, error: Exception | None = None):
        self.score = score
        self.error = error
        self.calls: list[str] = []

    async def analyze(self, text: str) -> float:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return self.score


@pytest.fixture
def store():
    return FakeDocumentStore()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def classifier():
    return ScriptedClassifier()


@pytest.fixture
def settings():
    # Explicit values so a developer's .env.local cannot leak into tests
    return Settings(_env_file=None, environment="test", log_level="DEBUG")

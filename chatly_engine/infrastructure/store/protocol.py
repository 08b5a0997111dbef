"""
Document store collaborator contract.

The engine never talks to a database directly. Implementations wrap a remote
document store client and raise `StoreError` with one of the backend codes
listed in `STORE_ERROR_CODES`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

STORE_ERROR_CODES = (
    "not-found",
    "permission-denied",
    "unavailable",
    "deadline-exceeded",
    "resource-exhausted",
    "invalid-argument",
    "already-exists",
)

WriteKind = Literal["set", "create", "update", "delete", "append"]


@dataclass(slots=True)
class WriteOp:
    """
    One operation inside an atomic batch write.

    "create" fails the whole batch with "already-exists" when the document is
    present; "set" overwrites.
    """

    kind: WriteKind
    collection: str
    doc_id: str
    data: dict[str, Any] = field(default_factory=dict)
    target_field: str | None = None  # list field for "append"

    @property
    def key(self) -> str:
        return f"{self.collection}/{self.doc_id}"


class DocumentStore(Protocol):
    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        ...

    async def batch_write(self, ops: list[WriteOp]) -> None:
        ...

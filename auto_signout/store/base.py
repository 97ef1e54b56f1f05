"""Document store boundary used by the sign-out job.

The job only needs three capabilities from the platform store: a keyset
paginated query over one collection, an atomic batch of field-level merges,
and point reads. ``MemoryDocumentStore`` and ``SqlDocumentStore`` implement
them; callers receive an instance explicitly instead of reaching for a global
client.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence


class StoreError(Exception):
    """Read or write against the document store failed."""


class StoreCommitError(StoreError):
    """A batch commit failed; none of its writes were applied."""


class BatchCapacityError(Exception):
    pass


@dataclass(frozen=True)
class DocumentSnapshot:
    collection: str
    key: str
    data: dict[str, Any]

    def get(self, field_name: str, default: Any = None) -> Any:
        return self.data.get(field_name, default)

    def has(self, field_name: str) -> bool:
        return field_name in self.data


@dataclass(frozen=True)
class Precondition:
    null_fields: tuple[str, ...] = ()
    absent_fields: tuple[str, ...] = ()
    expected: tuple[tuple[str, Any], ...] = ()

    def holds(self, data: Mapping[str, Any] | None) -> bool:
        # Writes never resurrect a document that disappeared since it was read.
        if data is None:
            return False
        if any(data.get(name) is not None for name in self.null_fields):
            return False
        if any(name in data for name in self.absent_fields):
            return False
        return all(data.get(name) == value for name, value in self.expected)


@dataclass(frozen=True)
class StagedWrite:
    collection: str
    key: str
    fields: dict[str, Any]
    precondition: Precondition = field(default_factory=Precondition)


@dataclass
class CommitResult:
    applied: list[StagedWrite] = field(default_factory=list)
    skipped: list[StagedWrite] = field(default_factory=list)

    def applied_keys(self) -> set[tuple[str, str]]:
        return {(write.collection, write.key) for write in self.applied}


class WriteBatch:
    def __init__(self, limit: int) -> None:
        if limit < 1:
            raise ValueError('batch limit must be positive')
        self.limit = int(limit)
        self._writes: list[StagedWrite] = []

    def stage(self, write: StagedWrite) -> None:
        if len(self._writes) >= self.limit:
            raise BatchCapacityError(f'batch already holds {self.limit} writes')
        self._writes.append(write)

    @property
    def writes(self) -> tuple[StagedWrite, ...]:
        return tuple(self._writes)

    def is_full(self) -> bool:
        return len(self._writes) >= self.limit

    def is_empty(self) -> bool:
        return not self._writes

    def __len__(self) -> int:
        return len(self._writes)


class DocumentStore(ABC):
    @abstractmethod
    def query(
        self,
        collection: str,
        *,
        where: Mapping[str, Any] | None = None,
        limit: int,
        after_key: str | None = None,
    ) -> list[DocumentSnapshot]:
        """Documents matching ``where``, ordered by key, strictly after ``after_key``.

        A ``None`` value in ``where`` matches fields that are null or absent.
        """
        raise NotImplementedError

    @abstractmethod
    def get(self, collection: str, key: str) -> DocumentSnapshot | None:
        raise NotImplementedError

    @abstractmethod
    def commit(self, writes: Sequence[StagedWrite]) -> CommitResult:
        """Apply all writes atomically, skipping those whose precondition fails."""
        raise NotImplementedError

    @abstractmethod
    def put(self, collection: str, key: str, data: Mapping[str, Any]) -> None:
        """Replace a whole document. Used to seed data, never by the sign-out job."""
        raise NotImplementedError


def matches(data: Mapping[str, Any], where: Mapping[str, Any] | None) -> bool:
    for name, expected in (where or {}).items():
        if expected is None:
            if data.get(name) is not None:
                return False
        elif name not in data or data[name] != expected:
            return False
    return True

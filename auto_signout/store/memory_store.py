from __future__ import annotations

import copy
import threading
from typing import Any, Mapping, Sequence

from auto_signout.store.base import CommitResult, DocumentSnapshot, DocumentStore, StagedWrite, StoreCommitError, matches


class MemoryDocumentStore(DocumentStore):
    """Thread-safe in-process store with the same semantics as the SQL binding.

    Keeps a log of committed batches so callers can assert on batching.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self.commit_log: list[CommitResult] = []
        self.fail_next_commits = 0

    def put(self, collection: str, key: str, data: Mapping[str, Any]) -> None:
        with self._lock:
            self._collections.setdefault(collection, {})[str(key)] = copy.deepcopy(dict(data))

    def get(self, collection: str, key: str) -> DocumentSnapshot | None:
        with self._lock:
            data = self._collections.get(collection, {}).get(str(key))
            if data is None:
                return None
            return DocumentSnapshot(collection=collection, key=str(key), data=copy.deepcopy(data))

    def query(
        self,
        collection: str,
        *,
        where: Mapping[str, Any] | None = None,
        limit: int,
        after_key: str | None = None,
    ) -> list[DocumentSnapshot]:
        with self._lock:
            docs = self._collections.get(collection, {})
            rows: list[DocumentSnapshot] = []
            for key in sorted(docs):
                if after_key is not None and key <= after_key:
                    continue
                if not matches(docs[key], where):
                    continue
                rows.append(DocumentSnapshot(collection=collection, key=key, data=copy.deepcopy(docs[key])))
                if len(rows) >= limit:
                    break
            return rows

    def commit(self, writes: Sequence[StagedWrite]) -> CommitResult:
        with self._lock:
            if self.fail_next_commits > 0:
                self.fail_next_commits -= 1
                raise StoreCommitError('simulated commit failure')
            working: dict[tuple[str, str], dict[str, Any] | None] = {}
            result = CommitResult()
            for write in writes:
                ref = (write.collection, write.key)
                if ref not in working:
                    current = self._collections.get(write.collection, {}).get(write.key)
                    working[ref] = copy.deepcopy(current) if current is not None else None
                state = working[ref]
                if not write.precondition.holds(state):
                    result.skipped.append(write)
                    continue
                state.update(copy.deepcopy(write.fields))
                result.applied.append(write)
            for (collection, key), state in working.items():
                if state is not None:
                    self._collections.setdefault(collection, {})[key] = state
            self.commit_log.append(result)
            return result


from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from auto_signout.config import settings
from auto_signout.store.base import (
    CommitResult,
    DocumentSnapshot,
    DocumentStore,
    Precondition,
    StagedWrite,
    StoreError,
    WriteBatch,
)


logger = logging.getLogger(__name__)

OPEN_SESSION_FILTER = {'time_out': None}


@dataclass(frozen=True)
class SessionPage:
    records: list[DocumentSnapshot]
    has_more: bool

    @property
    def last_key(self) -> str | None:
        return self.records[-1].key if self.records else None


class SessionStoreAdapter:
    """Typed session operations on top of a ``DocumentStore``.

    Owns the batch size rule: batches hold at most ``batch_limit`` writes and
    the limit always stays below the store's hard ceiling.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        batch_limit: int | None = None,
        batch_ceiling: int | None = None,
    ) -> None:
        limit = int(batch_limit if batch_limit is not None else settings.auto_sign_out_batch_limit)
        ceiling = int(batch_ceiling if batch_ceiling is not None else settings.store_batch_ceiling)
        if limit < 1 or limit >= ceiling:
            raise ValueError(f'batch limit {limit} must be between 1 and {ceiling - 1}')
        self.store = store
        self.batch_limit = limit
        self.batch_ceiling = ceiling

    def scan_open_sessions(self, collection: str, page_size: int, after_key: str | None = None) -> SessionPage:
        size = max(1, int(page_size))
        try:
            # One extra row answers has_more without a trailing empty query.
            rows = self.store.query(collection, where=OPEN_SESSION_FILTER, limit=size + 1, after_key=after_key)
        except StoreError:
            raise
        except Exception as exc:
            raise StoreError(f'open session scan failed for {collection}') from exc
        return SessionPage(records=rows[:size], has_more=len(rows) > size)

    def new_batch(self) -> WriteBatch:
        return WriteBatch(self.batch_limit)

    def stage_conditional_write(
        self,
        batch: WriteBatch,
        collection: str,
        key: str,
        fields: Mapping[str, Any],
        *,
        precondition: Precondition | None = None,
    ) -> StagedWrite:
        write = StagedWrite(
            collection=collection,
            key=key,
            fields=dict(fields),
            precondition=precondition or Precondition(),
        )
        batch.stage(write)
        return write

    def commit(self, batch: WriteBatch) -> CommitResult:
        if batch.is_empty():
            return CommitResult()
        try:
            return self.store.commit(batch.writes)
        except StoreError:
            raise
        except Exception as exc:
            raise StoreError(f'commit of {len(batch)} writes failed') from exc

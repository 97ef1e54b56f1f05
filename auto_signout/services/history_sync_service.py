from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from auto_signout.core.timestamps import to_millis
from auto_signout.store.base import DocumentStore, Precondition, StagedWrite


logger = logging.getLogger(__name__)

_OPEN_ENTRY_SCAN_LIMIT = 10


@dataclass(frozen=True)
class HistorySyncJob:
    history_collection: str
    owner_field: str
    owner_id: str
    closed_at: datetime


def close_matching_open_entry(
    store: DocumentStore,
    history_collection: str,
    owner_field: str,
    owner_id: str,
    now: datetime,
) -> bool:
    """Close the open history entry for ``owner_id``. Returns False when none was open."""
    open_entries = store.query(
        history_collection,
        where={owner_field: owner_id, 'time_out': None},
        limit=_OPEN_ENTRY_SCAN_LIMIT,
    )
    if not open_entries:
        logger.info('history_sync_no_open_entry collection=%s owner=%s', history_collection, owner_id)
        return False
    if len(open_entries) > 1:
        logger.warning(
            'history_sync_multiple_open_entries collection=%s owner=%s count=%s',
            history_collection,
            owner_id,
            len(open_entries),
        )
    entry = max(open_entries, key=lambda snap: to_millis(snap.get('time_in')) or 0)
    result = store.commit(
        [
            StagedWrite(
                collection=history_collection,
                key=entry.key,
                fields={'time_out': now, 'last_sign_out': 'auto'},
                precondition=Precondition(null_fields=('time_out',)),
            )
        ]
    )
    closed = bool(result.applied)
    if closed:
        logger.info('history_sync_closed collection=%s owner=%s entry=%s', history_collection, owner_id, entry.key)
    return closed


def run_history_sync(store: DocumentStore, job: HistorySyncJob) -> bool:
    return close_matching_open_entry(store, job.history_collection, job.owner_field, job.owner_id, job.closed_at)

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Mapping

from auto_signout.config import CollectionConfig, settings
from auto_signout.core.time_provider import TimeProvider, default_time_provider
from auto_signout.core.timestamps import to_datetime, to_millis
from auto_signout.services.history_sync_service import HistorySyncJob, run_history_sync
from auto_signout.services.notification_dispatcher import (
    NotificationJob,
    build_auto_sign_out_notification,
    dispatch_notification,
)
from auto_signout.services.observability_counters import record_observability_event
from auto_signout.services.session_store import SessionStoreAdapter
from auto_signout.services.write_batcher import BatchAccumulator, FlushResult
from auto_signout.store.base import DocumentSnapshot, DocumentStore, Precondition, StagedWrite


logger = logging.getLogger(__name__)

LAST_SIGN_OUT_AUTO = 'auto'


class SessionAction(str, Enum):
    NOOP = 'noop'
    BACKFILL = 'backfill'
    FORCE_CLOSE = 'force_close'


def classify_record(data: Mapping[str, Any], *, now_ms: int, threshold_ms: int) -> SessionAction:
    if data.get('time_out') is not None:
        return SessionAction.NOOP
    time_in_ms = to_millis(data.get('time_in'))
    if time_in_ms is not None and now_ms - time_in_ms >= threshold_ms:
        return SessionAction.FORCE_CLOSE
    if 'last_sign_out' in data:
        return SessionAction.NOOP
    return SessionAction.BACKFILL


@dataclass
class ReconcileStats:
    collection: str
    pages: int = 0
    scanned: int = 0
    closed: int = 0
    backfilled: int = 0
    unchanged: int = 0
    skipped_conflicts: int = 0
    commits: int = 0
    history_closed: int = 0
    history_missing: int = 0
    history_failed: int = 0
    emails_sent: int = 0
    emails_failed: int = 0

    def absorb(self, flush: FlushResult) -> None:
        self.commits += flush.committed
        self.skipped_conflicts += flush.skipped
        for write in flush.applied_writes:
            if 'time_out' in write.fields:
                self.closed += 1
            else:
                self.backfilled += 1
        self.history_closed += flush.history_closed
        self.history_missing += flush.history_missing
        self.history_failed += flush.history_failed
        self.emails_sent += flush.emails_sent
        self.emails_failed += flush.emails_failed

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _force_close(
    collection: CollectionConfig,
    record: DocumentSnapshot,
    now: datetime,
) -> tuple[StagedWrite, HistorySyncJob, NotificationJob | None]:
    write = StagedWrite(
        collection=collection.name,
        key=record.key,
        fields={'time_out': now, 'last_sign_out': LAST_SIGN_OUT_AUTO},
        precondition=Precondition(null_fields=('time_out',), expected=(('time_in', record.get('time_in')),)),
    )
    history = HistorySyncJob(
        history_collection=collection.history_collection,
        owner_field=collection.owner_field,
        owner_id=record.key,
        closed_at=now,
    )
    notification = build_auto_sign_out_notification(
        collection.name,
        record.get('email'),
        time_in=to_datetime(record.get('time_in')),
        closed_at=now,
    )
    return write, history, notification


def _backfill(collection: CollectionConfig, record: DocumentSnapshot) -> StagedWrite:
    return StagedWrite(
        collection=collection.name,
        key=record.key,
        fields={'last_sign_out': None},
        precondition=Precondition(null_fields=('time_out',), absent_fields=('last_sign_out',)),
    )


def reconcile_collection(
    store: DocumentStore,
    collection: CollectionConfig,
    *,
    time_provider: TimeProvider = default_time_provider,
    page_size: int | None = None,
    batch_limit: int | None = None,
    threshold_hours: float | None = None,
    concurrency: int | None = None,
    history_sync: Callable[[HistorySyncJob], bool] | None = None,
    notify: Callable[[NotificationJob], bool] | None = None,
) -> dict[str, Any]:
    """Close every session in ``collection`` left open past the threshold.

    Pages through open sessions by key. Each page reads the clock once, stages
    its writes in size-bounded batches and commits them; history sync and
    notifications for a batch run only after that batch is committed. Store
    errors propagate and end the run for this collection; the next scheduled
    run starts again from the first key.
    """
    size = int(page_size or settings.auto_sign_out_page_size)
    hours = settings.auto_sign_out_threshold_hours if threshold_hours is None else threshold_hours
    threshold_ms = int(float(hours) * 60 * 60 * 1000)
    adapter = SessionStoreAdapter(store, batch_limit=batch_limit)
    accumulator = BatchAccumulator(
        adapter,
        history_sync=history_sync or (lambda job: run_history_sync(store, job)),
        notify=notify or dispatch_notification,
        concurrency=concurrency or settings.side_effect_concurrency,
    )
    stats = ReconcileStats(collection=collection.name)

    after_key: str | None = None
    while True:
        page = adapter.scan_open_sessions(collection.name, size, after_key)
        if not page.records:
            break
        stats.pages += 1
        now = time_provider.now()
        now_ms = int(now.timestamp() * 1000)

        for record in page.records:
            stats.scanned += 1
            action = classify_record(record.data, now_ms=now_ms, threshold_ms=threshold_ms)
            if action is SessionAction.NOOP:
                stats.unchanged += 1
                continue
            if action is SessionAction.FORCE_CLOSE:
                write, history, notification = _force_close(collection, record, now)
                full = accumulator.stage(write, history=history, notification=notification)
            else:
                full = accumulator.stage(_backfill(collection, record))
            if full:
                stats.absorb(accumulator.flush())

        stats.absorb(accumulator.flush())
        after_key = page.last_key
        logger.info(
            'auto_sign_out_page collection=%s records=%s last_key=%s closed=%s commits=%s',
            collection.name,
            len(page.records),
            after_key,
            stats.closed,
            stats.commits,
        )
        if not page.has_more:
            break

    record_observability_event(f'auto_sign_out_closed:{collection.name}', count=stats.closed)
    if stats.history_failed:
        record_observability_event(f'history_sync_failed:{collection.name}', count=stats.history_failed)
    logger.info('auto_sign_out_collection_done', extra={'stats': stats.as_dict()})
    return stats.as_dict()

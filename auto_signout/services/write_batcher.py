from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from auto_signout.core.task_group import run_bounded
from auto_signout.services.history_sync_service import HistorySyncJob
from auto_signout.services.notification_dispatcher import NotificationJob
from auto_signout.services.session_store import SessionStoreAdapter
from auto_signout.store.base import StagedWrite


logger = logging.getLogger(__name__)


@dataclass
class _Pending:
    write: StagedWrite
    history: HistorySyncJob | None = None
    notification: NotificationJob | None = None


@dataclass
class FlushResult:
    committed: int = 0
    applied: int = 0
    skipped: int = 0
    applied_writes: list[StagedWrite] = field(default_factory=list)
    history_closed: int = 0
    history_missing: int = 0
    history_failed: int = 0
    emails_sent: int = 0
    emails_failed: int = 0


class BatchAccumulator:
    """Stages conditional writes and runs their side effects after each commit.

    Side effects belong to the write that queued them: they run only when that
    write was applied by a successful commit. History sync jobs run first, in
    bounded concurrent groups; notifications follow one at a time.
    """

    def __init__(
        self,
        adapter: SessionStoreAdapter,
        *,
        history_sync: Callable[[HistorySyncJob], bool],
        notify: Callable[[NotificationJob], bool],
        concurrency: int,
    ) -> None:
        self._adapter = adapter
        self._history_sync = history_sync
        self._notify = notify
        self._concurrency = max(1, int(concurrency))
        self._batch = adapter.new_batch()
        self._pending: list[_Pending] = []

    def stage(
        self,
        write: StagedWrite,
        *,
        history: HistorySyncJob | None = None,
        notification: NotificationJob | None = None,
    ) -> bool:
        """Stage one write. Returns True when the batch is full and must be flushed."""
        self._adapter.stage_conditional_write(
            self._batch,
            write.collection,
            write.key,
            write.fields,
            precondition=write.precondition,
        )
        self._pending.append(_Pending(write=write, history=history, notification=notification))
        return self._batch.is_full()

    def flush(self) -> FlushResult:
        result = FlushResult()
        if self._batch.is_empty():
            return result
        batch, pending = self._batch, self._pending
        self._batch = self._adapter.new_batch()
        self._pending = []

        # Store failures propagate from here; nothing below runs for this batch.
        commit = self._adapter.commit(batch)
        applied_refs = commit.applied_keys()
        result.committed = 1
        result.applied = len(commit.applied)
        result.skipped = len(commit.skipped)
        result.applied_writes = list(commit.applied)
        if commit.skipped:
            logger.info(
                'auto_sign_out_writes_skipped count=%s keys=%s',
                len(commit.skipped),
                ','.join(write.key for write in commit.skipped),
            )

        effective = [item for item in pending if (item.write.collection, item.write.key) in applied_refs]
        self._run_history_sync(effective, result)
        self._run_notifications(effective, result)
        return result

    def _run_history_sync(self, effective: list[_Pending], result: FlushResult) -> None:
        jobs = [item.history for item in effective if item.history is not None]
        outcomes = run_bounded(self._history_sync, jobs, max_in_flight=self._concurrency, label='history_sync')
        for outcome in outcomes:
            if not outcome.ok:
                result.history_failed += 1
                logger.error(
                    'history_sync_failed',
                    extra={
                        'collection': outcome.item.history_collection,
                        'owner_id': outcome.item.owner_id,
                        'error': str(outcome.error),
                    },
                )
            elif outcome.result:
                result.history_closed += 1
            else:
                result.history_missing += 1

    def _run_notifications(self, effective: list[_Pending], result: FlushResult) -> None:
        for item in effective:
            if item.notification is None:
                continue
            try:
                sent = self._notify(item.notification)
            except Exception:
                logger.exception('auto_sign_out_notification_failed to=%s', item.notification.to)
                sent = False
            if sent:
                result.emails_sent += 1
            else:
                result.emails_failed += 1

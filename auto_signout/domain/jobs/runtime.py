from __future__ import annotations

import logging
from typing import Any, Callable

from auto_signout.config import CollectionConfig, settings
from auto_signout.db import SessionLocal
from auto_signout.metrics import run_timed_job
from auto_signout.services.observability_counters import record_observability_event
from auto_signout.store.base import DocumentStore
from auto_signout.store.sql_store import SqlDocumentStore


logger = logging.getLogger(__name__)

CollectionTask = Callable[[DocumentStore, CollectionConfig], dict[str, Any]]


def build_document_store() -> DocumentStore:
    return SqlDocumentStore(SessionLocal)


def with_store(
    task: CollectionTask,
    *,
    job_label: str,
    store: DocumentStore | None = None,
    collections: list[CollectionConfig] | None = None,
) -> dict[str, dict[str, Any]]:
    run_store = store or build_document_store()
    results: dict[str, dict[str, Any]] = {}
    for collection in collections if collections is not None else settings.auto_sign_out_collections:
        try:
            results[collection.name] = task(run_store, collection)
            record_observability_event(f'job_success_count:{job_label}:{collection.name}')
        except Exception as exc:
            logger.exception('job_collection_failure collection=%s job=%s', collection.name, job_label)
            record_observability_event(f'job_failure_count:{job_label}:{collection.name}')
            results[collection.name] = {'collection': collection.name, 'error': str(exc)}
    return results


def run_job(
    label: str,
    task: CollectionTask,
    *,
    store: DocumentStore | None = None,
    collections: list[CollectionConfig] | None = None,
) -> dict[str, dict[str, Any]]:
    return run_timed_job(label, lambda: with_store(task, job_label=label, store=store, collections=collections))

from __future__ import annotations

from typing import Any

from auto_signout.config import CollectionConfig
from auto_signout.domain.jobs.runtime import run_job
from auto_signout.services.auto_sign_out_job import reconcile_collection
from auto_signout.store.base import DocumentStore


JOB_LABEL = 'auto_sign_out'


def execute(
    store: DocumentStore | None = None,
    *,
    collections: list[CollectionConfig] | None = None,
) -> dict[str, dict[str, Any]]:
    return run_job(
        JOB_LABEL,
        lambda run_store, collection: reconcile_collection(run_store, collection),
        store=store,
        collections=collections,
    )

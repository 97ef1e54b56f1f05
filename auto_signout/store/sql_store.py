from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Mapping, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from auto_signout.metrics import timed_service
from auto_signout.models import StoredDocument
from auto_signout.store.base import CommitResult, DocumentSnapshot, DocumentStore, StagedWrite, StoreCommitError, StoreError


logger = logging.getLogger(__name__)


def _encode(value: Any) -> Any:
    # JSON columns hold timestamps as ISO-8601 strings in UTC.
    if isinstance(value, datetime):
        if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


def _field_expr(name: str, expected: Any):
    expr = StoredDocument.data[name]
    if isinstance(expected, bool):
        return expr.as_boolean()
    if isinstance(expected, int):
        return expr.as_integer()
    if isinstance(expected, float):
        return expr.as_float()
    return expr.as_string()


class SqlDocumentStore(DocumentStore):
    """Document store kept in one SQL table of JSON documents.

    Each public call opens its own session, so instances are safe to share
    between worker threads.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def _snapshot(self, row: StoredDocument) -> DocumentSnapshot:
        return DocumentSnapshot(collection=row.collection, key=row.doc_id, data=dict(row.data or {}))

    def put(self, collection: str, key: str, data: Mapping[str, Any]) -> None:
        db: Session = self._session_factory()
        try:
            row = db.get(StoredDocument, (collection, str(key)))
            if row is None:
                db.add(StoredDocument(collection=collection, doc_id=str(key), data=_encode(dict(data))))
            else:
                row.data = _encode(dict(data))
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreError(f'put failed for {collection}/{key}') from exc
        finally:
            db.close()

    def get(self, collection: str, key: str) -> DocumentSnapshot | None:
        db: Session = self._session_factory()
        try:
            row = db.get(StoredDocument, (collection, str(key)))
            return self._snapshot(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise StoreError(f'get failed for {collection}/{key}') from exc
        finally:
            db.close()

    @timed_service('sql_store.query')
    def query(
        self,
        collection: str,
        *,
        where: Mapping[str, Any] | None = None,
        limit: int,
        after_key: str | None = None,
    ) -> list[DocumentSnapshot]:
        db: Session = self._session_factory()
        try:
            q = db.query(StoredDocument).filter(StoredDocument.collection == collection)
            for name, expected in (where or {}).items():
                expr = _field_expr(name, expected)
                if expected is None:
                    q = q.filter(expr.is_(None))
                else:
                    q = q.filter(expr == _encode(expected))
            if after_key is not None:
                q = q.filter(StoredDocument.doc_id > after_key)
            rows = q.order_by(StoredDocument.doc_id.asc()).limit(int(limit)).all()
            return [self._snapshot(row) for row in rows]
        except SQLAlchemyError as exc:
            raise StoreError(f'query failed for {collection}') from exc
        finally:
            db.close()

    @timed_service('sql_store.commit')
    def commit(self, writes: Sequence[StagedWrite]) -> CommitResult:
        result = CommitResult()
        if not writes:
            return result
        db: Session = self._session_factory()
        try:
            for write in writes:
                row = (
                    db.query(StoredDocument)
                    .filter(StoredDocument.collection == write.collection, StoredDocument.doc_id == write.key)
                    .with_for_update()
                    .first()
                )
                current = dict(row.data or {}) if row is not None else None
                if not write.precondition.holds(current):
                    result.skipped.append(write)
                    continue
                current.update(_encode(write.fields))
                row.data = current
                result.applied.append(write)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error('sql_store_commit_failed', extra={'writes': len(writes), 'error': str(exc)})
            raise StoreCommitError(f'commit of {len(writes)} writes failed') from exc
        finally:
            db.close()
        return result

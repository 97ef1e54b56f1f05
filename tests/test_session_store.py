import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from auto_signout.db import Base
from auto_signout.models import StoredDocument
from auto_signout.services.session_store import SessionStoreAdapter
from auto_signout.store.base import BatchCapacityError, Precondition, StagedWrite, StoreCommitError, StoreError, WriteBatch
from auto_signout.store.memory_store import MemoryDocumentStore
from auto_signout.store.sql_store import SqlDocumentStore


T0 = datetime(2026, 2, 16, 3, 0, tzinfo=timezone.utc)


class _BrokenStore(MemoryDocumentStore):
    def query(self, collection, **kwargs):
        raise RuntimeError('network down')


class SqlDocumentStoreTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_session_store.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

    @classmethod
    def tearDownClass(cls):
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        db = self._session_factory()
        try:
            db.query(StoredDocument).delete()
            db.commit()
        finally:
            db.close()
        self.store = SqlDocumentStore(self._session_factory)

    def _seed_open_and_closed(self):
        self.store.put('students', 'u3', {'time_in': T0, 'time_out': None})
        self.store.put('students', 'u1', {'time_in': T0})
        self.store.put('students', 'u2', {'time_in': T0, 'time_out': T0})
        self.store.put('students', 'u4', {'time_in': 'garbage', 'time_out': None, 'last_sign_out': 'auto'})
        self.store.put('tutors', 'u0', {'time_in': T0, 'time_out': None})

    def test_open_filter_matches_null_and_missing_time_out_in_key_order(self):
        self._seed_open_and_closed()
        rows = self.store.query('students', where={'time_out': None}, limit=10)
        self.assertEqual([row.key for row in rows], ['u1', 'u3', 'u4'])
        self.assertEqual(rows[0].get('time_in'), T0.isoformat())

    def test_keyset_cursor_resumes_strictly_after_key(self):
        self._seed_open_and_closed()
        rows = self.store.query('students', where={'time_out': None}, limit=10, after_key='u1')
        self.assertEqual([row.key for row in rows], ['u3', 'u4'])
        rows = self.store.query('students', where={'time_out': None}, limit=1, after_key='u3')
        self.assertEqual([row.key for row in rows], ['u4'])

    def test_equality_filter_on_string_field(self):
        self.store.put('student_history', 'h1', {'student_id': 'u1', 'time_out': None})
        self.store.put('student_history', 'h2', {'student_id': 'u2', 'time_out': None})
        self.store.put('student_history', 'h3', {'student_id': 'u1', 'time_out': T0})
        rows = self.store.query('student_history', where={'student_id': 'u1', 'time_out': None}, limit=5)
        self.assertEqual([row.key for row in rows], ['h1'])

    def test_commit_merges_fields_and_honours_preconditions(self):
        self._seed_open_and_closed()
        result = self.store.commit(
            [
                StagedWrite('students', 'u1', {'last_sign_out': None}, Precondition(absent_fields=('last_sign_out',))),
                StagedWrite('students', 'u2', {'time_out': T0}, Precondition(null_fields=('time_out',))),
                StagedWrite('students', 'missing', {'last_sign_out': None}),
            ]
        )
        self.assertEqual([w.key for w in result.applied], ['u1'])
        self.assertEqual(sorted(w.key for w in result.skipped), ['missing', 'u2'])
        self.assertEqual(self.store.get('students', 'u1').data, {'time_in': T0.isoformat(), 'last_sign_out': None})
        self.assertIsNone(self.store.get('students', 'missing'))

    def test_failed_commit_applies_nothing(self):
        self._seed_open_and_closed()
        with self.assertRaises(StoreCommitError):
            self.store.commit(
                [
                    StagedWrite('students', 'u1', {'last_sign_out': 'auto'}),
                    StagedWrite('students', 'u3', {'last_sign_out': object()}),
                ]
            )
        self.assertNotIn('last_sign_out', self.store.get('students', 'u1').data)


class SessionStoreAdapterTests(unittest.TestCase):
    def setUp(self):
        self.store = MemoryDocumentStore()
        for idx in range(5):
            self.store.put('students', f'u{idx}', {'time_in': T0, 'time_out': None})
        self.store.put('students', 'closed', {'time_in': T0, 'time_out': T0})

    def test_scan_reports_has_more_until_last_page(self):
        adapter = SessionStoreAdapter(self.store, batch_limit=2, batch_ceiling=3)
        first = adapter.scan_open_sessions('students', 2)
        self.assertEqual([r.key for r in first.records], ['u0', 'u1'])
        self.assertTrue(first.has_more)
        second = adapter.scan_open_sessions('students', 2, first.last_key)
        self.assertEqual([r.key for r in second.records], ['u2', 'u3'])
        self.assertTrue(second.has_more)
        last = adapter.scan_open_sessions('students', 2, second.last_key)
        self.assertEqual([r.key for r in last.records], ['u4'])
        self.assertFalse(last.has_more)

    def test_full_final_page_reports_no_more(self):
        adapter = SessionStoreAdapter(self.store)
        page = adapter.scan_open_sessions('students', 5)
        self.assertEqual(len(page.records), 5)
        self.assertFalse(page.has_more)

    def test_batch_limit_must_stay_below_ceiling(self):
        with self.assertRaises(ValueError):
            SessionStoreAdapter(self.store, batch_limit=500, batch_ceiling=500)
        with self.assertRaises(ValueError):
            SessionStoreAdapter(self.store, batch_limit=0)

    def test_batch_refuses_writes_past_limit(self):
        adapter = SessionStoreAdapter(self.store, batch_limit=2, batch_ceiling=3)
        batch = adapter.new_batch()
        adapter.stage_conditional_write(batch, 'students', 'u0', {'last_sign_out': None})
        adapter.stage_conditional_write(batch, 'students', 'u1', {'last_sign_out': None})
        self.assertTrue(batch.is_full())
        with self.assertRaises(BatchCapacityError):
            adapter.stage_conditional_write(batch, 'students', 'u2', {'last_sign_out': None})

    def test_commit_of_empty_batch_does_not_reach_store(self):
        adapter = SessionStoreAdapter(self.store)
        result = adapter.commit(adapter.new_batch())
        self.assertEqual(result.applied, [])
        self.assertEqual(self.store.commit_log, [])

    def test_unexpected_store_failure_is_reported_as_store_error(self):
        adapter = SessionStoreAdapter(_BrokenStore())
        with self.assertRaises(StoreError):
            adapter.scan_open_sessions('students', 10)

    def test_memory_commit_is_all_or_nothing(self):
        adapter = SessionStoreAdapter(self.store)
        batch = adapter.new_batch()
        adapter.stage_conditional_write(batch, 'students', 'u0', {'time_out': T0})
        self.store.fail_next_commits = 1
        with self.assertRaises(StoreCommitError):
            adapter.commit(batch)
        self.assertIsNone(self.store.get('students', 'u0').get('time_out'))


def test_write_batch_rejects_non_positive_limit():
    try:
        WriteBatch(0)
    except ValueError:
        return
    raise AssertionError('WriteBatch(0) should fail')

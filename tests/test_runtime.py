import unittest
from datetime import timedelta
from unittest.mock import patch

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi.testclient import TestClient

from auto_signout.config import CollectionConfig, settings
from auto_signout.core.time_provider import default_time_provider
from auto_signout.domain.jobs import auto_sign_out
from auto_signout.main import app
from auto_signout.scheduler import register_jobs
from auto_signout.services.observability_counters import clear_observability_events, count_observability_events
from auto_signout.store.memory_store import MemoryDocumentStore


COLLECTIONS = [
    CollectionConfig(name='students', history_collection='student_history', owner_field='student_id'),
    CollectionConfig(name='tutors', history_collection='tutor_history', owner_field='tutor_id'),
]


class _StudentsUnavailable(MemoryDocumentStore):
    def query(self, collection, **kwargs):
        if collection == 'students':
            raise ConnectionError('students shard offline')
        return super().query(collection, **kwargs)


class AutoSignOutRuntimeTests(unittest.TestCase):
    def setUp(self):
        clear_observability_events()

    def test_execute_runs_every_collection_in_order(self):
        store = MemoryDocumentStore()
        now = default_time_provider.now()
        store.put('students', 's1', {'time_in': now - timedelta(hours=9)})
        store.put('tutors', 't1', {'time_in': now - timedelta(hours=10)})
        store.put('tutor_history', 'th1', {'tutor_id': 't1', 'time_in': now - timedelta(hours=10), 'time_out': None})

        results = auto_sign_out.execute(store, collections=COLLECTIONS)

        self.assertEqual(list(results), ['students', 'tutors'])
        self.assertEqual(results['students']['closed'], 1)
        self.assertEqual(results['tutors']['history_closed'], 1)
        self.assertEqual(store.get('tutors', 't1').get('last_sign_out'), 'auto')
        self.assertEqual(count_observability_events('job_success_count:auto_sign_out:tutors'), 1)

    def test_failing_collection_does_not_stop_the_next_one(self):
        store = _StudentsUnavailable()
        store.put('tutors', 't1', {'time_in': default_time_provider.now() - timedelta(hours=9)})

        results = auto_sign_out.execute(store, collections=COLLECTIONS)

        self.assertIn('error', results['students'])
        self.assertEqual(results['tutors']['closed'], 1)
        self.assertEqual(count_observability_events('job_failure_count:auto_sign_out:students'), 1)

    def test_configured_collections_are_used_by_default(self):
        store = MemoryDocumentStore()
        results = auto_sign_out.execute(store)
        self.assertEqual(list(results), [c.name for c in settings.auto_sign_out_collections])


class SchedulerTests(unittest.TestCase):
    def test_interval_job_is_registered_from_settings(self):
        target = BackgroundScheduler(timezone='UTC')
        with patch.object(settings, 'auto_sign_out_interval_minutes', 60):
            register_jobs(target)
        job = target.get_job('auto_sign_out')
        self.assertIsNotNone(job)
        self.assertEqual(job.trigger.interval, timedelta(minutes=60))
        self.assertEqual(job.max_instances, 1)

    def test_disabled_job_is_not_registered(self):
        target = BackgroundScheduler(timezone='UTC')
        with patch.object(settings, 'auto_sign_out_enabled', False):
            register_jobs(target)
        self.assertIsNone(target.get_job('auto_sign_out'))


def test_health_reports_job_counters():
    clear_observability_events()
    client = TestClient(app)
    response = client.get('/health')
    assert response.status_code == 200
    body = response.json()
    assert body['status'] == 'ok'
    assert set(body['jobs']) == {'students', 'tutors'}
    assert body['jobs']['students']['failure_24h'] == 0

import sys

from sqlalchemy import text

from auto_signout.config import settings
from auto_signout.db import SessionLocal, engine
from auto_signout.domain.jobs.runtime import build_document_store
from auto_signout.models import StoredDocument
from auto_signout.scheduler import scheduler, start_scheduler, stop_scheduler
from auto_signout.services.email_service import email_configured
from auto_signout.services.session_store import SessionStoreAdapter


EXPECTED_SCHEDULER_JOBS = {'auto_sign_out'}

GREEN = '\033[32m'
RED = '\033[31m'
RESET = '\033[0m'


def run_check(name, fn):
    try:
        message = fn() or ''
        suffix = f' - {message}' if message else ''
        print(f'{GREEN}PASS{RESET} {name}{suffix}')
        return True
    except Exception as exc:
        print(f'{RED}FAIL{RESET} {name} - {exc}')
        return False


def check_db_connectivity():
    with engine.connect() as conn:
        conn.execute(text('SELECT 1'))
    return 'connect ok'


def check_document_table_accessible():
    db = SessionLocal()
    try:
        _ = db.query(StoredDocument).limit(1).all()
        return 'query ok'
    finally:
        db.close()


def check_open_session_scan():
    adapter = SessionStoreAdapter(build_document_store())
    counts = []
    for collection in settings.auto_sign_out_collections:
        page = adapter.scan_open_sessions(collection.name, 1)
        counts.append(f'{collection.name}={"open" if page.records else "none"}')
    return ' '.join(counts)


def check_email_credentials():
    if not settings.enable_email_notifications:
        return 'notifications disabled'
    if not email_configured():
        raise RuntimeError('RESEND_API_KEY or RESEND_FROM is empty')
    return 'credentials present'


def check_scheduler_jobs_registered():
    start_scheduler()
    try:
        registered = {job.id for job in scheduler.get_jobs()}
        missing = sorted(EXPECTED_SCHEDULER_JOBS - registered)
        if missing:
            raise RuntimeError(f'Missing jobs: {missing}')
        return f'jobs={sorted(registered)}'
    finally:
        stop_scheduler()


def main():
    checks = [
        ('Database connectivity', check_db_connectivity),
        ('Document table accessible', check_document_table_accessible),
        ('Open session scan', check_open_session_scan),
        ('Email credentials present', check_email_credentials),
        ('Scheduler jobs registered', check_scheduler_jobs_registered),
    ]

    all_ok = True
    for name, fn in checks:
        all_ok = run_check(name, fn) and all_ok
    sys.exit(0 if all_ok else 1)


if __name__ == '__main__':
    main()

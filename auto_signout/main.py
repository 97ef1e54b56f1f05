import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from auto_signout.config import settings
from auto_signout.db import Base, engine
from auto_signout.domain.jobs.auto_sign_out import JOB_LABEL
from auto_signout.scheduler import scheduler, start_scheduler, stop_scheduler
from auto_signout.services.observability_counters import count_observability_events
import auto_signout.models  # noqa: F401


logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s %(name)s %(message)s',
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    Base.metadata.create_all(bind=engine)
    start_scheduler()
    yield
    stop_scheduler()


app = FastAPI(title=settings.app_name, version='0.1.0', lifespan=lifespan)


@app.get('/health', status_code=200, tags=['health'])
def health_check():
    collections = [collection.name for collection in settings.auto_sign_out_collections]
    return {
        'status': 'ok',
        'app_name': settings.app_name,
        'env': settings.app_env,
        'scheduler_running': bool(scheduler.running),
        'jobs': {
            name: {
                'success_24h': count_observability_events(f'job_success_count:{JOB_LABEL}:{name}'),
                'failure_24h': count_observability_events(f'job_failure_count:{JOB_LABEL}:{name}'),
                'closed_24h': count_observability_events(f'auto_sign_out_closed:{name}'),
            }
            for name in collections
        },
    }

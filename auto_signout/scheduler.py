import logging

from apscheduler.schedulers.background import BackgroundScheduler

from auto_signout.config import settings
from auto_signout.domain.jobs import auto_sign_out


scheduler = BackgroundScheduler(timezone=settings.app_timezone)
logger = logging.getLogger(__name__)


def auto_sign_out_job():
    auto_sign_out.execute()


def register_jobs(target: BackgroundScheduler = scheduler) -> None:
    if not settings.auto_sign_out_enabled:
        logger.info('auto_sign_out_disabled')
        return
    target.add_job(
        auto_sign_out_job,
        'interval',
        minutes=settings.auto_sign_out_interval_minutes,
        id='auto_sign_out',
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )


def start_scheduler():
    register_jobs(scheduler)
    if not scheduler.running:
        scheduler.start()


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)

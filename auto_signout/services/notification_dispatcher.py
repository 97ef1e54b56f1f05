from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from auto_signout.config import settings
from auto_signout.core.time_provider import APP_ZONEINFO
from auto_signout.services.email_service import EmailDeliveryError, EmailPayload, send_email
from auto_signout.services.observability_counters import record_observability_event


logger = logging.getLogger(__name__)

AUTO_SIGN_OUT_SUBJECT = 'You were signed out automatically'

_ROLE_LABELS = {'students': 'student', 'tutors': 'tutor'}


@dataclass(frozen=True)
class NotificationJob:
    to: str
    subject: str
    body: str


def _format_instant(value: datetime | None) -> str:
    if value is None:
        return 'an unknown time'
    return value.astimezone(APP_ZONEINFO).strftime('%d %b %Y %H:%M %Z')


def build_auto_sign_out_notification(
    collection: str,
    email: object,
    *,
    time_in: datetime | None,
    closed_at: datetime,
) -> NotificationJob | None:
    to = email.strip() if isinstance(email, str) else ''
    if not to:
        return None
    role = _ROLE_LABELS.get(collection, collection.rstrip('s') or 'user')
    body = (
        f'Hello,\n\n'
        f'Your {role} session that started at {_format_instant(time_in)} was still open, '
        f'so it was closed automatically at {_format_instant(closed_at)}.\n\n'
        f'If you were still working, please sign in again.\n'
    )
    return NotificationJob(to=to, subject=AUTO_SIGN_OUT_SUBJECT, body=body)


def dispatch_notification(
    job: NotificationJob,
    *,
    sender: Callable[[EmailPayload], object] | None = None,
) -> bool:
    """Best-effort send. Failures are logged and reported as ``False``, never raised."""
    send = sender or send_email
    if not settings.enable_email_notifications:
        logger.info('auto_sign_out_email_skipped_disabled to=%s', job.to)
        return False
    try:
        send(EmailPayload(to=job.to, subject=job.subject, text=job.body))
    except (EmailDeliveryError, ValueError) as exc:
        logger.warning('auto_sign_out_email_failed to=%s error=%s', job.to, exc)
        record_observability_event('auto_sign_out_email_failed')
        return False
    except Exception:
        logger.exception('auto_sign_out_email_failed_unexpected to=%s', job.to)
        record_observability_event('auto_sign_out_email_failed')
        return False
    record_observability_event('auto_sign_out_email_sent')
    return True

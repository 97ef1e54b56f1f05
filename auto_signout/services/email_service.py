from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from auto_signout.config import settings


logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    pass


@dataclass(frozen=True)
class EmailPayload:
    to: str
    subject: str
    text: str | None = None
    html: str | None = None


def email_configured() -> bool:
    return bool(settings.resend_api_key and settings.resend_from)


def send_email(payload: EmailPayload) -> str | None:
    """Send one email through Resend. Returns the provider message id when given."""
    to = (payload.to or '').strip()
    if not to or not payload.subject or not (payload.text or payload.html):
        raise ValueError('to, subject, and text or html are required.')
    if not email_configured():
        raise EmailDeliveryError('email provider credentials are not configured')

    body: dict[str, str] = {'from': settings.resend_from, 'to': to, 'subject': payload.subject}
    if payload.html:
        body['html'] = payload.html
    else:
        body['text'] = payload.text or ''

    url = f"{settings.resend_api_base.rstrip('/')}/emails"
    headers = {'Authorization': f'Bearer {settings.resend_api_key}'}
    try:
        response = httpx.post(url, json=body, headers=headers, timeout=settings.email_timeout_seconds)
    except httpx.HTTPError as exc:
        raise EmailDeliveryError(f'email transport failed: {exc}') from exc

    if response.status_code >= 400:
        raise EmailDeliveryError(f'email provider rejected request status={response.status_code}')
    try:
        result = response.json()
    except ValueError:
        result = {}
    if isinstance(result, dict) and result.get('error'):
        raise EmailDeliveryError(f"email provider rejected request error={result.get('error')}")

    logger.info('email_sent', extra={'to': to, 'subject': payload.subject})
    return result.get('id') if isinstance(result, dict) else None

"""
Celery tasks for the invitation lifecycle.

Scheduled via CELERY_BEAT_SCHEDULE ("expire-stale-invitations", hourly).
"""
import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task
def expire_invitations() -> dict:
    """Mark PENDING invitations whose window has closed as EXPIRED."""
    from invitations.commands import expire_stale_invitations

    expired = expire_stale_invitations()
    return {"expired": expired}

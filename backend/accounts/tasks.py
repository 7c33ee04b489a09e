"""
Celery tasks for notification delivery.

Commands never send mail inline. They call ``notify`` which queues one of
these tasks; if the broker is unreachable the failure is logged and
counted, and the command's state change stands.

Usage:
    from accounts.tasks import notify, send_invitation_email_task
    notify(send_invitation_email_task, email, inviter, org_name, role, url)
"""
import logging

from celery import shared_task
from kombu.exceptions import OperationalError

from ops.metrics import record_notification_failure

logger = logging.getLogger(__name__)


def notify(task, *args, **kwargs) -> bool:
    """Queue ``task`` fire-and-forget. Returns False if it could not be queued."""
    try:
        task.delay(*args, **kwargs)
        return True
    except (OperationalError, OSError):
        logger.exception("Could not queue notification task %s", task.name)
        record_notification_failure(task.name.rsplit(".", 1)[-1])
        return False


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def send_invitation_email_task(self, email, inviter_name, organization_name, role, accept_url):
    from accounts.email_service import send_invitation_email

    sent = send_invitation_email(email, inviter_name, organization_name, role, accept_url)
    if not sent and not self.request.is_eager:
        raise self.retry()
    return sent


@shared_task
def send_admin_approval_notification_task(user_id):
    from accounts.email_service import send_admin_approval_notification
    from accounts.models import User

    user = User.objects.filter(pk=user_id).first()
    if user is None:
        logger.warning("User %s not found for admin approval notification", user_id)
        return False
    return send_admin_approval_notification(user)


@shared_task
def send_approval_notification_task(user_id):
    from accounts.email_service import send_approval_notification
    from accounts.models import User

    user = User.objects.filter(pk=user_id).first()
    if user is None:
        logger.warning("User %s not found for approval notification", user_id)
        return False
    return send_approval_notification(user)


@shared_task
def send_rejection_notification_task(user_id, reason=""):
    from accounts.email_service import send_rejection_notification
    from accounts.models import User

    user = User.objects.filter(pk=user_id).first()
    if user is None:
        logger.warning("User %s not found for rejection notification", user_id)
        return False
    return send_rejection_notification(user, reason)

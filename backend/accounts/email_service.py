# accounts/email_service.py
"""
Email service for StitchCraft (the notifier).

Handles:
- Workshop invitation emails
- Admin notification emails for owners awaiting approval
- User approval/rejection notifications

All emails are sent from DEFAULT_FROM_EMAIL.
Admin notifications go to ADMIN_EMAIL.

Every function returns a bool and never raises: delivery is
fire-and-forget and a failed send must not undo the state change that
triggered it. Failures are logged and counted.
"""

import logging

from django.conf import settings
from django.core.mail import send_mail
from django.template.loader import render_to_string
from django.utils.html import strip_tags

from ops.metrics import record_notification_failure

logger = logging.getLogger(__name__)


def _send(template: str, subject: str, recipient: str, context: dict) -> bool:
    try:
        html_message = render_to_string(f"emails/{template}.html", context)
        plain_message = strip_tags(html_message)

        send_mail(
            subject=subject,
            message=plain_message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient],
            html_message=html_message,
            fail_silently=False,
        )
        logger.info("Email %s sent to %s", template, recipient)
        return True
    except Exception:
        logger.exception("Failed to send %s email to %s", template, recipient)
        record_notification_failure(template)
        return False


def send_invitation_email(email: str, inviter_name: str, organization_name: str, role: str, accept_url: str) -> bool:
    """
    Send a workshop invitation.

    ``accept_url`` carries the bearer token; it only ever travels in the
    message body.
    """
    context = {
        "inviter_name": inviter_name,
        "organization_name": organization_name,
        "role": role.title(),
        "accept_url": accept_url,
        "expiry_days": settings.INVITATION_EXPIRY_DAYS,
    }
    return _send(
        "invitation",
        f"{inviter_name} invited you to join {organization_name} on StitchCraft",
        email,
        context,
    )


def send_admin_approval_notification(user) -> bool:
    """
    Notify admin of a new owner pending approval.

    Args:
        user: User model instance

    Returns:
        True if email was sent successfully, False otherwise
    """
    organization = user.owned_organizations.order_by("created_at").first()

    context = {
        "user_email": user.email,
        "user_name": user.display_name,
        "business_name": organization.name if organization else "",
        "admin_url": f"{settings.FRONTEND_URL}/admin/pending-approvals",
    }
    return _send(
        "admin_approval_request",
        f"New workshop pending approval: {user.email}",
        settings.ADMIN_EMAIL,
        context,
    )


def send_approval_notification(user) -> bool:
    context = {
        "user_name": user.display_name,
        "login_url": f"{settings.FRONTEND_URL}/login",
    }
    return _send(
        "user_approved",
        "Your StitchCraft workshop has been approved!",
        user.email,
        context,
    )


def send_rejection_notification(user, reason: str = "") -> bool:
    context = {
        "user_name": user.display_name,
        "reason": reason,
    }
    return _send(
        "user_rejected",
        "Regarding your StitchCraft application",
        user.email,
        context,
    )

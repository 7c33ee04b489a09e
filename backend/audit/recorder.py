# audit/recorder.py
"""
Audit Recorder.

``record`` writes one AuditEntry inside its own savepoint. If the insert
fails the savepoint is rolled back, the failure is logged and counted, and
``None`` is returned: the surrounding business transaction is left intact.
"""

import logging

from django.db import DatabaseError, transaction

from audit.models import AuditEntry
from ops.metrics import record_audit_failure

logger = logging.getLogger(__name__)


def _client_ip(request):
    if request is None:
        return None
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.META.get("REMOTE_ADDR") or None


def record(actor, action, resource, resource_id=None, details=None, organization=None, request=None):
    """
    Append an audit entry.

    Args:
        actor: the User performing the action (None for system actions)
        action: an AuditAction value
        resource: resource type, e.g. "invitation" or "membership"
        resource_id: optional id of the affected resource
        details: JSON-serializable payload; never put raw tokens here
        organization: organization the entry belongs to, for scoped listings
        request: optional request, for ip address and user agent

    Returns:
        The saved AuditEntry, or None if it could not be written.
    """
    user_agent = ""
    if request is not None:
        user_agent = request.META.get("HTTP_USER_AGENT", "")[:255]

    try:
        with transaction.atomic():
            return AuditEntry.objects.create(
                actor=actor,
                actor_email=getattr(actor, "email", "") or "",
                action=action,
                resource_type=resource,
                resource_id="" if resource_id is None else str(resource_id),
                organization=organization,
                details=details or {},
                ip_address=_client_ip(request),
                user_agent=user_agent,
            )
    except DatabaseError:
        logger.exception(
            "Failed to record audit entry %s for %s:%s",
            action,
            resource,
            resource_id,
        )
        record_audit_failure()
        return None


def list_entries(actor, limit: int = 50):
    """Newest-first audit trail for the actor's resolved organization."""
    limit = max(1, min(int(limit), 200))
    return list(
        AuditEntry.objects.for_organization(actor.organization_id)
        .select_related("actor")
        .order_by("-created_at", "-id")[:limit]
    )

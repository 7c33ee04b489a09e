# audit/__init__.py
"""
Audit app - append-only trail of privileged state transitions.

Usage:
    from audit.recorder import record
    from audit.models import AuditAction

    record(user, AuditAction.MEMBER_REMOVED, "membership", membership.pk,
           details={"email": membership.user.email}, organization=org)

Recording is best-effort: a failed insert is logged and counted, and the
business operation that triggered it carries on.
"""

default_app_config = "audit.apps.AuditConfig"

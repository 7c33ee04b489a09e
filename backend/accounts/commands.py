# accounts/commands.py
"""
Command layer for accounts/authorization operations.

ALL security-critical mutations MUST go through these commands:
- Registration and admin approval
- Membership role and permission changes
- Membership removal

This ensures:
1. Consistent validation
2. Audit trail via audit.recorder
3. Single point of enforcement

Commands return a CommandResult instead of raising for expected failures.
``CommandResult.code`` is one of accounts.errors.ErrorCodes so views can map
it to an HTTP status.
"""

import logging

from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import IntegrityError, transaction
from django.utils.text import slugify

from accounts.errors import FORBIDDEN_DETAIL, ErrorCodes
from accounts.models import Organization, OrganizationMembership, User
from accounts.permission_defaults import (
    UnknownPermission,
    defaults_for_role,
    normalize_permissions,
)
from accounts.tasks import (
    notify,
    send_admin_approval_notification_task,
    send_approval_notification_task,
    send_rejection_notification_task,
)
from audit.models import AuditAction
from audit.recorder import record

logger = logging.getLogger(__name__)

SLUG_MAX_ATTEMPTS = 10
MIN_PASSWORD_LENGTH = 8


class CommandResult:
    def __init__(self, success: bool, data=None, error: str = None, code: str = None):
        self.success = success
        self.data = data
        self.error = error
        self.code = code

    def __repr__(self):
        if self.success:
            return f"CommandResult(ok, data={self.data!r})"
        return f"CommandResult(fail, code={self.code!r}, error={self.error!r})"

    @classmethod
    def ok(cls, data=None):
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, code: str = ErrorCodes.VALIDATION_ERROR, data=None):
        return cls(success=False, error=error, code=code, data=data)

    @classmethod
    def forbidden(cls):
        return cls.fail(FORBIDDEN_DETAIL, ErrorCodes.FORBIDDEN)


def _unique_slug(name: str):
    base_slug = slugify(name.strip())[:50] or "workshop"
    slug = base_slug
    for attempt in range(SLUG_MAX_ATTEMPTS):
        if not Organization.objects.filter(slug=slug).exists():
            return slug
        slug = f"{base_slug}-{attempt + 1}"
    return None


# =============================================================================
# Registration
# =============================================================================

@transaction.atomic
def register_user(
    email: str,
    password: str,
    name: str = "",
    role: str = User.Role.CLIENT,
    business_name: str = "",
    request=None,
) -> CommandResult:
    """
    Register a tailor (OWNER) or a client.

    Owners start PENDING and get their organization in the same
    transaction; the platform admin is notified. Workers are never
    registered directly: they sign up as clients and are promoted when
    they accept an invitation.
    """
    if role not in (User.Role.OWNER, User.Role.CLIENT):
        return CommandResult.fail("Only owners and clients can register.", ErrorCodes.INVALID_ROLE)

    email = User.objects.normalize_email(email)
    try:
        validate_email(email)
    except ValidationError:
        return CommandResult.fail("Enter a valid email address.", ErrorCodes.INVALID_EMAIL)

    if not password or len(password) < MIN_PASSWORD_LENGTH:
        return CommandResult.fail(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")

    business_name = (business_name or "").strip()
    if role == User.Role.OWNER and not business_name:
        return CommandResult.fail("Business name is required.")

    if User.objects.filter(email__iexact=email).exists():
        return CommandResult.fail("An account with this email already exists.", ErrorCodes.EMAIL_TAKEN)

    try:
        with transaction.atomic():
            user = User.objects.create_user(
                email=email,
                password=password,
                name=(name or "").strip(),
                role=role,
            )
    except IntegrityError:
        return CommandResult.fail("An account with this email already exists.", ErrorCodes.EMAIL_TAKEN)

    organization = None
    if role == User.Role.OWNER:
        slug = _unique_slug(business_name)
        if slug is None:
            transaction.set_rollback(True)
            return CommandResult.fail("Could not generate a unique workshop slug. Please try a different name.")
        organization = Organization.objects.create(name=business_name, slug=slug, owner=user)

    record(
        user,
        AuditAction.USER_REGISTERED,
        "user",
        user.pk,
        details={"email": user.email, "role": user.role, "status": user.status},
        organization=organization,
        request=request,
    )

    if user.status == User.Status.PENDING:
        notify(send_admin_approval_notification_task, user.pk)

    logger.info("Registered %s user %s", user.role, user.pk)
    return CommandResult.ok({"user": user, "organization": organization})


# =============================================================================
# Admin Approval
# =============================================================================

def _load_user_for_admin(admin_user, user_id):
    if admin_user is None or not admin_user.is_platform_admin:
        return None, CommandResult.forbidden()
    user = User.objects.select_for_update().filter(pk=user_id).first()
    if user is None:
        return None, CommandResult.fail("User not found.", ErrorCodes.NOT_FOUND)
    return user, None


def _set_status(admin_user, user, new_status, action, request, details=None):
    old_status = user.status
    user.status = new_status
    user.save(update_fields=["status"])
    record(
        admin_user,
        action,
        "user",
        user.pk,
        details={"email": user.email, "from": old_status, "to": new_status, **(details or {})},
        request=request,
    )
    logger.info("User %s status %s -> %s by %s", user.pk, old_status, new_status, admin_user.pk)


@transaction.atomic
def approve_user(admin_user, user_id, request=None) -> CommandResult:
    """Approve a pending owner (platform admin only)."""
    user, failure = _load_user_for_admin(admin_user, user_id)
    if failure:
        return failure

    if user.status != User.Status.PENDING:
        return CommandResult.fail("Only pending accounts can be approved.", ErrorCodes.INVALID_STATE)

    _set_status(admin_user, user, User.Status.APPROVED, AuditAction.USER_APPROVED, request)
    notify(send_approval_notification_task, user.pk)

    return CommandResult.ok({"status": user.status, "user_email": user.email})


@transaction.atomic
def reject_user(admin_user, user_id, reason: str = "", request=None) -> CommandResult:
    """
    Reject a pending owner (platform admin only).

    REJECTED users can no longer sign in.
    """
    user, failure = _load_user_for_admin(admin_user, user_id)
    if failure:
        return failure

    if user.status != User.Status.PENDING:
        return CommandResult.fail("Only pending accounts can be rejected.", ErrorCodes.INVALID_STATE)

    _set_status(admin_user, user, User.Status.REJECTED, AuditAction.USER_REJECTED, request, {"reason": reason})
    notify(send_rejection_notification_task, user.pk, reason)

    return CommandResult.ok({"status": user.status, "user_email": user.email, "reason": reason})


@transaction.atomic
def suspend_user(admin_user, user_id, request=None) -> CommandResult:
    user, failure = _load_user_for_admin(admin_user, user_id)
    if failure:
        return failure

    if user.pk == admin_user.pk:
        return CommandResult.fail("You cannot suspend your own account.", ErrorCodes.SELF_MODIFICATION)
    if user.status not in (User.Status.APPROVED, User.Status.ACTIVE):
        return CommandResult.fail("Only active accounts can be suspended.", ErrorCodes.INVALID_STATE)

    _set_status(admin_user, user, User.Status.SUSPENDED, AuditAction.USER_SUSPENDED, request)
    return CommandResult.ok({"status": user.status, "user_email": user.email})


@transaction.atomic
def reactivate_user(admin_user, user_id, request=None) -> CommandResult:
    user, failure = _load_user_for_admin(admin_user, user_id)
    if failure:
        return failure

    if user.status != User.Status.SUSPENDED:
        return CommandResult.fail("Only suspended accounts can be reactivated.", ErrorCodes.INVALID_STATE)

    _set_status(admin_user, user, User.Status.ACTIVE, AuditAction.USER_REACTIVATED, request)
    return CommandResult.ok({"status": user.status, "user_email": user.email})


def list_pending_approvals() -> list:
    """Owners waiting for a platform admin, oldest first."""
    return list(
        User.objects.filter(status=User.Status.PENDING, is_active=True)
        .prefetch_related("owned_organizations")
        .order_by("date_joined")
    )


# =============================================================================
# Membership Management
# =============================================================================

def list_members(actor) -> list:
    """Memberships of the actor's resolved organization."""
    return list(
        OrganizationMembership.objects.filter(organization_id=actor.organization_id)
        .select_related("user")
        .order_by("created_at", "id")
    )


def _membership_in_scope(actor, membership_id):
    return (
        OrganizationMembership.objects.select_for_update()
        .select_related("user", "organization")
        .filter(pk=membership_id, organization_id=actor.organization_id)
        .first()
    )


@transaction.atomic
def update_membership(
    actor,  # ActorContext
    membership_id: int,
    role: str = None,
    permissions=None,
    apply_role_defaults: bool = False,
    request=None,
) -> CommandResult:
    """
    Change a member's role and/or explicit permission grants.

    Args:
        actor: The actor context (needs workers:manage)
        membership_id: ID of a membership in the actor's organization
        role: New membership role, if changing
        permissions: Full replacement list of permission codes, if changing
        apply_role_defaults: Replace grants with the suggested set for the
            (new) role

    A membership outside the actor's organization fails exactly like a
    missing permission. Nobody may change their own grant.
    """
    if not actor.has("workers:manage"):
        return CommandResult.forbidden()

    membership = _membership_in_scope(actor, membership_id)
    if membership is None:
        return CommandResult.forbidden()

    if membership.user_id == actor.user.pk:
        return CommandResult.fail("You cannot change your own role or permissions.", ErrorCodes.SELF_MODIFICATION)

    if role is not None and role not in OrganizationMembership.Role.values:
        return CommandResult.fail(
            f"Invalid role. Must be one of: {', '.join(OrganizationMembership.Role.values)}",
            ErrorCodes.INVALID_ROLE,
        )

    if role is None and permissions is None and not apply_role_defaults:
        return CommandResult.fail("Nothing to update.")

    new_role = role or membership.role
    if apply_role_defaults:
        new_permissions = defaults_for_role(new_role)
    elif permissions is not None:
        try:
            new_permissions = normalize_permissions(permissions)
        except UnknownPermission as exc:
            return CommandResult.fail(str(exc), ErrorCodes.INVALID_PERMISSION, data={"invalid": exc.codes})
    else:
        new_permissions = sorted(membership.permission_set)

    before = {"role": membership.role, "permissions": sorted(membership.permission_set)}

    membership.role = new_role
    membership.set_permissions(new_permissions)
    membership.save(update_fields=["role", "permissions", "updated_at"])

    after = {"role": membership.role, "permissions": list(membership.permissions)}
    record(
        actor.user,
        AuditAction.MEMBER_UPDATED,
        "membership",
        membership.pk,
        details={
            "user_email": membership.user.email,
            "before": before,
            "after": after,
            "granted": sorted(set(after["permissions"]) - set(before["permissions"])),
            "revoked": sorted(set(before["permissions"]) - set(after["permissions"])),
        },
        organization=membership.organization,
        request=request,
    )

    return CommandResult.ok(membership)


@transaction.atomic
def remove_membership(
    actor,  # ActorContext
    membership_id: int,
    request=None,
) -> CommandResult:
    """
    Remove a member from the actor's organization.

    The row is deleted; the audit entry keeps the history.
    """
    if not actor.has("workers:manage"):
        return CommandResult.forbidden()

    membership = _membership_in_scope(actor, membership_id)
    if membership is None:
        return CommandResult.forbidden()

    if membership.user_id == actor.user.pk:
        return CommandResult.fail("You cannot remove yourself from the workshop.", ErrorCodes.SELF_REMOVAL)

    if membership.organization.is_owned_by(membership.user):
        return CommandResult.forbidden()

    details = {
        "user_email": membership.user.email,
        "role": membership.role,
        "permissions": sorted(membership.permission_set),
    }
    organization = membership.organization
    removed_id = membership.pk
    membership.delete()

    record(
        actor.user,
        AuditAction.MEMBER_REMOVED,
        "membership",
        removed_id,
        details=details,
        organization=organization,
        request=request,
    )

    return CommandResult.ok({"removed": True})

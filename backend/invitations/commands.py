# invitations/commands.py
"""
Invitation lifecycle commands.

States: PENDING -> ACCEPTED | EXPIRED (resend can bring EXPIRED back to
PENDING with a new token).

Every transition on an existing invitation is a compare-and-set UPDATE
guarded by the state it expects to find, so two concurrent resends, or a
resend racing an accept, resolve to exactly one winner.

Tokens: ``secrets.token_urlsafe(32)``, stored as SHA-256. The raw value is
only returned to the caller of create/resend (for the notifier) and never
logged; logs and audit entries use ``Invitation.token_fingerprint``.
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import IntegrityError, transaction
from django.utils import timezone

from accounts.authz import authorize, parse_organization_id
from accounts.commands import CommandResult
from accounts.errors import ErrorCodes
from accounts.models import OrganizationMembership, User
from accounts.tasks import notify, send_invitation_email_task
from audit.models import AuditAction
from audit.recorder import record
from invitations.models import Invitation, invitation_window
from ops.metrics import record_invitation_transition

logger = logging.getLogger(__name__)

MANAGE_WORKERS = "workers:manage"


def _generate_token() -> str:
    """Generate a secure random invitation token."""
    return secrets.token_urlsafe(32)


def _hash_token(token: str) -> str:
    """Hash a token using SHA-256."""
    return hashlib.sha256(token.encode()).hexdigest()


def build_accept_url(token: str) -> str:
    return f"{settings.FRONTEND_URL}/accept-invitation?token={token}"


def _send_invitation(invitation: Invitation, inviter, token: str) -> None:
    notify(
        send_invitation_email_task,
        invitation.email,
        inviter.display_name,
        invitation.organization.name,
        invitation.role,
        build_accept_url(token),
    )


def _is_member(organization, email: str) -> bool:
    if organization.owner.email.lower() == email:
        return True
    return OrganizationMembership.objects.filter(
        organization=organization,
        user__email__iexact=email,
    ).exists()


def _is_uuid(value) -> bool:
    if value is None:
        return False
    try:
        Invitation._meta.pk.to_python(value)
    except ValidationError:
        return False
    return True


# =============================================================================
# Create
# =============================================================================

@transaction.atomic
def create_invitation(
    inviter,
    organization_id,
    email: str,
    role: str = OrganizationMembership.Role.WORKER,
    request=None,
) -> CommandResult:
    """
    Invite ``email`` to join the organization with membership ``role``.

    Requires workers:manage in the organization. The invitation is
    committed whether or not the notification could be queued; resend
    recovers from a lost email.

    Returns:
        CommandResult with {"invitation", "token", "accept_url"}
    """
    scope = authorize(inviter, organization_id, MANAGE_WORKERS)
    if scope is None:
        return CommandResult.forbidden()
    organization = scope.organization

    if role not in OrganizationMembership.Role.values:
        return CommandResult.fail(
            f"Invalid role. Must be one of: {', '.join(OrganizationMembership.Role.values)}",
            ErrorCodes.INVALID_ROLE,
        )

    email = (email or "").strip().lower()
    try:
        validate_email(email)
    except ValidationError:
        return CommandResult.fail("Enter a valid email address.", ErrorCodes.INVALID_EMAIL)

    if _is_member(organization, email):
        return CommandResult.fail("User is already a member of this workshop.", ErrorCodes.ALREADY_MEMBER)

    if Invitation.objects.pending().for_email(organization.pk, email).exists():
        return CommandResult.fail(
            "An invitation is already pending for this email.",
            ErrorCodes.DUPLICATE_PENDING_INVITATION,
        )

    token = _generate_token()
    now = timezone.now()
    try:
        with transaction.atomic():
            invitation = Invitation.objects.create(
                token_hash=_hash_token(token),
                organization=organization,
                email=email,
                role=role,
                invited_by=inviter,
                status=Invitation.Status.PENDING,
                created_at=now,
                expires_at=now + invitation_window(),
                updated_at=now,
            )
    except IntegrityError:
        return CommandResult.fail(
            "An invitation is already pending for this email.",
            ErrorCodes.DUPLICATE_PENDING_INVITATION,
        )

    _send_invitation(invitation, inviter, token)

    record(
        inviter,
        AuditAction.INVITATION_CREATED,
        "invitation",
        invitation.pk,
        details={
            "email": email,
            "role": role,
            "token_fingerprint": invitation.token_fingerprint,
        },
        organization=organization,
        request=request,
    )
    record_invitation_transition("created")
    logger.info(
        "Invitation %s created for org %s (token %s)",
        invitation.pk,
        organization.pk,
        invitation.token_fingerprint,
    )

    return CommandResult.ok({
        "invitation": invitation,
        "token": token,
        "accept_url": build_accept_url(token),
    })


# =============================================================================
# Resend
# =============================================================================

@transaction.atomic
def resend_invitation(actor, invitation_id, organization_id=None, request=None) -> CommandResult:
    """
    Rotate the token, restart the expiry window and re-send the email.

    Args:
        actor: the requesting User (needs workers:manage in the
            invitation's organization)
        invitation_id: UUID of the invitation
        organization_id: organization named by the caller, if any; it
            must match the invitation's

    An unknown invitation and one the actor may not manage fail the same
    way. The old link stops working as soon as this commits.
    """
    invitation = (
        Invitation.objects.select_related("organization")
        .filter(pk=invitation_id)
        .first()
        if _is_uuid(invitation_id) else None
    )
    if invitation is None:
        return CommandResult.forbidden()
    if organization_id is not None and parse_organization_id(organization_id) != invitation.organization_id:
        return CommandResult.forbidden()

    scope = authorize(actor, invitation.organization_id, MANAGE_WORKERS)
    if scope is None or scope.organization_id != invitation.organization_id:
        return CommandResult.forbidden()

    if invitation.status not in (Invitation.Status.PENDING, Invitation.Status.EXPIRED):
        return CommandResult.fail("Only pending or expired invitations can be resent.", ErrorCodes.INVALID_STATE)

    now = timezone.now()
    cooldown = timedelta(seconds=settings.INVITATION_RESEND_COOLDOWN_SECONDS)
    if invitation.updated_at > now - cooldown:
        return CommandResult.fail(
            "Please wait a minute before resending this invitation.",
            ErrorCodes.TOO_SOON,
        )

    if invitation.status == Invitation.Status.EXPIRED:
        other_pending = (
            Invitation.objects.pending()
            .for_email(invitation.organization_id, invitation.email)
            .exclude(pk=invitation.pk)
            .exists()
        )
        if other_pending:
            return CommandResult.fail(
                "Another invitation is already pending for this email.",
                ErrorCodes.DUPLICATE_PENDING_INVITATION,
            )

    old_fingerprint = invitation.token_fingerprint
    token = _generate_token()
    token_hash = _hash_token(token)

    try:
        with transaction.atomic():
            updated = Invitation.objects.filter(
                pk=invitation.pk,
                status=invitation.status,
                token_hash=invitation.token_hash,
                updated_at=invitation.updated_at,
            ).update(
                token_hash=token_hash,
                status=Invitation.Status.PENDING,
                created_at=now,
                expires_at=now + invitation_window(),
                updated_at=now,
            )
    except IntegrityError:
        return CommandResult.fail(
            "Another invitation is already pending for this email.",
            ErrorCodes.DUPLICATE_PENDING_INVITATION,
        )

    if updated != 1:
        logger.info("Invitation %s changed concurrently; resend aborted", invitation.pk)
        return CommandResult.fail("Invitation was modified concurrently. Please retry.", ErrorCodes.INVALID_STATE)

    previous_status = invitation.status
    invitation.refresh_from_db()

    _send_invitation(invitation, actor, token)

    record(
        actor,
        AuditAction.INVITATION_RESENT,
        "invitation",
        invitation.pk,
        details={
            "email": invitation.email,
            "previous_status": previous_status,
            "old_token_fingerprint": old_fingerprint,
            "new_token_fingerprint": invitation.token_fingerprint,
        },
        organization=invitation.organization,
        request=request,
    )
    record_invitation_transition("resent")
    logger.info(
        "Invitation %s resent (token %s -> %s)",
        invitation.pk,
        old_fingerprint,
        invitation.token_fingerprint,
    )

    return CommandResult.ok({
        "invitation": invitation,
        "token": token,
        "accept_url": build_accept_url(token),
    })


# =============================================================================
# Validate
# =============================================================================

@dataclass(frozen=True)
class InvitationValidation:
    valid: bool
    reason: Optional[str] = None
    invitation: Optional[Invitation] = None

    NOT_FOUND = "not_found"
    NOT_PENDING = "not_pending"
    EXPIRED = "expired"


def _find_by_token(token) -> Optional[Invitation]:
    if not token or not isinstance(token, str):
        return None
    return (
        Invitation.objects.select_related("organization", "invited_by")
        .filter(token_hash=_hash_token(token))
        .first()
    )


def validate_invitation(token) -> InvitationValidation:
    """
    Read-only check of an accept link; no authentication required.

    Checks, in order: existence, PENDING status, expiry.
    """
    invitation = _find_by_token(token)
    if invitation is None:
        return InvitationValidation(False, InvitationValidation.NOT_FOUND)
    if invitation.status != Invitation.Status.PENDING:
        return InvitationValidation(False, InvitationValidation.NOT_PENDING, invitation)
    if invitation.is_expired():
        return InvitationValidation(False, InvitationValidation.EXPIRED, invitation)
    return InvitationValidation(True, None, invitation)


# =============================================================================
# Accept
# =============================================================================

def accept_invitation(acceptor, token, request=None) -> CommandResult:
    """
    Accept an invitation on behalf of the signed-in ``acceptor``.

    Membership creation, the PENDING -> ACCEPTED transition, the global
    role promotion and the audit entry commit together or not at all.
    Re-accepting an already accepted invitation by the same user who still
    holds the membership succeeds without changes.
    """
    if (
        acceptor is None
        or not getattr(acceptor, "is_authenticated", False)
        or not acceptor.can_sign_in
    ):
        return CommandResult.fail(
            "Sign in or create an account to accept this invitation.",
            ErrorCodes.AUTHENTICATION_REQUIRED,
            data={"requires_auth": True},
        )

    invitation = _find_by_token(token)
    if invitation is None:
        return CommandResult.fail("Invalid or expired invitation.", ErrorCodes.INVALID_OR_EXPIRED)

    if invitation.status == Invitation.Status.ACCEPTED:
        existing = OrganizationMembership.objects.filter(
            organization_id=invitation.organization_id,
            user=acceptor,
        ).first()
        if invitation.accepted_by_id == acceptor.pk and existing is not None:
            return CommandResult.ok(_accept_payload(invitation, already_member=True, membership=existing))
        return CommandResult.fail("Invalid or expired invitation.", ErrorCodes.INVALID_OR_EXPIRED)

    if invitation.status != Invitation.Status.PENDING or invitation.is_expired():
        return CommandResult.fail("Invalid or expired invitation.", ErrorCodes.INVALID_OR_EXPIRED)

    if invitation.invited_by_id == acceptor.pk:
        return CommandResult.fail("You cannot accept your own invitation.", ErrorCodes.SELF_INVITATION)

    if (acceptor.email or "").strip().lower() != invitation.email:
        return CommandResult.fail(
            "This invitation was sent to a different email address.",
            ErrorCodes.EMAIL_MISMATCH,
        )

    with transaction.atomic():
        membership, created = OrganizationMembership.objects.get_or_create(
            organization_id=invitation.organization_id,
            user=acceptor,
            defaults={"role": invitation.role, "permissions": []},
        )

        now = timezone.now()
        updated = Invitation.objects.filter(
            pk=invitation.pk,
            status=Invitation.Status.PENDING,
            token_hash=invitation.token_hash,
        ).update(
            status=Invitation.Status.ACCEPTED,
            accepted_at=now,
            accepted_by=acceptor,
            updated_at=now,
        )
        if updated != 1:
            # Lost a race with resend or another accept.
            transaction.set_rollback(True)
            logger.info("Invitation %s changed concurrently; accept aborted", invitation.pk)
            return CommandResult.fail("Invalid or expired invitation.", ErrorCodes.INVALID_OR_EXPIRED)

        promoted = False
        if not acceptor.is_owner_eligible and acceptor.role != User.Role.WORKER:
            User.objects.filter(pk=acceptor.pk).update(role=User.Role.WORKER)
            acceptor.role = User.Role.WORKER
            promoted = True

        record(
            acceptor,
            AuditAction.INVITATION_ACCEPTED,
            "invitation",
            invitation.pk,
            details={
                "email": invitation.email,
                "role": invitation.role,
                "membership_id": membership.pk,
                "membership_created": created,
                "role_promoted": promoted,
                "token_fingerprint": invitation.token_fingerprint,
            },
            organization=invitation.organization,
            request=request,
        )

    invitation.refresh_from_db()
    record_invitation_transition("accepted")
    logger.info("Invitation %s accepted by user %s", invitation.pk, acceptor.pk)

    return CommandResult.ok(_accept_payload(invitation, already_member=not created, membership=membership))


def _accept_payload(invitation, already_member: bool, membership=None) -> dict:
    return {
        "invitation": invitation,
        "organization": invitation.organization,
        "membership": membership,
        "already_member": already_member,
    }


# =============================================================================
# Listing & Expiry
# =============================================================================

def list_pending_invitations(actor) -> list:
    """PENDING invitations of the actor's organization, newest first."""
    return list(
        Invitation.objects.pending()
        .filter(organization_id=actor.organization_id)
        .select_related("invited_by")
        .order_by("-created_at")
    )


def expire_stale_invitations(now=None) -> int:
    """
    Mark PENDING invitations past ``expires_at`` as EXPIRED.

    ``updated_at`` is left alone so an invitation that just expired can be
    resent immediately.
    """
    count = Invitation.objects.stale(now or timezone.now()).update(status=Invitation.Status.EXPIRED)
    if count:
        record_invitation_transition("expired", count)
        logger.info("Expired %d stale invitation(s)", count)
    return count

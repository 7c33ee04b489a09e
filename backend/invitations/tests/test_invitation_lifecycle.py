# invitations/tests/test_invitation_lifecycle.py
"""
Tests for the invitation lifecycle: create, resend, validate, accept.

Tests cover:
- Token handling (hash only at rest, never in audit details)
- Duplicate / already-member guards
- Resend rotation, cooldown and revival of EXPIRED invitations
- Accept guards (self-invitation, email mismatch, expiry) and idempotency
- All-or-nothing acceptance
- Notifier failures never undo the state change
"""

import hashlib
import json
import uuid
from datetime import timedelta
from smtplib import SMTPException

import pytest
from django.core import mail
from django.db import DatabaseError
from django.utils import timezone
from kombu.exceptions import OperationalError
from prometheus_client import REGISTRY

from accounts.errors import ErrorCodes
from accounts.models import OrganizationMembership, User
from audit.models import AuditAction, AuditEntry
from invitations.commands import (
    InvitationValidation,
    accept_invitation,
    create_invitation,
    list_pending_invitations,
    resend_invitation,
    validate_invitation,
)
from invitations.models import Invitation


def sha256(token):
    return hashlib.sha256(token.encode()).hexdigest()


def backdate(invitation, **delta):
    """Push updated_at into the past so the resend cooldown has elapsed."""
    Invitation.objects.filter(pk=invitation.pk).update(updated_at=timezone.now() - timedelta(**delta))
    invitation.refresh_from_db()


def invite(owner, organization, email="newhire@example.test", role="WORKER"):
    result = create_invitation(owner, organization.pk, email, role)
    assert result.success, result
    return result.data["invitation"], result.data["token"]


def notification_failures(template):
    value = REGISTRY.get_sample_value(
        "stitchcraft_notification_failures_total",
        {"template": template},
    )
    return value or 0.0


@pytest.fixture
def new_hire(make_user):
    return make_user("newhire@example.test", User.Role.CLIENT, name="Esi")


# =============================================================================
# Create
# =============================================================================

@pytest.mark.django_db
class TestCreateInvitation:
    def test_owner_invites(self, owner, organization):
        result = create_invitation(owner, organization.pk, "NewHire@Example.TEST", "WORKER")

        assert result.success
        invitation = result.data["invitation"]
        token = result.data["token"]

        assert invitation.status == Invitation.Status.PENDING
        assert invitation.email == "newhire@example.test"
        assert invitation.role == "WORKER"
        assert invitation.invited_by == owner
        assert invitation.token_hash == sha256(token)
        assert invitation.expires_at - invitation.created_at == timedelta(days=7)
        assert result.data["accept_url"] == f"https://app.stitchcraft.test/accept-invitation?token={token}"

    def test_raw_token_is_not_stored(self, owner, organization):
        invitation, token = invite(owner, organization)

        stored = Invitation.objects.filter(pk=invitation.pk).values()[0]
        assert token not in json.dumps(stored, default=str)

    def test_email_is_sent_with_accept_link(self, owner, organization):
        invitation, token = invite(owner, organization)

        assert len(mail.outbox) == 1
        message = mail.outbox[0]
        assert message.to == ["newhire@example.test"]
        assert "Ama Couture" in message.subject
        assert f"token={token}" in message.body

    def test_audit_entry_has_fingerprint_only(self, owner, organization):
        invitation, token = invite(owner, organization)

        entry = AuditEntry.objects.get(action=AuditAction.INVITATION_CREATED)
        assert entry.actor == owner
        assert entry.organization == organization
        assert entry.resource_id == str(invitation.pk)
        assert entry.details["token_fingerprint"] == invitation.token_fingerprint
        assert token not in json.dumps(entry.details)
        assert invitation.token_hash not in json.dumps(entry.details)

    def test_manager_can_invite(self, manager_user, manager_membership, organization):
        result = create_invitation(manager_user, organization.pk, "newhire@example.test", "APPRENTICE")

        assert result.success
        assert result.data["invitation"].role == "APPRENTICE"

    def test_worker_without_grant_is_forbidden(self, worker, worker_membership, organization):
        result = create_invitation(worker, organization.pk, "newhire@example.test")

        assert result.code == ErrorCodes.FORBIDDEN
        assert not Invitation.objects.exists()

    def test_worker_with_grant_can_invite(self, worker, worker_membership, organization):
        worker_membership.set_permissions(["workers:manage"])
        worker_membership.save()

        assert create_invitation(worker, organization.pk, "newhire@example.test").success

    def test_outsider_gets_the_same_failure(self, outsider, other_organization, worker, worker_membership, organization):
        foreign = create_invitation(outsider, organization.pk, "newhire@example.test")
        missing = create_invitation(worker, organization.pk, "newhire@example.test")

        assert (foreign.code, foreign.error) == (missing.code, missing.error)

    def test_invalid_role(self, owner, organization):
        result = create_invitation(owner, organization.pk, "newhire@example.test", "OWNER")

        assert result.code == ErrorCodes.INVALID_ROLE

    def test_invalid_email(self, owner, organization):
        result = create_invitation(owner, organization.pk, "not-an-email")

        assert result.code == ErrorCodes.INVALID_EMAIL

    def test_existing_member(self, owner, organization, worker_membership):
        result = create_invitation(owner, organization.pk, "WORKER@x.com")

        assert result.code == ErrorCodes.ALREADY_MEMBER

    def test_owner_email_counts_as_member(self, manager_user, manager_membership, organization):
        result = create_invitation(manager_user, organization.pk, "ama@stitchcraft.test")

        assert result.code == ErrorCodes.ALREADY_MEMBER

    def test_duplicate_pending(self, owner, organization):
        invite(owner, organization)

        result = create_invitation(owner, organization.pk, "NEWHIRE@example.test")

        assert result.code == ErrorCodes.DUPLICATE_PENDING_INVITATION
        assert Invitation.objects.count() == 1

    def test_same_email_in_another_org_is_fine(self, owner, organization, outsider, other_organization):
        invite(owner, organization)

        assert create_invitation(outsider, other_organization.pk, "newhire@example.test").success

    def test_list_pending(self, owner, organization, actor_for):
        first, _ = invite(owner, organization, "one@example.test")
        second, _ = invite(owner, organization, "two@example.test")
        Invitation.objects.filter(pk=first.pk).update(status=Invitation.Status.EXPIRED)

        assert list_pending_invitations(actor_for(owner, organization)) == [second]


@pytest.mark.django_db
class TestNotifierFailures:
    def test_broker_down_keeps_invitation(self, owner, organization, monkeypatch):
        class UnreachableBroker:
            name = "accounts.tasks.send_invitation_email_task"

            def delay(self, *args, **kwargs):
                raise OperationalError("Connection refused")

        monkeypatch.setattr("invitations.commands.send_invitation_email_task", UnreachableBroker())
        before = notification_failures("send_invitation_email_task")

        result = create_invitation(owner, organization.pk, "newhire@example.test")

        assert result.success
        assert Invitation.objects.filter(pk=result.data["invitation"].pk, status="PENDING").exists()
        assert mail.outbox == []
        assert notification_failures("send_invitation_email_task") == before + 1

    def test_smtp_failure_keeps_invitation(self, owner, organization, monkeypatch):
        def refuse(*args, **kwargs):
            raise SMTPException("Mailbox unavailable")

        monkeypatch.setattr("accounts.email_service.send_mail", refuse)
        before = notification_failures("invitation")

        result = create_invitation(owner, organization.pk, "newhire@example.test")

        assert result.success
        assert Invitation.objects.count() == 1
        assert notification_failures("invitation") == before + 1


# =============================================================================
# Resend
# =============================================================================

@pytest.mark.django_db
class TestResendInvitation:
    def test_resend_rotates_token(self, owner, organization):
        invitation, old_token = invite(owner, organization)
        backdate(invitation, minutes=5)
        mail.outbox.clear()

        result = resend_invitation(owner, invitation.pk)

        assert result.success
        new_token = result.data["token"]
        assert new_token != old_token

        assert validate_invitation(old_token).reason == InvitationValidation.NOT_FOUND
        assert validate_invitation(new_token).valid

        assert len(mail.outbox) == 1
        assert f"token={new_token}" in mail.outbox[0].body

    def test_resend_restarts_the_window(self, owner, organization):
        invitation, _ = invite(owner, organization)
        Invitation.objects.filter(pk=invitation.pk).update(
            created_at=timezone.now() - timedelta(days=6),
            expires_at=timezone.now() + timedelta(days=1),
            updated_at=timezone.now() - timedelta(days=6),
        )

        result = resend_invitation(owner, invitation.pk)

        refreshed = result.data["invitation"]
        assert refreshed.expires_at > timezone.now() + timedelta(days=6)
        assert refreshed.expires_at - refreshed.created_at == timedelta(days=7)

    def test_audit_records_both_fingerprints(self, owner, organization):
        invitation, old_token = invite(owner, organization)
        old_fingerprint = invitation.token_fingerprint
        backdate(invitation, minutes=5)

        result = resend_invitation(owner, invitation.pk)

        entry = AuditEntry.objects.get(action=AuditAction.INVITATION_RESENT)
        assert entry.details["old_token_fingerprint"] == old_fingerprint
        assert entry.details["new_token_fingerprint"] == result.data["invitation"].token_fingerprint
        serialized = json.dumps(entry.details)
        assert old_token not in serialized
        assert result.data["token"] not in serialized

    def test_too_soon_after_create(self, owner, organization):
        invitation, token = invite(owner, organization)

        result = resend_invitation(owner, invitation.pk)

        assert result.code == ErrorCodes.TOO_SOON
        assert validate_invitation(token).valid

    def test_second_resend_within_cooldown(self, owner, organization):
        invitation, _ = invite(owner, organization)
        backdate(invitation, minutes=5)

        first = resend_invitation(owner, invitation.pk)
        second = resend_invitation(owner, invitation.pk)

        assert first.success
        assert second.code == ErrorCodes.TOO_SOON
        invitation.refresh_from_db()
        assert invitation.token_hash == sha256(first.data["token"])

    def test_cooldown_setting(self, owner, organization, settings):
        settings.INVITATION_RESEND_COOLDOWN_SECONDS = 5
        invitation, _ = invite(owner, organization)
        backdate(invitation, seconds=10)

        assert resend_invitation(owner, invitation.pk).success

    def test_accepted_cannot_be_resent(self, owner, organization, new_hire):
        invitation, token = invite(owner, organization)
        accept_invitation(new_hire, token)
        backdate(invitation, minutes=5)

        result = resend_invitation(owner, invitation.pk)

        assert result.code == ErrorCodes.INVALID_STATE

    def test_expired_can_be_revived(self, owner, organization):
        invitation, old_token = invite(owner, organization)
        Invitation.objects.filter(pk=invitation.pk).update(
            status=Invitation.Status.EXPIRED,
            expires_at=timezone.now() - timedelta(days=1),
        )
        backdate(invitation, days=8)

        result = resend_invitation(owner, invitation.pk)

        assert result.success
        revived = result.data["invitation"]
        assert revived.status == Invitation.Status.PENDING
        assert validate_invitation(result.data["token"]).valid
        assert not validate_invitation(old_token).valid
        entry = AuditEntry.objects.get(action=AuditAction.INVITATION_RESENT)
        assert entry.details["previous_status"] == Invitation.Status.EXPIRED

    def test_revival_blocked_by_newer_pending(self, owner, organization):
        stale, _ = invite(owner, organization)
        Invitation.objects.filter(pk=stale.pk).update(status=Invitation.Status.EXPIRED)
        backdate(stale, days=8)
        invite(owner, organization)

        result = resend_invitation(owner, stale.pk)

        assert result.code == ErrorCodes.DUPLICATE_PENDING_INVITATION

    def test_foreign_and_unknown_invitations_look_the_same(self, owner, organization, outsider, other_organization):
        invitation, _ = invite(owner, organization)
        backdate(invitation, minutes=5)

        foreign = resend_invitation(outsider, invitation.pk)
        unknown = resend_invitation(outsider, uuid.uuid4())
        malformed = resend_invitation(outsider, "not-a-uuid")

        assert foreign.code == unknown.code == malformed.code == ErrorCodes.FORBIDDEN
        assert foreign.error == unknown.error == malformed.error

    def test_organization_in_url_must_match(self, owner, organization, outsider, other_organization):
        invitation, _ = invite(owner, organization)
        backdate(invitation, minutes=5)

        result = resend_invitation(owner, invitation.pk, organization_id=other_organization.pk)

        assert result.code == ErrorCodes.FORBIDDEN

    def test_worker_without_grant(self, owner, organization, worker, worker_membership):
        invitation, _ = invite(owner, organization)
        backdate(invitation, minutes=5)

        assert resend_invitation(worker, invitation.pk).code == ErrorCodes.FORBIDDEN

    def test_concurrent_change_loses_the_race(self, owner, organization, monkeypatch):
        invitation, token = invite(owner, organization)
        backdate(invitation, minutes=5)

        def rival_resend_then_token():
            # Another request touches the row between our read and our write.
            Invitation.objects.filter(pk=invitation.pk).update(updated_at=timezone.now() - timedelta(minutes=1))
            return "rival-token"

        monkeypatch.setattr("invitations.commands._generate_token", rival_resend_then_token)

        result = resend_invitation(owner, invitation.pk)

        assert result.code == ErrorCodes.INVALID_STATE
        assert validate_invitation(token).valid
        assert not validate_invitation("rival-token").valid


# =============================================================================
# Validate
# =============================================================================

@pytest.mark.django_db
class TestValidateInvitation:
    def test_valid(self, owner, organization):
        invitation, token = invite(owner, organization)

        validation = validate_invitation(token)

        assert validation.valid
        assert validation.invitation == invitation

    @pytest.mark.parametrize("token", ["", None, "unknown-token", 12345])
    def test_unknown(self, token):
        validation = validate_invitation(token)

        assert not validation.valid
        assert validation.reason == InvitationValidation.NOT_FOUND
        assert validation.invitation is None

    def test_expired_by_time(self, owner, organization):
        invitation, token = invite(owner, organization)
        Invitation.objects.filter(pk=invitation.pk).update(expires_at=timezone.now() - timedelta(seconds=1))

        assert validate_invitation(token).reason == InvitationValidation.EXPIRED

    def test_expired_by_age(self, owner, organization):
        invitation, token = invite(owner, organization)
        Invitation.objects.filter(pk=invitation.pk).update(created_at=timezone.now() - timedelta(days=8))

        assert validate_invitation(token).reason == InvitationValidation.EXPIRED

    def test_not_pending(self, owner, organization):
        invitation, token = invite(owner, organization)
        Invitation.objects.filter(pk=invitation.pk).update(status=Invitation.Status.EXPIRED)

        assert validate_invitation(token).reason == InvitationValidation.NOT_PENDING

    def test_validation_has_no_side_effects(self, owner, organization):
        invitation, token = invite(owner, organization)
        before = Invitation.objects.filter(pk=invitation.pk).values().get()
        audit_count = AuditEntry.objects.count()

        validate_invitation(token)

        assert Invitation.objects.filter(pk=invitation.pk).values().get() == before
        assert AuditEntry.objects.count() == audit_count


# =============================================================================
# Accept
# =============================================================================

@pytest.mark.django_db
class TestAcceptInvitation:
    def test_accept_creates_membership_and_promotes(self, owner, organization, new_hire):
        invitation, token = invite(owner, organization, role="SENIOR")

        result = accept_invitation(new_hire, token)

        assert result.success
        assert result.data["already_member"] is False
        assert result.data["organization"] == organization

        membership = OrganizationMembership.objects.get(organization=organization, user=new_hire)
        assert membership.role == "SENIOR"
        assert membership.permissions == []

        invitation.refresh_from_db()
        assert invitation.status == Invitation.Status.ACCEPTED
        assert invitation.accepted_by == new_hire
        assert invitation.accepted_at is not None

        new_hire.refresh_from_db()
        assert new_hire.role == User.Role.WORKER

        entry = AuditEntry.objects.get(action=AuditAction.INVITATION_ACCEPTED)
        assert entry.actor == new_hire
        assert entry.details["membership_id"] == membership.pk
        assert entry.details["role_promoted"] is True
        assert token not in json.dumps(entry.details)

    def test_token_is_single_use(self, owner, organization, new_hire):
        _, token = invite(owner, organization)
        accept_invitation(new_hire, token)

        assert validate_invitation(token).reason == InvitationValidation.NOT_PENDING

    def test_email_match_is_case_insensitive(self, owner, organization, new_hire):
        _, token = invite(owner, organization, email="NewHire@EXAMPLE.test")

        assert accept_invitation(new_hire, token).success

    def test_requires_authentication(self, owner, organization):
        _, token = invite(owner, organization)

        result = accept_invitation(None, token)

        assert result.code == ErrorCodes.AUTHENTICATION_REQUIRED
        assert result.data == {"requires_auth": True}

    @pytest.mark.parametrize("blocked", [User.Status.SUSPENDED, User.Status.PENDING, User.Status.REJECTED])
    def test_user_who_cannot_sign_in(self, owner, organization, new_hire, blocked):
        invitation, token = invite(owner, organization)
        new_hire.status = blocked
        new_hire.save(update_fields=["status"])

        result = accept_invitation(new_hire, token)

        assert result.code == ErrorCodes.AUTHENTICATION_REQUIRED
        assert not OrganizationMembership.objects.filter(user=new_hire).exists()
        invitation.refresh_from_db()
        assert invitation.status == Invitation.Status.PENDING
        new_hire.refresh_from_db()
        assert new_hire.role == User.Role.CLIENT

    def test_unknown_token(self, new_hire):
        result = accept_invitation(new_hire, "forged-token")

        assert result.code == ErrorCodes.INVALID_OR_EXPIRED

    def test_expired(self, owner, organization, new_hire):
        invitation, token = invite(owner, organization)
        Invitation.objects.filter(pk=invitation.pk).update(expires_at=timezone.now() - timedelta(minutes=1))

        result = accept_invitation(new_hire, token)

        assert result.code == ErrorCodes.INVALID_OR_EXPIRED
        assert not OrganizationMembership.objects.filter(user=new_hire).exists()

    def test_email_mismatch(self, owner, organization, client_user):
        _, token = invite(owner, organization)

        result = accept_invitation(client_user, token)

        assert result.code == ErrorCodes.EMAIL_MISMATCH
        assert not OrganizationMembership.objects.filter(user=client_user).exists()

    def test_self_invitation_with_matching_email(self, manager_user, manager_membership, organization):
        token = "self-issued-token"
        Invitation.objects.create(
            token_hash=sha256(token),
            organization=organization,
            email=manager_user.email,
            invited_by=manager_user,
        )

        result = accept_invitation(manager_user, token)

        assert result.code == ErrorCodes.SELF_INVITATION

    def test_self_invitation_with_other_email(self, manager_user, manager_membership, organization):
        invitation = create_invitation(manager_user, organization.pk, "someone@example.test")

        result = accept_invitation(manager_user, invitation.data["token"])

        assert result.code == ErrorCodes.SELF_INVITATION

    def test_owner_role_is_not_demoted(self, owner, organization, outsider, other_organization):
        _, token = invite(owner, organization, email=outsider.email)

        result = accept_invitation(outsider, token)

        assert result.success
        outsider.refresh_from_db()
        assert outsider.role == User.Role.OWNER
        assert other_organization.owner == outsider

    def test_existing_membership_is_kept(self, owner, organization, new_hire):
        invitation, token = invite(owner, organization, role="MANAGER")
        existing = OrganizationMembership.objects.create(
            organization=organization, user=new_hire, role="APPRENTICE", permissions=["orders:read"]
        )

        result = accept_invitation(new_hire, token)

        assert result.success
        assert result.data["already_member"] is True
        existing.refresh_from_db()
        assert existing.role == "APPRENTICE"
        assert existing.permissions == ["orders:read"]
        assert OrganizationMembership.objects.filter(user=new_hire).count() == 1
        invitation.refresh_from_db()
        assert invitation.status == Invitation.Status.ACCEPTED

    def test_reaccept_by_same_user_is_idempotent(self, owner, organization, new_hire):
        _, token = invite(owner, organization)
        first = accept_invitation(new_hire, token)

        second = accept_invitation(new_hire, token)

        assert second.success
        assert second.data["already_member"] is True
        assert second.data["membership"] == first.data["membership"]
        assert AuditEntry.objects.filter(action=AuditAction.INVITATION_ACCEPTED).count() == 1

    def test_reaccept_by_someone_else(self, owner, organization, new_hire, make_user):
        _, token = invite(owner, organization)
        accept_invitation(new_hire, token)
        intruder = make_user("intruder@example.test")

        assert accept_invitation(intruder, token).code == ErrorCodes.INVALID_OR_EXPIRED

    def test_reaccept_after_removal(self, owner, organization, new_hire):
        _, token = invite(owner, organization)
        accept_invitation(new_hire, token)
        OrganizationMembership.objects.filter(user=new_hire).delete()

        assert accept_invitation(new_hire, token).code == ErrorCodes.INVALID_OR_EXPIRED

    def test_audit_failure_rolls_back_everything(self, owner, organization, new_hire, monkeypatch):
        invitation, token = invite(owner, organization)

        def broken_record(*args, **kwargs):
            raise DatabaseError("audit table locked")

        monkeypatch.setattr("invitations.commands.record", broken_record)

        with pytest.raises(DatabaseError):
            accept_invitation(new_hire, token)

        invitation.refresh_from_db()
        new_hire.refresh_from_db()
        assert invitation.status == Invitation.Status.PENDING
        assert new_hire.role == User.Role.CLIENT
        assert not OrganizationMembership.objects.filter(user=new_hire).exists()

    def test_lost_race_rolls_back_membership(self, owner, organization, new_hire, monkeypatch):
        invitation, token = invite(owner, organization)
        manager = OrganizationMembership.objects
        original_get_or_create = manager.get_or_create

        def get_or_create_after_rival_accept(*args, **kwargs):
            Invitation.objects.filter(pk=invitation.pk).update(status=Invitation.Status.ACCEPTED)
            return original_get_or_create(*args, **kwargs)

        monkeypatch.setattr(manager, "get_or_create", get_or_create_after_rival_accept)

        result = accept_invitation(new_hire, token)

        assert result.code == ErrorCodes.INVALID_OR_EXPIRED
        assert not OrganizationMembership.objects.filter(user=new_hire).exists()
        new_hire.refresh_from_db()
        assert new_hire.role == User.Role.CLIENT

import uuid
from datetime import timedelta

from django.conf import settings
from django.db import models
from django.utils import timezone

from accounts.models import Organization, OrganizationMembership


def invitation_window() -> timedelta:
    return timedelta(days=settings.INVITATION_EXPIRY_DAYS)


class InvitationQuerySet(models.QuerySet):
    def pending(self):
        return self.filter(status=Invitation.Status.PENDING)

    def stale(self, now=None):
        return self.pending().filter(expires_at__lte=now or timezone.now())

    def for_email(self, organization_id, email):
        return self.filter(organization_id=organization_id, email=email.strip().lower())


class Invitation(models.Model):
    """
    A time-boxed, single-use credential for joining an organization.

    ``token_hash`` is the SHA-256 of the bearer token in the accept link.
    Rows are never deleted; ACCEPTED and EXPIRED rows stay for the audit
    trail. ``updated_at`` is maintained by the commands so it can serve as
    the compare-and-set guard for resend.
    """

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        ACCEPTED = "ACCEPTED", "Accepted"
        EXPIRED = "EXPIRED", "Expired"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    token_hash = models.CharField(max_length=64, unique=True)
    organization = models.ForeignKey(
        Organization,
        on_delete=models.PROTECT,
        related_name="invitations",
    )
    email = models.EmailField()
    role = models.CharField(
        max_length=16,
        choices=OrganizationMembership.Role.choices,
        default=OrganizationMembership.Role.WORKER,
    )
    invited_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="sent_invitations",
    )
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    created_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField()
    updated_at = models.DateTimeField(default=timezone.now)
    accepted_at = models.DateTimeField(null=True, blank=True)
    accepted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="accepted_invitations",
    )

    objects = InvitationQuerySet.as_manager()

    class Meta:
        ordering = ("-created_at",)
        constraints = [
            models.UniqueConstraint(
                fields=["organization", "email"],
                condition=models.Q(status="PENDING"),
                name="invitations_one_pending_per_email",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "expires_at"], name="invitation_status_expiry_idx"),
        ]

    def __str__(self):
        return f"{self.email} -> {self.organization} ({self.status})"

    def save(self, *args, **kwargs):
        self.email = (self.email or "").strip().lower()
        if self.expires_at is None:
            self.expires_at = self.created_at + invitation_window()
        super().save(*args, **kwargs)

    @property
    def token_fingerprint(self) -> str:
        return self.token_hash[:12]

    def is_expired(self, now=None) -> bool:
        now = now or timezone.now()
        # expires_at is authoritative; the age guard uses the same window
        # and is reset together with it on resend.
        return self.expires_at <= now or self.created_at + invitation_window() <= now

from django.conf import settings
from django.db import models


class AuditAction(models.TextChoices):
    INVITATION_CREATED = "INVITATION_CREATED", "Invitation created"
    INVITATION_RESENT = "INVITATION_RESENT", "Invitation resent"
    INVITATION_ACCEPTED = "INVITATION_ACCEPTED", "Invitation accepted"
    MEMBER_UPDATED = "MEMBER_UPDATED", "Member updated"
    MEMBER_REMOVED = "MEMBER_REMOVED", "Member removed"
    USER_REGISTERED = "USER_REGISTERED", "User registered"
    USER_APPROVED = "USER_APPROVED", "User approved"
    USER_REJECTED = "USER_REJECTED", "User rejected"
    USER_SUSPENDED = "USER_SUSPENDED", "User suspended"
    USER_REACTIVATED = "USER_REACTIVATED", "User reactivated"


class AuditEntryQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise ValueError("Audit entries are append-only and cannot be modified.")

    def delete(self):
        raise ValueError("Audit entries are append-only and cannot be deleted.")

    def for_organization(self, organization_id):
        return self.filter(organization_id=organization_id)


class AuditEntry(models.Model):
    """
    Append-only record of a sensitive state transition.

    Rows are inserted once and never updated or deleted. Users and
    organizations referenced here are protected from deletion; suspend
    instead.
    """

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="audit_entries",
    )
    actor_email = models.EmailField(blank=True)
    action = models.CharField(max_length=32, choices=AuditAction.choices)
    resource_type = models.CharField(max_length=50)
    resource_id = models.CharField(max_length=64, blank=True)
    organization = models.ForeignKey(
        "accounts.Organization",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="audit_entries",
    )
    details = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    objects = AuditEntryQuerySet.as_manager()

    class Meta:
        ordering = ("-created_at", "-id")
        indexes = [
            models.Index(fields=["organization", "-created_at"], name="audit_org_created_idx"),
            models.Index(fields=["resource_type", "resource_id"], name="audit_resource_idx"),
        ]
        verbose_name_plural = "audit entries"

    def __str__(self):
        return f"{self.action} {self.resource_type}:{self.resource_id} by {self.actor_email or 'system'}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Audit entries are append-only and cannot be modified.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Audit entries are append-only and cannot be deleted.")

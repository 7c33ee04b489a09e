from rest_framework import serializers

from accounts.models import OrganizationMembership
from invitations.models import Invitation


class InvitationSerializer(serializers.ModelSerializer):
    """Outbound shape. Never exposes the token or its hash."""

    invited_by_name = serializers.CharField(source="invited_by.display_name", read_only=True)
    invited_by_email = serializers.EmailField(source="invited_by.email", read_only=True)

    class Meta:
        model = Invitation
        fields = [
            "id",
            "organization",
            "email",
            "role",
            "status",
            "invited_by_name",
            "invited_by_email",
            "created_at",
            "expires_at",
            "updated_at",
            "accepted_at",
        ]
        read_only_fields = fields


class InvitationCreateSerializer(serializers.Serializer):
    email = serializers.EmailField()
    role = serializers.ChoiceField(
        choices=OrganizationMembership.Role.choices,
        default=OrganizationMembership.Role.WORKER,
    )


class InvitationAcceptSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=128, trim_whitespace=True)


class InvitationPreviewSerializer(serializers.Serializer):
    """What an anonymous visitor of an accept link may see."""

    valid = serializers.BooleanField()
    reason = serializers.CharField(allow_null=True)
    organization_name = serializers.CharField(allow_null=True)
    inviter_name = serializers.CharField(allow_null=True)
    email = serializers.EmailField(allow_null=True)
    role = serializers.CharField(allow_null=True)

    @classmethod
    def from_validation(cls, validation):
        invitation = validation.invitation if validation.valid else None
        return cls({
            "valid": validation.valid,
            "reason": validation.reason,
            "organization_name": invitation.organization.name if invitation else None,
            "inviter_name": invitation.invited_by.display_name if invitation else None,
            "email": invitation.email if invitation else None,
            "role": invitation.role if invitation else None,
        })

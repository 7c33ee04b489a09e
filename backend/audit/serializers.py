from rest_framework import serializers

from audit.models import AuditEntry


class AuditEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = AuditEntry
        fields = [
            "id",
            "actor",
            "actor_email",
            "action",
            "resource_type",
            "resource_id",
            "organization",
            "details",
            "created_at",
        ]
        read_only_fields = fields

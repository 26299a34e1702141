# cm_core/audit/api/serializers.py
from rest_framework import serializers

from cm_core.audit.models import AuditEvent


class AuditEventSerializer(serializers.ModelSerializer):
    # Keep API field name "timestamp", but map it to real model field "occurred_at"
    timestamp = serializers.DateTimeField(source="occurred_at", read_only=True)

    class Meta:
        model = AuditEvent
        fields = [
            "id",
            "clinic_id",
            "action",
            "entity_type",
            "entity_id",
            "entity_name",
            "actor_user_id",
            "timestamp",
            "metadata",
        ]
        read_only_fields = fields

# cm_core/audit/models.py
from django.db import models

from cm_core.common.models import ClinicScopedModel


class AuditAction(models.TextChoices):
    CREATE = "CREATE", "Create"
    READ = "READ", "Read"
    UPDATE = "UPDATE", "Update"
    DELETE = "DELETE", "Delete"


class AuditEvent(ClinicScopedModel):
    """
    Immutable audit record.
    Clinical/financial record access trail: reads are recorded as well as writes.
    """
    action = models.CharField(max_length=16, choices=AuditAction.choices, db_index=True)
    entity_type = models.CharField(max_length=128, db_index=True)  # e.g. "Invoice"
    entity_id = models.CharField(max_length=64, db_index=True)
    entity_name = models.CharField(max_length=255, blank=True, default="")  # e.g. "Factura #INV-000001"

    # plain id, not a FK: an audit row must never fail on a dangling user reference
    actor_user_id = models.BigIntegerField(null=True, blank=True, db_index=True)

    occurred_at = models.DateTimeField(auto_now_add=True, db_index=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "audit_audit_event"
        indexes = [
            models.Index(fields=["clinic_id", "occurred_at"], name="audit_clinic_occurred_idx"),
            models.Index(fields=["entity_type", "entity_id"], name="audit_entity_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.action} {self.entity_type}:{self.entity_id}"

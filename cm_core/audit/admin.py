# cm_core/audit/admin.py
from django.contrib import admin

from cm_core.audit.models import AuditEvent


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = (
        "action",
        "entity_type",
        "entity_id",
        "entity_name",
        "clinic_id",
        "actor_user_id",
        "occurred_at",
    )
    list_filter = ("clinic_id", "action", "entity_type")
    search_fields = ("entity_type", "entity_id", "entity_name")
    readonly_fields = ("occurred_at",)
    ordering = ("-occurred_at",)

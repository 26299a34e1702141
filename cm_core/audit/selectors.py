# cm_core/audit/selectors.py
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from django.db.models import QuerySet

from cm_core.audit.models import AuditEvent


def list_audit_events(
    *,
    clinic_id: UUID,
    action: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    actor_user_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> QuerySet[AuditEvent]:
    qs = AuditEvent.objects.filter(clinic_id=clinic_id)

    if action:
        qs = qs.filter(action=action)
    if entity_type:
        qs = qs.filter(entity_type=entity_type)
    if entity_id:
        qs = qs.filter(entity_id=str(entity_id))
    if actor_user_id is not None:
        qs = qs.filter(actor_user_id=actor_user_id)
    if start is not None:
        qs = qs.filter(occurred_at__gte=start)
    if end is not None:
        qs = qs.filter(occurred_at__lte=end)

    return qs.order_by("-occurred_at")

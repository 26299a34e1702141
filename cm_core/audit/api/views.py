# cm_core/audit/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import viewsets
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.fields import DateTimeField

from cm_core.audit.api.serializers import AuditEventSerializer
from cm_core.audit.models import AuditAction, AuditEvent
from cm_core.audit.selectors import list_audit_events
from cm_core.common.api.pagination import paginate
from cm_core.common.scope import require_clinic_scope


def _datetime_or_none(value: str | None, field_name: str):
    if not value:
        return None
    try:
        return DateTimeField().to_internal_value(value)
    except DRFValidationError:
        raise DRFValidationError({field_name: "Invalid datetime (ISO 8601 expected)"})


class AuditEventViewSet(viewsets.GenericViewSet):
    """
    List audit/timeline events for the current clinic.
    """
    serializer_class = AuditEventSerializer
    queryset = AuditEvent.objects.none()

    @extend_schema(
        tags=["Audit"],
        responses={200: AuditEventSerializer(many=True)},
        parameters=[
            OpenApiParameter(
                name="action",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                enum=AuditAction.values,
            ),
            OpenApiParameter(
                name="entity_type",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Filter by entity type (e.g. Invoice).",
            ),
            OpenApiParameter(name="entity_id", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="actor_user_id", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="start_date", type=OpenApiTypes.DATETIME, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="end_date", type=OpenApiTypes.DATETIME, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        scope = require_clinic_scope(request)

        action = request.query_params.get("action") or None
        if action and action not in AuditAction.values:
            raise DRFValidationError({"action": f"Must be one of {', '.join(AuditAction.values)}"})

        actor_user_raw = request.query_params.get("actor_user_id")
        actor_user_id = None
        if actor_user_raw:
            try:
                actor_user_id = int(actor_user_raw)
            except ValueError:
                raise DRFValidationError({"actor_user_id": "Invalid actor_user_id (int expected)"})

        qs = list_audit_events(
            clinic_id=scope.clinic_id,
            action=action,
            entity_type=request.query_params.get("entity_type") or None,
            entity_id=request.query_params.get("entity_id") or None,
            actor_user_id=actor_user_id,
            start=_datetime_or_none(request.query_params.get("start_date"), "start_date"),
            end=_datetime_or_none(request.query_params.get("end_date"), "end_date"),
        )
        return paginate(request, qs, AuditEventSerializer)

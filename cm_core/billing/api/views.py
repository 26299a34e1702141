# cm_core/billing/api/views.py
from __future__ import annotations

from uuid import UUID

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.fields import DateTimeField
from rest_framework.response import Response

from cm_core.billing.api.serializers import (
    FinancialSummarySerializer,
    InvoiceCreateSerializer,
    InvoiceSerializer,
    InvoiceUpdateSerializer,
    PageSummarySerializer,
    PaymentCreateSerializer,
    PaymentSerializer,
)
from cm_core.billing.models import Invoice, InvoiceStatus
from cm_core.billing.repository import InvoiceFilter, InvoiceRepository
from cm_core.billing.rules import InvoiceErrorKind
from cm_core.billing.services import InvoiceResult, InvoiceService
from cm_core.common.api.exceptions import ConflictError
from cm_core.common.api.pagination import page_and_limit
from cm_core.common.scope import require_clinic_scope

FILTER_PARAMETERS = [
    OpenApiParameter(name="patient", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
    OpenApiParameter(
        name="status",
        type=OpenApiTypes.STR,
        location=OpenApiParameter.QUERY,
        required=False,
        enum=InvoiceStatus.values,
    ),
    OpenApiParameter(
        name="start_date",
        type=OpenApiTypes.DATETIME,
        location=OpenApiParameter.QUERY,
        required=False,
        description="Issue date lower bound (inclusive).",
    ),
    OpenApiParameter(
        name="end_date",
        type=OpenApiTypes.DATETIME,
        location=OpenApiParameter.QUERY,
        required=False,
        description="Issue date upper bound (inclusive).",
    ),
]


def _uuid_or_none(value: str | None, field_name: str) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise DRFValidationError({field_name: "Invalid UUID"})


def _datetime_or_none(value: str | None, field_name: str):
    if not value:
        return None
    try:
        return DateTimeField().to_internal_value(value)
    except DRFValidationError:
        raise DRFValidationError({field_name: "Invalid datetime (ISO 8601 expected)"})


def _invoice_id(pk) -> UUID:
    # a malformed id can't name an invoice of this clinic
    try:
        return UUID(str(pk))
    except (TypeError, ValueError):
        raise NotFound(detail=InvoiceErrorKind.NOT_FOUND.label, code="not_found")


def _filter_from_query(request, *, clinic_id: UUID) -> InvoiceFilter:
    status_q = request.query_params.get("status") or None
    if status_q and status_q not in InvoiceStatus.values:
        raise DRFValidationError({"status": f"Must be one of {', '.join(InvoiceStatus.values)}"})

    return InvoiceFilter(
        clinic_id=clinic_id,
        patient_id=_uuid_or_none(request.query_params.get("patient"), "patient"),
        status=status_q,
        start_date=_datetime_or_none(request.query_params.get("start_date"), "start_date"),
        end_date=_datetime_or_none(request.query_params.get("end_date"), "end_date"),
    )


def _raise_for(result: InvoiceResult) -> None:
    """
    Maps a rejected InvoiceResult onto the API error envelope.
    """
    if result.error_kind == InvoiceErrorKind.NOT_FOUND:
        raise NotFound(detail=result.error, code="not_found")
    if result.error_kind == InvoiceErrorKind.PATIENT_NOT_FOUND:
        raise DRFValidationError({"patient": result.error})
    raise ConflictError(detail=result.error, code=(result.error_kind or "conflict").lower())


class InvoiceViewSet(viewsets.GenericViewSet):
    """
    Clinic invoices:
    - list (paged, with page summary) / retrieve
    - create with items
    - partial update (status, due_date, notes)
    - delete (only without payments and not PAID)
    - payments: GET/POST
    - financial-summary over the filtered set
    """
    serializer_class = InvoiceSerializer
    queryset = Invoice.objects.none()

    @extend_schema(
        tags=["Billing"],
        responses={200: OpenApiTypes.OBJECT},
        parameters=[
            *FILTER_PARAMETERS,
            OpenApiParameter(name="page", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(
                name="limit",
                type=OpenApiTypes.INT,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Page size (default 10, max 100).",
            ),
        ],
    )
    def list(self, request):
        scope = require_clinic_scope(request)

        flt = _filter_from_query(request, clinic_id=scope.clinic_id)
        page, limit = page_and_limit(request)

        result = InvoiceService.get_many(flt=flt, page=page, limit=limit)

        return Response(
            {
                "results": InvoiceSerializer(result.invoices, many=True).data,
                "pagination": {
                    "page": page,
                    "limit": limit,
                    "total": result.total,
                    "pages": result.pages,
                },
                "summary": PageSummarySerializer(result.summary).data,
            },
            status=status.HTTP_200_OK,
        )

    @extend_schema(
        tags=["Billing"],
        request=InvoiceCreateSerializer,
        responses={201: InvoiceSerializer},
    )
    def create(self, request):
        scope = require_clinic_scope(request)

        ser = InvoiceCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = InvoiceService.create(
            clinic_id=scope.clinic_id,
            user_id=getattr(request.user, "id", None),
            patient_id=ser.validated_data["patient"],
            items=ser.validated_data["items"],
            due_date=ser.validated_data.get("due_date"),
            notes=ser.validated_data.get("notes", ""),
        )
        if not result.success:
            _raise_for(result)

        return Response(InvoiceSerializer(result.invoice).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        tags=["Billing"],
        responses={200: InvoiceSerializer},
    )
    def retrieve(self, request, pk=None):
        scope = require_clinic_scope(request)

        inv = InvoiceService.get_by_id(
            invoice_id=_invoice_id(pk),
            clinic_id=scope.clinic_id,
            user_id=getattr(request.user, "id", None),
        )
        if inv is None:
            raise NotFound(detail=InvoiceErrorKind.NOT_FOUND.label, code="not_found")

        return Response(InvoiceSerializer(inv).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Billing"],
        request=InvoiceUpdateSerializer,
        responses={200: InvoiceSerializer},
    )
    def partial_update(self, request, pk=None):
        scope = require_clinic_scope(request)

        ser = InvoiceUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        result = InvoiceService.update(
            invoice_id=_invoice_id(pk),
            clinic_id=scope.clinic_id,
            user_id=getattr(request.user, "id", None),
            data=ser.validated_data,
        )
        if not result.success:
            _raise_for(result)

        return Response(InvoiceSerializer(result.invoice).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Billing"],
        responses={204: None},
    )
    def destroy(self, request, pk=None):
        scope = require_clinic_scope(request)

        result = InvoiceService.delete(
            invoice_id=_invoice_id(pk),
            clinic_id=scope.clinic_id,
            user_id=getattr(request.user, "id", None),
        )
        if not result.success:
            _raise_for(result)

        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        tags=["Billing"],
        request=PaymentCreateSerializer,
        responses={
            200: PaymentSerializer(many=True),
            201: OpenApiTypes.OBJECT,
        },
    )
    @action(detail=True, methods=["get", "post"], url_path="payments")
    def payments(self, request, pk=None):
        """
        /billing/invoices/<invoice_id>/payments/
        - GET: payments, newest first
        - POST: record a payment; returns {payment, invoice}
        """
        scope = require_clinic_scope(request)
        invoice_id = _invoice_id(pk)

        if request.method.lower() == "get":
            inv = InvoiceRepository.find_by_id(invoice_id=invoice_id, clinic_id=scope.clinic_id)
            if inv is None:
                raise NotFound(detail=InvoiceErrorKind.NOT_FOUND.label, code="not_found")
            return Response(PaymentSerializer(inv.payments.all(), many=True).data, status=status.HTTP_200_OK)

        ser = PaymentCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = InvoiceService.add_payment(
            invoice_id=invoice_id,
            clinic_id=scope.clinic_id,
            user_id=getattr(request.user, "id", None),
            amount=ser.validated_data["amount"],
            method=ser.validated_data["method"],
            reference=ser.validated_data.get("reference", ""),
            notes=ser.validated_data.get("notes", ""),
        )
        if not result.success:
            _raise_for(result)

        return Response(
            {
                "payment": PaymentSerializer(result.payment).data,
                "invoice": InvoiceSerializer(result.invoice).data,
            },
            status=status.HTTP_201_CREATED,
        )

    @extend_schema(
        tags=["Billing"],
        responses={200: FinancialSummarySerializer},
        parameters=FILTER_PARAMETERS,
    )
    @action(detail=False, methods=["get"], url_path="financial-summary")
    def financial_summary(self, request):
        scope = require_clinic_scope(request)

        flt = _filter_from_query(request, clinic_id=scope.clinic_id)
        summary = InvoiceService.financial_summary(flt=flt)
        return Response(FinancialSummarySerializer(summary).data, status=status.HTTP_200_OK)

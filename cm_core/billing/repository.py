# cm_core/billing/repository.py
"""
Invoice persistence over the Django ORM.

No business rules live here. Reads return Invoice instances with items,
payments, patient and issuer preloaded; every lookup by id is scoped to a
clinic, and an invoice of another clinic is indistinguishable from a
missing one.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Sequence
from uuid import UUID

from django.db import models, transaction
from django.db.models import Count, Prefetch, QuerySet, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from cm_core.billing.calculator import InvoiceTotals
from cm_core.billing.models import Invoice, InvoiceItem, InvoiceStatus, Payment
from cm_core.clinics.models import Clinic

MONEY_ZERO = Decimal("0.00")

UPDATABLE_FIELDS = ("status", "due_date", "notes")


@dataclass(frozen=True)
class InvoiceFilter:
    clinic_id: UUID
    patient_id: UUID | None = None
    status: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


@dataclass(frozen=True)
class NewInvoiceItem:
    description: str
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal = MONEY_ZERO
    total: Decimal = MONEY_ZERO
    service_id: UUID | None = None


@dataclass(frozen=True)
class NewInvoice:
    clinic_id: UUID
    patient_id: UUID
    issued_by_id: int | None
    invoice_number: str
    totals: InvoiceTotals
    items: Sequence[NewInvoiceItem]
    due_date: datetime | None = None
    notes: str = ""


@dataclass(frozen=True)
class NewPayment:
    amount: Decimal
    method: str
    reference: str = ""
    notes: str = ""
    recorded_by_user_id: int | None = None


@dataclass(frozen=True)
class InvoiceAggregate:
    total_invoices: int
    total_revenue: Decimal
    total_tax: Decimal
    total_discounts: Decimal
    total_amount: Decimal
    total_paid: Decimal
    total_pending: Decimal
    status_distribution: list[dict[str, Any]] = field(default_factory=list)
    payment_method_distribution: list[dict[str, Any]] = field(default_factory=list)


def _sum(field_name: str) -> Coalesce:
    return Coalesce(Sum(field_name), MONEY_ZERO, output_field=models.DecimalField(max_digits=14, decimal_places=2))


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))


def _hydrated(qs: QuerySet[Invoice]) -> QuerySet[Invoice]:
    return qs.select_related("patient", "issued_by").prefetch_related(
        "items",
        Prefetch("payments", queryset=Payment.objects.order_by("-payment_date", "-id")),
    )


def _filtered(flt: InvoiceFilter) -> QuerySet[Invoice]:
    qs = Invoice.objects.filter(clinic_id=flt.clinic_id)

    if flt.patient_id:
        qs = qs.filter(patient_id=flt.patient_id)
    if flt.status:
        qs = qs.filter(status=flt.status)
    if flt.start_date:
        qs = qs.filter(issue_date__gte=flt.start_date)
    if flt.end_date:
        qs = qs.filter(issue_date__lte=flt.end_date)

    return qs


class InvoiceRepository:
    @staticmethod
    def find_by_id(*, invoice_id: UUID, clinic_id: UUID) -> Invoice | None:
        return _hydrated(Invoice.objects.filter(id=invoice_id, clinic_id=clinic_id)).first()

    @staticmethod
    def find_many(*, flt: InvoiceFilter, page: int, limit: int) -> tuple[list[Invoice], int]:
        qs = _filtered(flt)
        total = qs.count()

        offset = (page - 1) * limit
        invoices = list(_hydrated(qs).order_by("-issue_date", "-created_at")[offset:offset + limit])
        return invoices, total

    @staticmethod
    def find_last_invoice_number(*, clinic_id: UUID) -> str | None:
        return (
            Invoice.objects.filter(clinic_id=clinic_id)
            .order_by("-created_at", "-issue_date")
            .values_list("clinic_invoice_number", flat=True)
            .first()
        )

    @staticmethod
    def invoice_number_exists(*, clinic_id: UUID, invoice_number: str) -> bool:
        return Invoice.objects.filter(clinic_id=clinic_id, clinic_invoice_number=invoice_number).exists()

    @staticmethod
    def lock_clinic_sequence(*, clinic_id: UUID) -> bool:
        """
        Row-locks the clinic so invoice numbering is serialized per clinic.
        Must run inside transaction.atomic(). Returns False when the clinic row
        does not exist (the unique constraint is then the only guard).
        """
        return Clinic.objects.select_for_update().filter(id=clinic_id).values_list("id", flat=True).first() is not None

    @staticmethod
    def lock_for_update(*, invoice_id: UUID, clinic_id: UUID) -> Invoice | None:
        return Invoice.objects.select_for_update().filter(id=invoice_id, clinic_id=clinic_id).first()

    @staticmethod
    @transaction.atomic
    def create(data: NewInvoice) -> Invoice:
        invoice = Invoice.objects.create(
            clinic_id=data.clinic_id,
            patient_id=data.patient_id,
            issued_by_id=data.issued_by_id,
            clinic_invoice_number=data.invoice_number,
            due_date=data.due_date,
            subtotal=_money(data.totals.subtotal),
            discount=_money(data.totals.total_discount),
            tax=_money(data.totals.tax),
            total=_money(data.totals.total),
            status=InvoiceStatus.PENDING,
            notes=data.notes or "",
        )

        InvoiceItem.objects.bulk_create(
            [
                InvoiceItem(
                    invoice=invoice,
                    service_id=item.service_id,
                    description=item.description,
                    quantity=item.quantity,
                    unit_price=_money(item.unit_price),
                    discount=_money(item.discount),
                    total=_money(item.total),
                    position=pos,
                )
                for pos, item in enumerate(data.items)
            ]
        )

        return InvoiceRepository.find_by_id(invoice_id=invoice.id, clinic_id=data.clinic_id)

    @staticmethod
    def update(*, invoice_id: UUID, clinic_id: UUID, data: dict[str, Any]) -> Invoice:
        """
        Partial update of status / due_date / notes. Items and payments are not touched.
        """
        updates = {k: v for k, v in (data or {}).items() if k in UPDATABLE_FIELDS}

        invoice = Invoice.objects.get(id=invoice_id, clinic_id=clinic_id)
        for k, v in updates.items():
            setattr(invoice, k, v)

        if updates:
            invoice.save(update_fields=[*updates.keys(), "updated_at"])

        return InvoiceRepository.find_by_id(invoice_id=invoice_id, clinic_id=clinic_id)

    @staticmethod
    def update_status(*, invoice_id: UUID, status: str) -> None:
        Invoice.objects.filter(id=invoice_id).update(status=status, updated_at=timezone.now())

    @staticmethod
    def delete(*, invoice_id: UUID) -> bool:
        """
        Deletes the invoice (items cascade) only if it still has no payments.
        Returns False when a payment slipped in since the caller's check.
        """
        with transaction.atomic():
            if Payment.objects.filter(invoice_id=invoice_id).exists():
                return False
            deleted, _ = Invoice.objects.filter(id=invoice_id).delete()
        return deleted > 0

    @staticmethod
    def has_payments(*, invoice_id: UUID) -> bool:
        return Payment.objects.filter(invoice_id=invoice_id).exists()

    @staticmethod
    def add_payment(*, invoice_id: UUID, data: NewPayment) -> Payment:
        return Payment.objects.create(
            invoice_id=invoice_id,
            amount=_money(data.amount),
            method=data.method,
            reference=data.reference or "",
            notes=data.notes or "",
            recorded_by_user_id=data.recorded_by_user_id,
        )

    @staticmethod
    def get_total_paid(*, invoice_id: UUID) -> Decimal:
        agg = Payment.objects.filter(invoice_id=invoice_id).aggregate(
            paid=_sum("amount")
        )
        return agg["paid"]

    @staticmethod
    def aggregate_summary(*, flt: InvoiceFilter) -> InvoiceAggregate:
        """
        Totals over the whole filtered set (not a page).
        """
        qs = _filtered(flt)

        sums = qs.aggregate(
            n=Count("id"),
            revenue=_sum("subtotal"),
            tax=_sum("tax"),
            discounts=_sum("discount"),
            amount=_sum("total"),
        )

        payments = Payment.objects.filter(invoice__in=qs.values("id"))
        paid = payments.aggregate(paid=_sum("amount"))["paid"]

        by_status = [
            {"label": row["status"], "count": row["n"], "amount": row["amount"]}
            for row in qs.order_by().values("status").annotate(n=Count("id"), amount=Sum("total")).order_by("status")
        ]
        by_method = [
            {"label": row["method"], "count": row["n"], "amount": row["amount"]}
            for row in payments.order_by().values("method").annotate(n=Count("id"), amount=Sum("amount")).order_by("method")
        ]

        return InvoiceAggregate(
            total_invoices=sums["n"],
            total_revenue=sums["revenue"],
            total_tax=sums["tax"],
            total_discounts=sums["discounts"],
            total_amount=sums["amount"],
            total_paid=paid,
            total_pending=sums["amount"] - paid,
            status_distribution=by_status,
            payment_method_distribution=by_method,
        )


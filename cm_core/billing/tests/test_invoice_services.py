# cm_core/billing/tests/test_invoice_services.py
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

import pytest
from django.db import IntegrityError
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from cm_core.audit.models import AuditAction, AuditEvent
from cm_core.billing.models import Invoice, InvoiceStatus
from cm_core.billing.repository import InvoiceFilter, InvoiceRepository
from cm_core.billing.rules import InvoiceErrorKind
from cm_core.billing.services import InvoiceService
from cm_core.conftest import consult_items


def _create(clinic, patient, user, *lines):
    result = InvoiceService.create(
        clinic_id=clinic.id,
        user_id=user.id,
        patient_id=patient.id,
        items=consult_items(*(lines or [("Consulta general", 1, "500.00")])),
    )
    assert result.success, result.error
    return result.invoice


@pytest.mark.django_db
def test_create_computes_totals_and_starts_pending(clinic, patient, user):
    inv = _create(
        clinic,
        patient,
        user,
        ("Consulta general", 1, "500.00", "0"),
        ("Curacion", 2, "100.00", "20.00"),
    )

    assert inv.subtotal == Decimal("700.00")
    assert inv.discount == Decimal("20.00")
    assert inv.tax == Decimal("0.00")
    assert inv.total == Decimal("680.00")
    assert inv.status == InvoiceStatus.PENDING
    assert inv.clinic_invoice_number == "INV-000001"
    assert inv.issued_by_id == user.id

    items = list(inv.items.all())
    assert [i.description for i in items] == ["Consulta general", "Curacion"]
    assert [i.total for i in items] == [Decimal("500.00"), Decimal("180.00")]


@pytest.mark.django_db
def test_create_fractional_quantity_keeps_stored_totals_consistent(clinic, patient, user):
    inv = _create(clinic, patient, user, ("Curacion", "1.5", "10.33", "0.01"))
    inv.refresh_from_db()

    assert inv.subtotal == Decimal("15.50")
    assert inv.discount == Decimal("0.01")
    assert inv.total == Decimal("15.49")
    assert inv.total == inv.subtotal - inv.discount + inv.tax

    for item in inv.items.all():
        gross = (item.quantity * item.unit_price).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        assert item.total == gross - item.discount
    assert sum((i.total for i in inv.items.all()), Decimal("0")) == inv.total


@pytest.mark.django_db
def test_create_numbers_are_sequential_per_clinic(clinic, other_clinic, patient, other_patient, user):
    a = _create(clinic, patient, user)
    b = _create(clinic, patient, user)
    other = _create(other_clinic, other_patient, user)

    assert a.clinic_invoice_number == "INV-000001"
    assert b.clinic_invoice_number == "INV-000002"
    # each clinic has its own sequence
    assert other.clinic_invoice_number == "INV-000001"


@pytest.mark.django_db
def test_create_continues_after_unparsable_last_number(clinic, patient, user):
    first = _create(clinic, patient, user)
    Invoice.objects.filter(id=first.id).update(clinic_invoice_number="LEGACY")

    inv = _create(clinic, patient, user)
    assert inv.clinic_invoice_number == "INV-000001"


@pytest.mark.django_db
def test_create_retries_when_number_is_taken(clinic, patient, user, monkeypatch):
    _create(clinic, patient, user)

    real = InvoiceRepository.find_last_invoice_number
    calls = []

    def stale_then_real(*, clinic_id):
        calls.append(clinic_id)
        # first attempt sees a stale sequence, as a concurrent writer would
        if len(calls) == 1:
            return None
        return real(clinic_id=clinic_id)

    monkeypatch.setattr(InvoiceRepository, "find_last_invoice_number", staticmethod(stale_then_real))

    inv = _create(clinic, patient, user)

    assert len(calls) == 2
    assert inv.clinic_invoice_number == "INV-000002"
    assert Invoice.objects.filter(clinic_id=clinic.id).count() == 2


@pytest.mark.django_db
def test_create_gives_up_after_max_retries(clinic, patient, user, monkeypatch, settings):
    settings.BILLING_INVOICE_NUMBER_MAX_RETRIES = 2
    _create(clinic, patient, user)

    calls = []

    def always_stale(*, clinic_id):
        calls.append(clinic_id)
        return None

    monkeypatch.setattr(InvoiceRepository, "find_last_invoice_number", staticmethod(always_stale))

    with pytest.raises(IntegrityError):
        InvoiceService.create(
            clinic_id=clinic.id,
            user_id=user.id,
            patient_id=patient.id,
            items=consult_items(("Consulta general", 1, "500.00")),
        )

    assert len(calls) == 2
    assert Invoice.objects.filter(clinic_id=clinic.id).count() == 1


@pytest.mark.django_db
def test_last_invoice_number_breaks_created_at_ties_by_issue_date(clinic, patient, user):
    older = _create(clinic, patient, user)
    newer = _create(clinic, patient, user)
    created_at = timezone.now()
    Invoice.objects.filter(id=older.id).update(
        clinic_invoice_number="INV-999999",
        created_at=created_at,
        issue_date=created_at - timedelta(minutes=1),
    )
    Invoice.objects.filter(id=newer.id).update(
        clinic_invoice_number="INV-1000000",
        created_at=created_at,
        issue_date=created_at,
    )

    # text order would pick INV-999999
    assert InvoiceRepository.find_last_invoice_number(clinic_id=clinic.id) == "INV-1000000"


@pytest.mark.django_db
def test_create_requires_items(clinic, patient, user):
    with pytest.raises(ValidationError):
        InvoiceService.create(clinic_id=clinic.id, user_id=user.id, patient_id=patient.id, items=[])


@pytest.mark.django_db
def test_create_rejects_patient_of_another_clinic(clinic, other_patient, user):
    result = InvoiceService.create(
        clinic_id=clinic.id,
        user_id=user.id,
        patient_id=other_patient.id,
        items=consult_items(("Consulta general", 1, "500.00")),
    )

    assert not result.success
    assert result.error_kind == InvoiceErrorKind.PATIENT_NOT_FOUND
    assert not Invoice.objects.exists()


@pytest.mark.django_db
def test_create_is_audited(clinic, patient, user):
    inv = _create(clinic, patient, user)

    ev = AuditEvent.objects.get(action=AuditAction.CREATE, entity_id=str(inv.id))
    assert ev.clinic_id == clinic.id
    assert ev.entity_type == "Invoice"
    assert ev.entity_name == "Factura #INV-000001"
    assert ev.actor_user_id == user.id


@pytest.mark.django_db
def test_get_by_id_audits_read(clinic, patient, user):
    inv = _create(clinic, patient, user)

    found = InvoiceService.get_by_id(invoice_id=inv.id, clinic_id=clinic.id, user_id=user.id)

    assert found is not None
    assert found.id == inv.id
    assert AuditEvent.objects.filter(action=AuditAction.READ, entity_id=str(inv.id)).count() == 1


@pytest.mark.django_db
def test_get_by_id_hides_other_clinics_invoices(clinic, other_clinic, patient, user):
    inv = _create(clinic, patient, user)

    assert InvoiceService.get_by_id(invoice_id=inv.id, clinic_id=other_clinic.id, user_id=user.id) is None
    assert not AuditEvent.objects.filter(action=AuditAction.READ).exists()


@pytest.mark.django_db
def test_audit_failure_does_not_block_create(clinic, patient, user, monkeypatch):
    class _BrokenAuditStore:
        class objects:
            @staticmethod
            def create(**kwargs):
                raise RuntimeError("audit store down")

    monkeypatch.setattr("cm_core.audit.services.AuditEvent", _BrokenAuditStore)

    inv = _create(clinic, patient, user)

    assert Invoice.objects.filter(id=inv.id).exists()


@pytest.mark.django_db
def test_update_changes_notes_and_status(clinic, patient, user):
    inv = _create(clinic, patient, user)

    result = InvoiceService.update(
        invoice_id=inv.id,
        clinic_id=clinic.id,
        user_id=user.id,
        data={"notes": "Seguro pendiente", "status": InvoiceStatus.CANCELLED},
    )

    assert result.success
    assert result.invoice.notes == "Seguro pendiente"
    assert result.invoice.status == InvoiceStatus.CANCELLED
    assert AuditEvent.objects.filter(action=AuditAction.UPDATE, entity_id=str(inv.id)).exists()


@pytest.mark.django_db
def test_update_missing_invoice_is_not_found(clinic, other_clinic, patient, user):
    inv = _create(clinic, patient, user)

    result = InvoiceService.update(invoice_id=inv.id, clinic_id=other_clinic.id, user_id=user.id, data={"notes": "x"})

    assert not result.success
    assert result.error_kind == InvoiceErrorKind.NOT_FOUND
    assert result.error == "Factura no encontrada"


@pytest.mark.django_db
def test_update_cannot_reactivate_cancelled_invoice(clinic, patient, user):
    inv = _create(clinic, patient, user)
    InvoiceService.update(invoice_id=inv.id, clinic_id=clinic.id, user_id=user.id, data={"status": InvoiceStatus.CANCELLED})

    result = InvoiceService.update(
        invoice_id=inv.id,
        clinic_id=clinic.id,
        user_id=user.id,
        data={"status": InvoiceStatus.PENDING},
    )

    assert not result.success
    assert result.error_kind == InvoiceErrorKind.INVOICE_CANCELLED
    assert result.error == "No se puede reactivar una factura cancelada"
    inv.refresh_from_db()
    assert inv.status == InvoiceStatus.CANCELLED


@pytest.mark.django_db
def test_delete_pending_invoice_removes_it_with_items(clinic, patient, user):
    inv = _create(clinic, patient, user)

    result = InvoiceService.delete(invoice_id=inv.id, clinic_id=clinic.id, user_id=user.id)

    assert result.success
    assert not Invoice.objects.filter(id=inv.id).exists()
    ev = AuditEvent.objects.get(action=AuditAction.DELETE, entity_id=str(inv.id))
    assert ev.entity_name == "Factura #INV-000001"


@pytest.mark.django_db
def test_delete_paid_invoice_without_payments_rejected(clinic, patient, user):
    inv = _create(clinic, patient, user)
    InvoiceService.update(invoice_id=inv.id, clinic_id=clinic.id, user_id=user.id, data={"status": InvoiceStatus.PAID})

    result = InvoiceService.delete(invoice_id=inv.id, clinic_id=clinic.id, user_id=user.id)

    assert not result.success
    assert result.error_kind == InvoiceErrorKind.ALREADY_PAID
    assert Invoice.objects.filter(id=inv.id).exists()


@pytest.mark.django_db
def test_delete_missing_invoice_is_not_found(clinic, other_clinic, patient, user):
    inv = _create(clinic, patient, user)

    result = InvoiceService.delete(invoice_id=inv.id, clinic_id=other_clinic.id, user_id=user.id)

    assert not result.success
    assert result.error_kind == InvoiceErrorKind.NOT_FOUND
    assert Invoice.objects.filter(id=inv.id).exists()


@pytest.mark.django_db
def test_get_many_summary_covers_the_page_only(clinic, patient, user):
    invoices = [
        _create(clinic, patient, user, ("Consulta", 1, "100.00")),
        _create(clinic, patient, user, ("Consulta", 1, "200.00")),
        _create(clinic, patient, user, ("Consulta", 1, "300.00")),
    ]
    InvoiceService.add_payment(
        invoice_id=invoices[2].id,
        clinic_id=clinic.id,
        user_id=user.id,
        amount=Decimal("50.00"),
    )

    page = InvoiceService.get_many(flt=InvoiceFilter(clinic_id=clinic.id), page=1, limit=2)

    assert page.total == 3
    assert page.pages == 2
    assert len(page.invoices) == 2
    assert page.summary.total_invoices == 3

    page_total = sum((inv.total for inv in page.invoices), Decimal("0"))
    assert page.summary.total_amount == page_total
    assert page.summary.total_amount < Decimal("600.00")
    assert page.summary.total_pending == page.summary.total_amount - page.summary.total_paid


@pytest.mark.django_db
def test_get_many_filters_by_status_and_patient(clinic, patient, user):
    pending = _create(clinic, patient, user)
    cancelled = _create(clinic, patient, user)
    InvoiceService.update(
        invoice_id=cancelled.id,
        clinic_id=clinic.id,
        user_id=user.id,
        data={"status": InvoiceStatus.CANCELLED},
    )

    page = InvoiceService.get_many(flt=InvoiceFilter(clinic_id=clinic.id, status=InvoiceStatus.PENDING))
    assert [inv.id for inv in page.invoices] == [pending.id]

    page = InvoiceService.get_many(flt=InvoiceFilter(clinic_id=clinic.id, patient_id=patient.id))
    assert page.total == 2


@pytest.mark.django_db
def test_get_many_date_range_includes_both_bounds(clinic, patient, user):
    start = timezone.now().replace(microsecond=0) - timedelta(days=10)
    end = start + timedelta(days=5)
    dates = {
        "before": start - timedelta(seconds=1),
        "on_start": start,
        "middle": start + timedelta(days=2),
        "on_end": end,
        "after": end + timedelta(seconds=1),
    }
    ids = {}
    for label, issued in dates.items():
        inv = _create(clinic, patient, user)
        Invoice.objects.filter(id=inv.id).update(issue_date=issued)
        ids[label] = inv.id

    page = InvoiceService.get_many(flt=InvoiceFilter(clinic_id=clinic.id, start_date=start, end_date=end))

    assert page.total == 3
    assert {inv.id for inv in page.invoices} == {ids["on_start"], ids["middle"], ids["on_end"]}


@pytest.mark.django_db
def test_get_many_never_crosses_clinics(clinic, other_clinic, patient, other_patient, user):
    _create(clinic, patient, user)
    _create(other_clinic, other_patient, user)

    page = InvoiceService.get_many(flt=InvoiceFilter(clinic_id=clinic.id))

    assert page.total == 1
    assert all(inv.clinic_id == clinic.id for inv in page.invoices)


@pytest.mark.django_db
def test_financial_summary_covers_whole_filtered_set(clinic, patient, user):
    a = _create(clinic, patient, user, ("Consulta", 1, "100.00"))
    _create(clinic, patient, user, ("Consulta", 2, "100.00", "50.00"))
    InvoiceService.add_payment(
        invoice_id=a.id,
        clinic_id=clinic.id,
        user_id=user.id,
        amount=Decimal("100.00"),
        method="CARD",
    )

    summary = InvoiceService.financial_summary(flt=InvoiceFilter(clinic_id=clinic.id))

    assert summary.total_invoices == 2
    assert summary.total_revenue == Decimal("300.00")
    assert summary.total_discounts == Decimal("50.00")
    assert summary.total_amount == Decimal("250.00")
    assert summary.total_paid == Decimal("100.00")
    assert summary.total_pending == Decimal("150.00")

    by_status = {row["label"]: row["count"] for row in summary.status_distribution}
    assert by_status == {"PAID": 1, "PENDING": 1}
    assert [row["label"] for row in summary.payment_method_distribution] == ["CARD"]


@pytest.mark.django_db
def test_calculate_totals(clinic, patient, user):
    inv = _create(clinic, patient, user, ("Consulta", 1, "680.00"))
    InvoiceService.add_payment(invoice_id=inv.id, clinic_id=clinic.id, user_id=user.id, amount=Decimal("300.00"))

    inv = InvoiceRepository.find_by_id(invoice_id=inv.id, clinic_id=clinic.id)
    totals = InvoiceService.calculate_totals(inv)

    assert totals.total_paid == Decimal("300.00")
    assert totals.balance == Decimal("380.00")

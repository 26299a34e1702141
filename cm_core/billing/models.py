# cm_core/billing/models.py
from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from cm_core.common.models import ClinicScopedModel
from cm_core.patients.models import Patient


class InvoiceStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PARTIAL = "PARTIAL", "Partially Paid"
    PAID = "PAID", "Paid"
    CANCELLED = "CANCELLED", "Cancelled"


class Invoice(ClinicScopedModel):
    """
    Billing document issued to a patient.

    Invariant: total == subtotal - discount + tax.
    Status moves with payments (PENDING -> PARTIAL -> PAID); CANCELLED is only
    set by an explicit update.
    """
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name="invoices")
    issued_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="issued_invoices",
        null=True,
        blank=True,
    )

    # INV-000001, unique per clinic
    clinic_invoice_number = models.CharField(max_length=32)
    status = models.CharField(max_length=16, choices=InvoiceStatus.choices, default=InvoiceStatus.PENDING, db_index=True)

    issue_date = models.DateTimeField(default=timezone.now, db_index=True)
    due_date = models.DateTimeField(null=True, blank=True)

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    notes = models.TextField(blank=True, default="")

    class Meta:
        db_table = "billing_invoice"
        constraints = [
            models.UniqueConstraint(
                fields=["clinic_id", "clinic_invoice_number"],
                name="uq_invoice_clinic_number",
            )
        ]
        indexes = [
            models.Index(fields=["clinic_id", "status", "issue_date"], name="invoice_clinic_status_idx"),
            models.Index(fields=["clinic_id", "patient", "issue_date"], name="invoice_clinic_patient_idx"),
            models.Index(fields=["clinic_id", "created_at"], name="invoice_clinic_created_idx"),
        ]

    def __str__(self) -> str:
        return self.clinic_invoice_number

    @property
    def display_name(self) -> str:
        return f"Factura #{self.clinic_invoice_number}"


class InvoiceItem(models.Model):
    """
    Billable line, created together with its invoice and never edited after.

    Invariant: total == round(quantity * unit_price, 2) - discount.
    """
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="items")

    # optional reference into the clinic's service catalog
    service_id = models.UUIDField(null=True, blank=True)

    description = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("1.00"))
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    # keeps the caller's line order
    position = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "billing_invoice_item"
        ordering = ["position", "id"]


class PaymentMethod(models.TextChoices):
    CASH = "CASH", "Cash"
    CARD = "CARD", "Card"
    TRANSFER = "TRANSFER", "Bank Transfer"
    CHECK = "CHECK", "Check"


class Payment(models.Model):
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name="payments")
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    method = models.CharField(max_length=16, choices=PaymentMethod.choices, default=PaymentMethod.CASH)

    reference = models.CharField(max_length=64, blank=True, default="")
    notes = models.TextField(blank=True, default="")
    payment_date = models.DateTimeField(default=timezone.now, db_index=True)
    recorded_by_user_id = models.BigIntegerField(null=True, blank=True)

    class Meta:
        db_table = "billing_payment"
        indexes = [
            models.Index(fields=["invoice", "payment_date"], name="payment_invoice_date_idx"),
        ]

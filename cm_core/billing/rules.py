# cm_core/billing/rules.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from django.db import models

from cm_core.billing.calculator import ZERO, to_decimal
from cm_core.billing.models import InvoiceStatus

INVOICE_NUMBER_PREFIX = "INV-"
INVOICE_NUMBER_WIDTH = 6


class InvoiceErrorKind(models.TextChoices):
    NOT_FOUND = "NOT_FOUND", "Factura no encontrada"
    HAS_PAYMENTS = "HAS_PAYMENTS", "No se puede eliminar una factura con pagos registrados"
    ALREADY_PAID = "ALREADY_PAID", "No se puede eliminar una factura pagada"
    INVOICE_CANCELLED = "INVOICE_CANCELLED", "No se puede pagar una factura cancelada"
    PATIENT_NOT_FOUND = "PATIENT_NOT_FOUND", "Paciente no encontrado"


# status change on a cancelled invoice uses the same kind, different wording
REACTIVATE_CANCELLED_MSG = "No se puede reactivar una factura cancelada"


@dataclass(frozen=True)
class RuleDecision:
    allowed: bool
    kind: str | None = None
    message: str | None = None

    @classmethod
    def allow(cls) -> "RuleDecision":
        return cls(allowed=True)

    @classmethod
    def reject(cls, kind: InvoiceErrorKind, message: str | None = None) -> "RuleDecision":
        return cls(allowed=False, kind=kind.value, message=message or kind.label)


def determine_payment_status(total: Any, total_paid: Any) -> str:
    """
    PENDING with nothing paid, PAID when fully (or over) paid, PARTIAL in between.

    A zero-total invoice stays PENDING until some payment is recorded.
    """
    total = to_decimal(total)
    total_paid = to_decimal(total_paid)

    if total_paid == ZERO:
        return InvoiceStatus.PENDING
    if total_paid >= total:
        return InvoiceStatus.PAID
    if total_paid > ZERO:
        return InvoiceStatus.PARTIAL
    return InvoiceStatus.PENDING


def can_delete_invoice(status: str, has_payments: bool) -> RuleDecision:
    # checked independently: PAID can be set administratively without payment rows
    if has_payments:
        return RuleDecision.reject(InvoiceErrorKind.HAS_PAYMENTS)
    if status == InvoiceStatus.PAID:
        return RuleDecision.reject(InvoiceErrorKind.ALREADY_PAID)
    return RuleDecision.allow()


def can_add_payment(status: str) -> RuleDecision:
    if status == InvoiceStatus.CANCELLED:
        return RuleDecision.reject(InvoiceErrorKind.INVOICE_CANCELLED)
    return RuleDecision.allow()


def can_change_status(current: str, new: str | None) -> RuleDecision:
    """
    CANCELLED is terminal for status changes made through a generic update.
    """
    if new and current == InvoiceStatus.CANCELLED and new != InvoiceStatus.CANCELLED:
        return RuleDecision.reject(InvoiceErrorKind.INVOICE_CANCELLED, REACTIVATE_CANCELLED_MSG)
    return RuleDecision.allow()


def generate_invoice_number(last_number: str | None) -> str:
    """
    Next number after last_number: INV-000041 -> INV-000042.

    Reads the digits after the last "-"; anything unparsable counts as 0.
    Padding is a minimum width, so INV-999999 -> INV-1000000.

    Not safe on its own under concurrency: the caller must hold the clinic
    sequence lock (see InvoiceRepository.lock_clinic_sequence).
    """
    if not last_number:
        return f"{INVOICE_NUMBER_PREFIX}{1:0{INVOICE_NUMBER_WIDTH}d}"

    _, sep, suffix = last_number.strip().rpartition("-")
    if not sep:
        suffix = ""

    try:
        last = int(suffix)
    except ValueError:
        last = 0

    return f"{INVOICE_NUMBER_PREFIX}{last + 1:0{INVOICE_NUMBER_WIDTH}d}"

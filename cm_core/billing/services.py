# cm_core/billing/services.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Mapping
from uuid import UUID

from django.conf import settings
from django.db import IntegrityError, transaction
from rest_framework.exceptions import ValidationError

from cm_core.audit.models import AuditAction
from cm_core.audit.services import AuditService
from cm_core.billing.calculator import (
    ZERO,
    calculate_balance,
    calculate_invoice_totals,
    calculate_item_total,
    calculate_total_paid,
    to_decimal,
)
from cm_core.billing.models import Invoice, Payment, PaymentMethod
from cm_core.billing.repository import (
    InvoiceAggregate,
    InvoiceFilter,
    InvoiceRepository,
    NewInvoice,
    NewInvoiceItem,
    NewPayment,
)
from cm_core.billing.rules import (
    InvoiceErrorKind,
    RuleDecision,
    can_add_payment,
    can_change_status,
    can_delete_invoice,
    determine_payment_status,
    generate_invoice_number,
)
from cm_core.patients.selectors import patient_exists

logger = logging.getLogger(__name__)

ENTITY_TYPE = "Invoice"


@dataclass(frozen=True)
class InvoiceResult:
    """
    Outcome of a mutating invoice operation.

    Business rejections come back as success=False with a machine-readable
    error_kind and a displayable error message; infrastructure failures raise.
    """
    success: bool
    invoice: Invoice | None = None
    payment: Payment | None = None
    error_kind: str | None = None
    error: str | None = None

    @classmethod
    def ok(cls, *, invoice: Invoice | None = None, payment: Payment | None = None) -> "InvoiceResult":
        return cls(success=True, invoice=invoice, payment=payment)

    @classmethod
    def fail(cls, kind: InvoiceErrorKind, message: str | None = None) -> "InvoiceResult":
        return cls(success=False, error_kind=kind.value, error=message or kind.label)

    @classmethod
    def rejected(cls, decision: RuleDecision) -> "InvoiceResult":
        return cls(success=False, error_kind=decision.kind, error=decision.message)


@dataclass(frozen=True)
class PageSummary:
    total_invoices: int
    total_amount: Decimal
    total_paid: Decimal
    total_pending: Decimal


@dataclass(frozen=True)
class InvoicePage:
    invoices: list[Invoice]
    total: int
    pages: int
    summary: PageSummary


@dataclass(frozen=True)
class PaymentTotals:
    total_paid: Decimal
    balance: Decimal


def _item_rows(items: Iterable[Mapping[str, Any]]) -> list[NewInvoiceItem]:
    rows = []
    for item in items:
        line = {
            "quantity": to_decimal(item.get("quantity", 1)),
            "unit_price": to_decimal(item.get("unit_price", 0)),
            "discount": to_decimal(item.get("discount", 0)),
        }
        rows.append(
            NewInvoiceItem(
                description=item["description"],
                service_id=item.get("service_id"),
                total=calculate_item_total(line),
                **line,
            )
        )
    return rows


def _json_safe(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, UUID)):
        return value.isoformat() if isinstance(value, datetime) else str(value)
    return value


class InvoiceService:
    @staticmethod
    def create(
        *,
        clinic_id: UUID,
        user_id: int | None,
        patient_id: UUID,
        items: list[Mapping[str, Any]],
        due_date: datetime | None = None,
        notes: str = "",
    ) -> InvoiceResult:
        """
        Creates a PENDING invoice with its items and the clinic's next number.

        Numbering holds the clinic row lock for the transaction; the
        (clinic_id, clinic_invoice_number) constraint backs it up and a
        collision is retried with a fresh number.
        """
        if not items:
            raise ValidationError({"items": "At least one item is required."})

        if not patient_exists(clinic_id=clinic_id, patient_id=patient_id):
            return InvoiceResult.fail(InvoiceErrorKind.PATIENT_NOT_FOUND)

        rows = _item_rows(items)
        totals = calculate_invoice_totals(rows)

        max_attempts = max(1, int(getattr(settings, "BILLING_INVOICE_NUMBER_MAX_RETRIES", 3)))
        invoice = None

        for attempt in range(1, max_attempts + 1):
            invoice_number = None
            try:
                with transaction.atomic():
                    InvoiceRepository.lock_clinic_sequence(clinic_id=clinic_id)
                    last_number = InvoiceRepository.find_last_invoice_number(clinic_id=clinic_id)
                    invoice_number = generate_invoice_number(last_number)

                    invoice = InvoiceRepository.create(
                        NewInvoice(
                            clinic_id=clinic_id,
                            patient_id=patient_id,
                            issued_by_id=user_id,
                            invoice_number=invoice_number,
                            totals=totals,
                            items=rows,
                            due_date=due_date,
                            notes=notes or "",
                        )
                    )
                break
            except IntegrityError:
                collided = invoice_number is not None and InvoiceRepository.invoice_number_exists(
                    clinic_id=clinic_id, invoice_number=invoice_number
                )
                if not collided or attempt >= max_attempts:
                    raise
                logger.warning(
                    "Invoice number %s already taken in clinic %s, retrying (%d/%d)",
                    invoice_number,
                    clinic_id,
                    attempt,
                    max_attempts,
                )

        logger.info("Invoice %s created in clinic %s (total=%s)", invoice.clinic_invoice_number, clinic_id, invoice.total)

        AuditService.log(
            action=AuditAction.CREATE,
            entity_type=ENTITY_TYPE,
            entity_id=invoice.id,
            entity_name=invoice.display_name,
            clinic_id=clinic_id,
            actor_user_id=user_id,
            metadata={"total": str(invoice.total), "items": len(rows)},
        )
        return InvoiceResult.ok(invoice=invoice)

    @staticmethod
    def get_by_id(*, invoice_id: UUID, clinic_id: UUID, user_id: int | None) -> Invoice | None:
        invoice = InvoiceRepository.find_by_id(invoice_id=invoice_id, clinic_id=clinic_id)

        if invoice is not None:
            # record access is part of the compliance trail
            AuditService.log(
                action=AuditAction.READ,
                entity_type=ENTITY_TYPE,
                entity_id=invoice.id,
                entity_name=invoice.display_name,
                clinic_id=clinic_id,
                actor_user_id=user_id,
            )

        return invoice

    @staticmethod
    def get_many(*, flt: InvoiceFilter, page: int = 1, limit: int = 10) -> InvoicePage:
        """
        One page of invoices plus a summary.

        The summary amounts cover the returned page only; total_invoices is the
        filtered count. Use financial_summary() for whole-set figures.
        """
        invoices, total = InvoiceRepository.find_many(flt=flt, page=page, limit=limit)

        total_amount = sum((inv.total for inv in invoices), ZERO)
        total_paid = sum((calculate_total_paid(inv.payments.all()) for inv in invoices), ZERO)

        return InvoicePage(
            invoices=invoices,
            total=total,
            pages=math.ceil(total / limit) if limit else 0,
            summary=PageSummary(
                total_invoices=total,
                total_amount=total_amount,
                total_paid=total_paid,
                total_pending=total_amount - total_paid,
            ),
        )

    @staticmethod
    def financial_summary(*, flt: InvoiceFilter) -> InvoiceAggregate:
        return InvoiceRepository.aggregate_summary(flt=flt)

    @staticmethod
    def update(*, invoice_id: UUID, clinic_id: UUID, user_id: int | None, data: Mapping[str, Any]) -> InvoiceResult:
        """
        Administrative update of status / due_date / notes.
        Values are trusted as validated by the caller; only un-cancelling is refused.
        """
        with transaction.atomic():
            existing = InvoiceRepository.lock_for_update(invoice_id=invoice_id, clinic_id=clinic_id)
            if existing is None:
                return InvoiceResult.fail(InvoiceErrorKind.NOT_FOUND)

            decision = can_change_status(existing.status, data.get("status"))
            if not decision.allowed:
                return InvoiceResult.rejected(decision)

            invoice = InvoiceRepository.update(invoice_id=invoice_id, clinic_id=clinic_id, data=dict(data))

        AuditService.log(
            action=AuditAction.UPDATE,
            entity_type=ENTITY_TYPE,
            entity_id=invoice.id,
            entity_name=invoice.display_name,
            clinic_id=clinic_id,
            actor_user_id=user_id,
            metadata={k: _json_safe(v) for k, v in data.items()},
        )
        return InvoiceResult.ok(invoice=invoice)

    @staticmethod
    def delete(*, invoice_id: UUID, clinic_id: UUID, user_id: int | None) -> InvoiceResult:
        with transaction.atomic():
            existing = InvoiceRepository.lock_for_update(invoice_id=invoice_id, clinic_id=clinic_id)
            if existing is None:
                return InvoiceResult.fail(InvoiceErrorKind.NOT_FOUND)

            has_payments = InvoiceRepository.has_payments(invoice_id=invoice_id)
            decision = can_delete_invoice(existing.status, has_payments)
            if not decision.allowed:
                return InvoiceResult.rejected(decision)

            if not InvoiceRepository.delete(invoice_id=invoice_id):
                return InvoiceResult.fail(InvoiceErrorKind.HAS_PAYMENTS)

        logger.info("Invoice %s deleted from clinic %s", existing.clinic_invoice_number, clinic_id)

        AuditService.log(
            action=AuditAction.DELETE,
            entity_type=ENTITY_TYPE,
            entity_id=invoice_id,
            entity_name=existing.display_name,
            clinic_id=clinic_id,
            actor_user_id=user_id,
        )
        return InvoiceResult.ok()

    @staticmethod
    def add_payment(
        *,
        invoice_id: UUID,
        clinic_id: UUID,
        user_id: int | None,
        amount: Decimal,
        method: str = PaymentMethod.CASH,
        reference: str = "",
        notes: str = "",
    ) -> InvoiceResult:
        """
        Records a payment and moves the invoice status with the new paid total.

        Payments above the outstanding balance are accepted: the invoice becomes
        PAID and its balance goes negative.
        """
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise ValidationError({"amount": "Payment amount must be > 0."})

        with transaction.atomic():
            invoice = InvoiceRepository.lock_for_update(invoice_id=invoice_id, clinic_id=clinic_id)
            if invoice is None:
                return InvoiceResult.fail(InvoiceErrorKind.NOT_FOUND)

            decision = can_add_payment(invoice.status)
            if not decision.allowed:
                return InvoiceResult.rejected(decision)

            # re-read under the row lock so concurrent payments can't both use a stale total
            already_paid = InvoiceRepository.get_total_paid(invoice_id=invoice_id)
            new_status = determine_payment_status(invoice.total, already_paid + amount)

            payment = InvoiceRepository.add_payment(
                invoice_id=invoice_id,
                data=NewPayment(
                    amount=amount,
                    method=method,
                    reference=reference or "",
                    notes=notes or "",
                    recorded_by_user_id=user_id,
                ),
            )

            previous_status = invoice.status
            if new_status != previous_status:
                InvoiceRepository.update_status(invoice_id=invoice_id, status=new_status)

        logger.info(
            "Payment of %s recorded on invoice %s (%s -> %s)",
            payment.amount,
            invoice.clinic_invoice_number,
            previous_status,
            new_status,
        )

        AuditService.log(
            action=AuditAction.UPDATE,
            entity_type=ENTITY_TYPE,
            entity_id=invoice_id,
            entity_name=f"Pago registrado en {invoice.display_name}",
            clinic_id=clinic_id,
            actor_user_id=user_id,
            metadata={
                "payment_id": payment.id,
                "amount": str(payment.amount),
                "method": payment.method,
                "status_from": previous_status,
                "status_to": str(new_status),
            },
        )

        refreshed = InvoiceRepository.find_by_id(invoice_id=invoice_id, clinic_id=clinic_id)
        return InvoiceResult.ok(invoice=refreshed, payment=payment)

    @staticmethod
    def calculate_totals(invoice: Invoice) -> PaymentTotals:
        total_paid = calculate_total_paid(invoice.payments.all())
        return PaymentTotals(total_paid=total_paid, balance=calculate_balance(invoice.total, total_paid))

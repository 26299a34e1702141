# cm_core/billing/admin.py
from __future__ import annotations

from django.contrib import admin

from cm_core.billing.models import Invoice, InvoiceItem, Payment


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0
    fields = ("position", "description", "service_id", "quantity", "unit_price", "discount", "total")
    readonly_fields = fields
    can_delete = False


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    fields = ("payment_date", "amount", "method", "reference", "recorded_by_user_id")
    readonly_fields = fields
    can_delete = False


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = (
        "clinic_invoice_number",
        "clinic_id",
        "patient",
        "status",
        "issue_date",
        "total",
    )
    list_filter = ("clinic_id", "status", "issue_date")
    search_fields = ("clinic_invoice_number", "patient__first_name", "patient__last_name")
    raw_id_fields = ("patient", "issued_by")
    inlines = (InvoiceItemInline, PaymentInline)
    ordering = ("-issue_date",)


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("id", "invoice", "amount", "method", "payment_date", "recorded_by_user_id")
    list_filter = ("method", "payment_date")
    search_fields = ("invoice__clinic_invoice_number", "reference")
    raw_id_fields = ("invoice",)
    ordering = ("-payment_date",)

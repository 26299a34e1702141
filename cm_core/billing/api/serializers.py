# cm_core/billing/api/serializers.py
from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from cm_core.billing.calculator import calculate_balance, calculate_total_paid
from cm_core.billing.models import Invoice, InvoiceItem, InvoiceStatus, Payment, PaymentMethod


def _money_str(value: Decimal) -> str:
    # same rendering as the model DecimalFields
    return str(value.quantize(Decimal("0.01")))


class InvoiceItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = InvoiceItem
        fields = [
            "id",
            "service_id",
            "description",
            "quantity",
            "unit_price",
            "discount",
            "total",
        ]
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = [
            "id",
            "invoice",
            "amount",
            "method",
            "reference",
            "notes",
            "payment_date",
            "recorded_by_user_id",
        ]
        read_only_fields = fields


class InvoiceSerializer(serializers.ModelSerializer):
    patient_name = serializers.CharField(source="patient.full_name", read_only=True)
    items = InvoiceItemSerializer(many=True, read_only=True)
    payments = PaymentSerializer(many=True, read_only=True)
    total_paid = serializers.SerializerMethodField()
    balance = serializers.SerializerMethodField()

    class Meta:
        model = Invoice
        fields = [
            "id",
            "clinic_id",
            "clinic_invoice_number",
            "patient",
            "patient_name",
            "issued_by",
            "status",
            "issue_date",
            "due_date",
            "subtotal",
            "discount",
            "tax",
            "total",
            "total_paid",
            "balance",
            "notes",
            "items",
            "payments",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_total_paid(self, obj: Invoice) -> str:
        return _money_str(calculate_total_paid(obj.payments.all()))

    def get_balance(self, obj: Invoice) -> str:
        return _money_str(calculate_balance(obj.total, calculate_total_paid(obj.payments.all())))


class InvoiceItemInputSerializer(serializers.Serializer):
    service_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    description = serializers.CharField(max_length=255)
    quantity = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("1"))
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))
    discount = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal("0"), required=False, default=Decimal("0.00")
    )


class InvoiceCreateSerializer(serializers.Serializer):
    patient = serializers.UUIDField()
    due_date = serializers.DateTimeField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    items = InvoiceItemInputSerializer(many=True, allow_empty=False)


class InvoiceUpdateSerializer(serializers.Serializer):
    """
    Only fields sent by the client end up in validated_data (PATCH semantics).
    """
    status = serializers.ChoiceField(choices=InvoiceStatus.choices, required=False)
    due_date = serializers.DateTimeField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class PaymentCreateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
    method = serializers.ChoiceField(choices=PaymentMethod.choices, required=False, default=PaymentMethod.CASH)
    reference = serializers.CharField(required=False, allow_blank=True, default="", max_length=64)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class PageSummarySerializer(serializers.Serializer):
    total_invoices = serializers.IntegerField()
    total_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_paid = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_pending = serializers.DecimalField(max_digits=14, decimal_places=2)


class DistributionRowSerializer(serializers.Serializer):
    label = serializers.CharField()
    count = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)


class FinancialSummarySerializer(serializers.Serializer):
    total_invoices = serializers.IntegerField()
    total_revenue = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_tax = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_discounts = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_paid = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_pending = serializers.DecimalField(max_digits=14, decimal_places=2)
    status_distribution = DistributionRowSerializer(many=True)
    payment_method_distribution = DistributionRowSerializer(many=True)

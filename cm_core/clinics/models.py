# cm_core/clinics/models.py
from __future__ import annotations

import uuid

from django.conf import settings
from django.db import models


class ClinicStatus(models.TextChoices):
    ACTIVE = "ACTIVE", "Active"
    INACTIVE = "INACTIVE", "Inactive"
    SUSPENDED = "SUSPENDED", "Suspended"


class Clinic(models.Model):
    """
    Top-level organization.
    Root of all scoping in the system; every scoped row carries its clinic_id.
    NOT a ClinicScopedModel (it *is* the clinic).

    The row doubles as the per-clinic lock for invoice numbering.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=255)
    code = models.SlugField(max_length=64, unique=True)

    status = models.CharField(
        max_length=16,
        choices=ClinicStatus.choices,
        default=ClinicStatus.ACTIVE,
        db_index=True,
    )

    # Contact (optional)
    phone = models.CharField(max_length=32, blank=True, default="")
    email = models.EmailField(blank=True, default="")
    address = models.CharField(max_length=255, blank=True, default="")

    # Fiscal identifier printed on invoices (optional)
    tax_id = models.CharField(max_length=32, blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "clinics_clinic"
        indexes = [
            models.Index(fields=["status"], name="clinics_clinic_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"


class ClinicMembership(models.Model):
    """
    user -> clinic assignment.
    Single source of truth for which clinic a request may act on.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name="memberships")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="clinic_memberships",
    )
    is_active = models.BooleanField(default=True, db_index=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "clinics_membership"
        constraints = [
            models.UniqueConstraint(fields=["clinic", "user"], name="uq_clinic_membership_user"),
        ]

    def __str__(self) -> str:
        return f"{self.user_id} @ {self.clinic_id}"

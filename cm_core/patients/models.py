# cm_core/patients/models.py
from django.db import models

from cm_core.common.models import ClinicScopedModel


class Patient(ClinicScopedModel):
    """
    Patient record scoped to a clinic.
    Billing only needs identity + display name; clinical history lives elsewhere.
    """
    first_name = models.CharField(max_length=128)
    middle_name = models.CharField(max_length=128, blank=True, default="")
    last_name = models.CharField(max_length=128)

    # national population registry code (optional)
    curp = models.CharField(max_length=18, blank=True, default="")

    phone = models.CharField(max_length=32, blank=True, default="")
    email = models.EmailField(blank=True, default="")

    class Meta:
        db_table = "patients_patient"
        indexes = [
            models.Index(fields=["clinic_id", "last_name"], name="patients_clinic_last_name_idx"),
        ]

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.middle_name, self.last_name]
        return " ".join(p for p in parts if p)

    def __str__(self) -> str:
        return self.full_name

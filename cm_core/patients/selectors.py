# cm_core/patients/selectors.py
from __future__ import annotations

from uuid import UUID

from cm_core.patients.models import Patient


def patient_exists(*, clinic_id: UUID, patient_id: UUID) -> bool:
    return Patient.objects.filter(id=patient_id, clinic_id=clinic_id).exists()

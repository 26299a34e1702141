# cm_core/clinics/selectors.py
from __future__ import annotations

from uuid import UUID

from cm_core.clinics.models import ClinicMembership


def is_user_member_of_clinic(*, user_id: int, clinic_id: UUID) -> bool:
    """
    Validate user -> clinic membership.
    This is the single source of truth used by scope enforcement.
    """
    return ClinicMembership.objects.filter(
        is_active=True,
        clinic_id=clinic_id,
        user_id=user_id,
    ).exists()


def user_clinic_ids(*, user_id: int) -> list[UUID]:
    return list(
        ClinicMembership.objects.filter(user_id=user_id, is_active=True)
        .order_by("created_at")
        .values_list("clinic_id", flat=True)
    )

# cm_core/common/scope.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from rest_framework.exceptions import PermissionDenied, ValidationError

from cm_core.clinics.selectors import is_user_member_of_clinic, user_clinic_ids


@dataclass(frozen=True)
class ClinicScope:
    clinic_id: UUID


# header lookup is case-insensitive, so X-Clinic-ID and x-clinic-id also match
HDR_CLINIC = "X-Clinic-Id"

MISSING_SCOPE_MSG = "Missing scope header. Provide X-Clinic-Id."
INVALID_SCOPE_MSG = "Invalid scope header. Provide a valid UUID for X-Clinic-Id."
NO_CLINIC_MSG = "No clinic assigned to this user."
NOT_MEMBER_MSG = "You do not have access to the selected clinic."


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def _get_header(request, name: str) -> Optional[str]:
    """
    request.headers is case-insensitive; fallback to META for pytest/client.
    """
    headers = getattr(request, "headers", None)
    if headers is not None:
        v = headers.get(name)
        if v:
            return v

    meta_key = "HTTP_" + name.upper().replace("-", "_")
    return request.META.get(meta_key)


def require_clinic_scope(request) -> ClinicScope:
    """
    Resolves the clinic a request acts on.

    - X-Clinic-Id present: must be a UUID (400) and the user must be a member (403).
    - Header absent: falls back to the user's only active membership.
      Several memberships -> 400 (caller must choose), none -> 403.

    On success attaches request.clinic_id and request.scope.
    """
    cached = getattr(request, "scope", None)
    if isinstance(cached, ClinicScope):
        return cached

    user = getattr(request, "user", None)
    if not user or not getattr(user, "is_authenticated", False):
        raise PermissionDenied("Authentication required to set scope.")

    raw = _get_header(request, HDR_CLINIC)

    if raw:
        clinic_id = _parse_uuid(raw)
        if clinic_id is None:
            raise ValidationError({"detail": INVALID_SCOPE_MSG})
        if not is_user_member_of_clinic(user_id=user.id, clinic_id=clinic_id):
            raise PermissionDenied(NOT_MEMBER_MSG)
    else:
        clinic_ids = user_clinic_ids(user_id=user.id)
        if not clinic_ids:
            raise PermissionDenied(NO_CLINIC_MSG)
        if len(clinic_ids) > 1:
            raise ValidationError({"detail": MISSING_SCOPE_MSG})
        clinic_id = clinic_ids[0]

    scope = ClinicScope(clinic_id=clinic_id)
    request.clinic_id = clinic_id
    request.scope = scope
    return scope

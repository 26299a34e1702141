# cm_core/common/openapi.py
from __future__ import annotations

from drf_spectacular.openapi import AutoSchema
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter

from cm_core.common.scope import HDR_CLINIC


class ClinicAutoSchema(AutoSchema):
    """
    Adds the X-Clinic-Id header to every clinic-scoped operation.

    Not marked required: a user with a single clinic membership may omit it.
    Token and schema/docs endpoints are left alone.
    """

    CLINIC_HEADER = OpenApiParameter(
        name=HDR_CLINIC,
        type=OpenApiTypes.UUID,
        location=OpenApiParameter.HEADER,
        required=False,
        description="Clinic scope UUID. Required when the user belongs to more than one clinic.",
    )

    def _is_unscoped_endpoint(self) -> bool:
        view = getattr(self, "view", None)
        if view is None:
            return False

        if view.__class__.__name__ in {"SpectacularAPIView", "SpectacularSwaggerView"}:
            return True

        # simplejwt token views
        module = view.__class__.__module__ or ""
        return module.startswith("rest_framework_simplejwt.")

    def get_override_parameters(self):
        params = list(super().get_override_parameters() or [])

        if not self._is_unscoped_endpoint():
            if not any(p.name.lower() == HDR_CLINIC.lower() for p in params):
                params.append(self.CLINIC_HEADER)

        return params

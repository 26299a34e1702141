# cm_core/conftest.py
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from cm_core.clinics.models import Clinic, ClinicMembership
from cm_core.patients.models import Patient


def scope_headers(clinic):
    """
    Scope header used by require_clinic_scope.
    DRF test client requires HTTP_ prefix.
    """
    return {"HTTP_X_CLINIC_ID": str(clinic.id)}


def consult_items(*lines):
    """
    Item payloads for InvoiceService.create: consult_items(("Consulta", 1, "500.00")).
    """
    rows = []
    for description, quantity, unit_price, *rest in lines:
        rows.append(
            {
                "description": description,
                "quantity": Decimal(str(quantity)),
                "unit_price": Decimal(str(unit_price)),
                "discount": Decimal(str(rest[0])) if rest else Decimal("0.00"),
            }
        )
    return rows


@pytest.fixture
def clinic(db):
    return Clinic.objects.create(code="test-clinic", name="Test Clinic")


@pytest.fixture
def other_clinic(db):
    return Clinic.objects.create(code="other-clinic", name="Other Clinic")


@pytest.fixture
def user(db, clinic):
    """
    Test user with an active membership in `clinic` only.
    """
    User = get_user_model()
    user = User.objects.create_user(
        username="testuser",
        password="testpass",
        is_active=True,
    )
    ClinicMembership.objects.create(clinic=clinic, user=user, is_active=True)
    return user


@pytest.fixture
def api_client(user):
    c = APIClient()
    c.force_authenticate(user=user)
    return c


@pytest.fixture
def patient(db, clinic):
    return Patient.objects.create(
        clinic_id=clinic.id,
        first_name="Ana",
        last_name="Lopez",
    )


@pytest.fixture
def other_patient(db, other_clinic):
    return Patient.objects.create(
        clinic_id=other_clinic.id,
        first_name="Luis",
        last_name="Perez",
    )

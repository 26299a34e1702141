# cm_core/clinics/apps.py
from __future__ import annotations

from django.apps import AppConfig


class ClinicsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "cm_core.clinics"

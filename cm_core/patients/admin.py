# cm_core/patients/admin.py
from django.contrib import admin

from cm_core.patients.models import Patient


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ("id", "first_name", "last_name", "curp", "clinic_id", "created_at")
    list_filter = ("clinic_id",)
    search_fields = ("first_name", "last_name", "middle_name", "curp", "phone", "email")
    ordering = ("-created_at",)

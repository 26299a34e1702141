# cm_core/clinics/admin.py
from django.contrib import admin

from cm_core.clinics.models import Clinic, ClinicMembership


@admin.register(Clinic)
class ClinicAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "status", "created_at", "updated_at")
    list_filter = ("status", "created_at")
    search_fields = ("name", "code")
    ordering = ("-created_at",)
    readonly_fields = ("id", "created_at", "updated_at")

    fieldsets = (
        (None, {"fields": ("id", "name", "code", "status")}),
        ("Contact", {"fields": ("phone", "email", "address", "tax_id")}),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )


@admin.register(ClinicMembership)
class ClinicMembershipAdmin(admin.ModelAdmin):
    list_display = ("user", "clinic", "is_active", "created_at")
    list_filter = ("is_active", "clinic")
    search_fields = ("user__username", "clinic__name", "clinic__code")
    autocomplete_fields = ("clinic",)

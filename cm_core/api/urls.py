# cm_core/api/urls.py
from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from cm_core.audit.api.views import AuditEventViewSet
from cm_core.billing.api.views import InvoiceViewSet

router = DefaultRouter()

router.register(r"billing/invoices", InvoiceViewSet, basename="billing-invoices")
router.register(r"audit/events", AuditEventViewSet, basename="audit-events")

urlpatterns = [
    # JWT
    path("auth/token/", TokenObtainPairView.as_view(), name="token-obtain"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token-refresh"),

    *router.urls,
]

# cm_core/common/models.py
from __future__ import annotations

import uuid

from django.db import models


class TimeStampedModel(models.Model):
    """
    Standard timestamps for all entities.
    """
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class ClinicScopedModel(TimeStampedModel):
    """
    Every row belongs to exactly one clinic.
    (require_clinic_scope resolves the clinic per request; this carries it into storage.)
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    clinic_id = models.UUIDField(db_index=True)

    class Meta:
        abstract = True

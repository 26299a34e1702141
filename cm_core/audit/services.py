# cm_core/audit/services.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import UUID

from django.db import transaction

from cm_core.audit.models import AuditEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditRecord:
    action: str
    entity_type: str
    entity_id: str
    entity_name: str
    clinic_id: UUID
    actor_user_id: int | None
    metadata: Dict[str, Any]


class AuditService:
    """
    Central audit writer.
    Persists into AuditEvent (immutable).

    An audit failure is logged and reported as None; it never aborts the
    caller's business operation. The write happens in its own savepoint so a
    failed insert does not poison an enclosing transaction.
    """

    @staticmethod
    def log(
        *,
        action: str,
        entity_type: str,
        entity_id,
        clinic_id: UUID,
        actor_user_id: int | None,
        entity_name: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditRecord | None:
        metadata = metadata or {}
        entity_id = str(entity_id)

        try:
            with transaction.atomic():
                AuditEvent.objects.create(
                    clinic_id=clinic_id,
                    action=action,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    entity_name=entity_name or "",
                    actor_user_id=actor_user_id,
                    metadata=metadata,
                )
        except Exception:
            logger.exception(
                "Audit write failed: action=%s entity=%s:%s clinic=%s",
                action,
                entity_type,
                entity_id,
                clinic_id,
            )
            return None

        return AuditRecord(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name or "",
            clinic_id=clinic_id,
            actor_user_id=actor_user_id,
            metadata=metadata,
        )

# audit/sink.py

"""
AUDIT SINK

Pluggable destination for business audit records.

Contract:
- record(actor_id, action, entity_id, details) is fire-and-forget
- services call it AFTER their transaction commits (record_after_commit)
- a failing sink never fails the business operation

Configured by settings.PHARMACY_AUDIT_SINK (dotted path to a class).
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from django.conf import settings
from django.db import transaction
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)

audit_logger = logging.getLogger("audit")

DEFAULT_AUDIT_SINK = "audit.sink.LoggingAuditSink"


class AuditSink:
    """Base audit sink. Subclasses override record()."""

    def record(
        self,
        actor_id: Optional[str],
        action: str,
        entity_id: Optional[str],
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        raise NotImplementedError


class LoggingAuditSink(AuditSink):
    """Emits one structured record per action on the "audit" logger."""

    def record(self, actor_id, action, entity_id, details=None) -> None:
        audit_logger.info(
            action,
            extra={
                "actor_id": actor_id,
                "action": action,
                "entity_id": entity_id,
                "details": dict(details or {}),
            },
        )


def get_audit_sink() -> AuditSink:
    path = getattr(settings, "PHARMACY_AUDIT_SINK", None) or DEFAULT_AUDIT_SINK
    return import_string(path)()


def actor_id_of(actor) -> Optional[str]:
    pk = getattr(actor, "pk", None)
    return str(pk) if pk is not None else None


def record_audit(*, actor, action: str, entity_id, details=None) -> None:
    try:
        get_audit_sink().record(
            actor_id_of(actor),
            action,
            str(entity_id) if entity_id is not None else None,
            details or {},
        )
    except Exception:
        logger.exception(
            "Audit sink failed",
            extra={"action": action, "entity_id": str(entity_id)},
        )


def record_after_commit(*, actor, action: str, entity_id, details=None) -> None:
    """Schedule an audit record for when the current transaction commits."""
    transaction.on_commit(
        lambda: record_audit(
            actor=actor,
            action=action,
            entity_id=entity_id,
            details=details,
        ),
        robust=True,
    )

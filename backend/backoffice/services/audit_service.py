# Overview: Business audit trail; writes happen after the main commit and never block it.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import AuditLog
from .concurrency import run_with_retry

ACTION_ORDER_SUSPENDED = "ORDER_SUSPENDED"
ACTION_ORDER_RESUMED = "ORDER_RESUMED"


def append_audit_event(
    *,
    tenant_id: int,
    action: str,
    entity_type: str,
    entity_id=None,
    user_id: int | None = None,
    details: dict | None = None,
) -> AuditLog:
    """Add an audit row to the current transaction (flushed, not committed)."""
    entry = AuditLog(
        tenant_id=tenant_id,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        details=details,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def record_audit_event(**kwargs) -> AuditLog | None:
    """
    Write one audit row in its own short transaction.

    Callers have already committed their business change. A failure here
    is logged and reported as None; the business operation stands.
    """
    def _op():
        entry = append_audit_event(**kwargs)
        db.session.commit()
        return entry

    try:
        return run_with_retry(_op)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning(
            "Audit log write failed for %s %s",
            kwargs.get("action"),
            kwargs.get("entity_id"),
            exc_info=True,
        )
        return None

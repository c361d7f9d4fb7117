# Overview: Tenant-scoped document number allocation (PO and order numbers).

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationFailedError
from ..extensions import db
from ..models import DocumentSequence

DOCUMENT_PURCHASE_ORDER = "PURCHASE_ORDER"
DOCUMENT_ORDER = "ORDER"


def _increment(tenant_id: int, document_type: str) -> int | None:
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.tenant_id == tenant_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(tenant_id=tenant_id, document_type=document_type)
        .scalar()
    )
    return current - 1


def next_document_number(
    *,
    tenant_id: int,
    document_type: str,
    prefix: str,
    pad: int = 6,
) -> str:
    """
    Atomically allocate the next document number for a tenant/type.

    Runs inside the caller's transaction: the counter row stays write-locked
    until the caller commits, and a rollback of the caller burns nothing
    visible (numbers are allowed to have gaps, never duplicates).

    The first allocation for a type creates the counter row inside a
    savepoint; if a concurrent request created it first, the insert fails
    on the unique constraint and the atomic increment is retried.
    """
    if not tenant_id:
        raise ValidationFailedError("tenant_id is required")
    if not document_type:
        raise ValidationFailedError("document_type is required")

    next_num = _increment(tenant_id, document_type)
    if next_num is None:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(tenant_id=tenant_id, document_type=document_type, next_number=2))
            next_num = 1
        except IntegrityError:
            next_num = _increment(tenant_id, document_type)
            if next_num is None:
                raise

    return f"{prefix}-{next_num:0{pad}d}"


def peek_next_number(tenant_id: int, document_type: str) -> int:
    """Number the next allocation would receive (no reservation)."""
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(tenant_id=tenant_id, document_type=document_type)
        .scalar()
    )
    return current or 1

from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class DocumentSequence(db.Model):
    """
    Atomic per-tenant document sequences.

    Incremented with a single SQL UPDATE so concurrent allocators never
    hand out the same number. Numbers burned by rolled-back transactions
    are not reused.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "document_type", name="uq_doc_sequences_tenant_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }


class AuditLog(db.Model):
    """Business audit trail (suspend/recall of carts, etc.)."""
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_tenant_entity", "tenant_id", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, nullable=True)

    action = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.String(64), nullable=True)
    details = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "details": self.details,
            "created_at": to_utc_z(self.created_at),
        }

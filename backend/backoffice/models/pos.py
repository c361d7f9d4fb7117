from __future__ import annotations

from ..extensions import db
from backoffice.money import decimal_str
from backoffice.time_utils import to_utc_z


class PosSession(db.Model):
    """
    Cash drawer session for one cashier at one terminal and location.

    LIFECYCLE:
    - OPEN: transactions may be recorded
    - CLOSED: counted, calculated cash and difference stored
    - RECONCILED: reviewed; bookkeeping confirmation only

    At most one OPEN session per (tenant, user, terminal, location); the
    partial unique index backs up the service-level check.
    """
    __tablename__ = "pos_sessions"
    __table_args__ = (
        db.Index(
            "uq_pos_sessions_one_open",
            "tenant_id", "user_id", "pos_terminal_id", "location_id",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    pos_terminal_id = db.Column(db.String(64), nullable=False)
    user_id = db.Column(db.Integer, nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="OPEN", index=True)

    starting_cash = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    ending_cash = db.Column(db.Numeric(18, 4), nullable=True)  # counted
    calculated_cash = db.Column(db.Numeric(18, 4), nullable=True)  # expected
    difference = db.Column(db.Numeric(18, 4), nullable=True)  # counted - expected

    start_time = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)
    reconciled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reconciled_by_user_id = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    location = db.relationship("Location")
    transactions = db.relationship(
        "PosSessionTransaction",
        backref="session",
        lazy=True,
        order_by="PosSessionTransaction.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "location_id": self.location_id,
            "pos_terminal_id": self.pos_terminal_id,
            "user_id": self.user_id,
            "status": self.status,
            "starting_cash": decimal_str(self.starting_cash),
            "ending_cash": decimal_str(self.ending_cash),
            "calculated_cash": decimal_str(self.calculated_cash),
            "difference": decimal_str(self.difference),
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time),
            "reconciled_at": to_utc_z(self.reconciled_at),
            "reconciled_by_user_id": self.reconciled_by_user_id,
            "notes": self.notes,
            "version_id": self.version_id,
        }


class PosSessionTransaction(db.Model):
    """
    Append-only cash/payment log for a session.

    amount is always positive; direction comes from transaction_type.
    The opening float is logged as PAY_IN with is_starting_float set so the
    close-out arithmetic does not count it twice.
    """
    __tablename__ = "pos_session_transactions"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_pos_session_tx_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    pos_session_id = db.Column(db.Integer, db.ForeignKey("pos_sessions.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(32), nullable=False, index=True)
    amount = db.Column(db.Numeric(18, 4), nullable=False)
    is_starting_float = db.Column(db.Boolean, nullable=False, default=False)

    related_order_id = db.Column(db.Integer, nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pos_session_id": self.pos_session_id,
            "transaction_type": self.transaction_type,
            "amount": decimal_str(self.amount),
            "is_starting_float": self.is_starting_float,
            "related_order_id": self.related_order_id,
            "notes": self.notes,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }

# Overview: POS cash drawer sessions: open, close-out arithmetic, reconciliation and cash movements.

"""
POS Session Service

A session is one cashier's drawer at one terminal and location.

LIFECYCLE:
- OPEN: sales and cash movements are logged against it
- CLOSED: drawer counted; expected cash replayed from the session log
- RECONCILED: reviewed by a manager (bookkeeping only, no correction)

Cash arithmetic (expected drawer content):
  starting cash
  + PAY_IN + CASH_SALE
  - PAY_OUT - CASH_REFUND
Card, mobile money, check, bank transfer and other tenders never touch the
drawer; they only show up in the payment summary. The starting float is
logged as a PAY_IN for the audit trail but is already counted in starting
cash, so the replay skips it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, InvalidStateError, NotFoundError, ValidationFailedError
from ..extensions import db
from ..models import PosSession, PosSessionTransaction
from ..money import ZERO, decimal_str, to_decimal
from ..time_utils import utcnow
from . import catalog_service
from .concurrency import atomic, lock_for_update

STATUS_OPEN = "OPEN"
STATUS_CLOSED = "CLOSED"
STATUS_RECONCILED = "RECONCILED"

SESSION_STATUSES = {STATUS_OPEN, STATUS_CLOSED, STATUS_RECONCILED}

TX_PAY_IN = "PAY_IN"
TX_PAY_OUT = "PAY_OUT"
TX_CASH_SALE = "CASH_SALE"
TX_CASH_REFUND = "CASH_REFUND"
TX_CARD_SALE = "CARD_SALE"
TX_MOBILE_MONEY_SALE = "MOBILE_MONEY_SALE"
TX_CHECK_SALE = "CHECK_SALE"
TX_BANK_TRANSFER_SALE = "BANK_TRANSFER_SALE"
TX_OTHER_SALE = "OTHER_SALE"

SESSION_TRANSACTION_TYPES = (
    TX_PAY_IN,
    TX_PAY_OUT,
    TX_CASH_SALE,
    TX_CASH_REFUND,
    TX_CARD_SALE,
    TX_MOBILE_MONEY_SALE,
    TX_CHECK_SALE,
    TX_BANK_TRANSFER_SALE,
    TX_OTHER_SALE,
)

CASH_INCREASING_TYPES = frozenset({TX_PAY_IN, TX_CASH_SALE})
CASH_DECREASING_TYPES = frozenset({TX_PAY_OUT, TX_CASH_REFUND})
MANUAL_CASH_TYPES = frozenset({TX_PAY_IN, TX_PAY_OUT})

STARTING_FLOAT_NOTE = "Starting float"


@dataclass
class PaymentSummary:
    starting_cash: Decimal
    totals_by_type: dict[str, Decimal] = field(default_factory=dict)
    transaction_count: int = 0
    calculated_cash: Decimal | None = None
    ending_cash: Decimal | None = None
    difference: Decimal | None = None

    def to_dict(self) -> dict:
        return {
            "starting_cash": decimal_str(self.starting_cash),
            "totals_by_type": {k: decimal_str(v) for k, v in self.totals_by_type.items()},
            "transaction_count": self.transaction_count,
            "calculated_cash": decimal_str(self.calculated_cash),
            "ending_cash": decimal_str(self.ending_cash),
            "difference": decimal_str(self.difference),
        }


@dataclass
class SessionReport:
    session: PosSession
    payment_summary: PaymentSummary

    def to_dict(self) -> dict:
        return {
            "session": self.session.to_dict(),
            "payment_summary": self.payment_summary.to_dict(),
        }


def calculate_expected_cash(starting_cash: Decimal, transactions) -> Decimal:
    """Replay the session log into the cash the drawer should hold."""
    expected = starting_cash
    for tx in transactions:
        if tx.is_starting_float:
            continue
        if tx.transaction_type in CASH_INCREASING_TYPES:
            expected += tx.amount
        elif tx.transaction_type in CASH_DECREASING_TYPES:
            expected -= tx.amount
    return expected


def build_payment_summary(session: PosSession, transactions) -> PaymentSummary:
    totals = {tx_type: ZERO for tx_type in SESSION_TRANSACTION_TYPES}
    count = 0
    for tx in transactions:
        if tx.is_starting_float:
            continue
        totals[tx.transaction_type] = totals.get(tx.transaction_type, ZERO) + tx.amount
        count += 1
    return PaymentSummary(
        starting_cash=session.starting_cash,
        totals_by_type=totals,
        transaction_count=count,
        calculated_cash=session.calculated_cash,
        ending_cash=session.ending_cash,
        difference=session.difference,
    )


def _append_note(existing: str | None, line: str) -> str:
    return f"{existing}\n{line}" if existing else line


def _session_transactions(session_id: int) -> list[PosSessionTransaction]:
    return (
        db.session.query(PosSessionTransaction)
        .filter(PosSessionTransaction.pos_session_id == session_id)
        .order_by(PosSessionTransaction.id)
        .all()
    )


# =============================================================================
# Reads
# =============================================================================

def get_current_session(
    *,
    tenant_id: int,
    user_id: int,
    terminal_id: str,
    location_id: int,
) -> PosSession | None:
    """The OPEN session for this (user, terminal, location), if any."""
    return (
        db.session.query(PosSession)
        .filter_by(
            tenant_id=tenant_id,
            user_id=user_id,
            pos_terminal_id=terminal_id,
            location_id=location_id,
            status=STATUS_OPEN,
        )
        .first()
    )


def require_active_session(
    *,
    tenant_id: int,
    user_id: int,
    terminal_id: str,
    location_id: int,
    session_id: int | None = None,
) -> PosSession:
    """
    Resolve the caller's OPEN session, optionally pinned to ``session_id``.

    Raises InvalidStateError when the caller has no open session here or
    the given id is not it.
    """
    session = get_current_session(
        tenant_id=tenant_id,
        user_id=user_id,
        terminal_id=terminal_id,
        location_id=location_id,
    )
    if session is None or (session_id is not None and session.id != session_id):
        raise InvalidStateError(
            "Invalid or inactive POS session for this user, terminal and location",
            {"session_id": session_id},
        )
    return session


def lock_open_session(session_id: int, tenant_id: int) -> PosSession:
    """Re-read and lock a session inside a transaction; it must still be OPEN."""
    session = (
        lock_for_update(db.session.query(PosSession).filter_by(id=session_id, tenant_id=tenant_id))
        .populate_existing()
        .first()
    )
    if session is None or session.status != STATUS_OPEN:
        raise InvalidStateError("POS session is no longer open", {"session_id": session_id})
    return session


def get_session(session_id: int, tenant_id: int) -> PosSession:
    session = db.session.query(PosSession).filter_by(id=session_id, tenant_id=tenant_id).first()
    if session is None:
        raise NotFoundError(f"POS session {session_id} not found", {"session_id": session_id})
    return session


def get_session_report(session_id: int, tenant_id: int) -> SessionReport:
    session = get_session(session_id, tenant_id)
    return SessionReport(session, build_payment_summary(session, _session_transactions(session.id)))


def list_sessions(
    *,
    tenant_id: int,
    status: str | None = None,
    location_id: int | None = None,
    user_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[PosSession], int]:
    if status is not None and status not in SESSION_STATUSES:
        raise ValidationFailedError(f"Unknown session status {status}", {"status": status})

    query = db.session.query(PosSession).filter(PosSession.tenant_id == tenant_id)
    if status:
        query = query.filter(PosSession.status == status)
    if location_id:
        query = query.filter(PosSession.location_id == location_id)
    if user_id:
        query = query.filter(PosSession.user_id == user_id)

    total = query.count()
    rows = (
        query.order_by(PosSession.start_time.desc(), PosSession.id.desc())
        .offset(max(offset, 0))
        .limit(min(max(limit, 1), 200))
        .all()
    )
    return rows, total


# =============================================================================
# Lifecycle
# =============================================================================

def start_session(
    *,
    tenant_id: int,
    user_id: int,
    terminal_id: str,
    location_id: int,
    starting_cash,
    notes: str | None = None,
) -> PosSession:
    """
    Open a drawer session.

    Args:
        starting_cash: Float placed in the drawer; logged as a PAY_IN
            tagged "Starting float" when greater than zero

    Raises:
        ValidationFailedError: Negative starting cash or missing terminal
        NotFoundError: Location missing or inactive
        ConflictError: An OPEN session already exists for the same user,
            terminal and location
    """
    if not terminal_id:
        raise ValidationFailedError("terminal_id is required")
    starting = to_decimal(starting_cash, "starting_cash")
    if starting < ZERO:
        raise ValidationFailedError("Starting cash cannot be negative", {"starting_cash": decimal_str(starting)})

    catalog_service.get_active_location(tenant_id, location_id)

    existing = get_current_session(
        tenant_id=tenant_id,
        user_id=user_id,
        terminal_id=terminal_id,
        location_id=location_id,
    )
    if existing:
        raise ConflictError(
            f"An open session ({existing.id}) already exists for this user, terminal and location",
            {"session_id": existing.id},
        )

    with atomic("start_session", tenant_id=tenant_id, user_id=user_id, terminal_id=terminal_id):
        session = PosSession(
            tenant_id=tenant_id,
            location_id=location_id,
            pos_terminal_id=terminal_id,
            user_id=user_id,
            status=STATUS_OPEN,
            starting_cash=starting,
            start_time=utcnow(),
            notes=notes,
        )
        db.session.add(session)
        try:
            db.session.flush()
        except IntegrityError:
            raise ConflictError("An open session already exists for this user, terminal and location")

        if starting > ZERO:
            db.session.add(PosSessionTransaction(
                tenant_id=tenant_id,
                pos_session_id=session.id,
                transaction_type=TX_PAY_IN,
                amount=starting,
                is_starting_float=True,
                notes=STARTING_FLOAT_NOTE,
                user_id=user_id,
            ))

    current_app.logger.info(
        "POS session %s opened by user %s at terminal %s (float %s)",
        session.id, user_id, terminal_id, decimal_str(starting),
    )
    return session


def end_session(
    *,
    session_id: int,
    tenant_id: int,
    user_id: int,
    terminal_id: str,
    location_id: int,
    ending_cash,
    notes: str | None = None,
) -> SessionReport:
    """
    Close a session with the counted drawer amount.

    The session must be OPEN and match user, terminal and location
    exactly; anything else reads as not found. A nonzero difference is
    logged as a warning and does not block closing.
    """
    counted = to_decimal(ending_cash, "ending_cash")
    if counted < ZERO:
        raise ValidationFailedError("Ending cash cannot be negative", {"ending_cash": decimal_str(counted)})

    with atomic("end_session", session_id=session_id, tenant_id=tenant_id, user_id=user_id):
        session = (
            lock_for_update(
                db.session.query(PosSession).filter_by(
                    id=session_id,
                    tenant_id=tenant_id,
                    user_id=user_id,
                    pos_terminal_id=terminal_id,
                    location_id=location_id,
                    status=STATUS_OPEN,
                )
            )
            .populate_existing()
            .first()
        )
        if session is None:
            raise NotFoundError(
                "Active session not found for this user, terminal and location",
                {"session_id": session_id},
            )

        transactions = _session_transactions(session.id)
        calculated = calculate_expected_cash(session.starting_cash, transactions)

        session.ending_cash = counted
        session.calculated_cash = calculated
        session.difference = counted - calculated
        session.status = STATUS_CLOSED
        session.end_time = utcnow()
        if notes:
            session.notes = _append_note(session.notes, f"End Note: {notes}")

        summary = build_payment_summary(session, transactions)

    if summary.difference != ZERO:
        current_app.logger.warning(
            "POS session %s closed with cash difference %s (counted %s, expected %s)",
            session_id, decimal_str(summary.difference), decimal_str(counted), decimal_str(calculated),
        )
    else:
        current_app.logger.info("POS session %s closed balanced at %s", session_id, decimal_str(counted))

    return SessionReport(session, summary)


def reconcile_session(
    *,
    session_id: int,
    tenant_id: int,
    user_id: int,
    notes: str | None = None,
) -> SessionReport:
    with atomic("reconcile_session", session_id=session_id, tenant_id=tenant_id):
        session = (
            lock_for_update(db.session.query(PosSession).filter_by(id=session_id, tenant_id=tenant_id))
            .populate_existing()
            .first()
        )
        if session is None:
            raise NotFoundError(f"POS session {session_id} not found", {"session_id": session_id})
        if session.status != STATUS_CLOSED:
            raise InvalidStateError(
                f"Only CLOSED sessions can be reconciled; session {session_id} is {session.status}",
                {"status": session.status},
            )

        session.status = STATUS_RECONCILED
        session.reconciled_at = utcnow()
        session.reconciled_by_user_id = user_id
        if notes:
            session.notes = _append_note(session.notes, f"Reconcile Note: {notes}")

        summary = build_payment_summary(session, _session_transactions(session.id))

    current_app.logger.info("POS session %s reconciled by user %s", session_id, user_id)
    return SessionReport(session, summary)


def record_cash_transaction(
    *,
    session_id: int,
    tenant_id: int,
    user_id: int,
    transaction_type: str,
    amount,
    notes: str | None = None,
) -> PosSessionTransaction:
    """Log a manual PAY_IN/PAY_OUT on the caller's own open session."""
    if transaction_type not in MANUAL_CASH_TYPES:
        raise ValidationFailedError(
            f"Cash transaction type must be one of {', '.join(sorted(MANUAL_CASH_TYPES))}",
            {"transaction_type": transaction_type},
        )
    value = to_decimal(amount, "amount")
    if value <= ZERO:
        raise ValidationFailedError("Amount must be greater than zero", {"amount": decimal_str(value)})

    with atomic("record_cash_transaction", session_id=session_id, tenant_id=tenant_id):
        session = (
            lock_for_update(db.session.query(PosSession).filter_by(id=session_id, tenant_id=tenant_id))
            .populate_existing()
            .first()
        )
        if session is None or session.user_id != user_id:
            raise NotFoundError(f"POS session {session_id} not found", {"session_id": session_id})
        if session.status != STATUS_OPEN:
            raise InvalidStateError(
                f"POS session {session_id} is {session.status}; cash can only be recorded on an OPEN session",
                {"status": session.status},
            )

        tx = PosSessionTransaction(
            tenant_id=tenant_id,
            pos_session_id=session.id,
            transaction_type=transaction_type,
            amount=value,
            notes=notes,
            user_id=user_id,
        )
        db.session.add(tx)

    current_app.logger.info(
        "%s of %s recorded on POS session %s by user %s",
        transaction_type, decimal_str(value), session_id, user_id,
    )
    return tx

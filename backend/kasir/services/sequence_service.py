# Overview: Service-layer operations for daily transaction numbers; encapsulates the counter row.

"""
Daily transaction number allocator.

Transaction ids look like 20250115007: the business date followed by a
3-digit sequence that restarts at 001 every day.

INVARIANTS:
- The per-date counter lives in daily_counters and is only changed by a
  single atomic increment-and-read statement. Never derive the next number
  from MAX(transactions.id): two checkouts can read the same MAX before
  either commits.
- claim_sequence() runs inside the caller's transaction, so the increment
  and the insert of the transaction header commit or roll back together.
  A rolled-back claim leaves no trace; the number may be handed out again,
  which cannot duplicate a committed id.
- Numbers are assigned in commit order, not request-arrival order.
- 999 per day is a hard limit (SequenceExhausted); the id format is fixed width.
"""

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import DailyCounter
from kasir.time_utils import to_business_date
from .concurrency import begin_write_unit, run_with_retry


MAX_DAILY_SEQUENCE = 999
SEQUENCE_WIDTH = 3


class StorageFailure(Exception):
    """Write could not be committed; safe to retry the whole operation."""


class StorageUnavailable(StorageFailure):
    """Counter storage could not be reached; no id was allocated."""


class SequenceExhausted(Exception):
    """All daily sequence numbers for a business date are used."""

    def __init__(self, business_date: date):
        super().__init__(
            f"Transaction sequence exhausted for {business_date.isoformat()} "
            f"(max {MAX_DAILY_SEQUENCE} per day)"
        )
        self.business_date = business_date


def format_transaction_id(business_date: date, seq: int) -> str:
    """YYYYMMDD + zero padded sequence, e.g. 20250115007."""
    if seq < 1 or seq > MAX_DAILY_SEQUENCE:
        raise ValueError(f"sequence out of range: {seq}")
    return f"{business_date:%Y%m%d}{seq:0{SEQUENCE_WIDTH}d}"


def _upsert_increment(business_date: date) -> int:
    dialect = db.session.get_bind().dialect.name
    insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
    table = DailyCounter.__table__

    stmt = insert(table).values(business_date=business_date, last_seq=1)
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.business_date],
        set_={"last_seq": table.c.last_seq + 1, "updated_at": func.now()},
    ).returning(table.c.last_seq)

    return db.session.execute(stmt).scalar_one()


def _update_then_insert(business_date: date) -> int:
    stmt = (
        update(DailyCounter)
        .where(DailyCounter.business_date == business_date)
        .values(last_seq=DailyCounter.last_seq + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        # First sale of the day. A concurrent first sale wins the insert;
        # fall back to incrementing the row it created.
        try:
            with db.session.begin_nested():
                db.session.add(DailyCounter(business_date=business_date, last_seq=1))
            return 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    # The UPDATE above holds the row lock until the caller commits.
    return (
        db.session.query(DailyCounter.last_seq)
        .filter_by(business_date=business_date)
        .scalar()
    )


def claim_sequence(business_date: date) -> int:
    """
    Atomically increment and return the counter for business_date.

    Must be called inside an open write transaction owned by the caller;
    nothing is committed here. Raises SequenceExhausted past 999, after
    which the caller is expected to roll back.
    """
    dialect = db.session.get_bind().dialect.name
    if dialect in ("sqlite", "postgresql"):
        seq = _upsert_increment(business_date)
    else:
        seq = _update_then_insert(business_date)

    if seq > MAX_DAILY_SEQUENCE:
        raise SequenceExhausted(business_date)
    return seq


def next_transaction_id(business_date: date | None = None) -> str:
    """
    Allocate and commit the next transaction id for business_date (default: today).

    Standalone allocation, e.g. for reserving a number outside checkout.
    The checkout path calls claim_sequence() itself so that the claim
    commits together with the transaction header.
    """
    day = business_date or to_business_date()

    def _op() -> str:
        begin_write_unit()
        try:
            seq = claim_sequence(day)
        except SequenceExhausted:
            db.session.rollback()
            raise
        db.session.commit()
        return format_transaction_id(day, seq)

    try:
        return run_with_retry(_op)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Sequence allocation failed for %s", day.isoformat())
        raise StorageUnavailable("Transaction number storage unavailable") from exc


def peek_sequence(business_date: date) -> int:
    """Last sequence handed out for business_date (0 if none). Read-only."""
    last_seq = (
        db.session.query(DailyCounter.last_seq)
        .filter(DailyCounter.business_date == business_date)
        .scalar()
    )
    return last_seq or 0

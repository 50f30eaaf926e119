# Overview: Service-layer operations for reporting; aggregates sales for the dashboard.

from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlalchemy import func

from kasir.extensions import db
from kasir.models import Transaction, TransactionItem
from kasir.time_utils import to_business_date, utcnow


DASHBOARD_RANGES = ("all", "today", "week", "month", "custom")
RECENT_LIMIT = 5


class ReportError(Exception):
    """Raised when report parameters are invalid."""
    pass


def resolve_range(
    range_key: str,
    start: str | None = None,
    end: str | None = None,
    today: date | None = None,
) -> tuple[date | None, date | None]:
    """
    Business-date bounds (inclusive) for a dashboard range.

    week starts on Monday; custom takes ISO dates and either side may be open.
    """
    today = today or to_business_date()

    if range_key == "all":
        return None, None
    if range_key == "today":
        return today, today
    if range_key == "week":
        return today - timedelta(days=today.weekday()), today
    if range_key == "month":
        return today.replace(day=1), today
    if range_key == "custom":
        try:
            start_d = date.fromisoformat(start) if start else None
            end_d = date.fromisoformat(end) if end else None
        except ValueError:
            raise ReportError("start and end must be ISO dates (YYYY-MM-DD)")
        if start_d and end_d and start_d > end_d:
            raise ReportError("start must be on or before end")
        return start_d, end_d

    raise ReportError(f"range must be one of: {', '.join(DASHBOARD_RANGES)}")


def _scoped(q, start_d: date | None, end_d: date | None):
    q = q.filter(Transaction.status == "SUCCESS")
    if start_d:
        q = q.filter(Transaction.business_date >= start_d)
    if end_d:
        q = q.filter(Transaction.business_date <= end_d)
    return q


def _totals(start_d: date | None, end_d: date | None) -> tuple[int, int]:
    q = db.session.query(
        func.coalesce(func.sum(Transaction.total), 0),
        func.count(Transaction.id),
    )
    total, count = _scoped(q, start_d, end_d).one()
    return int(total or 0), int(count or 0)


def dashboard_summary(
    range_key: str = "all",
    start: str | None = None,
    end: str | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Sales summary for the dashboard.

    Range figures (totals, per-product sales, recent transactions) follow
    range_key; today's figures always cover the current business date.
    Cancelled transactions are excluded everywhere.
    """
    today = to_business_date(now or utcnow())
    start_d, end_d = resolve_range(range_key, start, end, today=today)

    total_sales, total_transactions = _totals(start_d, end_d)
    today_sales, today_transactions = _totals(today, today)

    by_product_q = (
        db.session.query(
            TransactionItem.name,
            func.sum(TransactionItem.subtotal),
            func.sum(TransactionItem.quantity),
        )
        .join(Transaction, Transaction.id == TransactionItem.transaction_id)
    )
    by_product_q = _scoped(by_product_q, start_d, end_d).group_by(TransactionItem.name)

    sales_by_product = [
        {"name": name, "amount": int(amount or 0), "quantity": int(qty or 0)}
        for name, amount, qty in by_product_q.all()
    ]
    sales_by_product.sort(key=lambda row: (-row["amount"], row["name"]))

    recent = (
        _scoped(db.session.query(Transaction), start_d, end_d)
        .order_by(Transaction.occurred_at.desc(), Transaction.id.desc())
        .limit(RECENT_LIMIT)
        .all()
    )

    return {
        "range": range_key,
        "start": start_d.isoformat() if start_d else None,
        "end": end_d.isoformat() if end_d else None,
        "totalSales": total_sales,
        "totalTransactions": total_transactions,
        "todaySales": today_sales,
        "todayTransactions": today_transactions,
        "salesByProduct": sales_by_product,
        "recentTransactions": [tx.to_dict() for tx in recent],
    }

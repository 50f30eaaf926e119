# Overview: Service-layer operations for sales transactions; encapsulates checkout writes and history reads.

"""
Transaction Service - checkout write path and history reads

WRITE PATH (create_transaction):
1. parse_transaction_payload() validates and normalizes the client payload.
   Nothing has touched the database yet; InvalidPayload means no side effects.
2. One atomic unit: claim the daily sequence, insert the header, insert the
   line items, apply optional catalog rules, commit. Any failure rolls all
   of it back, including the counter increment.

Amounts are recomputed here rather than trusted from the client:
item subtotal = price * quantity, subtotal = sum of items,
total = max(subtotal - discount, 0), change = max(cash_received - total, 0) for cash.

Not idempotent: resubmitting a payload records a second sale with a new id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import Product, Transaction, TransactionItem, PAYMENT_METHODS, TRANSACTION_STATUSES
from ..validation import InvalidPayload, MAX_AMOUNT, MAX_PRICE, coerce_amount, coerce_int
from kasir.time_utils import parse_iso_datetime, to_business_date, utcnow
from .catalog_service import find_product
from .concurrency import begin_write_unit, run_with_retry
from .sequence_service import (
    SequenceExhausted,
    StorageFailure,
    StorageUnavailable,
    claim_sequence,
    format_transaction_id,
)

__all__ = [
    "InvalidPayload",
    "SequenceExhausted",
    "StorageFailure",
    "StorageUnavailable",
    "LineItemDraft",
    "TransactionDraft",
    "parse_transaction_payload",
    "create_transaction",
    "list_transactions",
    "get_transaction",
    "delete_transaction",
]

MAX_ITEMS_PER_TRANSACTION = 1000
MAX_QUANTITY_PER_ITEM = 100_000


@dataclass
class LineItemDraft:
    name: str
    price: int
    quantity: int
    product_id: str | None = None

    @property
    def subtotal(self) -> int:
        return self.price * self.quantity


@dataclass
class TransactionDraft:
    items: list[LineItemDraft]
    discount: int
    occurred_at: datetime
    business_date: date
    payment_method: str
    cash_received: int
    status: str
    customer_name: str | None = None
    note: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def subtotal(self) -> int:
        return sum(item.subtotal for item in self.items)

    @property
    def total(self) -> int:
        return max(self.subtotal - self.discount, 0)

    @property
    def change(self) -> int:
        if self.payment_method == "cash":
            return max(self.cash_received - self.total, 0)
        return 0


def _optional_text(payload: dict, key: str, max_length: int) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidPayload(f"{key} must be a string")
    value = value.strip()
    if len(value) > max_length:
        raise InvalidPayload(f"{key} exceeds max length {max_length}")
    return value or None


def _parse_item(index: int, raw: Any) -> LineItemDraft:
    if not isinstance(raw, dict):
        raise InvalidPayload(f"items[{index}] must be an object")

    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        raise InvalidPayload(f"items[{index}].name is required")
    if len(name.strip()) > 255:
        raise InvalidPayload(f"items[{index}].name exceeds max length 255")

    if raw.get("price") is None:
        raise InvalidPayload(f"items[{index}].price is required")
    price = coerce_amount(f"items[{index}].price", raw["price"], error=InvalidPayload, maximum=MAX_PRICE)

    if raw.get("quantity") is None:
        raise InvalidPayload(f"items[{index}].quantity is required")
    quantity = coerce_int(f"items[{index}].quantity", raw["quantity"], error=InvalidPayload)
    if quantity <= 0:
        raise InvalidPayload(f"items[{index}].quantity must be > 0")
    if quantity > MAX_QUANTITY_PER_ITEM:
        raise InvalidPayload(f"items[{index}].quantity cannot exceed {MAX_QUANTITY_PER_ITEM}")
    if price * quantity > MAX_AMOUNT:
        raise InvalidPayload(f"items[{index}].subtotal cannot exceed {MAX_AMOUNT}")

    product_id = raw.get("productId")
    if product_id is not None:
        if isinstance(product_id, bool) or not isinstance(product_id, (str, int)):
            raise InvalidPayload(f"items[{index}].productId must be a string or null")
        product_id = str(product_id).strip() or None
        if product_id and len(product_id) > 64:
            raise InvalidPayload(f"items[{index}].productId exceeds max length 64")

    return LineItemDraft(name=name.strip(), price=price, quantity=quantity, product_id=product_id)


def parse_transaction_payload(payload: Any) -> TransactionDraft:
    """
    Validate a checkout payload (JSON shape used by the POS client).

    Fail-fast, no side effects. Client-computed subtotals, total and change
    are checked against the recomputed values; mismatches are recorded in
    draft.warnings and the recomputed values win.
    """
    if not isinstance(payload, dict):
        raise InvalidPayload("Invalid JSON payload")

    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise InvalidPayload("items must be a non-empty list")
    if len(raw_items) > MAX_ITEMS_PER_TRANSACTION:
        raise InvalidPayload(f"items cannot exceed {MAX_ITEMS_PER_TRANSACTION} entries")

    items = [_parse_item(i, raw) for i, raw in enumerate(raw_items)]
    if sum(item.subtotal for item in items) > MAX_AMOUNT:
        raise InvalidPayload(f"subtotal cannot exceed {MAX_AMOUNT}")

    if payload.get("total") is None:
        raise InvalidPayload("total is required")
    client_total = coerce_amount("total", payload["total"], error=InvalidPayload)

    discount = coerce_amount("discount", payload.get("discount") or 0, error=InvalidPayload)
    cash_received = coerce_amount("cashReceived", payload.get("cashReceived") or 0, error=InvalidPayload)

    payment_method = payload.get("paymentMethod")
    if not isinstance(payment_method, str) or payment_method.strip().lower() not in PAYMENT_METHODS:
        raise InvalidPayload(f"paymentMethod must be one of: {', '.join(PAYMENT_METHODS)}")
    payment_method = payment_method.strip().lower()

    status = payload.get("status")
    if status is None:
        status = "CANCELLED" if payment_method == "cancelled" else "SUCCESS"
    elif not isinstance(status, str) or status.strip().upper() not in TRANSACTION_STATUSES:
        raise InvalidPayload(f"status must be one of: {', '.join(TRANSACTION_STATUSES)}")
    else:
        status = status.strip().upper()

    raw_date = payload.get("date")
    if raw_date is None:
        occurred_at = utcnow()
    elif not isinstance(raw_date, str):
        raise InvalidPayload("date must be an ISO-8601 string")
    else:
        try:
            occurred_at = parse_iso_datetime(raw_date) or utcnow()
        except ValueError:
            raise InvalidPayload("date must be an ISO-8601 string")

    draft = TransactionDraft(
        items=items,
        discount=discount,
        occurred_at=occurred_at,
        business_date=to_business_date(occurred_at),
        payment_method=payment_method,
        cash_received=cash_received,
        status=status,
        customer_name=_optional_text(payload, "customerName", 128),
        note=_optional_text(payload, "note", 2000),
    )

    if draft.payment_method == "cash" and draft.status == "SUCCESS" and draft.cash_received < draft.total:
        raise InvalidPayload("cashReceived is less than total")

    for i, (item, raw) in enumerate(zip(items, raw_items)):
        if raw.get("subtotal") is not None and raw["subtotal"] != item.subtotal:
            draft.warnings.append(f"items[{i}].subtotal {raw['subtotal']} != {item.subtotal}")
    if payload.get("subtotal") is not None and payload["subtotal"] != draft.subtotal:
        draft.warnings.append(f"subtotal {payload['subtotal']} != {draft.subtotal}")
    if client_total != draft.total:
        draft.warnings.append(f"total {client_total} != {draft.total}")
    if payload.get("change") is not None and payload["change"] != draft.change:
        draft.warnings.append(f"change {payload['change']} != {draft.change}")

    return draft


def _check_catalog_references(draft: TransactionDraft) -> None:
    for i, item in enumerate(draft.items):
        if item.product_id and find_product(item.product_id) is None:
            raise InvalidPayload(f"items[{i}].productId {item.product_id} not found")


def _insert_items(header: Transaction, items: list[LineItemDraft]) -> None:
    for position, item in enumerate(items):
        db.session.add(TransactionItem(
            transaction_id=header.id,
            position=position,
            product_id=item.product_id,
            name=item.name,
            price=item.price,
            quantity=item.quantity,
            subtotal=item.subtotal,
        ))
    db.session.flush()


def _decrement_stock(items: list[LineItemDraft]) -> None:
    """
    Guarded stock decrement in the caller's unit.

    Products with unlimited (NULL) stock and unknown product ids are skipped.
    """
    per_product: dict[str, int] = {}
    for item in items:
        if item.product_id:
            per_product[item.product_id] = per_product.get(item.product_id, 0) + item.quantity

    insufficient = []
    for product_id, qty in sorted(per_product.items()):
        result = db.session.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock.isnot(None), Product.stock >= qty)
            .values(stock=Product.stock - qty)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            continue
        product = find_product(product_id)
        if product is not None and product.stock is not None:
            insufficient.append(f"{product.name} (requested {qty}, in stock {product.stock})")

    if insufficient:
        raise InvalidPayload(f"Insufficient stock: {'; '.join(insufficient)}")


def create_transaction(payload: Any, *, user_id: int | None = None) -> Transaction:
    """
    Validate and durably record one sale (header + line items).

    Returns the committed Transaction; its id is the generated daily number.

    Raises:
        InvalidPayload: payload rejected, nothing written
        SequenceExhausted: no numbers left for the business date
        StorageUnavailable: the counter could not be claimed
        StorageFailure: the unit could not be committed (safe to retry)
    """
    draft = parse_transaction_payload(payload)
    for warning in draft.warnings:
        current_app.logger.warning("Checkout payload mismatch, using recomputed value: %s", warning)

    validate_catalog = current_app.config.get("VALIDATE_CATALOG_REFERENCES", False)
    decrement_stock = current_app.config.get("DECREMENT_STOCK_ON_SALE", False)
    stage = {"allocated": False}

    def _op() -> Transaction:
        stage["allocated"] = False
        begin_write_unit()

        if validate_catalog:
            _check_catalog_references(draft)

        seq = claim_sequence(draft.business_date)
        stage["allocated"] = True

        header = Transaction(
            id=format_transaction_id(draft.business_date, seq),
            business_date=draft.business_date,
            occurred_at=draft.occurred_at,
            subtotal=draft.subtotal,
            discount=draft.discount,
            total=draft.total,
            payment_method=draft.payment_method,
            cash_received=draft.cash_received,
            change=draft.change,
            customer_name=draft.customer_name,
            note=draft.note,
            status=draft.status,
            created_by_user_id=user_id,
        )
        db.session.add(header)
        db.session.flush()

        _insert_items(header, draft.items)

        if decrement_stock and draft.status == "SUCCESS":
            _decrement_stock(draft.items)

        db.session.commit()
        return header

    try:
        tx = run_with_retry(_op)
    except (InvalidPayload, SequenceExhausted):
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to save transaction for %s", draft.business_date.isoformat())
        if not stage["allocated"]:
            raise StorageUnavailable("Transaction number storage unavailable") from exc
        raise StorageFailure("Failed to save transaction") from exc
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Saved transaction %s (%d items, total=%d, %s)",
        tx.id, len(draft.items), draft.total, draft.payment_method,
    )
    return tx


def _parse_bound(key: str, value: str):
    """
    A bare date ("2025-01-15") filters on business_date, inclusive on both ends.
    A datetime filters on occurred_at (UTC), inclusive.
    """
    value = value.strip()
    try:
        if len(value) == 10 and "T" not in value:
            return date.fromisoformat(value)
        return parse_iso_datetime(value)
    except ValueError:
        raise InvalidPayload(f"{key} must be an ISO-8601 date or datetime")


def list_transactions(
    *,
    start: str | None = None,
    end: str | None = None,
    status: str | None = None,
    limit: int | None = None,
) -> list[Transaction]:
    """
    Transactions with their items, newest first (occurred_at desc, id desc).

    Raises InvalidPayload for malformed filters and StorageFailure if the
    read fails; a failed read never returns a partial list.
    """
    q = db.session.query(Transaction).options(selectinload(Transaction.items))

    if start:
        bound = _parse_bound("start", start)
        if isinstance(bound, datetime):
            q = q.filter(Transaction.occurred_at >= bound)
        else:
            q = q.filter(Transaction.business_date >= bound)
    if end:
        bound = _parse_bound("end", end)
        if isinstance(bound, datetime):
            q = q.filter(Transaction.occurred_at <= bound)
        else:
            q = q.filter(Transaction.business_date <= bound)

    if status:
        status = status.strip().upper()
        if status not in TRANSACTION_STATUSES:
            raise InvalidPayload(f"status must be one of: {', '.join(TRANSACTION_STATUSES)}")
        q = q.filter(Transaction.status == status)

    q = q.order_by(Transaction.occurred_at.desc(), Transaction.id.desc())

    if limit is not None:
        if limit <= 0:
            raise InvalidPayload("limit must be > 0")
        q = q.limit(limit)

    try:
        return q.all()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to load transactions")
        raise StorageFailure("Failed to load transactions") from exc


def get_transaction(transaction_id: str) -> Transaction | None:
    try:
        return (
            db.session.query(Transaction)
            .options(selectinload(Transaction.items))
            .filter(Transaction.id == transaction_id)
            .first()
        )
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to load transaction %s", transaction_id)
        raise StorageFailure("Failed to load transaction") from exc


def delete_transaction(transaction_id: str) -> bool:
    """
    Delete a transaction and, by cascade, its line items.

    The daily counter is left alone: a deleted id is never handed out again.
    """
    tx = db.session.get(Transaction, transaction_id)
    if not tx:
        return False
    try:
        db.session.delete(tx)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to delete transaction %s", transaction_id)
        raise StorageFailure("Failed to delete transaction") from exc
    current_app.logger.info("Deleted transaction %s", transaction_id)
    return True

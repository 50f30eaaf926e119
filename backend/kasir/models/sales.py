from __future__ import annotations

from ..extensions import db
from kasir.time_utils import to_utc_z


PAYMENT_METHODS = ("cash", "qris", "cancelled")
TRANSACTION_STATUSES = ("SUCCESS", "CANCELLED")


class Transaction(db.Model):
    """
    Completed sale (header).

    id is the human-readable daily number YYYYMMDDNNN, allocated from
    DailyCounter inside the same DB transaction that inserts this row.

    INVARIANTS (enforced by the writer, checked again by constraints):
    - total = max(subtotal - discount, 0)
    - change = max(cash_received - total, 0) for cash sales, else 0
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_occurred_at", "occurred_at"),
        db.Index("ix_transactions_business_date_status", "business_date", "status"),
        db.CheckConstraint("subtotal >= 0", name="subtotal_non_negative"),
        db.CheckConstraint("discount >= 0", name="discount_non_negative"),
        db.CheckConstraint("total >= 0", name="total_non_negative"),
    )

    id = db.Column(db.String(11), primary_key=True)

    # Business time: the calendar day the id is scoped to, and the sale timestamp
    business_date = db.Column(db.Date, nullable=False)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    # Amounts in the smallest currency unit
    subtotal = db.Column(db.BigInteger, nullable=False)
    discount = db.Column(db.BigInteger, nullable=False, default=0)
    total = db.Column(db.BigInteger, nullable=False)

    payment_method = db.Column(db.String(16), nullable=False)
    cash_received = db.Column(db.BigInteger, nullable=False, default=0)
    change = db.Column(db.BigInteger, nullable=False, default=0)

    customer_name = db.Column(db.String(128), nullable=True)
    note = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="SUCCESS", index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship(
        "TransactionItem",
        back_populates="transaction",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TransactionItem.position",
    )
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "items": [item.to_dict() for item in self.items],
            "subtotal": self.subtotal,
            "discount": self.discount,
            "total": self.total,
            "date": to_utc_z(self.occurred_at),
            "businessDate": self.business_date.isoformat(),
            "paymentMethod": self.payment_method,
            "cashReceived": self.cash_received,
            "change": self.change,
            "customerName": self.customer_name,
            "note": self.note,
            "status": self.status,
            "createdBy": self.created_by_user_id,
        }


class TransactionItem(db.Model):
    """
    Line item owned by one transaction.

    product_id is a weak reference (no foreign key); name and price are
    snapshots taken at sale time so receipts stay accurate after catalog edits.
    """
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(
        db.String(11),
        db.ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = db.Column(db.Integer, nullable=False, default=0)

    product_id = db.Column(db.String(64), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    subtotal = db.Column(db.BigInteger, nullable=False)

    transaction = db.relationship("Transaction", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "name": self.name,
            "price": self.price,
            "quantity": self.quantity,
            "subtotal": self.subtotal,
        }


class DailyCounter(db.Model):
    """
    Last transaction sequence handed out per business date.

    WHY: Transaction ids restart at 001 every day. The counter row is the
    only contended resource on checkout; it is only ever changed through
    an atomic increment (see services/sequence_service.py), never by
    reading MAX(id) from transactions.

    Rows are never decremented or deleted.
    """
    __tablename__ = "daily_counters"

    business_date = db.Column(db.Date, primary_key=True)
    last_seq = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "business_date": self.business_date.isoformat(),
            "last_seq": self.last_seq,
            "updated_at": to_utc_z(self.updated_at),
        }

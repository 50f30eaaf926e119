from __future__ import annotations

import uuid

from ..extensions import db
from kasir.time_utils import to_utc_z


def _new_product_id() -> str:
    return uuid.uuid4().hex


class Product(db.Model):
    """
    Product master data.

    stock is NULL for products sold without a stock count (made-to-order
    food, services); otherwise it is a non-negative counter.

    Sales never reference this table with a foreign key: line items copy
    name and price at sale time, so editing or deleting a product leaves
    historical receipts untouched.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_name", "category", "name"),
    )

    id = db.Column(db.String(32), primary_key=True, default=_new_product_id)
    name = db.Column(db.String(255), nullable=False)

    # Smallest currency unit
    price = db.Column(db.Integer, nullable=False, default=0)

    category = db.Column(db.String(64), nullable=True)
    stock = db.Column(db.Integer, nullable=True)
    image = db.Column(db.String(1024), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def has_unlimited_stock(self) -> bool:
        return self.stock is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "category": self.category or "",
            "stock": self.stock,
            "image": self.image or "",
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

# backend/kasir/services/catalog_service.py
"""
Catalog Service

find_product() is the lookup the checkout path may consult; the rest is
admin CRUD. Deleting a product is a hard delete: transaction line items keep
their own copy of name and price and only weakly reference product ids.
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Product


PRODUCT_MUTABLE_FIELDS = {"name", "price", "category", "stock", "image"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def find_product(product_id: str | None) -> Product | None:
    """Product by id, or None when the id is empty or unknown."""
    if not product_id:
        return None
    return db.session.get(Product, str(product_id))


def list_products(category: str | None = None) -> list[dict]:
    """All products ordered by category then name, optionally for one category."""
    q = db.session.query(Product)
    if category:
        q = q.filter(Product.category == category)
    products = q.order_by(Product.category.asc(), Product.name.asc(), Product.id.asc()).all()
    return [p.to_dict() for p in products]


def list_categories() -> list[str]:
    """Distinct non-blank categories, sorted."""
    rows = (
        db.session.query(Product.category)
        .filter(Product.category.isnot(None))
        .distinct()
        .all()
    )
    return sorted({c.strip() for (c,) in rows if c and c.strip()})


def create_product(*, patch: dict) -> dict:
    """Create product from a validated patch dict."""
    p = Product()
    apply_product_patch(p, patch)

    db.session.add(p)
    db.session.commit()
    current_app.logger.info("Created product %s (%s)", p.id, p.name)
    return p.to_dict()


def update_product(*, product_id: str, patch: dict) -> dict | None:
    """
    Update a product.

    Returns updated product dict, or None if not found.
    """
    p = find_product(product_id)
    if not p:
        return None

    apply_product_patch(p, patch)
    db.session.commit()
    return p.to_dict()


def delete_product(*, product_id: str) -> bool:
    """
    Delete a product.

    Returns True if deleted, False if not found.
    """
    p = find_product(product_id)
    if not p:
        return False

    db.session.delete(p)
    db.session.commit()
    current_app.logger.info("Deleted product %s", product_id)
    return True

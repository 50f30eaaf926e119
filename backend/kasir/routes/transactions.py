# Overview: Flask API routes for sales transactions; parses input and returns JSON responses.

# backend/kasir/routes/transactions.py
"""Checkout and transaction history routes"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import transaction_service
from ..services.transaction_service import (
    InvalidPayload,
    SequenceExhausted,
    StorageFailure,
)
from ..decorators import require_auth, require_role


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.post("")
@require_auth
@require_role("admin", "cashier")
def create_transaction_route():
    """
    Record a completed sale.

    Returns {"success": true, "id": "YYYYMMDDNNN"}. Not idempotent: a client
    retry after a failure is a new sale with a new id.
    """
    payload = request.get_json(silent=True)

    try:
        tx = transaction_service.create_transaction(payload, user_id=g.current_user.id)
    except InvalidPayload as e:
        return jsonify({"error": str(e)}), 400
    except SequenceExhausted as e:
        return jsonify({"error": str(e)}), 409
    except StorageFailure:
        return jsonify({"error": "Failed to save transaction"}), 500
    except Exception:
        current_app.logger.exception("Unexpected error while saving transaction")
        return jsonify({"error": "Failed to save transaction"}), 500

    return jsonify({"success": True, "id": tx.id}), 200


@transactions_bp.get("")
@require_auth
def list_transactions_route():
    """
    Transactions with nested items, newest first.

    Query params:
    - start, end: ISO date (business date, inclusive) or datetime
    - status: SUCCESS | CANCELLED
    - limit: int
    """
    limit = request.args.get("limit")
    if limit is not None and not limit.isdigit():
        return jsonify({"error": "limit must be a positive integer"}), 400

    try:
        transactions = transaction_service.list_transactions(
            start=request.args.get("start"),
            end=request.args.get("end"),
            status=request.args.get("status"),
            limit=int(limit) if limit else None,
        )
    except InvalidPayload as e:
        return jsonify({"error": str(e)}), 400
    except StorageFailure:
        return jsonify({"error": "Failed to load transactions"}), 500

    return jsonify([tx.to_dict() for tx in transactions]), 200


@transactions_bp.get("/<transaction_id>")
@require_auth
def get_transaction_route(transaction_id: str):
    try:
        tx = transaction_service.get_transaction(transaction_id)
    except StorageFailure:
        return jsonify({"error": "Failed to load transaction"}), 500

    if not tx:
        return jsonify({"error": "Transaction not found"}), 404
    return jsonify(tx.to_dict()), 200


@transactions_bp.delete("/<transaction_id>")
@require_auth
@require_role("admin")
def delete_transaction_route(transaction_id: str):
    """Remove a transaction and its items. Its number is not reused."""
    try:
        deleted = transaction_service.delete_transaction(transaction_id)
    except StorageFailure:
        return jsonify({"error": "Failed to delete transaction"}), 500

    if not deleted:
        return jsonify({"error": "Transaction not found"}), 404
    current_app.logger.info("Transaction %s deleted by %s", transaction_id, g.current_user.username)
    return jsonify({"ok": True}), 200

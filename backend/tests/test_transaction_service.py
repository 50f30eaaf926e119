"""
Checkout write path and history reads.

Verifies:
- A sale gets the next daily number and is stored with all its items
- Amounts are recomputed server-side
- Rejected payloads write nothing, not even a counter increment
- A failure after allocation rolls the whole unit back
- Reads return items in order, newest sale first
"""

from datetime import date

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from kasir.extensions import db
from kasir.models import Product, Transaction, TransactionItem
from kasir.services import transaction_service
from kasir.services.sequence_service import MAX_DAILY_SEQUENCE, peek_sequence
from kasir.services.transaction_service import (
    InvalidPayload,
    SequenceExhausted,
    StorageFailure,
    StorageUnavailable,
    create_transaction,
    delete_transaction,
    get_transaction,
    list_transactions,
    parse_transaction_payload,
)
from conftest import sale_payload, set_counter


DAY = date(2025, 1, 15)


def _transaction_count() -> int:
    return db.session.query(Transaction).count()


def _item_count() -> int:
    return db.session.query(TransactionItem).count()


# =============================================================================
# WRITE PATH
# =============================================================================


class TestCreateTransaction:

    def test_first_sale_of_the_day(self, db_session):
        tx = create_transaction(sale_payload())

        assert tx.id == "20250115001"
        assert tx.business_date == DAY
        assert tx.subtotal == 9000
        assert tx.total == 9000
        assert tx.change == 1000
        assert tx.status == "SUCCESS"
        assert peek_sequence(DAY) == 1

    def test_continues_existing_day(self, db_session):
        set_counter(DAY, 7)
        tx = create_transaction(sale_payload())
        assert tx.id == "20250115008"

    def test_items_stored_in_order(self, db_session):
        tx_id = create_transaction(sale_payload()).id
        db.session.expire_all()

        stored = get_transaction(tx_id)
        assert [i.name for i in stored.items] == ["Es Teh", "Nasi Goreng"]
        assert [i.subtotal for i in stored.items] == [4000, 5000]
        assert stored.items[0].product_id == "p-es-teh"

    def test_records_cashier(self, db_session, cashier_user):
        tx = create_transaction(sale_payload(), user_id=cashier_user.id)
        assert tx.created_by_user_id == cashier_user.id
        assert tx.to_dict()["createdBy"] == cashier_user.id

    def test_not_idempotent(self, db_session):
        first = create_transaction(sale_payload())
        second = create_transaction(sale_payload())

        assert first.id == "20250115001"
        assert second.id == "20250115002"
        assert _transaction_count() == 2

    def test_business_date_follows_sale_date(self, db_session):
        tx = create_transaction(sale_payload(date="2025-01-16T23:59:00Z"))
        assert tx.id == "20250116001"

    def test_business_timezone_shifts_date(self, app, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "BUSINESS_TIMEZONE", "Asia/Jakarta")
        # 18:00 UTC is already the next day in UTC+7
        tx = create_transaction(sale_payload(date="2025-01-15T18:00:00Z"))
        assert tx.id == "20250116001"

    def test_five_hundred_items(self, db_session):
        items = [{"name": f"Item {n}", "price": 100, "quantity": 1} for n in range(500)]
        tx = create_transaction(sale_payload(items=items, total=50000, cashReceived=50000, change=None))

        assert tx.total == 50000
        db.session.expire_all()
        stored = get_transaction(tx.id)
        assert len(stored.items) == 500
        assert stored.items[0].name == "Item 0"
        assert stored.items[-1].name == "Item 499"

    def test_qris_has_no_change(self, db_session):
        tx = create_transaction(sale_payload(paymentMethod="qris", cashReceived=0, change=0))
        assert tx.payment_method == "qris"
        assert tx.change == 0

    def test_cancelled_payment_defaults_status(self, db_session):
        tx = create_transaction(sale_payload(paymentMethod="cancelled", cashReceived=0, change=0))
        assert tx.status == "CANCELLED"
        assert tx.id == "20250115001"

    def test_optional_text_fields(self, db_session):
        tx = create_transaction(sale_payload(customerName="  Budi ", note="meja 4"))
        assert tx.customer_name == "Budi"
        assert tx.note == "meja 4"


class TestAuthoritativeAmounts:

    def test_client_totals_are_recomputed(self, db_session):
        payload = sale_payload(subtotal=1, total=1, change=9999, cashReceived=10000)
        payload["items"][0]["subtotal"] = 1

        draft = parse_transaction_payload(payload)
        assert draft.subtotal == 9000
        assert draft.total == 9000
        assert len(draft.warnings) == 4

        tx = create_transaction(payload)
        assert (tx.subtotal, tx.total, tx.change) == (9000, 9000, 1000)
        assert tx.items[0].subtotal == 4000

    def test_discount_applied(self, db_session):
        tx = create_transaction(sale_payload(discount=1500, total=7500, change=2500))
        assert tx.total == 7500
        assert tx.change == 2500

    def test_discount_never_makes_total_negative(self, db_session):
        tx = create_transaction(sale_payload(discount=20000, total=0, cashReceived=0, change=0))
        assert tx.total == 0

    def test_integral_float_amounts_accepted(self, db_session):
        payload = sale_payload(total=9000.0, cashReceived=10000.0)
        payload["items"][0]["price"] = 2000.0
        tx = create_transaction(payload)
        assert tx.items[0].price == 2000


# =============================================================================
# REJECTED PAYLOADS
# =============================================================================


class TestInvalidPayload:

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"items": []}, "items must be a non-empty list"),
            ({"items": None}, "items must be a non-empty list"),
            ({"total": None}, "total is required"),
            ({"paymentMethod": "card"}, "paymentMethod"),
            ({"paymentMethod": None}, "paymentMethod"),
            ({"status": "PENDING"}, "status"),
            ({"date": "yesterday"}, "date"),
            ({"discount": -1}, "discount"),
            ({"cashReceived": 5000}, "cashReceived is less than total"),
        ],
    )
    def test_rejected_without_side_effects(self, db_session, overrides, message):
        with pytest.raises(InvalidPayload) as exc_info:
            create_transaction(sale_payload(**overrides))

        assert message in str(exc_info.value)
        assert _transaction_count() == 0
        assert peek_sequence(DAY) == 0

    @pytest.mark.parametrize(
        "item,message",
        [
            ({"name": "Es Teh", "price": 2000, "quantity": 0}, "quantity must be > 0"),
            ({"name": "Es Teh", "price": 2000, "quantity": -3}, "quantity must be > 0"),
            ({"name": "Es Teh", "price": 2000, "quantity": 1.5}, "quantity"),
            ({"name": "Es Teh", "price": 1999.5, "quantity": 1}, "price"),
            ({"name": "Es Teh", "price": -1, "quantity": 1}, "price"),
            ({"name": "", "price": 2000, "quantity": 1}, "name is required"),
            ({"price": 2000, "quantity": 1}, "name is required"),
            ({"name": "Es Teh", "quantity": 1}, "price is required"),
            ({"name": "Es Teh", "price": 2000, "quantity": 100_001}, "quantity cannot exceed"),
            ({"name": "Es Teh", "price": 999_999_999, "quantity": 10**10}, "quantity cannot exceed"),
            ({"name": "Es Teh", "price": 999_999_999, "quantity": 10_000}, "subtotal cannot exceed"),
            ("Es Teh", "must be an object"),
        ],
    )
    def test_bad_line_item(self, db_session, item, message):
        with pytest.raises(InvalidPayload) as exc_info:
            create_transaction(sale_payload(items=[item]))

        assert message in str(exc_info.value)
        assert _transaction_count() == 0

    def test_not_a_dict(self, db_session):
        with pytest.raises(InvalidPayload, match="Invalid JSON payload"):
            create_transaction(["items"])

    def test_too_many_items(self, db_session):
        items = [{"name": "x", "price": 1, "quantity": 1}] * 1001
        with pytest.raises(InvalidPayload, match="cannot exceed"):
            create_transaction(sale_payload(items=items))

    def test_sum_of_items_above_max_amount(self, db_session):
        item = {"name": "Emas", "price": 999_999_999, "quantity": 600}
        with pytest.raises(InvalidPayload, match="subtotal cannot exceed"):
            create_transaction(sale_payload(items=[item, item], paymentMethod="qris"))

        assert _transaction_count() == 0
        assert peek_sequence(DAY) == 0

    def test_largest_allowed_amounts_are_stored(self, db_session):
        items = [{"name": "Emas", "price": 999_999_999, "quantity": 1000}]
        tx_id = create_transaction(
            sale_payload(items=items, total=999_999_999_000, paymentMethod="qris", cashReceived=0)
        ).id

        db.session.expire_all()
        tx = get_transaction(tx_id)
        assert tx.total == 999_999_999_000
        assert tx.items[0].subtotal == 999_999_999_000

    def test_rejected_sale_does_not_consume_a_number(self, db_session):
        with pytest.raises(InvalidPayload):
            create_transaction(sale_payload(items=[]))

        assert create_transaction(sale_payload()).id == "20250115001"

    def test_cancelled_sale_skips_cash_check(self, db_session):
        tx = create_transaction(sale_payload(status="CANCELLED", cashReceived=0))
        assert tx.status == "CANCELLED"


# =============================================================================
# ATOMICITY AND STORAGE ERRORS
# =============================================================================


class TestAtomicity:

    def test_failure_after_allocation_rolls_back_everything(self, db_session, monkeypatch):
        def _broken(header, items):
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(transaction_service, "_insert_items", _broken)

        with pytest.raises(StorageFailure) as exc_info:
            create_transaction(sale_payload())

        assert not isinstance(exc_info.value, StorageUnavailable)
        assert _transaction_count() == 0
        assert _item_count() == 0
        assert peek_sequence(DAY) == 0

    def test_next_sale_after_failure_succeeds(self, db_session, monkeypatch):
        def _broken(header, items):
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(transaction_service, "_insert_items", _broken)
        with pytest.raises(StorageFailure):
            create_transaction(sale_payload())
        monkeypatch.undo()

        tx = create_transaction(sale_payload())
        assert tx.id == "20250115001"
        assert len(tx.items) == 2

    def test_unexpected_error_rolls_back_and_propagates(self, db_session, monkeypatch):
        def _broken(header, items):
            raise RuntimeError("boom")

        monkeypatch.setattr(transaction_service, "_insert_items", _broken)
        with pytest.raises(RuntimeError, match="boom"):
            create_transaction(sale_payload())

        assert peek_sequence(DAY) == 0
        assert _transaction_count() == 0
        monkeypatch.undo()

        assert create_transaction(sale_payload()).id == "20250115001"

    def test_counter_unreachable(self, db_session, monkeypatch):
        def _locked(business_date):
            raise OperationalError("UPDATE daily_counters", {}, Exception("database is locked"))

        monkeypatch.setattr(transaction_service, "claim_sequence", _locked)
        monkeypatch.setattr("kasir.services.concurrency.time.sleep", lambda _: None)

        with pytest.raises(StorageUnavailable):
            create_transaction(sale_payload())
        assert _transaction_count() == 0

    def test_exhausted_day_writes_nothing(self, db_session):
        set_counter(DAY, MAX_DAILY_SEQUENCE)

        with pytest.raises(SequenceExhausted):
            create_transaction(sale_payload())

        assert _transaction_count() == 0
        assert peek_sequence(DAY) == MAX_DAILY_SEQUENCE


# =============================================================================
# CATALOG RULES (config flags)
# =============================================================================


class TestCatalogRules:

    def test_unknown_product_ids_allowed_by_default(self, db_session):
        tx = create_transaction(sale_payload())
        assert tx.items[0].product_id == "p-es-teh"

    def test_reference_validation(self, app, db_session, product, monkeypatch):
        monkeypatch.setitem(app.config, "VALIDATE_CATALOG_REFERENCES", True)

        with pytest.raises(InvalidPayload, match="not found"):
            create_transaction(sale_payload())
        assert peek_sequence(DAY) == 0

        items = [{"productId": product.id, "name": product.name, "price": product.price, "quantity": 1}]
        tx = create_transaction(sale_payload(items=items, total=18000, cashReceived=20000, change=2000))
        assert tx.id == "20250115001"

    def test_stock_decrement(self, app, db_session, stocked_product, product, monkeypatch):
        monkeypatch.setitem(app.config, "DECREMENT_STOCK_ON_SALE", True)
        stocked_id, unlimited_id = stocked_product.id, product.id

        items = [
            {"productId": stocked_id, "name": "Roti Bakar", "price": 15000, "quantity": 2},
            {"productId": unlimited_id, "name": "Kopi Susu", "price": 18000, "quantity": 1},
        ]
        create_transaction(sale_payload(items=items, total=48000, cashReceived=50000, change=2000))

        db.session.expire_all()
        assert db.session.get(Product, stocked_id).stock == 3
        assert db.session.get(Product, unlimited_id).stock is None

    def test_insufficient_stock_rolls_back(self, app, db_session, stocked_product, monkeypatch):
        monkeypatch.setitem(app.config, "DECREMENT_STOCK_ON_SALE", True)
        stocked_id = stocked_product.id

        items = [{"productId": stocked_id, "name": "Roti Bakar", "price": 15000, "quantity": 6}]
        with pytest.raises(InvalidPayload, match="Insufficient stock"):
            create_transaction(sale_payload(items=items, total=90000, cashReceived=90000))

        db.session.expire_all()
        assert db.session.get(Product, stocked_id).stock == 5
        assert _transaction_count() == 0
        assert peek_sequence(DAY) == 0


# =============================================================================
# READS AND DELETE
# =============================================================================


class TestReads:

    def test_newest_first(self, db_session):
        create_transaction(sale_payload(date="2025-01-15T08:00:00Z"))
        create_transaction(sale_payload(date="2025-01-15T12:00:00Z"))
        create_transaction(sale_payload(date="2025-01-14T20:00:00Z"))

        ids = [tx.id for tx in list_transactions()]
        assert ids == ["20250115002", "20250115001", "20250114001"]

    def test_each_transaction_carries_its_items(self, db_session):
        create_transaction(sale_payload())
        create_transaction(sale_payload(items=[{"name": "Air Mineral", "price": 3000, "quantity": 3}],
                                        total=9000))
        db.session.expire_all()

        by_id = {tx.id: tx.to_dict() for tx in list_transactions()}
        assert [i["name"] for i in by_id["20250115001"]["items"]] == ["Es Teh", "Nasi Goreng"]
        assert [i["name"] for i in by_id["20250115002"]["items"]] == ["Air Mineral"]

    def test_empty_store(self, db_session):
        assert list_transactions() == []

    def test_date_range_filter(self, db_session):
        create_transaction(sale_payload(date="2025-01-14T10:00:00Z"))
        create_transaction(sale_payload(date="2025-01-15T10:00:00Z"))
        create_transaction(sale_payload(date="2025-01-16T10:00:00Z"))

        ids = [tx.id for tx in list_transactions(start="2025-01-15", end="2025-01-15")]
        assert ids == ["20250115001"]

        ids = [tx.id for tx in list_transactions(start="2025-01-15T00:00:00Z")]
        assert ids == ["20250116001", "20250115001"]

    def test_status_filter_and_limit(self, db_session):
        create_transaction(sale_payload())
        create_transaction(sale_payload(paymentMethod="cancelled", cashReceived=0))
        create_transaction(sale_payload())

        assert [tx.id for tx in list_transactions(status="cancelled")] == ["20250115002"]
        assert len(list_transactions(limit=2)) == 2

    def test_bad_filters(self, db_session):
        with pytest.raises(InvalidPayload):
            list_transactions(start="not-a-date")
        with pytest.raises(InvalidPayload):
            list_transactions(status="PENDING")
        with pytest.raises(InvalidPayload):
            list_transactions(limit=0)

    def test_transaction_without_items_is_readable(self, db_session):
        db.session.add(Transaction(
            id="20250101001", business_date=date(2025, 1, 1),
            occurred_at=transaction_service.utcnow(),
            subtotal=0, discount=0, total=0, payment_method="cash",
            cash_received=0, change=0, status="SUCCESS",
        ))
        db.session.commit()

        [tx] = list_transactions()
        assert tx.to_dict()["items"] == []

    def test_get_missing(self, db_session):
        assert get_transaction("20250115999") is None


class TestDelete:

    def test_delete_cascades_to_items(self, db_session):
        tx_id = create_transaction(sale_payload()).id
        assert _item_count() == 2

        assert delete_transaction(tx_id) is True
        assert _transaction_count() == 0
        assert _item_count() == 0

    def test_deleted_number_is_not_reused(self, db_session):
        tx_id = create_transaction(sale_payload()).id
        delete_transaction(tx_id)

        assert create_transaction(sale_payload()).id == "20250115002"

    def test_delete_missing(self, db_session):
        assert delete_transaction("20250115001") is False

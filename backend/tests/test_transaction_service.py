# Overview: Pytest coverage for order creation, payment completion and receipts.

"""
Transaction Workflow Tests

Covers the PENDING -> COMPLETED transition: exact change, underpayment,
double completion, cashier scope, and stock movement at order creation.
"""

from types import SimpleNamespace

import pytest

from kasir.extensions import db
from kasir.models import StockMovement, Transaction
from kasir.models.catalog import MOVEMENT_OUT, REFERENCE_TRANSACTION
from kasir.models.sales import STATUS_PENDING, STATUS_COMPLETED
from kasir.services import transaction_service, receipt_service
from kasir.services import product_repository as repo
from kasir.services.transaction_service import InsufficientPaymentError
from kasir.validation import ConflictError, NotFoundError, ValidationError
from kasir.time_utils import utcnow
from conftest import make_product


@pytest.fixture
def pending_45000(db_session, tenant_a, cashier_a, product_a, product_a2):
    """2 x 15000 + 2 x 7500 = 45000."""
    return transaction_service.create_transaction(
        tenant_a.id,
        cashier_a.id,
        [
            {"product_id": product_a.id, "quantity": 2},
            {"product_id": product_a2.id, "quantity": 2},
        ],
    )


class TestCreateTransaction:
    def test_total_and_snapshots(self, pending_45000, product_a):
        assert pending_45000["status"] == STATUS_PENDING
        assert pending_45000["total"] == 45000
        assert pending_45000["payment_amount"] is None

        line = pending_45000["items"][0]
        assert line["product_id"] == product_a.id
        assert line["product_name"] == "Kopi Susu"
        assert line["unit_price"] == 15000
        assert line["subtotal"] == 30000

    def test_stock_moves_at_creation(self, pending_45000, tenant_a, product_a, product_a2):
        assert repo.find_by_id(product_a.id, tenant_a.id).stock == 18
        assert repo.find_by_id(product_a2.id, tenant_a.id).stock == 8

    def test_stock_moves_are_recorded_against_the_order(self, pending_45000, tenant_a, cashier_a, product_a):
        movements = repo.list_stock_movements(product_a.id, tenant_a.id)
        assert len(movements) == 1
        movement = movements[0]
        assert (movement.movement_type, movement.quantity) == (MOVEMENT_OUT, 2)
        assert (movement.before_qty, movement.after_qty) == (20, 18)
        assert movement.reference_type == REFERENCE_TRANSACTION
        assert movement.reference_id == pending_45000["id"]
        assert movement.created_by == cashier_a.id

    def test_repeated_lines_are_merged(self, db_session, tenant_a, cashier_a, product_a):
        txn = transaction_service.create_transaction(
            tenant_a.id, cashier_a.id,
            [{"product_id": product_a.id, "quantity": 1}, {"product_id": product_a.id, "quantity": 2}],
        )
        assert len(txn["items"]) == 1
        assert txn["items"][0]["quantity"] == 3
        assert txn["total"] == 45000

    def test_insufficient_stock_rolls_back_whole_order(self, db_session, tenant_a, cashier_a, product_a, product_a2):
        with pytest.raises(repo.StockError) as exc:
            transaction_service.create_transaction(
                tenant_a.id, cashier_a.id,
                [
                    {"product_id": product_a.id, "quantity": 1},
                    {"product_id": product_a2.id, "quantity": 11},
                ],
            )
        assert "Teh Manis" in str(exc.value)
        assert isinstance(exc.value.__cause__, repo.StockError)

        assert repo.find_by_id(product_a.id, tenant_a.id).stock == 20
        assert repo.find_by_id(product_a2.id, tenant_a.id).stock == 10
        assert db_session.query(Transaction).count() == 0
        assert db_session.query(StockMovement).count() == 0

    def test_untracked_product_ignores_stock(self, db_session, tenant_a, cashier_a):
        service = make_product(db_session, tenant_a, "JASA-1", "Biaya Antar", 5000, stock=0, is_track_stock=False)
        txn = transaction_service.create_transaction(
            tenant_a.id, cashier_a.id, [{"product_id": service.id, "quantity": 3}]
        )
        assert txn["total"] == 15000

    def test_unsellable_product_rejected(self, db_session, tenant_a, cashier_a):
        hidden = make_product(db_session, tenant_a, "HIDE-1", "Tidak Dijual", 5000, is_sellable=False)
        with pytest.raises(ValidationError):
            transaction_service.create_transaction(
                tenant_a.id, cashier_a.id, [{"product_id": hidden.id, "quantity": 1}]
            )

    def test_other_tenant_product_not_found(self, db_session, tenant_a, cashier_a, product_b):
        with pytest.raises(NotFoundError):
            transaction_service.create_transaction(
                tenant_a.id, cashier_a.id, [{"product_id": product_b.id, "quantity": 1}]
            )

    def test_empty_items_rejected(self, db_session, tenant_a, cashier_a):
        with pytest.raises(ValidationError):
            transaction_service.create_transaction(tenant_a.id, cashier_a.id, [])

    def test_creation_invalidates_product_cache(self, db_session, tenant_a, cashier_a, product_a, cache):
        from kasir.services import products_service

        assert products_service.get_product(product_a.id, tenant_a.id, cache=cache)["stock"] == 20
        transaction_service.create_transaction(
            tenant_a.id, cashier_a.id, [{"product_id": product_a.id, "quantity": 5}], cache=cache
        )
        assert products_service.get_product(product_a.id, tenant_a.id, cache=cache)["stock"] == 15


class TestCompletePayment:
    def test_exact_change(self, pending_45000, tenant_a):
        done = transaction_service.complete_payment(pending_45000["id"], tenant_a.id, 50000)

        assert done["status"] == STATUS_COMPLETED
        assert done["payment_amount"] == 50000
        assert done["change_amount"] == 5000
        assert done["payment_method"] == "CASH"
        assert done["completed_at"] is not None

    def test_exact_amount_zero_change(self, pending_45000, tenant_a):
        done = transaction_service.complete_payment(pending_45000["id"], tenant_a.id, 45000, "QRIS")
        assert done["change_amount"] == 0
        assert done["payment_method"] == "QRIS"

    def test_underpayment_reports_minimum_and_stays_pending(self, pending_45000, tenant_a):
        with pytest.raises(InsufficientPaymentError) as exc:
            transaction_service.complete_payment(pending_45000["id"], tenant_a.id, 40000)

        assert exc.value.minimum_required == 45000
        txn = transaction_service.get_transaction(pending_45000["id"], tenant_a.id)
        assert txn["status"] == STATUS_PENDING
        assert txn["payment_amount"] is None
        assert txn["change_amount"] is None

    def test_second_completion_conflicts_and_keeps_first_result(self, pending_45000, tenant_a):
        transaction_service.complete_payment(pending_45000["id"], tenant_a.id, 50000)

        with pytest.raises(ConflictError):
            transaction_service.complete_payment(pending_45000["id"], tenant_a.id, 100000)

        txn = transaction_service.get_transaction(pending_45000["id"], tenant_a.id)
        assert txn["payment_amount"] == 50000
        assert txn["change_amount"] == 5000

    def test_completion_lost_between_read_and_update_conflicts(self, pending_45000, tenant_a, monkeypatch):
        txn_id = pending_45000["id"]
        load_transaction = transaction_service.load_transaction

        def load_then_other_till_completes(transaction_id, tenant_id, cashier_id=None):
            txn = load_transaction(transaction_id, tenant_id, cashier_id)
            seen = SimpleNamespace(status=txn.status, total=txn.total)
            db.session.query(Transaction).filter(Transaction.id == transaction_id).update(
                {
                    Transaction.status: STATUS_COMPLETED,
                    Transaction.payment_amount: 100000,
                    Transaction.change_amount: 55000,
                    Transaction.payment_method: "CASH",
                    Transaction.completed_at: utcnow(),
                },
                synchronize_session=False,
            )
            db.session.commit()
            return seen

        monkeypatch.setattr(transaction_service, "load_transaction", load_then_other_till_completes)
        with pytest.raises(ConflictError):
            transaction_service.complete_payment(txn_id, tenant_a.id, 50000)
        monkeypatch.undo()

        db.session.expire_all()
        txn = transaction_service.get_transaction(txn_id, tenant_a.id)
        assert txn["status"] == STATUS_COMPLETED
        assert txn["payment_amount"] == 100000
        assert txn["change_amount"] == 55000

    def test_completion_does_not_move_stock(self, pending_45000, tenant_a, product_a):
        transaction_service.complete_payment(pending_45000["id"], tenant_a.id, 50000)
        assert repo.find_by_id(product_a.id, tenant_a.id).stock == 18

    def test_other_tenant_cannot_complete(self, pending_45000, tenant_b):
        with pytest.raises(NotFoundError):
            transaction_service.complete_payment(pending_45000["id"], tenant_b.id, 50000)

    def test_cashier_scope(self, pending_45000, tenant_a, cashier_a, cashier_a2):
        with pytest.raises(NotFoundError):
            transaction_service.complete_payment(pending_45000["id"], tenant_a.id, 50000, cashier_id=cashier_a2.id)

        done = transaction_service.complete_payment(pending_45000["id"], tenant_a.id, 50000, cashier_id=cashier_a.id)
        assert done["status"] == STATUS_COMPLETED

    def test_invalid_method_rejected(self, pending_45000, tenant_a):
        with pytest.raises(ValidationError):
            transaction_service.complete_payment(pending_45000["id"], tenant_a.id, 50000, "BITCOIN")

    def test_fractional_amount_rejected(self, pending_45000, tenant_a):
        with pytest.raises(ValidationError):
            transaction_service.complete_payment(pending_45000["id"], tenant_a.id, 45000.5)


class TestListTransactions:
    def test_filters_and_pagination(self, db_session, tenant_a, cashier_a, cashier_a2, product_a):
        for cashier in (cashier_a, cashier_a, cashier_a2):
            transaction_service.create_transaction(
                tenant_a.id, cashier.id, [{"product_id": product_a.id, "quantity": 1}]
            )

        everything = transaction_service.list_transactions(tenant_a.id)
        assert everything["pagination"]["total"] == 3

        mine = transaction_service.list_transactions(tenant_a.id, cashier_id=cashier_a.id, limit=1)
        assert mine["pagination"] == {"total": 2, "page": 1, "limit": 1, "total_pages": 2}
        assert len(mine["transactions"]) == 1

        completed = transaction_service.list_transactions(tenant_a.id, status=STATUS_COMPLETED)
        assert completed["transactions"] == []
        assert completed["pagination"]["total_pages"] == 0


class TestReceipts:
    def test_pending_transaction_has_no_receipt(self, pending_45000, tenant_a):
        with pytest.raises(ConflictError):
            receipt_service.get_receipt_data(pending_45000["id"], tenant_a.id)

    def test_receipt_data_and_plain_text(self, pending_45000, tenant_a):
        transaction_service.complete_payment(pending_45000["id"], tenant_a.id, 50000)

        receipt = receipt_service.get_receipt_data(pending_45000["id"], tenant_a.id)
        assert receipt["tenant"]["code"] == "KOPI"
        assert receipt["item_count"] == 4
        assert receipt["cashier"]["username"] == "cashier_a"

        text = receipt_service.PlainTextReceiptRenderer(width=40).render(receipt).decode("utf-8")
        assert "Kopi Susu" in text
        assert "45,000" in text
        assert "5,000" in text

    def test_publish_receipt_routes_to_sink(self, pending_45000, tenant_a):
        transaction_service.complete_payment(pending_45000["id"], tenant_a.id, 50000)
        receipt = receipt_service.get_receipt_data(pending_45000["id"], tenant_a.id)

        class RecordingSink:
            def __init__(self):
                self.calls = []

            def share(self, document, content_type, receipt):
                self.calls.append(("share", content_type))

            def save(self, document, content_type, receipt):
                self.calls.append(("save", content_type))

            def discard(self, receipt):
                self.calls.append(("discard", None))

        sink = RecordingSink()
        renderer = receipt_service.PlainTextReceiptRenderer()
        for action in ("share", "save", "discard"):
            receipt_service.publish_receipt(receipt, renderer, sink, action)

        assert sink.calls == [
            ("share", renderer.content_type),
            ("save", renderer.content_type),
            ("discard", None),
        ]

        with pytest.raises(ValidationError):
            receipt_service.publish_receipt(receipt, renderer, sink, "print")

# Overview: Service-layer operations for transactions; order creation, payment completion and history.

"""
Transaction Workflow Service

LIFECYCLE:
    PENDING  --complete_payment(amount >= total)-->  COMPLETED (terminal)

ORDER CREATION: create_transaction() snapshots unit price and name for each
line, computes the total (immutable afterwards) and moves stock for tracked
products with the repository's conditional UPDATE, all in one database
transaction. Each stock move is recorded as an OUT movement referencing the
transaction. Insufficient stock on any line rolls back the whole order,
movements included.

PAYMENT COMPLETION: complete_payment() validates against the stored total
and then commits the transition with a single guarded UPDATE:

    UPDATE transactions
       SET status='COMPLETED', payment_amount=:a, change_amount=:a - total, ...
     WHERE id=:id AND tenant_id=:t AND status='PENDING' AND total <= :a

Two cashiers completing the same order cannot both succeed; the loser sees
zero affected rows and gets a ConflictError. Completion does not touch
stock (stock moved at order creation).

Failures never mutate the transaction: it stays PENDING with no payment.
"""

from __future__ import annotations

import logging
import math

from ..extensions import db
from ..models import Product, Transaction, TransactionItem
from ..models.catalog import REFERENCE_TRANSACTION
from ..models.sales import STATUS_COMPLETED, STATUS_PENDING, PAYMENT_CASH, VALID_PAYMENT_METHODS
from ..validation import ConflictError, DomainError, NotFoundError, ValidationError
from . import product_repository as repo
from .cache import ProductCache
from .concurrency import run_with_retry
from kasir.time_utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10


class InsufficientPaymentError(DomainError):
    """Payment amount is below the transaction total."""

    def __init__(self, minimum_required: int, payment_amount: int):
        super().__init__(
            f"Insufficient payment: minimum required is {minimum_required}, received {payment_amount}"
        )
        self.minimum_required = minimum_required
        self.payment_amount = payment_amount


def _scoped_transactions(tenant_id: int):
    if tenant_id is None:
        raise ValueError("tenant_id is required")
    return db.session.query(Transaction).filter(Transaction.tenant_id == tenant_id)


def load_transaction(transaction_id: int, tenant_id: int, cashier_id: int | None = None) -> Transaction:
    query = _scoped_transactions(tenant_id).filter(Transaction.id == transaction_id)
    if cashier_id is not None:
        query = query.filter(Transaction.cashier_id == cashier_id)
    txn = query.first()
    if txn is None:
        # Same answer for "missing" and "someone else's" so existence is not revealed
        raise NotFoundError("Transaction not found")
    return txn


def _merge_lines(items: list[dict]) -> dict[int, int]:
    merged: dict[int, int] = {}
    for item in items:
        merged[item["product_id"]] = merged.get(item["product_id"], 0) + item["quantity"]
    return merged


# =============================================================================
# ORDER CREATION
# =============================================================================

def create_transaction(
    tenant_id: int,
    cashier_id: int,
    items: list[dict],
    cache: ProductCache | None = None,
) -> dict:
    """
    Create a PENDING transaction from [{"product_id", "quantity"}, ...].

    Lines for the same product are merged.

    Raises:
        ValidationError: empty items, non-positive quantity, product not sellable
        NotFoundError: a product is missing from the tenant
        StockError: a tracked product does not have enough stock
    """
    if not items:
        raise ValidationError("Validation failed", {"items": ["items must be a non-empty array"]})

    lines = _merge_lines(items)
    for product_id, quantity in lines.items():
        if quantity <= 0:
            raise ValidationError("Validation failed", {"items": [f"quantity for product {product_id} must be > 0"]})

    def _op():
        products = {
            p.id: p
            for p in repo.live_products(tenant_id).filter(Product.id.in_(list(lines))).all()
        }
        missing = [pid for pid in lines if pid not in products]
        if missing:
            raise NotFoundError(f"Product not found: {', '.join(str(m) for m in missing)}")

        txn = Transaction(tenant_id=tenant_id, cashier_id=cashier_id, status=STATUS_PENDING, total=0)
        db.session.add(txn)
        # Assigns txn.id for the stock movement references
        db.session.flush()

        total = 0
        for product_id, quantity in lines.items():
            product = products[product_id]
            if not product.is_active or not product.is_sellable:
                raise ValidationError("Validation failed", {"items": [f"Product {product.name} is not available for sale"]})

            subtotal = product.price * quantity
            total += subtotal
            txn.items.append(TransactionItem(
                product_id=product.id,
                product_name=product.name,
                product_sku=product.sku,
                unit_price=product.price,
                quantity=quantity,
                subtotal=subtotal,
            ))

            if product.is_track_stock:
                try:
                    repo.apply_stock_change(
                        product.id, tenant_id, quantity, "subtract",
                        reference_type=REFERENCE_TRANSACTION,
                        reference_id=txn.id,
                        created_by=cashier_id,
                    )
                except repo.StockError as exc:
                    raise repo.StockError(f"Insufficient stock for product {product.name}") from exc

        txn.total = total
        db.session.commit()
        return txn.id

    transaction_id = run_with_retry(_op)

    if cache is not None:
        for product_id in lines:
            cache.invalidate(product_id, tenant_id)

    logger.info("transaction created id=%s tenant=%s cashier=%s", transaction_id, tenant_id, cashier_id)
    return get_transaction(transaction_id, tenant_id)


# =============================================================================
# PAYMENT COMPLETION
# =============================================================================

def complete_payment(
    transaction_id: int,
    tenant_id: int,
    payment_amount: int,
    payment_method: str = PAYMENT_CASH,
    cashier_id: int | None = None,
) -> dict:
    """
    Complete a PENDING transaction.

    cashier_id, when given, restricts completion to that cashier's orders.

    Returns:
        Completed transaction dict (items, total, payment, change, ids)

    Raises:
        ValidationError: bad amount or payment method
        NotFoundError: transaction missing in tenant / cashier scope
        ConflictError: transaction already completed
        InsufficientPaymentError: payment_amount < total (carries minimum_required)
    """
    if payment_method not in VALID_PAYMENT_METHODS:
        raise ValidationError(
            "Validation failed",
            {"payment_method": [f"payment_method must be one of: {', '.join(VALID_PAYMENT_METHODS)}"]},
        )
    if isinstance(payment_amount, bool) or not isinstance(payment_amount, int) or payment_amount < 0:
        raise ValidationError("Validation failed", {"payment_amount": ["payment_amount must be a non-negative integer"]})

    def _op():
        txn = load_transaction(transaction_id, tenant_id, cashier_id)
        if txn.status == STATUS_COMPLETED:
            raise ConflictError("Transaction already completed")
        if payment_amount < txn.total:
            raise InsufficientPaymentError(minimum_required=txn.total, payment_amount=payment_amount)

        rows = (
            _scoped_transactions(tenant_id)
            .filter(
                Transaction.id == transaction_id,
                Transaction.status == STATUS_PENDING,
                Transaction.total <= payment_amount,
            )
            .update(
                {
                    Transaction.status: STATUS_COMPLETED,
                    Transaction.payment_amount: payment_amount,
                    Transaction.change_amount: payment_amount - Transaction.total,
                    Transaction.payment_method: payment_method,
                    Transaction.completed_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        if rows == 0:
            # Lost the race to another completion between the read and the UPDATE
            db.session.rollback()
            raise ConflictError("Transaction already completed")

        db.session.commit()

    run_with_retry(_op)

    result = get_transaction(transaction_id, tenant_id)
    logger.info(
        "transaction completed id=%s tenant=%s total=%s paid=%s change=%s method=%s",
        transaction_id, tenant_id, result["total"], result["payment_amount"],
        result["change_amount"], result["payment_method"],
    )
    return result


# =============================================================================
# QUERIES
# =============================================================================

def get_transaction(transaction_id: int, tenant_id: int, cashier_id: int | None = None) -> dict:
    return load_transaction(transaction_id, tenant_id, cashier_id).to_dict()


def list_transactions(
    tenant_id: int,
    start_date=None,
    end_date=None,
    cashier_id: int | None = None,
    status: str | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    """
    Transaction history, newest first.

    Returns:
        {"transactions": [...], "pagination": {total, page, limit, total_pages}}
    """
    page = page or DEFAULT_PAGE
    limit = limit or DEFAULT_LIMIT

    query = _scoped_transactions(tenant_id)
    if start_date is not None:
        query = query.filter(Transaction.created_at >= start_date)
    if end_date is not None:
        query = query.filter(Transaction.created_at <= end_date)
    if cashier_id is not None:
        query = query.filter(Transaction.cashier_id == cashier_id)
    if status is not None:
        query = query.filter(Transaction.status == status)

    total = query.count()
    transactions = (
        query.order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "transactions": [t.to_dict() for t in transactions],
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit),
        },
    }

from __future__ import annotations

from ..extensions import db
from kasir.time_utils import to_utc_z

STATUS_PENDING = "PENDING"
STATUS_COMPLETED = "COMPLETED"

PAYMENT_CASH = "CASH"
PAYMENT_QRIS = "QRIS"
PAYMENT_DEBIT = "DEBIT"
VALID_PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_QRIS, PAYMENT_DEBIT)


class Transaction(db.Model):
    """
    Sales transaction (order) with a single PENDING -> COMPLETED transition.

    total is fixed when the order is created; completion only writes the
    payment columns and status, guarded by status = 'PENDING' in the UPDATE.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_tenant_status_created", "tenant_id", "status", "created_at"),
        db.CheckConstraint("total >= 0", name="ck_transactions_total_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)

    # All amounts are integers in the tenant currency's smallest unit
    total = db.Column(db.Integer, nullable=False)
    payment_amount = db.Column(db.Integer, nullable=True)
    change_amount = db.Column(db.Integer, nullable=True)
    payment_method = db.Column(db.String(16), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    cashier = db.relationship("User", foreign_keys=[cashier_id])
    tenant = db.relationship("Tenant")
    items = db.relationship(
        "TransactionItem",
        backref="transaction",
        order_by="TransactionItem.id",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} status={self.status} total={self.total}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "cashier_id": self.cashier_id,
            "cashier": {"id": self.cashier.id, "username": self.cashier.username} if self.cashier else None,
            "status": self.status,
            "total": self.total,
            "payment_amount": self.payment_amount,
            "change_amount": self.change_amount,
            "payment_method": self.payment_method,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "items": [item.to_dict() for item in self.items],
        }


class TransactionItem(db.Model):
    """Line item with price and name snapshots taken at order time."""
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_transaction_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    product_name = db.Column(db.String(200), nullable=False)
    product_sku = db.Column(db.String(50), nullable=False)
    unit_price = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    subtotal = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "unit_price": self.unit_price,
            "quantity": self.quantity,
            "subtotal": self.subtotal,
        }

from __future__ import annotations

from ..extensions import db
from kasir.time_utils import to_utc_z

DEFAULT_MIN_STOCK = 5


class Brand(db.Model):
    __tablename__ = "brands"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_brands_tenant_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_categories_tenant_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Product(db.Model):
    """
    Product master data.

    MULTI-TENANT: Products are scoped to tenants via tenant_id.
    SKUs are unique within a tenant: UniqueConstraint("tenant_id", "sku").

    SOFT DELETE: Products are never physically removed. deleted_at/deleted_by
    mark them gone, and every repository query filters deleted_at IS NULL
    (see product_repository.live_products).

    STOCK: stock >= 0 is enforced both by the repository's conditional
    updates and by a CHECK constraint.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        db.Index("ix_products_tenant_name", "tenant_id", "name"),
        db.Index("ix_products_tenant_deleted", "tenant_id", "deleted_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    sku = db.Column(db.String(50), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Integer amount in the tenant currency's smallest unit
    price = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=DEFAULT_MIN_STOCK)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_sellable = db.Column(db.Boolean, nullable=False, default=True)
    is_track_stock = db.Column(db.Boolean, nullable=False, default=True)

    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=True, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    brand = db.relationship("Brand", foreign_keys=[brand_id])
    category = db.relationship("Category", foreign_keys=[category_id])

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} tenant_id={self.tenant_id}>"

    @property
    def is_low_stock(self) -> bool:
        return bool(self.is_track_stock) and self.stock <= self.min_stock

    def to_dict(self, include_relations: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "stock": self.stock,
            "min_stock": self.min_stock,
            "is_active": self.is_active,
            "is_sellable": self.is_sellable,
            "is_track_stock": self.is_track_stock,
            "is_low_stock": self.is_low_stock,
            "brand_id": self.brand_id,
            "category_id": self.category_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_relations:
            # Soft-deleted brands/categories resolve to null
            brand = self.brand
            category = self.category
            data["brand"] = brand.to_dict() if brand is not None and brand.deleted_at is None else None
            data["category"] = category.to_dict() if category is not None and category.deleted_at is None else None
        return data


MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
VALID_MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUSTMENT)

REFERENCE_MANUAL = "MANUAL"
REFERENCE_TRANSACTION = "TRANSACTION"


class StockMovement(db.Model):
    """
    Append-only stock ledger.

    One row per successful stock change, written in the same database
    transaction as the product UPDATE. A rejected change (insufficient stock,
    missing product) leaves no row behind.

    quantity is the requested amount: units moved for IN/OUT, the new level
    for ADJUSTMENT. before_qty/after_qty capture the resulting level change.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_stock_movements_quantity_non_negative"),
        db.Index("ix_stock_movements_tenant_product_created", "tenant_id", "product_id", "created_at"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    before_qty = db.Column(db.Integer, nullable=False)
    after_qty = db.Column(db.Integer, nullable=False)

    reference_type = db.Column(db.String(32), nullable=False, default=REFERENCE_MANUAL)
    reference_id = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} product_id={self.product_id} "
            f"{self.movement_type} {self.before_qty}->{self.after_qty}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "before_qty": self.before_qty,
            "after_qty": self.after_qty,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }

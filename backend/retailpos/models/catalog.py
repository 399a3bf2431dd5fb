from __future__ import annotations

from ..extensions import db
from ..money import as_number
from ..time_utils import to_utc_z


class Brand(db.Model):
    __tablename__ = "brands"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    status = db.Column(db.String(16), nullable=False, default="ACTIVE")

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "status": self.status}


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    status = db.Column(db.String(16), nullable=False, default="ACTIVE")

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "status": self.status}


class Product(db.Model):
    """
    Sellable item. Stock is always counted in pieces.

    CARTON selling is possible only when supports_carton is set,
    pcs_per_carton > 1 and a carton price exists; see
    pricing_service.is_carton_eligible.
    """
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    barcode = db.Column(db.String(64), nullable=True, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False, index=True)

    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=True, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    price = db.Column(db.Numeric(12, 2), nullable=False)
    cost_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    carton_price = db.Column(db.Numeric(12, 2), nullable=True)
    pcs_per_carton = db.Column(db.Integer, nullable=False, default=1)
    supports_carton = db.Column(db.Boolean, nullable=False, default=False)

    stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)

    # ACTIVE, INACTIVE, ARCHIVED
    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    # Set by soft delete; the row stays for sale history
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    brand = db.relationship("Brand", backref=db.backref("products", lazy=True))
    category = db.relationship("Category", backref=db.backref("products", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "barcode": self.barcode,
            "name": self.name,
            "brandId": self.brand_id,
            "categoryId": self.category_id,
            "price": as_number(self.price),
            "costPrice": as_number(self.cost_price),
            "cartonPrice": as_number(self.carton_price),
            "pcsPerCarton": self.pcs_per_carton,
            "supportsCarton": self.supports_carton,
            "stock": self.stock,
            "minStock": self.min_stock,
            "status": self.status,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
            "deletedAt": to_utc_z(self.deleted_at),
        }

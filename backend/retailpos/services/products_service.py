# backend/retailpos/services/products_service.py
"""
Products Service

Catalog reads for the terminal (search, barcode lookup, carton stock
breakdown) and admin writes (create, patch, delete). Brands and categories
are kept here too: they only exist as discount targets.

DELETE RULES:
- stock must be 0 and no running campaign may target the product
  (directly, through its brand, or through its category)
- soft delete marks the product INACTIVE and stamps deleted_at
- hard delete is admin only and refused once the product was ever sold
"""
from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Brand, Category, Discount, Product, ReturnItem, SaleItem, User
from ..errors import BusinessError, ConflictError, ForbiddenError, NotFoundError
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, ValidationError, validate_payload
from .pricing_service import is_carton_eligible, is_discount_active, stock_breakdown

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "barcode", "name", "brand_id", "category_id", "price", "cost_price",
        "carton_price", "pcs_per_carton", "supports_carton", "stock",
        "min_stock", "status",
    },
    required_on_create={"name", "price"},
)

PRODUCT_STATUSES = ("ACTIVE", "INACTIVE", "ARCHIVED")
NAMED_STATUSES = ("ACTIVE", "INACTIVE")
DELETE_MODES = ("soft", "hard")


def paginate(query, page: int | None, per_page: int | None, serialize) -> dict:
    """Shared list envelope: all rows when page is None, else one page."""
    if page is None:
        rows = query.all()
        return {"items": [serialize(r) for r in rows], "count": len(rows)}

    per_page = min(per_page or 20, 100)
    page = max(page, 1)
    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    rows = query.offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [serialize(r) for r in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "perPage": per_page,
            "total": total,
            "totalPages": total_pages,
            "hasNext": page < total_pages,
            "hasPrev": page > 1,
        },
    }


def pos_product_dict(product: Product) -> dict:
    """Product as the till shows it, with stock split into cartons and pieces."""
    data = product.to_dict()
    cartons, remainder = stock_breakdown(product.stock, product.pcs_per_carton)
    data["cartonEligible"] = is_carton_eligible(product)
    data["stockCartons"] = cartons
    data["stockRemainderPcs"] = remainder
    return data


def _validate_product_rules(product: Product) -> None:
    if product.price is not None and product.price < 0:
        raise ValidationError("price must be >= 0")
    if product.carton_price is not None and product.carton_price < 0:
        raise ValidationError("cartonPrice must be >= 0")
    if (product.pcs_per_carton or 1) < 1:
        raise ValidationError("pcsPerCarton must be >= 1")
    if (product.stock or 0) < 0:
        raise ValidationError("stock must be >= 0")
    if product.status not in PRODUCT_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(PRODUCT_STATUSES)}")
    if product.supports_carton and (product.pcs_per_carton or 1) <= 1:
        raise ValidationError("supportsCarton requires pcsPerCarton > 1")


def _check_barcode_unique(barcode: str | None, exclude_id: int | None = None) -> None:
    if not barcode:
        return
    query = db.session.query(Product).filter(Product.barcode == barcode)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError(f"Barcode {barcode} already exists", code="BARCODE_EXISTS")


def list_products(
    search: str | None = None,
    status: str | None = "ACTIVE",
    page: int | None = None,
    per_page: int | None = None,
    serialize=None,
) -> dict:
    query = db.session.query(Product)
    if status:
        query = query.filter(Product.status == status.upper())
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.barcode.ilike(pattern)))
    query = query.order_by(Product.name.asc(), Product.id.asc())
    return paginate(query, page, per_page, serialize or (lambda p: p.to_dict()))


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found", code="PRODUCT_NOT_FOUND")
    return product


def get_product_by_barcode(barcode: str) -> Product:
    product = db.session.query(Product).filter_by(barcode=barcode.strip()).first()
    if not product:
        raise NotFoundError("Product not found", code="PRODUCT_NOT_FOUND", details={"barcode": barcode})
    return product


def create_product(payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    _check_barcode_unique(patch.get("barcode"))
    product = Product(**patch)
    product.status = product.status or "ACTIVE"
    product.pcs_per_carton = product.pcs_per_carton or 1
    product.supports_carton = bool(product.supports_carton)
    product.stock = product.stock or 0
    _validate_product_rules(product)
    db.session.add(product)
    db.session.commit()
    return product


def update_product(product_id: int, payload: dict) -> Product:
    product = get_product(product_id)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    if "barcode" in patch:
        _check_barcode_unique(patch["barcode"], exclude_id=product.id)
    for key, value in patch.items():
        setattr(product, key, value)
    try:
        _validate_product_rules(product)
    except ValidationError:
        db.session.rollback()
        raise
    db.session.commit()
    return product


# =============================================================================
# DELETE
# =============================================================================

def _has_transactions(product_id: int) -> bool:
    sold = db.session.query(SaleItem.id).filter(SaleItem.product_id == product_id).first()
    returned = db.session.query(ReturnItem.id).filter(ReturnItem.product_id == product_id).first()
    return bool(sold or returned)


def _has_active_promo(product: Product, now=None) -> bool:
    now = now or utcnow()
    targets = [Discount.product_id == product.id]
    if product.brand_id is not None:
        targets.append(Discount.brand_id == product.brand_id)
    if product.category_id is not None:
        targets.append(Discount.category_id == product.category_id)
    candidates = (
        db.session.query(Discount)
        .filter(Discount.active.is_(True), Discount.status == "ACTIVE", or_(*targets))
        .all()
    )
    return any(is_discount_active(d, now) for d in candidates)


def get_delete_info(product_id: int) -> dict:
    """What the back office shows before asking soft or hard."""
    product = get_product(product_id)
    has_transactions = _has_transactions(product.id)
    has_active_promo = _has_active_promo(product)
    return {
        "id": product.id,
        "name": product.name,
        "barcode": product.barcode,
        "status": product.status,
        "stock": product.stock,
        "brandName": product.brand.name if product.brand else None,
        "categoryName": product.category.name if product.category else None,
        "hasTransactions": has_transactions,
        "hasActivePromo": has_active_promo,
        "canSoftDelete": product.stock <= 0 and not has_active_promo,
        "canHardDelete": product.stock <= 0 and not has_active_promo and not has_transactions,
    }


def delete_product(product_id: int, mode: str, actor: User) -> dict:
    """
    Raises:
        ValidationError: unknown mode
        ForbiddenError: hard delete by a non-admin
        NotFoundError: unknown product
        ConflictError: PRODUCT_HAS_STOCK, PRODUCT_HAS_ACTIVE_PROMO,
            PRODUCT_HAS_TRANSACTIONS, PRODUCT_HAS_DISCOUNTS
    """
    mode = (mode or "soft").lower()
    if mode not in DELETE_MODES:
        raise ValidationError(f"mode must be one of: {', '.join(DELETE_MODES)}")
    if mode == "hard" and actor.role != "admin":
        raise ForbiddenError("Only an admin can delete a product permanently", code="HARD_DELETE_FORBIDDEN")

    product = get_product(product_id)
    if product.stock > 0:
        raise ConflictError(
            "Product still has stock",
            code="PRODUCT_HAS_STOCK",
            details={"stock": product.stock},
        )
    if _has_active_promo(product):
        raise ConflictError("A running campaign still targets this product", code="PRODUCT_HAS_ACTIVE_PROMO")

    has_transactions = _has_transactions(product.id)
    if mode == "hard":
        if has_transactions:
            raise ConflictError(
                "Product appears in sales history; deactivate it instead",
                code="PRODUCT_HAS_TRANSACTIONS",
            )
        if db.session.query(Discount.id).filter(Discount.product_id == product.id).first():
            raise ConflictError("Campaigns still reference this product", code="PRODUCT_HAS_DISCOUNTS")
        db.session.delete(product)
        db.session.commit()
        return {"id": product_id, "mode": "hard"}

    product.status = "INACTIVE"
    product.deleted_at = utcnow()
    db.session.commit()
    return {"id": product.id, "mode": "soft", "hasTransactions": has_transactions}


# =============================================================================
# BRANDS / CATEGORIES
# =============================================================================

def _clean_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required")
    return name.strip()


def _check_name_unique(model, name: str, label: str, exclude_id: int | None = None) -> None:
    query = db.session.query(model).filter(model.name == name)
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    if query.first():
        raise ConflictError(f"{label} '{name}' already exists", code="DUPLICATE_NAME")


def _create_named(model, name: str | None, label: str):
    name = _clean_name(name)
    _check_name_unique(model, name, label)
    row = model(name=name, status="ACTIVE")
    db.session.add(row)
    db.session.commit()
    return row


def _update_named(model, row_id: int, payload, label: str, product_column, in_use_code: str):
    """
    Rename and/or change status. Deactivating is refused while active
    products still point at the row.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = sorted(set(payload) - {"name", "status"})
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(unknown)}")

    row = db.session.get(model, row_id)
    if not row:
        raise NotFoundError(f"{label} not found", code=f"{label.upper()}_NOT_FOUND")

    try:
        _apply_named_changes(row, model, payload, label, product_column, in_use_code)
    except BusinessError:
        db.session.rollback()
        raise
    db.session.commit()
    return row


def _apply_named_changes(row, model, payload: dict, label: str, product_column, in_use_code: str) -> None:
    if "name" in payload:
        name = _clean_name(payload["name"])
        _check_name_unique(model, name, label, exclude_id=row.id)
        row.name = name

    if "status" in payload:
        status = str(payload["status"] or "").upper()
        if status not in NAMED_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(NAMED_STATUSES)}")
        if status == "INACTIVE" and row.status != "INACTIVE":
            in_use = (
                db.session.query(Product.id)
                .filter(product_column == row.id, Product.status == "ACTIVE")
                .count()
            )
            if in_use:
                raise ConflictError(
                    f"{label} still has active products",
                    code=in_use_code,
                    details={"activeProducts": in_use},
                )
        row.status = status


def list_brands() -> list[Brand]:
    return db.session.query(Brand).order_by(Brand.name.asc()).all()


def create_brand(name: str | None) -> Brand:
    return _create_named(Brand, name, "Brand")


def update_brand(brand_id: int, payload) -> Brand:
    return _update_named(Brand, brand_id, payload, "Brand", Product.brand_id, "BRAND_HAS_PRODUCTS")


def set_brand_status(brand_id: int, status: str) -> Brand:
    return update_brand(brand_id, {"status": status})


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc()).all()


def create_category(name: str | None) -> Category:
    return _create_named(Category, name, "Category")


def update_category(category_id: int, payload) -> Category:
    return _update_named(Category, category_id, payload, "Category", Product.category_id, "CATEGORY_HAS_PRODUCTS")


def set_category_status(category_id: int, status: str) -> Category:
    return update_category(category_id, {"status": status})

# Overview: Discount campaign CRUD and the active-campaign query used by checkout.

from __future__ import annotations

from ..extensions import db
from ..models import Discount, Sale, SaleItem
from ..models.discounts import APPLIES_TO, DISCOUNT_TYPES
from ..errors import NotFoundError
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, ValidationError, validate_payload
from .pricing_service import is_discount_active
from .products_service import paginate

DISCOUNT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "type", "value", "applies_to", "product_id", "brand_id",
        "category_id", "customer_type", "minimum_purchase", "priority_level",
        "stackable", "start_date", "end_date", "active", "status",
    },
    required_on_create={"name", "type", "value"},
)


def _validate_discount(discount: Discount) -> None:
    discount.type = (discount.type or "").lower()
    if discount.type not in DISCOUNT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(DISCOUNT_TYPES)}")
    discount.applies_to = (discount.applies_to or "product").lower()
    if discount.applies_to not in APPLIES_TO:
        raise ValidationError(f"appliesTo must be one of: {', '.join(APPLIES_TO)}")
    if discount.value is None or discount.value < 0:
        raise ValidationError("value must be >= 0")
    if discount.type == "percentage" and discount.value > 100:
        raise ValidationError("percentage value must be <= 100")
    if discount.minimum_purchase is not None and discount.minimum_purchase < 0:
        raise ValidationError("minimumPurchase must be >= 0")
    if discount.start_date and discount.end_date and discount.end_date < discount.start_date:
        raise ValidationError("endDate must be after startDate")
    if discount.customer_type:
        discount.customer_type = discount.customer_type.lower()
    discount.status = (discount.status or "ACTIVE").upper()


def list_discounts(
    active: bool | None = None,
    status: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Discount)
    if active is not None:
        query = query.filter(Discount.active.is_(active))
    if status:
        query = query.filter(Discount.status == status.upper())
    query = query.order_by(Discount.priority_level.desc(), Discount.id.asc())
    return paginate(query, page, per_page, lambda d: d.to_dict())


def active_discounts(now=None) -> list[Discount]:
    """Campaigns that apply right now (flag, status, and date window)."""
    now = now or utcnow()
    rows = (
        db.session.query(Discount)
        .filter(Discount.active.is_(True), Discount.status == "ACTIVE")
        .order_by(Discount.id.asc())
        .all()
    )
    return [d for d in rows if is_discount_active(d, now)]


def get_discount(discount_id: int) -> Discount:
    discount = db.session.get(Discount, discount_id)
    if not discount:
        raise NotFoundError("Discount not found", code="DISCOUNT_NOT_FOUND")
    return discount


def create_discount(payload: dict) -> Discount:
    patch = validate_payload(model=Discount, payload=payload, policy=DISCOUNT_POLICY, partial=False)
    discount = Discount(**patch)
    if discount.active is None:
        discount.active = True
    if discount.minimum_purchase is None:
        discount.minimum_purchase = 0
    if discount.priority_level is None:
        discount.priority_level = 0
    if discount.stackable is None:
        discount.stackable = False
    _validate_discount(discount)
    db.session.add(discount)
    db.session.commit()
    return discount


def update_discount(discount_id: int, payload: dict) -> Discount:
    discount = get_discount(discount_id)
    patch = validate_payload(model=Discount, payload=payload, policy=DISCOUNT_POLICY, partial=True)
    for key, value in patch.items():
        setattr(discount, key, value)
    try:
        _validate_discount(discount)
    except ValidationError:
        db.session.rollback()
        raise
    db.session.commit()
    return discount


def delete_discount(discount_id: int) -> bool:
    """
    Hard-delete an unused campaign. Campaigns already referenced by sales
    are deactivated instead so receipts keep their applied discount id.

    Returns True when the row was deleted.
    """
    discount = get_discount(discount_id)
    used = (
        db.session.query(SaleItem.id).filter_by(applied_discount_id=discount.id).first()
        or db.session.query(Sale.id).filter_by(applied_global_discount_id=discount.id).first()
    )
    if used:
        discount.active = False
        discount.status = "INACTIVE"
        db.session.commit()
        return False
    db.session.delete(discount)
    db.session.commit()
    return True

# Overview: Customer records for loyalty lookup at the till.

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Customer
from ..errors import ConflictError, NotFoundError
from ..validation import ModelValidationPolicy, ValidationError, validate_payload
from . import loyalty_service
from .products_service import paginate

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "customer_type", "status"},
    required_on_create={"name"},
)

CUSTOMER_TYPES = ("regular", "member", "vip")
CUSTOMER_STATUSES = ("ACTIVE", "INACTIVE")


def _normalize(patch: dict) -> dict:
    if "customer_type" in patch and patch["customer_type"] is not None:
        patch["customer_type"] = patch["customer_type"].lower()
        if patch["customer_type"] not in CUSTOMER_TYPES:
            raise ValidationError(f"customerType must be one of: {', '.join(CUSTOMER_TYPES)}")
    if "status" in patch and patch["status"] is not None:
        patch["status"] = patch["status"].upper()
        if patch["status"] not in CUSTOMER_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(CUSTOMER_STATUSES)}")
    if patch.get("phone") == "":
        patch["phone"] = None
    return patch


def _check_phone_unique(phone: str | None, exclude_id: int | None = None) -> None:
    if not phone:
        return
    query = db.session.query(Customer).filter(Customer.phone == phone)
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    if query.first():
        raise ConflictError("Phone number already registered", code="PHONE_EXISTS")


def list_customers(search: str | None = None, page: int | None = None, per_page: int | None = None) -> dict:
    query = db.session.query(Customer)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Customer.name.ilike(pattern), Customer.phone.ilike(pattern)))
    query = query.order_by(Customer.name.asc(), Customer.id.asc())
    return paginate(query, page, per_page, lambda c: c.to_dict())


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError("Customer not found", code="CUSTOMER_NOT_FOUND")
    return customer


def create_customer(payload: dict) -> Customer:
    patch = _normalize(validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False))
    _check_phone_unique(patch.get("phone"))
    customer = Customer(**patch)
    customer.customer_type = customer.customer_type or "regular"
    customer.status = customer.status or "ACTIVE"
    customer.total_points = 0
    customer.total_spending = 0
    customer.tier_level = loyalty_service.compute_tier(0, loyalty_service.get_settings())
    db.session.add(customer)
    db.session.commit()
    return customer


def update_customer(customer_id: int, payload: dict) -> Customer:
    customer = get_customer(customer_id)
    patch = _normalize(validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True))
    if "phone" in patch:
        _check_phone_unique(patch["phone"], exclude_id=customer.id)
    for key, value in patch.items():
        setattr(customer, key, value)
    db.session.commit()
    return customer

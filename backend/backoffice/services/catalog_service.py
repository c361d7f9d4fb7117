# Overview: Active-entity lookups (supplier, location, product) scoped to a tenant.

from __future__ import annotations

from typing import Iterable

from ..errors import NotFoundError, ValidationFailedError
from ..extensions import db
from ..models import Location, Product, Supplier


def get_active_supplier(tenant_id: int, supplier_id: int) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id, tenant_id=tenant_id, is_active=True).first()
    if supplier is None:
        raise NotFoundError(f"Active supplier with ID {supplier_id} not found", {"supplier_id": supplier_id})
    return supplier


def get_active_location(tenant_id: int, location_id: int) -> Location:
    location = db.session.query(Location).filter_by(id=location_id, tenant_id=tenant_id, is_active=True).first()
    if location is None:
        raise NotFoundError(f"Active location with ID {location_id} not found", {"location_id": location_id})
    return location


def load_active_products(tenant_id: int, product_ids: Iterable[int]) -> dict[int, Product]:
    """
    Resolve every id to an active product of the tenant.

    Raises ValidationFailedError naming all ids that are missing, inactive
    or owned by another tenant (the three cases are not distinguished).
    """
    wanted = sorted(set(product_ids))
    if not wanted:
        return {}
    products = (
        db.session.query(Product)
        .filter(Product.tenant_id == tenant_id, Product.is_active.is_(True), Product.id.in_(wanted))
        .all()
    )
    by_id = {product.id: product for product in products}
    missing = [product_id for product_id in wanted if product_id not in by_id]
    if missing:
        raise ValidationFailedError(
            f"Invalid or inactive product IDs: {', '.join(str(m) for m in missing)}",
            {"missing_product_ids": missing},
        )
    return by_id

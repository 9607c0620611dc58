# Overview: Service-layer operations for the product catalog; listing, search and wholesale replacement.

from __future__ import annotations

import logging

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import InteractionProduct, Product
from ..permissions import can_upload_products
from ..validation import DependencyError
from . import change_feed, permission_service
from .import_service import ProductRecord

logger = logging.getLogger(__name__)


def list_products(search: str | None = None) -> list[Product]:
    """Catalog ordered by description; search matches code or description."""
    query = db.session.query(Product)
    term = (search or "").strip()
    if term:
        like = f"%{term}%"
        query = query.filter(or_(Product.description.ilike(like), Product.product_code.ilike(like)))
    try:
        return query.order_by(Product.description.asc(), Product.id.asc()).all()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Product listing failed")
        return []


def replace_catalog(context, records: list[ProductRecord]) -> int:
    """
    Replace the whole catalog with records. Returns the number inserted.

    Existing interaction links are detached first: product_id is cleared and
    the old catalog description is copied into custom_description, so past
    interactions keep displaying what was sold. All of it is one transaction.
    """
    permission_service.require(
        can_upload_products(context.role), actor_id=context.actor_id, action="UPLOAD_PRODUCTS"
    )

    try:
        linked = (
            db.session.query(InteractionProduct)
            .filter(InteractionProduct.product_id.isnot(None))
            .all()
        )
        for link in linked:
            if link.product is not None and not link.custom_description:
                link.custom_description = link.product.description
            link.product_id = None
            link.product = None
        db.session.flush()

        db.session.query(Product).delete(synchronize_session=False)
        db.session.add_all([
            Product(
                product_code=record.product_code,
                description=record.description,
                cost_price_cents=record.cost_price_cents,
                sale_price_cents=record.sale_price_cents,
            )
            for record in records
        ])
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Catalog replacement failed")
        raise DependencyError("Could not replace the product catalog") from exc

    change_feed.drain()
    permission_service.log_security_event(
        context.actor_id,
        "CATALOG_REPLACED",
        True,
        action="UPLOAD_PRODUCTS",
        reason=f"Detached {len(linked)} links; inserted {len(records)} products",
    )
    return len(records)

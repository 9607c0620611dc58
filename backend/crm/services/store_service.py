from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Store
from ..permissions import can_manage_stores
from ..validation import DependencyError, ModelValidationPolicy, validate_payload
from . import change_feed, permission_service
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)

STORE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "address"},
    required_on_create={"name"},
)


def create_store(context, name: str, address: str | None = None) -> Store:
    permission_service.require(
        can_manage_stores(context.role), actor_id=context.actor_id, action="CREATE_STORE"
    )
    patch = validate_payload(
        model=Store,
        payload={"name": name, "address": address},
        policy=STORE_POLICY,
        partial=False,
    )

    def _op():
        store = Store(**patch)
        db.session.add(store)
        db.session.commit()
        return store

    try:
        store = run_with_retry(_op)
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Store creation failed")
        raise DependencyError("Could not create store") from exc

    change_feed.drain()
    return store


def list_stores() -> list[Store]:
    try:
        return db.session.query(Store).order_by(Store.name.asc(), Store.id.asc()).all()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Store listing failed")
        return []

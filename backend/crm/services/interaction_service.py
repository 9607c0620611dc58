# Overview: Service-layer operations for interactions; creation rules, scoped listing and stats.

"""
Interaction Lifecycle

Interactions are created once in one of three statuses and never edited.
Status decides which optional fields survive:

    status  | reason            | monetary value
    --------+-------------------+---------------
    Lost    | optional (enum)   | dropped
    Closed  | dropped           | optional (>= 0)
    Quoted  | dropped           | optional (>= 0)

Product references are catalog ids (deduplicated, first wins) or free-text
custom entries (never deduplicated). The interaction row and all its links
commit together or not at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Interaction, InteractionProduct, InteractionStatus, LossReason, Product
from ..time_utils import utcnow
from ..validation import (
    ValidationError,
    NotFoundError,
    DependencyError,
    require_text,
    parse_amount_cents,
)
from . import change_feed
from .session_service import current_store_id
from .visibility_service import InteractionFilters, scope_for, scoped_query

logger = logging.getLogger(__name__)

VALUE_STATUSES = frozenset({InteractionStatus.CLOSED, InteractionStatus.QUOTED})


@dataclass(frozen=True)
class ProductRef:
    product_id: int | None = None
    custom_description: str | None = None

    @property
    def is_custom(self) -> bool:
        return self.product_id is None


def _parse_product_ref(item) -> ProductRef:
    if isinstance(item, bool):
        raise ValidationError("Invalid product reference")
    if isinstance(item, int):
        return ProductRef(product_id=item)
    if isinstance(item, str):
        text = item.strip()
        if text.isdigit():
            return ProductRef(product_id=int(text))
        raise ValidationError("Product references must be ids or objects")
    if isinstance(item, Mapping):
        if item.get("is_custom") or item.get("custom_description") is not None:
            text = item.get("custom_description") or item.get("description")
            return ProductRef(custom_description=require_text(text, "custom product description"))
        product_id = item.get("product_id", item.get("id"))
        if isinstance(product_id, int) and not isinstance(product_id, bool):
            return ProductRef(product_id=product_id)
        if isinstance(product_id, str) and product_id.strip().isdigit():
            return ProductRef(product_id=int(product_id.strip()))
    raise ValidationError("Invalid product reference")


def dedupe_product_refs(refs: list[ProductRef]) -> list[ProductRef]:
    """Drop repeated catalog ids (first occurrence wins); keep every custom entry."""
    seen: set[int] = set()
    result = []
    for ref in refs:
        if ref.is_custom:
            result.append(ref)
            continue
        if ref.product_id in seen:
            continue
        seen.add(ref.product_id)
        result.append(ref)
    return result


@dataclass(frozen=True)
class InteractionDraft:
    """A validated, normalized creation request."""
    client_name: str
    description: str
    status: InteractionStatus
    reason: LossReason | None = None
    monetary_value_cents: int | None = None
    products: list[ProductRef] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Mapping) -> "InteractionDraft":
        if payload is None or not isinstance(payload, Mapping):
            raise ValidationError("Invalid JSON payload")

        client_name = require_text(payload.get("client_name"), "client_name", max_length=200)
        description = require_text(payload.get("description"), "description")

        raw_status = payload.get("status")
        try:
            status = InteractionStatus(str(raw_status).strip()) if raw_status is not None else None
        except ValueError:
            status = None
        if status is None:
            allowed = ", ".join(s.value for s in InteractionStatus)
            raise ValidationError(f"status must be one of: {allowed}")

        reason = None
        if status == InteractionStatus.LOST:
            raw_reason = payload.get("reason")
            if raw_reason not in (None, ""):
                try:
                    reason = LossReason(str(raw_reason).strip())
                except ValueError:
                    allowed = ", ".join(r.value for r in LossReason)
                    raise ValidationError(f"reason must be one of: {allowed}")

        monetary_value_cents = None
        if status in VALUE_STATUSES:
            monetary_value_cents = parse_amount_cents(payload.get("monetary_value"), "monetary_value")

        raw_products = payload.get("products") or []
        if not isinstance(raw_products, list):
            raise ValidationError("products must be a list")
        products = dedupe_product_refs([_parse_product_ref(item) for item in raw_products])

        return cls(
            client_name=client_name,
            description=description,
            status=status,
            reason=reason,
            monetary_value_cents=monetary_value_cents,
            products=products,
        )


def create_interaction(context, draft: InteractionDraft | Mapping) -> Interaction:
    """
    Persist an interaction for the acting user.

    The store is the actor's assignment at this moment; later reassignment
    does not touch rows already written.

    Raises:
        ValidationError: invalid payload
        NotFoundError: a catalog product id does not exist
        DependencyError: storage failure (nothing is persisted)
    """
    if not isinstance(draft, InteractionDraft):
        draft = InteractionDraft.from_payload(draft)

    catalog_ids = [ref.product_id for ref in draft.products if not ref.is_custom]
    if catalog_ids:
        found = {
            row[0] for row in db.session.query(Product.id).filter(Product.id.in_(catalog_ids)).all()
        }
        missing = [pid for pid in catalog_ids if pid not in found]
        if missing:
            raise NotFoundError(f"Product not found: {missing[0]}")

    try:
        interaction = Interaction(
            client_name=draft.client_name,
            description=draft.description,
            status=draft.status,
            reason=draft.reason,
            monetary_value_cents=draft.monetary_value_cents,
            user_id=context.actor_id,
            store_id=current_store_id(context.actor_id),
            created_at=utcnow(),
        )
        db.session.add(interaction)
        db.session.flush()

        for ref in draft.products:
            db.session.add(InteractionProduct(
                interaction_id=interaction.id,
                product_id=ref.product_id,
                is_custom=ref.is_custom,
                custom_description=ref.custom_description,
            ))

        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Interaction creation failed for actor %s", context.actor_id)
        raise DependencyError("Could not save interaction") from exc

    change_feed.drain()
    return interaction


def list_interactions(context, filters: InteractionFilters | None = None) -> list[Interaction]:
    """
    Interactions visible to the actor, newest first.

    Storage failures degrade to an empty list (logged) rather than an error.
    """
    try:
        return scoped_query(context, filters).all()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Interaction listing failed for actor %s", context.actor_id)
        return []


def get_interaction(context, interaction_id: int) -> Interaction:
    """One interaction, if it exists AND is inside the actor's scope."""
    interaction = db.session.get(Interaction, interaction_id)
    if interaction is None or not scope_for(context).allows(interaction):
        raise NotFoundError("Interaction not found")
    return interaction


def compute_stats(interactions: list[Interaction]) -> dict:
    """
    Aggregates over an already-scoped result set.

    closing_rate is a percentage rounded to one decimal; both it and
    average_deal_value are 0 when there is nothing to divide by.
    """
    total = len(interactions)
    closed = [i for i in interactions if i.status == InteractionStatus.CLOSED]
    lost = [i for i in interactions if i.status == InteractionStatus.LOST]
    quoted = [i for i in interactions if i.status == InteractionStatus.QUOTED]

    closed_revenue_cents = sum(i.monetary_value_cents or 0 for i in closed)
    quoted_pipeline_cents = sum(i.monetary_value_cents or 0 for i in quoted)

    closing_rate = round(len(closed) / total * 100, 1) if total else 0
    average_deal_value = round(closed_revenue_cents / len(closed) / 100, 2) if closed else 0

    return {
        "total_interactions": total,
        "closed_deals": len(closed),
        "lost_deals": len(lost),
        "quoted_deals": len(quoted),
        "closed_revenue": closed_revenue_cents / 100,
        "quoted_pipeline": quoted_pipeline_cents / 100,
        "closing_rate": closing_rate,
        "average_deal_value": average_deal_value,
    }


def interaction_stats(context, filters: InteractionFilters | None = None) -> dict:
    return compute_stats(list_interactions(context, filters))

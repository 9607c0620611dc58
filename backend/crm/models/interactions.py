from __future__ import annotations

from enum import Enum

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import cents_to_amount


class InteractionStatus(str, Enum):
    QUOTED = "Quoted"
    CLOSED = "Closed"
    LOST = "Lost"


class LossReason(str, Enum):
    LACK_OF_PRODUCT = "Lack of product"
    STOCK_ERROR = "Stock Error"
    DELAY = "Delay"
    PRICE = "Price"
    OTHER = "Other"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Interaction(db.Model):
    """
    A logged client engagement.

    Written once, never updated:
    - reason is only stored for Lost
    - monetary value is only stored for Closed / Quoted
    - store_id is the creator's assignment at creation time
    """
    __tablename__ = "interactions"
    __table_args__ = (
        db.Index("ix_interactions_store_created", "store_id", "created_at"),
        db.Index("ix_interactions_user_created", "user_id", "created_at"),
        db.CheckConstraint(
            "reason IS NULL OR status = 'Lost'", name="ck_interactions_reason_lost_only"
        ),
        db.CheckConstraint(
            "monetary_value_cents IS NULL OR status != 'Lost'", name="ck_interactions_value_not_lost"
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    status = db.Column(
        db.Enum(InteractionStatus, name="interaction_status", native_enum=False,
                values_callable=_enum_values, length=16),
        nullable=False,
    )
    reason = db.Column(
        db.Enum(LossReason, name="loss_reason", native_enum=False,
                values_callable=_enum_values, length=32),
        nullable=True,
    )
    monetary_value_cents = db.Column(db.Integer, nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    creator = db.relationship("Profile", lazy="joined")
    store = db.relationship("Store", lazy="joined")
    product_links = db.relationship(
        "InteractionProduct",
        back_populates="interaction",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="InteractionProduct.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_name": self.client_name,
            "description": self.description,
            "status": self.status.value,
            "reason": self.reason.value if self.reason else None,
            "monetary_value": cents_to_amount(self.monetary_value_cents),
            "user_id": self.user_id,
            "store_id": self.store_id,
            "created_at": to_utc_z(self.created_at),
            "creator": {
                "full_name": self.creator.full_name,
                "username": self.creator.username,
            } if self.creator else None,
            "store_name": self.store.name if self.store else None,
            "products": [link.to_dict() for link in self.product_links],
        }


class InteractionProduct(db.Model):
    """
    Interaction to product link.

    Custom links carry free text and no catalog reference. Catalog links whose
    product was removed by a catalog replacement keep the old description in
    custom_description with product_id cleared.
    """
    __tablename__ = "interaction_products"
    __table_args__ = (
        db.CheckConstraint(
            "NOT is_custom OR product_id IS NULL", name="ck_interaction_products_custom_no_ref"
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    interaction_id = db.Column(db.Integer, db.ForeignKey("interactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    is_custom = db.Column(db.Boolean, nullable=False, default=False)
    custom_description = db.Column(db.Text, nullable=True)

    interaction = db.relationship("Interaction", back_populates="product_links")
    product = db.relationship("Product", lazy="joined")

    @property
    def display_description(self) -> str | None:
        if self.product is not None:
            return self.product.description
        return self.custom_description

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "is_custom": self.is_custom,
            "description": self.display_description,
        }

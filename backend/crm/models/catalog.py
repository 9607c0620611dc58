from __future__ import annotations

from ..extensions import db
from ..validation import cents_to_amount


class Product(db.Model):
    """Global catalog product. Not store-scoped; replaced wholesale on upload."""
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_code = db.Column(db.String(64), nullable=False, default="", index=True)
    description = db.Column(db.Text, nullable=False, default="")
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    sale_price_cents = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_code": self.product_code,
            "description": self.description,
            "cost_price": cents_to_amount(self.cost_price_cents),
            "sale_price": cents_to_amount(self.sale_price_cents),
        }

from __future__ import annotations

from ..extensions import db
from ..permissions import Role
from ..time_utils import to_utc_z


class Store(db.Model):
    """A physical store. Actors and interactions reference it weakly."""
    __tablename__ = "stores"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "created_at": to_utc_z(self.created_at),
        }


class Profile(db.Model):
    """
    CRM actor: one role, at most one store (via user_stores).

    The role column only admits the four enumerated values.
    """
    __tablename__ = "profiles"

    id = db.Column(db.Integer, db.ForeignKey("identities.id"), primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    full_name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)
    role = db.Column(
        db.Enum(Role, name="profile_role", native_enum=False, create_constraint=True, length=16),
        nullable=False,
        default=Role.SALESPERSON,
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    identity = db.relationship("Identity", backref=db.backref("profile", uselist=False, lazy=True))
    store_assignment = db.relationship("UserStore", uselist=False, lazy="joined", viewonly=True)

    @property
    def store_id(self) -> int | None:
        return self.store_assignment.store_id if self.store_assignment else None

    def to_dict(self) -> dict:
        store = self.store_assignment.store if self.store_assignment else None
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "email": self.email,
            "role": self.role.value,
            "store_id": store.id if store else None,
            "store_name": store.name if store else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class UserStore(db.Model):
    """
    Store assignment. At most one row per user: reassignment replaces it.
    """
    __tablename__ = "user_stores"
    __table_args__ = (
        db.UniqueConstraint("user_id", name="uq_user_stores_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    store = db.relationship("Store", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "store_id": self.store_id,
            "assigned_at": to_utc_z(self.assigned_at),
        }

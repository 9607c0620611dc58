# Overview: Interaction visibility scope per role, plus the optional list filters.

"""
Visibility Filter

compute_scope() maps (role, actor id, store assignment) to the set of
interaction rows the actor may read:

- SALESPERSON: own interactions only
- MANAGER: interactions of the assigned store; NO store means NO rows
  (fail closed, never fail open)
- BOARD / ADMIN: everything

Optional filters (status, inclusive day range, store, owner, loss reason)
are ANDed onto the scope, so a filter can only narrow what the role already
allows. A salesperson asking for user_id=<someone else> gets nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Mapping

from sqlalchemy import false

from ..extensions import db
from ..models import Interaction, InteractionStatus, LossReason
from ..permissions import Role
from ..time_utils import parse_iso_date, start_of_day, end_of_day
from ..validation import ValidationError

SCOPE_OWN = "own"
SCOPE_STORE = "store"
SCOPE_ALL = "all"
SCOPE_NONE = "none"


@dataclass(frozen=True)
class InteractionScope:
    kind: str
    user_id: int | None = None
    store_id: int | None = None

    @property
    def is_empty(self) -> bool:
        return self.kind == SCOPE_NONE

    def allows(self, interaction: Interaction) -> bool:
        if self.kind == SCOPE_ALL:
            return True
        if self.kind == SCOPE_OWN:
            return interaction.user_id == self.user_id
        if self.kind == SCOPE_STORE:
            return interaction.store_id is not None and interaction.store_id == self.store_id
        return False


def compute_scope(role: Role, actor_id: int, store_id: int | None) -> InteractionScope:
    if role == Role.SALESPERSON:
        return InteractionScope(SCOPE_OWN, user_id=actor_id)
    if role == Role.MANAGER:
        if store_id is None:
            return InteractionScope(SCOPE_NONE)
        return InteractionScope(SCOPE_STORE, store_id=store_id)
    if role in (Role.BOARD, Role.ADMIN):
        return InteractionScope(SCOPE_ALL)
    # Unknown roles see nothing
    return InteractionScope(SCOPE_NONE)


def scope_for(context) -> InteractionScope:
    return compute_scope(context.role, context.actor_id, context.store_id)


def _parse_enum(enum_cls, value, field: str):
    if value is None or value == "":
        return None
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}")


def _parse_id(value, field: str) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    text = str(value).strip()
    if not text.isdigit():
        raise ValidationError(f"{field} must be an integer")
    return int(text)


def _parse_day(value, field: str) -> date | None:
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)")


@dataclass(frozen=True)
class InteractionFilters:
    status: InteractionStatus | None = None
    start_date: date | None = None
    end_date: date | None = None
    store_id: int | None = None
    user_id: int | None = None
    reason: LossReason | None = None

    @classmethod
    def from_mapping(cls, args: Mapping | None) -> "InteractionFilters":
        """Parse query-string style values; blank values mean "no filter"."""
        args = args or {}
        return cls(
            status=_parse_enum(InteractionStatus, args.get("status"), "status"),
            start_date=_parse_day(args.get("start_date"), "start_date"),
            end_date=_parse_day(args.get("end_date"), "end_date"),
            store_id=_parse_id(args.get("store_id"), "store_id"),
            user_id=_parse_id(args.get("user_id"), "user_id"),
            reason=_parse_enum(LossReason, args.get("reason"), "reason"),
        )


def apply_scope(query, scope: InteractionScope):
    if scope.kind == SCOPE_ALL:
        return query
    if scope.kind == SCOPE_OWN:
        return query.filter(Interaction.user_id == scope.user_id)
    if scope.kind == SCOPE_STORE:
        return query.filter(Interaction.store_id == scope.store_id)
    return query.filter(false())


def apply_filters(query, filters: InteractionFilters):
    if filters.status is not None:
        query = query.filter(Interaction.status == filters.status)
    if filters.start_date is not None:
        query = query.filter(Interaction.created_at >= start_of_day(filters.start_date))
    if filters.end_date is not None:
        query = query.filter(Interaction.created_at <= end_of_day(filters.end_date))
    if filters.store_id is not None:
        query = query.filter(Interaction.store_id == filters.store_id)
    if filters.user_id is not None:
        query = query.filter(Interaction.user_id == filters.user_id)
    if filters.reason is not None:
        query = query.filter(Interaction.reason == filters.reason)
    return query


def scoped_query(context, filters: InteractionFilters | None = None):
    """Interactions visible to the actor, narrowed by filters, newest first."""
    query = apply_scope(db.session.query(Interaction), scope_for(context))
    if filters is not None:
        query = apply_filters(query, filters)
    return query.order_by(Interaction.created_at.desc(), Interaction.id.desc())

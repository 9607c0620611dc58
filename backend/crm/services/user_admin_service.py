# Overview: Service-layer operations for user administration; accounts, roles, store assignment, deletion.

"""
User / Store Administration

Orchestrates account creation, role transitions, password resets, store
(re)assignment and deletion. Each operation re-checks Role Policy itself;
route decorators and client-side gating are conveniences, not the boundary.

Rules that the policy predicates deliberately leave out:
- nobody changes their own role (the policy alone would let ADMIN do it)
- nobody deletes their own account
- BOARD creates SALESPERSON or MANAGER accounts only; any other requested
  role falls back to SALESPERSON
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Interaction, Profile, Store, UserStore
from ..permissions import (
    Role,
    UnknownRoleError,
    parse_role,
    can_manage_users,
    can_update_role,
    can_change_password,
    can_delete_users,
    can_assign_role_on_create,
    selectable_roles,
)
from ..time_utils import utcnow
from ..validation import ValidationError, NotFoundError, DependencyError
from . import auth_service, change_feed, permission_service, session_service
from .concurrency import lock_for_update
from .permission_service import PermissionDeniedError

logger = logging.getLogger(__name__)


class PartialDeletionError(DependencyError):
    """
    Cascade cleanup committed but the identity could not be removed.

    The user's interactions and store assignment are gone while the account
    still exists. Retrying the deletion finishes the job.
    """

    def __init__(self, message: str, *, user_id: int, interactions_deleted: int):
        super().__init__(message)
        self.user_id = user_id
        self.interactions_deleted = interactions_deleted


def _parse_role_input(value) -> Role:
    try:
        return parse_role(value)
    except UnknownRoleError as exc:
        raise ValidationError(str(exc)) from exc


def _get_profile(user_id: int) -> Profile:
    profile = db.session.get(Profile, user_id)
    if not profile:
        raise NotFoundError("User not found")
    return profile


def _require_manage_users(context, action: str, target_id: int | None = None) -> None:
    permission_service.require(
        can_manage_users(context.role), actor_id=context.actor_id, action=action, target_id=target_id
    )


def list_users(context) -> list[Profile]:
    _require_manage_users(context, "LIST_USERS")
    try:
        return db.session.query(Profile).order_by(Profile.username.asc()).all()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("User listing failed")
        return []


def create_user(
    context,
    *,
    username: str,
    full_name: str,
    email: str,
    password: str,
    role=None,
    store_id: int | None = None,
) -> Profile:
    """
    Create an account (identity + profile), optionally assigned to a store.

    Raises ValidationError, ConflictError (duplicate username/email),
    NotFoundError (store), PermissionDeniedError, DependencyError.
    """
    _require_manage_users(context, "CREATE_USER")

    requested = _parse_role_input(role) if role not in (None, "") else Role.SALESPERSON
    granted = requested
    if not can_assign_role_on_create(context.role, requested):
        granted = Role.SALESPERSON
        permission_service.log_security_event(
            context.actor_id,
            "ROLE_CEILING_APPLIED",
            True,
            action="CREATE_USER",
            reason=f"{context.role.value} requested {requested.value}; created as {granted.value}",
        )

    profile = auth_service.sign_up(
        email,
        password,
        {"username": username, "full_name": full_name, "role": granted.value},
        store_id=store_id,
    )
    change_feed.drain()

    permission_service.log_security_event(
        context.actor_id,
        "USER_CREATED",
        True,
        target_id=profile.id,
        action="CREATE_USER",
        reason=f"Created {profile.username} as {profile.role.value}",
    )
    return profile


def assignable_roles(context, target_id: int) -> list[Role]:
    """Roles the actor may pick for the target right now (empty for self)."""
    _require_manage_users(context, "VIEW_ASSIGNABLE_ROLES", target_id)
    target = _get_profile(target_id)
    if target.id == context.actor_id:
        return []
    return selectable_roles(context.role, Role(target.role))


def update_role(context, target_id: int, new_role) -> Profile:
    _require_manage_users(context, "UPDATE_ROLE", target_id)
    new_role = _parse_role_input(new_role)

    target = lock_for_update(db.session.query(Profile).filter(Profile.id == target_id)).first()
    if not target:
        raise NotFoundError("User not found")

    if target.id == context.actor_id:
        permission_service.require(
            False,
            actor_id=context.actor_id,
            action="UPDATE_ROLE",
            target_id=target_id,
            reason="You cannot change your own role",
        )

    current_role = Role(target.role)
    permission_service.require(
        can_update_role(context.role, current_role, new_role),
        actor_id=context.actor_id,
        action="UPDATE_ROLE",
        target_id=target_id,
        reason=f"{context.role.value} may not change {current_role.value} to {new_role.value}",
    )

    try:
        target.role = new_role
        target.updated_at = utcnow()
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Role update failed for user %s", target_id)
        raise DependencyError("Could not update role") from exc

    change_feed.drain()
    permission_service.log_security_event(
        context.actor_id,
        "ROLE_CHANGED",
        True,
        target_id=target_id,
        action="UPDATE_ROLE",
        reason=f"{current_role.value} -> {new_role.value}",
    )
    return target


def update_store_assignment(context, target_id: int, store_id: int | None) -> UserStore | None:
    """
    Replace the target's store assignment. store_id=None leaves them unassigned.

    Concurrent reassignments are last-write-wins.
    """
    _require_manage_users(context, "UPDATE_STORE_ASSIGNMENT", target_id)
    _get_profile(target_id)

    if store_id is not None and db.session.get(Store, store_id) is None:
        raise NotFoundError("Store not found")

    try:
        # Bulk delete runs immediately, ahead of the insert below
        db.session.query(UserStore).filter(UserStore.user_id == target_id).delete(
            synchronize_session=False
        )
        assignment = None
        if store_id is not None:
            assignment = UserStore(user_id=target_id, store_id=store_id)
            db.session.add(assignment)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Store assignment failed for user %s", target_id)
        raise DependencyError("Could not update store assignment") from exc

    change_feed.drain()
    permission_service.log_security_event(
        context.actor_id,
        "STORE_ASSIGNMENT_CHANGED",
        True,
        target_id=target_id,
        action="UPDATE_STORE_ASSIGNMENT",
        reason=f"store_id={store_id}",
    )
    return assignment


def change_password(context, target_id: int, new_password: str) -> int:
    """
    Privileged password reset. Returns the number of the target's sessions revoked.

    ADMIN may reset anyone; BOARD only MANAGER and SALESPERSON accounts.
    """
    target = _get_profile(target_id)
    permission_service.require(
        can_change_password(context.role, Role(target.role)),
        actor_id=context.actor_id,
        action="CHANGE_PASSWORD",
        target_id=target_id,
    )

    auth_service.set_password(target_id, new_password)
    revoked = session_service.revoke_all_sessions(target_id, reason="Password reset by administrator")
    change_feed.feed.close_owner(target_id)

    permission_service.log_security_event(
        context.actor_id,
        "PASSWORD_RESET",
        True,
        target_id=target_id,
        action="CHANGE_PASSWORD",
        reason=f"Revoked {revoked} sessions",
    )
    return revoked


def _cascade_cleanup(target_id: int) -> int:
    # Product links go with their interaction (delete-orphan cascade)
    interactions = db.session.query(Interaction).filter(Interaction.user_id == target_id).all()
    for interaction in interactions:
        db.session.delete(interaction)
    db.session.query(UserStore).filter(UserStore.user_id == target_id).delete(synchronize_session=False)
    db.session.commit()
    return len(interactions)


def delete_user(context, target_id: int) -> dict:
    """
    Privileged cascade delete (ADMIN only).

    Phase 1 removes the user's interactions (with their product links) and
    store assignment in one commit. Phase 2 removes sessions, profile and
    identity. A phase-2 failure raises PartialDeletionError so callers can
    tell "nothing happened" (DependencyError) apart from "data removed,
    account still present".
    """
    permission_service.require(
        can_delete_users(context.role), actor_id=context.actor_id, action="DELETE_USER", target_id=target_id
    )
    target = _get_profile(target_id)
    if target.id == context.actor_id:
        raise PermissionDeniedError("You cannot delete your own account")
    username = target.username

    try:
        interactions_deleted = _cascade_cleanup(target_id)
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Cascade cleanup failed for user %s", target_id)
        raise DependencyError("Could not delete user data") from exc
    change_feed.drain()

    try:
        auth_service.delete_identity(target_id)
    except DependencyError as exc:
        permission_service.log_security_event(
            context.actor_id,
            "USER_DELETE_PARTIAL",
            False,
            target_id=target_id,
            action="DELETE_USER",
            reason=f"Removed {interactions_deleted} interactions; account removal failed",
        )
        raise PartialDeletionError(
            "User data was removed but the account could not be deleted",
            user_id=target_id,
            interactions_deleted=interactions_deleted,
        ) from exc
    change_feed.drain()
    change_feed.feed.close_owner(target_id)

    permission_service.log_security_event(
        context.actor_id,
        "USER_DELETED",
        True,
        target_id=target_id,
        action="DELETE_USER",
        reason=f"Deleted {username} and {interactions_deleted} interactions",
    )
    return {"user_id": target_id, "username": username, "interactions_deleted": interactions_deleted}

"""
User and store administration tests.

Covers account creation (including the BOARD role ceiling), role changes,
store reassignment, privileged password resets and cascade deletion.
"""

import pytest

from crm.extensions import db
from crm.models import (
    Identity, Interaction, InteractionProduct, Profile, SecurityEvent, SessionToken, Store, UserStore,
)
from crm.permissions import Role
from crm.services import auth_service, interaction_service, session_service, store_service, user_admin_service
from crm.services.permission_service import PermissionDeniedError
from crm.services.user_admin_service import PartialDeletionError
from crm.validation import ValidationError, ConflictError, NotFoundError, DependencyError
from conftest import PASSWORD, context


def _new_user(**overrides):
    data = {
        "username": "new_hire",
        "full_name": "New Hire",
        "email": "New.Hire@CRM.test",
        "password": "Str0ng!Pass",
    }
    data.update(overrides)
    return data


class TestCreateUser:

    def test_admin_creates_any_role_with_store(self, db_session, admin, store_a):
        profile = user_admin_service.create_user(
            context(admin), **_new_user(role="board", store_id=store_a.id)
        )
        assert profile.role is Role.BOARD
        assert profile.email == "new.hire@crm.test"
        assert profile.to_dict()["store_name"] == "North Store"
        assert db_session.get(Identity, profile.id) is not None

    def test_default_role_is_salesperson(self, db_session, admin):
        profile = user_admin_service.create_user(context(admin), **_new_user())
        assert profile.role is Role.SALESPERSON

    @pytest.mark.parametrize("requested", ["BOARD", "ADMIN"])
    def test_board_ceiling_falls_back_to_salesperson(self, db_session, board, requested):
        profile = user_admin_service.create_user(context(board), **_new_user(role=requested))
        assert profile.role is Role.SALESPERSON
        event = db_session.query(SecurityEvent).filter_by(event_type="ROLE_CEILING_APPLIED").one()
        assert event.actor_id == board.id

    def test_board_may_create_manager(self, db_session, board):
        profile = user_admin_service.create_user(context(board), **_new_user(role="MANAGER"))
        assert profile.role is Role.MANAGER

    @pytest.mark.parametrize("fixture_name", ["manager_a", "sales_a"])
    def test_lower_roles_denied(self, request, db_session, fixture_name):
        actor = request.getfixturevalue(fixture_name)
        with pytest.raises(PermissionDeniedError):
            user_admin_service.create_user(context(actor), **_new_user())
        assert db_session.query(Profile).filter_by(username="new_hire").first() is None

    def test_duplicate_username_conflicts(self, db_session, admin, sales_a):
        with pytest.raises(ConflictError):
            user_admin_service.create_user(context(admin), **_new_user(username="sales_a"))

    def test_duplicate_email_conflicts(self, db_session, admin, sales_a):
        with pytest.raises(ConflictError):
            user_admin_service.create_user(context(admin), **_new_user(email="SALES_A@crm.test"))

    def test_unknown_role_rejected(self, db_session, admin):
        with pytest.raises(ValidationError):
            user_admin_service.create_user(context(admin), **_new_user(role="owner"))

    def test_weak_password_rejected(self, db_session, admin):
        with pytest.raises(ValidationError):
            user_admin_service.create_user(context(admin), **_new_user(password="short"))

    def test_missing_store_not_found(self, db_session, admin):
        with pytest.raises(NotFoundError):
            user_admin_service.create_user(context(admin), **_new_user(store_id=424242))
        assert db_session.query(Identity).filter_by(email="new.hire@crm.test").first() is None


class TestUpdateRole:

    def test_board_promotes_salesperson(self, db_session, board, sales_a):
        before = db_session.get(Profile, sales_a.id).updated_at
        profile = user_admin_service.update_role(context(board), sales_a.id, "MANAGER")
        assert profile.role is Role.MANAGER
        assert profile.updated_at >= before

    @pytest.mark.parametrize("new_role", ["BOARD", "ADMIN", "SALESPERSON"])
    def test_board_other_transitions_denied(self, db_session, board, manager_a, new_role):
        with pytest.raises(PermissionDeniedError):
            user_admin_service.update_role(context(board), manager_a.id, new_role)
        assert db_session.get(Profile, manager_a.id).role is Role.MANAGER

    def test_admin_any_transition(self, db_session, admin, board):
        assert user_admin_service.update_role(context(admin), board.id, "SALESPERSON").role is Role.SALESPERSON

    def test_self_change_blocked_even_for_admin(self, db_session, admin):
        with pytest.raises(PermissionDeniedError):
            user_admin_service.update_role(context(admin), admin.id, "BOARD")
        assert db_session.get(Profile, admin.id).role is Role.ADMIN

    def test_unknown_target(self, db_session, admin):
        with pytest.raises(NotFoundError):
            user_admin_service.update_role(context(admin), 999999, "BOARD")

    def test_new_role_applies_to_next_context(self, db_session, admin, sales_a):
        user_admin_service.update_role(context(admin), sales_a.id, "BOARD")
        assert context(sales_a).role is Role.BOARD

    def test_denial_is_logged(self, db_session, manager_a, sales_a):
        with pytest.raises(PermissionDeniedError):
            user_admin_service.update_role(context(manager_a), sales_a.id, "MANAGER")
        event = db_session.query(SecurityEvent).filter_by(event_type="PERMISSION_DENIED").one()
        assert event.action == "UPDATE_ROLE"
        assert event.success is False

    def test_assignable_roles(self, db_session, board, admin, sales_a, manager_a):
        assert user_admin_service.assignable_roles(context(board), sales_a.id) == [Role.MANAGER]
        assert user_admin_service.assignable_roles(context(board), manager_a.id) == []
        assert user_admin_service.assignable_roles(context(admin), admin.id) == []


class TestStoreAssignment:

    def test_reassign_replaces_single_assignment(self, db_session, board, sales_a, store_b):
        user_admin_service.update_store_assignment(context(board), sales_a.id, store_b.id)
        rows = db_session.query(UserStore).filter_by(user_id=sales_a.id).all()
        assert [r.store_id for r in rows] == [store_b.id]
        assert context(sales_a).store_id == store_b.id

    def test_unassign(self, db_session, board, manager_a):
        assert user_admin_service.update_store_assignment(context(board), manager_a.id, None) is None
        assert db_session.query(UserStore).filter_by(user_id=manager_a.id).count() == 0
        assert context(manager_a).store_id is None

    def test_assign_previously_unassigned(self, db_session, admin, manager_unassigned, store_a):
        user_admin_service.update_store_assignment(context(admin), manager_unassigned.id, store_a.id)
        assert context(manager_unassigned).store_id == store_a.id

    def test_missing_store(self, db_session, admin, sales_a, store_a):
        with pytest.raises(NotFoundError):
            user_admin_service.update_store_assignment(context(admin), sales_a.id, 999999)
        assert context(sales_a).store_id == store_a.id

    def test_manager_denied(self, db_session, manager_a, sales_a, store_b):
        with pytest.raises(PermissionDeniedError):
            user_admin_service.update_store_assignment(context(manager_a), sales_a.id, store_b.id)


class TestChangePassword:

    def test_board_resets_salesperson_and_revokes_sessions(self, db_session, board, sales_a):
        _, token = session_service.create_session(sales_a.id)
        revoked = user_admin_service.change_password(context(board), sales_a.id, "N3w!Password")
        assert revoked == 1
        assert session_service.validate_session(token) is None
        assert auth_service.authenticate("sales_a", "N3w!Password").id == sales_a.id
        assert auth_service.authenticate("sales_a", PASSWORD) is None

    def test_board_cannot_reset_admin(self, db_session, board, admin):
        with pytest.raises(PermissionDeniedError):
            user_admin_service.change_password(context(board), admin.id, "N3w!Password")

    def test_weak_password(self, db_session, admin, sales_a):
        with pytest.raises(ValidationError):
            user_admin_service.change_password(context(admin), sales_a.id, "password")


class TestDeleteUser:

    def _give_history(self, user):
        ctx = context(user)
        for status in ("Quoted", "Closed"):
            interaction_service.create_interaction(ctx, {
                "client_name": "Client",
                "description": "Visit",
                "status": status,
                "products": [{"custom_description": "Sofa"}],
            })

    def test_cascade_delete(self, db_session, admin, sales_a, sales_b):
        self._give_history(sales_a)
        self._give_history(sales_b)
        session_service.create_session(sales_a.id)
        sales_a_id = sales_a.id

        result = user_admin_service.delete_user(context(admin), sales_a_id)

        assert result["interactions_deleted"] == 2
        assert db_session.query(Interaction).filter_by(user_id=sales_a_id).count() == 0
        assert db_session.query(Interaction).count() == 2
        assert db_session.query(InteractionProduct).count() == 2
        assert db_session.query(UserStore).filter_by(user_id=sales_a_id).first() is None
        assert db_session.query(SessionToken).filter_by(identity_id=sales_a_id).first() is None
        assert db_session.query(Profile).filter_by(id=sales_a_id).first() is None
        assert db_session.query(Identity).filter_by(id=sales_a_id).first() is None

    def test_board_cannot_delete(self, db_session, board, sales_a):
        with pytest.raises(PermissionDeniedError):
            user_admin_service.delete_user(context(board), sales_a.id)
        assert db_session.query(Profile).filter_by(id=sales_a.id).first() is not None

    def test_cannot_delete_self(self, db_session, admin):
        with pytest.raises(PermissionDeniedError):
            user_admin_service.delete_user(context(admin), admin.id)

    def test_unknown_user(self, db_session, admin):
        with pytest.raises(NotFoundError):
            user_admin_service.delete_user(context(admin), 999999)

    def test_identity_failure_is_partial(self, db_session, admin, sales_a, monkeypatch):
        self._give_history(sales_a)
        sales_a_id = sales_a.id

        def failing_delete_identity(identity_id):
            raise DependencyError("Could not remove account")

        monkeypatch.setattr(auth_service, "delete_identity", failing_delete_identity)
        with pytest.raises(PartialDeletionError) as exc_info:
            user_admin_service.delete_user(context(admin), sales_a_id)

        assert exc_info.value.interactions_deleted == 2
        assert db_session.query(Interaction).filter_by(user_id=sales_a_id).count() == 0
        assert db_session.query(Profile).filter_by(id=sales_a_id).first() is not None
        assert db_session.query(SecurityEvent).filter_by(event_type="USER_DELETE_PARTIAL").count() == 1

        # Retrying completes the deletion
        monkeypatch.undo()
        result = user_admin_service.delete_user(context(admin), sales_a_id)
        assert result["interactions_deleted"] == 0
        assert db_session.query(Profile).filter_by(id=sales_a_id).first() is None


class TestStores:

    def test_board_creates_store(self, db_session, board):
        store = store_service.create_store(context(board), "  East Store ", "")
        assert store.name == "East Store"
        assert store.address is None
        assert [s.name for s in store_service.list_stores()] == ["East Store"]

    def test_blank_name_rejected(self, db_session, admin):
        with pytest.raises(ValidationError):
            store_service.create_store(context(admin), "   ")

    def test_salesperson_denied(self, db_session, sales_a):
        with pytest.raises(PermissionDeniedError):
            store_service.create_store(context(sales_a), "Rogue Store")
        assert db_session.query(Store).filter_by(name="Rogue Store").first() is None

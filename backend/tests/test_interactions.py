"""
Interaction lifecycle tests.

Creation rules per status, product reference handling, atomicity,
store capture and statistics.
"""

import pytest
from sqlalchemy.exc import OperationalError

from crm.extensions import db
from crm.models import Interaction, InteractionProduct, InteractionStatus, LossReason
from crm.services import interaction_service
from crm.services.interaction_service import (
    InteractionDraft,
    ProductRef,
    compute_stats,
    dedupe_product_refs,
)
from crm.validation import ValidationError, NotFoundError, DependencyError
from conftest import context


def _payload(**overrides):
    payload = {
        "client_name": "Acme Interiors",
        "description": "Asked about dining sets",
        "status": "Quoted",
    }
    payload.update(overrides)
    return payload


class TestDraftValidation:

    @pytest.mark.parametrize("field", ["client_name", "description", "status"])
    def test_required_fields(self, field):
        payload = _payload()
        payload.pop(field)
        with pytest.raises(ValidationError):
            InteractionDraft.from_payload(payload)

    def test_blank_client_name_rejected(self):
        with pytest.raises(ValidationError):
            InteractionDraft.from_payload(_payload(client_name="   "))

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            InteractionDraft.from_payload(_payload(status="Won"))

    def test_reason_ignored_unless_lost(self):
        draft = InteractionDraft.from_payload(_payload(status="Closed", reason="Price", monetary_value=10))
        assert draft.reason is None

    def test_value_ignored_for_lost(self):
        draft = InteractionDraft.from_payload(_payload(status="Lost", reason="Delay", monetary_value=999))
        assert draft.monetary_value_cents is None
        assert draft.reason is LossReason.DELAY

    def test_lost_without_reason_is_allowed(self):
        draft = InteractionDraft.from_payload(_payload(status="Lost"))
        assert draft.reason is None

    def test_invalid_reason_rejected_for_lost(self):
        with pytest.raises(ValidationError):
            InteractionDraft.from_payload(_payload(status="Lost", reason="Weather"))

    @pytest.mark.parametrize("value", [-1, "-0.01", "abc"])
    def test_invalid_monetary_value(self, value):
        with pytest.raises(ValidationError):
            InteractionDraft.from_payload(_payload(status="Closed", monetary_value=value))

    def test_monetary_value_to_cents(self):
        draft = InteractionDraft.from_payload(_payload(status="Quoted", monetary_value="1,250.505"))
        assert draft.monetary_value_cents == 125051

    def test_products_must_be_list(self):
        with pytest.raises(ValidationError):
            InteractionDraft.from_payload(_payload(products="P-100"))


class TestProductRefs:

    def test_catalog_ids_deduplicated_first_wins(self):
        refs = [ProductRef(product_id=1), ProductRef(product_id=2), ProductRef(product_id=1)]
        assert dedupe_product_refs(refs) == [ProductRef(product_id=1), ProductRef(product_id=2)]

    def test_custom_entries_never_deduplicated(self):
        refs = [ProductRef(custom_description="Mirror"), ProductRef(custom_description="Mirror")]
        assert len(dedupe_product_refs(refs)) == 2

    def test_mixed_input_shapes(self):
        draft = InteractionDraft.from_payload(_payload(products=[
            3, "3", {"product_id": 4}, {"custom_description": "Rug"}, {"is_custom": True, "description": "Lamp"},
        ]))
        assert [(r.product_id, r.custom_description) for r in draft.products] == [
            (3, None), (4, None), (None, "Rug"), (None, "Lamp"),
        ]

    def test_null_custom_description_falls_back_to_description(self):
        draft = InteractionDraft.from_payload(_payload(products=[
            {"is_custom": True, "custom_description": None, "description": "Lamp"},
        ]))
        assert [(r.product_id, r.custom_description) for r in draft.products] == [(None, "Lamp")]

    @pytest.mark.parametrize("item", [True, "abc", {"custom_description": "  "}, 1.5])
    def test_bad_references(self, item):
        with pytest.raises(ValidationError):
            InteractionDraft.from_payload(_payload(products=[item]))


class TestCreateInteraction:

    def test_creates_with_links_and_store(self, db_session, sales_a, store_a, products):
        oak, chair, _ = products
        interaction = interaction_service.create_interaction(context(sales_a), _payload(
            status="Closed",
            monetary_value=1500,
            products=[oak.id, chair.id, oak.id, {"custom_description": "Delivery"}],
        ))

        assert interaction.user_id == sales_a.id
        assert interaction.store_id == store_a.id
        assert interaction.monetary_value_cents == 150000
        data = interaction.to_dict()
        assert [p["description"] for p in data["products"]] == ["Oak Table", "Pine Chair", "Delivery"]
        assert [p["is_custom"] for p in data["products"]] == [False, False, True]
        assert data["store_name"] == "North Store"
        assert data["creator"]["username"] == "sales_a"

    def test_lost_drops_value(self, db_session, sales_a):
        interaction = interaction_service.create_interaction(
            context(sales_a), _payload(status="Lost", reason="Price", monetary_value=100)
        )
        assert interaction.status is InteractionStatus.LOST
        assert interaction.reason is LossReason.PRICE
        assert interaction.monetary_value_cents is None

    def test_unassigned_creator_has_no_store(self, db_session, manager_unassigned):
        interaction = interaction_service.create_interaction(context(manager_unassigned), _payload())
        assert interaction.store_id is None

    def test_missing_product_creates_nothing(self, db_session, sales_a, products):
        with pytest.raises(NotFoundError):
            interaction_service.create_interaction(context(sales_a), _payload(products=[products[0].id, 99999]))
        assert db_session.query(Interaction).count() == 0
        assert db_session.query(InteractionProduct).count() == 0

    def test_storage_failure_rolls_back(self, db_session, sales_a, monkeypatch):
        def failing_commit():
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        ctx = context(sales_a)
        monkeypatch.setattr(db.session, "commit", failing_commit)
        with pytest.raises(DependencyError):
            interaction_service.create_interaction(ctx, _payload(products=[{"custom_description": "Sofa"}]))
        monkeypatch.undo()

        assert db_session.query(Interaction).count() == 0
        assert db_session.query(InteractionProduct).count() == 0


class TestGetInteraction:

    def test_out_of_scope_is_not_found(self, db_session, sales_a, sales_b):
        interaction = interaction_service.create_interaction(context(sales_b), _payload())
        with pytest.raises(NotFoundError):
            interaction_service.get_interaction(context(sales_a), interaction.id)

    def test_in_scope(self, db_session, manager_a, sales_a):
        interaction = interaction_service.create_interaction(context(sales_a), _payload())
        found = interaction_service.get_interaction(context(manager_a), interaction.id)
        assert found.id == interaction.id


class TestStats:

    def test_empty(self):
        stats = compute_stats([])
        assert stats["total_interactions"] == 0
        assert stats["closing_rate"] == 0
        assert stats["average_deal_value"] == 0

    def test_aggregates(self, db_session, sales_a):
        ctx = context(sales_a)
        for payload in [
            _payload(status="Closed", monetary_value=100),
            _payload(status="Closed", monetary_value=250.5),
            _payload(status="Lost", reason="Other"),
            _payload(status="Quoted", monetary_value=40),
        ]:
            interaction_service.create_interaction(ctx, payload)

        stats = interaction_service.interaction_stats(ctx)
        assert stats == {
            "total_interactions": 4,
            "closed_deals": 2,
            "lost_deals": 1,
            "quoted_deals": 1,
            "closed_revenue": 350.5,
            "quoted_pipeline": 40.0,
            "closing_rate": 50.0,
            "average_deal_value": 175.25,
        }

    def test_closing_rate_rounds_to_one_decimal(self, db_session, sales_a):
        ctx = context(sales_a)
        interaction_service.create_interaction(ctx, _payload(status="Closed"))
        interaction_service.create_interaction(ctx, _payload(status="Quoted"))
        interaction_service.create_interaction(ctx, _payload(status="Quoted"))
        assert interaction_service.interaction_stats(ctx)["closing_rate"] == 33.3

    def test_stats_follow_scope(self, db_session, sales_a, sales_b, manager_unassigned):
        interaction_service.create_interaction(context(sales_a), _payload(status="Closed", monetary_value=10))
        interaction_service.create_interaction(context(sales_b), _payload(status="Closed", monetary_value=20))
        assert interaction_service.interaction_stats(context(sales_a))["closed_revenue"] == 10.0
        assert interaction_service.interaction_stats(context(manager_unassigned))["total_interactions"] == 0


class TestScenarios:

    def test_salesperson_without_store_quotes(self, db_session):
        from conftest import make_user
        from crm.permissions import Role
        actor = make_user("floater", Role.SALESPERSON)

        interaction = interaction_service.create_interaction(
            context(actor), _payload(client_name="Acme", status="Quoted", monetary_value=1500.00)
        )

        stored = db_session.get(Interaction, interaction.id)
        assert stored.status is InteractionStatus.QUOTED
        assert stored.monetary_value_cents == 150000
        assert stored.reason is None
        assert stored.user_id == actor.id
        assert stored.store_id is None

    def test_manager_never_sees_other_store(self, db_session, manager_a, store_b):
        from conftest import make_user
        from crm.permissions import Role
        other_manager = make_user("manager_b", Role.MANAGER, store_b)
        ctx = context(other_manager)
        for _ in range(5):
            interaction_service.create_interaction(ctx, _payload())

        assert interaction_service.list_interactions(context(manager_a)) == []
        assert len(interaction_service.list_interactions(ctx)) == 5

"""Tests for plan listing and Iugu plan sync (app/services/plan_catalog.py)"""
import pytest
from decimal import Decimal
from unittest.mock import patch
from sqlalchemy.exc import SQLAlchemyError

from app.integrations.iugu import IuguError
from app.models import Event, Plan, PlanType, ContractStatus
from app.services.plan_catalog import (
    format_price_brl,
    list_plans,
    sync_plan_catalog,
)


def _remote(identifier, cents, name=None):
    return {
        "id": f"iugu_{identifier}",
        "identifier": identifier,
        "name": name or f"Plano {identifier}",
        "interval": 1,
        "interval_type": "months",
        "prices": [{"currency": "BRL", "value_cents": cents}],
    }


@pytest.fixture
def remote_catalog():
    with patch("app.services.plan_catalog.iugu.list_plans") as mock_list:
        yield mock_list


class TestFormatPrice:
    def test_thousands_and_decimals(self):
        assert format_price_brl(Decimal("1234.56")) == "R$ 1.234,56"

    def test_small_value(self):
        assert format_price_brl(29.9) == "R$ 29,90"


class TestListPlans:
    def test_b2c_sorted_by_price_and_active_only(self, db_session, make_plan):
        make_plan("anual", price="299.00")
        make_plan("mensal", price="29.90")
        make_plan("velho", price="9.90", is_active=False)
        make_plan("empresa", price="19.90", plan_type=PlanType.B2B)

        result = list_plans(db_session, "b2c")

        assert result["plan_type"] == "b2c"
        assert result["total"] == 2
        assert [p["iugu_plan_identifier"] for p in result["plans"]] == ["mensal", "anual"]
        assert result["plans"][0]["price_formatted"] == "R$ 29,90"
        assert result["plans"][0]["price"] == 29.9

    def test_convenio_returns_contract_plans(self, db_session, make_plan, make_company):
        make_plan("mensal", price="29.90")
        p1 = make_plan("empresa_a", price="19.90", plan_type=PlanType.B2B)
        p2 = make_plan("empresa_b", price="9.90", plan_type=PlanType.B2B)
        company = make_company(plans=[p1, p2])

        result = list_plans(db_session, "convenio", company.id)

        assert result["plan_type"] == "convenio"
        assert [p["id"] for p in result["plans"]] == [p2.id, p1.id]

    def test_contract_without_plans_falls_back_to_b2c(self, db_session, make_plan, make_company):
        b2c = make_plan("mensal")
        company = make_company(plans=[])

        result = list_plans(db_session, "convenio", company.id)

        assert result["plan_type"] == "b2c"
        assert [p["id"] for p in result["plans"]] == [b2c.id]

    def test_inactive_contract_falls_back_to_b2c(self, db_session, make_plan, make_company):
        make_plan("mensal")
        p1 = make_plan("empresa_a", plan_type=PlanType.B2B)
        company = make_company(plans=[p1], contract_status=ContractStatus.INACTIVE)

        result = list_plans(db_session, "convenio", company.id)

        assert result["plan_type"] == "b2c"

    def test_convenio_without_company_is_b2c(self, db_session, make_plan):
        make_plan("mensal")

        result = list_plans(db_session, "convenio", None)

        assert result["plan_type"] == "b2c"
        assert result["total"] == 1

    def test_store_failure_during_sync_serves_cached_plans(self, db_session, make_plan):
        make_plan("mensal")

        with patch("app.services.plan_catalog.settings.plan_sync_on_list", True), \
             patch("app.services.plan_catalog.sync_plan_catalog", side_effect=SQLAlchemyError("db down")):
            result = list_plans(db_session, "b2c")

        assert result["total"] == 1


class TestSyncPlanCatalog:
    def test_inserts_new_plans(self, db_session, remote_catalog):
        remote_catalog.return_value = [_remote("mensal", 2990), _remote("anual", 29900)]

        summary = sync_plan_catalog(db_session)

        assert summary["inserted"] == 2
        plan = db_session.query(Plan).filter(Plan.iugu_plan_identifier == "mensal").one()
        assert plan.price == Decimal("29.90")
        assert plan.is_active is True
        assert plan.iugu_plan_id == "iugu_mensal"

    def test_second_run_makes_no_changes(self, db_session, remote_catalog):
        remote_catalog.return_value = [_remote("mensal", 2990), _remote("anual", 29900)]
        sync_plan_catalog(db_session)
        events_before = db_session.query(Event).count()

        summary = sync_plan_catalog(db_session)

        assert summary["inserted"] == 0
        assert summary["updated"] == 0
        assert summary["activated"] == 0
        assert summary["deactivated"] == 0
        assert summary["actions"] == []
        assert db_session.query(Event).count() == events_before

    def test_run_with_changes_records_event(self, db_session, remote_catalog):
        remote_catalog.return_value = [_remote("mensal", 2990)]

        sync_plan_catalog(db_session)

        event = db_session.query(Event).filter(Event.type == "plans.sync_completed").one()
        assert event.payload["inserted"] == 1

    def test_event_write_failure_keeps_summary(self, db_session, remote_catalog):
        remote_catalog.return_value = [_remote("mensal", 2990)]

        with patch("app.services.plan_catalog.log_event", side_effect=SQLAlchemyError("db down")):
            summary = sync_plan_catalog(db_session)

        assert summary["inserted"] == 1
        assert db_session.query(Event).count() == 0

    def test_one_cent_difference_is_tolerated(self, db_session, make_plan, remote_catalog):
        make_plan("mensal", price="29.90", name="Plano mensal")
        remote_catalog.return_value = [_remote("mensal", 2991)]

        summary = sync_plan_catalog(db_session)

        assert summary["updated"] == 0

    def test_two_cent_difference_updates(self, db_session, make_plan, remote_catalog):
        plan = make_plan("mensal", price="29.90", name="Plano mensal")
        remote_catalog.return_value = [_remote("mensal", 2992)]

        summary = sync_plan_catalog(db_session)

        assert summary["updated"] == 1
        db_session.refresh(plan)
        assert plan.price == Decimal("29.92")

    def test_name_change_updates(self, db_session, make_plan, remote_catalog):
        plan = make_plan("mensal", price="29.90", name="Plano mensal")
        remote_catalog.return_value = [_remote("mensal", 2990, name="Mensal Premium")]

        summary = sync_plan_catalog(db_session)

        assert summary["updated"] == 1
        db_session.refresh(plan)
        assert plan.name == "Mensal Premium"

    def test_vanished_plan_deactivated_then_reactivated(self, db_session, make_plan, remote_catalog):
        plan = make_plan("mensal", price="29.90", name="Plano mensal")
        remote_catalog.return_value = []

        first = sync_plan_catalog(db_session)

        assert first["deactivated"] == 1
        db_session.refresh(plan)
        assert plan.is_active is False

        remote_catalog.return_value = [_remote("mensal", 3490, name="Plano mensal novo")]
        second = sync_plan_catalog(db_session)

        assert second["activated"] == 1
        assert second["inserted"] == 0
        db_session.refresh(plan)
        assert plan.is_active is True
        assert plan.price == Decimal("34.90")
        assert plan.name == "Plano mensal novo"

    def test_deactivation_is_idempotent(self, db_session, make_plan, remote_catalog):
        make_plan("mensal")
        remote_catalog.return_value = []
        sync_plan_catalog(db_session)

        summary = sync_plan_catalog(db_session)

        assert summary["deactivated"] == 0

    def test_bad_plan_counted_and_batch_continues(self, db_session, remote_catalog):
        broken = _remote("quebrado", 1000)
        broken["prices"] = []
        remote_catalog.return_value = [broken, _remote("mensal", 2990)]

        summary = sync_plan_catalog(db_session)

        assert summary["errors"] == 1
        assert summary["inserted"] == 1
        assert {"identifier": "quebrado", "action": "error", "error": "plan has no price"} in summary["actions"]

    def test_gateway_failure_raises_without_writes(self, db_session, make_plan, remote_catalog):
        make_plan("mensal")
        remote_catalog.side_effect = IuguError("Gateway respondeu HTTP 500", 500)

        with pytest.raises(IuguError):
            sync_plan_catalog(db_session)

        assert db_session.query(Plan).filter(Plan.is_active.is_(True)).count() == 1

"""Billing plan API and service tests."""

import uuid
from datetime import date
from decimal import Decimal

import pytest

from invoicer.core.errors import NotFoundError, ValidationError
from invoicer.schemas.billing_plan import BillingPlanItemCreate, BillingPlanItemUpdate
from invoicer.services.billing_plan_service import BillingPlanService
from tests.conftest import (
    CUSTOMER_ID,
    STANDARD_ITEM_ID,
    STANDARD_TAX_CODE,
    ZERO_ITEM_ID,
    ZERO_TAX_CODE,
    create_plan,
)


def _create_plan(client, **overrides):  # type: ignore[no-untyped-def]
    body = {
        "name": "Acme retainer",
        "ledger_customer_id": CUSTOMER_ID,
        "frequency": "quarterly",
        "start_date": "2025-01-01",
    }
    body.update(overrides)
    response = client.post("/v1/billing_plans/", json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestBillingPlansApi:
    def test_create_and_get(self, client) -> None:
        plan = _create_plan(client)

        assert plan["frequency"] == "quarterly"
        assert plan["is_active"] is True
        assert plan["items"] == []

        response = client.get(f"/v1/billing_plans/{plan['id']}")
        assert response.status_code == 200
        assert response.json()["name"] == "Acme retainer"

    def test_create_rejects_inverted_dates(self, client) -> None:
        response = client.post(
            "/v1/billing_plans/",
            json={
                "name": "Bad",
                "ledger_customer_id": CUSTOMER_ID,
                "start_date": "2025-02-01",
                "end_date": "2025-01-01",
            },
        )
        assert response.status_code == 422

    def test_create_rejects_unknown_frequency(self, client) -> None:
        response = client.post(
            "/v1/billing_plans/",
            json={
                "name": "Bad",
                "ledger_customer_id": CUSTOMER_ID,
                "frequency": "weekly",
                "start_date": "2025-01-01",
            },
        )
        assert response.status_code == 422

    def test_list_active_only(self, client) -> None:
        active = _create_plan(client, name="Active")
        inactive = _create_plan(client, name="Inactive")
        client.put(f"/v1/billing_plans/{inactive['id']}", json={"is_active": False})

        all_ids = {p["id"] for p in client.get("/v1/billing_plans/").json()}
        active_ids = {
            p["id"] for p in client.get("/v1/billing_plans/", params={"active_only": True}).json()
        }

        assert all_ids == {active["id"], inactive["id"]}
        assert active_ids == {active["id"]}

    def test_get_missing(self, client) -> None:
        response = client.get(f"/v1/billing_plans/{uuid.uuid4()}")
        assert response.status_code == 404
        assert "not found" in response.json()["detail"]

    def test_update_rejects_end_before_start(self, client) -> None:
        plan = _create_plan(client)

        response = client.put(
            f"/v1/billing_plans/{plan['id']}", json={"end_date": "2024-12-31"}
        )

        assert response.status_code == 400
        assert response.json()["fields"] == ["end_date"]

    def test_add_item_caches_ledger_tax(self, client) -> None:
        plan = _create_plan(client)

        response = client.post(
            f"/v1/billing_plans/{plan['id']}/items",
            json={"ledger_item_id": STANDARD_ITEM_ID, "rate": "99.00", "from_date": "2025-01-01"},
        )

        assert response.status_code == 201, response.text
        item = response.json()
        assert item["item_name"] == "Consulting"
        assert item["tax_code_id"] == STANDARD_TAX_CODE
        assert Decimal(item["tax_rate"]) == Decimal("20")
        assert Decimal(item["line_total"]) == Decimal("99.00")
        assert item["sort_order"] == 0

    def test_add_item_unknown_ledger_item(self, client) -> None:
        plan = _create_plan(client)

        response = client.post(
            f"/v1/billing_plans/{plan['id']}/items",
            json={"ledger_item_id": "missing", "rate": "1.00", "from_date": "2025-01-01"},
        )

        assert response.status_code == 404

    def test_add_item_negative_rate(self, client) -> None:
        plan = _create_plan(client)

        response = client.post(
            f"/v1/billing_plans/{plan['id']}/items",
            json={"ledger_item_id": STANDARD_ITEM_ID, "rate": "-1", "from_date": "2025-01-01"},
        )

        assert response.status_code == 422

    def test_items_listed_in_sort_order(self, client) -> None:
        plan = _create_plan(client)
        for item_id in (STANDARD_ITEM_ID, ZERO_ITEM_ID):
            client.post(
                f"/v1/billing_plans/{plan['id']}/items",
                json={"ledger_item_id": item_id, "rate": "5.00", "from_date": "2025-01-01"},
            )

        items = client.get(f"/v1/billing_plans/{plan['id']}/items").json()

        assert [i["ledger_item_id"] for i in items] == [STANDARD_ITEM_ID, ZERO_ITEM_ID]
        assert [i["sort_order"] for i in items] == [0, 1]
        plan_items = client.get(f"/v1/billing_plans/{plan['id']}").json()["items"]
        assert len(plan_items) == 2

    def test_delete_item(self, client) -> None:
        plan = _create_plan(client)
        item = client.post(
            f"/v1/billing_plans/{plan['id']}/items",
            json={"ledger_item_id": STANDARD_ITEM_ID, "rate": "5.00", "from_date": "2025-01-01"},
        ).json()

        response = client.delete(f"/v1/billing_plans/{plan['id']}/items/{item['id']}")

        assert response.status_code == 204
        assert client.get(f"/v1/billing_plans/{plan['id']}/items").json() == []

    def test_delete_plan_with_items(self, client) -> None:
        plan = _create_plan(client)
        client.post(
            f"/v1/billing_plans/{plan['id']}/items",
            json={"ledger_item_id": STANDARD_ITEM_ID, "rate": "5.00", "from_date": "2025-01-01"},
        )

        assert client.delete(f"/v1/billing_plans/{plan['id']}").status_code == 204
        assert client.get(f"/v1/billing_plans/{plan['id']}").status_code == 404

    def test_delete_plan_with_invoices_rejected(self, client) -> None:
        plan = _create_plan(client)
        client.post(
            f"/v1/billing_plans/{plan['id']}/items",
            json={"ledger_item_id": STANDARD_ITEM_ID, "rate": "5.00", "from_date": "2025-01-01"},
        )
        generated = client.post(
            "/v1/invoices/generate",
            json={"billing_plan_id": plan["id"], "invoice_date": "2025-03-01"},
        )
        assert generated.status_code == 201, generated.text

        response = client.delete(f"/v1/billing_plans/{plan['id']}")

        assert response.status_code == 400
        assert client.get(f"/v1/billing_plans/{plan['id']}").status_code == 200


class TestBillingPlanService:
    def test_update_item_refreshes_tax(self, db_session, fake_ledger) -> None:
        plan = create_plan(db_session)
        service = BillingPlanService(db_session, fake_ledger)
        item = service.list_items(plan.id)[0]

        updated = service.update_item(
            plan.id, item.id, BillingPlanItemUpdate(ledger_item_id=ZERO_ITEM_ID)
        )

        assert updated.ledger_item_id == ZERO_ITEM_ID
        assert updated.item_name == "Postage"
        assert updated.tax_code_id == ZERO_TAX_CODE
        assert updated.tax_rate == Decimal("0")
        assert updated.rate == Decimal("99.00")

    def test_update_item_keeps_custom_name(self, db_session, fake_ledger) -> None:
        plan = create_plan(
            db_session,
            items=[
                {
                    "ledger_item_id": STANDARD_ITEM_ID,
                    "item_name": "Retainer",
                    "rate": Decimal("10.00"),
                    "tax_rate": Decimal("0"),
                }
            ],
        )
        service = BillingPlanService(db_session, fake_ledger)
        item = service.list_items(plan.id)[0]

        updated = service.update_item(
            plan.id, item.id, BillingPlanItemUpdate(quantity=Decimal("2"))
        )

        assert updated.item_name == "Retainer"
        assert updated.quantity == Decimal("2")
        # Rate cache refreshed from the ledger on every save
        assert updated.tax_rate == Decimal("20")

    def test_update_item_rejects_inverted_dates(self, db_session, fake_ledger) -> None:
        plan = create_plan(db_session)
        service = BillingPlanService(db_session, fake_ledger)
        item = service.list_items(plan.id)[0]

        with pytest.raises(ValidationError):
            service.update_item(plan.id, item.id, BillingPlanItemUpdate(to_date=date(2024, 1, 1)))

    def test_add_item_explicit_sort_order(self, db_session, fake_ledger) -> None:
        plan = create_plan(db_session)
        service = BillingPlanService(db_session, fake_ledger)

        item = service.add_item(
            plan.id,
            BillingPlanItemCreate(
                ledger_item_id=ZERO_ITEM_ID,
                rate=Decimal("1.00"),
                from_date=date(2025, 1, 1),
                sort_order=10,
            ),
        )

        assert item.sort_order == 10
        assert service.repo.next_sort_order(plan.id) == 11

    def test_item_of_other_plan(self, db_session, fake_ledger) -> None:
        plan = create_plan(db_session)
        other = create_plan(db_session, name="Other")
        service = BillingPlanService(db_session, fake_ledger)
        item = service.list_items(plan.id)[0]

        with pytest.raises(NotFoundError):
            service.delete_item(other.id, item.id)

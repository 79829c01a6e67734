"""
Tests for the billing API endpoints (/api/v2/billing).
"""

import uuid
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from care_billing.schemas.eligibility import ClientBillableSources, ExpenseClaimView, ExtraTimeView

from tests.factories import (
    BRANCH_ID,
    ORGANIZATION_ID,
    ClientFactory,
    ExpenseClaimFactory,
    ExtraTimeFactory,
    InvoiceFactory,
    PERIOD_START,
    PERIOD_END,
)

BILLING_PREFIX = "/api/v2/billing"

CUSTOM_PERIOD = {
    "period_type": "custom",
    "start_date": PERIOD_START.isoformat(),
    "end_date": PERIOD_END.isoformat(),
}


def bulk_body():
    return {
        "period": CUSTOM_PERIOD,
        "branch_id": str(BRANCH_ID),
        "organization_id": str(ORGANIZATION_ID),
    }


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestResolvePeriod:

    @pytest.mark.asyncio
    async def test_custom_period(self, client: AsyncClient):
        response = await client.get(f"{BILLING_PREFIX}/periods/resolve", params=CUSTOM_PERIOD)

        assert response.status_code == 200
        data = response.json()
        assert data["start_date"] == "2026-03-02"
        assert data["end_date"] == "2026-03-08"
        assert data["days"] == 7

    @pytest.mark.asyncio
    async def test_inverted_range_is_problem_response(self, client: AsyncClient):
        response = await client.get(
            f"{BILLING_PREFIX}/periods/resolve",
            params={"period_type": "custom", "start_date": "2026-03-08", "end_date": "2026-03-02"},
        )

        assert response.status_code == 422
        assert response.headers["content-type"].startswith("application/problem+json")
        body = response.json()
        assert body["code"] == "VAL_001"
        assert "after end date" in body["detail"]

    @pytest.mark.asyncio
    async def test_unknown_period_type(self, client: AsyncClient):
        response = await client.get(f"{BILLING_PREFIX}/periods/resolve", params={"period_type": "yearly"})
        assert response.status_code == 422


class TestBranchEligibility:

    @pytest.mark.asyncio
    async def test_lists_candidates(self, client: AsyncClient, billable_client, unrated_client):
        response = await client.get(f"{BILLING_PREFIX}/branches/{BRANCH_ID}/eligibility", params=CUSTOM_PERIOD)

        assert response.status_code == 200
        data = response.json()
        assert [c["client_name"] for c in data] == ["Ada Able", "Ben Baker"]
        assert [c["has_rate_basis"] for c in data] == [True, False]


class TestBulkGeneration:

    @pytest.mark.asyncio
    async def test_preview(self, client: AsyncClient, billable_client, unrated_client):
        response = await client.post(f"{BILLING_PREFIX}/bulk/preview", json=bulk_body())

        assert response.status_code == 200
        data = response.json()
        assert len(data["eligible"]) == 1
        assert len(data["skipped"]) == 1

    @pytest.mark.asyncio
    async def test_generate(self, client: AsyncClient, billable_client, unrated_client):
        response = await client.post(f"{BILLING_PREFIX}/bulk/generate", json=bulk_body())

        assert response.status_code == 200
        data = response.json()
        assert data["success_count"] == 1
        assert data["error_count"] == 0
        assert data["skipped_count"] == 1
        assert data["total_amount"] == 40.0
        assert data["errors"][0]["reason"] == "no active rate basis"

    @pytest.mark.asyncio
    async def test_generate_without_bookings(self, client: AsyncClient):
        response = await client.post(f"{BILLING_PREFIX}/bulk/generate", json=bulk_body())

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "No eligible clients found"
        assert data["errors"] == []


class TestClientInvoices:

    @pytest.mark.asyncio
    async def test_create_from_manual_entries_and_claims(self, client: AsyncClient, test_db: AsyncSession):
        care_client = ClientFactory()
        test_db.add(care_client)
        await test_db.flush()
        claim = ExpenseClaimFactory(client_id=care_client.id, amount=Decimal("12.50"))
        extra = ExtraTimeFactory(client_id=care_client.id, total_cost=Decimal("10.00"))
        test_db.add_all([claim, extra])
        await test_db.commit()
        stale_id = str(uuid.uuid4())

        response = await client.post(
            f"{BILLING_PREFIX}/clients/{care_client.id}/invoices",
            json={
                **bulk_body(),
                "manual_entries": [
                    {"expense_type": "Supplies", "amount": "20.00", "admin_cost_percentage": "10"}
                ],
                "selected_claim_ids": [str(claim.id), stale_id],
                "selected_extra_time_ids": [str(extra.id)],
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["invoice"]["amount"] == 42.5
        assert float(data["totals"]["manual"]) == 20.0
        assert data["invoice"]["line_item_count"] == 3
        assert data["dropped_expense_ids"] == [stale_id]

        sources = await client.get(f"{BILLING_PREFIX}/clients/{care_client.id}/billable-sources", params=CUSTOM_PERIOD)
        assert sources.status_code == 200
        assert sources.json()["other"][0]["is_invoiced"] is True

    @pytest.mark.asyncio
    async def test_empty_selection_rejected(self, client: AsyncClient, test_db: AsyncSession):
        care_client = ClientFactory()
        test_db.add(care_client)
        await test_db.commit()

        response = await client.post(f"{BILLING_PREFIX}/clients/{care_client.id}/invoices", json=bulk_body())

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_empty_selection_rejected_before_lookup(self, client: AsyncClient):
        response = await client.post(f"{BILLING_PREFIX}/clients/{uuid.uuid4()}/invoices", json=bulk_body())

        assert response.status_code == 422
        assert response.json()["code"] == "VAL_001"

    @pytest.mark.asyncio
    async def test_response_reports_what_was_written(self, client: AsyncClient, test_db: AsyncSession, monkeypatch):
        care_client = ClientFactory()
        test_db.add(care_client)
        await test_db.flush()
        # Invoiced after the catalog below was fetched
        claim = ExpenseClaimFactory(client_id=care_client.id, amount=Decimal("12.50"), is_invoiced=True)
        extra = ExtraTimeFactory(client_id=care_client.id, total_cost=Decimal("10.00"))
        test_db.add_all([claim, extra])
        await test_db.commit()
        stale_catalog = ClientBillableSources(
            client_id=care_client.id,
            other=[
                ExpenseClaimView(
                    id=claim.id, category="other", amount=12.5,
                    expense_date=claim.expense_date, group="other", is_invoiced=False,
                )
            ],
            extra_time=[
                ExtraTimeView(
                    id=extra.id, work_date=extra.work_date, extra_time_minutes=30,
                    total_cost=10.0, invoiced=False,
                )
            ],
        )
        monkeypatch.setattr(
            "care_billing.services.eligibility.evaluate_client",
            AsyncMock(return_value=stale_catalog),
        )

        response = await client.post(
            f"{BILLING_PREFIX}/clients/{care_client.id}/invoices",
            json={
                **bulk_body(),
                "selected_claim_ids": [str(claim.id)],
                "selected_extra_time_ids": [str(extra.id)],
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["invoice"]["amount"] == 10.0
        assert float(data["totals"]["grand"]) == 10.0
        assert float(data["totals"]["claims"]) == 0.0
        assert data["dropped_expense_ids"] == [str(claim.id)]

    @pytest.mark.asyncio
    async def test_pay_staff_without_staff_rejected(self, client: AsyncClient, test_db: AsyncSession):
        care_client = ClientFactory()
        test_db.add(care_client)
        await test_db.commit()

        response = await client.post(
            f"{BILLING_PREFIX}/clients/{care_client.id}/invoices",
            json={
                **bulk_body(),
                "manual_entries": [{"expense_type": "Supplies", "amount": "5", "pay_staff": True}],
            },
        )

        assert response.status_code == 422
        assert response.json()["errors"]

    @pytest.mark.asyncio
    async def test_unknown_client(self, client: AsyncClient):
        response = await client.get(f"{BILLING_PREFIX}/clients/{uuid.uuid4()}/uninvoiced-bookings")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_uninvoiced_bookings(self, client: AsyncClient, billable_client):
        response = await client.get(f"{BILLING_PREFIX}/clients/{billable_client.id}/uninvoiced-bookings")

        assert response.status_code == 200
        assert len(response.json()) == 2


class TestExistingInvoices:

    @pytest.mark.asyncio
    async def test_add_expenses_to_draft(self, client: AsyncClient, test_db: AsyncSession):
        care_client = ClientFactory()
        test_db.add(care_client)
        await test_db.flush()
        invoice = InvoiceFactory(client_id=care_client.id)
        claim = ExpenseClaimFactory(client_id=care_client.id, amount=Decimal("5.00"))
        test_db.add_all([invoice, claim])
        await test_db.commit()

        response = await client.post(
            f"{BILLING_PREFIX}/invoices/{invoice.id}/expenses",
            json={"selected_claim_ids": [str(claim.id)]},
        )

        assert response.status_code == 200
        assert response.json()["invoice"]["amount"] == 30.0

    @pytest.mark.asyncio
    async def test_add_expenses_to_sent_invoice_rejected(self, client: AsyncClient, test_db: AsyncSession):
        care_client = ClientFactory()
        test_db.add(care_client)
        await test_db.flush()
        invoice = InvoiceFactory(client_id=care_client.id, status="sent")
        claim = ExpenseClaimFactory(client_id=care_client.id)
        test_db.add_all([invoice, claim])
        await test_db.commit()

        response = await client.post(
            f"{BILLING_PREFIX}/invoices/{invoice.id}/expenses",
            json={"selected_claim_ids": [str(claim.id)]},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "BIZ_001"

    @pytest.mark.asyncio
    async def test_payment_and_delete(self, client: AsyncClient, test_db: AsyncSession):
        care_client = ClientFactory()
        test_db.add(care_client)
        await test_db.flush()
        invoice = InvoiceFactory(client_id=care_client.id, status="pending")
        test_db.add(invoice)
        await test_db.commit()

        paid = await client.post(
            f"{BILLING_PREFIX}/invoices/{invoice.id}/payments",
            json={"payment_amount": 25, "payment_method": "card"},
        )
        assert paid.status_code == 201
        assert paid.json()["is_paid"] is True

        deleted = await client.delete(f"{BILLING_PREFIX}/invoices/{invoice.id}")
        assert deleted.status_code == 400

    @pytest.mark.asyncio
    async def test_delete_draft(self, client: AsyncClient, test_db: AsyncSession):
        care_client = ClientFactory()
        test_db.add(care_client)
        await test_db.flush()
        invoice = InvoiceFactory(client_id=care_client.id)
        test_db.add(invoice)
        await test_db.commit()

        response = await client.delete(f"{BILLING_PREFIX}/invoices/{invoice.id}")
        assert response.status_code == 204

        missing = await client.delete(f"{BILLING_PREFIX}/invoices/{invoice.id}")
        assert missing.status_code == 404

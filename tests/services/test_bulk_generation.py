"""
Tests for bulk invoice generation.
"""

import uuid
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from care_billing.exceptions import DuplicateInvoiceError, NoBillableFactsError
from care_billing.models.booking import Booking
from care_billing.schemas.eligibility import ClientEligibility
from care_billing.schemas.invoice import WrittenInvoice
from care_billing.services.bulk_generation import (
    BulkGenerationRun,
    RunState,
    RunStateError,
    failure_reason,
    generate,
    iter_generation,
    preview,
)

from tests.factories import (
    BRANCH_ID,
    ORGANIZATION_ID,
    BookingFactory,
    ClientFactory,
    RateScheduleFactory,
    visit_at,
)


def candidate(name: str, bookings: int = 1, rated: bool = True) -> ClientEligibility:
    return ClientEligibility(
        client_id=uuid.uuid4(),
        client_name=name,
        booking_count=bookings,
        has_rate_basis=rated,
    )


def written(amount: float, lines: int = 1) -> WrittenInvoice:
    return WrittenInvoice(
        invoice_id=uuid.uuid4(),
        invoice_number=f"INV-2026-03-{uuid.uuid4().int % 10000:04d}",
        amount=amount,
        line_item_count=lines,
    )


class TestFailureReasons:

    def test_engine_error_uses_its_detail(self):
        assert failure_reason(DuplicateInvoiceError()) == "duplicate invoice already exists for period"

    def test_backend_error(self):
        exc = OperationalError("INSERT", {}, Exception("server closed the connection"))
        assert failure_reason(exc) == "backend error while writing invoice"

    def test_unexpected_error(self):
        assert failure_reason(KeyError("x")) == "unexpected error while writing invoice"


class TestIterGeneration:

    @pytest.mark.asyncio
    async def test_progress_reported_before_each_client(self):
        events = []
        clients = [candidate("Ada"), candidate("Ben"), candidate("Cy")]

        async def write(c):
            events.append(("write", c.client_name))
            return written(10)

        def on_progress(progress):
            events.append(("progress", progress.current, progress.total, progress.current_client))

        outcomes = [o async for o in iter_generation(clients, write, on_progress)]

        assert len(outcomes) == 3
        assert events == [
            ("progress", 0, 3, "Ada"), ("write", "Ada"),
            ("progress", 1, 3, "Ben"), ("write", "Ben"),
            ("progress", 2, 3, "Cy"), ("write", "Cy"),
        ]

    @pytest.mark.asyncio
    async def test_async_progress_sink_awaited(self):
        sink = AsyncMock()
        clients = [candidate("Ada"), candidate("Ben")]

        _ = [o async for o in iter_generation(clients, AsyncMock(return_value=written(5)), sink)]

        assert sink.await_count == 2

    @pytest.mark.asyncio
    async def test_failing_progress_sink_does_not_stop_run(self, test_db, period, monkeypatch):
        monkeypatch.setattr(
            "care_billing.services.bulk_generation.evaluate_branch",
            AsyncMock(return_value=[candidate("Ada"), candidate("Ben")]),
        )
        writer = AsyncMock(return_value=written(10.0))
        on_progress = MagicMock(side_effect=RuntimeError("socket closed"))

        result = await generate(test_db, period, BRANCH_ID, ORGANIZATION_ID, on_progress=on_progress, writer=writer)

        assert on_progress.call_count == 2
        assert writer.await_count == 2
        assert result.success_count == 2
        assert result.error_count == 0


class TestGenerateWithInjectedWriter:

    @pytest.mark.asyncio
    async def test_failure_isolated_per_client(self, test_db, period, monkeypatch):
        clients = [candidate("Ada", 2), candidate("Ben", 1), candidate("Cy", 3)]
        monkeypatch.setattr(
            "care_billing.services.bulk_generation.evaluate_branch",
            AsyncMock(return_value=clients),
        )
        writer = AsyncMock(side_effect=[written(40.0, 2), NoBillableFactsError(), written(60.5, 3)])

        result = await generate(test_db, period, BRANCH_ID, ORGANIZATION_ID, writer=writer)

        assert writer.await_count == 3
        assert [call.args[0].client_name for call in writer.await_args_list] == ["Ada", "Ben", "Cy"]
        assert result.success_count == 2
        assert result.error_count == 1
        assert result.total_amount == 100.5
        assert [i.client_name for i in result.invoices] == ["Ada", "Cy"]
        assert result.errors[0].client_name == "Ben"
        assert result.errors[0].booking_count == 1
        assert result.errors[0].reason == "no billable bookings in period"

    @pytest.mark.asyncio
    async def test_backend_outage_recorded_per_client(self, test_db, period, monkeypatch):
        clients = [candidate("Ada"), candidate("Ben")]
        monkeypatch.setattr(
            "care_billing.services.bulk_generation.evaluate_branch",
            AsyncMock(return_value=clients),
        )
        outage = OperationalError("INSERT", {}, Exception("connection refused"))
        writer = AsyncMock(side_effect=[written(20.0), outage])

        result = await generate(test_db, period, BRANCH_ID, ORGANIZATION_ID, writer=writer)

        assert result.success_count == 1
        assert result.error_count == 1
        assert result.errors[0].reason == "backend error while writing invoice"

    @pytest.mark.asyncio
    async def test_no_eligible_clients(self, test_db, period, monkeypatch):
        monkeypatch.setattr(
            "care_billing.services.bulk_generation.evaluate_branch",
            AsyncMock(return_value=[candidate("Ben", rated=False)]),
        )
        writer = AsyncMock()
        on_progress = MagicMock()

        result = await generate(test_db, period, BRANCH_ID, ORGANIZATION_ID, on_progress=on_progress, writer=writer)

        assert result.success_count == 0
        assert result.error_count == 0
        assert result.errors == []
        assert result.message == "No eligible clients found"
        writer.assert_not_awaited()
        on_progress.assert_not_called()

    @pytest.mark.asyncio
    async def test_result_is_immutable(self, test_db, period, monkeypatch):
        monkeypatch.setattr(
            "care_billing.services.bulk_generation.evaluate_branch",
            AsyncMock(return_value=[]),
        )
        result = await generate(test_db, period, BRANCH_ID, ORGANIZATION_ID, writer=AsyncMock())
        with pytest.raises(Exception):
            result.success_count = 5


class TestRunLifecycle:

    @pytest.mark.asyncio
    async def test_preview_confirm_generate(self, test_db, period, monkeypatch):
        monkeypatch.setattr(
            "care_billing.services.bulk_generation.evaluate_branch",
            AsyncMock(return_value=[candidate("Ada", 2), candidate("Ben", rated=False)]),
        )
        writer = AsyncMock(return_value=written(40.0, 2))
        run = BulkGenerationRun(test_db, period, BRANCH_ID, ORGANIZATION_ID, writer=writer)
        assert run.state == RunState.idle

        summary = await run.preview()
        assert run.state == RunState.previewing
        assert [c.client_name for c in summary.eligible] == ["Ada"]
        assert [c.client_name for c in summary.skipped] == ["Ben"]
        assert summary.total_bookings == 2
        writer.assert_not_awaited()

        run.confirm()
        result = await run.generate()

        assert run.state == RunState.completed
        assert result.success_count == 1

    @pytest.mark.asyncio
    async def test_generate_requires_confirmation(self, test_db, period):
        run = BulkGenerationRun(test_db, period, BRANCH_ID, ORGANIZATION_ID, writer=AsyncMock())
        with pytest.raises(RunStateError):
            await run.generate()
        with pytest.raises(RunStateError):
            run.confirm()

    @pytest.mark.asyncio
    async def test_cancel_after_preview_writes_nothing(self, test_db, period, monkeypatch):
        monkeypatch.setattr(
            "care_billing.services.bulk_generation.evaluate_branch",
            AsyncMock(return_value=[candidate("Ada")]),
        )
        writer = AsyncMock()
        run = BulkGenerationRun(test_db, period, BRANCH_ID, ORGANIZATION_ID, writer=writer)
        await run.preview()

        run.cancel()

        assert run.state == RunState.cancelled
        with pytest.raises(RunStateError):
            await run.generate()
        writer.assert_not_awaited()


class TestGenerateAgainstDatabase:

    @pytest.mark.asyncio
    async def test_rated_client_invoiced_unrated_client_reported(self, test_db, period, billable_client, unrated_client):
        rated_id, unrated_id = billable_client.id, unrated_client.id

        result = await generate(test_db, period, BRANCH_ID, ORGANIZATION_ID)

        assert result.success_count == 1
        assert result.error_count == 0
        assert result.skipped_count == 1
        assert result.total_amount == 40.0
        assert result.invoices[0].client_id == rated_id
        assert result.invoices[0].line_item_count == 2
        assert result.total_amount == sum(i.amount for i in result.invoices)
        assert len(result.errors) == 1
        assert result.errors[0].client_id == unrated_id
        assert result.errors[0].reason == "no active rate basis"

        rows = (await test_db.execute(select(Booking).where(Booking.client_id == unrated_id))).scalars().all()
        assert not any(b.is_invoiced for b in rows)

    @pytest.mark.asyncio
    async def test_second_run_reports_duplicates(self, test_db, period, billable_client):
        await generate(test_db, period, BRANCH_ID, ORGANIZATION_ID)

        result = await generate(test_db, period, BRANCH_ID, ORGANIZATION_ID)

        assert result.success_count == 0
        assert result.error_count == 1
        assert result.errors[0].reason == "duplicate invoice already exists for period"

    @pytest.mark.asyncio
    async def test_one_client_failing_does_not_stop_others(self, test_db, period, billable_client):
        # Second rated client whose only visit is outside every rate's hours
        other = ClientFactory(first_name="Cy", last_name="Cole")
        test_db.add(other)
        await test_db.flush()
        test_db.add(RateScheduleFactory(client_id=other.id, days_covered=["saturday"]))
        start, end = visit_at(date(2026, 3, 2), hour=7)
        test_db.add(BookingFactory(client_id=other.id, start_time=start, end_time=end))
        await test_db.commit()

        result = await generate(test_db, period, BRANCH_ID, ORGANIZATION_ID)

        assert result.success_count == 1
        assert result.error_count == 1
        assert result.errors[0].client_name == "Cy Cole"
        assert result.errors[0].reason == "no applicable rate for bookings in period"

    @pytest.mark.asyncio
    async def test_preview_writes_nothing(self, test_db, period, billable_client, unrated_client):
        summary = await preview(test_db, period, BRANCH_ID)

        assert len(summary.eligible) == 1
        assert len(summary.skipped) == 1
        rows = (await test_db.execute(select(Booking))).scalars().all()
        assert not any(b.is_invoiced for b in rows)

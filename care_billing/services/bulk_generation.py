"""Bulk invoice generation.

Generates one invoice per rate-eligible client with bookings in a period.

Run lifecycle: idle -> previewing -> confirmed -> generating -> completed.
The preview is the only cancellable point; it performs no writes. Once
generating starts, every eligible client is attempted in order, one at a
time. A failure for one client is recorded in the result and the loop moves
on; ``generate`` never raises for per-client failures.

Every per-client error is treated as local to that client, including
backend failures. If the backend is down, each remaining client fails fast
and is reported, and the successes already committed stay in the result.
"""

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional, Union
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from care_billing.exceptions import BillingEngineError
from care_billing.schemas.eligibility import ClientEligibility
from care_billing.schemas.invoice import (
    BulkGenerationPreview,
    BulkGenerationProgress,
    BulkGenerationResult,
    GeneratedInvoiceSummary,
    GenerationError,
    WrittenInvoice,
)
from care_billing.schemas.period import PeriodDetails
from care_billing.services.eligibility import evaluate_branch
from care_billing.services.invoice_writer import write_invoice

logger = logging.getLogger(__name__)

NO_ELIGIBLE_CLIENTS = "No eligible clients found"
NO_RATE_BASIS = "no active rate basis"

ProgressSink = Callable[[BulkGenerationProgress], Union[None, Awaitable[None]]]
ClientWriter = Callable[[ClientEligibility], Awaitable[WrittenInvoice]]


class RunState(str, Enum):
    idle = "idle"
    previewing = "previewing"
    confirmed = "confirmed"
    generating = "generating"
    completed = "completed"
    cancelled = "cancelled"


class RunStateError(RuntimeError):
    """Operation not allowed in the run's current state."""


@dataclass
class ClientOutcome:
    candidate: ClientEligibility
    invoice: Optional[WrittenInvoice] = None
    reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.invoice is not None


def failure_reason(exc: Exception) -> str:
    """Human-readable reason for a client's failure."""
    if isinstance(exc, BillingEngineError):
        return exc.detail
    if isinstance(exc, SQLAlchemyError):
        return "backend error while writing invoice"
    return "unexpected error while writing invoice"


async def _notify(sink: Optional[ProgressSink], progress: BulkGenerationProgress):
    if sink is None:
        return
    try:
        outcome = sink(progress)
        if inspect.isawaitable(outcome):
            await outcome
    except Exception as e:
        # A broken progress sink must not abort the run
        logger.error(f"Progress callback failed at {progress.current}/{progress.total}: {e}", exc_info=True)


async def iter_generation(
    eligible: list[ClientEligibility],
    write: ClientWriter,
    on_progress: Optional[ProgressSink] = None,
) -> AsyncIterator[ClientOutcome]:
    """Attempt each client in order and yield its outcome."""
    total = len(eligible)
    for index, candidate in enumerate(eligible):
        await _notify(
            on_progress,
            BulkGenerationProgress(current=index, total=total, current_client=candidate.client_name),
        )
        logger.info(
            f"Processing client {candidate.client_name} ({candidate.booking_count} bookings), "
            f"{index + 1} of {total}"
        )
        try:
            invoice = await write(candidate)
        except Exception as e:
            reason = failure_reason(e)
            if isinstance(e, BillingEngineError):
                logger.warning(f"Invoice not generated for {candidate.client_name}: {reason}")
            else:
                logger.error(f"Error generating invoice for {candidate.client_name}: {e}", exc_info=True)
            yield ClientOutcome(candidate=candidate, reason=reason)
            continue
        yield ClientOutcome(candidate=candidate, invoice=invoice)


def split_candidates(candidates: list[ClientEligibility]) -> tuple[list, list]:
    eligible = [c for c in candidates if c.has_rate_basis]
    skipped = [c for c in candidates if not c.has_rate_basis]
    return eligible, skipped


class BulkGenerationRun:
    """One bulk generation run for a branch and period."""

    def __init__(
        self,
        db: AsyncSession,
        period: PeriodDetails,
        branch_id: UUID,
        organization_id: UUID,
        writer: Optional[ClientWriter] = None,
    ):
        self.db = db
        self.period = period
        self.branch_id = branch_id
        self.organization_id = organization_id
        self.writer = writer or self._write_client
        self.state = RunState.idle
        self._preview: Optional[BulkGenerationPreview] = None

    async def _write_client(self, candidate: ClientEligibility) -> WrittenInvoice:
        return await write_invoice(
            self.db,
            candidate.client_id,
            self.branch_id,
            self.organization_id,
            self.period,
        )

    async def preview(self) -> BulkGenerationPreview:
        if self.state not in (RunState.idle, RunState.previewing):
            raise RunStateError(f"Cannot preview a run that is {self.state.value}")
        self.state = RunState.previewing
        candidates = await evaluate_branch(self.db, self.branch_id, self.period)
        eligible, skipped = split_candidates(candidates)
        self._preview = BulkGenerationPreview(
            period_start=self.period.start_date,
            period_end=self.period.end_date,
            eligible=eligible,
            skipped=skipped,
        )
        return self._preview

    def confirm(self):
        if self.state != RunState.previewing:
            raise RunStateError("A run must be previewed before it is confirmed")
        self.state = RunState.confirmed

    def cancel(self):
        """Discard the preview; nothing has been written yet."""
        if self.state not in (RunState.idle, RunState.previewing, RunState.confirmed):
            raise RunStateError(f"Cannot cancel a run that is {self.state.value}")
        self._preview = None
        self.state = RunState.cancelled

    async def generate(self, on_progress: Optional[ProgressSink] = None) -> BulkGenerationResult:
        if self.state != RunState.confirmed or self._preview is None:
            raise RunStateError("A run must be confirmed before generating")
        preview = self._preview
        self.state = RunState.generating

        if not preview.eligible:
            self.state = RunState.completed
            logger.info(f"Bulk generation for branch {self.branch_id}: no eligible clients")
            return BulkGenerationResult(skipped_count=len(preview.skipped), message=NO_ELIGIBLE_CLIENTS)

        logger.info(
            f"Starting bulk generation for branch {self.branch_id}, "
            f"{self.period.start_date} to {self.period.end_date}: {len(preview.eligible)} clients"
        )

        invoices: list[GeneratedInvoiceSummary] = []
        errors: list[GenerationError] = [
            GenerationError(
                client_id=c.client_id,
                client_name=c.client_name,
                booking_count=c.booking_count,
                reason=NO_RATE_BASIS,
            )
            for c in preview.skipped
        ]
        error_count = 0

        async for outcome in iter_generation(preview.eligible, self.writer, on_progress):
            candidate = outcome.candidate
            if outcome.succeeded:
                invoices.append(
                    GeneratedInvoiceSummary(
                        client_id=candidate.client_id,
                        client_name=candidate.client_name,
                        invoice_number=outcome.invoice.invoice_number,
                        amount=outcome.invoice.amount,
                        line_item_count=outcome.invoice.line_item_count,
                    )
                )
            else:
                error_count += 1
                errors.append(
                    GenerationError(
                        client_id=candidate.client_id,
                        client_name=candidate.client_name,
                        booking_count=candidate.booking_count,
                        reason=outcome.reason,
                    )
                )

        self.state = RunState.completed
        result = BulkGenerationResult(
            success_count=len(invoices),
            error_count=error_count,
            skipped_count=len(preview.skipped),
            total_amount=round(sum(i.amount for i in invoices), 2),
            invoices=invoices,
            errors=errors,
        )
        logger.info(
            f"Bulk generation complete: {result.success_count} succeeded, "
            f"{result.error_count} failed, {result.skipped_count} skipped, total {result.total_amount}"
        )
        return result


async def preview(db: AsyncSession, period: PeriodDetails, branch_id: UUID) -> BulkGenerationPreview:
    """Eligible and skipped clients for a branch and period, without writing."""
    candidates = await evaluate_branch(db, branch_id, period)
    eligible, skipped = split_candidates(candidates)
    return BulkGenerationPreview(
        period_start=period.start_date,
        period_end=period.end_date,
        eligible=eligible,
        skipped=skipped,
    )


async def generate(
    db: AsyncSession,
    period: PeriodDetails,
    branch_id: UUID,
    organization_id: UUID,
    on_progress: Optional[ProgressSink] = None,
    writer: Optional[ClientWriter] = None,
) -> BulkGenerationResult:
    """Preview, confirm and generate in one call."""
    run = BulkGenerationRun(db, period, branch_id, organization_id, writer=writer)
    await run.preview()
    run.confirm()
    return await run.generate(on_progress)

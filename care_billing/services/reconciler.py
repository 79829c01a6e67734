"""Expense and extra-time reconciliation.

Merges manual expense entries with selected expense claims and extra-time
records into one candidate invoice body. Selected ids are resolved against
the catalog returned by ``eligibility.evaluate_client``; ids that are
unknown, already invoiced or not approved are dropped, not rejected, since
the catalog may have changed between fetch and submit.
"""

import logging
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from care_billing.exceptions import EmptySelectionError
from care_billing.schemas.eligibility import ClientBillableSources
from care_billing.schemas.reconciliation import (
    ManualExpenseEntry,
    ReconciledLine,
    ReconciliationResult,
    ReconciliationTotals,
)
from care_billing.services.visit_billing import money

logger = logging.getLogger(__name__)


def manual_line(entry: ManualExpenseEntry) -> ReconciledLine:
    """Manual entry line billed at its amount.

    The admin cost percentage is recorded on the line for reporting only.
    """
    amount = money(entry.amount)
    return ReconciledLine(
        line_type="manual_expense",
        description=entry.description or entry.expense_type,
        unit_price=amount,
        line_total=amount,
        admin_cost_percentage=entry.admin_cost_percentage,
        pay_staff=entry.pay_staff,
        staff_id=entry.staff_id,
        pay_staff_amount=entry.pay_staff_amount,
    )


def _select(selected_ids: Iterable[UUID], available: dict, is_consumed) -> tuple[list, list[UUID]]:
    """Split selected ids into resolvable rows and dropped ids, keeping order."""
    resolved, dropped, seen = [], [], set()
    for source_id in selected_ids:
        if source_id in seen:
            continue
        seen.add(source_id)
        row = available.get(source_id)
        if row is None or is_consumed(row):
            dropped.append(source_id)
        else:
            resolved.append(row)
    return resolved, dropped


def line_totals(lines: list[ReconciledLine]) -> ReconciliationTotals:
    """Per-kind subtotals and grand total of reconciled lines."""
    def subtotal(line_type):
        return sum((l.line_total for l in lines if l.line_type == line_type), Decimal("0"))

    manual, claims, extra = subtotal("manual_expense"), subtotal("expense_claim"), subtotal("extra_time")
    return ReconciliationTotals(manual=manual, claims=claims, extra_time=extra, grand=manual + claims + extra)


def require_selection(manual_entries, selected_claim_ids, selected_extra_time_ids):
    """Reject a request that selects nothing at all."""
    if not manual_entries and not selected_claim_ids and not selected_extra_time_ids:
        raise EmptySelectionError("Select at least one expense, claim or extra-time record")


def reconcile(
    manual_entries: Optional[list[ManualExpenseEntry]],
    selected_claim_ids: Optional[list[UUID]],
    selected_extra_time_ids: Optional[list[UUID]],
    catalog: ClientBillableSources,
) -> ReconciliationResult:
    """Build the invoice body and the list of sources it consumes."""
    manual_entries = list(manual_entries or [])
    selected_claim_ids = list(selected_claim_ids or [])
    selected_extra_time_ids = list(selected_extra_time_ids or [])

    require_selection(manual_entries, selected_claim_ids, selected_extra_time_ids)

    claims, dropped_claims = _select(
        selected_claim_ids,
        {c.id: c for c in catalog.expenses},
        lambda c: not c.selectable,
    )
    extra_time, dropped_extra = _select(
        selected_extra_time_ids,
        {r.id: r for r in catalog.extra_time},
        lambda r: not r.selectable,
    )
    if dropped_claims or dropped_extra:
        logger.info(
            f"Client {catalog.client_id}: dropped {len(dropped_claims)} stale expense claim(s) "
            f"and {len(dropped_extra)} stale extra-time record(s) from selection"
        )

    lines = [manual_line(entry) for entry in manual_entries]
    for claim in claims:
        amount = money(claim.amount)
        lines.append(
            ReconciledLine(
                line_type="expense_claim",
                description=claim.description or claim.category.replace("_", " ").title(),
                unit_price=amount,
                line_total=amount,
                staff_id=claim.staff_id,
                source_expense_id=claim.id,
            )
        )
    for record in extra_time:
        cost = money(record.total_cost)
        lines.append(
            ReconciledLine(
                line_type="extra_time",
                description=f"Extra time on {record.work_date.isoformat()} ({record.extra_time_minutes} mins)",
                unit_price=cost,
                line_total=cost,
                staff_id=record.staff_id,
                source_extra_time_id=record.id,
            )
        )

    return ReconciliationResult(
        line_items=lines,
        totals=line_totals(lines),
        source_expense_ids=[c.id for c in claims],
        source_extra_time_ids=[r.id for r in extra_time],
        dropped_expense_ids=dropped_claims,
        dropped_extra_time_ids=dropped_extra,
    )

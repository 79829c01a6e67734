"""Visit billing calculator.

Prices completed visits against a client's rate bases:

1. Find the first active rate basis whose date range covers the visit day,
   whose covered days include the weekday (or ``bank_holiday`` on a
   registered bank holiday), and whose time window contains the planned
   start.
2. Bill the planned duration (actual duration when configured). Visits
   longer than 60 minutes round up to whole hours.
3. Every charge type is billed as unit rate x minutes / 60 x the bank
   holiday multiplier; ``flat_rate`` takes its unit rate from the
   15/30/45/60-minute bands.
4. VAT is added per line when the rate basis is vatable.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional
from uuid import UUID

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def money(value) -> Decimal:
    if isinstance(value, float):
        value = str(value)
    return Decimal(value or 0).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class RateBasis:
    """A priceable rate, normalized from either rate mechanism."""

    id: UUID
    source: str  # schedule, assignment
    start_date: date
    end_date: Optional[date]
    base_rate: Decimal
    charge_type: str = "rate_per_minutes_pro_rata"
    # None covers every day
    days_covered: Optional[list[str]] = None
    time_from: Optional[time] = None
    time_until: Optional[time] = None
    rate_15_minutes: Optional[Decimal] = None
    rate_30_minutes: Optional[Decimal] = None
    rate_45_minutes: Optional[Decimal] = None
    rate_60_minutes: Optional[Decimal] = None
    bank_holiday_multiplier: Decimal = Decimal("1")
    is_vatable: bool = False

    @classmethod
    def from_schedule(cls, schedule) -> "RateBasis":
        return cls(
            id=schedule.id,
            source="schedule",
            start_date=schedule.start_date,
            end_date=schedule.end_date,
            base_rate=Decimal(schedule.base_rate),
            charge_type=schedule.charge_type or "rate_per_minutes_pro_rata",
            days_covered=[d.lower() for d in (schedule.days_covered or [])],
            time_from=schedule.time_from,
            time_until=schedule.time_until,
            rate_15_minutes=schedule.rate_15_minutes,
            rate_30_minutes=schedule.rate_30_minutes,
            rate_45_minutes=schedule.rate_45_minutes,
            rate_60_minutes=schedule.rate_60_minutes,
            bank_holiday_multiplier=Decimal(schedule.bank_holiday_multiplier or 1),
            is_vatable=bool(schedule.is_vatable),
        )

    @classmethod
    def from_assignment(cls, assignment, service_rate) -> "RateBasis":
        days = [d.lower() for d in (service_rate.applicable_days or [])]
        return cls(
            id=assignment.id,
            source="assignment",
            start_date=assignment.start_date or service_rate.effective_from,
            end_date=assignment.end_date or service_rate.effective_to,
            base_rate=Decimal(service_rate.amount),
            charge_type=service_rate.rate_type or "hourly_rate",
            days_covered=days or None,
            is_vatable=bool(service_rate.is_vatable),
        )

    def overlaps(self, start: date, end: date) -> bool:
        return self.start_date <= end and (self.end_date is None or self.end_date >= start)

    def covers(self, visit: "Visit") -> bool:
        day = visit.date
        if day < self.start_date or (self.end_date and day > self.end_date):
            return False
        if self.days_covered is not None:
            full = day.strftime("%A").lower()
            short = day.strftime("%a").lower()
            covered = (
                full in self.days_covered
                or short in self.days_covered
                or (visit.is_bank_holiday and "bank_holiday" in self.days_covered)
            )
            if not covered:
                return False
        if self.time_from is not None and self.time_until is not None:
            start = visit.planned_start.time()
            return self.time_from <= start <= self.time_until
        return True

    def unit_rate(self, minutes: int) -> Decimal:
        if self.charge_type == "flat_rate":
            for limit, rate in (
                (15, self.rate_15_minutes),
                (30, self.rate_30_minutes),
                (45, self.rate_45_minutes),
                (60, self.rate_60_minutes),
            ):
                if minutes <= limit and rate:
                    return Decimal(rate)
        return self.base_rate


@dataclass
class Visit:
    id: UUID
    client_id: UUID
    date: date
    planned_start: datetime
    planned_end: datetime
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    is_bank_holiday: bool = False

    @classmethod
    def from_booking(cls, booking, bank_holidays: Iterable[date] = ()) -> "Visit":
        day = booking.start_time.date()
        return cls(
            id=booking.id,
            client_id=booking.client_id,
            date=day,
            planned_start=booking.start_time,
            planned_end=booking.end_time,
            actual_start=booking.actual_start_time,
            actual_end=booking.actual_end_time,
            is_bank_holiday=day in set(bank_holidays),
        )

    @property
    def planned_minutes(self) -> int:
        return _minutes_between(self.planned_start, self.planned_end)

    @property
    def actual_minutes(self) -> int:
        if self.actual_start and self.actual_end:
            return _minutes_between(self.actual_start, self.actual_end)
        return self.planned_minutes


def _minutes_between(start: datetime, end: datetime) -> int:
    return max(0, round((end - start).total_seconds() / 60))


@dataclass
class BillingCalculation:
    visit_id: UUID
    description: str
    date: date
    billing_duration_minutes: int
    rate_type: str
    unit_rate: Decimal
    multiplier: Decimal
    line_total: Decimal
    vat_amount: Decimal
    is_bank_holiday: bool
    applies_60_min_rule: bool


@dataclass
class BillingSummary:
    line_items: list[BillingCalculation] = field(default_factory=list)
    unpriced_visit_ids: list[UUID] = field(default_factory=list)
    net_amount: Decimal = Decimal("0")
    vat_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    total_billable_minutes: int = 0


class VisitBillingCalculator:
    """Calculate billing for visits from rate bases."""

    def __init__(self, rate_bases: list[RateBasis], use_actual_time: bool = False, vat_rate: float = 0.2):
        self.rate_bases = rate_bases
        self.use_actual_time = use_actual_time
        self.vat_rate = Decimal(str(vat_rate))

    def calculate_visits_billing(self, visits: Iterable[Visit]) -> BillingSummary:
        summary = BillingSummary()
        for visit in visits:
            calculation = self.calculate_visit_billing(visit)
            if calculation is None:
                summary.unpriced_visit_ids.append(visit.id)
                continue
            summary.line_items.append(calculation)

        summary.net_amount = sum((i.line_total for i in summary.line_items), Decimal("0"))
        summary.vat_amount = sum((i.vat_amount for i in summary.line_items), Decimal("0"))
        summary.total_amount = summary.net_amount + summary.vat_amount
        summary.total_billable_minutes = sum(i.billing_duration_minutes for i in summary.line_items)
        return summary

    def calculate_visit_billing(self, visit: Visit) -> Optional[BillingCalculation]:
        rate = self.find_applicable_rate(visit)
        if rate is None:
            logger.warning(f"No applicable rate found for visit {visit.id} on {visit.date}")
            return None

        minutes = visit.actual_minutes if self.use_actual_time else visit.planned_minutes
        applies_60_min_rule = minutes > 60
        if applies_60_min_rule:
            minutes = -(-minutes // 60) * 60

        multiplier = rate.bank_holiday_multiplier if visit.is_bank_holiday else Decimal("1")
        unit_rate = rate.unit_rate(minutes)
        line_total = money(unit_rate * minutes / 60 * multiplier)
        vat_amount = money(line_total * self.vat_rate) if rate.is_vatable else Decimal("0.00")

        return BillingCalculation(
            visit_id=visit.id,
            description=self._describe(visit, minutes, multiplier),
            date=visit.date,
            billing_duration_minutes=minutes,
            rate_type=rate.charge_type,
            unit_rate=money(unit_rate),
            multiplier=multiplier,
            line_total=line_total,
            vat_amount=vat_amount,
            is_bank_holiday=visit.is_bank_holiday,
            applies_60_min_rule=applies_60_min_rule,
        )

    def find_applicable_rate(self, visit: Visit) -> Optional[RateBasis]:
        for rate in self.rate_bases:
            if rate.covers(visit):
                return rate
        return None

    def _describe(self, visit: Visit, minutes: int, multiplier: Decimal) -> str:
        span = f"{visit.planned_start:%H:%M} - {visit.planned_end:%H:%M}"
        basis = "actual" if self.use_actual_time else "planned"
        description = f"Service on {visit.date.isoformat()} {span} ({minutes} mins {basis})"
        if visit.is_bank_holiday:
            description += f" - Bank Holiday ({multiplier}x)"
        return description

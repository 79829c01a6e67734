"""Billing period resolution.

Preset periods are fixed day counts ending today (not calendar weeks or
months). Custom periods are validated and counted inclusively.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

from care_billing.exceptions import InvalidRangeError
from care_billing.schemas.period import PeriodType, PeriodRequest, PeriodDetails

PRESET_DAYS = {
    PeriodType.weekly: 7,
    PeriodType.fortnightly: 14,
    PeriodType.monthly: 30,
}


def _as_date(value: Union[date, str]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise InvalidRangeError(f"Invalid date: {value!r}")


def resolve_period(
    period_type: Union[PeriodType, str],
    custom_range: Optional[tuple] = None,
    today: Optional[date] = None,
) -> PeriodDetails:
    """Resolve a period selection into a concrete inclusive date range."""
    try:
        period_type = PeriodType(period_type)
    except ValueError:
        raise InvalidRangeError(f"Unknown period type: {period_type!r}")

    if period_type == PeriodType.custom:
        if not custom_range or len(custom_range) != 2 or None in custom_range:
            raise InvalidRangeError("Custom period requires a start and end date")
        start, end = (_as_date(v) for v in custom_range)
        if start > end:
            raise InvalidRangeError(
                f"Start date {start.isoformat()} is after end date {end.isoformat()}"
            )
        days = (end - start).days + 1
    else:
        days = PRESET_DAYS[period_type]
        end = today or date.today()
        start = end - timedelta(days=days - 1)

    label = period_type.value.capitalize()
    return PeriodDetails(
        type=period_type,
        label=label,
        description=f"{start.isoformat()} to {end.isoformat()} ({days} days)",
        start_date=start,
        end_date=end,
        days=days,
    )


def period_bounds(period: PeriodDetails) -> tuple[datetime, datetime]:
    """Half-open UTC window [start 00:00, day after end 00:00) for timestamp columns."""
    start = datetime.combine(period.start_date, time.min, tzinfo=timezone.utc)
    end = datetime.combine(period.end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return start, end


def invoice_description(period: PeriodDetails) -> str:
    return f"{period.label} Invoice ({period.start_date.isoformat()} to {period.end_date.isoformat()})"


def resolve_request(request: PeriodRequest, today: Optional[date] = None) -> PeriodDetails:
    custom_range = None
    if request.period_type == PeriodType.custom:
        custom_range = (request.start_date, request.end_date)
    return resolve_period(request.period_type, custom_range, today)

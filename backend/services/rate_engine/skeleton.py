"""
Calendar skeleton generator

Builds the fixed-length planning window for a hotel: one CalendarDay per
date with freeze, monthly minimum and last-minute-floor flags set from the
rate config. Live rates and sources are filled in later by the resolver.
"""
from datetime import date, datetime, timedelta, timezone
from typing import List, Union

from .models import CalendarDay, RateConfig, RateSource, MONTH_KEYS, WEEKDAY_CODES

DEFAULT_HORIZON_DAYS = 365


def to_utc_date(value: Union[date, datetime]) -> date:
    """Normalise a reference date; aware datetimes are read in UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def month_key(d: date) -> str:
    """'jan'..'dec' key used by monthly_min_rates"""
    return MONTH_KEYS[d.month - 1]


def weekday_code(d: date) -> str:
    """'mon'..'sun' code used by last_minute_floor.dow"""
    return WEEKDAY_CODES[d.weekday()]


def generate(
    config: RateConfig,
    reference_date: Union[date, datetime],
    horizon_days: int = DEFAULT_HORIZON_DAYS
) -> List[CalendarDay]:
    """
    Generate the calendar skeleton.

    Day i (0 = reference date) is frozen when i <= rate_freeze_period. The
    last-minute floor is only attached to unfrozen days within
    last_minute_floor.days of the reference date on an active weekday.

    Args:
        config: Validated hotel rate config
        reference_date: "Today" for the hotel
        horizon_days: Number of days to generate

    Returns:
        List of CalendarDay in date order
    """
    start = to_utc_date(reference_date)
    freeze_period = max(config.rate_freeze_period, 0)
    lmf = config.last_minute_floor
    lmf_days = max(lmf.days, 0)

    days = []
    for i in range(max(horizon_days, 0)):
        current = start + timedelta(days=i)
        is_frozen = i <= freeze_period

        floor_rate = None
        if lmf.enabled and not is_frozen and i <= lmf_days and weekday_code(current) in lmf.dow:
            floor_rate = lmf.rate

        days.append(CalendarDay(
            date=current,
            day_of_week=weekday_code(current).upper(),
            month=month_key(current).upper(),
            live_rate=0.0,
            rate=0.0,
            source=RateSource.EXTERNAL,
            is_frozen=is_frozen,
            guardrail_min=config.monthly_min_rates.get(month_key(current), 0.0),
            floor_rate_lmf=floor_rate,
        ))

    return days

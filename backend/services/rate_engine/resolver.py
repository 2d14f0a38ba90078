"""
Rate source & override resolver

Merges live/persisted per-day rates into the calendar skeleton and layers the
two override partitions on top:

- saved: values believed persisted
- pending: values entered locally but not yet submitted

A pending value always shadows the saved one. All functions here are pure and
return new objects; OverrideState transitions never mutate their input.
"""
import logging
import math
from dataclasses import replace
from datetime import date
from typing import Optional, List, Dict, Mapping, Iterable, Union, Tuple

from .models import (
    CalendarDay, CalculatorState, ExternalRate, OverrideState, RateSource,
    ResolvedDay, StatusLabel,
)
from .pricing import compute_sell_rate

logger = logging.getLogger(__name__)

DayOrKey = Union[CalendarDay, date, str]


def _key(value: DayOrKey) -> str:
    if isinstance(value, CalendarDay):
        return value.key
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


def _external_by_key(external_rates) -> Dict[str, ExternalRate]:
    if external_rates is None:
        return {}
    if isinstance(external_rates, Mapping):
        items = external_rates.values()
    else:
        items = external_rates
    rates = {}
    for item in items:
        if not isinstance(item, ExternalRate):
            item = ExternalRate.from_dict(item)
        rates[item.date.isoformat()] = item
    return rates


def overlay(skeleton: List[CalendarDay], external_rates) -> List[CalendarDay]:
    """Copy live rate, source and persisted rate onto matching skeleton days"""
    by_key = _external_by_key(external_rates)
    merged = []
    for day in skeleton:
        ext = by_key.get(day.key)
        if ext is None:
            merged.append(day)
        else:
            merged.append(replace(day, live_rate=ext.live_rate, source=ext.source, rate=ext.rate))
    return merged


def status_label(day: CalendarDay, has_pending: bool) -> StatusLabel:
    if day.is_frozen:
        return StatusLabel.FROZEN
    if day.source == RateSource.MANUAL and not has_pending:
        return StatusLabel.MANUAL
    if has_pending:
        return StatusLabel.PENDING
    if day.source == RateSource.EXTERNAL:
        return StatusLabel.EXTERNAL
    return StatusLabel.AI


def merge(
    skeleton: List[CalendarDay],
    external_rates,
    saved: Mapping[str, float],
    pending: Mapping[str, float],
    calc: Optional[CalculatorState] = None,
    unconfirmed: Iterable[str] = ()
) -> List[ResolvedDay]:
    """
    Project the calendar for display and pricing.

    Args:
        skeleton: Output of skeleton.generate()
        external_rates: ExternalRate objects or {date, rate, source, liveRate} dicts,
            as a list or a mapping keyed by date
        saved: Committed overrides by ISO date
        pending: Unsubmitted overrides by ISO date
        calc: When given, current and effective sell rates are computed
        unconfirmed: Saved dates still awaiting submission acknowledgement

    Returns:
        List of ResolvedDay in skeleton order
    """
    unconfirmed = set(unconfirmed)
    resolved = []

    for day in overlay(skeleton, external_rates):
        has_pending = pending.get(day.key) is not None
        has_saved = saved.get(day.key) is not None

        override = None
        if has_pending:
            override = pending[day.key]
        elif has_saved:
            override = saved[day.key]

        current_sell = effective_sell = None
        if calc is not None:
            base = override if override is not None else day.live_rate
            current_sell = compute_sell_rate(day.live_rate, calc.genius_pct, calc, day.date)
            effective_sell = compute_sell_rate(base, calc.genius_pct, calc, day.date)

        resolved.append(ResolvedDay(
            day=day,
            status=status_label(day, has_pending),
            override=override,
            override_is_pending=has_pending,
            override_is_unconfirmed=not has_pending and has_saved and day.key in unconfirmed,
            current_sell_rate=current_sell,
            effective_sell_rate=effective_sell,
        ))

    return resolved


# ============================================
# OVERRIDE STATE TRANSITIONS
# ============================================

def parse_override_value(value) -> Optional[float]:
    """
    Parse user input for an override cell.

    Empty strings, "-", non-numeric text and NaN mean "clear" and return None.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if value in ("", "-"):
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def set_override(state: OverrideState, day: CalendarDay, value) -> OverrideState:
    """Set a pending override. Frozen days are left untouched."""
    if day.is_frozen:
        logger.debug(f"Ignoring override for frozen day {day.key}")
        return state

    number = parse_override_value(value)
    if number is None:
        return clear_override(state, day)

    pending = dict(state.pending)
    pending[day.key] = number
    return replace(state, pending=pending)


def clear_override(state: OverrideState, day: DayOrKey) -> OverrideState:
    """Drop the pending value for a date, revealing the saved one (if any)."""
    if isinstance(day, CalendarDay) and day.is_frozen:
        return state
    key = _key(day)
    if key not in state.pending:
        return state
    pending = dict(state.pending)
    del pending[key]
    return replace(state, pending=pending)


def cancel_pending(state: OverrideState) -> OverrideState:
    return replace(state, pending={})


def commit_batch(state: OverrideState) -> Tuple[OverrideState, Dict[str, float]]:
    """
    Optimistically move every pending override into saved.

    Committed dates are marked unconfirmed until the submission is
    acknowledged. Returns the new state and the committed batch.
    """
    batch = dict(state.pending)
    saved = dict(state.saved)
    saved.update(batch)
    new_state = OverrideState(
        saved=saved,
        pending={},
        unconfirmed=frozenset(state.unconfirmed | set(batch)),
    )
    return new_state, batch


def _owned(state: OverrideState, batch: Mapping[str, float]) -> Dict[str, float]:
    """Batch dates still awaiting this batch's acknowledgement.

    A date committed again by a later batch carries that batch's value in
    saved and is left to it.
    """
    return {
        key: value for key, value in batch.items()
        if key in state.unconfirmed and state.saved.get(key) == value
    }


def confirm_batch(state: OverrideState, batch: Mapping[str, float]) -> OverrideState:
    owned = _owned(state, batch)
    return replace(state, unconfirmed=frozenset(state.unconfirmed - set(owned)))


def rollback_batch(
    state: OverrideState,
    batch: Mapping[str, float],
    previous_saved: Mapping[str, float]
) -> OverrideState:
    """
    Undo a failed optimistic commit.

    Batch values go back to pending unless the user has typed something newer
    for that date since; saved values return to what they were before the
    commit. Dates re-committed by a later batch are untouched.
    """
    owned = _owned(state, batch)
    pending = dict(state.pending)
    saved = dict(state.saved)

    for key, value in owned.items():
        pending.setdefault(key, value)
        if key in previous_saved:
            saved[key] = previous_saved[key]
        else:
            del saved[key]

    return OverrideState(
        saved=saved,
        pending=pending,
        unconfirmed=frozenset(state.unconfirmed - set(owned)),
    )


def saved_from_calendar(days: Iterable[CalendarDay]) -> Dict[str, float]:
    """Initial saved overrides: persisted Manual days with a positive rate"""
    return {
        day.key: day.rate
        for day in days
        if day.source == RateSource.MANUAL and day.rate > 0
    }

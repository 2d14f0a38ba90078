"""
Guardrails and room differentials

Rules applied around the sell rate calculator: clamping a suggested rate to
the freeze / last-minute floor / monthly minimum / global maximum rules of a
calendar day, and deriving other room types' rates from the base room.
"""
import logging
import math
from dataclasses import dataclass
from typing import Optional, List

from .models import CalendarDay, RoomDifferential
from .pricing import round_for_display

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GuardrailResult:
    final_rate: Optional[float]
    is_frozen: bool = False
    is_floor_active: bool = False
    min_applied: float = 0.0
    reason: str = "CALCULATED"


def _positive(value) -> bool:
    return value is not None and not math.isnan(value) and value > 0


def apply_guardrails(
    suggested_rate: Optional[float],
    live_rate: Optional[float],
    day: CalendarDay,
    guardrail_max: float
) -> GuardrailResult:
    """
    Clamp a suggested rate to the day's rules.

    Frozen days keep the live PMS rate. If the PMS has no usable rate the
    monthly minimum (or the suggestion itself) is used so a frozen day is
    never pushed to zero.
    """
    monthly_min = day.guardrail_min or 0.0

    if day.is_frozen:
        if not _positive(live_rate):
            return GuardrailResult(
                final_rate=monthly_min if monthly_min > 0 else suggested_rate,
                is_frozen=True,
                min_applied=monthly_min,
                reason="FROZEN_FALLBACK",
            )
        return GuardrailResult(
            final_rate=live_rate,
            is_frozen=True,
            min_applied=monthly_min,
            reason="FROZEN",
        )

    if suggested_rate is None:
        return GuardrailResult(final_rate=None, min_applied=monthly_min, reason="NO_RATE")

    effective = suggested_rate
    floor_active = False

    if day.floor_rate_lmf is not None and effective < day.floor_rate_lmf:
        effective = day.floor_rate_lmf
        floor_active = True

    if effective < monthly_min:
        effective = monthly_min

    if guardrail_max and guardrail_max > 0 and effective > guardrail_max:
        effective = guardrail_max

    return GuardrailResult(
        final_rate=round_for_display(effective),
        is_floor_active=floor_active,
        min_applied=monthly_min,
    )


def clamp_to_minimum(value: float, day: CalendarDay) -> float:
    """Raise a manual base rate to the day's monthly minimum."""
    if day.guardrail_min > 0 and value < day.guardrail_min:
        logger.info(f"Rate {value} below minimum {day.guardrail_min} on {day.key}, adjusted")
        return day.guardrail_min
    return value


def calculate_differential(
    base_rate: Optional[float],
    target_room_type_id: str,
    differentials: List[RoomDifferential]
) -> Optional[float]:
    """
    Derived rate for a room type from the base room rate.

    Returns None when the base is unusable, so an invalid base never
    propagates to derived rooms. Rooms without a rule get the base rate.
    """
    if not _positive(base_rate):
        return None

    rule = next((r for r in differentials or [] if r.room_type_id == str(target_room_type_id)), None)
    if rule is None:
        return base_rate

    if rule.operator == "+":
        rate = base_rate * (1 + rule.value / 100)
    else:
        rate = base_rate * (1 - rule.value / 100)

    final = round_for_display(rate)
    if not _positive(final):
        return None
    return final

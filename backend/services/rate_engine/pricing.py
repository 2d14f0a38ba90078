"""
Sell Rate Pricing Calculator

Turns a PMS base rate into the guest-facing sell rate by applying the
discount stack in a fixed order:

1. Strategic multiplier
2. Non-refundable rate plan discount
3. Exclusive-tax injection (US style properties only)
4. Deep deal (black-friday / limited-time) - exclusive of everything below
5. Otherwise, multiplicatively:
   a. Loyalty (Genius) discount
   b. Best standard campaign (highest discount, lowest id on ties)
   c. Mobile discount, unless a mobile-blocking campaign is running
   d. Country rate discount (never blocked)

The result is left unrounded; use round_for_display() for presentation.
"""
import math
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List

from .models import CalculatorState, Campaign


def is_campaign_valid(campaign: Campaign, on_date: Optional[date]) -> bool:
    """Active campaign with both dates set whose range contains on_date (inclusive)"""
    if on_date is None or not campaign.active:
        return False
    if campaign.start_date is None or campaign.end_date is None:
        return False
    return campaign.start_date <= on_date <= campaign.end_date


def select_deep_deal(campaigns: List[Campaign], on_date: date) -> Optional[Campaign]:
    """First valid deep deal campaign for the date, if any"""
    for campaign in campaigns:
        if campaign.is_deep_deal and is_campaign_valid(campaign, on_date):
            return campaign
    return None


def valid_standard_campaigns(campaigns: List[Campaign], on_date: date) -> List[Campaign]:
    return [
        c for c in campaigns
        if not c.is_deep_deal and is_campaign_valid(c, on_date)
    ]


def select_standard_campaign(campaigns: List[Campaign], on_date: date) -> Optional[Campaign]:
    """
    Best standard campaign for the date.

    Highest discount wins; equal discounts go to the lowest campaign id so
    the choice does not depend on the order campaigns were saved in.
    """
    valid = valid_standard_campaigns(campaigns, on_date)
    if not valid:
        return None
    return min(valid, key=lambda c: (-c.discount, c.id))


def _discount(rate: float, percent: float) -> float:
    return rate * (1 - float(percent) / 100)


def rate_factor(
    loyalty_pct: float,
    calc: Optional[CalculatorState],
    on_date: date,
    include_targeting: bool = True,
    force_multiplier: Optional[float] = None
) -> float:
    """
    Combined multiplicative factor applied to the base rate.

    Args:
        loyalty_pct: Genius/loyalty discount percent (0 disables)
        calc: Discount configuration, None yields 0
        on_date: Stay date, used for campaign validity
        include_targeting: Apply mobile and country discounts
        force_multiplier: Replace calc.multiplier (e.g. 1.0 to price a raw PMS rate)

    Returns:
        Factor such that sell rate = base rate * factor
    """
    if calc is None:
        return 0.0

    factor = calc.multiplier if force_multiplier is None else float(force_multiplier)

    if calc.non_refundable_active:
        factor = _discount(factor, calc.non_refundable_percent)

    # Exclusive tax goes on after hotel discounts, before OTA discounts
    if calc.tax_type == "exclusive" and calc.tax_percent > 0:
        factor = factor * (1 + float(calc.tax_percent) / 100)

    deep_deal = select_deep_deal(calc.campaigns, on_date)
    if deep_deal is not None:
        return _discount(factor, deep_deal.discount)

    if loyalty_pct and loyalty_pct > 0:
        factor = _discount(factor, loyalty_pct)

    standard = valid_standard_campaigns(calc.campaigns, on_date)
    best = select_standard_campaign(standard, on_date)
    if best is not None:
        factor = _discount(factor, best.discount)

    if include_targeting:
        mobile_blocked = any(c.blocks_mobile for c in standard)
        if calc.mobile_active and not mobile_blocked:
            factor = _discount(factor, calc.mobile_percent)
        if calc.country_rate_active:
            factor = _discount(factor, calc.country_rate_percent)

    return factor


def _invalid_rate(value) -> bool:
    if value is None:
        return True
    try:
        value = float(value)
    except (TypeError, ValueError):
        return True
    return math.isnan(value) or value <= 0


def compute_sell_rate(
    base_rate: float,
    loyalty_pct: float,
    calc: Optional[CalculatorState],
    on_date: date,
    include_targeting: bool = True,
    force_multiplier: Optional[float] = None
) -> float:
    """Forward calculation: base rate -> guest sell rate. 0 for a missing/non-positive base."""
    if _invalid_rate(base_rate) or calc is None:
        return 0.0
    factor = rate_factor(loyalty_pct, calc, on_date, include_targeting, force_multiplier)
    return float(base_rate) * factor


def required_base_rate(
    target_sell_rate: float,
    loyalty_pct: float,
    calc: Optional[CalculatorState],
    on_date: date,
    include_targeting: bool = True,
    force_multiplier: Optional[float] = None
) -> float:
    """
    Reverse calculation: the base rate needed to land on target_sell_rate.

    Used when a manager types the desired sell rate instead of the PMS rate.
    """
    if _invalid_rate(target_sell_rate) or calc is None:
        return 0.0
    factor = rate_factor(loyalty_pct, calc, on_date, include_targeting, force_multiplier)
    if factor == 0:
        return 0.0
    return float(target_sell_rate) / factor


def round_for_display(value: Optional[float], places: int = 2) -> Optional[float]:
    """Round half-up to `places` decimals for presentation"""
    if value is None:
        return None
    step = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(step, rounding=ROUND_HALF_UP))

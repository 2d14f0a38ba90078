"""Tests for the sell rate calculator."""
from datetime import date

import pytest

from services.rate_engine import CalculatorState, Campaign
from services.rate_engine.pricing import (
    compute_sell_rate, required_base_rate, rate_factor, select_standard_campaign,
    is_campaign_valid, round_for_display,
)

STAY = date(2025, 6, 15)


def test_zero_or_negative_base_rate_is_zero(plain_calc, campaign):
    calc = plain_calc(mobile_active=True, campaigns=[campaign("black-friday", 50)])
    assert compute_sell_rate(0, 20, calc, STAY) == 0
    assert compute_sell_rate(-10, 20, calc, STAY) == 0
    assert compute_sell_rate(None, 20, calc, STAY) == 0


def test_missing_calculator_state_is_zero():
    assert compute_sell_rate(100, 0, None, STAY) == 0


def test_multiplier_and_non_refundable(plain_calc):
    calc = plain_calc(multiplier=1.3, non_refundable_active=True, non_refundable_percent=15)
    assert compute_sell_rate(100, 0, calc, STAY) == pytest.approx(100 * 1.3 * 0.85)


def test_deep_deal_is_exclusive(plain_calc, campaign):
    calc = plain_calc(
        mobile_active=True,
        country_rate_active=True,
        campaigns=[campaign("black-friday", 50), campaign("summer-sale", 30)],
    )
    assert compute_sell_rate(100, 20, calc, STAY) == pytest.approx(50)


def test_deep_deal_still_applies_after_non_refundable(plain_calc, campaign):
    calc = plain_calc(non_refundable_active=True, non_refundable_percent=10,
                      campaigns=[campaign("limited-time", 50)])
    assert compute_sell_rate(100, 20, calc, STAY) == pytest.approx(45)


def test_mobile_blocked_by_mobile_blocking_campaign(plain_calc, campaign):
    calc = plain_calc(mobile_active=True, mobile_percent=10,
                      campaigns=[campaign("early-deal", 10)])
    assert compute_sell_rate(100, 0, calc, STAY) == pytest.approx(90)


def test_mobile_applies_with_non_blocking_campaign(plain_calc, campaign):
    calc = plain_calc(mobile_active=True, mobile_percent=10,
                      campaigns=[campaign("summer-sale", 10)])
    assert compute_sell_rate(100, 0, calc, STAY) == pytest.approx(81)


def test_country_rate_is_never_blocked(plain_calc, campaign):
    calc = plain_calc(mobile_active=True, mobile_percent=10,
                      country_rate_active=True, country_rate_percent=5,
                      campaigns=[campaign("early-deal", 10)])
    assert compute_sell_rate(100, 0, calc, STAY) == pytest.approx(85.5)


def test_blocking_campaign_blocks_mobile_even_when_not_the_best(plain_calc, campaign):
    calc = plain_calc(mobile_active=True, mobile_percent=10,
                      campaigns=[campaign("getaway-deal", 5), campaign("summer-sale", 20)])
    # best campaign (20%) applies, mobile still blocked by getaway-deal
    assert compute_sell_rate(100, 0, calc, STAY) == pytest.approx(80)


def test_loyalty_then_best_campaign(plain_calc, campaign):
    calc = plain_calc(campaigns=[campaign("spring", 10), campaign("summer-sale", 25)])
    assert compute_sell_rate(200, 10, calc, STAY) == pytest.approx(200 * 0.9 * 0.75)


def test_full_stack_order(campaign):
    calc = CalculatorState(
        multiplier=1.3,
        non_refundable_active=True, non_refundable_percent=15,
        mobile_active=True, mobile_percent=10,
        country_rate_active=True, country_rate_percent=5,
        campaigns=[campaign("summer-sale", 20)],
    )
    expected = 100 * 1.3 * 0.85 * 0.9 * 0.8 * 0.9 * 0.95
    assert compute_sell_rate(100, 10, calc, STAY) == pytest.approx(expected)


def test_result_is_not_rounded(plain_calc):
    calc = plain_calc(multiplier=1.0, non_refundable_active=True, non_refundable_percent=33)
    assert compute_sell_rate(99.99, 0, calc, STAY) == pytest.approx(99.99 * 0.67)
    assert round_for_display(compute_sell_rate(99.99, 0, calc, STAY)) == 66.99
    assert round_for_display(2.5, places=0) == 3.0


def test_exclusive_tax_applied_before_ota_discounts(plain_calc):
    calc = plain_calc(non_refundable_active=True, non_refundable_percent=10,
                      tax_type="exclusive", tax_percent=20)
    assert compute_sell_rate(100, 10, calc, STAY) == pytest.approx(100 * 0.9 * 1.2 * 0.9)


def test_inclusive_tax_is_ignored(plain_calc):
    calc = plain_calc(tax_type="inclusive", tax_percent=20)
    assert compute_sell_rate(100, 0, calc, STAY) == pytest.approx(100)


def test_include_targeting_false_skips_mobile_and_country(plain_calc):
    calc = plain_calc(mobile_active=True, mobile_percent=10,
                      country_rate_active=True, country_rate_percent=5)
    assert compute_sell_rate(100, 0, calc, STAY, include_targeting=False) == pytest.approx(100)


def test_force_multiplier(plain_calc):
    calc = plain_calc(multiplier=1.3)
    assert compute_sell_rate(100, 0, calc, STAY, force_multiplier=1.0) == pytest.approx(100)


class TestCampaignValidity:
    def test_missing_dates_never_valid(self):
        assert not is_campaign_valid(Campaign(slug="x", discount=10), STAY)
        assert not is_campaign_valid(Campaign(slug="x", discount=10, start_date=date(2025, 1, 1)), STAY)

    def test_inactive_never_valid(self, campaign):
        assert not is_campaign_valid(campaign("summer-sale", 10, active=False), STAY)

    def test_range_is_inclusive(self, campaign):
        c = campaign("summer-sale", 10, start=date(2025, 6, 1), end=date(2025, 6, 15))
        assert is_campaign_valid(c, date(2025, 6, 1))
        assert is_campaign_valid(c, date(2025, 6, 15))
        assert not is_campaign_valid(c, date(2025, 5, 31))
        assert not is_campaign_valid(c, date(2025, 6, 16))

    def test_campaign_without_dates_does_not_discount(self, plain_calc):
        calc = plain_calc(campaigns=[Campaign(slug="black-friday", discount=50)])
        assert compute_sell_rate(100, 0, calc, STAY) == pytest.approx(100)

    def test_stored_datetime_strings_are_accepted(self):
        c = Campaign.model_validate({"id": 3, "slug": "summer-sale", "discount": "15",
                                     "startDate": "2025-06-01T00:00:00.000Z",
                                     "endDate": "2025-06-30T00:00:00.000Z"})
        assert c.id == "3"
        assert c.start_date == date(2025, 6, 1)
        assert c.active is True

    def test_stored_datetime_keeps_its_written_date(self):
        c = Campaign.model_validate({"startDate": "2025-11-27T23:00:00.000Z",
                                     "endDate": "2025-11-30T23:00:00.000Z"})
        assert c.start_date == date(2025, 11, 27)
        assert c.end_date == date(2025, 11, 30)


def test_equal_discounts_pick_lowest_id(campaign):
    campaigns = [campaign("late-escape", 15, id="b"), campaign("summer-sale", 15, id="a")]
    assert select_standard_campaign(campaigns, STAY).id == "a"
    assert select_standard_campaign(list(reversed(campaigns)), STAY).id == "a"


def test_tie_break_decides_mobile_blocking_only_by_validity(plain_calc, campaign):
    # Whichever campaign wins the tie, a valid blocking campaign blocks mobile
    calc = plain_calc(mobile_active=True, mobile_percent=10,
                      campaigns=[campaign("late-escape", 15, id="b"), campaign("summer-sale", 15, id="a")])
    assert compute_sell_rate(100, 0, calc, STAY) == pytest.approx(85)


def test_required_base_rate_inverts_forward_calculation(campaign):
    calc = CalculatorState(campaigns=[campaign("summer-sale", 20)])
    base = required_base_rate(150, 10, calc, STAY)
    assert compute_sell_rate(base, 10, calc, STAY) == pytest.approx(150)


def test_required_base_rate_edge_cases(plain_calc):
    assert required_base_rate(0, 0, plain_calc(), STAY) == 0
    assert required_base_rate(100, 0, None, STAY) == 0
    assert required_base_rate(100, 0, plain_calc(multiplier=0), STAY) == 0


def test_rate_factor_matches_sell_rate(campaign):
    calc = CalculatorState(campaigns=[campaign("early-deal", 12)])
    assert compute_sell_rate(80, 5, calc, STAY) == pytest.approx(80 * rate_factor(5, calc, STAY))


def test_calculator_state_from_settings():
    calc = CalculatorState.from_settings(
        "1.25",
        {
            "campaigns": [{"id": "1", "slug": "black-friday", "discount": 40,
                           "startDate": "2025-11-28", "endDate": "2025-12-01"}],
            "mobile": {"active": False, "percent": 12},
            "nonRef": {"percent": 20},
            "tax": {"type": "exclusive", "percent": 8},
        },
        "15",
    )
    assert calc.multiplier == 1.25
    assert calc.mobile_active is False
    assert calc.mobile_percent == 12
    assert calc.non_refundable_active is True
    assert calc.non_refundable_percent == 20
    assert calc.country_rate_active is False
    assert calc.country_rate_percent == 5
    assert calc.tax_type == "exclusive"
    assert calc.genius_pct == 15
    assert calc.campaigns[0].is_deep_deal


def test_calculator_state_defaults():
    calc = CalculatorState.from_settings(None, None, None)
    assert calc.multiplier == 1.3
    assert calc.mobile_active and calc.non_refundable_active
    assert calc.genius_pct == 0

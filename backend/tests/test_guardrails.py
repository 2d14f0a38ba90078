from datetime import date

import pytest

from services.rate_engine import CalendarDay, RoomDifferential
from services.rate_engine.guardrails import apply_guardrails, calculate_differential, clamp_to_minimum

DAY = date(2025, 6, 10)


def make_day(**kwargs):
    return CalendarDay(date=DAY, **kwargs)


class TestApplyGuardrails:
    def test_frozen_day_keeps_live_rate(self):
        result = apply_guardrails(150, 120, make_day(is_frozen=True, guardrail_min=100), 400)
        assert result.final_rate == 120
        assert result.is_frozen
        assert result.reason == "FROZEN"

    def test_frozen_day_without_live_rate_falls_back_to_minimum(self):
        result = apply_guardrails(150, 0, make_day(is_frozen=True, guardrail_min=100), 400)
        assert result.final_rate == 100
        assert result.reason == "FROZEN_FALLBACK"

    def test_frozen_day_without_live_rate_or_minimum_uses_suggestion(self):
        result = apply_guardrails(150, None, make_day(is_frozen=True), 400)
        assert result.final_rate == 150

    def test_no_suggestion(self):
        result = apply_guardrails(None, 120, make_day(), 400)
        assert result.final_rate is None
        assert result.reason == "NO_RATE"

    def test_last_minute_floor_lifts_rate(self):
        result = apply_guardrails(70, 120, make_day(floor_rate_lmf=90), 400)
        assert result.final_rate == 90
        assert result.is_floor_active

    def test_monthly_minimum_lifts_rate(self):
        result = apply_guardrails(70, 120, make_day(guardrail_min=100, floor_rate_lmf=90), 400)
        assert result.final_rate == 100
        assert result.min_applied == 100

    def test_maximum_caps_rate(self):
        assert apply_guardrails(550.5, 120, make_day(), 400).final_rate == 400

    def test_zero_maximum_disables_cap(self):
        assert apply_guardrails(550.5, 120, make_day(), 0).final_rate == 550.5

    def test_result_rounded(self):
        assert apply_guardrails(123.456, 120, make_day(), 400).final_rate == 123.46


def test_clamp_to_minimum():
    assert clamp_to_minimum(80, make_day(guardrail_min=100)) == 100
    assert clamp_to_minimum(120, make_day(guardrail_min=100)) == 120
    assert clamp_to_minimum(80, make_day()) == 80


class TestDifferentials:
    rules = [
        RoomDifferential(room_type_id="2", operator="+", value=20),
        RoomDifferential.model_validate({"roomTypeId": 3, "operator": "-", "value": "10"}),
    ]

    def test_increase(self):
        assert calculate_differential(100, "2", self.rules) == 120

    def test_decrease(self):
        assert calculate_differential(99.99, 3, self.rules) == pytest.approx(89.99)

    def test_no_rule_returns_base(self):
        assert calculate_differential(100, "9", self.rules) == 100

    @pytest.mark.parametrize("base", [None, 0, -5, float("nan")])
    def test_invalid_base(self, base):
        assert calculate_differential(base, "2", self.rules) is None

    def test_full_discount_is_invalid(self):
        rules = [RoomDifferential(room_type_id="2", operator="-", value=100)]
        assert calculate_differential(100, "2", rules) is None

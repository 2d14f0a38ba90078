from datetime import date

import pytest

from services.rate_engine import CalculatorState, Campaign


@pytest.fixture
def plain_calc():
    """Multiplier 1, every optional discount off"""
    def _make(**overrides):
        values = dict(
            multiplier=1.0,
            non_refundable_active=False,
            mobile_active=False,
            country_rate_active=False,
        )
        values.update(overrides)
        return CalculatorState(**values)
    return _make


@pytest.fixture
def campaign():
    def _make(slug, discount, start=date(2025, 1, 1), end=date(2025, 12, 31), id=None, active=True):
        return Campaign(id=id or slug, slug=slug, discount=discount,
                        start_date=start, end_date=end, active=active)
    return _make

"""
Daily rate decision and sell rate calculation engine.
"""
from .models import (
    RateSource,
    StatusLabel,
    RateConfig,
    LastMinuteFloor,
    RoomDifferential,
    Campaign,
    CalculatorState,
    CalendarDay,
    ExternalRate,
    ResolvedDay,
    OverrideState,
    Notification,
    RateEngineError,
    RateConfigError,
)
from .skeleton import generate
from .resolver import merge, set_override, clear_override, commit_batch
from .pricing import compute_sell_rate, required_base_rate, rate_factor
from .guardrails import apply_guardrails, calculate_differential, clamp_to_minimum
from .submission import OverrideSubmissionAdapter, SubmissionResult, SubmissionError
from .session import RateGridSession

__all__ = [
    'RateSource',
    'StatusLabel',
    'RateConfig',
    'LastMinuteFloor',
    'RoomDifferential',
    'Campaign',
    'CalculatorState',
    'CalendarDay',
    'ExternalRate',
    'ResolvedDay',
    'OverrideState',
    'Notification',
    'RateEngineError',
    'RateConfigError',
    'generate',
    'merge',
    'set_override',
    'clear_override',
    'commit_batch',
    'compute_sell_rate',
    'required_base_rate',
    'rate_factor',
    'apply_guardrails',
    'calculate_differential',
    'clamp_to_minimum',
    'OverrideSubmissionAdapter',
    'SubmissionResult',
    'SubmissionError',
    'RateGridSession',
]

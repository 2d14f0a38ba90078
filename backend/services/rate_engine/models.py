"""
Rate engine data model

Calendar records, per-hotel rate rules and the discount configuration used
by the sell rate calculator. Rules arrive as loosely typed JSON blobs (numbers
stored as strings, missing keys, mixed case codes) and are validated here on
load so the rest of the engine can trust them.
"""
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional, List, Dict, Mapping, FrozenSet, Any

from pydantic import BaseModel, Field, field_validator


MONTH_KEYS = ["jan", "feb", "mar", "apr", "may", "jun",
              "jul", "aug", "sep", "oct", "nov", "dec"]
WEEKDAY_CODES = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]  # date.weekday() order

DEEP_DEAL_SLUGS = frozenset({"black-friday", "limited-time"})
MOBILE_BLOCKING_SLUGS = frozenset({"early-deal", "late-escape", "getaway-deal"})


class RateEngineError(Exception):
    """Base exception for rate engine errors"""
    pass


class RateConfigError(RateEngineError):
    """Hotel rate configuration is missing or unusable"""
    pass


class RateSource(str, Enum):
    """Persisted classification of a day's rate."""
    AI = "AI"
    MANUAL = "Manual"
    EXTERNAL = "External"

    @classmethod
    def parse(cls, value: Any) -> "RateSource":
        if isinstance(value, RateSource):
            return value
        text = str(value or "").strip().lower()
        if text == "manual":
            return cls.MANUAL
        if text == "external":
            return cls.EXTERNAL
        # SENTINEL, AI_AUTO, Frozen... are all engine-produced rates
        return cls.AI


class StatusLabel(str, Enum):
    FROZEN = "FROZEN"
    MANUAL = "MANUAL"
    PENDING = "PENDING"
    EXTERNAL = "EXTERNAL"
    AI = "AI"


def _to_number(value: Any, default: float = 0.0) -> float:
    """Coerce stored config values ('400', '', None, 12) to float."""
    if value is None or value == "":
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"not a number: {value!r}")
    if math.isnan(number):
        return default
    return number


def _flag(section: Mapping, default: bool) -> bool:
    value = section.get("active")
    return default if value is None else bool(value)


# ============================================
# RATE CONFIG
# ============================================

class LastMinuteFloor(BaseModel):
    enabled: bool = False
    rate: float = 0.0
    days: int = 0
    dow: FrozenSet[str] = frozenset()

    @field_validator("rate", mode="before")
    @classmethod
    def _rate(cls, v):
        return _to_number(v)

    @field_validator("days", mode="before")
    @classmethod
    def _days(cls, v):
        # Negative windows behave as "today only"
        return max(int(_to_number(v)), 0)

    @field_validator("dow", mode="before")
    @classmethod
    def _dow(cls, v):
        codes = set()
        for code in v or []:
            code = str(code).strip().lower()[:3]
            if code not in WEEKDAY_CODES:
                raise ValueError(f"unknown weekday code: {code!r}")
            codes.add(code)
        return frozenset(codes)


class RoomDifferential(BaseModel):
    room_type_id: str = Field(alias="roomTypeId")
    operator: str = "+"
    value: float = 0.0

    model_config = {"populate_by_name": True}

    @field_validator("room_type_id", mode="before")
    @classmethod
    def _room_type_id(cls, v):
        return str(v)

    @field_validator("operator")
    @classmethod
    def _operator(cls, v):
        if v not in ("+", "-"):
            raise ValueError(f"operator must be '+' or '-', got {v!r}")
        return v

    @field_validator("value", mode="before")
    @classmethod
    def _value(cls, v):
        return _to_number(v)


class RateConfig(BaseModel):
    """Rate rules for one hotel + base room type."""
    hotel_id: Optional[int] = None
    base_room_type_id: Optional[str] = None
    guardrail_max: float = 400.0
    rate_freeze_period: int = 0
    last_minute_floor: LastMinuteFloor = Field(default_factory=LastMinuteFloor)
    monthly_min_rates: Dict[str, float] = Field(default_factory=dict)
    room_differentials: List[RoomDifferential] = Field(default_factory=list)
    rate_id_map: Dict[str, str] = Field(default_factory=dict)

    @field_validator("guardrail_max", mode="before")
    @classmethod
    def _guardrail_max(cls, v):
        return _to_number(v, default=400.0)

    @field_validator("rate_freeze_period", mode="before")
    @classmethod
    def _freeze_period(cls, v):
        return max(int(_to_number(v)), 0)

    @field_validator("base_room_type_id", mode="before")
    @classmethod
    def _base_room(cls, v):
        if v is None or v == "":
            return None
        return str(v)

    @field_validator("last_minute_floor", mode="before")
    @classmethod
    def _lmf(cls, v):
        return v or {}

    @field_validator("monthly_min_rates", mode="before")
    @classmethod
    def _monthly(cls, v):
        rates = {}
        for key, value in (v or {}).items():
            key = str(key).strip().lower()[:3]
            if key not in MONTH_KEYS:
                raise ValueError(f"unknown month key: {key!r}")
            rates[key] = _to_number(value)
        return rates

    @field_validator("room_differentials", mode="before")
    @classmethod
    def _differentials(cls, v):
        return [r for r in (v or []) if r]

    @field_validator("rate_id_map", mode="before")
    @classmethod
    def _rate_ids(cls, v):
        return {str(k): str(val) for k, val in (v or {}).items()}


# ============================================
# CALCULATOR STATE
# ============================================

class Campaign(BaseModel):
    id: str = ""
    slug: str = ""
    name: str = ""
    discount: float = 0.0
    start_date: Optional[date] = Field(default=None, alias="startDate")
    end_date: Optional[date] = Field(default=None, alias="endDate")
    active: bool = True

    model_config = {"populate_by_name": True}

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, v):
        return "" if v is None else str(v)

    @field_validator("discount", mode="before")
    @classmethod
    def _discount(cls, v):
        return _to_number(v)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _dates(cls, v):
        if v is None or v == "":
            return None
        if isinstance(v, datetime):
            return v.date()
        if isinstance(v, str):
            # Stored as ISO datetimes from the browser ("2025-11-28T00:00:00.000Z").
            # The calendar date as written is kept; the UTC offset is ignored, so a
            # local midnight saved as "2025-11-27T23:00:00.000Z" starts on the 27th.
            return v[:10]
        return v

    @field_validator("active", mode="before")
    @classmethod
    def _active(cls, v):
        return True if v is None else v

    @property
    def is_deep_deal(self) -> bool:
        return self.slug in DEEP_DEAL_SLUGS

    @property
    def blocks_mobile(self) -> bool:
        return self.slug in MOBILE_BLOCKING_SLUGS


class CalculatorState(BaseModel):
    """Discount stack configuration for the sell rate calculator."""
    multiplier: float = Field(default=1.3, ge=0)
    campaigns: List[Campaign] = Field(default_factory=list)
    mobile_active: bool = True
    mobile_percent: float = 10.0
    non_refundable_active: bool = True
    non_refundable_percent: float = 15.0
    country_rate_active: bool = False
    country_rate_percent: float = 5.0
    tax_type: str = "inclusive"
    tax_percent: float = 0.0
    genius_pct: float = 0.0

    @field_validator("tax_type")
    @classmethod
    def _tax_type(cls, v):
        if v not in ("inclusive", "exclusive"):
            raise ValueError(f"tax_type must be 'inclusive' or 'exclusive', got {v!r}")
        return v

    @classmethod
    def from_settings(
        cls,
        strategic_multiplier: Any = None,
        calculator_settings: Optional[Mapping] = None,
        genius_discount_pct: Any = None
    ) -> "CalculatorState":
        """
        Build from a managed asset's stored settings.

        calculator_settings is the JSON blob saved by the property hub:
        {campaigns, mobile: {active, percent}, nonRef: {...}, country: {...},
        tax: {type, percent}}. Missing sections fall back to the defaults.
        """
        s = calculator_settings or {}
        mobile = s.get("mobile") or {}
        non_ref = s.get("nonRef") or {}
        country = s.get("country") or {}
        tax = s.get("tax") or {}

        return cls(
            multiplier=_to_number(strategic_multiplier, default=1.3),
            campaigns=s.get("campaigns") or [],
            mobile_active=_flag(mobile, True),
            mobile_percent=_to_number(mobile.get("percent"), default=10.0),
            non_refundable_active=_flag(non_ref, True),
            non_refundable_percent=_to_number(non_ref.get("percent"), default=15.0),
            country_rate_active=_flag(country, False),
            country_rate_percent=_to_number(country.get("percent"), default=5.0),
            tax_type=tax.get("type") or "inclusive",
            tax_percent=_to_number(tax.get("percent")),
            genius_pct=_to_number(genius_discount_pct),
        )


# ============================================
# CALENDAR RECORDS
# ============================================

@dataclass(frozen=True)
class CalendarDay:
    """One date in the planning window."""
    date: date
    day_of_week: str = ""
    month: str = ""
    live_rate: float = 0.0
    rate: float = 0.0                      # persisted rate
    source: RateSource = RateSource.EXTERNAL
    is_frozen: bool = False
    guardrail_min: float = 0.0
    floor_rate_lmf: Optional[float] = None
    occupancy: float = 0.0                 # display only
    adr: float = 0.0                       # display only

    @property
    def key(self) -> str:
        return self.date.isoformat()


@dataclass(frozen=True)
class ExternalRate:
    """Per-day rate as returned by the rates fetch."""
    date: date
    rate: float = 0.0
    source: RateSource = RateSource.AI
    live_rate: float = 0.0

    @classmethod
    def from_dict(cls, data: Mapping) -> "ExternalRate":
        return cls(
            date=date.fromisoformat(str(data["date"])[:10]),
            rate=_to_number(data.get("rate")),
            source=RateSource.parse(data.get("source")),
            live_rate=_to_number(data.get("liveRate", data.get("live_rate"))),
        )


@dataclass(frozen=True)
class ResolvedDay:
    """Read-only projection of one calendar day for display and pricing."""
    day: CalendarDay
    status: StatusLabel
    override: Optional[float] = None
    override_is_pending: bool = False
    override_is_unconfirmed: bool = False
    current_sell_rate: Optional[float] = None
    effective_sell_rate: Optional[float] = None

    @property
    def date(self) -> date:
        return self.day.date

    @property
    def effective_base(self) -> float:
        return self.override if self.override is not None else self.day.live_rate


@dataclass(frozen=True)
class OverrideState:
    """Saved and pending manual overrides keyed by ISO date."""
    saved: Mapping[str, float] = field(default_factory=dict)
    pending: Mapping[str, float] = field(default_factory=dict)
    unconfirmed: FrozenSet[str] = frozenset()

    def value_for(self, key: str) -> Optional[float]:
        if key in self.pending:
            return self.pending[key]
        return self.saved.get(key)


@dataclass(frozen=True)
class Notification:
    """User-visible message raised by a session (toast in the UI)."""
    level: str           # 'info', 'success', 'warning', 'error'
    title: str
    description: str = ""

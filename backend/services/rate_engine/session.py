"""
Rate grid session

Owns one hotel's calendar state: the merged calendar, the override state and
the calculator configuration. Loading is all-or-nothing - any failure leaves
an empty calendar with an error rather than a partially merged one - and the
most recently started load wins when several are in flight.
"""
import logging
from datetime import date
from typing import Optional, List, Dict, Protocol, Any

from .models import (
    CalculatorState, CalendarDay, ExternalRate, Notification, OverrideState,
    RateConfig, RateConfigError,
)
from .guardrails import clamp_to_minimum
from .pricing import required_base_rate, round_for_display
from .resolver import (
    merge, overlay, set_override, clear_override, cancel_pending, saved_from_calendar,
    parse_override_value,
)
from .skeleton import generate, DEFAULT_HORIZON_DAYS
from .submission import OverrideSink, OverrideSubmissionAdapter, SubmissionError, SubmissionResult

logger = logging.getLogger(__name__)


class RateDataSource(Protocol):
    async def get_rate_config(self, hotel_id: str) -> Optional[Dict[str, Any]]:
        ...

    async def get_calculator_state(self, hotel_id: str) -> Optional[CalculatorState]:
        ...

    async def get_rates(self, hotel_id: str, room_type_id: str) -> List[Dict[str, Any]]:
        ...


class RateGridSession:
    """
    Calendar state for a single hotel.

    Usage:
        session = RateGridSession(hotel_id, source=client, sink=client)
        await session.load()
        session.set_override('2025-03-01', 120)
        await session.submit()
        days = session.resolved()
    """

    def __init__(
        self,
        hotel_id: str,
        source: RateDataSource,
        sink: Optional[OverrideSink] = None,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
        today: Optional[date] = None
    ):
        self.hotel_id = str(hotel_id)
        self.source = source
        self.adapter = OverrideSubmissionAdapter(sink) if sink is not None else None
        self.horizon_days = horizon_days
        self.today = today

        self.config: Optional[RateConfig] = None
        self.calc: Optional[CalculatorState] = None
        self.room_type_id: Optional[str] = None
        self.calendar: List[CalendarDay] = []
        self.overrides = OverrideState()
        self.notifications: List[Notification] = []
        self.error: Optional[str] = None
        self.is_loading = False
        self.is_submitting = False

        self._load_token = 0

    def notify(self, level: str, title: str, description: str = "") -> None:
        self.notifications.append(Notification(level, title, description))
        log = {"error": logger.error, "warning": logger.warning}.get(level, logger.info)
        log(f"[hotel {self.hotel_id}] {title}{': ' + description if description else ''}")

    async def _fetch(self, base_room_type_id: Optional[str]):
        raw_config = await self.source.get_rate_config(self.hotel_id)
        if not raw_config:
            raise RateConfigError(f"No rate configuration found for hotel {self.hotel_id}")
        config = raw_config if isinstance(raw_config, RateConfig) else RateConfig.model_validate(raw_config)

        room_type_id = base_room_type_id or config.base_room_type_id
        if not room_type_id:
            raise RateConfigError(f"Base room type is not configured for hotel {self.hotel_id}")

        calc = await self.source.get_calculator_state(self.hotel_id)
        rates = await self.source.get_rates(self.hotel_id, room_type_id)
        return config, calc, room_type_id, [ExternalRate.from_dict(r) if isinstance(r, dict) else r for r in rates]

    async def load(self, base_room_type_id: Optional[str] = None) -> bool:
        """
        Fetch config, calculator settings and rates, then rebuild the calendar.

        Pending overrides are discarded. Returns False when the load failed or
        was superseded by a newer load.
        """
        self._load_token += 1
        token = self._load_token
        self.is_loading = True
        self.error = None
        self.overrides = cancel_pending(self.overrides)

        try:
            config, calc, room_type_id, rates = await self._fetch(base_room_type_id)
            skeleton = generate(config, self.today or date.today(), self.horizon_days)
            calendar = overlay(skeleton, rates)
        except Exception as e:
            if token != self._load_token:
                logger.debug(f"Discarding failed stale load for hotel {self.hotel_id}")
                return False
            logger.error(f"Load rates failed for hotel {self.hotel_id}: {e}")
            self.config = None
            self.calendar = []
            self.overrides = OverrideState()
            self.error = str(e)
            self.is_loading = False
            self.notify("error", "Failed to load rates", str(e))
            return False

        if token != self._load_token:
            logger.debug(f"Discarding stale load for hotel {self.hotel_id}")
            return False

        self.config = config
        self.calc = calc
        self.room_type_id = room_type_id
        self.calendar = calendar
        self.overrides = OverrideState(saved=saved_from_calendar(calendar))
        self.is_loading = False
        logger.info(f"Loaded {len(calendar)} calendar days for hotel {self.hotel_id}")
        return True

    def _day(self, key) -> Optional[CalendarDay]:
        key = key.isoformat() if isinstance(key, date) else str(key)[:10]
        for day in self.calendar:
            if day.key == key:
                return day
        return None

    def _apply_minimum(self, day: CalendarDay, value: float, message: str) -> float:
        clamped = clamp_to_minimum(value, day)
        if clamped != value:
            self.notify("warning", message.format(value=value, minimum=day.guardrail_min))
        return clamped

    def set_override(self, key, value) -> None:
        """Set a base rate override; rates below the monthly minimum are raised to it"""
        day = self._day(key)
        if day is None:
            logger.debug(f"Ignoring override for {key}: outside the calendar window")
            return
        if day.is_frozen:
            return

        number = parse_override_value(value)
        if number is not None and number > 0:
            value = self._apply_minimum(day, number, "Rate below Min ({minimum:g}). Auto-adjusted.")
        self.overrides = set_override(self.overrides, day, value)

    def set_sell_rate(self, key, target) -> None:
        """
        Set the override whose effective sell rate (mobile and country
        discounts excluded) is `target`.

        The required base rate is rounded to a whole amount and raised to the
        monthly minimum. Empty input clears the override.
        """
        day = self._day(key)
        if day is None or day.is_frozen or self.calc is None:
            return

        number = parse_override_value(target)
        if number is None:
            self.overrides = clear_override(self.overrides, day)
            return

        base = round_for_display(
            required_base_rate(number, self.calc.genius_pct, self.calc, day.date, include_targeting=False),
            places=0,
        )
        if base <= 0:
            logger.debug(f"No base rate reaches sell rate {target} on {day.key}")
            return
        base = self._apply_minimum(
            day, base, "Required Base Rate ({value:g}) is below Min ({minimum:g}). Set to Min."
        )
        self.overrides = set_override(self.overrides, day, base)

    def clear_override(self, key) -> None:
        day = self._day(key)
        if day is not None:
            self.overrides = clear_override(self.overrides, day)

    def cancel(self) -> None:
        self.overrides = cancel_pending(self.overrides)

    async def submit(self) -> SubmissionResult:
        if self.adapter is None:
            raise SubmissionError("No override sink configured for this session")
        if not self.room_type_id:
            raise SubmissionError("Calendar must be loaded before submitting overrides")
        if self.is_submitting:
            raise SubmissionError("A submission is already in progress")

        self.is_submitting = True
        try:
            return await self.adapter.submit(self.hotel_id, self.room_type_id, self)
        finally:
            self.is_submitting = False

    def resolved(self):
        """Read-only projection of the calendar for rendering"""
        return merge(
            self.calendar,
            None,
            self.overrides.saved,
            self.overrides.pending,
            calc=self.calc,
            unconfirmed=self.overrides.unconfirmed,
        )

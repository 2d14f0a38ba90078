"""
Rate calendar API endpoints
Per-day rates (stored + live PMS), calendar preview and manual override submission
"""
import logging
import math
from datetime import date, timedelta
from typing import Optional, List, Dict, Any

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field

from database import get_db
from auth import get_current_user, check_hotel_access
from services import rate_repository
from services.pms_rates_client import PMSRatesClient, PMSRatesError
from services.rate_engine import (
    RateConfig, RateSource, generate, merge, compute_sell_rate, apply_guardrails, calculate_differential,
)
from services.rate_engine.resolver import overlay, saved_from_calendar
from services.rate_engine.pricing import round_for_display

router = APIRouter()
logger = logging.getLogger(__name__)

CALENDAR_DAYS = 365


# ============================================
# REQUEST/RESPONSE MODELS
# ============================================

class OverrideItem(BaseModel):
    date: str
    rate: Any = None


class OverrideRequest(BaseModel):
    hotel_id: Optional[int] = Field(default=None, alias="hotelId")
    pms_property_id: Optional[str] = Field(default=None, alias="pmsPropertyId")
    room_type_id: Optional[str] = Field(default=None, alias="roomTypeId")
    overrides: Optional[List[OverrideItem]] = None
    source: Optional[str] = None


class PreviewRequest(BaseModel):
    hotel_id: int = Field(alias="hotelId")
    base_room_type_id: Optional[str] = Field(default=None, alias="baseRoomTypeId")
    start_date: Optional[str] = Field(default=None, alias="startDate")
    days: int = Field(default=CALENDAR_DAYS, ge=1, le=CALENDAR_DAYS)


class CalendarRate(BaseModel):
    date: str
    rate: float
    source: str
    liveRate: float


class PreviewDay(BaseModel):
    date: str
    status: str
    source: str
    liveRate: float
    suggestedRate: Optional[float]
    finalRate: Optional[float]
    override: Optional[float]
    isFrozen: bool
    isFloorActive: bool
    floorRateLMF: Optional[float]
    guardrailMin: float
    currentSellRate: Optional[float]
    effectiveSellRate: Optional[float]


# ============================================
# DEPENDENCIES & HELPERS
# ============================================

async def get_pms_client(db: AsyncSession = Depends(get_db)) -> PMSRatesClient:
    return await PMSRatesClient.from_db(db)


def parse_rate(value) -> Optional[float]:
    """Positive float or None"""
    try:
        rate = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(rate) or math.isinf(rate) or rate <= 0:
        return None
    return rate


async def fetch_live_rates(pms: PMSRatesClient, pms_property_id: Optional[str], room_type_id: str,
                           from_date: date, to_date: date) -> Dict[str, float]:
    if not pms_property_id:
        logger.warning("No PMS property id configured, skipping live rates")
        return {}
    async with pms:
        return await pms.get_rates(pms_property_id, room_type_id, from_date, to_date)


# ============================================
# ENDPOINTS
# ============================================

@router.get("/{hotel_id}/{room_type_id}", response_model=List[CalendarRate])
async def get_rate_calendar(
    hotel_id: int,
    room_type_id: str,
    db: AsyncSession = Depends(get_db),
    pms: PMSRatesClient = Depends(get_pms_client),
    current_user: dict = Depends(get_current_user)
):
    """
    Per-day rates for the next 365 days.

    Union of stored calendar rows and live PMS rates. Stored rows supply
    rate and source; the live PMS rate is attached to every date it covers.
    """
    check_hotel_access(current_user, hotel_id)

    row = await rate_repository.get_config_row(db, hotel_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"No rate configuration found for hotel {hotel_id}")

    start = date.today()
    end = start + timedelta(days=CALENDAR_DAYS)

    stored = await rate_repository.get_stored_rates(db, hotel_id, room_type_id, start, end)
    try:
        live = await fetch_live_rates(pms, row.get("pms_property_id"), room_type_id, start, end)
    except PMSRatesError as e:
        logger.error(f"Live rate fetch failed for hotel {hotel_id}: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to fetch live rates: {e}")

    return rate_repository.merge_stored_and_live(stored, live)


@router.post("/preview", response_model=List[PreviewDay])
async def preview_rates(
    request: PreviewRequest,
    db: AsyncSession = Depends(get_db),
    pms: PMSRatesClient = Depends(get_pms_client),
    current_user: dict = Depends(get_current_user)
):
    """
    Preview the rate calendar.

    For each day: the suggested rate (sell rate of the live PMS rate), the
    final rate after guardrails (or the manual rate), the status label and
    both sell rates.
    """
    check_hotel_access(current_user, request.hotel_id)

    row = await rate_repository.get_config_row(db, request.hotel_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"No rate configuration found for hotel {request.hotel_id}")
    config = RateConfig.model_validate(row)

    room_type_id = request.base_room_type_id or config.base_room_type_id
    if not room_type_id:
        raise HTTPException(status_code=409, detail="Base room type is not configured")

    today = date.today()
    try:
        start = date.fromisoformat(request.start_date) if request.start_date else today
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD")
    start = max(start, today)
    if (start - today).days >= CALENDAR_DAYS:
        raise HTTPException(status_code=400, detail=f"startDate must be within {CALENDAR_DAYS} days of today")
    end = start + timedelta(days=request.days - 1)

    calc = await rate_repository.get_calculator_state(db, request.hotel_id)
    stored = await rate_repository.get_stored_rates(db, request.hotel_id, room_type_id, start, end)
    try:
        live = await fetch_live_rates(pms, row.get("pms_property_id"), room_type_id, start, end)
    except PMSRatesError as e:
        logger.warning(f"Live rates unavailable for preview of hotel {request.hotel_id}: {e}")
        live = {}

    external = rate_repository.merge_stored_and_live(stored, live)
    skeleton = [d for d in generate(config, today, (end - today).days + 1) if d.date >= start]
    saved = saved_from_calendar(overlay(skeleton, external))

    days = []
    for resolved in merge(skeleton, external, saved, {}, calc=calc):
        day = resolved.day
        suggested = compute_sell_rate(day.live_rate, calc.genius_pct, calc, day.date) or None
        guard = apply_guardrails(suggested, day.live_rate, day, config.guardrail_max)
        is_manual = day.source == RateSource.MANUAL and resolved.override is not None

        days.append(PreviewDay(
            date=day.key,
            status=resolved.status.value,
            source=day.source.value,
            liveRate=day.live_rate,
            suggestedRate=round_for_display(suggested),
            finalRate=resolved.override if is_manual else guard.final_rate,
            override=resolved.override,
            isFrozen=day.is_frozen,
            isFloorActive=guard.is_floor_active,
            floorRateLMF=day.floor_rate_lmf,
            guardrailMin=day.guardrail_min,
            currentSellRate=round_for_display(resolved.current_sell_rate),
            effectiveSellRate=round_for_display(resolved.effective_sell_rate),
        ))

    return days


@router.post("/overrides")
async def submit_overrides(
    request: OverrideRequest,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user)
):
    """
    Accept a batch of manual base-room overrides.

    Valid overrides are stored as the day's rate and queued for the PMS -
    for the base room and every room type derived from it through a room
    differential. Invalid rates and frozen dates are dropped. Returns as
    soon as the jobs are queued.
    """
    if not request.hotel_id or not request.pms_property_id or not request.room_type_id \
            or request.overrides is None:
        raise HTTPException(status_code=400, detail="Missing required fields.")

    check_hotel_access(current_user, request.hotel_id)
    change_source = RateSource.parse(request.source or "Manual")
    logger.info(f"Received {len(request.overrides)} overrides for hotel {request.hotel_id} "
                f"(source: {change_source.value})")

    config = await rate_repository.get_rate_config(db, request.hotel_id)
    if config is None:
        raise HTTPException(status_code=404, detail=f"No rate configuration found for hotel {request.hotel_id}")
    if not config.rate_id_map:
        raise HTTPException(status_code=409, detail="Rate ID map is missing. Please re-sync the hotel.")

    frozen = {d.key for d in generate(config, date.today(), config.rate_freeze_period + 1) if d.is_frozen}

    accepted = []
    for item in request.overrides:
        rate = parse_rate(item.rate)
        if rate is None:
            logger.warning(f"Dropping invalid override {item.rate!r} for {item.date}")
            continue
        try:
            key = date.fromisoformat(item.date[:10]).isoformat()
        except ValueError:
            logger.warning(f"Dropping override with invalid date {item.date!r}")
            continue
        if key in frozen:
            logger.warning(f"Dropping override for frozen date {key}")
            continue
        accepted.append({"date": key, "rate": rate})

    room_type_id = str(request.room_type_id)
    batch = []
    for item in accepted:
        base_rate_id = config.rate_id_map.get(room_type_id)
        if base_rate_id:
            batch.append({"rateId": base_rate_id, "date": item["date"], "rate": item["rate"]})

        for rule in config.room_differentials:
            if rule.room_type_id == room_type_id:
                continue
            derived_rate_id = config.rate_id_map.get(rule.room_type_id)
            if not derived_rate_id:
                continue
            derived = calculate_differential(item["rate"], rule.room_type_id, config.room_differentials)
            if derived is not None:
                batch.append({"rateId": derived_rate_id, "date": item["date"], "rate": derived})

    await rate_repository.upsert_manual_rates(db, request.hotel_id, room_type_id, accepted, change_source.value)
    job_count = await rate_repository.enqueue_rate_jobs(db, request.hotel_id, request.pms_property_id, batch)
    await db.commit()

    logger.info(f"Queued {len(batch)} rates across {job_count} jobs for hotel {request.hotel_id}")

    return {
        "success": True,
        "message": "Updates queued for background processing.",
        "accepted": len(accepted),
        "dropped": len(request.overrides) - len(accepted),
        "jobs": job_count,
    }

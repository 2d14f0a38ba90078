"""
Rate configuration API endpoints
Per-hotel rate rules (freeze window, guardrails, last-minute floor, room differentials)
"""
import logging
from typing import Optional, List, Dict, Any

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, ValidationError

from database import get_db
from auth import get_current_user, check_hotel_access
from services import rate_repository
from services.rate_engine import RateConfig, CalculatorState

router = APIRouter()
logger = logging.getLogger(__name__)


# ============================================
# REQUEST/RESPONSE MODELS
# ============================================

class RateConfigUpdate(BaseModel):
    pms_property_id: Optional[str] = None
    base_room_type_id: Optional[str] = None
    guardrail_max: Any = None
    rate_freeze_period: Any = None
    last_minute_floor: Optional[Dict[str, Any]] = None
    monthly_min_rates: Optional[Dict[str, Any]] = None
    room_differentials: Optional[List[Dict[str, Any]]] = None
    rate_id_map: Optional[Dict[str, Any]] = None


class CalculatorSettingsResponse(BaseModel):
    multiplier: float
    genius_pct: float
    mobile_active: bool
    mobile_percent: float
    non_refundable_active: bool
    non_refundable_percent: float
    country_rate_active: bool
    country_rate_percent: float
    tax_type: str
    tax_percent: float
    campaigns: List[Dict[str, Any]]


# ============================================
# ENDPOINTS
# ============================================

@router.get("/{hotel_id}")
async def get_rate_config(
    hotel_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user)
):
    """Get the stored rate rules for a hotel"""
    check_hotel_access(current_user, hotel_id)
    row = await rate_repository.get_config_row(db, hotel_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"No rate configuration found for hotel {hotel_id}")
    return {"success": True, "data": row}


@router.post("/{hotel_id}")
async def save_rate_config(
    hotel_id: int,
    update: RateConfigUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user)
):
    """
    Save rate rules for a hotel.

    Only provided fields are changed; the merged config is validated before
    it is stored.
    """
    check_hotel_access(current_user, hotel_id)

    existing = await rate_repository.get_config_row(db, hotel_id) or {}
    merged = {**existing, **update.model_dump(exclude_none=True)}
    pms_property_id = merged.pop("pms_property_id", None)
    merged.pop("hotel_id", None)

    try:
        config = RateConfig.model_validate(merged)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))

    await rate_repository.save_rate_config(db, hotel_id, config, pms_property_id, current_user.get("username"))
    logger.info(f"Rate config saved for hotel {hotel_id} by {current_user.get('username')}")

    return {"success": True, "data": config.model_dump(mode="json", by_alias=True)}


@router.get("/{hotel_id}/calculator", response_model=CalculatorSettingsResponse)
async def get_calculator_settings(
    hotel_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user)
):
    """Discount stack used to turn base rates into sell rates"""
    check_hotel_access(current_user, hotel_id)
    calc: CalculatorState = await rate_repository.get_calculator_state(db, hotel_id)
    data = calc.model_dump(mode="json", by_alias=True)
    return CalculatorSettingsResponse(**data)

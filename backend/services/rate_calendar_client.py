"""
Rate Calendar Client

Async HTTP client for the rate calendar API. Implements both sides a
RateGridSession needs: the data source (config, calculator settings, per-day
rates) and the override sink.
"""
import os
import logging
from typing import Optional, List, Dict, Any

import httpx

from services.rate_engine import CalculatorState

logger = logging.getLogger(__name__)

BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:8000")


class RateCalendarAPIError(Exception):
    """Custom exception for rate calendar API errors"""
    pass


class RateCalendarClient:
    """
    Usage:
        async with RateCalendarClient(token=token) as client:
            session = RateGridSession(hotel_id, source=client, sink=client)
            await session.load()
    """

    def __init__(self, token: str = None, base_url: str = None,
                 transport: httpx.AsyncBaseTransport = None):
        self.token = token or os.getenv("RATE_CALENDAR_TOKEN")
        self.base_url = (base_url or BACKEND_URL).rstrip("/")
        self.transport = transport
        self._pms_property_ids: Dict[str, Optional[str]] = {}

    async def __aenter__(self):
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        self.client = httpx.AsyncClient(
            base_url=self.base_url, headers=headers, timeout=30.0, transport=self.transport
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise RateCalendarAPIError(f"{method} {path} failed: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            try:
                detail = response.json().get("detail")
            except ValueError:
                detail = response.text[:500]
            raise RateCalendarAPIError(f"API error {response.status_code}: {detail}")
        return response.json()

    async def get_rate_config(self, hotel_id: str) -> Optional[Dict[str, Any]]:
        """Stored rate config, or None if the hotel has none"""
        data = await self._request("GET", f"/rate-config/{hotel_id}")
        if data is None:
            return None
        config = data.get("data") or {}
        self._pms_property_ids[str(hotel_id)] = config.get("pms_property_id")
        return config

    async def get_calculator_state(self, hotel_id: str) -> CalculatorState:
        data = await self._request("GET", f"/rate-config/{hotel_id}/calculator")
        if data is None:
            return CalculatorState()
        return CalculatorState.model_validate(data)

    async def get_rates(self, hotel_id: str, room_type_id: str) -> List[Dict[str, Any]]:
        data = await self._request("GET", f"/rates/{hotel_id}/{room_type_id}")
        if data is None:
            raise RateCalendarAPIError(f"No rate calendar for hotel {hotel_id}")
        return data

    async def submit_overrides(self, hotel_id: str, room_type_id: str,
                               overrides: List[Dict]) -> Dict[str, Any]:
        """Queue a batch of base-room overrides; raises on any failure"""
        pms_property_id = self._pms_property_ids.get(str(hotel_id))
        if pms_property_id is None:
            config = await self.get_rate_config(hotel_id) or {}
            pms_property_id = config.get("pms_property_id")

        data = await self._request("POST", "/rates/overrides", json={
            "hotelId": int(hotel_id),
            "pmsPropertyId": pms_property_id,
            "roomTypeId": room_type_id,
            "overrides": overrides,
        })
        if not data or not data.get("success"):
            raise RateCalendarAPIError("Failed to submit overrides")

        logger.info(f"Submitted {len(overrides)} overrides for hotel {hotel_id}: {data.get('jobs')} jobs queued")
        return data

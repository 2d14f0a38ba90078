"""
PMS Rates Client

Reads live room rates from the PMS and pushes rate overrides to it
(Cloudbeds style API: OAuth refresh-token flow, getRate / putRate).

putRate is asynchronous on the PMS side - a successful call only means the
update was accepted for processing.
"""
import os
import base64
import asyncio
import logging
from datetime import date
from typing import Optional, List, Dict

import httpx
from sqlalchemy import text

logger = logging.getLogger(__name__)

PMS_API_URL = os.getenv("PMS_API_URL", "https://api.cloudbeds.com/api/v1.3")
PMS_TOKEN_URL = os.getenv("PMS_TOKEN_URL", "https://hotels.cloudbeds.com/api/v1.3/access_token")

# Max rates per putRate call
MAX_RATES_PER_CALL = 30


class PMSRatesError(Exception):
    """Custom exception for PMS rates API errors"""
    pass


class PMSRatesClient:
    """
    Async client for reading and writing PMS rates.

    Use as an async context manager:

        async with PMSRatesClient() as client:
            rates = await client.get_rates(property_id, room_type_id, start, end)
    """

    def __init__(self, client_id: str = None, client_secret: str = None,
                 refresh_token: str = None, base_url: str = None,
                 token_url: str = None, transport: httpx.AsyncBaseTransport = None):
        self.client_id = client_id or os.getenv("PMS_CLIENT_ID")
        self.client_secret = client_secret or os.getenv("PMS_CLIENT_SECRET")
        self.refresh_token = refresh_token or os.getenv("PMS_REFRESH_TOKEN")
        self.base_url = base_url or PMS_API_URL
        self.token_url = token_url or PMS_TOKEN_URL
        self.transport = transport
        self._access_token: Optional[str] = None

        if not all([self.client_id, self.client_secret, self.refresh_token]):
            logger.warning("PMS OAuth credentials not fully configured")

    CREDENTIALS_SQL = """
        SELECT config_key, config_value, COALESCE(is_encrypted, false) as is_encrypted
        FROM system_config
        WHERE config_key IN ('pms_client_id', 'pms_client_secret', 'pms_refresh_token')
    """

    @classmethod
    def _from_rows(cls, rows) -> "PMSRatesClient":
        config = {}
        for row in rows:
            value = row.config_value
            if row.is_encrypted and value:
                value = base64.b64decode(value.encode()).decode()
            config[row.config_key] = value

        return cls(
            client_id=config.get('pms_client_id'),
            client_secret=config.get('pms_client_secret'),
            refresh_token=config.get('pms_refresh_token'),
        )

    @classmethod
    async def from_db(cls, db):
        """Create client with credentials from system_config"""
        result = await db.execute(text(cls.CREDENTIALS_SQL))
        return cls._from_rows(result.fetchall())

    @classmethod
    def from_sync_db(cls, db):
        """Same as from_db, for scheduler jobs using a sync session"""
        result = db.execute(text(cls.CREDENTIALS_SQL))
        return cls._from_rows(result.fetchall())

    async def __aenter__(self):
        self.client = httpx.AsyncClient(timeout=60.0, transport=self.transport)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.client.aclose()

    def _get_url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint}"

    async def _get_access_token(self) -> str:
        """Refresh-token grant; the token is cached for the life of the client"""
        if self._access_token:
            return self._access_token

        if not all([self.client_id, self.client_secret, self.refresh_token]):
            raise PMSRatesError("PMS OAuth credentials are not configured")

        response = await self.client.post(
            self.token_url,
            data={
                "grant_type": "refresh_token",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
            }
        )
        if response.status_code != 200:
            raise PMSRatesError(f"Token refresh failed {response.status_code}: {response.text[:500]}")

        token = response.json().get("access_token")
        if not token:
            raise PMSRatesError("Token refresh succeeded but no access_token was returned")

        self._access_token = token
        return token

    async def _request(self, method: str, endpoint: str, property_id: str,
                       retry_count: int = 0, **kwargs) -> Dict:
        token = await self._get_access_token()
        response = await self.client.request(
            method,
            self._get_url(endpoint),
            headers={"Authorization": f"Bearer {token}", "X-PROPERTY-ID": str(property_id)},
            **kwargs
        )

        if response.status_code == 429:
            if retry_count < 3:
                wait_time = 10 * (retry_count + 1)
                logger.warning(f"Rate limited by PMS API, waiting {wait_time}s before retry {retry_count + 1}/3")
                await asyncio.sleep(wait_time)
                return await self._request(method, endpoint, property_id, retry_count + 1, **kwargs)
            raise PMSRatesError("Rate limited after 3 retries")

        if response.status_code != 200:
            raise PMSRatesError(f"API error {response.status_code}: {response.text[:500]}")

        data = response.json()
        if data.get("success") is False:
            raise PMSRatesError(f"API returned failure: {data.get('message')}")
        return data

    async def get_rates(
        self,
        property_id: str,
        room_type_id: str,
        from_date: date,
        to_date: date
    ) -> Dict[str, float]:
        """
        Fetch live per-night rates for a room type.

        Returns:
            Dict of {YYYY-MM-DD: rate}; dates without a positive rate are omitted
        """
        data = await self._request(
            "GET", "getRate", property_id,
            params={
                "roomTypeID": room_type_id,
                "startDate": from_date.isoformat(),
                "endDate": to_date.isoformat(),
                "detailedRates": "true",
            }
        )

        detailed = (data.get("data") or {}).get("roomRateDetailed")
        if not isinstance(detailed, list):
            logger.warning(f"roomRateDetailed not found in PMS response for {property_id}/{room_type_id}")
            return {}

        rates = {}
        for item in detailed:
            try:
                rate = float(item.get("rate") or 0)
            except (TypeError, ValueError):
                continue
            if item.get("date") and rate > 0:
                rates[item["date"]] = rate
        return rates

    async def post_rates(self, property_id: str, rates: List[Dict]) -> Dict:
        """
        Push a chunk of rates.

        Args:
            property_id: PMS property ID
            rates: [{rateId, date, rate}], at most MAX_RATES_PER_CALL entries

        Returns:
            PMS response (contains a jobReferenceID)
        """
        if len(rates) > MAX_RATES_PER_CALL:
            raise PMSRatesError(f"At most {MAX_RATES_PER_CALL} rates per call, got {len(rates)}")

        form = {}
        for i, item in enumerate(rates):
            form[f"rates[{i}][rateID]"] = str(item["rateId"])
            form[f"rates[{i}][interval][0][startDate]"] = item["date"]
            form[f"rates[{i}][interval][0][endDate]"] = item["date"]
            form[f"rates[{i}][interval][0][rate]"] = str(item["rate"])

        data = await self._request("POST", "putRate", property_id, data=form)
        logger.info(f"Posted {len(rates)} rates for property {property_id} (job {data.get('jobReferenceID')})")
        return data

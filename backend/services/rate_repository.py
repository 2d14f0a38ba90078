"""
Rate calendar persistence

Raw SQL access for hotel rate rules, calculator settings, stored calendar
rates and the PMS override job queue. Async functions take an AsyncSession
(API); the queue job uses its own sync session.
"""
import json
import logging
from datetime import date
from typing import Optional, List, Dict, Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from services.rate_engine import CalculatorState, RateConfig

logger = logging.getLogger(__name__)

QUEUE_CHUNK_SIZE = 30


async def ensure_tables_exist(db: AsyncSession):
    """Create the rate calendar tables if they don't exist"""
    await db.execute(text("""
        CREATE TABLE IF NOT EXISTS rate_configurations (
            hotel_id INTEGER PRIMARY KEY,
            pms_property_id VARCHAR(50),
            config JSONB NOT NULL DEFAULT '{}'::jsonb,
            updated_at TIMESTAMP DEFAULT NOW(),
            updated_by VARCHAR(100)
        )
    """))
    await db.execute(text("""
        CREATE TABLE IF NOT EXISTS rate_calculator_settings (
            hotel_id INTEGER PRIMARY KEY,
            strategic_multiplier NUMERIC(6,3),
            genius_discount_pct NUMERIC(5,2),
            calculator_settings JSONB NOT NULL DEFAULT '{}'::jsonb,
            updated_at TIMESTAMP DEFAULT NOW()
        )
    """))
    await db.execute(text("""
        CREATE TABLE IF NOT EXISTS rate_calendar (
            hotel_id INTEGER NOT NULL,
            stay_date DATE NOT NULL,
            room_type_id VARCHAR(50) NOT NULL,
            rate NUMERIC(10,2) NOT NULL,
            source VARCHAR(20) NOT NULL,
            last_updated_at TIMESTAMP DEFAULT NOW(),
            PRIMARY KEY (hotel_id, stay_date, room_type_id)
        )
    """))
    await db.execute(text("""
        CREATE TABLE IF NOT EXISTS override_job_queue (
            id SERIAL PRIMARY KEY,
            hotel_id INTEGER NOT NULL,
            payload JSONB NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'PENDING',
            error_message TEXT,
            created_at TIMESTAMP DEFAULT NOW(),
            processed_at TIMESTAMP
        )
    """))
    await db.commit()


# ============================================
# CONFIGURATION
# ============================================

async def get_config_row(db: AsyncSession, hotel_id: int) -> Optional[Dict[str, Any]]:
    """Raw stored config for a hotel, or None"""
    result = await db.execute(
        text("SELECT hotel_id, pms_property_id, config FROM rate_configurations WHERE hotel_id = :hotel_id"),
        {"hotel_id": hotel_id}
    )
    row = result.fetchone()
    if row is None:
        return None
    config = row.config if isinstance(row.config, dict) else json.loads(row.config or "{}")
    return {"hotel_id": row.hotel_id, "pms_property_id": row.pms_property_id, **config}


async def get_rate_config(db: AsyncSession, hotel_id: int) -> Optional[RateConfig]:
    """Validated rate config, or None when the hotel has none"""
    row = await get_config_row(db, hotel_id)
    if row is None:
        return None
    return RateConfig.model_validate(row)


async def save_rate_config(db: AsyncSession, hotel_id: int, config: RateConfig,
                           pms_property_id: Optional[str], username: Optional[str]):
    payload = config.model_dump(mode="json", by_alias=True, exclude={"hotel_id"})
    await db.execute(
        text("""
            INSERT INTO rate_configurations (hotel_id, pms_property_id, config, updated_at, updated_by)
            VALUES (:hotel_id, :pms_property_id, CAST(:config AS jsonb), NOW(), :username)
            ON CONFLICT (hotel_id) DO UPDATE
            SET config = EXCLUDED.config,
                pms_property_id = COALESCE(EXCLUDED.pms_property_id, rate_configurations.pms_property_id),
                updated_at = NOW(),
                updated_by = EXCLUDED.updated_by
        """),
        {
            "hotel_id": hotel_id,
            "pms_property_id": pms_property_id,
            "config": json.dumps(payload),
            "username": username,
        }
    )
    await db.commit()


async def get_calculator_state(db: AsyncSession, hotel_id: int) -> CalculatorState:
    """Calculator settings for a hotel; defaults when none are stored"""
    result = await db.execute(
        text("""
            SELECT strategic_multiplier, genius_discount_pct, calculator_settings
            FROM rate_calculator_settings
            WHERE hotel_id = :hotel_id
        """),
        {"hotel_id": hotel_id}
    )
    row = result.fetchone()
    if row is None:
        return CalculatorState()

    settings = row.calculator_settings
    if isinstance(settings, str):
        settings = json.loads(settings)
    return CalculatorState.from_settings(row.strategic_multiplier, settings, row.genius_discount_pct)


# ============================================
# CALENDAR RATES
# ============================================

async def get_stored_rates(db: AsyncSession, hotel_id: int, room_type_id: str,
                           from_date: date, to_date: date) -> Dict[str, Dict[str, Any]]:
    """Stored calendar rows keyed by ISO date"""
    result = await db.execute(
        text("""
            SELECT stay_date, rate, source
            FROM rate_calendar
            WHERE hotel_id = :hotel_id
              AND room_type_id = :room_type_id
              AND stay_date >= :from_date
              AND stay_date <= :to_date
            ORDER BY stay_date
        """),
        {"hotel_id": hotel_id, "room_type_id": str(room_type_id),
         "from_date": from_date, "to_date": to_date}
    )
    return {
        row.stay_date.isoformat(): {"rate": float(row.rate), "source": row.source}
        for row in result.fetchall()
    }


def merge_stored_and_live(stored: Dict[str, Dict[str, Any]],
                          live: Dict[str, float]) -> List[Dict[str, Any]]:
    """
    Union of stored calendar rows and live PMS rates.

    Dates only known to the PMS get rate 0 and source AI; the live rate is
    attached wherever the PMS returned one.
    """
    days = []
    for key in sorted(set(stored) | set(live)):
        row = stored.get(key)
        days.append({
            "date": key,
            "rate": row["rate"] if row else 0,
            "source": row["source"] if row else "AI",
            "liveRate": live.get(key, 0),
        })
    return days


async def upsert_manual_rates(db: AsyncSession, hotel_id: int, room_type_id: str,
                              overrides: List[Dict[str, Any]], source: str = "Manual"):
    for item in overrides:
        await db.execute(
            text("""
                INSERT INTO rate_calendar (hotel_id, stay_date, room_type_id, rate, source, last_updated_at)
                VALUES (:hotel_id, :stay_date, :room_type_id, :rate, :source, NOW())
                ON CONFLICT (hotel_id, stay_date, room_type_id) DO UPDATE
                SET rate = EXCLUDED.rate, source = EXCLUDED.source, last_updated_at = NOW()
            """),
            {
                "hotel_id": hotel_id,
                "stay_date": date.fromisoformat(item["date"]),
                "room_type_id": str(room_type_id),
                "rate": item["rate"],
                "source": source,
            }
        )


# ============================================
# JOB QUEUE
# ============================================

def chunk_payload(rates: List[Dict[str, Any]], size: int = QUEUE_CHUNK_SIZE) -> List[List[Dict[str, Any]]]:
    return [rates[i:i + size] for i in range(0, len(rates), size)]


async def enqueue_rate_jobs(db: AsyncSession, hotel_id: int, pms_property_id: str,
                            rates: List[Dict[str, Any]]) -> int:
    """Queue rates for the PMS in chunks; returns the number of jobs created"""
    chunks = chunk_payload(rates)
    for chunk in chunks:
        await db.execute(
            text("""
                INSERT INTO override_job_queue (hotel_id, payload, status)
                VALUES (:hotel_id, CAST(:payload AS jsonb), 'PENDING')
            """),
            {"hotel_id": hotel_id, "payload": json.dumps({"pmsPropertyId": pms_property_id, "rates": chunk})}
        )
    return len(chunks)

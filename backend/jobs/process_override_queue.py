"""
Process Override Queue Job

Drains PENDING rows from override_job_queue and posts each chunk of rates to
the PMS. Jobs are claimed with FOR UPDATE SKIP LOCKED so overlapping runs
never post the same chunk twice.

Schedule: Every minute (gated by system_config.sync_override_queue_enabled)

Each job is attempted once. A failed job is marked FAILED with the error
message and the run carries on with the next job. If the PMS client cannot
be built every claimed job is marked FAILED.
"""
import json
import logging
from typing import Dict, Any

from sqlalchemy import text
from database import SyncSessionLocal
from services.pms_rates_client import PMSRatesClient

logger = logging.getLogger(__name__)

MAX_JOBS_PER_RUN = 20


def claim_pending_jobs(db, limit: int = MAX_JOBS_PER_RUN):
    """Mark up to `limit` PENDING jobs as PROCESSING and return them"""
    result = db.execute(
        text("""
            UPDATE override_job_queue
            SET status = 'PROCESSING'
            WHERE id IN (
                SELECT id FROM override_job_queue
                WHERE status = 'PENDING'
                ORDER BY created_at, id
                LIMIT :limit
                FOR UPDATE SKIP LOCKED
            )
            RETURNING id, hotel_id, payload
        """),
        {"limit": limit}
    )
    jobs = result.fetchall()
    db.commit()
    return sorted(jobs, key=lambda j: j.id)


def mark_job(db, job_id: int, status: str, error_message: str = None):
    db.execute(
        text("""
            UPDATE override_job_queue
            SET status = :status, error_message = :error_message, processed_at = NOW()
            WHERE id = :job_id
        """),
        {"job_id": job_id, "status": status, "error_message": error_message}
    )
    db.commit()


async def run_process_override_queue(limit: int = MAX_JOBS_PER_RUN, client: PMSRatesClient = None) -> Dict[str, Any]:
    """
    Post queued override chunks to the PMS.

    Returns:
        Dict with processed/completed/failed counts
    """
    db = SyncSessionLocal()
    stats = {"processed": 0, "completed": 0, "failed": 0}

    try:
        jobs = claim_pending_jobs(db, limit)
        if not jobs:
            logger.debug("No pending override jobs")
            return stats

        logger.info(f"Processing {len(jobs)} override jobs")
        if client is None:
            try:
                client = PMSRatesClient.from_sync_db(db)
            except Exception as e:
                # Claimed jobs must not be left in PROCESSING
                logger.error(f"PMS client unavailable, failing {len(jobs)} claimed jobs: {e}")
                db.rollback()
                for job in jobs:
                    mark_job(db, job.id, "FAILED", f"PMS client unavailable: {e}"[:1000])
                stats["processed"] = stats["failed"] = len(jobs)
                return stats

        async with client:
            for job in jobs:
                stats["processed"] += 1
                payload = job.payload if isinstance(job.payload, dict) else json.loads(job.payload)
                try:
                    await client.post_rates(payload["pmsPropertyId"], payload["rates"])
                    mark_job(db, job.id, "COMPLETED")
                    stats["completed"] += 1
                except Exception as e:
                    logger.error(f"Override job {job.id} for hotel {job.hotel_id} failed: {e}")
                    mark_job(db, job.id, "FAILED", str(e)[:1000])
                    stats["failed"] += 1

        logger.info(f"Override queue run complete: {stats['completed']} completed, {stats['failed']} failed")
        return stats

    except Exception as e:
        logger.error(f"Override queue processing failed: {e}")
        db.rollback()
        raise
    finally:
        db.close()

"""
Override submission adapter

Hands a batch of pending overrides to the persistence boundary with
optimistic semantics: local state is committed before the request is made,
and the batch is sent exactly once. A failed batch is rolled back - values
return to pending and saved values to what they were - instead of leaving
saved overrides that were never persisted.
"""
import logging
from dataclasses import dataclass
from typing import Optional, List, Dict, Protocol

from .models import OverrideState, RateEngineError
from .resolver import commit_batch, confirm_batch, rollback_batch

logger = logging.getLogger(__name__)


class SubmissionError(RateEngineError):
    """Override batch could not be handed to the persistence boundary"""
    pass


class OverrideSink(Protocol):
    async def submit_overrides(self, hotel_id: str, room_type_id: str,
                               overrides: List[Dict]) -> Dict:
        ...


class OverrideHolder(Protocol):
    overrides: OverrideState

    def notify(self, level: str, title: str, description: str = "") -> None:
        ...


@dataclass(frozen=True)
class SubmissionResult:
    success: bool
    submitted: int = 0
    error: Optional[str] = None


def build_payload(batch: Dict[str, float]) -> List[Dict]:
    """[{date, rate}] sorted by date"""
    return [{"date": key, "rate": batch[key]} for key in sorted(batch)]


class OverrideSubmissionAdapter:
    """Submits a holder's pending overrides to an OverrideSink."""

    def __init__(self, sink: OverrideSink):
        self.sink = sink

    async def submit(self, hotel_id: str, room_type_id: str, holder: OverrideHolder) -> SubmissionResult:
        """
        Submit all pending overrides of holder.

        The optimistic commit happens before the sink is awaited, so the
        caller sees the batch as saved immediately. No retry is attempted.
        Only one batch per holder may be in flight; a second submit while
        dates are still unconfirmed raises SubmissionError.
        """
        if holder.overrides.unconfirmed:
            raise SubmissionError(
                f"{len(holder.overrides.unconfirmed)} overrides are still awaiting acknowledgement"
            )
        if not holder.overrides.pending:
            return SubmissionResult(success=True, submitted=0)

        previous_saved = dict(holder.overrides.saved)
        holder.overrides, batch = commit_batch(holder.overrides)
        payload = build_payload(batch)

        holder.notify("info", "Syncing...", f"Queuing {len(payload)} updates...")
        logger.info(f"Submitting {len(payload)} overrides for hotel {hotel_id} room type {room_type_id}")

        try:
            await self.sink.submit_overrides(hotel_id, room_type_id, payload)
        except Exception as e:
            logger.error(f"Override submission failed for hotel {hotel_id}: {e}")
            holder.overrides = rollback_batch(holder.overrides, batch, previous_saved)
            holder.notify("error", "Queue Failed", "Changes were restored as pending. Please retry.")
            return SubmissionResult(success=False, submitted=0, error=str(e))

        holder.overrides = confirm_batch(holder.overrides, batch)
        holder.notify("success", "Updates Queued")
        return SubmissionResult(success=True, submitted=len(payload))

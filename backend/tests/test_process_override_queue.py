import asyncio
import json
from types import SimpleNamespace

import pytest

import scheduler
from jobs import process_override_queue


class FakeSession:
    def __init__(self):
        self.closed = False
        self.rolled_back = False

    def rollback(self):
        self.rolled_back = True

    def close(self):
        self.closed = True


class FakePMS:
    def __init__(self):
        self.posted = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass

    async def post_rates(self, property_id, rates):
        if property_id == "BAD":
            raise RuntimeError("Invalid property")
        self.posted.append((property_id, rates))
        return {"success": True}


@pytest.fixture
def queue(monkeypatch):
    state = {"session": FakeSession(), "jobs": [], "marks": []}

    monkeypatch.setattr(process_override_queue, "SyncSessionLocal", lambda: state["session"])
    monkeypatch.setattr(process_override_queue, "claim_pending_jobs", lambda db, limit: state["jobs"])
    monkeypatch.setattr(process_override_queue, "mark_job",
                        lambda db, job_id, status, error_message=None:
                        state["marks"].append((job_id, status, error_message)))
    return state


def test_each_job_is_posted_once(queue):
    rates = [{"rateId": "R10", "date": "2025-06-05", "rate": 100}]
    queue["jobs"] = [
        SimpleNamespace(id=1, hotel_id=1, payload={"pmsPropertyId": "P1", "rates": rates}),
        SimpleNamespace(id=2, hotel_id=1, payload=json.dumps({"pmsPropertyId": "BAD", "rates": rates})),
        SimpleNamespace(id=3, hotel_id=2, payload={"pmsPropertyId": "P2", "rates": rates}),
    ]
    pms = FakePMS()

    stats = asyncio.run(process_override_queue.run_process_override_queue(client=pms))

    assert stats == {"processed": 3, "completed": 2, "failed": 1}
    assert pms.posted == [("P1", rates), ("P2", rates)]
    assert queue["marks"] == [
        (1, "COMPLETED", None),
        (2, "FAILED", "Invalid property"),
        (3, "COMPLETED", None),
    ]
    assert queue["session"].closed


def test_empty_queue(queue):
    stats = asyncio.run(process_override_queue.run_process_override_queue(client=FakePMS()))
    assert stats == {"processed": 0, "completed": 0, "failed": 0}
    assert queue["session"].closed


def test_claim_failure_rolls_back(queue, monkeypatch):
    def broken(db, limit):
        raise RuntimeError("connection lost")

    monkeypatch.setattr(process_override_queue, "claim_pending_jobs", broken)

    with pytest.raises(RuntimeError):
        asyncio.run(process_override_queue.run_process_override_queue(client=FakePMS()))
    assert queue["session"].rolled_back
    assert queue["session"].closed



def test_unavailable_client_fails_claimed_jobs(queue, monkeypatch):
    def no_credentials(db):
        raise ValueError("PMS credentials not configured")

    monkeypatch.setattr(process_override_queue.PMSRatesClient, "from_sync_db", no_credentials)
    queue["jobs"] = [SimpleNamespace(id=1, hotel_id=1, payload={"pmsPropertyId": "P1", "rates": []})]

    stats = asyncio.run(process_override_queue.run_process_override_queue())

    assert stats == {"processed": 1, "completed": 0, "failed": 1}
    assert queue["marks"] == [(1, "FAILED", "PMS client unavailable: PMS credentials not configured")]
    assert queue["session"].rolled_back
    assert queue["session"].closed

@pytest.mark.parametrize("enabled,expected_runs", [(True, 1), (False, 0)])
def test_scheduled_run_respects_setting(monkeypatch, enabled, expected_runs):
    runs = []

    async def fake_run():
        runs.append(1)

    monkeypatch.setattr(scheduler, "is_sync_enabled", lambda source: enabled)
    monkeypatch.setattr(scheduler, "run_process_override_queue", fake_run)

    asyncio.run(scheduler.run_scheduled_override_queue())
    assert len(runs) == expected_runs


def test_interval_setting(monkeypatch):
    values = {"sync_override_queue_interval_seconds": "5"}
    monkeypatch.setattr(scheduler, "get_config_value", lambda key, default=None: values.get(key, default))
    assert scheduler.get_interval_seconds("override_queue") == 10

    values["sync_override_queue_interval_seconds"] = "soon"
    assert scheduler.get_interval_seconds("override_queue", 60) == 60

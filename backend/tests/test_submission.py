import asyncio
from dataclasses import replace

import pytest

from services.rate_engine import OverrideState
from services.rate_engine.submission import OverrideSubmissionAdapter, SubmissionError, build_payload


class FakeHolder:
    def __init__(self, overrides):
        self.overrides = overrides
        self.notifications = []

    def notify(self, level, title, description=""):
        self.notifications.append((level, title))


class FakeSink:
    def __init__(self, holder=None, error=None, on_submit=None):
        self.holder = holder
        self.error = error
        self.on_submit = on_submit
        self.calls = []
        self.state_during_call = None

    async def submit_overrides(self, hotel_id, room_type_id, overrides):
        self.calls.append((hotel_id, room_type_id, overrides))
        if self.holder is not None:
            self.state_during_call = self.holder.overrides
        if self.on_submit is not None:
            self.on_submit()
        if self.error is not None:
            raise self.error
        return {"success": True}


def test_build_payload_sorted_by_date():
    assert build_payload({"2025-06-03": 90, "2025-06-01": 110}) == [
        {"date": "2025-06-01", "rate": 110},
        {"date": "2025-06-03", "rate": 90},
    ]


def test_nothing_pending_makes_no_call():
    holder = FakeHolder(OverrideState(saved={"2025-06-01": 100}))
    sink = FakeSink()
    result = asyncio.run(OverrideSubmissionAdapter(sink).submit("1", "10", holder))
    assert result.success and result.submitted == 0
    assert sink.calls == []
    assert holder.notifications == []


def test_successful_submission_commits_before_the_call():
    holder = FakeHolder(OverrideState(saved={"2025-06-01": 100}, pending={"2025-06-02": 120}))
    sink = FakeSink(holder)

    result = asyncio.run(OverrideSubmissionAdapter(sink).submit("1", "10", holder))

    assert result.success and result.submitted == 1
    assert sink.calls == [("1", "10", [{"date": "2025-06-02", "rate": 120}])]
    # optimistic: already saved while the request was in flight
    assert sink.state_during_call.pending == {}
    assert sink.state_during_call.saved == {"2025-06-01": 100, "2025-06-02": 120}
    assert sink.state_during_call.unconfirmed == {"2025-06-02"}

    assert holder.overrides.saved == {"2025-06-01": 100, "2025-06-02": 120}
    assert holder.overrides.unconfirmed == frozenset()
    assert [level for level, _ in holder.notifications] == ["info", "success"]


def test_failed_submission_rolls_back_without_retry():
    before = OverrideState(saved={"2025-06-01": 100}, pending={"2025-06-01": 130, "2025-06-02": 120})
    holder = FakeHolder(before)
    sink = FakeSink(holder, error=RuntimeError("queue unavailable"))

    result = asyncio.run(OverrideSubmissionAdapter(sink).submit("1", "10", holder))

    assert not result.success
    assert result.error == "queue unavailable"
    assert len(sink.calls) == 1
    assert holder.overrides.saved == {"2025-06-01": 100}
    assert holder.overrides.pending == {"2025-06-01": 130, "2025-06-02": 120}
    assert holder.overrides.unconfirmed == frozenset()
    assert holder.notifications[-1] == ("error", "Queue Failed")


def test_rollback_does_not_clobber_newer_input():
    holder = FakeHolder(OverrideState(pending={"2025-06-02": 120}))

    def user_types_again():
        holder.overrides = OverrideState(
            saved=holder.overrides.saved,
            pending={"2025-06-02": 125},
            unconfirmed=holder.overrides.unconfirmed,
        )

    sink = FakeSink(holder, error=RuntimeError("boom"), on_submit=user_types_again)
    asyncio.run(OverrideSubmissionAdapter(sink).submit("1", "10", holder))

    assert holder.overrides.pending == {"2025-06-02": 125}
    assert holder.overrides.saved == {}


def test_same_batch_submitted_twice_matches_a_single_submit():
    sink = FakeSink()
    adapter = OverrideSubmissionAdapter(sink)

    once = FakeHolder(OverrideState(pending={"2025-06-02": 120}))
    asyncio.run(adapter.submit("1", "10", once))

    twice = FakeHolder(OverrideState(pending={"2025-06-02": 120}))
    asyncio.run(adapter.submit("1", "10", twice))
    twice.overrides = replace(twice.overrides, pending={"2025-06-02": 120})
    asyncio.run(adapter.submit("1", "10", twice))

    assert twice.overrides == once.overrides
    assert twice.overrides.saved == {"2025-06-02": 120}
    assert twice.overrides.pending == {}
    assert twice.overrides.unconfirmed == frozenset()
    assert sink.calls[-1] == sink.calls[0]


def test_batch_in_flight_blocks_another_submit():
    holder = FakeHolder(OverrideState(saved={"2025-06-02": 120}, pending={"2025-06-03": 90},
                                      unconfirmed=frozenset({"2025-06-02"})))
    sink = FakeSink()

    with pytest.raises(SubmissionError):
        asyncio.run(OverrideSubmissionAdapter(sink).submit("1", "10", holder))

    assert sink.calls == []
    assert holder.overrides.pending == {"2025-06-03": 90}

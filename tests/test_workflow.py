"""Tests for the access-request workflow."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from sluice.exceptions import ConcurrentUpdateError
from sluice.faucet.workflow import (
    ALLOWLIST_KEY,
    REJECTED_KEY,
    REQUESTS_KEY,
    AccessWorkflow,
    SubmissionStatus,
    earliest_per_identity,
)
from sluice.models import PendingRequest
from sluice.storage import MemoryStore


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def workflow(store, clock):
    return AccessWorkflow(store, clock=clock)


async def assert_exclusive(store: MemoryStore) -> None:
    """No identity is both allowlisted and rejected."""
    allowed = {entry["identity"] for entry in json.loads(await store.get(ALLOWLIST_KEY) or "[]")}
    rejected = {entry["identity"] for entry in json.loads(await store.get(REJECTED_KEY) or "[]")}
    assert not allowed & rejected


class TestSubmitRequest:
    """Tests for access request submission."""

    @pytest.mark.asyncio
    async def test_submit(self, workflow):
        """A new identity can submit a request."""
        result = await workflow.submit_request("alice", "building a dex")

        assert result.accepted is True
        assert result.message == "Access request submitted successfully"
        assert await workflow.has_pending("alice") is True

    @pytest.mark.asyncio
    async def test_blank_reason_refused(self, workflow):
        """A whitespace-only reason is refused and nothing is stored."""
        result = await workflow.submit_request("alice", "   ")

        assert result.status == SubmissionStatus.EMPTY_REASON
        assert await workflow.has_pending("alice") is False

    @pytest.mark.asyncio
    async def test_allowlisted_refused(self, workflow):
        """Allowlisted identities cannot submit."""
        await workflow.submit_request("alice", "please")
        await workflow.approve("alice")

        result = await workflow.submit_request("alice", "again")

        assert result.status == SubmissionStatus.ALREADY_ALLOWLISTED

    @pytest.mark.asyncio
    async def test_duplicate_pending_refused(self, workflow):
        """A second submission while pending is refused."""
        await workflow.submit_request("alice", "first")

        result = await workflow.submit_request("alice", "second")

        assert result.status == SubmissionStatus.ALREADY_PENDING
        assert len(await workflow.pending_requests()) == 1

    @pytest.mark.asyncio
    async def test_queue_keeps_most_recent(self, store, clock):
        """Only the most recent max_requests requests are kept."""
        workflow = AccessWorkflow(store, max_requests=3, clock=clock)
        for index in range(5):
            clock.advance(1)
            await workflow.submit_request(f"user{index}", "reason")

        pending = await workflow.pending_requests()

        assert [review.request.identity for review in pending] == ["user2", "user3", "user4"]

    @pytest.mark.asyncio
    async def test_rejected_may_resubmit(self, workflow):
        """A rejected identity can ask again; the rejection stays visible."""
        await workflow.submit_request("alice", "first")
        await workflow.reject("alice")

        result = await workflow.submit_request("alice", "second try")
        pending = await workflow.pending_requests()

        assert result.accepted is True
        assert pending[0].previous_rejection is not None
        rejection = pending[0].previous_rejection
        assert pending[0].to_dict()["previous_rejection"] == rejection.rejected_at


class TestTransitions:
    """Tests for admin transitions."""

    @pytest.mark.asyncio
    async def test_approve(self, workflow, store):
        """Approving moves the request to the allowlist."""
        await workflow.submit_request("alice", "please")

        result = await workflow.approve("alice")

        assert result.found is True
        assert await workflow.is_allowlisted("alice") is True
        assert await workflow.has_pending("alice") is False
        await assert_exclusive(store)

    @pytest.mark.asyncio
    async def test_approve_clears_previous_rejection(self, workflow, store):
        """Approving a resubmitted request removes the old rejection."""
        await workflow.submit_request("alice", "first")
        await workflow.reject("alice")
        await workflow.submit_request("alice", "second")

        await workflow.approve("alice")

        assert await workflow.rejected() == []
        await assert_exclusive(store)

    @pytest.mark.asyncio
    async def test_reject(self, workflow, store):
        """Rejecting moves the request to the rejected list."""
        await workflow.submit_request("alice", "please")

        await workflow.reject("alice")

        assert [entry.identity for entry in await workflow.rejected()] == ["alice"]
        assert await workflow.has_pending("alice") is False
        await assert_exclusive(store)

    @pytest.mark.asyncio
    async def test_approve_rejected(self, workflow, store):
        """A rejected identity can be moved to the allowlist."""
        await workflow.submit_request("alice", "please")
        await workflow.reject("alice")

        result = await workflow.approve_rejected("alice")

        assert result.found is True
        assert await workflow.is_allowlisted("alice") is True
        assert await workflow.rejected() == []
        await assert_exclusive(store)

    @pytest.mark.asyncio
    async def test_reject_allowed(self, workflow, store):
        """An allowlisted identity can be moved to rejected."""
        await workflow.submit_request("alice", "please")
        await workflow.approve("alice")

        result = await workflow.reject_allowed("alice")

        assert result.found is True
        assert await workflow.is_allowlisted("alice") is False
        assert [entry.identity for entry in await workflow.rejected()] == ["alice"]
        await assert_exclusive(store)

    @pytest.mark.asyncio
    async def test_cycles_keep_single_record(self, workflow, store):
        """Repeated flips never leave duplicate decision records."""
        await workflow.submit_request("alice", "please")
        await workflow.approve("alice")
        for _ in range(3):
            await workflow.reject_allowed("alice")
            await workflow.approve_rejected("alice")

        assert len(await workflow.allowlisted()) == 1
        assert await workflow.rejected() == []
        await assert_exclusive(store)

    @pytest.mark.asyncio
    async def test_approve_unknown_identity(self, workflow):
        """Approving without a pending request still allowlists, found=False."""
        result = await workflow.approve("bob")

        assert result.found is False
        assert await workflow.is_allowlisted("bob") is True


class TestTransitionLock:
    """Tests for per-identity serialization of admin transitions."""

    @pytest.mark.asyncio
    async def test_lock_released_after_transition(self, workflow, store):
        await workflow.approve("alice")

        assert await store.get("sluice:transition:alice") is None

    @pytest.mark.asyncio
    async def test_held_lock_blocks_transition(self, workflow, store, monkeypatch):
        """A transition running elsewhere keeps the lists untouched here."""
        monkeypatch.setattr("sluice.faucet.workflow.asyncio.sleep", AsyncMock())
        await workflow.submit_request("alice", "please")
        await store.set_if_absent("sluice:transition:alice", "other-process", 30)

        with pytest.raises(ConcurrentUpdateError):
            await workflow.reject("alice")

        assert await workflow.has_pending("alice") is True
        assert await workflow.rejected() == []
        assert await store.get("sluice:transition:alice") == "other-process"

    @pytest.mark.asyncio
    async def test_waits_for_lock_holder(self, workflow, store, monkeypatch):
        """A transition proceeds once the other holder lets go."""

        async def other_holder_finishes(_seconds):
            await store.delete("sluice:transition:alice")

        monkeypatch.setattr("sluice.faucet.workflow.asyncio.sleep", other_holder_finishes)
        await store.set_if_absent("sluice:transition:alice", "other-process", 30)

        result = await workflow.approve("alice")

        assert result.found is False
        assert await workflow.is_allowlisted("alice") is True

    @pytest.mark.asyncio
    async def test_concurrent_approve_and_reject_stay_exclusive(self, workflow, store):
        """Racing decisions leave the identity on exactly one list."""
        await workflow.submit_request("alice", "please")

        await asyncio.gather(workflow.approve("alice"), workflow.reject("alice"))

        allowed = await workflow.is_allowlisted("alice")
        rejected = [entry.identity for entry in await workflow.rejected()]
        assert allowed != ("alice" in rejected)
        await assert_exclusive(store)


class TestDedupe:
    """Tests for pending request deduplication."""

    @pytest.mark.asyncio
    async def test_duplicates_collapse_to_earliest(self, workflow, store):
        """dedupe keeps the earliest request per identity."""
        await store.set(
            REQUESTS_KEY,
            json.dumps(
                [
                    {"identity": "alice", "reason": "second", "requested_at": 20.0},
                    {"identity": "bob", "reason": "only", "requested_at": 15.0},
                    {"identity": "alice", "reason": "first", "requested_at": 10.0},
                ]
            ),
        )

        report = await workflow.dedupe()
        pending = await workflow.pending_requests()

        assert report.original_count == 3
        assert report.deduped_count == 2
        assert report.removed_count == 1
        alice = [review.request for review in pending if review.request.identity == "alice"]
        assert len(alice) == 1
        assert alice[0].requested_at == 10.0

    @pytest.mark.asyncio
    async def test_submit_twice_then_dedupe(self, workflow):
        """Submitting twice then deduping leaves exactly one request."""
        await workflow.submit_request("alice", "first")
        await workflow.submit_request("alice", "second")

        await workflow.dedupe()

        pending = await workflow.pending_requests()
        assert [review.request.identity for review in pending] == ["alice"]

    @pytest.mark.asyncio
    async def test_dedupe_idempotent(self, workflow, store):
        """A second dedupe removes nothing."""
        await store.set(
            REQUESTS_KEY,
            json.dumps(
                [
                    {"identity": "alice", "reason": "a", "requested_at": 2.0},
                    {"identity": "alice", "reason": "b", "requested_at": 1.0},
                ]
            ),
        )

        await workflow.dedupe()
        report = await workflow.dedupe()

        assert report.removed_count == 0

    def test_earliest_per_identity_ordering(self):
        """Survivors are ordered oldest first."""
        requests = [
            PendingRequest("carol", "c", 30.0),
            PendingRequest("alice", "a", 10.0),
            PendingRequest("carol", "c2", 5.0),
        ]

        survivors = earliest_per_identity(requests)

        assert [(r.identity, r.requested_at) for r in survivors] == [
            ("carol", 5.0),
            ("alice", 10.0),
        ]

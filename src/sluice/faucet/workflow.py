"""Access-request workflow for identities outside the reference set.

States per identity:

    Unknown -> Pending -> {Allowlisted, Rejected}
    Allowlisted <-> Rejected

A rejected identity may submit a fresh request; its rejection stays on
record so the reviewing admin can see it. An identity is never both
allowlisted and rejected.
"""

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum

from sluice.exceptions import ConcurrentUpdateError
from sluice.models import AllowListEntry, PendingRequest, RejectedEntry
from sluice.observability.metrics import WORKFLOW_ACTIONS
from sluice.storage import KeyValueStore, RecordCollection

logger = logging.getLogger(__name__)

ALLOWLIST_KEY = "sluice:allowlist"
REJECTED_KEY = "sluice:rejected"
REQUESTS_KEY = "sluice:requests"
MAX_REQUESTS = 100

# Admin transitions on one identity are serialized across processes
TRANSITION_LOCK_SECONDS = 30
TRANSITION_LOCK_ATTEMPTS = 20
TRANSITION_LOCK_WAIT = 0.05


class SubmissionStatus(str, Enum):
    """Outcome of an access request submission."""

    SUBMITTED = "submitted"
    ALREADY_ALLOWLISTED = "already_allowlisted"
    ALREADY_PENDING = "already_pending"
    EMPTY_REASON = "empty_reason"


_SUBMISSION_MESSAGES = {
    SubmissionStatus.SUBMITTED: "Access request submitted successfully",
    SubmissionStatus.ALREADY_ALLOWLISTED: "You are already allowlisted",
    SubmissionStatus.ALREADY_PENDING: "You already have a pending request",
    SubmissionStatus.EMPTY_REASON: "Please provide a reason for requesting access",
}


@dataclass
class SubmissionResult:
    """Result of :meth:`AccessWorkflow.submit_request`."""

    status: SubmissionStatus

    @property
    def accepted(self) -> bool:
        return self.status == SubmissionStatus.SUBMITTED

    @property
    def message(self) -> str:
        return _SUBMISSION_MESSAGES[self.status]


@dataclass
class TransitionResult:
    """Result of an admin transition.

    ``found`` is False when the identity was not in the source state; the
    target record is written either way.
    """

    identity: str
    action: str
    found: bool


@dataclass
class DedupeReport:
    """Counts reported by :meth:`AccessWorkflow.dedupe`."""

    original_count: int
    deduped_count: int

    @property
    def removed_count(self) -> int:
        return self.original_count - self.deduped_count

    def to_dict(self) -> dict:
        return {
            "original_count": self.original_count,
            "deduped_count": self.deduped_count,
            "removed_count": self.removed_count,
        }


@dataclass
class PendingReview:
    """A pending request together with the identity's last rejection, if any."""

    request: PendingRequest
    previous_rejection: RejectedEntry | None

    def to_dict(self) -> dict:
        data = self.request.to_dict()
        data["previous_rejection"] = (
            self.previous_rejection.rejected_at if self.previous_rejection else None
        )
        return data


def _without(records: list, identity: str) -> list:
    return [record for record in records if record.identity != identity]


def earliest_per_identity(requests: list[PendingRequest]) -> list[PendingRequest]:
    """Keep the earliest request per identity, ordered oldest first."""
    earliest: dict[str, PendingRequest] = {}
    for request in requests:
        current = earliest.get(request.identity)
        if current is None or request.requested_at < current.requested_at:
            earliest[request.identity] = request
    return sorted(earliest.values(), key=lambda request: request.requested_at)


class AccessWorkflow:
    """Store-backed access request state machine.

    Admin authorization is the caller's job; every method here assumes
    the caller has already been checked.

    Parameters
    ----------
    store : KeyValueStore
        Backing store.
    max_requests : int
        Number of most recent pending requests kept.
    clock : callable
        Returns the current time in epoch seconds.
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_requests: int = MAX_REQUESTS,
        clock=time.time,
    ):
        self._store = store
        self._allowlist = RecordCollection(store, ALLOWLIST_KEY, AllowListEntry.from_dict)
        self._rejected = RecordCollection(store, REJECTED_KEY, RejectedEntry.from_dict)
        self._requests = RecordCollection(store, REQUESTS_KEY, PendingRequest.from_dict)
        self._max_requests = max_requests
        self._clock = clock

    # Queries

    async def is_allowlisted(self, identity: str) -> bool:
        return any(entry.identity == identity for entry in await self._allowlist.load())

    async def has_pending(self, identity: str) -> bool:
        return any(request.identity == identity for request in await self._requests.load())

    async def allowlisted(self) -> list[AllowListEntry]:
        return await self._allowlist.load()

    async def rejected(self) -> list[RejectedEntry]:
        return await self._rejected.load()

    async def pending_requests(self) -> list[PendingReview]:
        """Pending requests, each paired with the identity's rejection record."""
        requests = await self._requests.load()
        rejections = {entry.identity: entry for entry in await self._rejected.load()}
        return [PendingReview(request, rejections.get(request.identity)) for request in requests]

    # User operation

    async def submit_request(self, identity: str, reason: str) -> SubmissionResult:
        """Record an access request for ``identity``.

        Refused if the reason is blank, the identity is already allowlisted,
        or it already has a pending request.
        """
        reason = (reason or "").strip()
        if not reason:
            return SubmissionResult(SubmissionStatus.EMPTY_REASON)
        if await self.is_allowlisted(identity):
            return SubmissionResult(SubmissionStatus.ALREADY_ALLOWLISTED)

        request = PendingRequest(identity=identity, reason=reason, requested_at=self._clock())
        duplicate = False

        def append(requests: list[PendingRequest]) -> list[PendingRequest]:
            nonlocal duplicate
            duplicate = any(existing.identity == identity for existing in requests)
            if duplicate:
                return requests
            return [*requests, request][-self._max_requests :]

        await self._requests.update(append)
        if duplicate:
            return SubmissionResult(SubmissionStatus.ALREADY_PENDING)

        WORKFLOW_ACTIONS.labels(action="submit").inc()
        logger.info("Access request submitted", extra={"identity": identity})
        return SubmissionResult(SubmissionStatus.SUBMITTED)

    # Admin transitions

    @asynccontextmanager
    async def _exclusive(self, identity: str):
        """Hold the transition lock for ``identity``.

        Each transition edits two or three lists with separate
        compare-and-set writes; without the lock an approve racing a reject
        in another process could leave the identity on both lists.

        Raises
        ------
        ConcurrentUpdateError
            If another transition keeps holding the lock.
        """
        key = f"sluice:transition:{identity}"
        token = uuid.uuid4().hex
        for _ in range(TRANSITION_LOCK_ATTEMPTS):
            if await self._store.set_if_absent(key, token, TRANSITION_LOCK_SECONDS):
                break
            await asyncio.sleep(TRANSITION_LOCK_WAIT)
        else:
            raise ConcurrentUpdateError(key, TRANSITION_LOCK_ATTEMPTS)
        try:
            yield
        finally:
            if not await self._store.delete_if_equals(key, token):
                logger.warning("Transition lock expired early", extra={"identity": identity})

    async def _remove(self, collection: RecordCollection, identity: str) -> bool:
        removed = False

        def drop(records: list) -> list:
            nonlocal removed
            kept = _without(records, identity)
            removed = len(kept) != len(records)
            return kept

        await collection.update(drop)
        return removed

    async def _allow(self, identity: str) -> None:
        entry = AllowListEntry(identity=identity, approved_at=self._clock())
        await self._allowlist.update(lambda records: [*_without(records, identity), entry])

    async def _deny(self, identity: str) -> None:
        entry = RejectedEntry(identity=identity, rejected_at=self._clock())
        await self._rejected.update(lambda records: [*_without(records, identity), entry])

    def _log(self, action: str, identity: str, found: bool) -> TransitionResult:
        WORKFLOW_ACTIONS.labels(action=action).inc()
        logger.info(
            "Access workflow transition",
            extra={"action": action, "identity": identity, "found": found},
        )
        return TransitionResult(identity=identity, action=action, found=found)

    async def approve(self, identity: str) -> TransitionResult:
        """Pending -> Allowlisted."""
        async with self._exclusive(identity):
            found = await self._remove(self._requests, identity)
            await self._remove(self._rejected, identity)
            await self._allow(identity)
        return self._log("approve", identity, found)

    async def reject(self, identity: str) -> TransitionResult:
        """Pending -> Rejected."""
        async with self._exclusive(identity):
            found = await self._remove(self._requests, identity)
            await self._remove(self._allowlist, identity)
            await self._deny(identity)
        return self._log("reject", identity, found)

    async def approve_rejected(self, identity: str) -> TransitionResult:
        """Rejected -> Allowlisted."""
        async with self._exclusive(identity):
            found = await self._remove(self._rejected, identity)
            await self._allow(identity)
        return self._log("approve_rejected", identity, found)

    async def reject_allowed(self, identity: str) -> TransitionResult:
        """Allowlisted -> Rejected."""
        async with self._exclusive(identity):
            found = await self._remove(self._allowlist, identity)
            await self._deny(identity)
        return self._log("reject_allowed", identity, found)

    # Maintenance

    async def dedupe(self) -> DedupeReport:
        """Collapse pending requests to the earliest one per identity."""
        original_count = 0

        def collapse(requests: list[PendingRequest]) -> list[PendingRequest]:
            nonlocal original_count
            original_count = len(requests)
            return earliest_per_identity(requests)

        survivors = await self._requests.update(collapse)
        report = DedupeReport(original_count=original_count, deduped_count=len(survivors))
        WORKFLOW_ACTIONS.labels(action="dedupe").inc()
        logger.info("Pending requests deduplicated", extra=report.to_dict())
        return report

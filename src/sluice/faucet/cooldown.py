"""Cooldown gate for SLUICE faucet.

Features:
- One successful distribution per identity per cooldown window
- Window evaluated at read time and enforced by the mark's TTL
- Per-identity lease so concurrent attempts cannot both pass the check
"""

import logging
import math
import time
import uuid
from dataclasses import dataclass

from sluice.storage import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_LEASE_SECONDS = 300


def _format_cooldown(minutes: int) -> str:
    """Format remaining cooldown for user display."""
    if minutes == 1:
        return "Try again in 1 minute"
    return f"Try again in {minutes} minutes"


@dataclass
class CooldownResult:
    """Result of a cooldown check."""

    allowed: bool
    minutes_remaining: int | None  # Minutes until the next distribution is allowed
    reason: str | None  # Rejection reason if not allowed


class CooldownGate:
    """Enforce the per-identity cooldown between distributions.

    Parameters
    ----------
    store : KeyValueStore
        Store holding cooldown marks and leases.
    cooldown_hours : float
        Minimum time between two successful distributions to one identity.
    lease_seconds : int
        Upper bound on how long one distribution attempt may hold its lease.
    clock : callable
        Returns the current time in epoch seconds.
    """

    def __init__(
        self,
        store: KeyValueStore,
        cooldown_hours: float = 24,
        lease_seconds: int = DEFAULT_LEASE_SECONDS,
        clock=time.time,
    ):
        self._store = store
        self._window_seconds = int(cooldown_hours * 3600)
        self._lease_seconds = lease_seconds
        self._clock = clock

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    def _get_cooldown_key(self, identity: str) -> str:
        return f"sluice:cooldown:{identity}"

    def _get_lease_key(self, identity: str) -> str:
        return f"sluice:lease:{identity}"

    async def last_distribution(self, identity: str) -> float | None:
        """Instant of the identity's last successful distribution, if recorded."""
        raw = await self._store.get(self._get_cooldown_key(identity))
        if raw is None:
            return None
        try:
            return float(raw)
        except ValueError:
            logger.warning(
                "Ignoring unreadable cooldown mark",
                extra={"identity": identity, "value": raw},
            )
            return None

    async def check(self, identity: str, now: float | None = None) -> CooldownResult:
        """Check whether ``identity`` may receive a distribution now.

        Parameters
        ----------
        identity : str
            Verified identity handle.
        now : float | None
            Evaluation instant; defaults to the gate's clock.

        Returns
        -------
        CooldownResult
            Allowed, or throttled with the whole minutes remaining (rounded up).
        """
        now = self._clock() if now is None else now
        last = await self.last_distribution(identity)
        if last is None:
            return CooldownResult(allowed=True, minutes_remaining=None, reason=None)

        remaining_seconds = last + self._window_seconds - now
        if remaining_seconds <= 0:
            return CooldownResult(allowed=True, minutes_remaining=None, reason=None)

        minutes = math.ceil(remaining_seconds / 60)
        return CooldownResult(
            allowed=False,
            minutes_remaining=minutes,
            reason=_format_cooldown(minutes),
        )

    async def record(self, identity: str, now: float | None = None) -> None:
        """Write the cooldown mark after a confirmed distribution."""
        now = self._clock() if now is None else now
        await self._store.set(
            self._get_cooldown_key(identity),
            repr(now),
            ttl_seconds=self._window_seconds,
        )
        logger.debug("Cooldown recorded", extra={"identity": identity, "at": now})

    async def acquire(self, identity: str) -> str | None:
        """Take the per-identity lease.

        Returns
        -------
        str | None
            A lease token to pass to :meth:`release`, or None if another
            attempt for the same identity holds the lease.
        """
        token = uuid.uuid4().hex
        acquired = await self._store.set_if_absent(
            self._get_lease_key(identity), token, self._lease_seconds
        )
        if not acquired:
            logger.info("Distribution already in progress", extra={"identity": identity})
            return None
        return token

    async def release(self, identity: str, token: str) -> None:
        """Release a lease previously returned by :meth:`acquire`."""
        released = await self._store.delete_if_equals(self._get_lease_key(identity), token)
        if not released:
            logger.warning("Lease expired before release", extra={"identity": identity})

    async def reset(self, identity: str) -> None:
        """Clear the cooldown mark for an identity (operator function)."""
        await self._store.delete(self._get_cooldown_key(identity))
        logger.info("Cooldown reset for identity", extra={"identity": identity})

"""Persistent record types for SLUICE.

Every record is keyed by an identity handle (a GitHub login). Timestamps
are epoch seconds as floats, which is also how they are serialized.
"""

import time
from dataclasses import asdict, dataclass, field
from typing import Any


def _require_text(name: str, value: Any) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} must be a non-empty string")


def _require_timestamp(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a numeric timestamp")


@dataclass(frozen=True)
class AllowListEntry:
    """Admin decision granting eligibility regardless of reference-set membership."""

    identity: str
    approved_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        _require_text("identity", self.identity)
        _require_timestamp("approved_at", self.approved_at)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "AllowListEntry":
        return cls(identity=data["identity"], approved_at=data["approved_at"])


@dataclass(frozen=True)
class RejectedEntry:
    """Admin decision denying an identity."""

    identity: str
    rejected_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        _require_text("identity", self.identity)
        _require_timestamp("rejected_at", self.rejected_at)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "RejectedEntry":
        return cls(identity=data["identity"], rejected_at=data["rejected_at"])


@dataclass(frozen=True)
class PendingRequest:
    """Access request awaiting an admin decision."""

    identity: str
    reason: str
    requested_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        _require_text("identity", self.identity)
        _require_text("reason", self.reason)
        _require_timestamp("requested_at", self.requested_at)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PendingRequest":
        return cls(
            identity=data["identity"],
            reason=data["reason"],
            requested_at=data["requested_at"],
        )


@dataclass(frozen=True)
class DistributionRecord:
    """A completed distribution, as shown in the history feed."""

    identity: str
    address: str
    completed_at: float = field(default_factory=time.time)
    anonymous: bool = False
    tx_hash: str | None = None

    def __post_init__(self) -> None:
        _require_text("identity", self.identity)
        _require_text("address", self.address)
        _require_timestamp("completed_at", self.completed_at)

    def to_dict(self) -> dict:
        return asdict(self)

    def to_public_dict(self) -> dict:
        """Serialize for unauthenticated display."""
        return {
            "identity": self.identity,
            "address": self.address,
            "completed_at": self.completed_at,
            "tx_hash": self.tx_hash,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DistributionRecord":
        return cls(
            identity=data["identity"],
            address=data["address"],
            completed_at=data["completed_at"],
            anonymous=bool(data.get("anonymous", False)),
            tx_hash=data.get("tx_hash"),
        )

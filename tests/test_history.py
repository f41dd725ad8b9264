"""Tests for the distribution history ledger."""

import pytest

from sluice.faucet.history import MAX_HISTORY, HistoryLedger
from sluice.models import DistributionRecord
from sluice.storage import MemoryStore


def make_record(index: int, anonymous: bool = False) -> DistributionRecord:
    return DistributionRecord(
        identity=f"user{index}",
        address=f"Addr{index:040d}",
        completed_at=float(index),
        anonymous=anonymous,
        tx_hash=f"sig{index:064d}",
    )


class TestHistoryLedger:
    """Tests for HistoryLedger."""

    @pytest.mark.asyncio
    async def test_newest_first(self):
        """Records come back most recent first."""
        history = HistoryLedger(MemoryStore())
        await history.record(make_record(1))
        await history.record(make_record(2))

        recent = await history.recent()

        assert [record.identity for record in recent] == ["user2", "user1"]

    @pytest.mark.asyncio
    async def test_cap_evicts_oldest(self):
        """The 101st distribution evicts the first one."""
        history = HistoryLedger(MemoryStore())
        for index in range(MAX_HISTORY + 1):
            await history.record(make_record(index))

        everything = await history.recent(limit=MAX_HISTORY + 10)

        assert len(everything) == MAX_HISTORY
        assert everything[0].identity == f"user{MAX_HISTORY}"
        assert "user0" not in {record.identity for record in everything}

    @pytest.mark.asyncio
    async def test_recent_limit(self):
        """recent honours the limit."""
        history = HistoryLedger(MemoryStore())
        for index in range(5):
            await history.record(make_record(index))

        assert len(await history.recent(limit=3)) == 3
        assert await history.recent(limit=0) == []

    @pytest.mark.asyncio
    async def test_public_excludes_anonymous(self):
        """Anonymous distributions are hidden from the public feed."""
        history = HistoryLedger(MemoryStore())
        await history.record(make_record(1))
        await history.record(make_record(2, anonymous=True))
        await history.record(make_record(3))

        public = await history.public()

        assert [record.identity for record in public] == ["user3", "user1"]
        assert len(await history.recent()) == 3

    @pytest.mark.asyncio
    async def test_public_limit_applies_after_filtering(self):
        """The public limit counts visible records only."""
        history = HistoryLedger(MemoryStore())
        await history.record(make_record(1))
        await history.record(make_record(2, anonymous=True))

        public = await history.public(limit=1)

        assert [record.identity for record in public] == ["user1"]

"""History ledger: the bounded feed of completed distributions."""

import logging

from sluice.models import DistributionRecord
from sluice.storage import KeyValueStore, RecordCollection

logger = logging.getLogger(__name__)

HISTORY_KEY = "sluice:history"
MAX_HISTORY = 100


class HistoryLedger:
    """Most-recent-first list of distributions, capped at ``max_entries``.

    Eviction is by insertion order: the entry recorded earliest is dropped
    first, regardless of its timestamp.
    """

    def __init__(self, store: KeyValueStore, max_entries: int = MAX_HISTORY):
        self._records = RecordCollection(store, HISTORY_KEY, DistributionRecord.from_dict)
        self._max_entries = max_entries

    async def record(self, entry: DistributionRecord) -> None:
        """Prepend ``entry``, dropping the oldest entries beyond the cap."""
        await self._records.update(lambda records: [entry, *records][: self._max_entries])
        logger.debug(
            "Distribution recorded in history",
            extra={"identity": entry.identity, "anonymous": entry.anonymous},
        )

    async def recent(self, limit: int = 10) -> list[DistributionRecord]:
        """Return up to ``limit`` most recent records."""
        if limit <= 0:
            return []
        return (await self._records.load())[:limit]

    async def public(self, limit: int = 10) -> list[DistributionRecord]:
        """Return up to ``limit`` most recent records not marked anonymous."""
        if limit <= 0:
            return []
        visible = [record for record in await self._records.load() if not record.anonymous]
        return visible[:limit]

"""Record lists persisted as JSON blobs under a single store key.

Mutations go through compare-and-set so that two admins acting at the same
time cannot silently overwrite each other's changes.
"""

import json
import logging
from collections.abc import Callable
from typing import Generic, Protocol, TypeVar

from sluice.exceptions import ConcurrentUpdateError

from .store import KeyValueStore

logger = logging.getLogger(__name__)

MAX_UPDATE_ATTEMPTS = 5


class Record(Protocol):
    def to_dict(self) -> dict: ...


R = TypeVar("R", bound=Record)


class RecordCollection(Generic[R]):
    """A list of typed records stored under one key.

    Parameters
    ----------
    store : KeyValueStore
        Backing store.
    key : str
        Store key holding the JSON list.
    decode : Callable[[dict], R]
        Builds a record from its dict form; raising marks the entry corrupt.
    """

    def __init__(self, store: KeyValueStore, key: str, decode: Callable[[dict], R]):
        self._store = store
        self._key = key
        self._decode = decode

    @property
    def key(self) -> str:
        return self._key

    def _deserialize(self, raw: str | None) -> list[R]:
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except json.JSONDecodeError:
            logger.error("Discarding unreadable collection", extra={"key": self._key})
            return []
        if not isinstance(items, list):
            logger.error("Collection is not a list", extra={"key": self._key})
            return []

        records: list[R] = []
        for item in items:
            try:
                records.append(self._decode(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(
                    "Skipping malformed record",
                    extra={"key": self._key, "error": str(e)},
                )
        return records

    @staticmethod
    def _serialize(records: list[R]) -> str:
        return json.dumps([record.to_dict() for record in records])

    async def load(self) -> list[R]:
        """Read the current records."""
        return self._deserialize(await self._store.get(self._key))

    async def update(self, mutate: Callable[[list[R]], list[R]]) -> list[R]:
        """Apply ``mutate`` to the current records and persist the result.

        ``mutate`` may be called more than once if another writer gets in
        first, so it must not have side effects.

        Returns
        -------
        list[R]
            The records that were persisted.

        Raises
        ------
        ConcurrentUpdateError
            If every attempt lost to a concurrent writer.
        """
        for attempt in range(1, MAX_UPDATE_ATTEMPTS + 1):
            raw = await self._store.get(self._key)
            updated = mutate(self._deserialize(raw))
            if await self._store.compare_and_set(self._key, raw, self._serialize(updated)):
                return updated
            logger.debug(
                "Collection changed during update, retrying",
                extra={"key": self._key, "attempt": attempt},
            )
        raise ConcurrentUpdateError(self._key, MAX_UPDATE_ATTEMPTS)

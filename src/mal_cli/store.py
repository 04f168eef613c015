"""Process-wide entity store: the single owner of catalog records.

Screens keep only ids and resolve records here at draw time, so an update
made anywhere (list edits, late released-episode counts) is visible to every
view on its next redraw.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Callable, Iterable

from mal_cli.models import Anime

logger = logging.getLogger(__name__)


class EntityStore:
    """Thread-safe id → record table with first-write-wins inserts.

    Reads hand out deep copies so callers can never mutate the canonical
    record outside of ``update``.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: dict[int, Anime] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, anime_id: object) -> bool:
        with self._lock:
            return anime_id in self._records

    def get(self, anime_id: int) -> Anime | None:
        with self._lock:
            record = self._records.get(anime_id)
            return copy.deepcopy(record) if record is not None else None

    def get_bulk(self, ids: Iterable[int]) -> list[Anime]:
        """Return snapshots for the ids that are present, in the given order."""
        with self._lock:
            return [
                copy.deepcopy(self._records[anime_id]) for anime_id in ids if anime_id in self._records
            ]

    def get_list(self) -> list[Anime]:
        with self._lock:
            return [copy.deepcopy(record) for record in self._records.values()]

    def add(self, record: Anime) -> bool:
        """Insert ``record`` unless its id is already present. Returns True if inserted."""
        with self._lock:
            if record.id in self._records:
                return False
            self._records[record.id] = copy.deepcopy(record)
            return True

    def add_bulk(self, records: Iterable[Anime]) -> int:
        """Insert every record whose id is absent. Returns the number inserted."""
        inserted = 0
        with self._lock:
            for record in records:
                if record.id in self._records:
                    continue
                self._records[record.id] = copy.deepcopy(record)
                inserted += 1
        if inserted:
            logger.debug("Entity store grew by %d records (total %d)", inserted, len(self._records))
        return inserted

    def update(self, anime_id: int, fn: Callable[[Anime], None]) -> bool:
        """Apply ``fn`` to a mutable clone of the record and replace it.

        Returns False when the id is unknown. If ``fn`` raises, the stored
        record is left untouched and the exception propagates.
        """
        with self._lock:
            current = self._records.get(anime_id)
            if current is None:
                return False
            working = copy.deepcopy(current)
            fn(working)
            working.id = anime_id
            self._records[anime_id] = working
            return True

    def remove(self, anime_id: int) -> Anime | None:
        with self._lock:
            return self._records.pop(anime_id, None)


__all__ = ["EntityStore"]

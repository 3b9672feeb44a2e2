"""Deduplication (core domain).

Fingerprints are computed from the fields that stay stable between refreshes
of the same row. The ledger keeps insertion order so the oldest fingerprints
are evicted first once the cap is reached.
"""

from __future__ import annotations

import hashlib
import logging
from collections import OrderedDict
from typing import Iterable

from core.config import DedupConfig
from core.models import Record
from core.ports import LedgerStoragePort

LOGGER = logging.getLogger(__name__)


def compute_fingerprint(record: Record) -> str:
    """Return the dedup key for a record.

    The client label is left out on purpose; it is formatted inconsistently
    between refreshes of the same row.
    """

    payload = f"{record.timestamp}_{record.destination}_{record.source}_{record.content}"
    return hashlib.md5(payload.encode("utf-8")).hexdigest()


class Deduplicator:
    """Bounded, persisted set of fingerprints already delivered."""

    def __init__(self, storage: LedgerStoragePort, config: DedupConfig) -> None:
        if config.max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._storage = storage
        self._max_entries = config.max_entries
        self._ledger: OrderedDict[str, None] = OrderedDict()

    def __len__(self) -> int:
        return len(self._ledger)

    def __contains__(self, fingerprint: object) -> bool:
        return fingerprint in self._ledger

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def snapshot(self) -> list[str]:
        """Return the ledger contents, oldest first."""

        return list(self._ledger)

    def load(self) -> None:
        """Populate the ledger from storage; a missing or bad snapshot yields empty."""

        self._ledger.clear()
        try:
            stored = self._storage.load()
        except (OSError, ValueError) as exc:
            LOGGER.warning("Could not load dedup snapshot, starting empty: %s", exc)
            return
        if stored is None:
            LOGGER.info("No dedup snapshot found, starting empty")
            return
        self._extend(str(fingerprint) for fingerprint in stored)
        LOGGER.info("Loaded %s previously delivered fingerprints", len(self._ledger))

    def filter_new(self, records: Iterable[Record]) -> list[Record]:
        """Return unseen records in input order and mark them seen immediately."""

        fresh: list[Record] = []
        for record in records:
            fingerprint = compute_fingerprint(record)
            if fingerprint in self._ledger:
                continue
            self._add(fingerprint)
            fresh.append(record)
        return fresh

    def persist(self) -> bool:
        """Overwrite the stored snapshot with the current ledger."""

        fingerprints = self.snapshot()[-self._max_entries:]
        try:
            self._storage.save(fingerprints)
        except (OSError, TypeError, ValueError) as exc:
            LOGGER.error("Could not save dedup snapshot: %s", exc)
            return False
        return True

    def _extend(self, fingerprints: Iterable[str]) -> None:
        for fingerprint in fingerprints:
            self._add(fingerprint)

    def _add(self, fingerprint: str) -> None:
        # Re-adding keeps the original insertion slot.
        if fingerprint in self._ledger:
            return
        self._ledger[fingerprint] = None
        while len(self._ledger) > self._max_entries:
            self._ledger.popitem(last=False)

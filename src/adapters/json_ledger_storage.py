"""JSON file storage adapter.

Implements the core LedgerStoragePort as a single JSON array of fingerprint
strings, oldest first. Writes go to a temporary file in the same directory
and are moved into place, so a crash mid-write never leaves a torn snapshot.
"""

from __future__ import annotations

import json
import os
import tempfile
from typing import Optional


class JsonLedgerStorage:
    """Thin file wrapper that satisfies the LedgerStoragePort contract."""

    def __init__(self, path: str) -> None:
        self._path = path

    @property
    def path(self) -> str:
        return self._path

    def load(self) -> Optional[list[str]]:
        """Return the stored fingerprints, or None when no snapshot exists.

        Raises ValueError when the file exists but is not a JSON array of
        strings.
        """

        if not os.path.exists(self._path):
            return None
        with open(self._path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
        if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
            raise ValueError(f"{self._path} does not contain a list of fingerprints")
        return data

    def save(self, fingerprints: list[str]) -> None:
        """Atomically overwrite the snapshot."""

        directory = os.path.dirname(os.path.abspath(self._path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".ledger-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(fingerprints, handle, indent=2)
            os.replace(tmp_path, self._path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

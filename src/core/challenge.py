"""Arithmetic challenge solver for the source login page."""

from __future__ import annotations

import re
from typing import Optional

_SUM_PATTERN = re.compile(r"(\d+)\s*\+\s*(\d+)")


def solve_challenge(page_text: str) -> Optional[int]:
    """Return the answer to the first ``<int> + <int>`` found, if any."""

    if not page_text:
        return None
    match = _SUM_PATTERN.search(page_text)
    if not match:
        return None
    return int(match.group(1)) + int(match.group(2))

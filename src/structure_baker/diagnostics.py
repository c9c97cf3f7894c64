"""
Degradation accounting.

Every recoverable condition is counted here and logged once per distinct
subject, so a run that "succeeds" with missing textures everywhere is
visible in the statistics instead of silently looking fine.
"""

import logging
import threading
from collections import Counter
from enum import Enum
from typing import Dict, Optional, Set, Tuple

logger = logging.getLogger(__name__)


class Degradation(str, Enum):
    """Kinds of recoverable conditions."""
    MISSING_TEXTURE = "missing_texture"
    MISSING_ATLAS_ENTRY = "missing_atlas_entry"
    MALFORMED_ELEMENT = "malformed_element"
    VARIANT_FALLBACK = "variant_fallback"
    MISSING_PARENT = "missing_parent"
    UNKNOWN_BLOCK = "unknown_block"
    SPECIAL_CASE_FALLBACK = "special_case_fallback"


class DegradationLog:
    """Thread-safe counter of degraded faces, elements and block groups."""

    def __init__(self):
        self._counts: Counter = Counter()
        self._seen: Set[Tuple[Degradation, str]] = set()
        self._lock = threading.Lock()

    def record(
        self,
        kind: Degradation,
        subject: str,
        detail: Optional[str] = None,
        count: int = 1
    ):
        """
        Count a degraded occurrence and log it the first time it is seen.

        Args:
            kind: Degradation category
            subject: What degraded (block type, model or texture name)
            detail: Optional human-readable explanation
            count: Number of occurrences to add
        """
        with self._lock:
            self._counts[kind] += count
            first = (kind, subject) not in self._seen
            self._seen.add((kind, subject))

        if first:
            message = f"{kind.value}: {subject}"
            if detail:
                message += f" ({detail})"
            logger.warning(message)

    def count(self, kind: Degradation) -> int:
        with self._lock:
            return self._counts[kind]

    @property
    def total(self) -> int:
        with self._lock:
            return sum(self._counts.values())

    def summary(self) -> Dict[str, int]:
        """Return non-zero counts keyed by degradation name."""
        with self._lock:
            return {kind.value: n for kind, n in self._counts.items() if n}

    def clear(self):
        with self._lock:
            self._counts.clear()
            self._seen.clear()

"""Fuzzy title deduplication backed by a per-run fingerprint index."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, Optional, Set

from rapidfuzz.distance import Levenshtein

logger = logging.getLogger(__name__)

DEFAULT_FINGERPRINT_LENGTH = 50
DEFAULT_SIMILARITY_THRESHOLD = 0.85

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def fingerprint(title: str, length: int = DEFAULT_FINGERPRINT_LENGTH) -> str:
    """Lower-case ``title``, keep only ``[a-z0-9]`` and truncate to ``length``."""

    return _NON_ALNUM.sub("", title.lower())[:length]


def similarity(first: str, second: str) -> float:
    """Normalized Levenshtein similarity: ``(longest - distance) / longest``.

    Two empty strings are identical (``1.0``).
    """

    longest = max(len(first), len(second))
    if longest == 0:
        return 1.0
    distance = Levenshtein.distance(first, second)
    return (longest - distance) / longest


class FuzzyDeduplicator:
    """Decide whether a title was already seen during a harvest run.

    The index maps fingerprints to the first title registered under them. A
    lookup first checks for an exact fingerprint hit, then linearly scans every
    registered fingerprint for one whose similarity is strictly greater than
    ``threshold``. The scan is O(n) per check. Instances are owned by a single
    coordinator and are not safe for concurrent mutation.
    """

    def __init__(
        self,
        *,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        fingerprint_length: int = DEFAULT_FINGERPRINT_LENGTH,
    ) -> None:
        self.threshold = threshold
        self.fingerprint_length = fingerprint_length
        self._index: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, title: object) -> bool:
        return isinstance(title, str) and self.fingerprint(title) in self._index

    def fingerprint(self, title: str) -> str:
        return fingerprint(title, self.fingerprint_length)

    def fingerprints(self) -> Set[str]:
        return set(self._index)

    def find_match(self, title: str) -> Optional[str]:
        """Return the registered title ``title`` duplicates, without registering."""

        key = self.fingerprint(title)
        if key in self._index:
            return self._index[key]
        for candidate, original in self._index.items():
            if similarity(key, candidate) > self.threshold:
                return original
        return None

    def is_duplicate(self, title: str) -> bool:
        """Return ``True`` for a near-duplicate; otherwise register ``title``."""

        match = self.find_match(title)
        if match is not None:
            logger.debug("Duplicate detected: %r similar to %r", title[:50], match[:50])
            return True
        self._index[self.fingerprint(title)] = title
        return False

    def seed(self, fingerprints: Iterable[str]) -> None:
        """Register fingerprints restored from a checkpoint."""

        for key in fingerprints:
            self._index.setdefault(key, key)

    def seed_titles(self, titles: Iterable[str]) -> None:
        """Register titles already held by the record store."""

        for title in titles:
            self._index.setdefault(self.fingerprint(title), title)

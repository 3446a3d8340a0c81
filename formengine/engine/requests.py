"""
Request tokens for "last request wins" ordering.

Each logical operation (an email lookup for one field, slot retrieval for
one schedule field) gets a key. Issuing a request returns a fresh token;
when the response arrives it is applied only if its token is still the
latest one issued for that key.

Usage:
    token = tracker.issue("slots:appointment-time")
    response = await fetch()
    if not tracker.is_current("slots:appointment-time", token):
        return  # superseded
"""

import itertools
from typing import Hashable, Optional


class RequestTracker:
    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._latest: dict[Hashable, int] = {}

    def issue(self, key: Hashable) -> int:
        token = next(self._counter)
        self._latest[key] = token
        return token

    def is_current(self, key: Hashable, token: int) -> bool:
        return self._latest.get(key) == token

    def latest(self, key: Hashable) -> Optional[int]:
        return self._latest.get(key)

    def forget(self, key: Hashable) -> None:
        """Invalidate any outstanding request for ``key``."""
        self._latest.pop(key, None)

"""Bookkeeping that makes commit/release of reservation tokens idempotent."""

import threading
from collections import OrderedDict
from uuid import UUID


class SettlementBook:
    """Remembers which tokens were committed or released.

    A token is claimed exactly once; later claims return False so a retried
    release never decrements a counter twice. The oldest entries are evicted
    past ``max_entries``.
    """

    def __init__(self, max_entries: int = 100_000) -> None:
        self._lock = threading.Lock()
        self._settled: OrderedDict[UUID, str] = OrderedDict()
        self._max_entries = max_entries

    def claim(self, token_id: UUID, outcome: str) -> bool:
        with self._lock:
            if token_id in self._settled:
                return False
            self._settled[token_id] = outcome
            while len(self._settled) > self._max_entries:
                self._settled.popitem(last=False)
            return True

    def unclaim(self, token_id: UUID) -> None:
        """Forget a claim whose counter update failed, so it can be retried."""
        with self._lock:
            self._settled.pop(token_id, None)

"""
Per-case serialization and stale-result suppression.

Nothing in the ranking pipeline is concurrent. These helpers are for
hosts that let several editors or requests touch one case: mutations of a
case run under that case's lock, and only the newest ranking request for a
case may apply its result.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class CaseLocks:
    """One lock per case id; last writer wins across lock holders."""

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, case_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(case_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[case_id] = lock
            return lock

    @contextmanager
    def hold(self, case_id: str) -> Iterator[None]:
        lock = self.lock_for(case_id)
        with lock:
            yield

    def forget(self, case_id: str) -> None:
        with self._guard:
            self._locks.pop(case_id, None)


class LatestRequestGate:
    """
    Hands out a token per ranking request; a newer request for the same
    case supersedes older ones.

    Usage:
        token = gate.begin(case_id)
        hits = safe_rank(...)
        if gate.is_current(case_id, token):
            apply(hits)
    """

    def __init__(self):
        self._generation: Dict[str, int] = {}
        self._guard = threading.Lock()

    def begin(self, case_id: str) -> int:
        with self._guard:
            token = self._generation.get(case_id, 0) + 1
            self._generation[case_id] = token
            return token

    def is_current(self, case_id: str, token: int) -> bool:
        with self._guard:
            return self._generation.get(case_id) == token

"""
Per-loan locks

Ledger writes are read-modify-write over a loan's whole installment history.
Writers for the same loan take the same lock; different loans never contend.
A loan's lock lives only while some thread holds or waits on it, so the
registry never grows with the number of loan ids ever asked for.
"""

import threading
from contextlib import contextmanager
from typing import Dict


class _LoanLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


class LoanLockRegistry:
    """Hands out one re-entrant lock per loan id"""

    def __init__(self):
        self._locks: Dict[str, _LoanLock] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _acquire_entry(self, loan_id: str) -> _LoanLock:
        with self._guard:
            entry = self._locks.get(loan_id)
            if entry is None:
                entry = _LoanLock()
                self._locks[loan_id] = entry
            entry.users += 1
            return entry

    def _release_entry(self, loan_id: str, entry: _LoanLock) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[loan_id]

    @contextmanager
    def hold(self, loan_id: str):
        entry = self._acquire_entry(loan_id)
        try:
            with entry.lock:
                yield
        finally:
            self._release_entry(loan_id, entry)

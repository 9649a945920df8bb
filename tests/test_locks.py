"""
Test suite for per-loan locks
"""

import pytest
import threading
from datetime import datetime, timezone

from lending_core.audit import AuditTrail
from lending_core.clock import FixedClock
from lending_core.errors import LoanNotFound
from lending_core.ledger import InstallmentLedger
from lending_core.locks import LoanLockRegistry
from lending_core.products import ProductCatalog
from lending_core.storage import InMemoryStorage


class TestLoanLockRegistry:

    def test_lock_released_after_use(self):
        locks = LoanLockRegistry()
        with locks.hold("L1"):
            assert len(locks) == 1
        assert len(locks) == 0

    def test_reentrant_for_same_thread(self):
        locks = LoanLockRegistry()
        with locks.hold("L1"):
            with locks.hold("L1"):
                assert len(locks) == 1
            assert len(locks) == 1
        assert len(locks) == 0

    def test_released_when_block_raises(self):
        locks = LoanLockRegistry()
        with pytest.raises(RuntimeError):
            with locks.hold("L1"):
                raise RuntimeError("write failed")
        assert len(locks) == 0

    def test_waiter_shares_the_held_lock(self):
        """A thread waiting on a loan keeps its lock alive and gets it next"""
        locks = LoanLockRegistry()
        order = []

        def writer():
            with locks.hold("L1"):
                order.append("second")

        with locks.hold("L1"):
            thread = threading.Thread(target=writer)
            thread.start()
            thread.join(0.1)
            assert thread.is_alive()
            order.append("first")
            assert len(locks) == 1
        thread.join()

        assert order == ["first", "second"]
        assert len(locks) == 0

    def test_rejected_ledger_calls_leave_no_locks(self):
        """Unknown loan ids do not accumulate locks"""
        storage = InMemoryStorage()
        locks = LoanLockRegistry()
        ledger = InstallmentLedger(
            storage, ProductCatalog(storage), AuditTrail(storage),
            clock=FixedClock(datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)),
            locks=locks
        )

        for i in range(200):
            with pytest.raises(LoanNotFound):
                ledger.mark_missed(f"no-such-loan-{i}", "T1", 7)
            with pytest.raises(LoanNotFound):
                ledger.record_payment(f"no-such-loan-{i}", "10", "10", "0", 7, "T1")

        assert len(locks) == 0

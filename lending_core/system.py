"""
Lending system wiring

Builds storage, the audit trail and the services from LendingConfig. This is
the only place the configuration is read; every component below receives its
settings as explicit arguments.
"""

from typing import Optional

from .access import ResourceAccessGate
from .audit import AuditTrail
from .clock import Clock, SystemClock
from .config import LendingConfig, get_config
from .ledger import InstallmentLedger
from .loans import LoanManager
from .locks import LoanLockRegistry
from .money import RoundingPolicy
from .products import ProductCatalog
from .reporting import LendingReports
from .storage import StorageInterface, create_storage


class LendingSystem:
    """Lending core with all components initialized"""

    def __init__(
        self,
        config: Optional[LendingConfig] = None,
        storage: Optional[StorageInterface] = None,
        clock: Optional[Clock] = None
    ):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config.database_url)
        self.clock = clock or SystemClock()
        self.rounding = RoundingPolicy(
            charge_places=self.config.charge_places,
            installment_places=self.config.installment_places
        )

        self.gate = ResourceAccessGate()
        self.locks = LoanLockRegistry()
        self.audit_trail = AuditTrail(self.storage)
        self.catalog = ProductCatalog(self.storage)

        self.loan_manager = LoanManager(
            self.storage, self.catalog, self.audit_trail,
            gate=self.gate,
            clock=self.clock,
            rounding=self.rounding,
            locks=self.locks,
            allow_negative_disbursement=self.config.allow_negative_disbursement,
            auto_complete=self.config.auto_complete_loans
        )
        self.ledger = InstallmentLedger(
            self.storage, self.catalog, self.audit_trail,
            gate=self.gate,
            clock=self.clock,
            rounding=self.rounding,
            locks=self.locks,
            auto_complete=self.config.auto_complete_loans,
            retry_limit=self.config.upsert_retry_limit
        )
        self.reports = LendingReports(self.storage, self.catalog, gate=self.gate, clock=self.clock)

    def close(self) -> None:
        self.storage.close()

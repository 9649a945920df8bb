"""
Installment Ledger

Records collections against loans and keeps every loan's outstanding balance
equal to ``max(0, total_payable - cash collected over all installments)``.

Each write runs under the loan's lock and a storage transaction: the loan,
its product and its full installment history are read, the new row and the
new balance are computed, and both are written together with the audit
event. A loan has at most one installment per calendar day; recording twice
on the same day amends that day's row.
"""

from decimal import Decimal
from datetime import date
from typing import Callable, List, Optional, Union
import uuid

from .access import ResourceAccessGate
from .audit import AuditTrail, AuditEventType
from .clock import Clock, SystemClock
from .errors import (
    AlreadyPaid, AmountMismatch, ConcurrentModification, InstallmentNotFound,
    InvalidAmount, LoanNotFound, OverpaymentUseFullPaid
)
from .installments import (
    Installment, InstallmentStatus, InstallmentStore, collected_total, derive_status
)
from .loans import Loan, LoanStore
from .locks import LoanLockRegistry
from .logging_config import get_logger, log_action, logged_rejection
from .money import RoundingPolicy, ZERO, non_negative, to_decimal
from .products import ProductCatalog
from .schedule import calculate_next_due_at
from .storage import DuplicateRecordError, StorageInterface

Number = Union[Decimal, int, str]


class InstallmentLedger:
    """Installment writes and balance reconciliation"""

    def __init__(
        self,
        storage: StorageInterface,
        catalog: ProductCatalog,
        audit_trail: AuditTrail,
        gate: Optional[ResourceAccessGate] = None,
        clock: Optional[Clock] = None,
        rounding: RoundingPolicy = RoundingPolicy(),
        locks: Optional[LoanLockRegistry] = None,
        auto_complete: bool = True,
        retry_limit: int = 3
    ):
        self.storage = storage
        self.catalog = catalog
        self.audit_trail = audit_trail
        self.gate = gate or ResourceAccessGate()
        self.clock = clock or SystemClock()
        self.rounding = rounding
        self.locks = locks or LoanLockRegistry()
        self.auto_complete = auto_complete
        self.retry_limit = retry_limit
        self.loans = LoanStore(storage)
        self.installments = InstallmentStore(storage)
        self.logger = get_logger("lending.ledger")

    # Helpers

    def _cash(self, value: Number, field_name: str) -> Decimal:
        try:
            amount = to_decimal(value, field_name)
        except ValueError as e:
            raise InvalidAmount(str(e), {field_name: value})
        if amount < ZERO:
            raise InvalidAmount(f"{field_name} cannot be negative", {field_name: value})
        return self.rounding.round_cash(amount)

    def _load_loan(self, loan_id: str, tenant_id: str) -> Loan:
        loan = self.loans.find_by_id(loan_id)
        if loan is None:
            raise LoanNotFound(f"Loan {loan_id} not found", {"loan_id": loan_id})
        self.gate.require_tenant(loan.tenant_id, tenant_id, "loan", loan_id)
        return loan

    def _load_installment(self, installment_id: str, tenant_id: str) -> Installment:
        installment = self.installments.find_by_id(installment_id)
        if installment is None:
            raise InstallmentNotFound(
                f"Installment {installment_id} not found",
                {"installment_id": installment_id}
            )
        self.gate.require_tenant(installment.tenant_id, tenant_id, "installment", installment_id)
        return installment

    def _require_line_access(self, loan: Loan, user_id: int, tenant_id: str) -> None:
        self.gate.require(self.catalog.get_line(loan.line_id), user_id, tenant_id)

    def _rebalance(self, loan: Loan, changed: Optional[Installment] = None) -> Loan:
        """
        Recompute the loan balance from its full history. ``changed`` replaces
        the stored row with the same id (or is added when it has none yet).
        """
        history = [i for i in self.installments.find_by_loan_id(loan.id)
                   if changed is None or i.id != changed.id]
        if changed is not None:
            history.append(changed)
        loan.apply_collections(collected_total(history), self.auto_complete)
        loan.updated_at = self.clock.now()
        return loan

    def _with_retry(self, loan_id: str, operation: Callable[[], Installment]) -> Installment:
        """
        Run a day upsert, retrying when another writer created the day's row
        between our lookup and our insert; the retry then takes the update path.
        """
        attempts = max(1, self.retry_limit)
        for attempt in range(1, attempts + 1):
            try:
                return operation()
            except DuplicateRecordError:
                log_action(
                    self.logger, "debug", "Installment day-key conflict, retrying",
                    action="upsert_installment", resource=f"loan:{loan_id}",
                    extra={"attempt": attempt}
                )
        raise ConcurrentModification(
            "Installment for today kept changing concurrently; giving up",
            {"loan_id": loan_id, "attempts": attempts}
        )

    def _upsert_today(
        self,
        loan_id: str,
        tenant_id: str,
        collected_by: int,
        amount: Decimal,
        cash_a: Decimal,
        cash_b: Decimal,
        status_for: Callable[[Loan], InstallmentStatus],
        remaining_for: Callable[[Loan], Decimal],
        event_type: AuditEventType
    ) -> Installment:
        with self.storage.atomic():
            loan = self._load_loan(loan_id, tenant_id)
            self._require_line_access(loan, collected_by, tenant_id)
            product = self.catalog.get_product(loan.loan_product_id)

            now = self.clock.now()
            today = self.clock.today()
            existing = self.installments.find_by_loan_and_date(loan.id, today)

            installment = Installment(
                id=existing.id if existing else str(uuid.uuid4()),
                created_at=existing.created_at if existing else now,
                updated_at=now,
                tenant_id=loan.tenant_id,
                loan_id=loan.id,
                due_date=today,
                amount=amount,
                cash_a=cash_a,
                cash_b=cash_b,
                remaining_amount=remaining_for(loan),
                status=status_for(loan),
                collected_by=collected_by,
                next_due_at=calculate_next_due_at(product.collection_cadence, product.next_due_units, now)
            )

            self._rebalance(loan, installment)
            if existing:
                self.installments.update(installment)
            else:
                self.installments.create(installment)
            self.loans.update(loan)

            self.audit_trail.log_event(
                event_type=event_type,
                entity_type="installment",
                entity_id=installment.id,
                metadata={
                    "loan_id": loan.id,
                    "due_date": today,
                    "amount": amount,
                    "cash_a": cash_a,
                    "cash_b": cash_b,
                    "status": installment.status,
                    "amended": existing is not None,
                    "outstanding_balance": loan.outstanding_balance
                },
                tenant_id=tenant_id,
                user_id=collected_by
            )
            return installment

    def _log_write(self, message: str, action: str, installment: Installment, user_id: Optional[int]) -> None:
        log_action(
            self.logger, "info", message,
            user_id=user_id, tenant_id=installment.tenant_id,
            action=action, resource=f"installment:{installment.id}",
            extra={
                "loan_id": installment.loan_id,
                "due_date": installment.due_date.isoformat(),
                "amount": str(installment.amount),
                "status": installment.status.value
            }
        )

    # Operations

    def record_payment(
        self,
        loan_id: str,
        amount: Number,
        cash_a: Number,
        cash_b: Number,
        collected_by: int,
        tenant_id: str
    ) -> Installment:
        """
        Record today's collection for a loan.

        Creates today's installment, or amends it when one already exists.
        The status follows the amount: PAID at or above the loan's installment
        amount, PARTIALLY above zero, MISSED at zero.

        Raises:
            AmountMismatch: amount != cash_a + cash_b
            LoanNotFound, TenantMismatch, AccessDenied
            ConcurrentModification: the day's row kept changing under us
        """
        with logged_rejection(self.logger, "record_payment", collected_by, tenant_id, f"loan:{loan_id}"):
            amount = self._cash(amount, "amount")
            cash_a = self._cash(cash_a, "cash_a")
            cash_b = self._cash(cash_b, "cash_b")
            if amount != cash_a + cash_b:
                raise AmountMismatch(
                    "Amount must equal cash in hand plus electronic cash",
                    {"amount": amount, "cash_a": cash_a, "cash_b": cash_b}
                )

            with self.locks.hold(loan_id):
                installment = self._with_retry(loan_id, lambda: self._upsert_today(
                    loan_id, tenant_id, collected_by, amount, cash_a, cash_b,
                    status_for=lambda loan: derive_status(amount, loan.installment_amount),
                    remaining_for=lambda loan: non_negative(loan.installment_amount - amount),
                    event_type=AuditEventType.INSTALLMENT_RECORDED
                ))

        self._log_write("Installment recorded", "record_payment", installment, collected_by)
        return installment

    def mark_missed(self, loan_id: str, tenant_id: str, collected_by: int) -> Installment:
        """Record today as missed: nothing collected, the full installment still due"""
        with logged_rejection(self.logger, "mark_missed", collected_by, tenant_id, f"loan:{loan_id}"):
            with self.locks.hold(loan_id):
                installment = self._with_retry(loan_id, lambda: self._upsert_today(
                    loan_id, tenant_id, collected_by, ZERO, ZERO, ZERO,
                    status_for=lambda loan: InstallmentStatus.MISSED,
                    remaining_for=lambda loan: loan.installment_amount,
                    event_type=AuditEventType.INSTALLMENT_MISSED
                ))

        self._log_write("Installment marked missed", "mark_missed", installment, collected_by)
        return installment

    def mark_fully_paid(
        self,
        installment_id: str,
        cash_a: Number,
        cash_b: Number,
        collected_by: int,
        tenant_id: str
    ) -> Installment:
        """
        Settle an existing installment in full.

        Raises:
            InstallmentNotFound, TenantMismatch, AccessDenied
            AlreadyPaid: the installment is already PAID; nothing changes
        """
        with logged_rejection(self.logger, "mark_fully_paid", collected_by, tenant_id,
                              f"installment:{installment_id}"):
            cash_a = self._cash(cash_a, "cash_a")
            cash_b = self._cash(cash_b, "cash_b")
            installment = self._load_installment(installment_id, tenant_id)

            with self.locks.hold(installment.loan_id), self.storage.atomic():
                installment = self._load_installment(installment_id, tenant_id)
                loan = self._load_loan(installment.loan_id, tenant_id)
                self._require_line_access(loan, collected_by, tenant_id)
                if installment.status == InstallmentStatus.PAID:
                    raise AlreadyPaid(
                        "Installment is already paid",
                        {"installment_id": installment_id}
                    )

                installment.cash_a = cash_a
                installment.cash_b = cash_b
                installment.remaining_amount = ZERO
                installment.status = InstallmentStatus.PAID
                installment.collected_by = collected_by
                installment.updated_at = self.clock.now()

                self._rebalance(loan, installment)
                self.installments.update(installment)
                self.loans.update(loan)
                self.audit_trail.log_event(
                    event_type=AuditEventType.INSTALLMENT_PAID,
                    entity_type="installment",
                    entity_id=installment.id,
                    metadata={
                        "loan_id": loan.id,
                        "cash_a": cash_a,
                        "cash_b": cash_b,
                        "outstanding_balance": loan.outstanding_balance
                    },
                    tenant_id=tenant_id,
                    user_id=collected_by
                )

        self._log_write("Installment marked paid", "mark_fully_paid", installment, collected_by)
        return installment

    def mark_partially_paid(
        self,
        installment_id: str,
        cash_a: Number,
        cash_b: Number,
        collected_by: int,
        tenant_id: str
    ) -> Installment:
        """
        Record a partial settlement of an existing installment.

        The remaining amount is measured against the installment's own amount,
        or the loan's installment amount for a row recorded with nothing
        collected (a missed day).

        Raises:
            InstallmentNotFound, TenantMismatch, AccessDenied
            OverpaymentUseFullPaid: the cash covers the whole amount
        """
        with logged_rejection(self.logger, "mark_partially_paid", collected_by, tenant_id,
                              f"installment:{installment_id}"):
            cash_a = self._cash(cash_a, "cash_a")
            cash_b = self._cash(cash_b, "cash_b")
            installment = self._load_installment(installment_id, tenant_id)

            with self.locks.hold(installment.loan_id), self.storage.atomic():
                installment = self._load_installment(installment_id, tenant_id)
                loan = self._load_loan(installment.loan_id, tenant_id)
                self._require_line_access(loan, collected_by, tenant_id)

                due = installment.amount if installment.amount > ZERO else loan.installment_amount
                remaining = due - (cash_a + cash_b)
                if remaining <= ZERO:
                    raise OverpaymentUseFullPaid(
                        "Cash covers the whole installment; mark it fully paid instead",
                        {"installment_id": installment_id, "due": due, "paid": cash_a + cash_b}
                    )

                installment.cash_a = cash_a
                installment.cash_b = cash_b
                installment.remaining_amount = remaining
                installment.status = InstallmentStatus.PARTIALLY
                installment.collected_by = collected_by
                installment.updated_at = self.clock.now()

                self._rebalance(loan, installment)
                self.installments.update(installment)
                self.loans.update(loan)
                self.audit_trail.log_event(
                    event_type=AuditEventType.INSTALLMENT_PARTIALLY_PAID,
                    entity_type="installment",
                    entity_id=installment.id,
                    metadata={
                        "loan_id": loan.id,
                        "cash_a": cash_a,
                        "cash_b": cash_b,
                        "remaining_amount": remaining,
                        "outstanding_balance": loan.outstanding_balance
                    },
                    tenant_id=tenant_id,
                    user_id=collected_by
                )

        self._log_write("Installment marked partially paid", "mark_partially_paid", installment, collected_by)
        return installment

    def delete_installment(self, installment_id: str, tenant_id: str, user_id: Optional[int] = None) -> bool:
        """
        Administrative delete. The loan balance is deliberately left as it
        is; run reconcile_loan to bring it back in line with the history.
        """
        with logged_rejection(self.logger, "delete_installment", user_id, tenant_id,
                              f"installment:{installment_id}"):
            installment = self._load_installment(installment_id, tenant_id)
            with self.locks.hold(installment.loan_id), self.storage.atomic():
                installment = self._load_installment(installment_id, tenant_id)
                deleted = self.installments.delete(installment)
                self.audit_trail.log_event(
                    event_type=AuditEventType.INSTALLMENT_DELETED,
                    entity_type="installment",
                    entity_id=installment.id,
                    metadata={
                        "loan_id": installment.loan_id,
                        "due_date": installment.due_date,
                        "cash_a": installment.cash_a,
                        "cash_b": installment.cash_b
                    },
                    tenant_id=tenant_id,
                    user_id=user_id
                )

        log_action(
            self.logger, "warning", "Installment deleted without balance recompute",
            user_id=user_id, tenant_id=tenant_id,
            action="delete_installment", resource=f"installment:{installment_id}",
            extra={"loan_id": installment.loan_id}
        )
        return deleted

    def reconcile_loan(self, loan_id: str, tenant_id: str, user_id: Optional[int] = None) -> Loan:
        """Recompute a loan's collected amount and balance from its installments"""
        with logged_rejection(self.logger, "reconcile_loan", user_id, tenant_id, f"loan:{loan_id}"):
            with self.locks.hold(loan_id), self.storage.atomic():
                loan = self._load_loan(loan_id, tenant_id)
                old_balance = loan.outstanding_balance
                self._rebalance(loan)
                self.loans.update(loan)
                self.audit_trail.log_event(
                    event_type=AuditEventType.BALANCE_RECONCILED,
                    entity_type="loan",
                    entity_id=loan.id,
                    metadata={
                        "old_balance": old_balance,
                        "new_balance": loan.outstanding_balance,
                        "collected_amount": loan.collected_amount
                    },
                    tenant_id=tenant_id,
                    user_id=user_id
                )

        log_action(
            self.logger, "info", "Loan balance reconciled",
            user_id=user_id, tenant_id=tenant_id,
            action="reconcile_loan", resource=f"loan:{loan_id}",
            extra={"old_balance": str(old_balance), "new_balance": str(loan.outstanding_balance)}
        )
        return loan

    def get_installment(self, installment_id: str, tenant_id: str) -> Installment:
        return self._load_installment(installment_id, tenant_id)

    def list_installments(
        self,
        loan_id: str,
        tenant_id: str,
        status: Optional[Union[InstallmentStatus, str]] = None,
        since: Optional[date] = None
    ) -> List[Installment]:
        """Installment history of a loan, oldest first"""
        loan = self._load_loan(loan_id, tenant_id)
        rows = self.installments.find_by_loan_id(loan.id)
        if status is not None:
            wanted = InstallmentStatus.parse(status)
            rows = [i for i in rows if i.status == wanted]
        if since is not None:
            rows = [i for i in rows if i.due_date >= since]
        return rows

"""
Loan Module

Handles loan origination on a collection line, loan lookup, status changes,
soft deletion and full edits. The financial figures come from the origination
calculator and the end date from the collection schedule; the outstanding
balance is afterwards maintained by the installment ledger.
"""

from decimal import Decimal
from datetime import datetime, date
from dataclasses import dataclass
from typing import Dict, List, Optional, Union
from enum import Enum
import uuid

from .access import ResourceAccessGate
from .audit import AuditTrail, AuditEventType
from .clock import Clock, SystemClock
from .errors import InvalidStatus, LoanNotFound, NegativeDisbursement
from .installments import InstallmentStore, collected_total
from .locks import LoanLockRegistry
from .logging_config import get_logger, log_action, logged_rejection
from .money import RoundingPolicy, ZERO, non_negative, to_decimal
from .origination import OriginationQuote, calculate_origination
from .products import ProductCatalog
from .schedule import calculate_end_date, parse_start_date
from .storage import StorageInterface, StorageRecord


class LoanStatus(Enum):
    """Loan lifecycle states"""
    ONGOING = "ONGOING"       # Collecting installments
    COMPLETED = "COMPLETED"   # Nothing left to collect
    PENDING = "PENDING"       # Awaiting approval or disbursement
    NIL = "NIL"               # Written off / no activity

    @classmethod
    def parse(cls, value: Union['LoanStatus', str]) -> 'LoanStatus':
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        raise InvalidStatus(
            f"Invalid loan status: {value!r}",
            {"status": value, "allowed": ", ".join(s.value for s in cls)}
        )


@dataclass
class Loan(StorageRecord):
    """Loan with its origination figures and running balance"""
    tenant_id: str
    customer_id: str
    line_id: str
    loan_product_id: str
    principal: Decimal
    interest_amount: Decimal
    initial_deduction_amount: Decimal
    disbursed_amount: Decimal
    total_payable: Decimal
    installment_amount: Decimal
    total_installment_count: int
    outstanding_balance: Decimal
    start_date: date
    end_date: date
    status: LoanStatus = LoanStatus.ONGOING
    is_active: bool = True
    collected_amount: Decimal = ZERO
    created_by: Optional[int] = None

    def __post_init__(self):
        for name in ('principal', 'interest_amount', 'initial_deduction_amount', 'disbursed_amount',
                     'total_payable', 'installment_amount', 'outstanding_balance', 'collected_amount'):
            setattr(self, name, to_decimal(getattr(self, name), name))
        if isinstance(self.start_date, str):
            self.start_date = date.fromisoformat(self.start_date)
        if isinstance(self.end_date, str):
            self.end_date = date.fromisoformat(self.end_date)
        self.status = LoanStatus.parse(self.status)

    def apply_quote(self, quote: OriginationQuote) -> None:
        self.principal = quote.principal
        self.interest_amount = quote.interest_amount
        self.initial_deduction_amount = quote.initial_deduction_amount
        self.disbursed_amount = quote.disbursed_amount
        self.total_payable = quote.total_payable
        self.installment_amount = quote.installment_amount
        self.total_installment_count = quote.total_installment_count

    def apply_collections(self, collected: Decimal, auto_complete: bool = True) -> None:
        """
        Re-derive the balance from the total cash collected so far.

        With auto_complete, an ONGOING loan whose balance reaches zero becomes
        COMPLETED, and a COMPLETED loan with a positive balance goes back to
        ONGOING. PENDING and NIL are left alone.
        """
        self.collected_amount = collected
        self.outstanding_balance = non_negative(self.total_payable - collected)
        if not auto_complete:
            return
        if self.outstanding_balance == ZERO and self.status == LoanStatus.ONGOING:
            self.status = LoanStatus.COMPLETED
        elif self.outstanding_balance > ZERO and self.status == LoanStatus.COMPLETED:
            self.status = LoanStatus.ONGOING


class LoanStore:
    """Persistence for loans"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "loans"

    def find_by_id(self, loan_id: str) -> Optional[Loan]:
        data = self.storage.load(self.table_name, loan_id)
        if data is None:
            return None
        return Loan.from_dict(data)

    def find_by_loan_line(self, line_id: str) -> List[Loan]:
        return [Loan.from_dict(d) for d in self.storage.find(self.table_name, {"line_id": line_id})]

    def find_by_tenant(self, tenant_id: str, **filters) -> List[Loan]:
        filters["tenant_id"] = tenant_id
        return [Loan.from_dict(d) for d in self.storage.find(self.table_name, filters)]

    def create(self, loan: Loan) -> Loan:
        self.storage.insert(self.table_name, loan.id, loan.to_dict())
        return loan

    def update(self, loan: Loan) -> Loan:
        self.storage.save(self.table_name, loan.id, loan.to_dict())
        return loan


class LoanManager:
    """
    Loan lifecycle operations.

    Every operation is tenant-scoped: a loan of another tenant is reported as
    TenantMismatch, never returned. Operations on a line additionally pass
    the line's allow-list.
    """

    def __init__(
        self,
        storage: StorageInterface,
        catalog: ProductCatalog,
        audit_trail: AuditTrail,
        gate: Optional[ResourceAccessGate] = None,
        clock: Optional[Clock] = None,
        rounding: RoundingPolicy = RoundingPolicy(),
        locks: Optional[LoanLockRegistry] = None,
        allow_negative_disbursement: bool = False,
        auto_complete: bool = True
    ):
        self.storage = storage
        self.catalog = catalog
        self.audit_trail = audit_trail
        self.gate = gate or ResourceAccessGate()
        self.clock = clock or SystemClock()
        self.rounding = rounding
        self.locks = locks or LoanLockRegistry()
        self.allow_negative_disbursement = allow_negative_disbursement
        self.auto_complete = auto_complete
        self.loans = LoanStore(storage)
        self.installments = InstallmentStore(storage)
        self.logger = get_logger("lending.loans")

    def _quote(self, principal, product) -> OriginationQuote:
        quote = calculate_origination(principal, product, self.rounding)
        if quote.has_negative_disbursement and not self.allow_negative_disbursement:
            raise NegativeDisbursement(
                "Charges withheld at disbursement exceed the principal",
                {"principal": quote.principal, "disbursed_amount": quote.disbursed_amount}
            )
        return quote

    def originate_loan(
        self,
        tenant_id: str,
        user_id: int,
        customer_id: str,
        line_id: str,
        principal: Union[Decimal, int, str],
        start_date: Union[date, datetime, str]
    ) -> Loan:
        """
        Create a loan on a collection line.

        Args:
            tenant_id: Tenant from the verified credential
            user_id: Collector creating the loan
            customer_id: Borrower
            line_id: Collection line; its product supplies the terms
            principal: Amount lent
            start_date: First day of the loan

        Returns:
            Persisted Loan with outstanding_balance == total_payable

        Raises:
            LineNotFound, TenantMismatch, AccessDenied, InvalidDate,
            InvalidPrincipal, DivisionByZero, NegativeDisbursement
        """
        with logged_rejection(self.logger, "originate_loan", user_id, tenant_id, f"line:{line_id}"):
            line = self.catalog.get_line(line_id)
            self.gate.require(line, user_id, tenant_id)
            product = self.catalog.get_product(line.loan_product_id)
            self.gate.require_tenant(product.tenant_id, tenant_id, "loan_product", product.id)

            start = parse_start_date(start_date)
            end_date = calculate_end_date(product.collection_cadence, product.period_count, start)
            quote = self._quote(principal, product)

            now = self.clock.now()
            loan = Loan(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                tenant_id=tenant_id,
                customer_id=customer_id,
                line_id=line.id,
                loan_product_id=product.id,
                principal=quote.principal,
                interest_amount=quote.interest_amount,
                initial_deduction_amount=quote.initial_deduction_amount,
                disbursed_amount=quote.disbursed_amount,
                total_payable=quote.total_payable,
                installment_amount=quote.installment_amount,
                total_installment_count=quote.total_installment_count,
                outstanding_balance=quote.total_payable,
                start_date=start,
                end_date=end_date,
                created_by=user_id
            )

            with self.storage.atomic():
                self.loans.create(loan)
                self.audit_trail.log_event(
                    event_type=AuditEventType.LOAN_ORIGINATED,
                    entity_type="loan",
                    entity_id=loan.id,
                    metadata={"customer_id": customer_id, "line_id": line.id, **quote.to_dict()},
                    tenant_id=tenant_id,
                    user_id=user_id
                )

        log_action(
            self.logger, "info", "Loan originated",
            user_id=user_id, tenant_id=tenant_id,
            action="originate_loan", resource=f"loan:{loan.id}",
            extra={
                "principal": str(loan.principal),
                "disbursed_amount": str(loan.disbursed_amount),
                "total_payable": str(loan.total_payable),
                "end_date": loan.end_date.isoformat()
            }
        )
        return loan

    def get_loan(self, loan_id: str, tenant_id: str) -> Loan:
        """
        Raises:
            LoanNotFound: no such loan
            TenantMismatch: loan belongs to another tenant
        """
        loan = self.loans.find_by_id(loan_id)
        if loan is None:
            raise LoanNotFound(f"Loan {loan_id} not found", {"loan_id": loan_id})
        self.gate.require_tenant(loan.tenant_id, tenant_id, "loan", loan_id)
        return loan

    def list_loans(
        self,
        tenant_id: str,
        status: Optional[Union[LoanStatus, str]] = None,
        customer_id: Optional[str] = None,
        active_only: bool = False
    ) -> List[Loan]:
        filters = {}
        if status is not None:
            filters["status"] = LoanStatus.parse(status)
        if customer_id is not None:
            filters["customer_id"] = customer_id
        if active_only:
            filters["is_active"] = True

        loans = self.loans.find_by_tenant(tenant_id, **filters)
        loans.sort(key=lambda loan: loan.created_at)
        return loans

    def list_loans_by_line(self, line_id: str, user_id: int, tenant_id: str) -> List[Loan]:
        """Active loans on a line; the user must be on the line's allow-list"""
        with logged_rejection(self.logger, "list_loans_by_line", user_id, tenant_id, f"line:{line_id}"):
            line = self.catalog.get_line(line_id)
            self.gate.require(line, user_id, tenant_id)

        loans = [
            loan for loan in self.loans.find_by_loan_line(line_id)
            if loan.tenant_id == tenant_id and loan.is_active
        ]
        loans.sort(key=lambda loan: loan.created_at)
        return loans

    def update_status(
        self,
        loan_id: str,
        status: Union[LoanStatus, str],
        tenant_id: str,
        user_id: Optional[int] = None
    ) -> Loan:
        """Set the loan status explicitly"""
        with logged_rejection(self.logger, "update_loan_status", user_id, tenant_id, f"loan:{loan_id}"):
            new_status = LoanStatus.parse(status)
            with self.locks.hold(loan_id), self.storage.atomic():
                loan = self.get_loan(loan_id, tenant_id)
                old_status = loan.status
                loan.status = new_status
                loan.updated_at = self.clock.now()
                self.loans.update(loan)
                self.audit_trail.log_event(
                    event_type=AuditEventType.LOAN_STATUS_CHANGED,
                    entity_type="loan",
                    entity_id=loan.id,
                    metadata={"old_status": old_status, "new_status": new_status},
                    tenant_id=tenant_id,
                    user_id=user_id
                )

        log_action(
            self.logger, "info", f"Loan status changed to {new_status.value}",
            user_id=user_id, tenant_id=tenant_id,
            action="update_loan_status", resource=f"loan:{loan_id}",
            extra={"old_status": old_status.value, "new_status": new_status.value}
        )
        return loan

    def deactivate_loan(self, loan_id: str, tenant_id: str, user_id: Optional[int] = None) -> Loan:
        """Soft delete: the loan and its installments stay, but drop out of active listings"""
        with logged_rejection(self.logger, "deactivate_loan", user_id, tenant_id, f"loan:{loan_id}"):
            with self.locks.hold(loan_id), self.storage.atomic():
                loan = self.get_loan(loan_id, tenant_id)
                loan.is_active = False
                loan.updated_at = self.clock.now()
                self.loans.update(loan)
                self.audit_trail.log_event(
                    event_type=AuditEventType.LOAN_DEACTIVATED,
                    entity_type="loan",
                    entity_id=loan.id,
                    metadata={},
                    tenant_id=tenant_id,
                    user_id=user_id
                )

        log_action(
            self.logger, "info", "Loan deactivated",
            user_id=user_id, tenant_id=tenant_id,
            action="deactivate_loan", resource=f"loan:{loan_id}"
        )
        return loan

    def edit_loan(
        self,
        loan_id: str,
        tenant_id: str,
        user_id: int,
        principal: Optional[Union[Decimal, int, str]] = None,
        start_date: Optional[Union[date, datetime, str]] = None
    ) -> Loan:
        """
        Full edit: recompute the origination figures and end date, then
        re-derive the balance from the installment history.

        This is the only path that changes total_payable.
        """
        with logged_rejection(self.logger, "edit_loan", user_id, tenant_id, f"loan:{loan_id}"):
            with self.locks.hold(loan_id), self.storage.atomic():
                loan = self.get_loan(loan_id, tenant_id)
                line = self.catalog.get_line(loan.line_id)
                self.gate.require(line, user_id, tenant_id)
                product = self.catalog.get_product(loan.loan_product_id)

                start = parse_start_date(start_date) if start_date is not None else loan.start_date
                quote = self._quote(principal if principal is not None else loan.principal, product)
                changes: Dict[str, Dict[str, str]] = {}
                if quote.principal != loan.principal:
                    changes["principal"] = {"old": str(loan.principal), "new": str(quote.principal)}
                if start != loan.start_date:
                    changes["start_date"] = {"old": loan.start_date.isoformat(), "new": start.isoformat()}

                loan.apply_quote(quote)
                loan.start_date = start
                loan.end_date = calculate_end_date(product.collection_cadence, product.period_count, start)
                loan.apply_collections(
                    collected_total(self.installments.find_by_loan_id(loan.id)),
                    self.auto_complete
                )
                loan.updated_at = self.clock.now()
                self.loans.update(loan)
                self.audit_trail.log_event(
                    event_type=AuditEventType.LOAN_UPDATED,
                    entity_type="loan",
                    entity_id=loan.id,
                    metadata={
                        "changes": changes,
                        "total_payable": loan.total_payable,
                        "outstanding_balance": loan.outstanding_balance
                    },
                    tenant_id=tenant_id,
                    user_id=user_id
                )

        log_action(
            self.logger, "info", "Loan edited",
            user_id=user_id, tenant_id=tenant_id,
            action="edit_loan", resource=f"loan:{loan_id}",
            extra={"changes": changes, "outstanding_balance": str(loan.outstanding_balance)}
        )
        return loan

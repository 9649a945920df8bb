"""
Reporting Module

Tenant-scoped portfolio and collection summaries over loans and installments.
Read-only: nothing here writes to storage.
"""

from datetime import date, datetime, timedelta
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .access import ResourceAccessGate
from .clock import Clock, SystemClock
from .errors import InvalidDate
from .installments import Installment, InstallmentStatus, InstallmentStore
from .loans import LoanStatus, LoanStore
from .money import ZERO
from .products import ProductCatalog
from .schedule import parse_date
from .storage import StorageInterface, to_storable


def _newest_first(rows: List[Installment]) -> List[Installment]:
    return sorted(rows, key=lambda i: (i.due_date, i.created_at), reverse=True)


@dataclass
class ReportResult:
    """Result of a report execution"""
    report_id: str
    generated_at: datetime
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    data: List[Dict[str, Any]] = field(default_factory=list)
    totals: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'report_id': self.report_id,
            'generated_at': self.generated_at.isoformat(),
            'period_start': self.period_start.isoformat() if self.period_start else None,
            'period_end': self.period_end.isoformat() if self.period_end else None,
            'data': to_storable(self.data),
            'totals': to_storable(self.totals)
        }


class LendingReports:
    """
    Portfolio statistics for a tenant
    """

    def __init__(
        self,
        storage: StorageInterface,
        catalog: ProductCatalog,
        gate: Optional[ResourceAccessGate] = None,
        clock: Optional[Clock] = None
    ):
        self.storage = storage
        self.catalog = catalog
        self.gate = gate or ResourceAccessGate()
        self.clock = clock or SystemClock()
        self.loans = LoanStore(storage)
        self.installments = InstallmentStore(storage)

    def loan_stats(self, tenant_id: str) -> ReportResult:
        """
        Loan counts by status and money totals over the tenant's active loans
        """
        loans = [loan for loan in self.loans.find_by_tenant(tenant_id) if loan.is_active]

        by_status = {status.value: 0 for status in LoanStatus}
        totals = {
            'total_loans': len(loans),
            'total_principal': ZERO,
            'total_interest': ZERO,
            'total_disbursed': ZERO,
            'total_payable': ZERO,
            'total_collected': ZERO,
            'total_outstanding': ZERO
        }
        for loan in loans:
            by_status[loan.status.value] += 1
            totals['total_principal'] += loan.principal
            totals['total_interest'] += loan.interest_amount
            totals['total_disbursed'] += loan.disbursed_amount
            totals['total_payable'] += loan.total_payable
            totals['total_collected'] += loan.collected_amount
            totals['total_outstanding'] += loan.outstanding_balance
        totals['by_status'] = by_status

        return ReportResult(
            report_id="loan_stats",
            generated_at=self.clock.now(),
            data=[{'status': status, 'count': count} for status, count in by_status.items()],
            totals=totals
        )

    def installment_stats(self, tenant_id: str) -> ReportResult:
        """Installment counts by status with cash and remaining totals"""
        installments = self.installments.find_by_tenant(tenant_id)

        by_status = {status.value: 0 for status in InstallmentStatus}
        totals = {
            'total_installments': len(installments),
            'total_cash_a': ZERO,
            'total_cash_b': ZERO,
            'total_collected': ZERO,
            'total_remaining': ZERO
        }
        for installment in installments:
            by_status[installment.status.value] += 1
            totals['total_cash_a'] += installment.cash_a
            totals['total_cash_b'] += installment.cash_b
            totals['total_collected'] += installment.collected
            totals['total_remaining'] += installment.remaining_amount
        totals['by_status'] = by_status

        return ReportResult(
            report_id="installment_stats",
            generated_at=self.clock.now(),
            data=[{'status': status, 'count': count} for status, count in by_status.items()],
            totals=totals
        )

    def loan_analytics(self, tenant_id: str, from_date: Union[date, str], to_date: Union[date, str]) -> ReportResult:
        """
        New-loan totals for loans created between two dates, both inclusive.
        Deactivated loans count too: they were still originated in the range.

        Raises:
            InvalidDate: a bound does not parse or the range is reversed
        """
        start = parse_date(from_date, "from_date")
        end = parse_date(to_date, "to_date")
        if start > end:
            raise InvalidDate(
                "from_date must not be after to_date",
                {"from_date": start, "to_date": end}
            )

        loans = [
            loan for loan in self.loans.find_by_tenant(tenant_id)
            if start <= loan.created_at.date() <= end
        ]

        per_day: Dict[date, Dict[str, Any]] = {}
        totals = {
            'new_loan_count': len(loans),
            'total_principal': ZERO,
            'total_outstanding': ZERO,
            'total_disbursed': ZERO,
            'total_initial_deduction': ZERO,
            'total_interest': ZERO
        }
        for loan in loans:
            totals['total_principal'] += loan.principal
            totals['total_outstanding'] += loan.outstanding_balance
            totals['total_disbursed'] += loan.disbursed_amount
            totals['total_initial_deduction'] += loan.initial_deduction_amount
            totals['total_interest'] += loan.interest_amount

            day = loan.created_at.date()
            bucket = per_day.setdefault(day, {'date': day, 'count': 0, 'principal': ZERO})
            bucket['count'] += 1
            bucket['principal'] += loan.principal

        return ReportResult(
            report_id="loan_analytics",
            generated_at=self.clock.now(),
            period_start=start,
            period_end=end,
            data=[per_day[day] for day in sorted(per_day)],
            totals=totals
        )

    def list_installments(
        self,
        tenant_id: str,
        status: Optional[Union[InstallmentStatus, str]] = None
    ) -> List[Installment]:
        """All of a tenant's installments, newest due date first"""
        rows = self.installments.find_by_tenant(tenant_id)
        if status is not None:
            wanted = InstallmentStatus.parse(status)
            rows = [i for i in rows if i.status == wanted]
        return _newest_first(rows)

    def installments_by_customer(self, customer_id: str, tenant_id: str) -> List[Installment]:
        """Installments across every loan of a customer, newest due date first"""
        rows: List[Installment] = []
        for loan in self.loans.find_by_tenant(tenant_id, customer_id=customer_id):
            rows.extend(self.installments.find_by_loan_id(loan.id))
        return _newest_first(rows)

    def todays_installments(self, tenant_id: str) -> List[Installment]:
        today = self.clock.today()
        rows = [i for i in self.installments.find_by_tenant(tenant_id) if i.due_date == today]
        rows.sort(key=lambda i: i.created_at)
        return rows

    def collection_totals_by_line(self, line_id: str, user_id: int, tenant_id: str,
                                  days: int = 7) -> ReportResult:
        """
        Per-day cash collected on a line over the last ``days`` days, today
        included, oldest first. Days without collections report zero.

        Raises:
            LineNotFound, TenantMismatch, AccessDenied
        """
        line = self.catalog.get_line(line_id)
        self.gate.require(line, user_id, tenant_id)

        today = self.clock.today()
        start = today - timedelta(days=max(1, days) - 1)
        per_day: Dict[date, Dict[str, Any]] = {}
        for offset in range((today - start).days + 1):
            day = start + timedelta(days=offset)
            per_day[day] = {'date': day, 'count': 0, 'cash_a': ZERO, 'cash_b': ZERO, 'total': ZERO}

        for loan in self.loans.find_by_loan_line(line_id):
            if loan.tenant_id != tenant_id:
                continue
            for installment in self.installments.find_by_loan_id(loan.id):
                bucket = per_day.get(installment.due_date)
                if bucket is None:
                    continue
                bucket['count'] += 1
                bucket['cash_a'] += installment.cash_a
                bucket['cash_b'] += installment.cash_b
                bucket['total'] += installment.collected

        data = list(per_day.values())
        return ReportResult(
            report_id="collection_totals_by_line",
            generated_at=self.clock.now(),
            period_start=start,
            period_end=today,
            data=data,
            totals={
                'line_id': line_id,
                'count': sum(row['count'] for row in data),
                'total': sum((row['total'] for row in data), ZERO)
            }
        )

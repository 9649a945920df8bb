"""
Installment Records

One row per loan per calendar day. The ``(loan_id, due_date)`` pair is
guarded by a day-key table written with ``insert``, so a second writer for
the same day fails with DuplicateRecordError instead of creating a twin row.
"""

from decimal import Decimal
from datetime import datetime, date
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Union

from .errors import InvalidStatus
from .money import ZERO, to_decimal
from .storage import StorageInterface, StorageRecord


class InstallmentStatus(Enum):
    """Outcome of a collection visit"""
    PAID = "PAID"
    PARTIALLY = "PARTIALLY"
    MISSED = "MISSED"

    @classmethod
    def parse(cls, value: Union['InstallmentStatus', str]) -> 'InstallmentStatus':
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        raise InvalidStatus(
            f"Invalid installment status: {value!r}",
            {"status": value, "allowed": ", ".join(s.value for s in cls)}
        )


def derive_status(amount: Decimal, installment_amount: Decimal) -> InstallmentStatus:
    """PAID at or above the scheduled amount, PARTIALLY above zero, else MISSED"""
    if amount >= installment_amount:
        return InstallmentStatus.PAID
    if amount > ZERO:
        return InstallmentStatus.PARTIALLY
    return InstallmentStatus.MISSED


@dataclass
class Installment(StorageRecord):
    """A single day's collection against a loan"""
    tenant_id: str
    loan_id: str
    due_date: date
    amount: Decimal
    cash_a: Decimal          # cash in hand
    cash_b: Decimal          # electronic
    remaining_amount: Decimal
    status: InstallmentStatus
    collected_by: Optional[int]
    next_due_at: datetime

    def __post_init__(self):
        if isinstance(self.due_date, str):
            self.due_date = date.fromisoformat(self.due_date)
        if isinstance(self.next_due_at, str):
            self.next_due_at = datetime.fromisoformat(self.next_due_at)
        if isinstance(self.status, str):
            self.status = InstallmentStatus.parse(self.status)
        for name in ('amount', 'cash_a', 'cash_b', 'remaining_amount'):
            setattr(self, name, to_decimal(getattr(self, name), name))

    @property
    def collected(self) -> Decimal:
        """Cash actually received for this row"""
        return self.cash_a + self.cash_b


def collected_total(installments: Iterable[Installment]) -> Decimal:
    return sum((i.collected for i in installments), ZERO)


def day_key(loan_id: str, due_date: date) -> str:
    return f"{loan_id}|{due_date.isoformat()}"


class InstallmentStore:
    """Persistence for installments and their per-day uniqueness keys"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "installments"
        self.day_keys_table = "installment_day_keys"

    def find_by_id(self, installment_id: str) -> Optional[Installment]:
        data = self.storage.load(self.table_name, installment_id)
        if data is None:
            return None
        return Installment.from_dict(data)

    def find_by_loan_id(self, loan_id: str) -> List[Installment]:
        """All installments of a loan, oldest due date first"""
        rows = [Installment.from_dict(d) for d in self.storage.find(self.table_name, {"loan_id": loan_id})]
        rows.sort(key=lambda i: (i.due_date, i.created_at))
        return rows

    def find_by_tenant(self, tenant_id: str) -> List[Installment]:
        return [Installment.from_dict(d) for d in self.storage.find(self.table_name, {"tenant_id": tenant_id})]

    def find_by_loan_and_date(self, loan_id: str, due_date: date) -> Optional[Installment]:
        key = self.storage.load(self.day_keys_table, day_key(loan_id, due_date))
        if key is None:
            return None
        return self.find_by_id(key['installment_id'])

    def create(self, installment: Installment) -> Installment:
        """
        Insert a new installment.

        Raises:
            DuplicateRecordError: a row already exists for this loan and day
        """
        self.storage.insert(
            self.day_keys_table,
            day_key(installment.loan_id, installment.due_date),
            {
                "installment_id": installment.id,
                "loan_id": installment.loan_id,
                "due_date": installment.due_date.isoformat()
            }
        )
        self.storage.insert(self.table_name, installment.id, installment.to_dict())
        return installment

    def update(self, installment: Installment) -> Installment:
        self.storage.save(self.table_name, installment.id, installment.to_dict())
        return installment

    def delete(self, installment: Installment) -> bool:
        self.storage.delete(self.day_keys_table, day_key(installment.loan_id, installment.due_date))
        return self.storage.delete(self.table_name, installment.id)

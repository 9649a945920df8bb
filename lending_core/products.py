"""
Loan Products and Collection Lines

Read-mostly catalog of the tenant-defined loan products and the collection
lines that reference them. The calculators only read the fields defined here;
registration exists for administration and tests.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set, Union
import uuid

from .access import parse_access_user_ids
from .errors import LineNotFound, ProductNotFound, TenantMismatch, ValidationError
from .money import to_decimal
from .schedule import CollectionCadence
from .storage import StorageInterface, StorageRecord


def _non_negative_decimal(value, field_name: str) -> Decimal:
    try:
        result = to_decimal(value, field_name)
    except ValueError as e:
        raise ValidationError(str(e), {field_name: value})
    if result < 0:
        raise ValidationError(f"{field_name} cannot be negative", {field_name: value})
    return result


@dataclass
class LoanProduct(StorageRecord):
    """Template for loans: interest, deduction and collection cadence"""
    tenant_id: str
    collection_cadence: CollectionCadence
    period_count: int
    interest_percent: Decimal
    initial_deduction_percent: Decimal
    interest_prepaid: bool = False
    # Cadence units between installments; None keeps the legacy behaviour of
    # offsetting next-due by the full period count.
    installment_interval: Optional[int] = None
    is_active: bool = True

    def __post_init__(self):
        self.collection_cadence = CollectionCadence.parse(self.collection_cadence)
        self.interest_percent = _non_negative_decimal(self.interest_percent, "interest_percent")
        self.initial_deduction_percent = _non_negative_decimal(
            self.initial_deduction_percent, "initial_deduction_percent"
        )
        interval = self.installment_interval
        if interval is not None and (isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0):
            raise ValidationError(
                "Installment interval must be a positive integer",
                {"installment_interval": interval}
            )

    @property
    def next_due_units(self) -> int:
        if self.installment_interval is not None:
            return self.installment_interval
        return self.period_count


@dataclass
class CollectionLine(StorageRecord):
    """Access-restricted collection channel bound to one loan product"""
    tenant_id: str
    name: str
    loan_product_id: str
    access_user_ids: Set[int] = field(default_factory=set)
    investment_amount: Decimal = Decimal('0')
    is_active: bool = True

    def __post_init__(self):
        self.access_user_ids = parse_access_user_ids(self.access_user_ids)
        self.investment_amount = _non_negative_decimal(self.investment_amount, "investment_amount")


class ProductCatalog:
    """Lookup of loan products and collection lines by id"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.products_table = "loan_products"
        self.lines_table = "collection_lines"

    def create_product(
        self,
        tenant_id: str,
        collection_cadence: Union[CollectionCadence, str],
        period_count: int,
        interest_percent: Union[Decimal, int, str],
        initial_deduction_percent: Union[Decimal, int, str],
        interest_prepaid: bool = False,
        installment_interval: Optional[int] = None,
        product_id: Optional[str] = None
    ) -> LoanProduct:
        """Register a loan product"""
        if isinstance(period_count, bool) or not isinstance(period_count, int) or period_count <= 0:
            raise ValidationError("Period count must be a positive integer", {"period_count": period_count})

        now = datetime.now(timezone.utc)
        product = LoanProduct(
            id=product_id or str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            tenant_id=tenant_id,
            collection_cadence=collection_cadence,
            period_count=period_count,
            interest_percent=interest_percent,
            initial_deduction_percent=initial_deduction_percent,
            interest_prepaid=interest_prepaid,
            installment_interval=installment_interval
        )
        self.storage.save(self.products_table, product.id, product.to_dict())
        return product

    def create_line(
        self,
        tenant_id: str,
        name: str,
        loan_product_id: str,
        access_user_ids: Union[None, str, Iterable[int]] = None,
        investment_amount: Union[Decimal, int, str] = Decimal('0'),
        line_id: Optional[str] = None
    ) -> CollectionLine:
        """Register a collection line for an existing product of the same tenant"""
        product = self.get_product(loan_product_id)
        if product.tenant_id != tenant_id:
            raise TenantMismatch(
                "Loan product belongs to a different tenant",
                {"loan_product_id": loan_product_id}
            )

        now = datetime.now(timezone.utc)
        line = CollectionLine(
            id=line_id or str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            tenant_id=tenant_id,
            name=name,
            loan_product_id=loan_product_id,
            access_user_ids=access_user_ids,
            investment_amount=investment_amount
        )
        self.storage.save(self.lines_table, line.id, line.to_dict())
        return line

    def get_product(self, product_id: str) -> LoanProduct:
        data = self.storage.load(self.products_table, product_id)
        if data is None:
            raise ProductNotFound(f"Loan product {product_id} not found", {"loan_product_id": product_id})
        return LoanProduct.from_dict(data)

    def get_line(self, line_id: str) -> CollectionLine:
        data = self.storage.load(self.lines_table, line_id)
        if data is None:
            raise LineNotFound(f"Collection line {line_id} not found", {"line_id": line_id})
        return CollectionLine.from_dict(data)

    def get_line_product(self, line_id: str) -> LoanProduct:
        """Product behind a line"""
        return self.get_product(self.get_line(line_id).loan_product_id)

    def set_line_access(self, line_id: str, access_user_ids: Union[None, str, Iterable[int]]) -> CollectionLine:
        """Replace a line's allow-list"""
        line = self.get_line(line_id)
        line.access_user_ids = parse_access_user_ids(access_user_ids)
        line.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.lines_table, line.id, line.to_dict())
        return line

    def lines_for_user(self, tenant_id: str, user_id: int) -> List[CollectionLine]:
        """Active lines of a tenant whose allow-list contains the user"""
        lines = [CollectionLine.from_dict(d) for d in self.storage.find(self.lines_table, {"tenant_id": tenant_id})]
        return [line for line in lines if line.is_active and user_id in line.access_user_ids]

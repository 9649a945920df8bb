"""
Test suite for the product catalog

Loan products and collection lines, including legacy allow-list rows.
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone

from lending_core.errors import (
    InvalidCadence, LineNotFound, ProductNotFound, TenantMismatch, ValidationError
)
from lending_core.products import CollectionLine, LoanProduct, ProductCatalog
from lending_core.schedule import CollectionCadence
from lending_core.storage import InMemoryStorage


class TestLoanProduct:
    """Test LoanProduct records"""

    def test_round_trip_through_storage_dict(self):
        now = datetime.now(timezone.utc)
        product = LoanProduct(
            id="P1", created_at=now, updated_at=now, tenant_id="T1",
            collection_cadence="weekly", period_count=12,
            interest_percent="7.5", initial_deduction_percent=Decimal('2'),
            interest_prepaid=True
        )
        assert product.collection_cadence == CollectionCadence.WEEKLY
        assert product.interest_percent == Decimal('7.5')

        data = product.to_dict()
        assert data["collection_cadence"] == "WEEKLY"
        assert data["interest_percent"] == "7.5"

        restored = LoanProduct.from_dict(data)
        assert restored == product

    def test_next_due_units(self):
        now = datetime.now(timezone.utc)
        product = LoanProduct(
            id="P1", created_at=now, updated_at=now, tenant_id="T1",
            collection_cadence="DAILY", period_count=100,
            interest_percent="10", initial_deduction_percent="5"
        )
        assert product.next_due_units == 100
        product.installment_interval = 1
        assert product.next_due_units == 1

    def test_invalid_cadence(self):
        now = datetime.now(timezone.utc)
        with pytest.raises(InvalidCadence):
            LoanProduct(
                id="P1", created_at=now, updated_at=now, tenant_id="T1",
                collection_cadence="YEARLY", period_count=1,
                interest_percent="0", initial_deduction_percent="0"
            )


class TestCollectionLine:

    def test_legacy_comma_string_allow_list(self):
        now = datetime.now(timezone.utc)
        line = CollectionLine.from_dict({
            "id": "L1",
            "created_at": now.isoformat(),
            "updated_at": now.isoformat(),
            "tenant_id": "T1",
            "name": "Market Road",
            "loan_product_id": "P1",
            "access_user_ids": "4, 9"
        })
        assert line.access_user_ids == {4, 9}
        assert line.to_dict()["access_user_ids"] == [4, 9]


class TestProductCatalog:
    """Test catalog registration and lookup"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.catalog = ProductCatalog(self.storage)
        self.product = self.catalog.create_product(
            tenant_id="T1",
            collection_cadence="DAILY",
            period_count=100,
            interest_percent="10",
            initial_deduction_percent="5",
            interest_prepaid=True
        )

    def test_get_product(self):
        loaded = self.catalog.get_product(self.product.id)
        assert loaded.period_count == 100
        assert loaded.interest_prepaid is True

    def test_missing_product_and_line(self):
        with pytest.raises(ProductNotFound):
            self.catalog.get_product("nope")
        with pytest.raises(LineNotFound):
            self.catalog.get_line("nope")

    def test_create_product_rejects_bad_period_count(self):
        with pytest.raises(ValidationError):
            self.catalog.create_product("T1", "DAILY", 0, "10", "5")

    def test_create_product_rejects_bad_installment_interval(self):
        for interval in [0, -1, "2", True]:
            with pytest.raises(ValidationError):
                self.catalog.create_product("T1", "DAILY", 100, "10", "5", installment_interval=interval)

    def test_create_product_rejects_bad_percents(self):
        with pytest.raises(ValidationError):
            self.catalog.create_product("T1", "DAILY", 100, "-1", "5")
        with pytest.raises(ValidationError):
            self.catalog.create_product("T1", "DAILY", 100, "10", "-0.5")
        with pytest.raises(ValidationError) as exc_info:
            self.catalog.create_product("T1", "DAILY", 100, "ten", "5")
        assert exc_info.value.details == {"interest_percent": "ten"}

    def test_create_line_rejects_negative_investment(self):
        with pytest.raises(ValidationError):
            self.catalog.create_line("T1", "North", self.product.id, investment_amount="-100")

    def test_create_line_and_lookup(self):
        line = self.catalog.create_line("T1", "North", self.product.id, access_user_ids=[1, 2])
        assert self.catalog.get_line(line.id).access_user_ids == {1, 2}
        assert self.catalog.get_line_product(line.id).id == self.product.id

    def test_line_must_share_product_tenant(self):
        with pytest.raises(TenantMismatch):
            self.catalog.create_line("T2", "North", self.product.id, access_user_ids=[1])

    def test_set_line_access(self):
        line = self.catalog.create_line("T1", "North", self.product.id)
        assert self.catalog.get_line(line.id).access_user_ids == set()
        self.catalog.set_line_access(line.id, "5,6")
        assert self.catalog.get_line(line.id).access_user_ids == {5, 6}

    def test_lines_for_user(self):
        north = self.catalog.create_line("T1", "North", self.product.id, access_user_ids=[1, 2])
        self.catalog.create_line("T1", "South", self.product.id, access_user_ids=[2])
        lines = self.catalog.lines_for_user("T1", 1)
        assert [line.id for line in lines] == [north.id]
        assert len(self.catalog.lines_for_user("T1", 2)) == 2
        assert self.catalog.lines_for_user("T2", 2) == []

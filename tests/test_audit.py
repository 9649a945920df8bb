"""
Test suite for audit module

Tests hash-chained audit trail, tamper detection and integrity verification.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from lending_core.storage import InMemoryStorage
from lending_core.audit import AuditTrail, AuditEvent, AuditEventType


class TestAuditEvent:
    """Test AuditEvent functionality"""

    def test_metadata_serialization(self):
        """Decimals, dates and enums in metadata become JSON types"""
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT001",
            created_at=now,
            updated_at=now,
            event_type=AuditEventType.INSTALLMENT_RECORDED,
            entity_type="installment",
            entity_id="INST001",
            sequence=1,
            previous_hash="",
            current_hash="",
            metadata={
                "amount": Decimal('100.00'),
                "status": AuditEventType.INSTALLMENT_PAID,
                "nested": {"balance": Decimal('9900.00')}
            }
        )

        assert event.metadata == {
            "amount": "100.00",
            "status": "installment_paid",
            "nested": {"balance": "9900.00"}
        }

    def test_hash_changes_with_content(self):
        now = datetime.now(timezone.utc)
        kwargs = dict(
            id="AUDIT001", created_at=now, updated_at=now,
            event_type=AuditEventType.LOAN_ORIGINATED, entity_type="loan",
            entity_id="LOAN001", sequence=1, previous_hash="", current_hash="",
            metadata={"principal": "10000"}
        )
        first = AuditEvent(**kwargs)
        second = AuditEvent(**{**kwargs, "metadata": {"principal": "10001"}})
        assert first.calculate_hash() != second.calculate_hash()
        assert len(first.calculate_hash()) == 64


class TestAuditTrail:
    """Test AuditTrail functionality"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)

    def test_chain_links_events(self):
        first = self.audit_trail.log_event(
            AuditEventType.LOAN_ORIGINATED, "loan", "LOAN001",
            metadata={"principal": Decimal('10000')}, tenant_id="T1", user_id=7
        )
        second = self.audit_trail.log_event(
            AuditEventType.INSTALLMENT_RECORDED, "installment", "INST001",
            metadata={"loan_id": "LOAN001"}, tenant_id="T1", user_id=7
        )

        assert first.sequence == 1
        assert first.previous_hash == ""
        assert second.sequence == 2
        assert second.previous_hash == first.current_hash
        assert self.audit_trail.get_latest_hash() == second.current_hash
        assert self.audit_trail.count_events() == 2

    def test_verify_integrity_clean_chain(self):
        for i in range(5):
            self.audit_trail.log_event(AuditEventType.INSTALLMENT_RECORDED, "installment", f"I{i}")
        result = self.audit_trail.verify_integrity()
        assert result["valid"]
        assert result["total_events"] == 5

    def test_verify_integrity_detects_tampering(self):
        event = self.audit_trail.log_event(
            AuditEventType.INSTALLMENT_PAID, "installment", "INST001",
            metadata={"cash_a": "100.00"}
        )
        self.audit_trail.log_event(AuditEventType.BALANCE_RECONCILED, "loan", "LOAN001")

        data = self.storage.load("audit_events", event.id)
        data["metadata"]["cash_a"] = "1.00"
        self.storage.save("audit_events", event.id, data)

        result = self.audit_trail.verify_integrity()
        assert not result["valid"]
        assert result["hash_errors"][0]["event_id"] == event.id

    def test_verify_integrity_detects_removed_event(self):
        self.audit_trail.log_event(AuditEventType.LOAN_ORIGINATED, "loan", "L1")
        middle = self.audit_trail.log_event(AuditEventType.LOAN_UPDATED, "loan", "L1")
        self.audit_trail.log_event(AuditEventType.LOAN_DEACTIVATED, "loan", "L1")

        self.storage.delete("audit_events", middle.id)

        result = self.audit_trail.verify_integrity()
        assert not result["valid"]
        assert len(result["chain_breaks"]) == 1

    def test_events_for_entity_and_type(self):
        self.audit_trail.log_event(AuditEventType.LOAN_ORIGINATED, "loan", "L1", tenant_id="T1")
        self.audit_trail.log_event(AuditEventType.LOAN_STATUS_CHANGED, "loan", "L1", tenant_id="T1")
        self.audit_trail.log_event(AuditEventType.LOAN_ORIGINATED, "loan", "L2", tenant_id="T2")

        events = self.audit_trail.get_events_for_entity("loan", "L1")
        assert [e.event_type for e in events] == [
            AuditEventType.LOAN_ORIGINATED, AuditEventType.LOAN_STATUS_CHANGED
        ]
        assert len(self.audit_trail.get_events_for_entity("loan", "L1", limit=1)) == 1
        assert len(self.audit_trail.get_events_by_type(AuditEventType.LOAN_ORIGINATED)) == 2
        assert len(self.audit_trail.get_events_by_type(AuditEventType.LOAN_ORIGINATED, tenant_id="T2")) == 1

    def test_event_rolled_back_with_enclosing_block(self):
        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.audit_trail.log_event(AuditEventType.LOAN_ORIGINATED, "loan", "L1")
                raise RuntimeError("mutation failed")
        assert self.audit_trail.count_events() == 0

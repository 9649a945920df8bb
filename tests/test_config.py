"""
Test suite for configuration and structured logging
"""

import json
import logging
import pytest

from lending_core import config as config_module
from lending_core.config import LendingConfig, get_config, reload_config
from lending_core.errors import AmountMismatch
from lending_core.logging_config import (
    JSONFormatter, get_logger, log_action, logged_rejection, setup_logging
)
from lending_core.money import RoundingPolicy
from lending_core.storage import InMemoryStorage
from lending_core.system import LendingSystem


class TestLendingConfig:

    def test_defaults(self):
        config = LendingConfig()
        assert config.api_port == 8095
        assert config.charge_places == 0
        assert config.installment_places == 2
        assert config.allow_negative_disbursement is False
        assert config.upsert_retry_limit == 3

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LENDING_DATABASE_URL", "memory://")
        monkeypatch.setenv("LENDING_INSTALLMENT_PLACES", "0")
        monkeypatch.setenv("LENDING_ALLOW_NEGATIVE_DISBURSEMENT", "true")

        original = get_config()
        try:
            config = reload_config()
            assert get_config() is config
            assert config.database_url == "memory://"
            assert config.installment_places == 0
            assert config.allow_negative_disbursement is True
        finally:
            config_module.config = original

    def test_system_reads_rounding_from_config(self):
        system = LendingSystem(
            config=LendingConfig(database_url="memory://", installment_places=0, upsert_retry_limit=5),
            storage=InMemoryStorage()
        )
        assert system.rounding == RoundingPolicy(charge_places=0, installment_places=0)
        assert system.ledger.retry_limit == 5
        system.close()


class TestStructuredLogging:

    def test_json_formatter(self):
        record = logging.LogRecord("lending.test", logging.INFO, __file__, 1, "Loan originated", None, None)
        record.tenant_id = "T1"
        record.user_id = 7
        record.action = "originate_loan"
        record.extra = {"principal": "10000"}

        entry = json.loads(JSONFormatter().format(record))
        assert entry["level"] == "INFO"
        assert entry["message"] == "Loan originated"
        assert entry["tenant_id"] == "T1"
        assert entry["extra"] == {"principal": "10000"}
        assert "resource" not in entry

    def test_setup_logging_replaces_handlers(self):
        logger = setup_logging(level="debug", logger_name="lending.test.setup")
        setup_logging(level="debug", logger_name="lending.test.setup")
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)
        assert logger.level == logging.DEBUG

    def test_log_action_fields(self, caplog):
        logger = get_logger("lending.test.action")
        with caplog.at_level(logging.INFO, logger="lending.test.action"):
            log_action(logger, "info", "Installment recorded", user_id=7, tenant_id="T1",
                       action="record_payment", resource="installment:I1")

        record = caplog.records[0]
        assert record.user_id == 7
        assert record.action == "record_payment"
        assert record.resource == "installment:I1"

    def test_logged_rejection(self, caplog):
        logger = get_logger("lending.test.rejection")
        with caplog.at_level(logging.WARNING, logger="lending.test.rejection"):
            with pytest.raises(AmountMismatch):
                with logged_rejection(logger, "record_payment", 7, "T1", "loan:L1"):
                    raise AmountMismatch("Amount must equal cash", {"amount": 10})

        record = caplog.records[0]
        assert record.levelno == logging.WARNING
        assert record.extra == {"error": "amount_mismatch", "amount": "10"}
        assert "record_payment rejected" in record.getMessage()

    def test_logged_rejection_ignores_other_errors(self, caplog):
        logger = get_logger("lending.test.other")
        with caplog.at_level(logging.WARNING, logger="lending.test.other"):
            with pytest.raises(KeyError):
                with logged_rejection(logger, "record_payment"):
                    raise KeyError("x")
        assert caplog.records == []

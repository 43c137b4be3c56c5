"""Tests for structured logging helpers."""

import logging
from collections.abc import Callable

import pytest
import structlog

from loyalty_ledger.config import Settings
from loyalty_ledger.domain.audit import AuditActor
from loyalty_ledger.domain.clients import Client
from loyalty_ledger.exceptions import InsufficientBalanceError
from loyalty_ledger.logging_config import (
    LogContext,
    _mask_sensitive_values,
    configure_logging,
    mask_value,
)
from loyalty_ledger.services.ledger import LedgerServiceImpl


class TestMaskValue:
    def test_email_keeps_first_letter_and_domain(self):
        assert mask_value("maria@example.com") == "m***@example.com"

    def test_short_value_is_fully_masked(self):
        assert mask_value("ab") == "***"

    def test_long_value_keeps_prefix(self):
        assert mask_value("X1234567") == "X1***"

    def test_none_passes_through(self):
        assert mask_value(None) is None

    def test_processor_masks_only_sensitive_keys(self):
        event = {"event": "x", "email": "ana@example.com", "client_id": "c1"}

        result = _mask_sensitive_values(None, "info", event)

        assert result == {"event": "x", "email": "a***@example.com", "client_id": "c1"}


class TestLogContext:
    def test_binds_and_unbinds(self):
        with LogContext(client_id="c1"):
            assert structlog.contextvars.get_contextvars()["client_id"] == "c1"

        assert "client_id" not in structlog.contextvars.get_contextvars()


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def restore_structlog(self):
        yield
        structlog.reset_defaults()

    def test_json_format_configures_structlog(self):
        configure_logging(Settings(_env_file=None, log_format="json"))

        assert structlog.is_configured()


class TestServiceLogging:
    def test_rejected_debit_logs_warning(
        self,
        capsys,
        caplog,
        ledger: LedgerServiceImpl,
        make_client: Callable[..., Client],
        actor: AuditActor,
    ):
        client = make_client("c1")
        account = ledger.create_account(client.id, "Main", actor)

        with caplog.at_level(logging.WARNING, logger="loyalty_ledger.services.ledger"):
            with pytest.raises(InsufficientBalanceError):
                ledger.debit_points(client.id, account.id, 5, "", actor)

        # structlog writes either to stdout or through stdlib logging
        all_output = capsys.readouterr().out + caplog.text
        assert "debit_rejected_insufficient_balance" in all_output

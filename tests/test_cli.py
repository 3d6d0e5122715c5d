"""
Tests for the saffron-bridge command line.
"""
from __future__ import annotations

import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from saffron_bridge.cli import cli
from saffron_bridge.constants import CIRCLE_ATTESTATION_API_SANDBOX_URL
from saffron_bridge.errors import AttestationServiceError
from saffron_bridge.models import TransferOutcome

SOURCE_TX = "0x" + "1" * 64
DEST_TX = "0x" + "e" * 64
MESSAGE_HASH = "0x" + "c" * 64


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def credentials_env(monkeypatch, sample_aptos_address, aptos_private_key):
    monkeypatch.setenv("BASE_PRIVATE_KEY", "0x" + "11" * 32)
    monkeypatch.setenv("APTOS_PRIVATE_KEY", aptos_private_key)
    monkeypatch.setenv("APTOS_RECIPIENT", sample_aptos_address)


def mock_orchestrator(outcome: TransferOutcome) -> MagicMock:
    orchestrator = MagicMock()
    orchestrator.transfer = AsyncMock(return_value=outcome)
    orchestrator.resume = AsyncMock(return_value=outcome)
    orchestrator.close = AsyncMock()
    return orchestrator


class TestConfigCommand:
    """Tests for the config command."""

    def test_json_lists_missing_credentials(self, runner):
        result = runner.invoke(cli, ["--json", "config"], obj={})

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["missing_credentials"] == ["BASE_PRIVATE_KEY", "APTOS_PRIVATE_KEY", "APTOS_RECIPIENT"]
        assert data["attestation.base_url"] == CIRCLE_ATTESTATION_API_SANDBOX_URL
        assert data["default_amount"] == "1.0"

    def test_environment_override(self, runner, monkeypatch, credentials_env):
        monkeypatch.setenv("SAFFRON_BRIDGE_MAX_RETRIES", "20")

        result = runner.invoke(cli, ["--json", "config"], obj={})

        data = json.loads(result.output)
        assert data["attestation.max_retries"] == "20"
        assert data["missing_credentials"] == []

    def test_table(self, runner):
        result = runner.invoke(cli, ["config"], obj={})

        assert result.exit_code == 0
        assert "Missing credentials" in result.output


class TestTransferCommand:
    """Tests for the transfer command."""

    def test_missing_environment(self, runner):
        result = runner.invoke(cli, ["transfer", "--amount", "1.0"], obj={})

        assert result.exit_code == 1
        assert "Missing environment variables" in result.output
        assert "BASE_PRIVATE_KEY" in result.output

    def test_success_json(self, runner, credentials_env, sample_aptos_address):
        outcome = TransferOutcome(
            success=True,
            source_transaction_hash=SOURCE_TX,
            destination_transaction_hash=DEST_TX,
            transferred_amount=Decimal("2.5"),
            message_hash=MESSAGE_HASH,
        )
        orchestrator = mock_orchestrator(outcome)

        with patch("saffron_bridge.cli.build_orchestrator", return_value=orchestrator):
            result = runner.invoke(cli, ["--json", "transfer", "--amount", "2.5"], obj={})

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["success"] is True
        assert data["transferred_amount"] == "2.5"
        assert data["destination_transaction_hash"] == DEST_TX

        request = orchestrator.transfer.await_args.args[0]
        assert request.amount == "2.5"
        assert request.recipient_address == sample_aptos_address
        orchestrator.close.assert_awaited_once()

    def test_failure_exits_nonzero(self, runner, credentials_env):
        outcome = TransferOutcome(
            success=False,
            source_transaction_hash=SOURCE_TX,
            error_message="Destination transaction reverted",
        )
        orchestrator = mock_orchestrator(outcome)

        with patch("saffron_bridge.cli.build_orchestrator", return_value=orchestrator):
            result = runner.invoke(cli, ["--json", "transfer"], obj={})

        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["success"] is False
        assert data["error_message"] == "Destination transaction reverted"

    def test_failure_shows_error(self, runner, credentials_env):
        outcome = TransferOutcome(success=False, error_message="Insufficient USDC balance")
        orchestrator = mock_orchestrator(outcome)

        with patch("saffron_bridge.cli.build_orchestrator", return_value=orchestrator):
            result = runner.invoke(cli, ["transfer"], obj={})

        assert result.exit_code == 1
        assert "Transfer failed" in result.output
        assert "Insufficient USDC balance" in result.output


class TestResumeCommand:
    """Tests for the resume command."""

    def test_resume(self, runner, credentials_env, sample_aptos_address):
        outcome = TransferOutcome(
            success=True,
            source_transaction_hash=SOURCE_TX,
            destination_transaction_hash=DEST_TX,
            transferred_amount=Decimal("1"),
        )
        orchestrator = mock_orchestrator(outcome)

        with patch("saffron_bridge.cli.build_orchestrator", return_value=orchestrator):
            result = runner.invoke(cli, ["--json", "resume", SOURCE_TX], obj={})

        assert result.exit_code == 0
        assert orchestrator.resume.await_args.args[0] == SOURCE_TX
        assert orchestrator.resume.await_args.kwargs["recipient_address"] == sample_aptos_address

    def test_requires_aptos_key(self, runner):
        result = runner.invoke(cli, ["resume", SOURCE_TX], obj={})

        assert result.exit_code == 1
        assert "APTOS_PRIVATE_KEY" in result.output


class TestStatusCommand:
    """Tests for the status command."""

    def test_status_json(self, runner):
        poller = MagicMock()
        poller.get_attestation_status = AsyncMock(
            return_value={"status": "complete", "attestation": "0x" + "5a" * 65}
        )
        poller.close = AsyncMock()

        with patch("saffron_bridge.cli.AttestationPoller", return_value=poller):
            result = runner.invoke(cli, ["--json", "status", MESSAGE_HASH], obj={})

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["message_hash"] == MESSAGE_HASH
        assert data["status"] == "complete"
        poller.get_attestation_status.assert_awaited_once_with(MESSAGE_HASH)
        poller.close.assert_awaited_once()

    def test_status_service_error(self, runner):
        poller = MagicMock()
        poller.get_attestation_status = AsyncMock(
            side_effect=AttestationServiceError("Circle API error: 503", 503)
        )
        poller.close = AsyncMock()

        with patch("saffron_bridge.cli.AttestationPoller", return_value=poller):
            result = runner.invoke(cli, ["status", MESSAGE_HASH], obj={})

        assert result.exit_code == 1
        assert "Circle API error: 503" in result.output


class TestBalanceCommand:
    """Tests for the balance command."""

    def test_nothing_configured(self, runner):
        result = runner.invoke(cli, ["balance"], obj={})

        assert result.exit_code == 1

    def test_destination_balance_json(self, runner, sample_aptos_address):
        receiver = MagicMock()
        receiver.check_balance = AsyncMock(return_value="4.25")
        receiver.close = AsyncMock()

        with patch("saffron_bridge.cli.DestinationChainReceiver", return_value=receiver):
            result = runner.invoke(
                cli, ["--json", "balance", "--destination", sample_aptos_address], obj={}
            )

        assert result.exit_code == 0
        assert json.loads(result.output) == {"aptos_testnet": "4.25"}

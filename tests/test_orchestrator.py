"""
Tests for saffron_bridge.orchestrator module.

Tests cover:
- Progress order on success
- Failure reporting per step (progress, outcome, retained hashes)
- Structured receive failures
- Callback errors
- Resuming after the burn
"""
from __future__ import annotations

from decimal import Decimal
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest

from saffron_bridge.errors import (
    AttestationTimeout,
    DestinationTransactionReverted,
    InsufficientBalance,
)
from saffron_bridge.logging_utils import BridgeLogger
from saffron_bridge.models import (
    AttestationData,
    AttestationStatus,
    ProgressStatus,
    ReceiveResult,
    SourceSendResult,
    TransferProgress,
    TransferRequest,
)
from saffron_bridge.orchestrator import TransferOrchestrator

SOURCE_TX = "0x" + "1" * 64
DEST_TX = "0x" + "e" * 64
MESSAGE_HASH = "0x" + "c" * 64
ATTESTATION = "0x" + "5a" * 65


@pytest.fixture
def sender(sample_message_bytes):
    sender = MagicMock()
    sender.execute_full_transfer = AsyncMock(
        return_value=SourceSendResult(
            transaction_hash=SOURCE_TX,
            protocol_nonce="77",
            message_bytes=sample_message_bytes,
        )
    )
    sender.close = AsyncMock()
    return sender


@pytest.fixture
def poller(sample_message_bytes):
    poller = MagicMock()
    poller.await_attestation = AsyncMock(
        return_value=AttestationData(
            status=AttestationStatus.COMPLETE,
            message_hash=MESSAGE_HASH,
            message_bytes=sample_message_bytes,
            attestation=ATTESTATION,
        )
    )
    poller.close = AsyncMock()
    return poller


@pytest.fixture
def receiver():
    receiver = MagicMock()
    receiver.receive = AsyncMock(
        return_value=ReceiveResult(
            transaction_hash=DEST_TX,
            success=True,
            amount_received=Decimal("2.999"),
        )
    )
    receiver.close = AsyncMock()
    return receiver


@pytest.fixture
def destination_signer():
    return MagicMock()


@pytest.fixture
def orchestrator(sender, poller, receiver, destination_signer, logging_config):
    return TransferOrchestrator(
        sender,
        poller,
        receiver,
        destination_signer,
        bridge_logger=BridgeLogger(config=logging_config),
    )


@pytest.fixture
def request_(sample_aptos_address):
    return TransferRequest(
        amount="3.0",
        recipient_address=sample_aptos_address,
        sender_credential=MagicMock(),
    )


@pytest.fixture
def events():
    return []


def collect(events: List[TransferProgress]):
    return events.append


class TestTransferSuccess:
    """Tests for a successful transfer."""

    @pytest.mark.asyncio
    async def test_progress_order(self, orchestrator, request_, events):
        outcome = await orchestrator.transfer(request_, collect(events))

        assert outcome.success is True
        assert [e.percentage for e in events] == [10, 33, 40, 66, 75, 100]
        assert [(e.step_index, e.status) for e in events] == [
            (1, ProgressStatus.PROCESSING),
            (1, ProgressStatus.COMPLETED),
            (2, ProgressStatus.PROCESSING),
            (2, ProgressStatus.COMPLETED),
            (3, ProgressStatus.PROCESSING),
            (3, ProgressStatus.COMPLETED),
        ]
        assert all(e.total_steps == 3 for e in events)

    @pytest.mark.asyncio
    async def test_outcome(self, orchestrator, request_):
        outcome = await orchestrator.transfer(request_)

        assert outcome.source_transaction_hash == SOURCE_TX
        assert outcome.destination_transaction_hash == DEST_TX
        assert outcome.transferred_amount == Decimal("2.999")
        assert outcome.message_hash == MESSAGE_HASH
        assert outcome.error_message is None
        assert outcome.is_stuck is False

    @pytest.mark.asyncio
    async def test_progress_carries_transaction_hashes(self, orchestrator, request_, events):
        await orchestrator.transfer(request_, collect(events))

        assert events[1].transaction_hash == SOURCE_TX
        assert events[-1].transaction_hash == DEST_TX

    @pytest.mark.asyncio
    async def test_collaborator_calls(
        self, orchestrator, request_, sender, poller, receiver, destination_signer, sample_message_bytes
    ):
        await orchestrator.transfer(request_)

        sender.execute_full_transfer.assert_awaited_once_with(
            request_.sender_credential, "3.0", request_.recipient_address
        )
        poller.await_attestation.assert_awaited_once_with(SOURCE_TX)
        receiver.receive.assert_awaited_once_with(
            sample_message_bytes,
            ATTESTATION,
            destination_signer,
            recipient_address=request_.recipient_address,
        )


class TestTransferFailure:
    """Tests for failures at each step."""

    @pytest.mark.asyncio
    async def test_destination_revert(self, orchestrator, request_, receiver, events):
        receiver.receive.side_effect = DestinationTransactionReverted()

        outcome = await orchestrator.transfer(request_, collect(events))

        assert outcome.success is False
        assert outcome.error_message == "Destination transaction reverted"
        assert outcome.source_transaction_hash == SOURCE_TX
        assert outcome.message_hash == MESSAGE_HASH
        assert outcome.is_stuck is True
        assert events[-1].status == ProgressStatus.FAILED
        assert events[-1].step_index == 3
        assert events[-1].percentage == 75
        assert events[-1].message == "Destination transaction reverted"

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, orchestrator, request_, sender, poller, events):
        sender.execute_full_transfer.side_effect = InsufficientBalance("2.0", "3.0")

        outcome = await orchestrator.transfer(request_, collect(events))

        assert outcome.success is False
        assert outcome.error_message == "Insufficient USDC balance, current: 2.0, required: 3.0"
        assert outcome.error_code == "insufficient_balance"
        assert outcome.source_transaction_hash is None
        assert [(e.step_index, e.status, e.percentage) for e in events] == [
            (1, ProgressStatus.PROCESSING, 10),
            (1, ProgressStatus.FAILED, 10),
        ]
        poller.await_attestation.assert_not_called()

    @pytest.mark.asyncio
    async def test_attestation_timeout(self, orchestrator, request_, poller, receiver, events):
        poller.await_attestation.side_effect = AttestationTimeout(MESSAGE_HASH, 300.4, 150)

        outcome = await orchestrator.transfer(request_, collect(events))

        assert outcome.success is False
        assert outcome.error_message == "Getting attestation timeout (waited 300 seconds, 150 attempts)"
        assert outcome.source_transaction_hash == SOURCE_TX
        assert events[-1].step_index == 2
        assert events[-1].percentage == 40
        receiver.receive.assert_not_called()

    @pytest.mark.asyncio
    async def test_structured_receive_failure(self, orchestrator, request_, receiver, events):
        receiver.receive.return_value = ReceiveResult(
            transaction_hash=DEST_TX,
            success=False,
            error_message="Destination transaction reverted: Move abort",
        )

        outcome = await orchestrator.transfer(request_, collect(events))

        assert outcome.success is False
        assert outcome.error_message == "Destination transaction reverted: Move abort"
        assert outcome.destination_transaction_hash == DEST_TX
        assert events[-1].status == ProgressStatus.FAILED
        assert events[-1].step_index == 3

    @pytest.mark.asyncio
    async def test_unexpected_error(self, orchestrator, request_, sender):
        sender.execute_full_transfer.side_effect = RuntimeError("socket closed")

        outcome = await orchestrator.transfer(request_)

        assert outcome.success is False
        assert outcome.error_message == "socket closed"
        assert outcome.error_code == "unexpected_error"
        assert outcome.to_dict()["error_code"] == "unexpected_error"

    @pytest.mark.asyncio
    async def test_callback_error_does_not_abort(self, orchestrator, request_):
        def broken_callback(progress):
            raise ValueError("render failed")

        outcome = await orchestrator.transfer(request_, broken_callback)

        assert outcome.success is True


class TestResume:
    """Tests for resume."""

    @pytest.mark.asyncio
    async def test_resume_runs_steps_two_and_three(self, orchestrator, sender, poller, events):
        outcome = await orchestrator.resume(SOURCE_TX, collect(events))

        assert outcome.success is True
        assert outcome.source_transaction_hash == SOURCE_TX
        assert [e.percentage for e in events] == [40, 66, 75, 100]
        assert [e.step_index for e in events] == [2, 2, 3, 3]
        sender.execute_full_transfer.assert_not_called()
        poller.await_attestation.assert_awaited_once_with(SOURCE_TX)

    @pytest.mark.asyncio
    async def test_resume_failure(self, orchestrator, poller, events):
        poller.await_attestation.side_effect = AttestationTimeout(MESSAGE_HASH, 300, 150)

        outcome = await orchestrator.resume(SOURCE_TX, collect(events))

        assert outcome.success is False
        assert outcome.source_transaction_hash == SOURCE_TX
        assert events[-1].status == ProgressStatus.FAILED
        assert events[-1].step_index == 2


@pytest.mark.asyncio
async def test_close_closes_collaborators(orchestrator, sender, poller, receiver):
    await orchestrator.close()

    sender.close.assert_awaited_once()
    poller.close.assert_awaited_once()
    receiver.close.assert_awaited_once()

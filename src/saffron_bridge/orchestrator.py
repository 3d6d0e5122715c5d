"""
End-to-end transfer orchestration.

Runs the three steps strictly in order:
1. Burn USDC on the source chain
2. Wait for Circle's attestation
3. Mint USDC on the destination chain

Every failure is caught once, here, and turned into a failed TransferOutcome.
Nothing is compensated: a burn whose mint failed can be finished later with
``resume``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .attestation import AttestationPoller
from .config import BridgeConfig, Credentials, get_config
from .errors import BridgeError, UnexpectedError
from .logging_utils import BridgeLogger, OperationType, get_bridge_logger
from .models import (
    ProgressCallback,
    ProgressStatus,
    TransferOutcome,
    TransferProgress,
    TransferRequest,
)
from .receiver import DestinationChainReceiver
from .rpc_client import SourceRPCClient
from .sender import SourceChainSender
from .signers import DestinationSigner

logger = logging.getLogger(__name__)

# Progress percentage per (step, status)
PROGRESS_PERCENTAGES = {
    (1, ProgressStatus.PROCESSING): 10,
    (1, ProgressStatus.COMPLETED): 33,
    (2, ProgressStatus.PROCESSING): 40,
    (2, ProgressStatus.COMPLETED): 66,
    (3, ProgressStatus.PROCESSING): 75,
    (3, ProgressStatus.COMPLETED): 100,
}


@dataclass
class _Run:
    """Mutable state of one orchestration run."""
    on_progress: Optional[ProgressCallback]
    step: int = 1
    percentage: int = 0
    source_transaction_hash: Optional[str] = None
    message_hash: Optional[str] = None

    def emit(
        self,
        step: int,
        status: ProgressStatus,
        message: str,
        transaction_hash: Optional[str] = None,
    ) -> None:
        self.step = step
        if status != ProgressStatus.FAILED:
            self.percentage = PROGRESS_PERCENTAGES[(step, status)]
        if self.on_progress is None:
            return
        progress = TransferProgress(
            step_index=step,
            status=status,
            message=message,
            transaction_hash=transaction_hash,
            percentage=self.percentage,
        )
        try:
            self.on_progress(progress)
        except Exception:
            logger.exception(f"Progress callback raised on step {step} ({status.value})")


class TransferOrchestrator:
    """Coordinates sender, attestation poller and receiver for one transfer at a time."""

    def __init__(
        self,
        sender: SourceChainSender,
        poller: AttestationPoller,
        receiver: DestinationChainReceiver,
        destination_signer: DestinationSigner,
        bridge_logger: Optional[BridgeLogger] = None,
    ):
        self._sender = sender
        self._poller = poller
        self._receiver = receiver
        self._destination_signer = destination_signer
        self._log = bridge_logger or get_bridge_logger()

    async def transfer(
        self,
        request: TransferRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TransferOutcome:
        """
        Move ``request.amount`` USDC from the source chain to ``request.recipient_address``.

        Never raises; check ``success`` on the returned outcome.
        """
        run = _Run(on_progress=on_progress)
        logger.info(f"Starting transfer of {request.amount} USDC to {request.recipient_address}")

        try:
            run.emit(1, ProgressStatus.PROCESSING, "Burning USDC on source chain")
            send_result = await self._sender.execute_full_transfer(
                request.sender_credential,
                request.amount,
                request.recipient_address,
            )
            run.source_transaction_hash = send_result.transaction_hash
            run.emit(
                1,
                ProgressStatus.COMPLETED,
                "USDC burned on source chain",
                transaction_hash=send_result.transaction_hash,
            )

            return await self._attest_and_receive(run, request.recipient_address)
        except Exception as e:
            return self._fail(run, e)

    async def resume(
        self,
        source_tx_hash: str,
        on_progress: Optional[ProgressCallback] = None,
        recipient_address: Optional[str] = None,
    ) -> TransferOutcome:
        """Finish a transfer whose burn already happened (steps 2 and 3 only)."""
        run = _Run(on_progress=on_progress, step=2, percentage=33)
        run.source_transaction_hash = source_tx_hash
        logger.info(f"Resuming transfer from source transaction {source_tx_hash}")

        try:
            return await self._attest_and_receive(run, recipient_address)
        except Exception as e:
            return self._fail(run, e)

    async def _attest_and_receive(
        self,
        run: _Run,
        recipient_address: Optional[str],
    ) -> TransferOutcome:
        run.emit(2, ProgressStatus.PROCESSING, "Waiting for Circle attestation")
        async with self._log.operation_context(
            OperationType.ATTESTATION_POLL,
            "circle",
            source_tx_hash=run.source_transaction_hash,
        ) as ctx:
            attestation = await self._poller.await_attestation(run.source_transaction_hash)
            run.message_hash = attestation.message_hash
            ctx.metadata["message_hash"] = attestation.message_hash
        run.emit(2, ProgressStatus.COMPLETED, "Attestation received")

        run.emit(3, ProgressStatus.PROCESSING, "Minting USDC on destination chain")
        async with self._log.operation_context(
            OperationType.DESTINATION_RECEIVE, "aptos", message_hash=run.message_hash
        ):
            result = await self._receiver.receive(
                attestation.message_bytes,
                attestation.attestation,
                self._destination_signer,
                recipient_address=recipient_address,
            )

        if not result.success:
            error_message = result.error_message or "Destination receive failed"
            logger.error(f"Transfer failed on step 3: {error_message}")
            run.emit(3, ProgressStatus.FAILED, error_message)
            return TransferOutcome(
                success=False,
                source_transaction_hash=run.source_transaction_hash,
                destination_transaction_hash=result.transaction_hash or None,
                error_message=error_message,
                message_hash=run.message_hash,
            )

        run.emit(
            3,
            ProgressStatus.COMPLETED,
            f"Received {result.amount_received} USDC",
            transaction_hash=result.transaction_hash,
        )
        logger.info(
            f"Transfer complete: {run.source_transaction_hash} -> {result.transaction_hash}"
        )
        return TransferOutcome(
            success=True,
            source_transaction_hash=run.source_transaction_hash,
            destination_transaction_hash=result.transaction_hash,
            transferred_amount=result.amount_received,
            message_hash=run.message_hash,
        )

    @staticmethod
    def _fail(run: _Run, error: Exception) -> TransferOutcome:
        if isinstance(error, BridgeError):
            failure = error
            logger.error(f"Transfer failed on step {run.step}: {failure}")
        else:
            # Node and transport errors keep their own message
            failure = UnexpectedError(str(error) or error.__class__.__name__)
            failure.__cause__ = error
            logger.exception(f"Transfer failed on step {run.step} with unexpected error")
        run.emit(run.step, ProgressStatus.FAILED, failure.message)
        return TransferOutcome(
            success=False,
            source_transaction_hash=run.source_transaction_hash,
            error_message=failure.message,
            message_hash=run.message_hash,
            error_code=failure.code,
        )

    async def close(self) -> None:
        """Close every HTTP client held by the collaborators."""
        await self._poller.close()
        await self._receiver.close()
        await self._sender.close()


def build_orchestrator(
    credentials: Credentials,
    config: Optional[BridgeConfig] = None,
) -> TransferOrchestrator:
    """Wire the default collaborators from configuration."""
    config = config or get_config()
    if not credentials.aptos_private_key:
        raise ValueError("APTOS_PRIVATE_KEY is required to receive on the destination chain")

    bridge_logger = BridgeLogger(config=config.logging)
    rpc_client = SourceRPCClient(config.source)
    sender = SourceChainSender(
        config.source,
        destination_domain=config.destination.domain_id,
        rpc_client=rpc_client,
        bridge_logger=bridge_logger,
    )
    poller = AttestationPoller(config.attestation, rpc_client=rpc_client)
    receiver = DestinationChainReceiver(config.destination)
    return TransferOrchestrator(
        sender,
        poller,
        receiver,
        DestinationSigner(credentials.aptos_private_key),
        bridge_logger=bridge_logger,
    )


__all__ = [
    "PROGRESS_PERCENTAGES",
    "TransferOrchestrator",
    "build_orchestrator",
]

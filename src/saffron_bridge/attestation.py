"""
Circle attestation polling.

After a burn is mined, the MessageSent payload is pulled from the receipt and
its keccak256 hash is polled against the Iris API until Circle has signed it.

State machine per poll:
    NOT_REQUESTED -> PENDING -> COMPLETE | FAILED | TIMED_OUT

The state lives in the poll_attestation call, so one poller can serve
concurrent transfers. Transitions are logged at DEBUG.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from .config import AttestationConfig, get_config
from .constants import ATTESTATION_PATH
from .errors import (
    AttestationFailed,
    AttestationServiceError,
    AttestationTimeout,
    ReceiptUnavailable,
)
from .events import compute_message_hash, ensure_succeeded, extract_message_bytes
from .models import AttestationData, AttestationStatus
from .rpc_client import SourceRPCClient

logger = logging.getLogger(__name__)


class AttestationState(str, Enum):
    """Lifecycle of one attestation poll."""
    NOT_REQUESTED = "not_requested"
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class AttestationPoller:
    """Extracts burn messages and waits for their attestation."""

    def __init__(
        self,
        config: Optional[AttestationConfig] = None,
        rpc_client: Optional[SourceRPCClient] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._config = config or get_config().attestation
        self._rpc = rpc_client
        self._owns_rpc = rpc_client is None
        self._http_client = http_client
        self._owns_client = http_client is None
        self._clock = clock
        self._sleep = sleep

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self._config.request_timeout_seconds,
                headers={"Accept": "application/json"},
            )
        return self._http_client

    def _get_rpc(self) -> SourceRPCClient:
        if self._rpc is None:
            self._rpc = SourceRPCClient()
        return self._rpc

    @staticmethod
    def _transition(
        message_hash: str, current: AttestationState, new: AttestationState
    ) -> AttestationState:
        logger.debug(f"Attestation {message_hash}: {current.value} -> {new.value}")
        return new

    def _attestation_url(self, message_hash: str) -> str:
        return self._config.base_url.rstrip("/") + ATTESTATION_PATH.format(
            message_hash=message_hash
        )

    async def extract_message(self, source_tx_hash: str) -> Tuple[str, str]:
        """
        Pull the burn message out of a source transaction.

        Returns:
            (message_hash, message_bytes), both 0x-prefixed hex

        Raises:
            ReceiptUnavailable: Receipt still missing after all lookups
            SourceTransactionReverted: Transaction was mined but reverted
            MessageEventNotFound: No MessageSent event in the receipt
        """
        rpc = self._get_rpc()
        attempts = self._config.receipt_retry_attempts

        for attempt in range(1, attempts + 1):
            logger.debug(f"Fetching receipt for {source_tx_hash} ({attempt}/{attempts})")
            receipt = await rpc.get_transaction_receipt(source_tx_hash)
            if receipt:
                ensure_succeeded(receipt, source_tx_hash)
                message_bytes = extract_message_bytes(receipt, source_tx_hash)
                message_hash = compute_message_hash(message_bytes)
                logger.info(
                    f"Extracted message {message_hash} "
                    f"({(len(message_bytes) - 2) // 2} bytes) from {source_tx_hash}"
                )
                return message_hash, message_bytes

            if attempt < attempts:
                await self._sleep(self._config.receipt_retry_delay_seconds)

        raise ReceiptUnavailable(source_tx_hash, attempts)

    async def _query(self, message_hash: str) -> Optional[Dict[str, Any]]:
        """One API lookup. None means the attestation is not known yet (404)."""
        url = self._attestation_url(message_hash)
        try:
            resp = await self._get_client().get(url)
        except httpx.HTTPError as e:
            raise AttestationServiceError(f"Attestation request failed: {e}") from e

        if resp.status_code == 404:
            return None
        if not resp.is_success:
            raise AttestationServiceError(
                f"Circle API error: {resp.status_code}", status_code=resp.status_code
            )
        try:
            return resp.json()
        except ValueError as e:
            raise AttestationServiceError(
                f"Circle API returned invalid JSON: {e}", status_code=resp.status_code
            ) from e

    async def poll_attestation(self, message_hash: str) -> AttestationData:
        """
        Poll until the attestation is complete.

        Both max_retries and max_wait_seconds bound the loop; the deadline is
        checked before every query.

        Raises:
            AttestationFailed: Circle reported the attestation as failed
            AttestationServiceError: Unexpected HTTP status or transport error
            AttestationTimeout: Retry budget or deadline exhausted
        """
        state = self._transition(
            message_hash, AttestationState.NOT_REQUESTED, AttestationState.PENDING
        )
        start_time = self._clock()
        attempts = 0

        try:
            while True:
                elapsed = self._clock() - start_time
                if attempts >= self._config.max_retries or elapsed >= self._config.max_wait_seconds:
                    self._transition(message_hash, state, AttestationState.TIMED_OUT)
                    raise AttestationTimeout(message_hash, elapsed, attempts)

                attempts += 1
                logger.debug(
                    f"Polling attestation for {message_hash} "
                    f"({attempts}/{self._config.max_retries})"
                )
                data = await self._query(message_hash)

                if data is not None:
                    status = data.get("status")
                    attestation = data.get("attestation")
                    if status == AttestationStatus.COMPLETE.value and attestation:
                        self._transition(message_hash, state, AttestationState.COMPLETE)
                        logger.info(
                            f"Attestation complete for {message_hash} after {attempts} attempts"
                        )
                        message = data.get("message")
                        return AttestationData(
                            status=AttestationStatus.COMPLETE,
                            message_hash=message_hash,
                            message_bytes=message if isinstance(message, str) and message.startswith("0x") else "",
                            attestation=attestation,
                        )
                    if status == AttestationStatus.FAILED.value:
                        self._transition(message_hash, state, AttestationState.FAILED)
                        raise AttestationFailed(message_hash)
                    logger.debug(f"Attestation status: {status}, continuing to wait")

                await self._sleep(self._config.poll_interval_seconds)
        except AttestationServiceError:
            self._transition(message_hash, state, AttestationState.FAILED)
            raise

    async def await_attestation(self, source_tx_hash: str) -> AttestationData:
        """Extract the burn message then poll for its attestation."""
        message_hash, message_bytes = await self.extract_message(source_tx_hash)
        data = await self.poll_attestation(message_hash)
        if not data.message_bytes:
            data = dataclasses.replace(data, message_bytes=message_bytes)
        return data

    async def get_attestation_status(self, message_hash: str) -> Dict[str, Any]:
        """
        Single attestation lookup.

        Args:
            message_hash: keccak256 of the burn message

        Returns:
            Dict with status and optional attestation data
        """
        data = await self._query(message_hash)
        if data is None:
            return {"status": AttestationStatus.PENDING.value, "attestation": None}
        return {
            "status": data.get("status", AttestationStatus.PENDING.value),
            "attestation": data.get("attestation"),
        }

    async def close(self) -> None:
        """Close the HTTP client and any RPC client created here."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None
        if self._rpc is not None and self._owns_rpc:
            await self._rpc.close()
            self._rpc = None


__all__ = [
    "AttestationState",
    "AttestationPoller",
]

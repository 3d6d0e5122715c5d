"""Destination-chain side of a transfer: mint USDC on Aptos with a compiled receive script."""
from __future__ import annotations

import base64
import logging
import string
from decimal import Decimal
from pathlib import Path
from typing import Optional

from .address import to_destination_format
from .aptos_client import AptosRestClient, ResourceNotFound, primary_store_address
from .config import DestinationChainConfig, get_config
from .constants import RECEIVE_MESSAGE_SCRIPT_BASE64
from .errors import (
    DestinationTransactionReverted,
    InvalidAttestationFormat,
    InvalidMessageFormat,
)
from .models import ReceiveResult
from .signers import DestinationSigner

logger = logging.getLogger(__name__)

_HEX_DIGITS = frozenset(string.hexdigits)


def _is_hex_payload(value: str) -> bool:
    """Non-empty, 0x-prefixed, even-length hex."""
    if not isinstance(value, str) or not value.startswith("0x"):
        return False
    body = value[2:]
    return bool(body) and len(body) % 2 == 0 and set(body) <= _HEX_DIGITS


def load_receive_script(path: Optional[str] = None) -> bytes:
    """Compiled receive script: a ``.mv`` file when given, else the bundled bytecode."""
    if path:
        return Path(path).read_bytes()
    return base64.b64decode(RECEIVE_MESSAGE_SCRIPT_BASE64)


class DestinationChainReceiver:
    """Submits the attested message on Aptos and reports how much USDC arrived."""

    def __init__(
        self,
        config: Optional[DestinationChainConfig] = None,
        client: Optional[AptosRestClient] = None,
        receive_script: Optional[bytes] = None,
    ):
        self._config = config or get_config().destination
        self._client = client or AptosRestClient(self._config)
        self._receive_script = receive_script

    @property
    def client(self) -> AptosRestClient:
        return self._client

    def _get_script(self) -> bytes:
        if self._receive_script is None:
            self._receive_script = load_receive_script(self._config.receive_script_path)
        return self._receive_script

    async def check_balance(self, address: str) -> str:
        """
        USDC balance of ``address`` as a decimal string.

        Reads the primary fungible store first, then the legacy coin store.
        "0" when the account holds neither.
        """
        owner = to_destination_format(address)
        store = primary_store_address(owner, self._config.usdc_metadata)
        try:
            resource = await self._client.get_account_resource(
                store, self._config.balance_resource_type
            )
            raw = int(resource.get("data", {}).get("balance", "0"))
        except ResourceNotFound:
            logger.debug(f"No USDC fungible store for {owner}, trying coin store")
            try:
                resource = await self._client.get_account_resource(
                    owner, self._config.coin_store_resource_type
                )
            except ResourceNotFound:
                return "0"
            raw = int(resource.get("data", {}).get("coin", {}).get("value", "0"))
        return format(Decimal(raw).scaleb(-self._config.token_decimals), "f")

    async def receive(
        self,
        message_bytes: str,
        attestation: str,
        signer: DestinationSigner,
        recipient_address: Optional[str] = None,
    ) -> ReceiveResult:
        """
        Run the receive script with the message and its attestation.

        Never raises: failures come back as ``ReceiveResult(success=False)``
        with the exception message.

        Args:
            message_bytes: 0x hex burn message
            attestation: 0x hex Circle signature
            signer: Aptos account paying for the transaction
            recipient_address: Account whose balance is measured (defaults to the signer)
        """
        tx_hash = ""
        try:
            if not _is_hex_payload(message_bytes):
                raise InvalidMessageFormat()
            if not _is_hex_payload(attestation):
                raise InvalidAttestationFormat()

            recipient = recipient_address or signer.address
            balance_before = Decimal(await self.check_balance(recipient))
            logger.debug(f"USDC balance before receive: {balance_before}")

            tx_hash = await self._client.submit_script(
                signer,
                self._get_script(),
                [bytes.fromhex(message_bytes[2:]), bytes.fromhex(attestation[2:])],
            )
            txn = await self._client.wait_for_transaction(tx_hash)
            if not txn.get("success"):
                raise DestinationTransactionReverted(tx_hash, txn.get("vm_status"))

            balance_after = Decimal(await self.check_balance(recipient))
            amount_received = balance_after - balance_before
            logger.info(f"Received {amount_received} USDC on {self._config.name} in {tx_hash}")

            return ReceiveResult(
                transaction_hash=tx_hash,
                success=True,
                amount_received=amount_received,
                vm_status=txn.get("vm_status"),
            )
        except Exception as e:
            logger.error(f"Destination receive failed: {e}")
            return ReceiveResult(
                transaction_hash=tx_hash,
                success=False,
                error_message=str(e),
                vm_status=getattr(e, "vm_status", None),
            )

    async def close(self) -> None:
        await self._client.close()


__all__ = [
    "DestinationChainReceiver",
    "load_receive_script",
]

"""Source-chain side of a transfer: approve USDC and burn it via depositForBurn.

Flow:
1. Check the sender's USDC balance
2. Approve USDC to TokenMessenger (nonce N)
3. Call depositForBurn on TokenMessenger (nonce N+1)
4. Read the MessageSent payload from the burn receipt
"""
from __future__ import annotations

import asyncio
import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Dict, Optional

from eth_abi import encode
from eth_utils import to_checksum_address

from .address import to_bytes32, to_destination_format
from .config import SourceChainConfig, get_config
from .constants import (
    DEPOSIT_FOR_BURN_SELECTOR,
    ERC20_APPROVE_SELECTOR,
    ERC20_BALANCE_OF_SELECTOR,
    ERC20_DECIMALS_SELECTOR,
    MAX_UINT256,
)
from .errors import (
    ConfirmationTimeout,
    InsufficientBalance,
    InvalidAmount,
    InvalidTokenContract,
    SourceTransactionReverted,
    StaleNonce,
)
from .events import ensure_succeeded, extract_message_bytes, extract_protocol_nonce
from .logging_utils import BridgeLogger, OperationType, get_bridge_logger
from .models import SourceSendResult
from .rpc_client import RPCError, SourceRPCClient
from .signers import SourceSigner

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


def to_smallest_unit(amount: str, decimals: int) -> int:
    """Convert a human-readable amount ("1.5") into token base units."""
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise InvalidAmount(f"Invalid amount: {amount!r}")
    if not value.is_finite() or value <= 0:
        raise InvalidAmount(f"Amount must be positive, got {amount!r}")

    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise InvalidAmount(f"Amount {amount} has more than {decimals} decimal places")
    return int(scaled)


def from_smallest_unit(raw: int, decimals: int) -> str:
    """Convert token base units into a decimal string."""
    return format(Decimal(raw).scaleb(-decimals), "f")


class SourceChainSender:
    """Approves and burns USDC on the source chain."""

    def __init__(
        self,
        config: Optional[SourceChainConfig] = None,
        destination_domain: Optional[int] = None,
        rpc_client: Optional[SourceRPCClient] = None,
        bridge_logger: Optional[BridgeLogger] = None,
        sleep: Optional[Sleep] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._config = config or get_config().source
        self._destination_domain = (
            destination_domain
            if destination_domain is not None
            else get_config().destination.domain_id
        )
        self._rpc = rpc_client or SourceRPCClient(self._config)
        self._log = bridge_logger or get_bridge_logger()
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or time.monotonic
        self._decimals: Optional[int] = None

        self._usdc = to_checksum_address(self._config.usdc)
        self._token_messenger = to_checksum_address(self._config.token_messenger)

    @property
    def rpc_client(self) -> SourceRPCClient:
        return self._rpc

    def _read_uint(self, result: Optional[str], function: str) -> int:
        # "0x" means no contract code at the address
        if not result or result == "0x":
            raise InvalidTokenContract(self._usdc, function)
        return int(result, 16)

    async def get_decimals(self) -> int:
        """Token precision, read once from the contract."""
        if self._decimals is None:
            result = await self._rpc.eth_call({"to": self._usdc, "data": ERC20_DECIMALS_SELECTOR})
            self._decimals = self._read_uint(result, "decimals")
        return self._decimals

    async def check_balance(self, address: str) -> str:
        """USDC balance of ``address`` as a decimal string."""
        data = ERC20_BALANCE_OF_SELECTOR + encode(
            ["address"], [to_checksum_address(address)]
        ).hex()
        result = await self._rpc.eth_call({"to": self._usdc, "data": data})
        decimals = await self.get_decimals()
        return from_smallest_unit(self._read_uint(result, "balanceOf"), decimals)

    async def approve(
        self,
        signer: SourceSigner,
        amount: str,
        nonce: Optional[int] = None,
    ) -> str:
        """Approve TokenMessenger to spend USDC; returns once the approval is mined."""
        decimals = await self.get_decimals()
        allowance = (
            MAX_UINT256 if self._config.approve_unlimited else to_smallest_unit(amount, decimals)
        )
        data = ERC20_APPROVE_SELECTOR + encode(
            ["address", "uint256"], [self._token_messenger, allowance]
        ).hex()

        if nonce is None:
            nonce = await self._rpc.get_nonce(signer.address, "pending")
            logger.debug(f"Fetched pending nonce {nonce} for approve")

        async with self._log.operation_context(
            OperationType.APPROVE, self._config.name, nonce=nonce
        ) as ctx:
            tx_hash = await self._send_transaction(signer, self._usdc, data, nonce)
            ctx.metadata["tx_hash"] = tx_hash
            await self._wait_for_receipt(tx_hash)
        return tx_hash

    async def deposit_for_burn(
        self,
        signer: SourceSigner,
        amount: str,
        destination_address: str,
        nonce: Optional[int] = None,
    ) -> SourceSendResult:
        """Burn USDC for minting to ``destination_address`` on the destination domain."""
        mint_recipient = to_bytes32(destination_address)
        decimals = await self.get_decimals()
        amount_units = to_smallest_unit(amount, decimals)

        data = DEPOSIT_FOR_BURN_SELECTOR + encode(
            ["uint256", "uint32", "bytes32", "address"],
            [amount_units, self._destination_domain, mint_recipient, self._usdc],
        ).hex()

        if nonce is None:
            nonce = await self._rpc.get_nonce(signer.address, "pending")
            logger.debug(f"Fetched pending nonce {nonce} for depositForBurn")

        async with self._log.operation_context(
            OperationType.DEPOSIT_FOR_BURN,
            self._config.name,
            nonce=nonce,
            amount=amount,
            destination_domain=self._destination_domain,
        ) as ctx:
            tx_hash = await self._send_transaction(signer, self._token_messenger, data, nonce)
            ctx.metadata["tx_hash"] = tx_hash
            receipt = await self._wait_for_receipt(tx_hash)

            message_bytes = extract_message_bytes(receipt, tx_hash)
            protocol_nonce = extract_protocol_nonce(receipt)

        return SourceSendResult(
            transaction_hash=tx_hash,
            protocol_nonce=protocol_nonce,
            message_bytes=message_bytes,
        )

    async def execute_full_transfer(
        self,
        signer: SourceSigner,
        amount: str,
        destination_address: str,
    ) -> SourceSendResult:
        """
        Balance check, approve and burn.

        The nonce is fetched once per attempt and incremented by hand for the
        burn, since re-querying between the two transactions can return the
        approval's still-pending nonce. Only StaleNonce is retried.
        """
        to_destination_format(destination_address)
        decimals = await self.get_decimals()
        to_smallest_unit(amount, decimals)

        balance = await self.check_balance(signer.address)
        logger.info(f"Current USDC balance of {signer.address}: {balance}")
        if Decimal(balance) < Decimal(amount):
            raise InsufficientBalance(balance=balance, required=amount)

        attempts = max(1, self._config.nonce_retry_attempts)
        approved = False
        last_error: Optional[StaleNonce] = None

        async with self._log.operation_context(
            OperationType.SOURCE_TRANSFER, self._config.name, amount=amount
        ):
            for attempt in range(1, attempts + 1):
                if last_error is not None:
                    logger.warning(
                        f"Detected nonce error (attempt {attempt - 1}/{attempts}): {last_error}, "
                        f"retrying in {self._config.nonce_retry_delay_seconds}s"
                    )
                    await self._sleep(self._config.nonce_retry_delay_seconds)
                try:
                    nonce = await self._rpc.get_nonce(signer.address, "pending")
                    if not approved:
                        await self.approve(signer, amount, nonce=nonce)
                        approved = True
                        nonce += 1
                    return await self.deposit_for_burn(
                        signer, amount, destination_address, nonce=nonce
                    )
                except StaleNonce as e:
                    last_error = e

            logger.error(f"Nonce still stale after {attempts} attempts")
            raise last_error

    async def _build_transaction(
        self,
        signer: SourceSigner,
        to: str,
        data: str,
        nonce: int,
    ) -> Dict[str, Any]:
        try:
            gas_limit = await self._rpc.estimate_gas(
                {"from": signer.address, "to": to, "data": data}
            )
            gas_limit = gas_limit * (100 + self._config.gas_limit_buffer_percent) // 100
        except RPCError as e:
            logger.warning(f"Gas estimation failed: {e}, using default")
            gas_limit = self._config.default_gas_limit

        tx: Dict[str, Any] = {
            "chainId": self._config.chain_id,
            "nonce": nonce,
            "to": to,
            "value": 0,
            "data": data,
            "gas": gas_limit,
        }

        base_fee = await self._rpc.get_base_fee()
        if base_fee is None:
            tx["gasPrice"] = await self._rpc.get_gas_price()
        else:
            priority_fee = await self._rpc.get_max_priority_fee()
            tx["type"] = 2
            tx["maxPriorityFeePerGas"] = priority_fee
            tx["maxFeePerGas"] = base_fee * 2 + priority_fee
        return tx

    async def _send_transaction(
        self,
        signer: SourceSigner,
        to: str,
        data: str,
        nonce: int,
    ) -> str:
        tx = await self._build_transaction(signer, to, data, nonce)
        signed_tx = await signer.sign_transaction(tx)

        try:
            tx_hash = await self._rpc.send_raw_transaction(signed_tx)
        except RPCError as e:
            if e.is_stale_nonce:
                raise StaleNonce(nonce, str(e)) from e
            raise

        self._log.log_transaction_submitted(
            tx_hash=tx_hash,
            chain=self._config.name,
            from_address=signer.address,
            to_address=to,
            nonce=nonce,
        )
        return tx_hash

    async def _wait_for_receipt(self, tx_hash: str) -> Dict[str, Any]:
        """Poll until the transaction is mined; raise if it reverted."""
        timeout = self._config.confirmation_timeout_seconds
        start_time = self._clock()

        while True:
            receipt = await self._rpc.get_transaction_receipt(tx_hash)
            if receipt:
                try:
                    ensure_succeeded(receipt, tx_hash)
                except SourceTransactionReverted as e:
                    self._log.log_transaction_failed(tx_hash, self._config.name, str(e))
                    raise
                block = receipt.get("blockNumber")
                self._log.log_transaction_confirmed(
                    tx_hash,
                    self._config.name,
                    int(block, 16) if isinstance(block, str) else block,
                )
                return receipt

            if self._clock() - start_time > timeout:
                raise ConfirmationTimeout(tx_hash, timeout)
            await self._sleep(self._config.confirmation_poll_seconds)

    async def close(self) -> None:
        await self._rpc.close()


__all__ = [
    "SourceChainSender",
    "to_smallest_unit",
    "from_smallest_unit",
]

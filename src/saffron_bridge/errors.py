"""Error taxonomy for cross-chain transfers.

Only StaleNonce is recovered locally (see SourceChainSender.execute_full_transfer).
Everything else aborts the current step and is reported by the orchestrator
with the exception message verbatim.
"""
from __future__ import annotations

from typing import Optional


class BridgeError(Exception):
    """Base class for all transfer errors."""

    code = "bridge_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidAddressFormat(BridgeError):
    """Raised when an address is not exactly the expected hex width."""

    code = "invalid_address_format"

    def __init__(self, address: str, expected_hex_chars: int = 64):
        self.address = address
        self.expected_hex_chars = expected_hex_chars
        super().__init__(
            f"Invalid address format: expected {expected_hex_chars} hex characters, "
            f"got {address!r}"
        )


class InvalidAmount(BridgeError):
    """Raised when a transfer amount cannot be converted to token units."""

    code = "invalid_amount"


class InsufficientBalance(BridgeError):
    """Raised when the sender holds less than the requested amount."""

    code = "insufficient_balance"

    def __init__(self, balance: str, required: str):
        self.balance = balance
        self.required = required
        super().__init__(
            f"Insufficient USDC balance, current: {balance}, required: {required}"
        )


class MessageEventNotFound(BridgeError):
    """Raised when a burn receipt carries no MessageSent event."""

    code = "message_event_not_found"

    def __init__(self, tx_hash: str):
        self.tx_hash = tx_hash
        super().__init__(
            f"MessageSent event not found in transaction {tx_hash}. "
            f"Please confirm the transaction called depositForBurn"
        )


class ReceiptUnavailable(BridgeError):
    """Raised when a receipt is still missing after all lookups."""

    code = "receipt_unavailable"

    def __init__(self, tx_hash: str, attempts: int):
        self.tx_hash = tx_hash
        self.attempts = attempts
        super().__init__(
            f"Unable to get transaction receipt for {tx_hash} after {attempts} attempts"
        )


class SourceTransactionReverted(BridgeError):
    """Raised when a source-chain transaction is mined with status 0."""

    code = "source_transaction_reverted"

    def __init__(self, tx_hash: str):
        self.tx_hash = tx_hash
        super().__init__(f"Source transaction {tx_hash} reverted")


class ConfirmationTimeout(BridgeError):
    """Raised when a submitted transaction is not confirmed in time."""

    code = "confirmation_timeout"

    def __init__(self, tx_hash: str, timeout_seconds: float):
        self.tx_hash = tx_hash
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Transaction {tx_hash} not confirmed after {timeout_seconds:.0f}s"
        )


class AttestationServiceError(BridgeError):
    """Raised when the attestation API answers with an unexpected status."""

    code = "attestation_service_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class AttestationFailed(BridgeError):
    """Raised when the attestation authority reports a failed attestation."""

    code = "attestation_failed"

    def __init__(self, message_hash: str):
        self.message_hash = message_hash
        super().__init__(f"Attestation failed for message {message_hash}")


class AttestationTimeout(BridgeError):
    """Raised when polling ends without a complete attestation."""

    code = "attestation_timeout"

    def __init__(self, message_hash: str, elapsed_seconds: float, attempts: int):
        self.message_hash = message_hash
        self.elapsed_seconds = elapsed_seconds
        self.attempts = attempts
        super().__init__(
            f"Getting attestation timeout (waited {round(elapsed_seconds)} seconds, "
            f"{attempts} attempts)"
        )


class InvalidMessageFormat(BridgeError):
    """Raised when message bytes are not non-empty 0x-prefixed hex."""

    code = "invalid_message_format"

    def __init__(self, message: str = "Invalid message bytes format"):
        super().__init__(message)


class InvalidAttestationFormat(BridgeError):
    """Raised when an attestation is not non-empty 0x-prefixed hex."""

    code = "invalid_attestation_format"

    def __init__(self, message: str = "Invalid attestation format"):
        super().__init__(message)


class DestinationTransactionReverted(BridgeError):
    """Raised when the destination chain reports a non-success status."""

    code = "destination_transaction_reverted"

    def __init__(self, tx_hash: Optional[str] = None, vm_status: Optional[str] = None):
        self.tx_hash = tx_hash
        self.vm_status = vm_status
        message = "Destination transaction reverted"
        if vm_status:
            message += f": {vm_status}"
        super().__init__(message)


class StaleNonce(BridgeError):
    """Raised when the source chain rejects a nonce as already used."""

    code = "stale_nonce"

    def __init__(self, nonce: Optional[int], detail: str):
        self.nonce = nonce
        self.detail = detail
        super().__init__(f"Stale nonce {nonce}: {detail}")


class InvalidTokenContract(BridgeError):
    """Raised when the configured token address answers an ERC-20 read with no data."""

    code = "invalid_token_contract"

    def __init__(self, address: str, function: str):
        self.address = address
        self.function = function
        super().__init__(
            f"Token contract {address} returned no data for {function}(). "
            f"Check the configured USDC address"
        )


class UnexpectedError(BridgeError):
    """Wraps a failure that fits no other category."""

    code = "unexpected_error"


__all__ = [
    "BridgeError",
    "InvalidAddressFormat",
    "InvalidAmount",
    "InsufficientBalance",
    "MessageEventNotFound",
    "ReceiptUnavailable",
    "SourceTransactionReverted",
    "ConfirmationTimeout",
    "AttestationServiceError",
    "AttestationFailed",
    "AttestationTimeout",
    "InvalidMessageFormat",
    "InvalidAttestationFormat",
    "DestinationTransactionReverted",
    "StaleNonce",
    "InvalidTokenContract",
    "UnexpectedError",
]

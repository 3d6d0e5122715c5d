"""Data model for a single cross-chain transfer."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

if TYPE_CHECKING:
    from .signers import SourceSigner

TOTAL_STEPS = 3


@dataclass(frozen=True)
class TransferRequest:
    """What the caller wants moved, and who signs on the source chain."""
    amount: str  # Human-readable decimal, e.g. "1.0"
    recipient_address: str  # Aptos address, 0x + 64 hex
    sender_credential: "SourceSigner"

    def __repr__(self) -> str:
        return (
            f"TransferRequest(amount={self.amount!r}, "
            f"recipient_address={self.recipient_address!r}, sender_credential=<hidden>)"
        )


@dataclass(frozen=True)
class SourceSendResult:
    """Outcome of the burn on the source chain."""
    transaction_hash: str
    protocol_nonce: str
    message_bytes: str  # 0x-prefixed hex, exactly as emitted by MessageSent


class AttestationStatus(str, Enum):
    """Status reported by the attestation authority."""
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class AttestationData:
    """A signed attestation for one burn message."""
    status: AttestationStatus
    message_hash: str
    message_bytes: str
    attestation: str

    @property
    def is_complete(self) -> bool:
        return self.status == AttestationStatus.COMPLETE and bool(self.attestation)


@dataclass
class ReceiveResult:
    """Outcome of the mint on the destination chain."""
    transaction_hash: str
    success: bool
    amount_received: Decimal = Decimal("0")
    error_message: Optional[str] = None
    vm_status: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction_hash": self.transaction_hash,
            "success": self.success,
            "amount_received": str(self.amount_received),
            "error_message": self.error_message,
            "vm_status": self.vm_status,
        }


class ProgressStatus(str, Enum):
    """Status of a transfer step."""
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class TransferProgress:
    """Progress event emitted to the caller after each step transition."""
    step_index: int
    status: ProgressStatus
    message: str
    total_steps: int = TOTAL_STEPS
    transaction_hash: Optional[str] = None
    percentage: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_index": self.step_index,
            "total_steps": self.total_steps,
            "status": self.status.value,
            "message": self.message,
            "transaction_hash": self.transaction_hash,
            "percentage": self.percentage,
        }


ProgressCallback = Callable[[TransferProgress], None]


@dataclass
class TransferOutcome:
    """Terminal result of one orchestration run."""
    success: bool
    source_transaction_hash: Optional[str] = None
    destination_transaction_hash: Optional[str] = None
    transferred_amount: Optional[Decimal] = None
    error_message: Optional[str] = None
    message_hash: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def is_stuck(self) -> bool:
        """Burned on the source chain but not minted on the destination."""
        return not self.success and self.source_transaction_hash is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "source_transaction_hash": self.source_transaction_hash,
            "destination_transaction_hash": self.destination_transaction_hash,
            "transferred_amount": (
                str(self.transferred_amount) if self.transferred_amount is not None else None
            ),
            "error_message": self.error_message,
            "error_code": self.error_code,
            "message_hash": self.message_hash,
        }


__all__ = [
    "TOTAL_STEPS",
    "TransferRequest",
    "SourceSendResult",
    "AttestationStatus",
    "AttestationData",
    "ReceiveResult",
    "ProgressStatus",
    "TransferProgress",
    "ProgressCallback",
    "TransferOutcome",
]

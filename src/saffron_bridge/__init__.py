"""Base to Aptos USDC transfers over Circle CCTP."""

from .address import (
    evm_to_destination_format,
    from_destination_format,
    to_bytes32,
    to_destination_format,
)
from .attestation import AttestationPoller, AttestationState
from .config import (
    AttestationConfig,
    BridgeConfig,
    Credentials,
    DestinationChainConfig,
    SourceChainConfig,
    get_config,
    set_config,
)
from .errors import (
    AttestationFailed,
    AttestationServiceError,
    AttestationTimeout,
    BridgeError,
    DestinationTransactionReverted,
    InsufficientBalance,
    InvalidAddressFormat,
    InvalidAmount,
    InvalidAttestationFormat,
    InvalidMessageFormat,
    InvalidTokenContract,
    MessageEventNotFound,
    ReceiptUnavailable,
    StaleNonce,
    UnexpectedError,
)
from .models import (
    AttestationData,
    AttestationStatus,
    ProgressStatus,
    ReceiveResult,
    SourceSendResult,
    TransferOutcome,
    TransferProgress,
    TransferRequest,
)
from .orchestrator import TransferOrchestrator, build_orchestrator
from .receiver import DestinationChainReceiver
from .sender import SourceChainSender
from .signers import DestinationSigner, LocalSourceSigner, SourceSigner

__all__ = [
    "evm_to_destination_format",
    "from_destination_format",
    "to_bytes32",
    "to_destination_format",
    "AttestationPoller",
    "AttestationState",
    "AttestationConfig",
    "BridgeConfig",
    "Credentials",
    "DestinationChainConfig",
    "SourceChainConfig",
    "get_config",
    "set_config",
    "AttestationFailed",
    "AttestationServiceError",
    "AttestationTimeout",
    "BridgeError",
    "DestinationTransactionReverted",
    "InsufficientBalance",
    "InvalidAddressFormat",
    "InvalidAmount",
    "InvalidAttestationFormat",
    "InvalidMessageFormat",
    "InvalidTokenContract",
    "MessageEventNotFound",
    "ReceiptUnavailable",
    "StaleNonce",
    "UnexpectedError",
    "AttestationData",
    "AttestationStatus",
    "ProgressStatus",
    "ReceiveResult",
    "SourceSendResult",
    "TransferOutcome",
    "TransferProgress",
    "TransferRequest",
    "TransferOrchestrator",
    "build_orchestrator",
    "DestinationChainReceiver",
    "SourceChainSender",
    "DestinationSigner",
    "LocalSourceSigner",
    "SourceSigner",
]

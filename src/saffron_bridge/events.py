"""Parse CCTP events out of source-chain transaction receipts."""
from __future__ import annotations

from typing import Any, Dict, Optional

from eth_abi import decode
from eth_utils import keccak

from .constants import DEPOSIT_FOR_BURN_TOPIC, MESSAGE_SENT_TOPIC
from .errors import MessageEventNotFound, SourceTransactionReverted


def _hex_to_bytes(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


def _find_log(receipt: Dict[str, Any], topic: str) -> Optional[Dict[str, Any]]:
    for log in receipt.get("logs") or []:
        topics = log.get("topics") or []
        if topics and topics[0].lower() == topic:
            return log
    return None


def receipt_succeeded(receipt: Dict[str, Any]) -> bool:
    """True for ``status == 0x1``; pre-Byzantium receipts without status count as success."""
    status = receipt.get("status")
    if status is None:
        return True
    if isinstance(status, str):
        return int(status, 16) == 1
    return int(status) == 1


def ensure_succeeded(receipt: Dict[str, Any], tx_hash: str) -> None:
    if not receipt_succeeded(receipt):
        raise SourceTransactionReverted(tx_hash)


def extract_message_bytes(receipt: Dict[str, Any], tx_hash: str) -> str:
    """Decode the ``bytes`` payload of ``MessageSent`` as 0x-prefixed hex."""
    log = _find_log(receipt, MESSAGE_SENT_TOPIC)
    if log is None:
        raise MessageEventNotFound(tx_hash)
    (message,) = decode(["bytes"], _hex_to_bytes(log.get("data", "0x")))
    return "0x" + message.hex()


def extract_protocol_nonce(receipt: Dict[str, Any]) -> str:
    """CCTP nonce from the first indexed ``DepositForBurn`` topic, ``"0"`` if absent."""
    log = _find_log(receipt, DEPOSIT_FOR_BURN_TOPIC)
    if log is None or len(log.get("topics") or []) < 2:
        return "0"
    return str(int(log["topics"][1], 16))


def compute_message_hash(message_bytes: str) -> str:
    """keccak256 of the raw message, the key the attestation API is queried by."""
    return "0x" + keccak(_hex_to_bytes(message_bytes)).hex()


__all__ = [
    "receipt_succeeded",
    "ensure_succeeded",
    "extract_message_bytes",
    "extract_protocol_nonce",
    "compute_message_hash",
]

"""Signing credentials for the source (secp256k1) and destination (ed25519) chains."""
from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from typing import Any, Dict

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from eth_account import Account
from eth_utils import to_hex

# Aptos single-key ed25519 authentication scheme
APTOS_ED25519_SCHEME = b"\x00"
# AIP-80 private key prefix
APTOS_KEY_PREFIX = "ed25519-priv-"


class SourceSigner(ABC):
    """Abstract interface for source-chain transaction signing."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Checksummed sender address."""

    @abstractmethod
    async def sign_transaction(self, tx: Dict[str, Any]) -> str:
        """Sign a transaction dict and return the raw signed tx as 0x hex."""


class LocalSourceSigner(SourceSigner):
    """Signs with a private key held in process memory."""

    def __init__(self, private_key: str):
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    async def sign_transaction(self, tx: Dict[str, Any]) -> str:
        signed = self._account.sign_transaction(tx)
        return to_hex(signed.raw_transaction)

    def __repr__(self) -> str:
        return f"LocalSourceSigner(address={self.address})"


class DestinationSigner:
    """Aptos ed25519 account."""

    def __init__(self, private_key: str):
        key = private_key.strip()
        if key.startswith(APTOS_KEY_PREFIX):
            key = key[len(APTOS_KEY_PREFIX):]
        if key[:2] in ("0x", "0X"):
            key = key[2:]
        try:
            raw = bytes.fromhex(key)
        except ValueError:
            raise ValueError("Aptos private key must be hex encoded")
        if len(raw) != 32:
            raise ValueError(f"Aptos private key must be 32 bytes, got {len(raw)}")

        self._key = Ed25519PrivateKey.from_private_bytes(raw)
        self._public_key = self._key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)

    @property
    def public_key(self) -> str:
        return "0x" + self._public_key.hex()

    @property
    def address(self) -> str:
        """Account address derived from the authentication key."""
        return "0x" + hashlib.sha3_256(self._public_key + APTOS_ED25519_SCHEME).hexdigest()

    def sign(self, message: bytes) -> str:
        return "0x" + self._key.sign(message).hex()

    def __repr__(self) -> str:
        return f"DestinationSigner(address={self.address})"


__all__ = [
    "SourceSigner",
    "LocalSourceSigner",
    "DestinationSigner",
]

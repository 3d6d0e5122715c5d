"""Aptos REST client.

Uses raw httpx against the fullnode REST API instead of an SDK. Transactions
are built as JSON, turned into a signing message by the node's
``encode_submission`` endpoint, signed locally with ed25519 and submitted.
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from .config import DestinationChainConfig, get_config
from .errors import ConfirmationTimeout
from .signers import DestinationSigner

logger = logging.getLogger(__name__)

# Domain separator for object addresses derived from (owner, seed)
OBJECT_FROM_OWNER_SCHEME = b"\xfc"


class AptosAPIError(Exception):
    """Aptos node returned an error response."""

    def __init__(self, message: str, status_code: Optional[int] = None, error_code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class ResourceNotFound(AptosAPIError):
    """Account or resource does not exist."""


def _address_bytes(address: str) -> bytes:
    clean = address[2:] if address.startswith("0x") else address
    return bytes.fromhex(clean.zfill(64))


def primary_store_address(owner: str, metadata: str) -> str:
    """Address of the primary fungible store ``owner`` holds for ``metadata``."""
    digest = hashlib.sha3_256(
        _address_bytes(owner) + _address_bytes(metadata) + OBJECT_FROM_OWNER_SCHEME
    ).hexdigest()
    return "0x" + digest


class AptosRestClient:
    """Async client for the handful of REST endpoints a receive needs."""

    def __init__(
        self,
        config: Optional[DestinationChainConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._config = config or get_config().destination
        self._base_url = self._config.node_url.rstrip("/")
        self._http_client = http_client
        self._owns_client = http_client is None
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or time.monotonic

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._config.request_timeout_seconds)
        return self._http_client

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self._base_url}/v1{path}"
        resp = await self._get_client().request(method, url, **kwargs)

        if resp.status_code >= 400:
            try:
                body = resp.json()
                message = body.get("message", resp.text)
                error_code = body.get("error_code")
            except ValueError:
                message, error_code = resp.text, None
            if resp.status_code == 404:
                raise ResourceNotFound(message, resp.status_code, error_code)
            raise AptosAPIError(
                f"Aptos API error {resp.status_code}: {message}", resp.status_code, error_code
            )
        return resp.json()

    async def get_account_resource(self, address: str, resource_type: str) -> Dict[str, Any]:
        """Get one resource; raises ResourceNotFound when absent."""
        return await self._request("GET", f"/accounts/{address}/resource/{resource_type}")

    async def get_sequence_number(self, address: str) -> int:
        """Get the next sequence number for an account."""
        account = await self._request("GET", f"/accounts/{address}")
        return int(account["sequence_number"])

    async def estimate_gas_price(self) -> int:
        """Get the node's suggested gas unit price."""
        result = await self._request("GET", "/estimate_gas_price")
        return int(result["gas_estimate"])

    async def submit_script(
        self,
        signer: DestinationSigner,
        bytecode: bytes,
        args: List[bytes],
    ) -> str:
        """
        Submit a script transaction whose arguments are all ``vector<u8>``.

        Returns:
            Transaction hash
        """
        sequence_number = await self.get_sequence_number(signer.address)
        gas_unit_price = await self.estimate_gas_price()

        txn: Dict[str, Any] = {
            "sender": signer.address,
            "sequence_number": str(sequence_number),
            "max_gas_amount": str(self._config.max_gas_amount),
            "gas_unit_price": str(gas_unit_price),
            "expiration_timestamp_secs": str(int(time.time()) + self._config.expiration_seconds),
            "payload": {
                "type": "script_payload",
                "code": {"bytecode": "0x" + bytecode.hex()},
                "type_arguments": [],
                "arguments": ["0x" + arg.hex() for arg in args],
            },
        }

        signing_message = await self._request("POST", "/transactions/encode_submission", json=txn)
        signature = signer.sign(bytes.fromhex(signing_message[2:]))

        txn["signature"] = {
            "type": "ed25519_signature",
            "public_key": signer.public_key,
            "signature": signature,
        }
        result = await self._request("POST", "/transactions", json=txn)
        tx_hash = result["hash"]
        logger.info("Aptos tx submitted: %s (sequence %s)", tx_hash, sequence_number)
        return tx_hash

    async def wait_for_transaction(self, tx_hash: str) -> Dict[str, Any]:
        """Poll until the transaction is committed and return it."""
        timeout = self._config.transaction_timeout_seconds
        start_time = self._clock()

        while True:
            try:
                txn = await self._request("GET", f"/transactions/by_hash/{tx_hash}")
                if txn.get("type") != "pending_transaction":
                    return txn
            except ResourceNotFound:
                # Not indexed yet
                pass

            if self._clock() - start_time > timeout:
                raise ConfirmationTimeout(tx_hash, timeout)
            await self._sleep(self._config.transaction_poll_seconds)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None

    async def __aenter__(self) -> "AptosRestClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


__all__ = [
    "AptosAPIError",
    "ResourceNotFound",
    "AptosRestClient",
    "primary_store_address",
]

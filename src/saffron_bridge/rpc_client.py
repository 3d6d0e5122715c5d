"""
Source-chain JSON-RPC client with failover.

Endpoints are tried in priority order, healthy ones first. An endpoint that
fails ``max_consecutive_failures`` times in a row drops behind every healthy
one until it answers again. The chain ID is checked once before the first
call.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .config import RPCEndpointConfig, SourceChainConfig, get_config

logger = logging.getLogger(__name__)

# Rate limiting and node-side timeouts are worth trying on another endpoint.
# Everything else (reverts, insufficient funds, -32000 in general) is final.
RETRYABLE_RPC_CODES = (-32005,)
RETRYABLE_MESSAGE_MARKERS = (
    "rate limit",
    "too many requests",
    "timeout",
    "timed out",
)

# Messages nodes use when a nonce was already consumed
STALE_NONCE_MARKERS = (
    "nonce too low",
    "nonce has already been used",
    "nonce expired",
    "invalid nonce",
)


class EndpointStatus(str, Enum):
    """Health status of an RPC endpoint."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class EndpointHealth:
    """Failure bookkeeping for one endpoint."""
    endpoint: RPCEndpointConfig
    status: EndpointStatus = EndpointStatus.UNKNOWN
    consecutive_failures: int = 0
    total_requests: int = 0
    total_failures: int = 0
    last_error: Optional[str] = None
    last_latency_ms: Optional[float] = None

    @property
    def url(self) -> str:
        return self.endpoint.url

    def sort_key(self) -> Tuple[bool, int]:
        return (self.status == EndpointStatus.UNHEALTHY, self.endpoint.priority)

    def record_success(self, latency_ms: float) -> None:
        self.total_requests += 1
        self.consecutive_failures = 0
        self.last_latency_ms = latency_ms
        self.status = EndpointStatus.HEALTHY

    def record_failure(self, error: str) -> None:
        self.total_requests += 1
        self.total_failures += 1
        self.consecutive_failures += 1
        self.last_error = error
        if self.consecutive_failures >= self.endpoint.max_consecutive_failures:
            if self.status != EndpointStatus.UNHEALTHY:
                logger.warning(f"RPC endpoint {self.url} marked unhealthy: {error}")
            self.status = EndpointStatus.UNHEALTHY


class RPCError(Exception):
    """Raised when the node answers with a JSON-RPC error."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        self.code = code
        self.data = data
        super().__init__(message)

    @classmethod
    def from_response(cls, error: Any) -> "RPCError":
        if isinstance(error, dict):
            return cls(str(error.get("message", error)), error.get("code"), error.get("data"))
        return cls(str(error))

    @property
    def is_retryable(self) -> bool:
        if self.is_stale_nonce:
            return False
        text = str(self).lower()
        return self.code in RETRYABLE_RPC_CODES or any(
            marker in text for marker in RETRYABLE_MESSAGE_MARKERS
        )

    @property
    def is_stale_nonce(self) -> bool:
        text = str(self).lower()
        return any(marker in text for marker in STALE_NONCE_MARKERS)


class AllEndpointsFailedError(Exception):
    """Raised when every endpoint failed for one call."""

    def __init__(self, chain: str, errors: List[Tuple[str, str]]):
        self.chain = chain
        self.errors = errors
        summary = "; ".join(f"{url}: {err}" for url, err in errors[:3])
        super().__init__(f"All RPC endpoints failed for {chain}. Errors: {summary}")


class ChainIDMismatchError(Exception):
    """Raised when the node reports a different chain than configured."""

    def __init__(self, chain: str, expected: int, received: int):
        self.chain = chain
        self.expected = expected
        self.received = received
        super().__init__(
            f"Chain ID mismatch for {chain}: expected {expected}, got {received}. "
            f"Refusing to sign for the wrong network"
        )


class SourceRPCClient:
    """
    JSON-RPC client for the source chain.

    The chain ID is verified before the first real call so a misconfigured
    URL can never receive a signed burn.
    """

    def __init__(
        self,
        config: Optional[SourceChainConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._config = config or get_config().source
        self._chain = self._config.name
        if not self._config.rpc_endpoints:
            raise ValueError(f"No RPC endpoints configured for chain {self._chain}")

        self._http_client = http_client
        self._owns_client = http_client is None
        self._request_id = 0
        self._verified_chain_id: Optional[int] = None
        self._health = [EndpointHealth(endpoint) for endpoint in self._config.rpc_endpoints]

    @property
    def chain(self) -> str:
        return self._chain

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            timeout = self._config.rpc_endpoints[0].timeout_seconds
            self._http_client = httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=10.0))
        return self._http_client

    async def _ensure_chain_id(self) -> None:
        if not self._config.validate_chain_id or self._verified_chain_id is not None:
            return
        chain_id = int(await self._dispatch("eth_chainId", []), 16)
        if chain_id != self._config.chain_id:
            raise ChainIDMismatchError(self._chain, self._config.chain_id, chain_id)
        self._verified_chain_id = chain_id
        logger.info(f"Chain ID validated for {self._chain}: {chain_id}")

    async def _post(self, health: EndpointHealth, payload: Dict[str, Any]) -> Tuple[Dict[str, Any], float]:
        started = time.monotonic()
        response = await self._get_client().post(
            health.url,
            json=payload,
            timeout=health.endpoint.timeout_seconds,
        )
        response.raise_for_status()
        return response.json(), (time.monotonic() - started) * 1000

    async def _dispatch(self, method: str, params: List[Any]) -> Any:
        self._request_id += 1
        payload = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}
        errors: List[Tuple[str, str]] = []

        for health in sorted(self._health, key=EndpointHealth.sort_key):
            try:
                body, latency_ms = await self._post(health, payload)
            except (httpx.HTTPError, ValueError) as e:
                health.record_failure(str(e))
                errors.append((health.url, str(e)))
                logger.warning(f"RPC call {method} to {health.url} failed: {e}")
                continue

            if "error" in body:
                error = RPCError.from_response(body["error"])
                if error.is_retryable:
                    health.record_failure(str(error))
                    errors.append((health.url, str(error)))
                    logger.warning(f"RPC error from {health.url}: {error}, trying next endpoint")
                    continue
                health.record_success(latency_ms)
                raise error

            health.record_success(latency_ms)
            logger.debug(f"RPC call {method} answered by {health.url}")
            return body.get("result")

        raise AllEndpointsFailedError(chain=self._chain, errors=errors)

    async def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """
        Make a JSON-RPC call with failover.

        Raises:
            ChainIDMismatchError: If chain ID validation fails
            RPCError: If the node returns a non-retryable error
            AllEndpointsFailedError: If every endpoint fails
        """
        await self._ensure_chain_id()
        return await self._dispatch(method, params or [])

    async def _quantity(self, method: str, params: Optional[List[Any]] = None) -> int:
        return int(await self.call(method, params), 16)

    async def get_nonce(self, address: str, block: str = "pending") -> int:
        """Next nonce for ``address``, counting pool transactions by default."""
        return await self._quantity("eth_getTransactionCount", [address, block])

    async def get_gas_price(self) -> int:
        return await self._quantity("eth_gasPrice")

    async def get_max_priority_fee(self) -> int:
        """Suggested EIP-1559 tip, or the configured default if the node has none."""
        try:
            return await self._quantity("eth_maxPriorityFeePerGas")
        except RPCError:
            return self._config.default_priority_fee_wei

    async def get_base_fee(self) -> Optional[int]:
        """Base fee of the latest block; None on pre-London chains."""
        latest = await self.call("eth_getBlockByNumber", ["latest", False])
        base_fee = (latest or {}).get("baseFeePerGas")
        return int(base_fee, 16) if base_fee is not None else None

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        return await self._quantity("eth_estimateGas", [tx])

    async def eth_call(self, tx: Dict[str, Any], block: str = "latest") -> str:
        return await self.call("eth_call", [tx, block])

    async def send_raw_transaction(self, signed_tx: str) -> str:
        """Broadcast a signed transaction and return its hash."""
        raw = signed_tx if signed_tx.startswith("0x") else "0x" + signed_tx
        return await self.call("eth_sendRawTransaction", [raw])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Receipt of ``tx_hash``; None until it is mined."""
        return await self.call("eth_getTransactionReceipt", [tx_hash])

    def get_endpoint_stats(self) -> List[Dict[str, Any]]:
        """Per-endpoint counters, in configuration order."""
        return [
            {
                "url": health.url,
                "priority": health.endpoint.priority,
                "status": health.status.value,
                "consecutive_failures": health.consecutive_failures,
                "total_requests": health.total_requests,
                "total_failures": health.total_failures,
                "last_latency_ms": health.last_latency_ms,
                "last_error": health.last_error,
            }
            for health in self._health
        ]

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None

    async def __aenter__(self) -> "SourceRPCClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


__all__ = [
    "EndpointStatus",
    "EndpointHealth",
    "RPCError",
    "AllEndpointsFailedError",
    "ChainIDMismatchError",
    "SourceRPCClient",
]

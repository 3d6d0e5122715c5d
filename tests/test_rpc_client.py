"""
Tests for saffron_bridge.rpc_client module.

Tests cover:
- Chain ID validation before the first call
- Failover between endpoints
- JSON-RPC error classification (stale nonce vs retryable)
- Priority fee fallback
"""
from __future__ import annotations

import json

import httpx
import pytest

from saffron_bridge.config import RPCEndpointConfig, SourceChainConfig
from saffron_bridge.rpc_client import (
    AllEndpointsFailedError,
    ChainIDMismatchError,
    EndpointStatus,
    RPCError,
    SourceRPCClient,
)


def rpc_result(request: httpx.Request, result):
    payload = json.loads(request.content)
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": result})


def rpc_error(request: httpx.Request, code: int, message: str):
    payload = json.loads(request.content)
    return httpx.Response(
        200,
        json={"jsonrpc": "2.0", "id": payload["id"], "error": {"code": code, "message": message}},
    )


def make_client(handler, urls=("https://primary.test",), validate_chain_id=False):
    config = SourceChainConfig(
        rpc_endpoints=[RPCEndpointConfig(url=url, priority=i) for i, url in enumerate(urls)],
        validate_chain_id=validate_chain_id,
    )
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SourceRPCClient(config, http_client=http_client), http_client


class TestChainIdValidation:
    """Tests for chain ID validation."""

    @pytest.mark.asyncio
    async def test_mismatch_raises(self):
        def handler(request):
            return rpc_result(request, hex(1))

        client, http_client = make_client(handler, validate_chain_id=True)

        with pytest.raises(ChainIDMismatchError) as exc_info:
            await client.get_gas_price()

        assert exc_info.value.expected == 84532
        assert exc_info.value.received == 1
        await http_client.aclose()

    @pytest.mark.asyncio
    async def test_validated_once(self):
        methods = []

        def handler(request):
            method = json.loads(request.content)["method"]
            methods.append(method)
            if method == "eth_chainId":
                return rpc_result(request, hex(84532))
            return rpc_result(request, "0x5")

        client, http_client = make_client(handler, validate_chain_id=True)

        assert await client.get_nonce("0x1234567890123456789012345678901234567890") == 5
        assert await client.get_gas_price() == 5
        assert methods == ["eth_chainId", "eth_getTransactionCount", "eth_gasPrice"]
        await http_client.aclose()


class TestFailover:
    """Tests for endpoint failover."""

    @pytest.mark.asyncio
    async def test_http_error_moves_to_next_endpoint(self):
        def handler(request):
            if request.url.host == "primary.test":
                return httpx.Response(503)
            return rpc_result(request, "0x2a")

        client, http_client = make_client(handler, urls=("https://primary.test", "https://backup.test"))

        assert await client.get_gas_price() == 42

        stats = {s["url"]: s for s in client.get_endpoint_stats()}
        assert stats["https://primary.test"]["total_failures"] == 1
        assert stats["https://backup.test"]["status"] == EndpointStatus.HEALTHY.value
        await http_client.aclose()

    @pytest.mark.asyncio
    async def test_unhealthy_endpoint_moves_behind_healthy_ones(self):
        hosts = []

        def handler(request):
            hosts.append(request.url.host)
            if request.url.host == "primary.test":
                return httpx.Response(503)
            return rpc_result(request, "0x1")

        client, http_client = make_client(handler, urls=("https://primary.test", "https://backup.test"))

        for _ in range(4):
            await client.get_gas_price()

        # Three consecutive failures mark the primary unhealthy
        assert hosts[:6] == ["primary.test", "backup.test"] * 3
        assert hosts[6:] == ["backup.test"]
        stats = {s["url"]: s for s in client.get_endpoint_stats()}
        assert stats["https://primary.test"]["status"] == EndpointStatus.UNHEALTHY.value
        await http_client.aclose()

    @pytest.mark.asyncio
    async def test_retryable_rpc_code_moves_to_next_endpoint(self):
        def handler(request):
            if request.url.host == "primary.test":
                return rpc_error(request, -32005, "limit exceeded")
            return rpc_result(request, "0x1")

        client, http_client = make_client(handler, urls=("https://primary.test", "https://backup.test"))

        assert await client.get_gas_price() == 1
        await http_client.aclose()

    @pytest.mark.asyncio
    async def test_all_endpoints_failed(self):
        def handler(request):
            return httpx.Response(500)

        client, http_client = make_client(handler, urls=("https://primary.test", "https://backup.test"))

        with pytest.raises(AllEndpointsFailedError) as exc_info:
            await client.get_gas_price()

        assert len(exc_info.value.errors) == 2
        await http_client.aclose()


class TestRPCErrors:
    """Tests for JSON-RPC error handling."""

    @pytest.mark.asyncio
    async def test_stale_nonce_is_not_failed_over(self):
        hosts = []

        def handler(request):
            hosts.append(request.url.host)
            return rpc_error(request, -32000, "nonce too low: next nonce 8, tx nonce 7")

        client, http_client = make_client(handler, urls=("https://primary.test", "https://backup.test"))

        with pytest.raises(RPCError) as exc_info:
            await client.send_raw_transaction("f86c")

        assert exc_info.value.is_stale_nonce is True
        assert exc_info.value.code == -32000
        assert hosts == ["primary.test"]
        await http_client.aclose()

    @pytest.mark.asyncio
    async def test_execution_reverted_raised_verbatim(self):
        hosts = []

        def handler(request):
            hosts.append(request.url.host)
            return rpc_error(request, -32000, "execution reverted")

        client, http_client = make_client(handler, urls=("https://primary.test", "https://backup.test"))

        with pytest.raises(RPCError) as exc_info:
            await client.estimate_gas({"to": "0x1234567890123456789012345678901234567890"})

        assert str(exc_info.value) == "execution reverted"
        assert exc_info.value.code == -32000
        assert hosts == ["primary.test"]
        await http_client.aclose()

    @pytest.mark.asyncio
    async def test_insufficient_funds_not_resent_to_backup(self):
        hosts = []

        def handler(request):
            hosts.append(request.url.host)
            return rpc_error(request, -32000, "insufficient funds for gas * price + value")

        client, http_client = make_client(handler, urls=("https://primary.test", "https://backup.test"))

        with pytest.raises(RPCError, match="insufficient funds"):
            await client.send_raw_transaction("f86c")

        assert hosts == ["primary.test"]
        stats = {s["url"]: s for s in client.get_endpoint_stats()}
        assert stats["https://primary.test"]["total_failures"] == 0
        await http_client.aclose()

    @pytest.mark.asyncio
    async def test_rate_limit_message_moves_to_next_endpoint(self):
        def handler(request):
            if request.url.host == "primary.test":
                return rpc_error(request, -32000, "Too Many Requests")
            return rpc_result(request, "0x7")

        client, http_client = make_client(handler, urls=("https://primary.test", "https://backup.test"))

        assert await client.get_gas_price() == 7
        await http_client.aclose()

    def test_is_retryable(self):
        assert RPCError("limit exceeded", code=-32005).is_retryable is True
        assert RPCError("request timed out", code=-32000).is_retryable is True
        assert RPCError("execution reverted", code=-32000).is_retryable is False
        assert RPCError("nonce too low", code=-32005).is_retryable is False

    def test_is_stale_nonce_markers(self):
        assert RPCError("Nonce expired").is_stale_nonce is True
        assert RPCError("invalid nonce").is_stale_nonce is True
        assert RPCError("insufficient funds for gas").is_stale_nonce is False

    @pytest.mark.asyncio
    async def test_send_raw_transaction_adds_prefix(self):
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content))
            return rpc_result(request, "0x" + "b" * 64)

        client, http_client = make_client(handler)

        await client.send_raw_transaction("f86c")

        assert seen["params"] == ["0xf86c"]
        await http_client.aclose()

    @pytest.mark.asyncio
    async def test_priority_fee_fallback(self):
        def handler(request):
            return rpc_error(request, -32601, "method not found")

        client, http_client = make_client(handler)

        assert await client.get_max_priority_fee() == 1_000_000_000
        await http_client.aclose()


class TestBlockData:
    """Tests for fee and receipt helpers."""

    @pytest.mark.asyncio
    async def test_base_fee(self):
        def handler(request):
            return rpc_result(request, {"number": "0x1", "baseFeePerGas": "0x3b9aca00"})

        client, http_client = make_client(handler)

        assert await client.get_base_fee() == 1_000_000_000
        await http_client.aclose()

    @pytest.mark.asyncio
    async def test_base_fee_missing(self):
        def handler(request):
            return rpc_result(request, {"number": "0x1"})

        client, http_client = make_client(handler)

        assert await client.get_base_fee() is None
        await http_client.aclose()

    @pytest.mark.asyncio
    async def test_receipt_not_yet_available(self, sample_tx_hash):
        def handler(request):
            return rpc_result(request, None)

        client, http_client = make_client(handler)

        assert await client.get_transaction_receipt(sample_tx_hash) is None
        await http_client.aclose()

    def test_requires_endpoints(self):
        with pytest.raises(ValueError):
            SourceRPCClient(SourceChainConfig(rpc_endpoints=[]))

    @pytest.mark.asyncio
    async def test_close_keeps_injected_client(self):
        def handler(request):
            return rpc_result(request, "0x1")

        client, http_client = make_client(handler)

        await client.close()

        assert http_client.is_closed is False
        await http_client.aclose()

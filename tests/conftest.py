"""
Pytest configuration for saffron-bridge tests.
"""
from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add package source to path
package_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(package_src))

from eth_abi import encode

from saffron_bridge.config import (
    AttestationConfig,
    DestinationChainConfig,
    LoggingConfig,
    RPCEndpointConfig,
    SourceChainConfig,
    set_config,
)
from saffron_bridge.constants import DEPOSIT_FOR_BURN_TOPIC, MESSAGE_SENT_TOPIC

CREDENTIAL_VARS = ("BASE_PRIVATE_KEY", "APTOS_PRIVATE_KEY", "APTOS_RECIPIENT")


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Strip bridge variables from the environment and reset the global config."""
    for name in list(os.environ):
        if name.startswith("SAFFRON_BRIDGE_") or name in CREDENTIAL_VARS:
            monkeypatch.delenv(name, raising=False)
    set_config(None)
    yield
    set_config(None)


class FakeClock:
    """Monotonic clock that only advances when sleep() is awaited."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def sample_eth_address():
    """Valid Ethereum address for testing."""
    return "0x1234567890123456789012345678901234567890"


@pytest.fixture
def sample_aptos_address():
    """Valid 32-byte Aptos address for testing."""
    return "0x" + "ab" * 32


@pytest.fixture
def sample_tx_hash():
    """Valid transaction hash for testing."""
    return "0x" + "a" * 64


@pytest.fixture
def sample_message_bytes():
    """Burn message as emitted by MessageSent."""
    return "0x" + "00000000" + "00000006" + "00000009" + "cafe" * 30


@pytest.fixture
def aptos_private_key():
    return "0x" + "01" * 32


@pytest.fixture
def source_config():
    return SourceChainConfig(
        rpc_endpoints=[RPCEndpointConfig(url="https://rpc.test")],
        validate_chain_id=False,
        confirmation_timeout_seconds=10,
        confirmation_poll_seconds=1,
    )


@pytest.fixture
def destination_config():
    return DestinationChainConfig(
        node_url="https://aptos.test",
        transaction_timeout_seconds=5,
        transaction_poll_seconds=1,
    )


@pytest.fixture
def attestation_config():
    return AttestationConfig(
        base_url="https://iris.test",
        poll_interval_seconds=2,
        max_retries=150,
        max_wait_seconds=300,
        receipt_retry_attempts=3,
        receipt_retry_delay_seconds=2,
    )


@pytest.fixture
def logging_config():
    return LoggingConfig()


def build_receipt(
    message_bytes: Optional[str] = None,
    protocol_nonce: Optional[int] = None,
    status: str = "0x1",
) -> Dict[str, Any]:
    """Receipt with optional MessageSent and DepositForBurn logs."""
    logs = []
    if message_bytes is not None:
        payload = encode(["bytes"], [bytes.fromhex(message_bytes[2:])])
        logs.append({"topics": [MESSAGE_SENT_TOPIC], "data": "0x" + payload.hex()})
    if protocol_nonce is not None:
        logs.append({
            "topics": [DEPOSIT_FOR_BURN_TOPIC, "0x" + format(protocol_nonce, "064x")],
            "data": "0x",
        })
    return {"status": status, "blockNumber": "0x10", "logs": logs}


@pytest.fixture
def make_receipt():
    return build_receipt

"""
Configuration management for saffron-bridge.

Provides centralized configuration for:
- Source chain RPC endpoints and CCTP contract addresses
- Destination chain node URL and USDC resource types
- Attestation polling interval, retry budget and deadline
- Transaction confirmation timeouts and nonce retry policy
- Logging configuration

Every value can be overridden from the environment with the
``SAFFRON_BRIDGE_`` prefix.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, List, Optional

from .constants import (
    APTOS_FUNGIBLE_STORE_RESOURCE,
    APTOS_TESTNET_NODE_URL,
    APTOS_USDC_COIN_STORE_RESOURCE,
    APTOS_USDC_METADATA,
    BASE_SEPOLIA_CHAIN_ID,
    BASE_SEPOLIA_RPC_URL,
    BASE_SEPOLIA_TOKEN_MESSENGER,
    BASE_SEPOLIA_USDC,
    CCTP_DOMAINS,
    CIRCLE_ATTESTATION_API_SANDBOX_URL,
    USDC_DECIMALS,
)

logger = logging.getLogger(__name__)

ENV_PREFIX = "SAFFRON_BRIDGE_"


@dataclass
class RPCEndpointConfig:
    """Configuration for a single RPC endpoint."""
    url: str
    priority: int = 0  # Lower is higher priority
    timeout_seconds: float = 30.0
    max_consecutive_failures: int = 3


@dataclass
class SourceChainConfig:
    """Configuration for the EVM chain where USDC is burned."""
    name: str = "base_sepolia"
    chain_id: int = BASE_SEPOLIA_CHAIN_ID
    domain_id: int = CCTP_DOMAINS["base"]

    rpc_endpoints: List[RPCEndpointConfig] = field(
        default_factory=lambda: [RPCEndpointConfig(url=BASE_SEPOLIA_RPC_URL)]
    )
    validate_chain_id: bool = True

    # Contracts
    token_messenger: str = BASE_SEPOLIA_TOKEN_MESSENGER
    usdc: str = BASE_SEPOLIA_USDC
    approve_unlimited: bool = True

    # Confirmation
    confirmation_timeout_seconds: float = 120.0
    confirmation_poll_seconds: float = 2.0

    # Gas
    gas_limit_buffer_percent: int = 20
    default_gas_limit: int = 300_000
    default_priority_fee_wei: int = 1_000_000_000

    # Nonce handling
    nonce_retry_attempts: int = 3
    nonce_retry_delay_seconds: float = 2.0

    def get_primary_rpc_url(self) -> str:
        """Get the primary (highest priority) RPC URL."""
        if not self.rpc_endpoints:
            raise ValueError(f"No RPC endpoints configured for {self.name}")
        return sorted(self.rpc_endpoints, key=lambda e: e.priority)[0].url


@dataclass
class DestinationChainConfig:
    """Configuration for the Aptos chain where USDC is minted."""
    name: str = "aptos_testnet"
    domain_id: int = CCTP_DOMAINS["aptos"]
    node_url: str = APTOS_TESTNET_NODE_URL
    request_timeout_seconds: float = 30.0

    # USDC as a fungible asset, with the legacy coin store as fallback
    usdc_metadata: str = APTOS_USDC_METADATA
    balance_resource_type: str = APTOS_FUNGIBLE_STORE_RESOURCE
    coin_store_resource_type: str = APTOS_USDC_COIN_STORE_RESOURCE
    token_decimals: int = USDC_DECIMALS

    # Compiled receive script; None uses the bundled bytecode
    receive_script_path: Optional[str] = None

    # Transaction settings
    max_gas_amount: int = 200_000
    expiration_seconds: int = 600
    transaction_timeout_seconds: float = 60.0
    transaction_poll_seconds: float = 1.0


@dataclass
class AttestationConfig:
    """Configuration for attestation polling."""
    base_url: str = CIRCLE_ATTESTATION_API_SANDBOX_URL
    poll_interval_seconds: float = 2.0
    max_retries: int = 150
    max_wait_seconds: float = 300.0
    request_timeout_seconds: float = 10.0

    # Receipt lookup before the first poll
    receipt_retry_attempts: int = 15
    receipt_retry_delay_seconds: float = 2.0


@dataclass
class LoggingConfig:
    """Configuration for transfer logging."""
    level: str = "INFO"
    json_format: bool = False
    step_level: str = "INFO"
    transaction_level: str = "INFO"
    error_level: str = "ERROR"
    mask_addresses: bool = False


@dataclass
class BridgeConfig:
    """
    Master configuration for saffron-bridge.

    Supports loading from environment variables with prefix SAFFRON_BRIDGE_.
    """
    source: SourceChainConfig = field(default_factory=SourceChainConfig)
    destination: DestinationChainConfig = field(default_factory=DestinationChainConfig)
    attestation: AttestationConfig = field(default_factory=AttestationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Amount used when the caller does not pass one
    default_amount: str = "1.0"


@dataclass
class Credentials:
    """Signing material read from the environment."""
    base_private_key: Optional[str] = None
    aptos_private_key: Optional[str] = None
    aptos_recipient: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Credentials":
        return cls(
            base_private_key=_get_secret("BASE_PRIVATE_KEY"),
            aptos_private_key=_get_secret("APTOS_PRIVATE_KEY"),
            aptos_recipient=_get_secret("APTOS_RECIPIENT"),
        )

    def missing(self) -> List[str]:
        """Names of the variables that are not set."""
        names = []
        if not self.base_private_key:
            names.append("BASE_PRIVATE_KEY")
        if not self.aptos_private_key:
            names.append("APTOS_PRIVATE_KEY")
        if not self.aptos_recipient:
            names.append("APTOS_RECIPIENT")
        return names

    def __repr__(self) -> str:
        def mask(value: Optional[str]) -> str:
            return "<set>" if value else "<unset>"

        return (
            f"Credentials(base_private_key={mask(self.base_private_key)}, "
            f"aptos_private_key={mask(self.aptos_private_key)}, "
            f"aptos_recipient={self.aptos_recipient!r})"
        )


def _get_env(key: str, default: Any = None, prefix: str = ENV_PREFIX) -> Any:
    """Get environment variable with prefix."""
    return os.getenv(f"{prefix}{key}", default)


def _get_env_list(key: str, default: List[str] = None, prefix: str = ENV_PREFIX) -> List[str]:
    """Get list environment variable (comma-separated)."""
    value = os.getenv(f"{prefix}{key}")
    if value:
        return [v.strip() for v in value.split(",") if v.strip()]
    return default or []


def _get_env_int(key: str, default: int) -> int:
    value = _get_env(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{key} must be an integer, got {value!r}")


def _get_env_float(key: str, default: float) -> float:
    value = _get_env(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{key} must be a number, got {value!r}")


def _get_env_bool(key: str, default: bool) -> bool:
    value = _get_env(key)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _get_secret(key: str) -> Optional[str]:
    """Prefixed variable wins over the bare name."""
    return os.getenv(f"{ENV_PREFIX}{key}") or os.getenv(key) or None


def _build_source_config() -> SourceChainConfig:
    defaults = SourceChainConfig()

    urls = _get_env_list("SOURCE_RPC_URLS") or _get_env_list("SOURCE_RPC_URL")
    if urls:
        endpoints = [
            RPCEndpointConfig(url=url, priority=i) for i, url in enumerate(urls)
        ]
    else:
        endpoints = defaults.rpc_endpoints

    return SourceChainConfig(
        name=_get_env("SOURCE_CHAIN", defaults.name),
        chain_id=_get_env_int("SOURCE_CHAIN_ID", defaults.chain_id),
        domain_id=_get_env_int("SOURCE_DOMAIN_ID", defaults.domain_id),
        rpc_endpoints=endpoints,
        validate_chain_id=_get_env_bool("SOURCE_VALIDATE_CHAIN_ID", defaults.validate_chain_id),
        token_messenger=_get_env("TOKEN_MESSENGER", defaults.token_messenger),
        usdc=_get_env("SOURCE_USDC", defaults.usdc),
        approve_unlimited=_get_env_bool("APPROVE_UNLIMITED", defaults.approve_unlimited),
        confirmation_timeout_seconds=_get_env_float(
            "SOURCE_CONFIRMATION_TIMEOUT", defaults.confirmation_timeout_seconds
        ),
        nonce_retry_attempts=_get_env_int("NONCE_RETRY_ATTEMPTS", defaults.nonce_retry_attempts),
        nonce_retry_delay_seconds=_get_env_float(
            "NONCE_RETRY_DELAY", defaults.nonce_retry_delay_seconds
        ),
    )


def _build_destination_config() -> DestinationChainConfig:
    defaults = DestinationChainConfig()
    return DestinationChainConfig(
        name=_get_env("DESTINATION_CHAIN", defaults.name),
        domain_id=_get_env_int("DESTINATION_DOMAIN_ID", defaults.domain_id),
        node_url=_get_env("DESTINATION_RPC_URL", defaults.node_url),
        usdc_metadata=_get_env("APTOS_USDC_METADATA", defaults.usdc_metadata),
        coin_store_resource_type=_get_env(
            "APTOS_USDC_COIN_STORE", defaults.coin_store_resource_type
        ),
        receive_script_path=_get_env("RECEIVE_SCRIPT_PATH", defaults.receive_script_path),
        max_gas_amount=_get_env_int("APTOS_MAX_GAS_AMOUNT", defaults.max_gas_amount),
        transaction_timeout_seconds=_get_env_float(
            "DESTINATION_CONFIRMATION_TIMEOUT", defaults.transaction_timeout_seconds
        ),
    )


def _build_attestation_config() -> AttestationConfig:
    defaults = AttestationConfig()
    return AttestationConfig(
        base_url=_get_env("ATTESTATION_API_URL", defaults.base_url),
        poll_interval_seconds=_get_env_float("POLL_INTERVAL", defaults.poll_interval_seconds),
        max_retries=_get_env_int("MAX_RETRIES", defaults.max_retries),
        max_wait_seconds=_get_env_float("MAX_WAIT_TIME", defaults.max_wait_seconds),
        request_timeout_seconds=_get_env_float(
            "ATTESTATION_REQUEST_TIMEOUT", defaults.request_timeout_seconds
        ),
        receipt_retry_attempts=_get_env_int(
            "RECEIPT_RETRY_ATTEMPTS", defaults.receipt_retry_attempts
        ),
        receipt_retry_delay_seconds=_get_env_float(
            "RECEIPT_RETRY_DELAY", defaults.receipt_retry_delay_seconds
        ),
    )


def build_default_config() -> BridgeConfig:
    """Build configuration from defaults and environment overrides."""
    config = BridgeConfig(
        source=_build_source_config(),
        destination=_build_destination_config(),
        attestation=_build_attestation_config(),
        logging=LoggingConfig(
            level=_get_env("LOG_LEVEL", "INFO"),
            json_format=_get_env_bool("LOG_JSON", False),
            mask_addresses=_get_env_bool("MASK_ADDRESSES", False),
        ),
        default_amount=_get_env("TRANSFER_AMOUNT", "1.0"),
    )
    logger.debug(
        f"Loaded bridge config: {config.source.name} (domain {config.source.domain_id}) -> "
        f"{config.destination.name} (domain {config.destination.domain_id})"
    )
    return config


# Global configuration instance
_global_config: Optional[BridgeConfig] = None


def get_config() -> BridgeConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = build_default_config()
    return _global_config


def set_config(config: Optional[BridgeConfig]) -> None:
    """Set (or with None, reset) the global configuration instance."""
    global _global_config
    _global_config = config


__all__ = [
    "RPCEndpointConfig",
    "SourceChainConfig",
    "DestinationChainConfig",
    "AttestationConfig",
    "LoggingConfig",
    "BridgeConfig",
    "Credentials",
    "build_default_config",
    "get_config",
    "set_config",
]

"""
Logging for transfer steps and the transactions they send.

Each step runs inside ``BridgeLogger.operation_context``, which emits one
completion record with its duration and outcome. Transaction records carry a
JSON payload under ``extra["transaction"]`` for structured handlers.
"""
from __future__ import annotations

import itertools
import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional

from .address import mask_address
from .config import LoggingConfig, get_config

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = (
    '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
    '"name": "%(name)s", "message": "%(message)s"}'
)
QUIET_LOGGERS = ("httpx", "httpcore")


class OperationType(str, Enum):
    """Timed steps of a transfer."""
    APPROVE = "approve"
    DEPOSIT_FOR_BURN = "deposit_for_burn"
    SOURCE_TRANSFER = "source_transfer"
    ATTESTATION_POLL = "attestation_poll"
    DESTINATION_RECEIVE = "destination_receive"


@dataclass
class OperationContext:
    """One timed step. Callers may add to ``metadata`` while it runs."""
    operation_id: str
    operation_type: OperationType
    chain: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration_ms: Optional[float] = None
    success: bool = False
    error: Optional[str] = None
    _started: float = field(default_factory=time.monotonic, repr=False)

    def complete(self, success: bool = True, error: Optional[str] = None) -> None:
        self.duration_ms = (time.monotonic() - self._started) * 1000
        self.success = success
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "operation_type": self.operation_type.value,
            "chain": self.chain,
            "started_at": self.started_at.isoformat(),
            "duration_ms": self.duration_ms,
            "success": self.success,
            "error": self.error,
            "metadata": self.metadata,
        }


class BridgeLogger:
    """Structured logger shared by the sender and the orchestrator."""

    def __init__(
        self,
        name: str = "saffron_bridge",
        config: Optional[LoggingConfig] = None,
    ):
        self._logger = logging.getLogger(name)
        self._config = config or get_config().logging
        self._ids = itertools.count(1)

    def _next_operation_id(self, operation_type: OperationType) -> str:
        return f"{operation_type.value}-{next(self._ids)}"

    @staticmethod
    def _level(name: str) -> int:
        return getattr(logging, name.upper(), logging.INFO)

    def _address(self, address: str) -> str:
        return mask_address(address) if self._config.mask_addresses else address

    @staticmethod
    def format_log_data(data: Dict[str, Any]) -> str:
        """JSON-encode a log payload. Decimals stay exact as strings."""
        def convert(value: Any) -> Any:
            if isinstance(value, Decimal):
                return str(value)
            if isinstance(value, datetime):
                return value.isoformat()
            if isinstance(value, Enum):
                return value.value
            return value

        return json.dumps({key: convert(value) for key, value in data.items()}, default=str)

    @asynccontextmanager
    async def operation_context(
        self,
        operation_type: OperationType,
        chain: str,
        **metadata: Any,
    ) -> AsyncIterator[OperationContext]:
        """
        Time a step and log how it ended. Exceptions propagate unchanged.

        Usage:
            async with bridge_logger.operation_context(OperationType.APPROVE, "base_sepolia") as ctx:
                ctx.metadata["tx_hash"] = tx_hash
        """
        ctx = OperationContext(
            operation_id=self._next_operation_id(operation_type),
            operation_type=operation_type,
            chain=chain,
            metadata=metadata,
        )
        self._logger.debug(f"Starting {operation_type.value} on {chain}")

        try:
            yield ctx
        except Exception as e:
            ctx.complete(success=False, error=str(e))
            raise
        except BaseException:
            # Task cancellation
            ctx.complete(success=False, error="cancelled")
            raise
        else:
            ctx.complete()
        finally:
            level_name = self._config.step_level if ctx.success else self._config.error_level
            self._logger.log(
                self._level(level_name),
                f"Completed {operation_type.value} on {chain} in {ctx.duration_ms:.0f}ms "
                f"(success={ctx.success})",
                extra={"operation": ctx.to_dict()},
            )

    def log_transaction_submitted(
        self,
        tx_hash: str,
        chain: str,
        from_address: str,
        to_address: str,
        nonce: Optional[int] = None,
    ) -> None:
        payload = {
            "tx_hash": tx_hash,
            "chain": chain,
            "from_address": self._address(from_address),
            "to_address": self._address(to_address),
            "nonce": nonce,
            "submitted_at": datetime.now(timezone.utc),
        }
        self._logger.log(
            self._level(self._config.transaction_level),
            f"Transaction submitted: {tx_hash} on {chain}",
            extra={"transaction": self.format_log_data(payload)},
        )

    def log_transaction_confirmed(
        self,
        tx_hash: str,
        chain: str,
        block_number: Optional[int] = None,
    ) -> None:
        where = f" in block {block_number}" if block_number is not None else ""
        self._logger.log(
            self._level(self._config.transaction_level),
            f"Transaction confirmed: {tx_hash} on {chain}{where}",
        )

    def log_transaction_failed(self, tx_hash: str, chain: str, error: str) -> None:
        self._logger.log(
            self._level(self._config.error_level),
            f"Transaction failed: {tx_hash} on {chain} - {error}",
        )


_bridge_logger: Optional[BridgeLogger] = None


def get_bridge_logger(
    name: str = "saffron_bridge",
    config: Optional[LoggingConfig] = None,
) -> BridgeLogger:
    """Process-wide BridgeLogger, created on first use."""
    global _bridge_logger
    if _bridge_logger is None:
        _bridge_logger = BridgeLogger(name, config)
    return _bridge_logger


def setup_logging(
    level: str = "INFO",
    format_string: Optional[str] = None,
    json_format: bool = False,
) -> None:
    """
    Configure root logging for the CLI.

    Args:
        level: Level for the ``saffron_bridge`` loggers
        format_string: Overrides the plain or JSON format
        json_format: One JSON object per line
    """
    numeric_level = getattr(logging, level.upper())
    logging.basicConfig(
        level=numeric_level,
        format=format_string or (JSON_FORMAT if json_format else PLAIN_FORMAT),
    )
    logging.getLogger("saffron_bridge").setLevel(numeric_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = [
    "OperationType",
    "OperationContext",
    "BridgeLogger",
    "get_bridge_logger",
    "setup_logging",
]

#!/usr/bin/env python3
"""Configuration management for the DA Pinner.

This module provides type-safe configuration dataclasses with validation.
Configuration is loaded from environment variables with defaults matching
the Fraxtal mainnet batcher, and can be overridden from the command line.
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any
from urllib.parse import urlparse

from web3 import Web3

from .errors import ConfigurationError

# Get logger for this module
logger = logging.getLogger(__name__)

MAX_BLOCK_HEIGHT = 2**64 - 1

DEFAULT_L1_RPC_URL = "https://ethereum-rpc.publicnode.com"
DEFAULT_IPFS_ENDPOINT = "http://127.0.0.1:5001"
DEFAULT_BATCHER_ADDRESS = "0x6017f75108f251a488B045A7ce2a7C15b179d1f2"
DEFAULT_BATCHER_INBOX = "0xfF000000000000000000000000000000000420fC"
DEFAULT_START_BLOCK = 19135636  # L1 block of the L2 genesis
DEFAULT_LAST_BLOCK_PATH = "./last-block"


def _checksum(address: str, label: str) -> str:
    if not address:
        raise ConfigurationError(f"{label} is required")
    if not Web3.is_address(address):
        raise ConfigurationError(f"Invalid {label.lower()}: {address}")
    return Web3.to_checksum_address(address)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class LedgerConfig:
    """Configuration for the L1 ledger RPC.

    Attributes:
        rpc_url: HTTP(S) RPC endpoint
        request_timeout: Per-call timeout for block fetches in seconds
    """

    rpc_url: str = DEFAULT_L1_RPC_URL
    request_timeout: int = 30

    def __post_init__(self) -> None:
        """Validate ledger configuration."""
        if not self.rpc_url:
            raise ConfigurationError("L1 RPC URL is required (L1_RPC_URL)")

        parsed = urlparse(self.rpc_url)
        if parsed.scheme not in ('http', 'https'):
            raise ConfigurationError(
                f"Invalid RPC URL scheme: {parsed.scheme}. "
                "Expected http or https"
            )

        if self.request_timeout <= 0:
            raise ConfigurationError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ConfigurationError(f"Request timeout too long (max 120s), got {self.request_timeout}")


@dataclass(frozen=True, slots=True)
class ContentStoreConfig:
    """Configuration for the IPFS Kubo RPC endpoint.

    Attributes:
        api_url: Base URL of the Kubo RPC API
        pin_timeout: Timeout for a single pin request in seconds
    """

    api_url: str = DEFAULT_IPFS_ENDPOINT
    pin_timeout: int = 300

    def __post_init__(self) -> None:
        """Validate content store configuration."""
        if not self.api_url:
            raise ConfigurationError("IPFS endpoint is required (IPFS_ENDPOINT)")

        parsed = urlparse(self.api_url)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise ConfigurationError(f"Invalid IPFS endpoint: {self.api_url}")

        if self.pin_timeout <= 0:
            raise ConfigurationError(f"Pin timeout must be positive, got {self.pin_timeout}")

        object.__setattr__(self, 'api_url', self.api_url.rstrip('/'))


@dataclass(frozen=True, slots=True)
class BatcherConfig:
    """Addresses every transaction is checked against.

    Attributes:
        batcher_address: Expected sender of batcher transactions
        inbox_address: Expected recipient of batcher transactions
    """

    batcher_address: str = DEFAULT_BATCHER_ADDRESS
    inbox_address: str = DEFAULT_BATCHER_INBOX

    def __post_init__(self) -> None:
        """Validate and checksum both addresses."""
        # Use object.__setattr__ since dataclass is frozen
        object.__setattr__(
            self, 'batcher_address', _checksum(self.batcher_address, "Batcher address")
        )
        object.__setattr__(
            self, 'inbox_address', _checksum(self.inbox_address, "Batcher inbox address")
        )


@dataclass(frozen=True, slots=True)
class ScanConfig:
    """Configuration for the block scan loop.

    Delays are fixed; retries are unbounded.
    """

    start_block: int = DEFAULT_START_BLOCK
    last_block_path: str = DEFAULT_LAST_BLOCK_PATH
    fetch_retry_delay: float = 60  # after a failed block fetch
    tip_wait_delay: float = 60  # when the block is too close to the chain tip
    tip_safety_margin: int = 1800  # seconds behind wall clock we stay
    pin_retry_delay: float = 10  # after a failed pin request
    encode_retry_delay: float = 300  # after a CID string encoding failure
    checkpoint_every_block: bool = False

    def __post_init__(self) -> None:
        """Validate scan configuration."""
        if not 0 <= self.start_block <= MAX_BLOCK_HEIGHT:
            raise ConfigurationError(f"Start block out of range, got {self.start_block}")

        if not self.last_block_path:
            raise ConfigurationError("Last block path is required (LAST_BLOCK_PATH)")

        for name in ('fetch_retry_delay', 'tip_wait_delay', 'pin_retry_delay', 'encode_retry_delay'):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be non-negative, got {getattr(self, name)}")

        if self.tip_safety_margin < 0:
            raise ConfigurationError(
                f"Tip safety margin must be non-negative, got {self.tip_safety_margin}"
            )


@dataclass(frozen=True, slots=True)
class PinnerConfig:
    """Main configuration for the DA Pinner.

    Attributes:
        ledger: L1 RPC configuration
        content_store: IPFS Kubo configuration
        batcher: Batcher and inbox addresses
        scan: Scan loop configuration
    """

    ledger: LedgerConfig
    content_store: ContentStoreConfig
    batcher: BatcherConfig
    scan: ScanConfig

    @classmethod
    def from_env(cls) -> "PinnerConfig":
        """Load configuration from environment variables.

        Returns:
            PinnerConfig instance with loaded values

        Raises:
            ConfigurationError: If a variable is malformed or invalid
        """
        try:
            request_timeout = int(os.environ.get("REQUEST_TIMEOUT", "30"))
            pin_timeout = int(os.environ.get("PIN_TIMEOUT", "300"))
            start_block = int(os.environ.get("START_BLOCK", str(DEFAULT_START_BLOCK)))
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric environment variable: {e}") from None

        ledger_config = LedgerConfig(
            rpc_url=os.environ.get("L1_RPC_URL", DEFAULT_L1_RPC_URL),
            request_timeout=request_timeout,
        )

        content_store_config = ContentStoreConfig(
            api_url=os.environ.get("IPFS_ENDPOINT", DEFAULT_IPFS_ENDPOINT),
            pin_timeout=pin_timeout,
        )

        batcher_config = BatcherConfig(
            batcher_address=os.environ.get("BATCHER_ADDRESS", DEFAULT_BATCHER_ADDRESS),
            inbox_address=os.environ.get("BATCHER_INBOX", DEFAULT_BATCHER_INBOX),
        )

        scan_config = ScanConfig(
            start_block=start_block,
            last_block_path=os.environ.get("LAST_BLOCK_PATH", DEFAULT_LAST_BLOCK_PATH),
            checkpoint_every_block=_env_bool("CHECKPOINT_EVERY_BLOCK"),
        )

        return cls(
            ledger=ledger_config,
            content_store=content_store_config,
            batcher=batcher_config,
            scan=scan_config,
        )

    def with_overrides(
        self,
        l1_rpc: str | None = None,
        ipfs_endpoint: str | None = None,
        batcher_address: str | None = None,
        batcher_inbox: str | None = None,
        start_block: int | None = None,
        last_block_path: str | None = None,
    ) -> "PinnerConfig":
        """Create a new config with command line values applied.

        Since the config is frozen, a new instance is built. ``None`` means
        the option was not given and the loaded value is kept.
        """
        ledger = self.ledger if l1_rpc is None else replace(self.ledger, rpc_url=l1_rpc)
        content_store = (
            self.content_store if ipfs_endpoint is None
            else replace(self.content_store, api_url=ipfs_endpoint)
        )

        batcher_changes: dict[str, Any] = {}
        if batcher_address is not None:
            batcher_changes['batcher_address'] = batcher_address
        if batcher_inbox is not None:
            batcher_changes['inbox_address'] = batcher_inbox
        batcher = replace(self.batcher, **batcher_changes) if batcher_changes else self.batcher

        scan_changes: dict[str, Any] = {}
        if start_block is not None:
            scan_changes['start_block'] = start_block
        if last_block_path is not None:
            scan_changes['last_block_path'] = last_block_path
        scan = replace(self.scan, **scan_changes) if scan_changes else self.scan

        return PinnerConfig(
            ledger=ledger,
            content_store=content_store,
            batcher=batcher,
            scan=scan,
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("DA Pinner Configuration")
        logger.info("=" * 60)

        logger.info("Ledger:")
        logger.info(f"  RPC URL: {self.ledger.rpc_url}")
        logger.info(f"  Request Timeout: {self.ledger.request_timeout} seconds")

        logger.info("Content Store:")
        logger.info(f"  IPFS Endpoint: {self.content_store.api_url}")
        logger.info(f"  Pin Timeout: {self.content_store.pin_timeout} seconds")

        logger.info("Batcher:")
        logger.info(f"  Batcher: {self.batcher.batcher_address}")
        logger.info(f"  Inbox: {self.batcher.inbox_address}")

        logger.info("Scan Settings:")
        for f in fields(self.scan):
            logger.info(f"  {f.name}: {getattr(self.scan, f.name)}")

        logger.info("=" * 60)

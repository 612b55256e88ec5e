#!/usr/bin/env python3
"""Data models for the DA Pinner.

This module provides immutable data classes for the blocks and transactions
read from the ledger and the content references decoded from them.
"""

from dataclasses import dataclass, field
from typing import Any

from multiformats import CID


@dataclass(frozen=True, slots=True)
class BatcherTransaction:
    """A ledger transaction as seen by the scanner.

    The sender is not carried here; it is recovered from the signed raw
    transaction by the ledger client.

    Attributes:
        tx_hash: Transaction hash (with 0x prefix)
        to: Checksummed recipient address, None for contract creation
        data: Raw payload bytes
        block_number: Height of the containing block
        chain_id: Chain ID the transaction was signed for (None for legacy
            pre-EIP-155 transactions)
        index: Position of the transaction within its block
    """

    tx_hash: str
    to: str | None
    data: bytes
    block_number: int = 0
    chain_id: int | None = None
    index: int = 0

    def __str__(self) -> str:
        """Human-readable string representation."""
        return (
            f"BatcherTransaction(hash={self.tx_hash[:10]}..., "
            f"to={self.to}, "
            f"data_len={len(self.data)})"
        )


@dataclass(frozen=True, slots=True)
class Block:
    """A block fetched from the ledger.

    Attributes:
        number: Block height
        timestamp: Block timestamp (Unix seconds)
        transactions: Transactions in ledger order
    """

    number: int
    timestamp: int
    transactions: tuple[BatcherTransaction, ...] = field(default_factory=tuple)

    def __str__(self) -> str:
        """Human-readable string representation."""
        return (
            f"Block(number={self.number}, "
            f"timestamp={self.timestamp}, "
            f"txs={len(self.transactions)})"
        )


@dataclass(frozen=True, slots=True)
class ContentReference:
    """A content identifier decoded from a batcher transaction payload.

    Attributes:
        cid_string: Multibase base32 rendering of the raw payload bytes
        cid: Structured content identifier
        path: IPFS retrieval path for the content store
    """

    cid_string: str
    cid: CID
    path: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "cid_string": self.cid_string,
            "cid": str(self.cid),
            "path": self.path,
        }

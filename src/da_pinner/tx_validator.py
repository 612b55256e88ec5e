#!/usr/bin/env python3
"""Batcher transaction validation for the DA Pinner.

This module decides whether a ledger transaction was sent by the configured
batcher to the configured inbox, and whether its payload carries the DA
commitment tag.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

from web3 import Web3

from .config import BatcherConfig
from .models import BatcherTransaction

logger = logging.getLogger(__name__)

# First payload byte of a DA commitment that references IPFS content
DA_COMMITMENT_TAG = 0xFC


class SenderRecoverer(Protocol):
    """Anything that can recover a transaction sender from its signature."""

    async def recover_sender(self, tx: BatcherTransaction) -> str: ...


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of validating a single transaction.

    Attributes:
        qualifies: True if the transaction was sent by the batcher to the inbox
        payload: Raw transaction payload (empty when not qualifying)
    """

    qualifies: bool
    payload: bytes = b''


NOT_QUALIFYING = ValidationResult(qualifies=False)


class TransactionValidator:
    """Validates transactions against the batcher and inbox addresses."""

    def __init__(self, batcher: BatcherConfig, sender_recoverer: SenderRecoverer) -> None:
        """
        Initialize the TransactionValidator.

        Args:
            batcher: Expected sender and recipient addresses
            sender_recoverer: Used to recover transaction senders
        """
        self.batcher_address: str = Web3.to_checksum_address(batcher.batcher_address)
        self.inbox_address: str = Web3.to_checksum_address(batcher.inbox_address)
        self.sender_recoverer = sender_recoverer

    async def validate(self, tx: BatcherTransaction) -> ValidationResult:
        """
        Check whether a transaction is a batcher transaction.

        The recipient is checked first so sender recovery only runs for
        transactions addressed to the inbox.

        Args:
            tx: Transaction to validate

        Returns:
            ValidationResult with the payload for qualifying transactions

        Raises:
            SenderRecoveryError: If the sender cannot be recovered
        """
        if not tx.to or Web3.to_checksum_address(tx.to) != self.inbox_address:
            return NOT_QUALIFYING

        sender = await self.sender_recoverer.recover_sender(tx)
        if Web3.to_checksum_address(sender) != self.batcher_address:
            logger.debug(f"Skipping inbox tx {tx.tx_hash} from non-batcher sender {sender}")
            return NOT_QUALIFYING

        return ValidationResult(qualifies=True, payload=tx.data)

    @staticmethod
    def strip_tag(payload: bytes) -> bytes | None:
        """
        Strip the DA commitment tag from a qualifying payload.

        Args:
            payload: Raw payload of a qualifying transaction

        Returns:
            The payload without its tag byte, or None if the tag is wrong
        """
        if not payload:
            logger.warning("Skipping non fraxDA tx with empty payload")
            return None

        if (prefix := payload[0]) != DA_COMMITMENT_TAG:
            logger.warning(f"Skipping non fraxDA tx, prefix 0x{prefix:x}")
            return None

        return payload[1:]

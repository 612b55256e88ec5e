"""
Block scanner for the DA Pinner.

This module contains the scan loop that walks the ledger block by block,
pins the content referenced by batcher transactions, and checkpoints the
height it has reached.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Protocol

from .checkpoint_store import CheckpointStore
from .config import ScanConfig
from .content_decoder import ContentDecoder
from .errors import (
    BlockFetchError,
    CheckpointReadError,
    CheckpointWriteError,
    ContentDecodeError,
    PinError,
    SenderRecoveryError,
)
from .models import Block, BatcherTransaction
from .tx_validator import TransactionValidator

logger = logging.getLogger(__name__)


class BlockSource(Protocol):
    """Anything that can fetch blocks by height."""

    async def get_block(self, height: int) -> Block | None: ...


class Pinner(Protocol):
    """Anything that can pin an IPFS path."""

    async def pin(self, path: str) -> None: ...


class ScanState(Enum):
    """State of the block scanner."""
    FETCHING = "fetching"
    THROTTLING = "throttling"
    PROCESSING_TX = "processing_tx"
    RESTARTING = "restarting"
    TERMINATED = "terminated"


TRANSITIONS: dict[ScanState, frozenset[ScanState]] = {
    ScanState.FETCHING: frozenset({
        ScanState.FETCHING,  # missing block, advance and fetch the next one
        ScanState.THROTTLING,
        ScanState.PROCESSING_TX,
        ScanState.RESTARTING,
        ScanState.TERMINATED,
    }),
    ScanState.THROTTLING: frozenset({ScanState.FETCHING, ScanState.TERMINATED}),
    ScanState.PROCESSING_TX: frozenset({
        ScanState.PROCESSING_TX,
        ScanState.FETCHING,
        ScanState.RESTARTING,
        ScanState.TERMINATED,
    }),
    ScanState.RESTARTING: frozenset({ScanState.FETCHING, ScanState.TERMINATED}),
    ScanState.TERMINATED: frozenset(),
}


class BlockScanner:
    """
    Walks the ledger in order and pins DA commitments found in batcher
    transactions.

    The scanner is a state machine driven by ``step()``. Each step performs
    at most one network call or one sleep. Transient failures send the
    scanner to RESTARTING, which pauses and then re-fetches the same block
    from its first transaction. Fatal failures move it to TERMINATED and
    re-raise.
    """

    METRICS_LOG_INTERVAL = 1000  # blocks

    def __init__(
        self,
        ledger: BlockSource,
        validator: TransactionValidator,
        decoder: ContentDecoder,
        pin_requester: Pinner,
        checkpoint_store: CheckpointStore,
        config: ScanConfig,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the block scanner.

        The starting height is read from the checkpoint store, falling back
        to the configured start block.

        Args:
            ledger: Source of blocks
            validator: Batcher transaction validator
            decoder: DA commitment decoder
            pin_requester: Content store pin client
            checkpoint_store: Persistence for the last processed block
            config: Scan loop configuration
            clock: Returns the current Unix time in seconds
            sleep: Coroutine function used for all pauses
        """
        self.ledger = ledger
        self.validator = validator
        self.decoder = decoder
        self.pin_requester = pin_requester
        self.checkpoint_store = checkpoint_store
        self.config = config
        self._clock = clock
        self._sleep = sleep

        self.state = ScanState.FETCHING
        self.current_height = self._initial_height()

        self._block: Block | None = None
        self._tx_index = 0
        self._backoff: float = 0
        self._stop_requested = False

        self.blocks_scanned = 0
        self.blocks_missing = 0
        self.txs_matched = 0
        self.txs_skipped_tag = 0
        self.pins_succeeded = 0
        self.pins_failed = 0

    def _initial_height(self) -> int:
        try:
            height = self.checkpoint_store.load()
        except CheckpointReadError as e:
            logger.error(
                f"Unable to read last block from file, using start block "
                f"{self.config.start_block}: {e}"
            )
            return self.config.start_block

        logger.info(f"Using stored last block {height} as the first block to process")
        return height

    def _transition(self, new_state: ScanState) -> None:
        if new_state not in TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid scanner transition {self.state.name} -> {new_state.name}")
        if new_state is not self.state:
            logger.debug(f"Scanner state {self.state.name} -> {new_state.name}")
        self.state = new_state

    def _restart(self, delay: float) -> None:
        """Schedule a pause followed by a re-fetch of the current block."""
        self._block = None
        self._tx_index = 0
        self._backoff = delay
        self._transition(ScanState.RESTARTING)

    def _terminate(self) -> None:
        self._block = None
        self._transition(ScanState.TERMINATED)

    def _persist_checkpoint(self, height: int) -> None:
        try:
            self.checkpoint_store.store(height)
        except CheckpointWriteError as e:
            # Scanning continues; the height is lost only if we restart
            logger.error(f"Unable to write current block file: {e}")

    async def step(self) -> ScanState:
        """
        Run one step of the state machine.

        Returns:
            The state after the step

        Raises:
            SenderRecoveryError: If a transaction sender cannot be recovered
            CidParseError: If a DA commitment is not a valid binary CID
        """
        if self._stop_requested and self.state is not ScanState.TERMINATED:
            logger.info(f"Stop requested, halting at block {self.current_height}")
            self._terminate()
            return self.state

        match self.state:
            case ScanState.FETCHING:
                await self._fetch_block()
            case ScanState.THROTTLING:
                await self._sleep(self.config.tip_wait_delay)
                self._transition(ScanState.FETCHING)
            case ScanState.PROCESSING_TX:
                await self._process_next_tx()
            case ScanState.RESTARTING:
                await self._sleep(self._backoff)
                self._backoff = 0
                self._transition(ScanState.FETCHING)
            case ScanState.TERMINATED:
                pass

        return self.state

    async def _fetch_block(self) -> None:
        height = self.current_height
        logger.debug(f"Getting batcher transactions for block {height}")

        try:
            block = await self.ledger.get_block(height)
        except BlockFetchError as e:
            logger.error(
                f"Unable to fetch block {height}, retrying in "
                f"{self.config.fetch_retry_delay}s: {e}"
            )
            self._restart(self.config.fetch_retry_delay)
            return

        if block is None:
            logger.info(f"Block {height} doesn't exist, skipping")
            self.blocks_missing += 1
            self.current_height += 1
            self._transition(ScanState.FETCHING)
            return

        if block.timestamp > self._clock() - self.config.tip_safety_margin:
            logger.info(
                f"Reached block {height} within {self.config.tip_safety_margin}s of the "
                f"current time, waiting {self.config.tip_wait_delay}s"
            )
            self._transition(ScanState.THROTTLING)
            return

        self._block = block
        self._tx_index = 0
        self._transition(ScanState.PROCESSING_TX)

    async def _process_next_tx(self) -> None:
        block = self._block
        if block is None:
            raise RuntimeError("No block loaded while processing transactions")

        if self._tx_index >= len(block.transactions):
            self._finish_block()
            return

        tx = block.transactions[self._tx_index]
        self._tx_index += 1
        await self._process_tx(tx)

    async def _process_tx(self, tx: BatcherTransaction) -> None:
        try:
            result = await self.validator.validate(tx)
        except BlockFetchError as e:
            logger.error(
                f"Unable to fetch transaction data in block {self.current_height}, "
                f"retrying in {self.config.fetch_retry_delay}s: {e}"
            )
            self._restart(self.config.fetch_retry_delay)
            return
        except SenderRecoveryError as e:
            logger.error(f"Unable to recover sender of tx {tx.tx_hash}: {e}")
            self._terminate()
            raise

        if not result.qualifies:
            self._transition(ScanState.PROCESSING_TX)
            return

        self.txs_matched += 1
        cid_bytes = self.validator.strip_tag(result.payload)
        if cid_bytes is None:
            self.txs_skipped_tag += 1
            self._transition(ScanState.PROCESSING_TX)
            return

        try:
            reference = self.decoder.decode(cid_bytes)
        except ContentDecodeError as e:
            if e.recoverable:
                logger.error(
                    f"{e} (tx {tx.tx_hash}), retrying block {self.current_height} in "
                    f"{self.config.encode_retry_delay}s"
                )
                self._restart(self.config.encode_retry_delay)
                return
            logger.error(f"{e} (tx {tx.tx_hash})")
            self._terminate()
            raise

        try:
            await self.pin_requester.pin(reference.path)
        except PinError as e:
            self.pins_failed += 1
            logger.error(
                f"Unable to pin IPFS path, retrying in {self.config.pin_retry_delay}s: "
                f"{e} (cid {reference.cid_string})"
            )
            self._restart(self.config.pin_retry_delay)
            return

        self.pins_succeeded += 1
        logger.info(f"Pinned IPFS data txhash={tx.tx_hash} cid={reference.cid_string}")
        self._persist_checkpoint(self.current_height)
        self._transition(ScanState.PROCESSING_TX)

    def _finish_block(self) -> None:
        self.blocks_scanned += 1
        if self.config.checkpoint_every_block:
            self._persist_checkpoint(self.current_height)

        self._block = None
        self._tx_index = 0
        self.current_height += 1
        self._transition(ScanState.FETCHING)

        if self.blocks_scanned % self.METRICS_LOG_INTERVAL == 0:
            self.log_metrics()

    async def run(self) -> None:
        """
        Run the scan loop until stopped or a fatal error occurs.

        Raises:
            SenderRecoveryError: If a transaction sender cannot be recovered
            CidParseError: If a DA commitment is not a valid binary CID
        """
        logger.info(f"Starting block scan at block {self.current_height}")
        try:
            while self.state is not ScanState.TERMINATED:
                await self.step()
        finally:
            self.log_metrics()
            logger.info(f"Block scanner stopped at block {self.current_height}")

    def stop(self) -> None:
        """Request the scanner to stop at the next step."""
        self._stop_requested = True

    def get_metrics(self) -> dict[str, int]:
        """
        Get current scan metrics.

        Returns:
            Dictionary of metric names to values
        """
        return {
            "current_height": self.current_height,
            "blocks_scanned": self.blocks_scanned,
            "blocks_missing": self.blocks_missing,
            "txs_matched": self.txs_matched,
            "txs_skipped_tag": self.txs_skipped_tag,
            "pins_succeeded": self.pins_succeeded,
            "pins_failed": self.pins_failed,
        }

    def log_metrics(self) -> None:
        """Log current scan metrics."""
        metrics = self.get_metrics()
        logger.info(
            f"BlockScanner Metrics: "
            f"Height={metrics['current_height']}, "
            f"Scanned={metrics['blocks_scanned']}, "
            f"Missing={metrics['blocks_missing']}, "
            f"Matched={metrics['txs_matched']}, "
            f"WrongTag={metrics['txs_skipped_tag']}, "
            f"Pinned={metrics['pins_succeeded']}, "
            f"PinFailures={metrics['pins_failed']}"
        )

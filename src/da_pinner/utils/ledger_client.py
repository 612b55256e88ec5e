"""
Ledger RPC client for block fetching and sender recovery.

Wraps an AsyncWeb3 HTTP connection. Every call is bounded by its own
timeout so a stuck RPC node never blocks the scanner indefinitely.
"""

import asyncio
import logging
from typing import Any

from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import BlockNotFound
from web3.types import BlockData, TxData

from ..errors import BlockFetchError, LedgerConnectionError, SenderRecoveryError
from ..models import BatcherTransaction, Block

logger = logging.getLogger(__name__)


class LedgerClient:
    """
    Utility for reading blocks from the L1 ledger.

    Blocks are fetched with full transaction objects. Senders are recovered
    locally from the signed raw transaction rather than trusted from the
    node's ``from`` field.
    """

    def __init__(self, rpc_url: str, request_timeout: float = 30) -> None:
        """
        Initialize the LedgerClient.

        Args:
            rpc_url: HTTP RPC URL of the ledger node
            request_timeout: Timeout in seconds for each RPC call
        """
        if not rpc_url:
            raise ValueError("RPC URL is required")

        self.rpc_url = rpc_url
        self.request_timeout = request_timeout
        self.chain_id: int | None = None

        self.w3 = AsyncWeb3(AsyncHTTPProvider(
            rpc_url,
            request_kwargs={'timeout': request_timeout}
        ))

    async def connect(self) -> int:
        """
        Check the RPC endpoint and fetch its chain ID.

        Returns:
            Chain ID reported by the node

        Raises:
            LedgerConnectionError: If the endpoint is unreachable
        """
        logger.info(f"Connecting to RPC endpoint {self.rpc_url}")
        try:
            connected = await asyncio.wait_for(self.w3.is_connected(), self.request_timeout)
            if not connected:
                raise LedgerConnectionError(f"Failed to connect to L1 RPC at {self.rpc_url}")
            self.chain_id = await asyncio.wait_for(self.w3.eth.chain_id, self.request_timeout)
        except LedgerConnectionError:
            raise
        except Exception as e:
            raise LedgerConnectionError(
                f"Unable to connect to L1 RPC at {self.rpc_url}: {e}"
            ) from e

        logger.info(f"Connected to L1 RPC (chain ID: {self.chain_id})")
        return self.chain_id

    async def get_block(self, height: int) -> Block | None:
        """
        Fetch a block with its transactions.

        Args:
            height: Block height to fetch

        Returns:
            The block, or None if the node has no block at this height

        Raises:
            BlockFetchError: On timeout or any RPC failure
        """
        try:
            block_data: BlockData = await asyncio.wait_for(
                self.w3.eth.get_block(height, full_transactions=True),
                self.request_timeout
            )
        except BlockNotFound:
            return None
        except asyncio.TimeoutError:
            raise BlockFetchError(height, f"timed out after {self.request_timeout}s") from None
        except Exception as e:
            raise BlockFetchError(height, str(e)) from e

        if block_data is None:
            return None

        return self._to_block(block_data)

    async def recover_sender(self, tx: BatcherTransaction) -> str:
        """
        Recover the checksummed sender address of a transaction.

        The signed raw transaction is fetched by hash and the sender is
        recovered from its signature using the chain ID it was signed for.

        Args:
            tx: Transaction to recover the sender of

        Returns:
            Checksummed sender address

        Raises:
            BlockFetchError: If the raw transaction cannot be fetched
            SenderRecoveryError: If the signature does not yield a sender
        """
        try:
            raw_tx = await asyncio.wait_for(
                self.w3.eth.get_raw_transaction(tx.tx_hash),
                self.request_timeout
            )
        except asyncio.TimeoutError:
            raise BlockFetchError(
                tx.block_number, f"raw tx {tx.tx_hash} timed out after {self.request_timeout}s"
            ) from None
        except Exception as e:
            raise BlockFetchError(tx.block_number, f"raw tx {tx.tx_hash}: {e}") from e

        try:
            sender = Account.recover_transaction(raw_tx)
        except Exception as e:
            raise SenderRecoveryError(
                f"cannot decode from address from tx {tx.tx_hash} (chain ID {tx.chain_id}): {e}"
            ) from e

        return Web3.to_checksum_address(sender)

    def _to_block(self, block_data: BlockData) -> Block:
        transactions = tuple(
            self._to_transaction(tx_data, block_data['number'], index)
            for index, tx_data in enumerate(block_data.get('transactions', []))
        )
        return Block(
            number=block_data['number'],
            timestamp=block_data['timestamp'],
            transactions=transactions,
        )

    @staticmethod
    def _to_transaction(tx_data: TxData | Any, block_number: int, index: int) -> BatcherTransaction:
        to = tx_data.get('to')
        return BatcherTransaction(
            tx_hash=Web3.to_hex(tx_data['hash']),
            to=Web3.to_checksum_address(to) if to else None,
            data=bytes(tx_data.get('input', b'')),
            block_number=block_number,
            chain_id=tx_data.get('chainId'),
            index=tx_data.get('transactionIndex', index),
        )

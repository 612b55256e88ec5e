#!/usr/bin/env python3
"""Tests for LedgerClient class.

The AsyncWeb3 instance is replaced with mocks; sender recovery runs against
real signed transactions.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_account import Account
from web3 import Web3
from web3.exceptions import BlockNotFound
from web3.types import HexBytes

from da_pinner.errors import BlockFetchError, LedgerConnectionError, SenderRecoveryError
from da_pinner.models import BatcherTransaction
from da_pinner.utils.ledger_client import LedgerClient

INBOX = "0xfF000000000000000000000000000000000420fC"
TEST_PRIVATE_KEY = "0x" + "1" * 64


@pytest.fixture
def client():
    """Create a LedgerClient with a mocked AsyncWeb3."""
    ledger = LedgerClient("https://test.rpc.url", request_timeout=5)
    ledger.w3 = MagicMock()
    ledger.w3.eth = MagicMock()
    return ledger


@pytest.fixture
def signed_tx():
    """A signed EIP-1559 transaction to the inbox."""
    return Account.sign_transaction({
        'type': 2,
        'chainId': 1,
        'nonce': 7,
        'maxFeePerGas': 30_000_000_000,
        'maxPriorityFeePerGas': 1_000_000_000,
        'gas': 100_000,
        'to': Web3.to_checksum_address(INBOX),
        'value': 0,
        'data': '0xfc0155',
    }, TEST_PRIVATE_KEY)


def make_block_data(number=100, timestamp=1_700_000_000, transactions=None):
    return {
        'number': number,
        'timestamp': timestamp,
        'transactions': transactions or [],
    }


def make_tx_data(index, to=INBOX, data=b'\xfc\x01'):
    return {
        'hash': HexBytes(bytes([index]) * 32),
        'to': to,
        'input': HexBytes(data),
        'chainId': 1,
        'transactionIndex': index,
    }


class TestLedgerClientInit:
    """Tests for construction."""

    def test_requires_rpc_url(self):
        """Test that an empty RPC URL is rejected."""
        with pytest.raises(ValueError, match="RPC URL is required"):
            LedgerClient("")

    def test_init(self):
        """Test that the client keeps its settings."""
        ledger = LedgerClient("https://test.rpc.url", request_timeout=12)

        assert ledger.rpc_url == "https://test.rpc.url"
        assert ledger.request_timeout == 12
        assert ledger.chain_id is None


class TestConnect:
    """Tests for the startup connection check."""

    @pytest.mark.asyncio
    async def test_connect(self, client):
        """Test that the chain ID is fetched on connect."""
        client.w3.is_connected = AsyncMock(return_value=True)

        async def chain_id():
            return 1

        client.w3.eth.chain_id = chain_id()

        assert await client.connect() == 1
        assert client.chain_id == 1

    @pytest.mark.asyncio
    async def test_connect_not_connected(self, client):
        """Test that an unreachable endpoint is a connection error."""
        client.w3.is_connected = AsyncMock(return_value=False)

        with pytest.raises(LedgerConnectionError, match="Failed to connect"):
            await client.connect()

    @pytest.mark.asyncio
    async def test_connect_raises(self, client):
        """Test that provider errors are wrapped."""
        client.w3.is_connected = AsyncMock(side_effect=OSError("dns failure"))

        with pytest.raises(LedgerConnectionError, match="dns failure"):
            await client.connect()


class TestGetBlock:
    """Tests for block fetching."""

    @pytest.mark.asyncio
    async def test_get_block(self, client):
        """Test that block data is converted in ledger order."""
        block_data = make_block_data(transactions=[
            make_tx_data(0),
            make_tx_data(1, to=None, data=b''),
            make_tx_data(2, to=INBOX.lower()),
        ])
        client.w3.eth.get_block = AsyncMock(return_value=block_data)

        block = await client.get_block(100)

        client.w3.eth.get_block.assert_awaited_once_with(100, full_transactions=True)
        assert block.number == 100
        assert block.timestamp == 1_700_000_000
        assert [tx.index for tx in block.transactions] == [0, 1, 2]
        assert block.transactions[0].tx_hash == "0x" + "00" * 32
        assert block.transactions[0].data == b'\xfc\x01'
        assert block.transactions[0].block_number == 100
        assert block.transactions[0].chain_id == 1
        assert block.transactions[1].to is None
        assert block.transactions[2].to == Web3.to_checksum_address(INBOX)

    @pytest.mark.asyncio
    async def test_get_block_not_found(self, client):
        """Test that a missing block is returned as None."""
        client.w3.eth.get_block = AsyncMock(side_effect=BlockNotFound("not found"))

        assert await client.get_block(100) is None

    @pytest.mark.asyncio
    async def test_get_block_null_response(self, client):
        """Test that a null block is returned as None."""
        client.w3.eth.get_block = AsyncMock(return_value=None)

        assert await client.get_block(100) is None

    @pytest.mark.asyncio
    async def test_get_block_error(self, client):
        """Test that RPC errors become BlockFetchError."""
        client.w3.eth.get_block = AsyncMock(side_effect=ConnectionError("reset by peer"))

        with pytest.raises(BlockFetchError, match="Unable to fetch block 100: reset by peer") as exc_info:
            await client.get_block(100)

        assert exc_info.value.height == 100

    @pytest.mark.asyncio
    async def test_get_block_timeout(self, client):
        """Test that a slow RPC call is abandoned after the timeout."""
        client.request_timeout = 0.01

        async def slow_get_block(*args, **kwargs):
            await asyncio.sleep(1)

        client.w3.eth.get_block = slow_get_block

        with pytest.raises(BlockFetchError, match="timed out"):
            await client.get_block(100)


class TestRecoverSender:
    """Tests for sender recovery."""

    @pytest.mark.asyncio
    async def test_recover_sender(self, client, signed_tx):
        """Test that the signer of the raw transaction is recovered."""
        client.w3.eth.get_raw_transaction = AsyncMock(return_value=HexBytes(signed_tx.raw_transaction))
        tx = BatcherTransaction(
            tx_hash=Web3.to_hex(signed_tx.hash),
            to=INBOX,
            data=b'\xfc\x01\x55',
            block_number=100,
            chain_id=1,
        )

        sender = await client.recover_sender(tx)

        assert sender == Account.from_key(TEST_PRIVATE_KEY).address
        client.w3.eth.get_raw_transaction.assert_awaited_once_with(tx.tx_hash)

    @pytest.mark.asyncio
    async def test_recover_sender_bad_signature(self, client):
        """Test that an undecodable raw transaction is a recovery error."""
        client.w3.eth.get_raw_transaction = AsyncMock(return_value=HexBytes(b'\x02garbage'))
        tx = BatcherTransaction(tx_hash="0x" + "ab" * 32, to=INBOX, data=b'', block_number=100)

        with pytest.raises(SenderRecoveryError, match="cannot decode from address"):
            await client.recover_sender(tx)

    @pytest.mark.asyncio
    async def test_recover_sender_fetch_failure(self, client):
        """Test that failing to fetch the raw transaction is transient."""
        client.w3.eth.get_raw_transaction = AsyncMock(side_effect=ConnectionError("reset"))
        tx = BatcherTransaction(tx_hash="0x" + "ab" * 32, to=INBOX, data=b'', block_number=100)

        with pytest.raises(BlockFetchError) as exc_info:
            await client.recover_sender(tx)

        assert exc_info.value.height == 100

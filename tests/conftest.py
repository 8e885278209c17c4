"""
Pytest fixtures for solconnect tests
"""
import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

from solconnect.core.config import ClientSettings, Commitment, ConnectionConfig, Network
from solconnect.core.keys import KeypairSigner

DEVNET_CONFIG = ConnectionConfig(
    rpc_endpoint="https://api.devnet.solana.com",
    ws_endpoint="wss://api.devnet.solana.com",
    commitment=Commitment.CONFIRMED,
    network=Network.DEVNET,
)

MAINNET_CONFIG = ConnectionConfig(
    rpc_endpoint="https://api.mainnet-beta.solana.com",
    ws_endpoint="wss://api.mainnet-beta.solana.com",
    commitment=Commitment.CONFIRMED,
    network=Network.MAINNET,
)


@pytest.fixture
def signer():
    return KeypairSigner(Keypair())


@pytest.fixture
def fast_settings():
    """Settings with no real waiting"""
    return ClientSettings(
        base_delay=0.0,
        confirm_poll_interval=0.0,
        confirm_timeout=5.0,
        request_timeout=5.0,
        ws_reconnect_base_delay=0.0,
    )


@pytest.fixture
def mock_rpc_client():
    """Mock solana-py AsyncClient that confirms everything it is sent"""
    client = MagicMock()

    blockhash = MagicMock()
    blockhash.value.blockhash = Hash.new_unique()
    blockhash.value.last_valid_block_height = 100_000
    client.get_latest_blockhash = AsyncMock(return_value=blockhash)

    client.send_transaction = AsyncMock(return_value=MagicMock(value=Signature.new_unique()))
    client.request_airdrop = AsyncMock(return_value=MagicMock(value=Signature.new_unique()))

    status = MagicMock(err=None, confirmation_status=TransactionConfirmationStatus.Confirmed)
    client.get_signature_statuses = AsyncMock(return_value=MagicMock(value=[status]))
    client.get_block_height = AsyncMock(return_value=MagicMock(value=99_000))
    client.get_account_info = AsyncMock(return_value=MagicMock(value=None))
    return client


@pytest.fixture
def mock_connection():
    """Connection double whose rpc() is an AsyncMock"""
    connection = MagicMock()
    connection.commitment = Commitment.CONFIRMED
    connection.config = DEVNET_CONFIG
    connection.settings = ClientSettings(slot_time_ms=500)
    connection.rpc = AsyncMock()
    return connection


class FakeWebSocket:
    """In-memory WebSocket that acknowledges subscribe/unsubscribe frames"""

    def __init__(self, first_server_id: int = 100):
        self.sent = []
        self.closed = False
        self._incoming = asyncio.Queue()
        self._next_server_id = first_server_id

    async def send(self, frame):
        message = json.loads(frame)
        self.sent.append(message)
        if message["method"].endswith("Unsubscribe"):
            self._push({"jsonrpc": "2.0", "id": message["id"], "result": True})
        elif message["method"].endswith("Subscribe"):
            server_id = self._next_server_id
            self._next_server_id += 1
            self._push({"jsonrpc": "2.0", "id": message["id"], "result": server_id})

    def notify(self, method, server_id, result):
        self._push({
            "jsonrpc": "2.0",
            "method": method,
            "params": {"result": result, "subscription": server_id},
        })

    def drop(self):
        """Simulate the server closing the connection"""
        self._incoming.put_nowait(None)

    def fail(self, exc):
        """Make the next read raise exc"""
        self._incoming.put_nowait(exc)

    def send_raw(self, text):
        self._incoming.put_nowait(text)

    def _push(self, message):
        self._incoming.put_nowait(json.dumps(message))

    def sent_methods(self):
        return [message["method"] for message in self.sent]

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_websocket():
    return FakeWebSocket()


async def wait_until(condition, timeout: float = 1.0):
    """Yield to the loop until condition() is true"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class RejectingWebSocket(FakeWebSocket):
    """WebSocket that answers every subscribe with a rate-limit error"""

    async def send(self, frame):
        message = json.loads(frame)
        self.sent.append(message)
        self._push({
            "jsonrpc": "2.0",
            "id": message["id"],
            "error": {"code": 429, "message": "Too many requests"},
        })

"""
Client facade.

SolanaClient resolves credentials, opens one Connection and exposes the three
services that share it:

    async with SolanaClient(Credentials(network="devnet")) as client:
        balance = await client.query.get_balance(address)
        signature = await client.transactions.transfer_native(to, 0.1)
        subscription = await client.subscriptions.subscribe("slotChange")
"""

from __future__ import annotations

import threading

from solders.pubkey import Pubkey

from solconnect.core.config import ClientSettings, Credentials, Network, resolve
from solconnect.core.connection import ConnectionManager
from solconnect.core.keys import Signer, decode_key
from solconnect.core.query import QueryService
from solconnect.core.retry import RetryPolicy
from solconnect.core.transactions import TransactionService
from solconnect.monitoring.subscriptions import ConnectFn, SubscriptionManager
from solconnect.utils.logger import get_logger

logger = get_logger(__name__)

NOTICE = "solconnect Solana client - JSON-RPC and WebSocket access to the Solana network"

_announce_lock = threading.Lock()
_announced = False


def announce_once() -> bool:
    """Log the library notice the first time a client is built in this process."""
    global _announced
    with _announce_lock:
        if _announced:
            return False
        _announced = True
    logger.info(f"[Client] {NOTICE}")
    return True


class SolanaClient:
    """One network connection plus the query, transaction and subscription services."""

    def __init__(
        self,
        credentials: Credentials | None = None,
        settings: ClientSettings | None = None,
        *,
        signer: Signer | None = None,
        retry: RetryPolicy | None = None,
        connect: ConnectFn | None = None,
    ):
        """Build a client without touching the network.

        Args:
            credentials: Network, endpoints, commitment and optional private key
            settings: Client tunables (timeouts, retry, slot time)
            signer: Signer to use instead of credentials.private_key
            retry: RetryPolicy for submissions; built from settings when omitted
            connect: WebSocket connect factory, for tests

        Raises:
            ConfigError: Invalid network configuration
            InvalidKeyError: Undecodable private key
        """
        credentials = credentials or Credentials()
        self.settings = settings or ClientSettings()
        self.config = resolve(credentials)

        if signer is None and credentials.has_private_key:
            signer = decode_key(credentials.private_key)

        self._manager = ConnectionManager(signer, self.settings)
        self.connection = self._manager.open(self.config)
        self.query = QueryService(self.connection)
        self.transactions = TransactionService(self.connection, self._manager, retry)
        self.subscriptions = SubscriptionManager(self.config, self.settings, connect=connect)

        announce_once()
        logger.info(
            f"[Client] Ready for {self.config.network.value} at {self.config.rpc_endpoint} "
            f"(commitment={self.config.commitment.value}, signer={'yes' if signer else 'no'})"
        )

    @classmethod
    def from_env(cls, dotenv_path: str | None = None) -> "SolanaClient":
        """Build from SOLANA_* and SOLCONNECT_* environment variables."""
        return cls(Credentials.from_env(dotenv_path), ClientSettings.from_env(dotenv_path))

    @property
    def network(self) -> Network:
        return self.config.network

    @property
    def public_address(self) -> Pubkey | None:
        if not self._manager.has_signing_key:
            return None
        return self._manager.get_signing_key().public_address()

    async def close(self) -> None:
        """Cancel subscriptions and release the connection. Safe to call twice."""
        await self.subscriptions.close()
        await self._manager.close()

    async def __aenter__(self) -> "SolanaClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

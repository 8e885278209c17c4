"""
Connection ownership.

A Connection bundles the HTTP session used for raw JSON-RPC calls, the
solana-py AsyncClient used for transaction submission, and the lazily derived
metadata service. Opening a Connection never touches the network.
"""

from __future__ import annotations

import itertools
import json
from typing import TYPE_CHECKING, Any

import aiohttp
from solana.rpc.async_api import AsyncClient

from solconnect.core.config import ClientSettings, Commitment, ConnectionConfig
from solconnect.core.errors import AuthError, RPCError
from solconnect.core.keys import Signer
from solconnect.utils.logger import get_logger

if TYPE_CHECKING:
    from solconnect.core.metadata import MetadataService

logger = get_logger(__name__)

SIGNING_KEY_REQUIRED = "Private key is required for this operation"


class Connection:
    """Long-lived handle to one RPC/WebSocket endpoint pair."""

    def __init__(self, config: ConnectionConfig, settings: ClientSettings | None = None):
        self.config = config
        self.settings = settings or ClientSettings()
        self._session: aiohttp.ClientSession | None = None
        self._client: AsyncClient | None = None
        self._metadata: MetadataService | None = None
        self._request_ids = itertools.count(1)
        self._closed = False

    @property
    def commitment(self) -> Commitment:
        return self.config.commitment

    @property
    def closed(self) -> bool:
        return self._closed

    def get_session(self) -> aiohttp.ClientSession:
        if self._closed:
            raise RuntimeError("Connection is closed")
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.request_timeout),
            )
        return self._session

    def get_client(self) -> AsyncClient:
        """Get or create the AsyncClient instance."""
        if self._closed:
            raise RuntimeError("Connection is closed")
        if self._client is None:
            self._client = AsyncClient(
                self.config.rpc_endpoint,
                commitment=self.config.commitment.value,
                timeout=self.settings.request_timeout,
            )
        return self._client

    @property
    def metadata(self) -> "MetadataService":
        """Token metadata service, created on first use."""
        if self._metadata is None:
            from solconnect.core.metadata import MetadataService

            self._metadata = MetadataService(self)
        return self._metadata

    async def rpc(self, method: str, params: list[Any] | None = None) -> Any:
        """
        Send one JSON-RPC request and return its result member.

        Raises:
            RPCError: If the node answers with an error payload
            aiohttp.ClientError: On HTTP or transport failures
        """
        body = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params or [],
        }
        session = self.get_session()
        async with session.post(self.config.rpc_endpoint, json=body) as response:
            response.raise_for_status()
            try:
                payload = await response.json(content_type=None)
            except json.JSONDecodeError as e:
                raise RPCError(None, f"Invalid JSON in {method} response") from e

        if not isinstance(payload, dict):
            raise RPCError(None, f"Malformed {method} response")
        if payload.get("error"):
            error = payload["error"]
            if isinstance(error, dict):
                raise RPCError(error.get("code"), error.get("message", "Unknown RPC error"), error.get("data"))
            raise RPCError(None, str(error))
        if "result" not in payload:
            raise RPCError(None, f"Malformed {method} response; missing result")
        return payload["result"]

    async def close(self) -> None:
        """Release the HTTP session and AsyncClient. Safe to call twice."""
        self._closed = True
        if self._client is not None:
            await self._client.close()
            self._client = None
        if self._session is not None:
            await self._session.close()
            self._session = None
        self._metadata = None


class ConnectionManager:
    """Opens connections and owns the optional signing key."""

    def __init__(self, signer: Signer | None = None, settings: ClientSettings | None = None):
        self._signer = signer
        self.settings = settings or ClientSettings()
        self._connections: list[Connection] = []

    def open(self, config: ConnectionConfig) -> Connection:
        connection = Connection(config, self.settings)
        self._connections.append(connection)
        logger.debug(f"[Connection] Opened {config.network.value} connection to {config.rpc_endpoint}")
        return connection

    async def close(self, connection: Connection | None = None) -> None:
        """Close one connection, or every connection when none is given."""
        targets = [connection] if connection is not None else list(self._connections)
        for target in targets:
            await target.close()
            if target in self._connections:
                self._connections.remove(target)

    @property
    def has_signing_key(self) -> bool:
        return self._signer is not None

    def get_signing_key(self) -> Signer:
        if self._signer is None:
            raise AuthError(SIGNING_KEY_REQUIRED)
        return self._signer

"""
Network and credential configuration.

Credentials carry every field (absent values are None) and are validated in
one place, resolve(), which turns them into a ConnectionConfig.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping
from urllib.parse import urlparse

from dotenv import load_dotenv

from solconnect.core.errors import ConfigError


class Network(Enum):
    """Supported clusters."""

    MAINNET = "mainnet-beta"
    TESTNET = "testnet"
    DEVNET = "devnet"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: Any) -> "Network":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        if text == "mainnet":
            return cls.MAINNET
        try:
            return cls(text)
        except ValueError as e:
            raise ConfigError(f"Unknown network: {value!r}") from e


class Commitment(Enum):
    """Commitment levels, ordered processed < confirmed < finalized."""

    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"

    @classmethod
    def parse(cls, value: Any) -> "Commitment":
        if isinstance(value, cls):
            return value
        if value is None or value == "":
            return cls.CONFIRMED
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            raise ConfigError(f"Unknown commitment level: {value!r}") from e

    @property
    def rank(self) -> int:
        return _COMMITMENT_RANK[self]

    def reached_by(self, status: str | None) -> bool:
        """True when a confirmationStatus string satisfies this level."""
        if not status:
            return False
        try:
            return Commitment(status.lower()).rank >= self.rank
        except ValueError:
            return False


_COMMITMENT_RANK = {
    Commitment.PROCESSED: 0,
    Commitment.CONFIRMED: 1,
    Commitment.FINALIZED: 2,
}

RPC_ENDPOINTS: dict[Network, str] = {
    Network.MAINNET: "https://api.mainnet-beta.solana.com",
    Network.TESTNET: "https://api.testnet.solana.com",
    Network.DEVNET: "https://api.devnet.solana.com",
}

WS_ENDPOINTS: dict[Network, str] = {
    Network.MAINNET: "wss://api.mainnet-beta.solana.com",
    Network.TESTNET: "wss://api.testnet.solana.com",
    Network.DEVNET: "wss://api.devnet.solana.com",
}


@dataclass(frozen=True)
class Credentials:
    """Caller-supplied connection settings."""

    network: Network = Network.DEVNET
    custom_rpc_url: str | None = None
    private_key: str | None = field(default=None, repr=False)
    commitment: Commitment = Commitment.CONFIRMED
    ws_url: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "network", Network.parse(self.network))
        object.__setattr__(self, "commitment", Commitment.parse(self.commitment))
        for name in ("custom_rpc_url", "private_key", "ws_url"):
            value = getattr(self, name)
            object.__setattr__(self, name, value.strip() if isinstance(value, str) and value.strip() else None)

    @property
    def has_private_key(self) -> bool:
        return self.private_key is not None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Credentials":
        """Build from a credential record (camelCase or snake_case keys)."""
        def pick(*keys: str) -> Any:
            for key in keys:
                if data.get(key) not in (None, ""):
                    return data[key]
            return None

        return cls(
            network=pick("network") or Network.DEVNET,
            custom_rpc_url=pick("customRpcUrl", "custom_rpc_url"),
            private_key=pick("privateKey", "private_key"),
            commitment=pick("commitment"),
            ws_url=pick("wsUrl", "ws_url"),
        )

    @classmethod
    def from_env(cls, dotenv_path: str | None = None) -> "Credentials":
        """Build from SOLANA_* environment variables (.env is loaded first)."""
        load_dotenv(dotenv_path)
        return cls(
            network=os.getenv("SOLANA_NETWORK") or Network.DEVNET,
            custom_rpc_url=os.getenv("SOLANA_RPC_URL"),
            private_key=os.getenv("SOLANA_PRIVATE_KEY"),
            commitment=os.getenv("SOLANA_COMMITMENT"),
            ws_url=os.getenv("SOLANA_WS_URL"),
        )


@dataclass(frozen=True)
class ConnectionConfig:
    """Resolved endpoints."""

    rpc_endpoint: str
    ws_endpoint: str
    commitment: Commitment
    network: Network

    @property
    def is_production(self) -> bool:
        return self.network is Network.MAINNET


@dataclass
class ClientSettings:
    """Client tunables."""

    slot_time_ms: float = 400.0
    max_attempts: int = 3
    base_delay: float = 1.0
    request_timeout: float = 30.0
    confirm_timeout: float = 60.0
    confirm_poll_interval: float = 0.5
    ws_ping_interval: float = 20.0
    ws_ping_timeout: float = 60.0
    ws_reconnect_base_delay: float = 1.0
    ws_reconnect_max_delay: float = 30.0

    def __post_init__(self):
        if self.slot_time_ms <= 0:
            raise ConfigError("slot_time_ms must be positive")
        if self.max_attempts < 1:
            raise ConfigError("max_attempts must be at least 1")

    @classmethod
    def from_env(cls, dotenv_path: str | None = None) -> "ClientSettings":
        """Build from SOLCONNECT_* environment variables."""
        load_dotenv(dotenv_path)
        overrides: dict[str, Any] = {}
        env_fields = {
            "SOLCONNECT_SLOT_TIME_MS": ("slot_time_ms", float),
            "SOLCONNECT_MAX_ATTEMPTS": ("max_attempts", int),
            "SOLCONNECT_BASE_DELAY": ("base_delay", float),
            "SOLCONNECT_REQUEST_TIMEOUT": ("request_timeout", float),
            "SOLCONNECT_CONFIRM_TIMEOUT": ("confirm_timeout", float),
        }
        for env_name, (attr, cast) in env_fields.items():
            raw = os.getenv(env_name)
            if raw is None or raw == "":
                continue
            try:
                overrides[attr] = cast(raw)
            except ValueError as e:
                raise ConfigError(f"{env_name} must be a number, got {raw!r}") from e
        return cls(**overrides)


def _is_url(value: str, schemes: tuple[str, ...]) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in schemes and bool(parsed.netloc)


def _ws_from_rpc(rpc_url: str) -> str:
    if rpc_url.startswith("https://"):
        return "wss://" + rpc_url[len("https://"):]
    if rpc_url.startswith("http://"):
        return "ws://" + rpc_url[len("http://"):]
    return rpc_url


def resolve(credentials: Credentials) -> ConnectionConfig:
    """Resolve credentials into endpoints. Pure, no I/O.

    Raises:
        ConfigError: On a missing or malformed custom RPC URL or WebSocket URL
    """
    network = credentials.network

    if network is Network.CUSTOM:
        rpc_url = credentials.custom_rpc_url
        if not rpc_url:
            raise ConfigError("Custom RPC URL is required when using custom network")
        if not _is_url(rpc_url, ("http", "https")):
            raise ConfigError(f"Custom RPC URL is not a valid http(s) URL: {rpc_url!r}")
        default_ws = _ws_from_rpc(rpc_url)
    else:
        rpc_url = RPC_ENDPOINTS[network]
        default_ws = WS_ENDPOINTS[network]

    ws_url = credentials.ws_url
    if ws_url and not _is_url(ws_url, ("ws", "wss", "http", "https")):
        raise ConfigError(f"WebSocket URL is not a valid URL: {ws_url!r}")

    return ConnectionConfig(
        rpc_endpoint=rpc_url,
        ws_endpoint=ws_url or default_ws,
        commitment=credentials.commitment,
        network=network,
    )

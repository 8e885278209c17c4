"""Async Solana JSON-RPC and WebSocket client."""

from solconnect.client import SolanaClient, announce_once
from solconnect.core.config import ClientSettings, Commitment, Credentials, Network, resolve
from solconnect.core.errors import (
    AuthError,
    ConfigError,
    DeadlineExceededError,
    InsufficientFundsError,
    InvalidAddressError,
    InvalidInputError,
    InvalidKeyError,
    RateLimitedError,
    SolanaClientError,
    TransactionExpiredError,
    TransientError,
    UnknownError,
    UnsupportedOperationError,
)
from solconnect.operations import execute

__version__ = "0.1.0"

__all__ = [
    "SolanaClient",
    "announce_once",
    "ClientSettings",
    "Commitment",
    "Credentials",
    "Network",
    "resolve",
    "execute",
    "AuthError",
    "ConfigError",
    "DeadlineExceededError",
    "InsufficientFundsError",
    "InvalidAddressError",
    "InvalidInputError",
    "InvalidKeyError",
    "RateLimitedError",
    "SolanaClientError",
    "TransactionExpiredError",
    "TransientError",
    "UnknownError",
    "UnsupportedOperationError",
]

"""
Error taxonomy and classification for Solana RPC failures.

Every raw failure (HTTP error, JSON-RPC error payload, timeout, WebSocket
closure, on-chain transaction error) is mapped onto an ErrorKind here. The
RETRY_BUDGET table below decides how many retries a kind is allowed.
"""

from __future__ import annotations

import asyncio
import re
from enum import Enum
from typing import Any

import aiohttp
import httpx
from websockets.exceptions import ConnectionClosed


class ErrorKind(Enum):
    """Failure categories."""

    CONFIG = "config"
    INVALID_ADDRESS = "invalid_address"
    INVALID_KEY = "invalid_key"
    AUTH = "auth"
    UNSUPPORTED = "unsupported"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    EXPIRED = "expired"
    INVALID_INPUT = "invalid_input"
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    DEADLINE = "deadline"
    UNKNOWN = "unknown"


# None = retry until the policy's max_attempts is reached
RETRY_BUDGET: dict[ErrorKind, int | None] = {
    ErrorKind.EXPIRED: None,
    ErrorKind.RATE_LIMITED: None,
    ErrorKind.TRANSIENT: None,
    ErrorKind.UNKNOWN: 1,
}


class SolanaClientError(Exception):
    """Base class for every error surfaced to callers."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, *, kind: ErrorKind | None = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind

    @property
    def retryable(self) -> bool:
        return retries_allowed(self.kind) != 0


class ConfigError(SolanaClientError):
    kind = ErrorKind.CONFIG


class InvalidAddressError(SolanaClientError):
    kind = ErrorKind.INVALID_ADDRESS

    def __init__(self, value: Any):
        super().__init__(f"Invalid Solana address: {value!r}")
        self.value = value


class InvalidKeyError(SolanaClientError):
    kind = ErrorKind.INVALID_KEY


class AuthError(SolanaClientError):
    kind = ErrorKind.AUTH


class UnsupportedOperationError(SolanaClientError):
    kind = ErrorKind.UNSUPPORTED


class InsufficientFundsError(SolanaClientError):
    kind = ErrorKind.INSUFFICIENT_FUNDS


class TransactionExpiredError(SolanaClientError):
    """Blockhash expired; the transaction must be rebuilt, not resent."""

    kind = ErrorKind.EXPIRED


class InvalidInputError(SolanaClientError):
    kind = ErrorKind.INVALID_INPUT


class RateLimitedError(SolanaClientError):
    kind = ErrorKind.RATE_LIMITED


class TransientError(SolanaClientError):
    kind = ErrorKind.TRANSIENT


class DeadlineExceededError(SolanaClientError):
    kind = ErrorKind.DEADLINE


class UnknownError(SolanaClientError):
    kind = ErrorKind.UNKNOWN


class RPCError(Exception):
    """Raw JSON-RPC error payload returned by a node."""

    def __init__(self, code: int | None, message: str, data: Any = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def __str__(self) -> str:
        if self.code is None:
            return self.message
        return f"RPC error {self.code}: {self.message}"


ERROR_TYPES: dict[ErrorKind, type[SolanaClientError]] = {
    ErrorKind.CONFIG: ConfigError,
    ErrorKind.INVALID_KEY: InvalidKeyError,
    ErrorKind.AUTH: AuthError,
    ErrorKind.UNSUPPORTED: UnsupportedOperationError,
    ErrorKind.INSUFFICIENT_FUNDS: InsufficientFundsError,
    ErrorKind.EXPIRED: TransactionExpiredError,
    ErrorKind.INVALID_INPUT: InvalidInputError,
    ErrorKind.RATE_LIMITED: RateLimitedError,
    ErrorKind.TRANSIENT: TransientError,
    ErrorKind.DEADLINE: DeadlineExceededError,
    ErrorKind.UNKNOWN: UnknownError,
}

RPC_CODE_KINDS: dict[int, ErrorKind] = {
    -32602: ErrorKind.INVALID_INPUT,  # invalid params
    -32600: ErrorKind.INVALID_INPUT,  # invalid request
    -32601: ErrorKind.INVALID_INPUT,  # method not found
    -32004: ErrorKind.TRANSIENT,  # block not available
    -32005: ErrorKind.TRANSIENT,  # node unhealthy / behind
    -32014: ErrorKind.TRANSIENT,  # block status not yet available
    -32016: ErrorKind.TRANSIENT,  # min context slot not reached
    429: ErrorKind.RATE_LIMITED,
}

# Checked in order; first match wins.
MESSAGE_PATTERNS: list[tuple[ErrorKind, re.Pattern[str]]] = [
    (ErrorKind.EXPIRED, re.compile(
        r"blockhash not found|blockhashnotfound|block height exceeded|blockheightexceeded"
        r"|transaction expired",
        re.IGNORECASE,
    )),
    (ErrorKind.INSUFFICIENT_FUNDS, re.compile(
        r"insufficient funds|insufficientfunds|insufficient lamports"
        r"|no record of a prior credit|custom program error: 0x1\b|custom\(1\)",
        re.IGNORECASE,
    )),
    (ErrorKind.RATE_LIMITED, re.compile(
        r"\b429\b|too many requests|rate limit", re.IGNORECASE,
    )),
    (ErrorKind.INVALID_INPUT, re.compile(
        r"invalid param|invalid public key|invalid pubkey|wrong size|invalid base58"
        r"|invalid account data|invalid argument",
        re.IGNORECASE,
    )),
    (ErrorKind.TRANSIENT, re.compile(
        r"timed? ?out|timeout|connection (reset|refused|closed|aborted)|\b50[234]\b"
        r"|service unavailable|bad gateway|node is behind|node is unhealthy|temporarily unavailable",
        re.IGNORECASE,
    )),
]


def _transport_kind(exc: BaseException) -> ErrorKind | None:
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return ErrorKind.TRANSIENT
    if isinstance(exc, aiohttp.ClientResponseError):
        if exc.status == 429:
            return ErrorKind.RATE_LIMITED
        if exc.status >= 500:
            return ErrorKind.TRANSIENT
        return None
    if isinstance(exc, (aiohttp.ClientConnectionError, aiohttp.ServerTimeoutError)):
        return ErrorKind.TRANSIENT
    if isinstance(exc, httpx.HTTPStatusError):
        if exc.response.status_code == 429:
            return ErrorKind.RATE_LIMITED
        if exc.response.status_code >= 500:
            return ErrorKind.TRANSIENT
        return None
    if isinstance(exc, (httpx.TransportError, ConnectionClosed)):
        return ErrorKind.TRANSIENT
    return None


def error_message(exc: BaseException) -> str:
    message = str(exc)
    if not message:
        return exc.__class__.__name__
    return message


def classify(exc: BaseException) -> ErrorKind:
    """Map a raw failure onto an ErrorKind."""
    if isinstance(exc, SolanaClientError):
        return exc.kind

    # solana-py wraps httpx failures in SolanaRpcException
    cause: BaseException | None = exc
    seen: set[int] = set()
    while cause is not None and id(cause) not in seen:
        seen.add(id(cause))
        transport_kind = _transport_kind(cause)
        if transport_kind is not None:
            return transport_kind
        cause = cause.__cause__

    if isinstance(exc, RPCError) and exc.code in RPC_CODE_KINDS:
        return RPC_CODE_KINDS[exc.code]

    message = error_message(exc)
    # Preflight failures (-32002) carry the real cause in the message
    for kind, pattern in MESSAGE_PATTERNS:
        if pattern.search(message):
            return kind

    return ErrorKind.UNKNOWN


def retries_allowed(kind: ErrorKind) -> int | None:
    """Retries permitted for a kind: 0 = terminal, None = bounded by the policy."""
    return RETRY_BUDGET.get(kind, 0)


def to_client_error(exc: BaseException) -> SolanaClientError:
    """Return a typed client error that keeps the original message."""
    if isinstance(exc, SolanaClientError):
        return exc

    kind = classify(exc)
    error_cls = ERROR_TYPES.get(kind, UnknownError)
    error = error_cls(error_message(exc))
    error.__cause__ = exc
    return error

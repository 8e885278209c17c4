"""Unit tests for error classification"""
import asyncio
from unittest.mock import MagicMock

import aiohttp
import pytest
from websockets.exceptions import ConnectionClosedError

from solconnect.core.errors import (
    ErrorKind,
    InsufficientFundsError,
    InvalidAddressError,
    RPCError,
    TransactionExpiredError,
    TransientError,
    UnknownError,
    classify,
    retries_allowed,
    to_client_error,
)


def http_error(status: int) -> aiohttp.ClientResponseError:
    return aiohttp.ClientResponseError(request_info=MagicMock(), history=(), status=status)


@pytest.mark.parametrize("exc, kind", [
    (asyncio.TimeoutError(), ErrorKind.TRANSIENT),
    (ConnectionResetError("reset by peer"), ErrorKind.TRANSIENT),
    (http_error(429), ErrorKind.RATE_LIMITED),
    (http_error(503), ErrorKind.TRANSIENT),
    (RPCError(-32005, "Node is unhealthy"), ErrorKind.TRANSIENT),
    (RPCError(-32602, "Invalid params: wrong size"), ErrorKind.INVALID_INPUT),
    (RPCError(-32002, "Transaction simulation failed: Blockhash not found"), ErrorKind.EXPIRED),
    (RPCError(-32002, "Attempt to debit an account but found no record of a prior credit."),
     ErrorKind.INSUFFICIENT_FUNDS),
    (RuntimeError("Program returned error: custom program error: 0x1"), ErrorKind.INSUFFICIENT_FUNDS),
    (RuntimeError("429 Too Many Requests"), ErrorKind.RATE_LIMITED),
    (RuntimeError("something odd"), ErrorKind.UNKNOWN),
])
def test_classify(exc, kind):
    assert classify(exc) is kind


def test_classify_follows_cause_chain():
    outer = RuntimeError("request failed")
    outer.__cause__ = asyncio.TimeoutError()
    assert classify(outer) is ErrorKind.TRANSIENT


def test_typed_errors_keep_their_kind():
    assert classify(InvalidAddressError("x")) is ErrorKind.INVALID_ADDRESS
    assert classify(TransactionExpiredError("gone")) is ErrorKind.EXPIRED


def test_to_client_error_preserves_message_and_cause():
    raw = RPCError(-32002, "Transaction simulation failed: insufficient lamports")
    error = to_client_error(raw)
    assert isinstance(error, InsufficientFundsError)
    assert str(error) == str(raw)
    assert error.__cause__ is raw


def test_to_client_error_passes_client_errors_through():
    error = TransientError("slow node")
    assert to_client_error(error) is error


def test_unknown_fallback():
    error = to_client_error(ValueError("weird"))
    assert isinstance(error, UnknownError)
    assert str(error) == "weird"


def test_retry_budget():
    assert retries_allowed(ErrorKind.TRANSIENT) is None
    assert retries_allowed(ErrorKind.EXPIRED) is None
    assert retries_allowed(ErrorKind.RATE_LIMITED) is None
    assert retries_allowed(ErrorKind.UNKNOWN) == 1
    assert retries_allowed(ErrorKind.INSUFFICIENT_FUNDS) == 0
    assert retries_allowed(ErrorKind.INVALID_INPUT) == 0
    assert not InsufficientFundsError("no").retryable
    assert TransientError("later").retryable


def test_rpc_error_str():
    assert str(RPCError(-32005, "Node is behind")) == "RPC error -32005: Node is behind"
    assert str(RPCError(None, "plain")) == "plain"


def test_websocket_closure_is_transient():
    assert classify(ConnectionClosedError(None, None)) is ErrorKind.TRANSIENT


def test_rpc_payload_without_transport_cause():
    error = to_client_error(RPCError(-32002, "Transaction simulation failed: insufficient lamports"))
    assert isinstance(error, InsufficientFundsError)

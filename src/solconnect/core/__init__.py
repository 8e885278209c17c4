"""Core blockchain functionality."""

from solconnect.core.errors import ErrorKind, SolanaClientError, classify, to_client_error

__all__ = ["ErrorKind", "SolanaClientError", "classify", "to_client_error"]

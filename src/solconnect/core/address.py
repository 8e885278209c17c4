"""Address parsing - the only way user-supplied address strings become Pubkeys."""

from solders.pubkey import Pubkey

from solconnect.core.errors import InvalidAddressError


def parse_address(value) -> Pubkey:
    """Parse a base58 address string.

    Raises:
        InvalidAddressError: If value is not a 32-byte base58 public key
    """
    if isinstance(value, Pubkey):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidAddressError(value)
    try:
        return Pubkey.from_string(value.strip())
    except ValueError as e:
        raise InvalidAddressError(value) from e


def is_valid_address(value) -> bool:
    try:
        parse_address(value)
    except InvalidAddressError:
        return False
    return True

"""Unit tests for address parsing"""
import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from solconnect.core.address import is_valid_address, parse_address
from solconnect.core.errors import ErrorKind, InvalidAddressError

SYSTEM_PROGRAM = "11111111111111111111111111111111"


def test_valid_address_round_trips():
    address = str(Keypair().pubkey())
    assert str(parse_address(address)) == address


def test_system_program_address():
    assert parse_address(SYSTEM_PROGRAM) == Pubkey.from_string(SYSTEM_PROGRAM)


def test_pubkey_passes_through():
    pubkey = Keypair().pubkey()
    assert parse_address(pubkey) is pubkey


def test_invalid_address_names_the_value():
    with pytest.raises(InvalidAddressError) as exc_info:
        parse_address("invalid")
    assert exc_info.value.value == "invalid"
    assert "invalid" in str(exc_info.value)
    assert exc_info.value.kind is ErrorKind.INVALID_ADDRESS


@pytest.mark.parametrize("value", ["", "   ", None, 42, "0OIl" * 11])
def test_rejects_malformed_input(value):
    with pytest.raises(InvalidAddressError):
        parse_address(value)


def test_is_valid_address():
    assert is_valid_address(SYSTEM_PROGRAM)
    assert not is_valid_address("invalid")

"""
Token metadata reader.

Derives the token-metadata PDA of a mint, fetches it and decodes the fixed
prefix of the account (update authority, mint, name, symbol, uri, creators).
"""

from __future__ import annotations

import base64
import struct
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

import aiohttp
from solders.pubkey import Pubkey

from solconnect.core.pubkeys import TOKEN_METADATA_PROGRAM
from solconnect.utils.logger import get_logger

if TYPE_CHECKING:
    from solconnect.core.connection import Connection

logger = get_logger(__name__)

MAX_ACCOUNTS_PER_CALL = 100


class MetadataDecodeError(ValueError):
    """Raised when a metadata account does not match the expected layout."""


@dataclass
class TokenMetadata:
    """Decoded on-chain metadata for one mint."""
    mint: str
    address: str
    update_authority: str
    name: str
    symbol: str
    uri: str
    seller_fee_basis_points: int
    creators: list[dict[str, Any]] = field(default_factory=list)
    primary_sale_happened: bool = False
    is_mutable: bool = True
    json: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["sellerFeeBasisPoints"] = data.pop("seller_fee_basis_points")
        data["updateAuthority"] = data.pop("update_authority")
        data["primarySaleHappened"] = data.pop("primary_sale_happened")
        data["isMutable"] = data.pop("is_mutable")
        return data


def find_metadata_address(mint: Pubkey) -> Pubkey:
    seeds = [b"metadata", bytes(TOKEN_METADATA_PROGRAM), bytes(mint)]
    address, _ = Pubkey.find_program_address(seeds, TOKEN_METADATA_PROGRAM)
    return address


class _Reader:
    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    def take(self, size: int) -> bytes:
        end = self.offset + size
        if end > len(self.data):
            raise MetadataDecodeError(f"Metadata truncated at offset {self.offset}")
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def u16(self) -> int:
        return struct.unpack("<H", self.take(2))[0]

    def u32(self) -> int:
        return struct.unpack("<I", self.take(4))[0]

    def pubkey(self) -> str:
        return str(Pubkey.from_bytes(self.take(32)))

    def string(self) -> str:
        length = self.u32()
        return self.take(length).decode("utf-8", errors="replace").rstrip("\x00")


def decode_metadata(data: bytes, address: Pubkey | None = None) -> TokenMetadata:
    """Decode a Metadata account (borsh layout, version 1 prefix)."""
    reader = _Reader(data)
    reader.u8()  # account key discriminator
    update_authority = reader.pubkey()
    mint = reader.pubkey()
    name = reader.string()
    symbol = reader.string()
    uri = reader.string()
    seller_fee = reader.u16()

    creators: list[dict[str, Any]] = []
    if reader.u8():
        for _ in range(reader.u32()):
            creators.append({
                "address": reader.pubkey(),
                "verified": bool(reader.u8()),
                "share": reader.u8(),
            })

    primary_sale_happened = bool(reader.u8())
    is_mutable = bool(reader.u8())

    return TokenMetadata(
        mint=mint,
        address=str(address) if address else str(find_metadata_address(Pubkey.from_string(mint))),
        update_authority=update_authority,
        name=name,
        symbol=symbol,
        uri=uri,
        seller_fee_basis_points=seller_fee,
        creators=creators,
        primary_sale_happened=primary_sale_happened,
        is_mutable=is_mutable,
    )


def _account_bytes(account: dict[str, Any] | None) -> bytes | None:
    if not account:
        return None
    data = account.get("data")
    if isinstance(data, list) and data and data[-1] == "base64":
        return base64.b64decode(data[0])
    return None


class MetadataService:
    """Reads token metadata through a Connection."""

    def __init__(self, connection: "Connection"):
        self._connection = connection

    async def get_metadata(self, mint: Pubkey, load_json: bool = False) -> TokenMetadata | None:
        """Fetch metadata for one mint; None when the mint has no metadata account."""
        address = find_metadata_address(mint)
        result = await self._connection.rpc(
            "getAccountInfo",
            [str(address), {"encoding": "base64", "commitment": self._connection.commitment.value}],
        )
        raw = _account_bytes(result.get("value") if result else None)
        if raw is None:
            logger.debug(f"[Metadata] No metadata account for mint {mint}")
            return None
        metadata = decode_metadata(raw, address)
        if load_json:
            metadata.json = await self.load_json(metadata.uri)
        return metadata

    async def get_metadata_many(self, mints: list[Pubkey]) -> list[TokenMetadata]:
        """Fetch metadata for many mints in batches of getMultipleAccounts."""
        found: list[TokenMetadata] = []
        for start in range(0, len(mints), MAX_ACCOUNTS_PER_CALL):
            batch = mints[start:start + MAX_ACCOUNTS_PER_CALL]
            addresses = [find_metadata_address(mint) for mint in batch]
            result = await self._connection.rpc(
                "getMultipleAccounts",
                [
                    [str(address) for address in addresses],
                    {"encoding": "base64", "commitment": self._connection.commitment.value},
                ],
            )
            for address, account in zip(addresses, (result or {}).get("value") or []):
                raw = _account_bytes(account)
                if raw is None:
                    continue
                try:
                    found.append(decode_metadata(raw, address))
                except MetadataDecodeError as e:
                    logger.warning(f"[Metadata] Skipping undecodable metadata {address}: {e}")
        return found

    async def load_json(self, uri: str) -> dict[str, Any] | None:
        """Fetch the off-chain JSON document a metadata uri points to."""
        if not uri or not uri.startswith(("http://", "https://")):
            return None
        session = self._connection.get_session()
        try:
            async with session.get(uri) as response:
                response.raise_for_status()
                document = await response.json(content_type=None)
        except (aiohttp.ClientError, ValueError) as e:
            logger.warning(f"[Metadata] Could not load off-chain JSON from {uri}: {e}")
            return None
        return document if isinstance(document, dict) else None

"""
Typed operations.

Each operation is a frozen dataclass that knows which service call it maps
to. `execute(client, operation)` runs any of them:

    result = await execute(client, GetBalance(address="..."))
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from solconnect.client import SolanaClient


# Account

@dataclass(frozen=True)
class GetBalance:
    address: str
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> dict[str, Any]:
        return await client.query.get_balance(self.address, timeout=self.timeout)


@dataclass(frozen=True)
class GetAccountInfo:
    address: str
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> dict[str, Any] | None:
        return await client.query.get_account_info(self.address, timeout=self.timeout)


@dataclass(frozen=True)
class GetParsedAccountInfo:
    address: str
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> dict[str, Any] | None:
        return await client.query.get_parsed_account_info(self.address, timeout=self.timeout)


@dataclass(frozen=True)
class GetTokenAccounts:
    owner: str
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> list[dict[str, Any]]:
        return await client.query.get_token_accounts(self.owner, timeout=self.timeout)


@dataclass(frozen=True)
class GetTransactionHistory:
    address: str
    limit: int = 10
    before: str | None = None
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> list[dict[str, Any]]:
        return await client.query.get_transaction_history(
            self.address, self.limit, self.before, timeout=self.timeout
        )


@dataclass(frozen=True)
class RequestAirdrop:
    address: str
    amount: float
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> str:
        return await client.transactions.request_airdrop(self.address, self.amount, timeout=self.timeout)


# Transaction

@dataclass(frozen=True)
class TransferNative:
    to: str
    amount: float
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> str:
        return await client.transactions.transfer_native(self.to, self.amount, timeout=self.timeout)


@dataclass(frozen=True)
class GetTransaction:
    signature: str
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> dict[str, Any] | None:
        return await client.query.get_transaction(self.signature, timeout=self.timeout)


@dataclass(frozen=True)
class GetTransactionStatus:
    signature: str
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> dict[str, Any] | None:
        return await client.query.get_transaction_status(self.signature, timeout=self.timeout)


@dataclass(frozen=True)
class GetRecentBlockhash:
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> dict[str, Any]:
        return await client.query.get_recent_blockhash(timeout=self.timeout)


# SPL token

@dataclass(frozen=True)
class GetTokenBalance:
    owner: str
    mint: str
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> dict[str, Any]:
        return await client.query.get_token_balance(self.owner, self.mint, timeout=self.timeout)


@dataclass(frozen=True)
class TransferToken:
    mint: str
    to: str
    amount: float
    decimals: int | None = None
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> str:
        return await client.transactions.transfer_token(
            self.mint, self.to, self.amount, decimals=self.decimals, timeout=self.timeout
        )


@dataclass(frozen=True)
class GetTokenSupply:
    mint: str
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> dict[str, Any]:
        return await client.query.get_token_supply(self.mint, timeout=self.timeout)


@dataclass(frozen=True)
class CreateTokenAccount:
    mint: str
    owner: str | None = None
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> str:
        return await client.transactions.create_associated_account(
            self.mint, self.owner, timeout=self.timeout
        )


@dataclass(frozen=True)
class GetLargestTokenAccounts:
    mint: str
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> list[dict[str, Any]]:
        return await client.query.get_largest_token_accounts(self.mint, timeout=self.timeout)


# NFT

@dataclass(frozen=True)
class GetNftMetadata:
    mint: str
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> dict[str, Any] | None:
        return await client.query.get_nft_metadata(self.mint, timeout=self.timeout)


@dataclass(frozen=True)
class GetNftsByOwner:
    owner: str
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> list[dict[str, Any]]:
        return await client.query.get_nfts_by_owner(self.owner, timeout=self.timeout)


# Stake

@dataclass(frozen=True)
class GetStakeAccounts:
    authority: str
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> dict[str, Any]:
        return await client.query.get_stake_accounts(self.authority, timeout=self.timeout)


@dataclass(frozen=True)
class GetStakeActivation:
    stake_address: str
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> dict[str, Any]:
        return await client.query.get_stake_activation(self.stake_address, timeout=self.timeout)


@dataclass(frozen=True)
class GetValidators:
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> dict[str, Any]:
        return await client.query.get_validators(timeout=self.timeout)


@dataclass(frozen=True)
class GetEpochInfo:
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> dict[str, Any]:
        return await client.query.get_epoch_info(timeout=self.timeout)


# Program

@dataclass(frozen=True)
class GetProgramAccounts:
    program_id: str
    filters: tuple[dict[str, Any], ...] = ()
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> list[dict[str, Any]]:
        return await client.query.get_program_accounts(
            self.program_id, list(self.filters) or None, timeout=self.timeout
        )


# Block

@dataclass(frozen=True)
class GetBlock:
    slot: int
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> dict[str, Any] | None:
        return await client.query.get_block(self.slot, timeout=self.timeout)


@dataclass(frozen=True)
class GetBlockHeight:
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> int:
        return await client.query.get_block_height(timeout=self.timeout)


@dataclass(frozen=True)
class GetSlot:
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> int:
        return await client.query.get_slot(timeout=self.timeout)


@dataclass(frozen=True)
class GetBlockTime:
    slot: int
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> int | None:
        return await client.query.get_block_time(self.slot, timeout=self.timeout)


# Cluster

@dataclass(frozen=True)
class GetClusterNodes:
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> list[dict[str, Any]]:
        return await client.query.get_cluster_nodes(timeout=self.timeout)


@dataclass(frozen=True)
class GetHealth:
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> str:
        return await client.query.get_health(timeout=self.timeout)


@dataclass(frozen=True)
class GetVersion:
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> dict[str, Any]:
        return await client.query.get_version(timeout=self.timeout)


@dataclass(frozen=True)
class GetSupply:
    timeout: float | None = None

    async def run(self, client: "SolanaClient") -> dict[str, Any]:
        return await client.query.get_supply(timeout=self.timeout)


Operation = Union[
    GetBalance,
    GetAccountInfo,
    GetParsedAccountInfo,
    GetTokenAccounts,
    GetTransactionHistory,
    RequestAirdrop,
    TransferNative,
    GetTransaction,
    GetTransactionStatus,
    GetRecentBlockhash,
    GetTokenBalance,
    TransferToken,
    GetTokenSupply,
    CreateTokenAccount,
    GetLargestTokenAccounts,
    GetNftMetadata,
    GetNftsByOwner,
    GetStakeAccounts,
    GetStakeActivation,
    GetValidators,
    GetEpochInfo,
    GetProgramAccounts,
    GetBlock,
    GetBlockHeight,
    GetSlot,
    GetBlockTime,
    GetClusterNodes,
    GetHealth,
    GetVersion,
    GetSupply,
]


async def execute(client: "SolanaClient", operation: Operation) -> Any:
    """Run one operation against a client."""
    return await operation.run(client)

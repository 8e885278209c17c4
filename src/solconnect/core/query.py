"""
Read-only chain queries.

Results are plain JSON-shaped values straight from the node, with a few
derived fields (SOL balances, epoch progress, stake activation). Reads are not
retried; every failure surfaces as a classified SolanaClientError.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any

from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from solconnect.core.address import parse_address
from solconnect.core.connection import Connection
from solconnect.core.errors import InvalidInputError, SolanaClientError, error_message, to_client_error
from solconnect.core.pubkeys import STAKE_AUTHORITY_OFFSET, STAKE_PROGRAM, TOKEN_PROGRAM
from solconnect.core.retry import with_deadline
from solconnect.utils.logger import get_logger
from solconnect.utils.token_math import lamports_to_sol, to_display_amount

logger = get_logger(__name__)

# deactivationEpoch of a stake that was never deactivated (u64::MAX)
EPOCH_NEVER = 2**64 - 1

NFT_SUPPLY = "1"


def _activation_state(delegation: dict[str, Any] | None, epoch: int) -> str:
    if not delegation:
        return "inactive"
    activation = int(delegation["activationEpoch"])
    deactivation = int(delegation["deactivationEpoch"])
    if deactivation != EPOCH_NEVER:
        if activation == deactivation or deactivation < epoch:
            return "inactive"
        if deactivation == epoch:
            return "deactivating"
    if activation >= epoch:
        return "activating"
    return "active"


def stake_activation(account: dict[str, Any], epoch: int) -> dict[str, Any]:
    """Derive activation state from a jsonParsed stake account.

    Warmup and cooldown are treated as whole-epoch steps: a delegation is
    fully activating in its activation epoch and fully active afterwards.
    """
    lamports = int(account.get("lamports", 0))
    parsed = account.get("data", {}).get("parsed", {}) if isinstance(account.get("data"), dict) else {}
    info = parsed.get("info", {})
    rent_reserve = int(info.get("meta", {}).get("rentExemptReserve", 0))
    delegation = (info.get("stake") or {}).get("delegation")

    state = _activation_state(delegation, epoch)
    delegated = int(delegation["stake"]) if delegation else 0
    active = delegated if state in ("active", "deactivating") else 0
    return {
        "state": state,
        "active": active,
        "inactive": max(lamports - rent_reserve - active, 0),
    }


def epoch_summary(epoch_info: dict[str, Any], slot_time_ms: float) -> dict[str, Any]:
    slots_in_epoch = epoch_info["slotsInEpoch"]
    slot_index = epoch_info["slotIndex"]
    slots_remaining = slots_in_epoch - slot_index
    progress = (slot_index / slots_in_epoch) * 100 if slots_in_epoch else 0.0
    return {
        "epoch": epoch_info["epoch"],
        "absoluteSlot": epoch_info.get("absoluteSlot"),
        "blockHeight": epoch_info.get("blockHeight"),
        "slotIndex": slot_index,
        "slotsInEpoch": slots_in_epoch,
        "epochProgress": f"{progress:.2f}%",
        "slotsRemaining": slots_remaining,
        "estimatedTimeRemainingSeconds": round(slots_remaining * slot_time_ms / 1000, 2),
    }


def _validator(entry: dict[str, Any], with_credits: bool) -> dict[str, Any]:
    summary = {
        "votePubkey": entry.get("votePubkey"),
        "nodePubkey": entry.get("nodePubkey"),
        "activatedStake": entry.get("activatedStake"),
        "commission": entry.get("commission"),
        "lastVote": entry.get("lastVote"),
    }
    if with_credits:
        summary["epochCredits"] = entry.get("epochCredits")
    return summary


class QueryService:
    """Read operations against one Connection."""

    def __init__(self, connection: Connection):
        self._connection = connection

    @property
    def _commitment(self) -> str:
        return self._connection.commitment.value

    async def _rpc(self, method: str, params: list[Any] | None = None, timeout: float | None = None) -> Any:
        try:
            return await with_deadline(self._connection.rpc(method, params), timeout, method)
        except asyncio.CancelledError:
            raise
        except SolanaClientError:
            raise
        except Exception as e:
            logger.debug(f"[Query] {method} failed: {e}")
            raise to_client_error(e) from e

    async def get_balance(self, address: str, timeout: float | None = None) -> dict[str, Any]:
        """Native balance of an address.

        Returns:
            {"lamports": int, "sol": Decimal}
        """
        pubkey = parse_address(address)
        result = await self._rpc("getBalance", [str(pubkey), {"commitment": self._commitment}], timeout)
        lamports = int(result["value"])
        return {"lamports": lamports, "sol": lamports_to_sol(lamports)}

    async def get_account_info(self, address: str, timeout: float | None = None) -> dict[str, Any] | None:
        pubkey = parse_address(address)
        result = await self._rpc(
            "getAccountInfo",
            [str(pubkey), {"encoding": "base64", "commitment": self._commitment}],
            timeout,
        )
        return result["value"]

    async def get_parsed_account_info(self, address: str, timeout: float | None = None) -> dict[str, Any] | None:
        pubkey = parse_address(address)
        result = await self._rpc(
            "getAccountInfo",
            [str(pubkey), {"encoding": "jsonParsed", "commitment": self._commitment}],
            timeout,
        )
        return result["value"]

    async def get_token_accounts(self, owner: str, timeout: float | None = None) -> list[dict[str, Any]]:
        """SPL token accounts held by owner, one record per account."""
        pubkey = parse_address(owner)
        result = await self._rpc(
            "getTokenAccountsByOwner",
            [
                str(pubkey),
                {"programId": str(TOKEN_PROGRAM)},
                {"encoding": "jsonParsed", "commitment": self._commitment},
            ],
            timeout,
        )
        return [
            {"address": item["pubkey"], **item["account"]["data"]}
            for item in result["value"]
        ]

    async def get_token_balance(self, owner: str, mint: str, timeout: float | None = None) -> dict[str, Any]:
        """Balance of owner's associated token account for mint.

        A missing associated account reads as a zero balance.
        """
        owner_key = parse_address(owner)
        mint_key = parse_address(mint)
        return await with_deadline(self._token_balance(owner_key, mint_key), timeout, "get_token_balance")

    async def _token_balance(self, owner_key: Pubkey, mint_key: Pubkey) -> dict[str, Any]:
        ata = get_associated_token_address(owner_key, mint_key)

        account = await self.get_parsed_account_info(str(ata))
        if account is None:
            supply = await self.get_token_supply(str(mint_key))
            return {
                "address": str(ata),
                "amount": "0",
                "decimals": supply["decimals"],
                "uiAmount": Decimal(0),
            }

        token_amount = account["data"]["parsed"]["info"]["tokenAmount"]
        decimals = int(token_amount["decimals"])
        return {
            "address": str(ata),
            "amount": token_amount["amount"],
            "decimals": decimals,
            "uiAmount": to_display_amount(int(token_amount["amount"]), decimals),
        }

    async def get_token_supply(self, mint: str, timeout: float | None = None) -> dict[str, Any]:
        pubkey = parse_address(mint)
        result = await self._rpc("getTokenSupply", [str(pubkey), {"commitment": self._commitment}], timeout)
        return result["value"]

    async def get_largest_token_accounts(self, mint: str, timeout: float | None = None) -> list[dict[str, Any]]:
        pubkey = parse_address(mint)
        result = await self._rpc(
            "getTokenLargestAccounts", [str(pubkey), {"commitment": self._commitment}], timeout
        )
        return result["value"]

    async def get_transaction_history(
        self,
        address: str,
        limit: int = 10,
        before: str | None = None,
        timeout: float | None = None,
    ) -> list[dict[str, Any]]:
        """Parsed transactions touching address, newest first.

        Args:
            address: Account address
            limit: Maximum number of signatures to look up
            before: Only return transactions older than this signature
            timeout: Deadline in seconds for the whole lookup

        Returns:
            Parsed transactions; signatures the node cannot return are skipped
        """
        pubkey = parse_address(address)
        return await with_deadline(
            self._transaction_history(pubkey, limit, before), timeout, "get_transaction_history"
        )

    async def _transaction_history(self, pubkey: Pubkey, limit: int, before: str | None) -> list[dict[str, Any]]:
        options: dict[str, Any] = {"limit": limit, "commitment": self._commitment}
        if before:
            options["before"] = before
        signatures = await self._rpc("getSignaturesForAddress", [str(pubkey), options])

        transactions = []
        for entry in signatures:
            tx = await self.get_transaction(entry["signature"])
            if tx is not None:
                transactions.append(tx)
            else:
                logger.debug(f"[Query] Transaction {entry['signature'][:20]}... not available, skipped")
        return transactions

    async def get_transaction(self, signature: str, timeout: float | None = None) -> dict[str, Any] | None:
        return await self._rpc(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "maxSupportedTransactionVersion": 0,
                    "commitment": self._commitment,
                },
            ],
            timeout,
        )

    async def get_transaction_status(self, signature: str, timeout: float | None = None) -> dict[str, Any] | None:
        result = await self._rpc(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": True}],
            timeout,
        )
        return result["value"][0]

    async def get_recent_blockhash(self, timeout: float | None = None) -> dict[str, Any]:
        result = await self._rpc("getLatestBlockhash", [{"commitment": self._commitment}], timeout)
        value = result["value"]
        return {"blockhash": value["blockhash"], "lastValidBlockHeight": value["lastValidBlockHeight"]}

    async def get_program_accounts(
        self,
        program_id: str,
        filters: list[dict[str, Any]] | None = None,
        timeout: float | None = None,
    ) -> list[dict[str, Any]]:
        pubkey = parse_address(program_id)
        options: dict[str, Any] = {"encoding": "jsonParsed", "commitment": self._commitment}
        if filters:
            options["filters"] = filters
        return await self._rpc("getProgramAccounts", [str(pubkey), options], timeout)

    async def get_stake_accounts(self, authority: str, timeout: float | None = None) -> dict[str, Any]:
        """Stake accounts whose stake authority is the given address."""
        pubkey = parse_address(authority)
        accounts = await self.get_program_accounts(
            str(STAKE_PROGRAM),
            [{"memcmp": {"offset": STAKE_AUTHORITY_OFFSET, "bytes": str(pubkey)}}],
            timeout,
        )
        stake_accounts = [
            {
                "address": item["pubkey"],
                "lamports": item["account"]["lamports"],
                "balance": lamports_to_sol(item["account"]["lamports"]),
                "data": item["account"]["data"],
            }
            for item in accounts
        ]
        return {"stakeAccounts": stake_accounts, "count": len(stake_accounts)}

    async def get_stake_activation(self, stake_address: str, timeout: float | None = None) -> dict[str, Any]:
        pubkey = parse_address(stake_address)
        return await with_deadline(self._stake_activation(pubkey), timeout, "get_stake_activation")

    async def _stake_activation(self, pubkey: Pubkey) -> dict[str, Any]:
        account = await self.get_parsed_account_info(str(pubkey))
        if account is None:
            raise InvalidInputError(f"Stake account {pubkey} not found")
        epoch_info = await self._rpc("getEpochInfo", [{"commitment": self._commitment}])
        return {"stakeAddress": str(pubkey), **stake_activation(account, epoch_info["epoch"])}

    async def get_validators(self, timeout: float | None = None) -> dict[str, Any]:
        accounts = await self._rpc("getVoteAccounts", [{"commitment": self._commitment}], timeout)
        current = accounts.get("current", [])
        delinquent = accounts.get("delinquent", [])
        return {
            "current": [_validator(entry, with_credits=True) for entry in current],
            "delinquent": [_validator(entry, with_credits=False) for entry in delinquent],
            "currentCount": len(current),
            "delinquentCount": len(delinquent),
        }

    async def get_epoch_info(self, timeout: float | None = None) -> dict[str, Any]:
        epoch_info = await self._rpc("getEpochInfo", [{"commitment": self._commitment}], timeout)
        return epoch_summary(epoch_info, self._connection.settings.slot_time_ms)

    async def get_block(self, slot: int, timeout: float | None = None) -> dict[str, Any] | None:
        return await self._rpc(
            "getBlock",
            [slot, {"encoding": "json", "maxSupportedTransactionVersion": 0}],
            timeout,
        )

    async def get_block_height(self, timeout: float | None = None) -> int:
        return await self._rpc("getBlockHeight", [{"commitment": self._commitment}], timeout)

    async def get_slot(self, timeout: float | None = None) -> int:
        return await self._rpc("getSlot", [{"commitment": self._commitment}], timeout)

    async def get_block_time(self, slot: int, timeout: float | None = None) -> int | None:
        return await self._rpc("getBlockTime", [slot], timeout)

    async def get_cluster_nodes(self, timeout: float | None = None) -> list[dict[str, Any]]:
        return await self._rpc("getClusterNodes", None, timeout)

    async def get_health(self, timeout: float | None = None) -> str:
        """Probe the node with getSlot: "ok" or the failure message."""
        try:
            await with_deadline(
                self._connection.rpc("getSlot", [{"commitment": self._commitment}]), timeout, "getSlot"
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[Query] Health check failed: {e}")
            return error_message(e)
        return "ok"

    async def get_version(self, timeout: float | None = None) -> dict[str, Any]:
        return await self._rpc("getVersion", None, timeout)

    async def get_supply(self, timeout: float | None = None) -> dict[str, Any]:
        result = await self._rpc("getSupply", [{"commitment": self._commitment}], timeout)
        return result["value"]

    async def get_nft_metadata(self, mint: str, timeout: float | None = None) -> dict[str, Any] | None:
        """On-chain metadata of a mint plus its off-chain JSON; None if it has none."""
        mint_key = parse_address(mint)
        try:
            metadata = await with_deadline(
                self._connection.metadata.get_metadata(mint_key, load_json=True), timeout, "get_nft_metadata"
            )
        except asyncio.CancelledError:
            raise
        except SolanaClientError:
            raise
        except Exception as e:
            raise to_client_error(e) from e
        return metadata.to_dict() if metadata else None

    async def get_nfts_by_owner(self, owner: str, timeout: float | None = None) -> list[dict[str, Any]]:
        """Metadata of every NFT-shaped token (amount 1, 0 decimals) owned by owner."""
        pubkey = parse_address(owner)
        return await with_deadline(self._nfts_by_owner(pubkey), timeout, "get_nfts_by_owner")

    async def _nfts_by_owner(self, pubkey: Pubkey) -> list[dict[str, Any]]:
        accounts = await self.get_token_accounts(str(pubkey))
        mints = []
        for account in accounts:
            info = account.get("parsed", {}).get("info", {})
            token_amount = info.get("tokenAmount", {})
            if token_amount.get("amount") == NFT_SUPPLY and int(token_amount.get("decimals", -1)) == 0:
                mints.append(parse_address(info["mint"]))
        if not mints:
            return []
        try:
            found = await self._connection.metadata.get_metadata_many(mints)
        except asyncio.CancelledError:
            raise
        except SolanaClientError:
            raise
        except Exception as e:
            raise to_client_error(e) from e
        return [metadata.to_dict() for metadata in found]

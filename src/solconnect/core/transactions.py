"""
State-changing operations: native and token transfers, associated token
account creation and devnet/testnet airdrops.

Every submission runs under RetryPolicy. The instruction list is rebuilt,
re-signed and sent with a fresh blockhash on each attempt, then polled until
it reaches the connection's commitment level or its blockhash expires.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from solana.rpc.types import TxOpts
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams as SystemTransferParams
from solders.system_program import transfer as system_transfer
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus
from spl.token.instructions import (
    TransferParams as TokenTransferParams,
    create_associated_token_account,
    get_associated_token_address,
)
from spl.token.instructions import transfer as token_transfer

from solconnect.core.address import parse_address
from solconnect.core.connection import Connection, ConnectionManager
from solconnect.core.errors import (
    DeadlineExceededError,
    InvalidInputError,
    TransactionExpiredError,
    UnsupportedOperationError,
    to_client_error,
)
from solconnect.core.keys import Signer
from solconnect.core.pubkeys import TOKEN_PROGRAM
from solconnect.core.retry import RetryPolicy, with_deadline
from solconnect.utils.logger import get_logger, log_submission_event
from solconnect.utils.token_math import NATIVE_DECIMALS, to_base_units

logger = get_logger(__name__)

# Mint layout: COption<Pubkey> mint_authority (36) + u64 supply (8), then decimals
MINT_DECIMALS_OFFSET = 44

AIRDROP_UNAVAILABLE = "Airdrop is not available on mainnet"

InstructionBuilder = Callable[[], Awaitable[list[Instruction]]]

_CONFIRMATION_LEVELS = (
    (TransactionConfirmationStatus.Processed, "processed"),
    (TransactionConfirmationStatus.Confirmed, "confirmed"),
    (TransactionConfirmationStatus.Finalized, "finalized"),
)


def _status_name(status) -> str | None:
    """Confirmation level of a solders TransactionStatus as a commitment name."""
    level = status.confirmation_status
    if level is None:
        # Rooted statuses from older nodes report neither level nor count
        return "finalized" if status.confirmations is None else None
    for known, name in _CONFIRMATION_LEVELS:
        if level == known:
            return name
    return None


def _positive_base_units(amount, decimals: int) -> int:
    base_units = to_base_units(amount, decimals)
    if base_units <= 0:
        raise InvalidInputError(f"Amount must be greater than zero, got {amount!r}")
    return base_units


class TransactionService:
    """Builds, signs, submits and confirms transactions for one client."""

    def __init__(
        self,
        connection: Connection,
        keys: ConnectionManager,
        retry: RetryPolicy | None = None,
    ):
        self._connection = connection
        self._keys = keys
        settings = connection.settings
        self._retry = retry or RetryPolicy(
            max_attempts=settings.max_attempts,
            base_delay=settings.base_delay,
        )

    @property
    def _network(self) -> str:
        return self._connection.config.network.value

    @property
    def _commitment(self) -> str:
        return self._connection.commitment.value

    async def transfer_native(self, to: str, amount, timeout: float | None = None) -> str:
        """Send SOL from the signing key to an address.

        Args:
            to: Recipient address
            amount: Amount in SOL
            timeout: Overall deadline in seconds, including retries

        Returns:
            Transaction signature
        """
        signer = self._keys.get_signing_key()
        recipient = parse_address(to)
        lamports = _positive_base_units(amount, NATIVE_DECIMALS)

        async def build() -> list[Instruction]:
            return [
                system_transfer(
                    SystemTransferParams(
                        from_pubkey=signer.public_address(),
                        to_pubkey=recipient,
                        lamports=lamports,
                    )
                )
            ]

        logger.info(f"[Transfer] Sending {lamports} lamports to {recipient}")
        return await self._submit("transfer_native", build, signer, timeout)

    async def transfer_token(
        self,
        mint: str,
        to: str,
        amount,
        decimals: int | None = None,
        timeout: float | None = None,
    ) -> str:
        """Send SPL tokens between associated token accounts.

        When the recipient has no associated token account the create
        instruction is prepended to the same transaction.

        Args:
            mint: Token mint address
            to: Recipient wallet address
            amount: Display amount
            decimals: Mint decimals; read from the mint account when omitted
            timeout: Overall deadline in seconds, including retries

        Returns:
            Transaction signature
        """
        signer = self._keys.get_signing_key()
        mint_key = parse_address(mint)
        recipient = parse_address(to)
        if decimals is None:
            decimals = await self._mint_decimals(mint_key)
        base_units = _positive_base_units(amount, decimals)

        owner = signer.public_address()
        source = get_associated_token_address(owner, mint_key)
        destination = get_associated_token_address(recipient, mint_key)

        async def build() -> list[Instruction]:
            instructions = []
            if not await self._account_exists(destination):
                logger.info(f"[Transfer] Recipient ATA {destination} missing, creating it in the same transaction")
                instructions.append(create_associated_token_account(owner, recipient, mint_key))
            instructions.append(
                token_transfer(
                    TokenTransferParams(
                        program_id=TOKEN_PROGRAM,
                        source=source,
                        dest=destination,
                        owner=owner,
                        amount=base_units,
                        signers=[],
                    )
                )
            )
            return instructions

        logger.info(f"[Transfer] Sending {base_units} base units of {mint_key} to {recipient}")
        return await self._submit("transfer_token", build, signer, timeout)

    async def create_associated_account(
        self,
        mint: str,
        owner: str | None = None,
        timeout: float | None = None,
    ) -> str:
        """Create the associated token account of owner (default: the signer) for mint."""
        signer = self._keys.get_signing_key()
        mint_key = parse_address(mint)
        owner_key = parse_address(owner) if owner is not None else signer.public_address()

        async def build() -> list[Instruction]:
            return [create_associated_token_account(signer.public_address(), owner_key, mint_key)]

        return await self._submit("create_associated_account", build, signer, timeout)

    async def request_airdrop(self, address: str, amount, timeout: float | None = None) -> str:
        """Request test SOL on devnet/testnet and wait for it to confirm."""
        if self._connection.config.is_production:
            raise UnsupportedOperationError(AIRDROP_UNAVAILABLE)
        recipient = parse_address(address)
        lamports = _positive_base_units(amount, NATIVE_DECIMALS)

        async def attempt() -> str:
            client = self._connection.get_client()
            blockhash = await client.get_latest_blockhash(self._commitment)
            response = await client.request_airdrop(recipient, lamports, self._commitment)
            signature = str(response.value)
            log_submission_event("airdrop_requested", signature, self._network, {"lamports": lamports})
            await self.confirm(signature, blockhash.value.last_valid_block_height)
            return signature

        return await self._run("request_airdrop", attempt, timeout)

    async def _submit(
        self,
        label: str,
        build: InstructionBuilder,
        signer: Signer,
        timeout: float | None,
    ) -> str:
        async def attempt() -> str:
            instructions = await build()
            return await self._send_and_confirm(label, instructions, signer)

        return await self._run(label, attempt, timeout)

    async def _run(self, label: str, attempt: Callable[[], Awaitable[str]], timeout: float | None) -> str:
        return await with_deadline(self._retry.execute(attempt, label=label), timeout, label)

    async def _send_and_confirm(self, label: str, instructions: list[Instruction], signer: Signer) -> str:
        client = self._connection.get_client()
        blockhash = await client.get_latest_blockhash(self._commitment)
        recent = blockhash.value.blockhash

        message = Message.new_with_blockhash(instructions, signer.public_address(), recent)
        transaction = Transaction.populate(message, [signer.sign(bytes(message))])

        tx_opts = TxOpts(skip_confirmation=True, preflight_commitment=self._commitment)
        response = await client.send_transaction(transaction, tx_opts)
        signature = str(response.value)
        logger.info(f"[Transaction] {label} sent: {signature}")
        log_submission_event(
            "submitted",
            signature,
            self._network,
            {"operation": label, "instructions": len(instructions)},
        )

        try:
            await self.confirm(signature, blockhash.value.last_valid_block_height)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log_submission_event("failed", signature, self._network, {"operation": label, "error": str(e)})
            raise

        log_submission_event("confirmed", signature, self._network, {"operation": label})
        return signature

    async def confirm(self, signature: str, last_valid_block_height: int) -> None:
        """
        Poll signature status until it reaches the connection's commitment.

        Raises:
            TransactionExpiredError: Block height passed last_valid_block_height
            DeadlineExceededError: Not confirmed within settings.confirm_timeout
            SolanaClientError: The transaction failed on chain
        """
        client = self._connection.get_client()
        settings = self._connection.settings
        wanted = self._connection.commitment
        sig = Signature.from_string(signature)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + settings.confirm_timeout

        while True:
            response = await client.get_signature_statuses([sig])
            status = response.value[0]

            if status is not None:
                if status.err is not None:
                    logger.error(f"[Transaction] {signature[:20]}... failed on chain: {status.err}")
                    raise to_client_error(RuntimeError(f"Transaction {signature} failed: {status.err}"))
                if wanted.reached_by(_status_name(status)):
                    logger.info(f"[Transaction] {signature[:20]}... reached {wanted.value}")
                    return
            else:
                height = await client.get_block_height(self._commitment)
                if height.value > last_valid_block_height:
                    raise TransactionExpiredError(
                        f"Transaction {signature} expired: block height exceeded "
                        f"({height.value} > {last_valid_block_height})"
                    )

            if loop.time() >= deadline:
                raise DeadlineExceededError(
                    f"Transaction {signature} not confirmed within {settings.confirm_timeout}s"
                )
            await asyncio.sleep(settings.confirm_poll_interval)

    async def _account_exists(self, address: Pubkey) -> bool:
        client = self._connection.get_client()
        response = await client.get_account_info(address, commitment=self._commitment)
        return response.value is not None

    async def _mint_decimals(self, mint: Pubkey) -> int:
        client = self._connection.get_client()
        try:
            response = await client.get_account_info(mint, commitment=self._commitment)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise to_client_error(e) from e
        if response.value is None:
            raise InvalidInputError(f"Mint account {mint} not found")
        data = bytes(response.value.data)
        if len(data) <= MINT_DECIMALS_OFFSET:
            raise InvalidInputError(f"Account {mint} is not a token mint")
        return data[MINT_DECIMALS_OFFSET]

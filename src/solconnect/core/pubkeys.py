"""
On-chain program addresses consumed verbatim when building transactions.
"""

from typing import Final

from solders.pubkey import Pubkey
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID

SYSTEM_PROGRAM: Final[Pubkey] = Pubkey.from_string("11111111111111111111111111111111")
TOKEN_PROGRAM: Final[Pubkey] = TOKEN_PROGRAM_ID
ASSOCIATED_TOKEN_PROGRAM: Final[Pubkey] = ASSOCIATED_TOKEN_PROGRAM_ID
STAKE_PROGRAM: Final[Pubkey] = Pubkey.from_string(
    "Stake11111111111111111111111111111111111111"
)
TOKEN_METADATA_PROGRAM: Final[Pubkey] = Pubkey.from_string(
    "metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s"
)

# Stake account layout: 4-byte state enum + 8-byte rent reserve, then the staker
STAKE_AUTHORITY_OFFSET: Final[int] = 12

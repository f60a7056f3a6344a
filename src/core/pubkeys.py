"""
Program addresses and constants the explorer dispatches on.
"""

from typing import Final

from solders.pubkey import Pubkey

# Programs that own decodable accounts
SYSTEM_PROGRAM: Final[Pubkey] = Pubkey.from_string("11111111111111111111111111111111")
TOKEN_PROGRAM: Final[Pubkey] = Pubkey.from_string(
    "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
)
TOKEN_2022_PROGRAM: Final[Pubkey] = Pubkey.from_string(
    "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"
)
METADATA_PROGRAM: Final[Pubkey] = Pubkey.from_string(
    "metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s"
)
ADDRESS_LOOKUP_TABLE_PROGRAM: Final[Pubkey] = Pubkey.from_string(
    "AddressLookupTab1e1111111111111111111111111"
)

# Programs referenced when summarising transactions and blocks
VOTE_PROGRAM: Final[Pubkey] = Pubkey.from_string(
    "Vote111111111111111111111111111111111111111"
)

# All-zero key used by optional-nonzero pubkey fields
DEFAULT_PUBKEY: Final[Pubkey] = Pubkey.default()


class ProgramAddresses:
    """Programs the explorer knows how to decode accounts for."""

    SYSTEM_PROGRAM = SYSTEM_PROGRAM
    TOKEN_PROGRAM = TOKEN_PROGRAM
    TOKEN_2022_PROGRAM = TOKEN_2022_PROGRAM
    METADATA_PROGRAM = METADATA_PROGRAM
    ADDRESS_LOOKUP_TABLE_PROGRAM = ADDRESS_LOOKUP_TABLE_PROGRAM
    VOTE_PROGRAM = VOTE_PROGRAM

    TOKEN_PROGRAMS: Final[tuple[Pubkey, ...]] = (TOKEN_PROGRAM, TOKEN_2022_PROGRAM)

"""
Records produced by the explorer core.

Every record is created fresh per query and is immutable once built; the
presentation layer owns the DisplayRecord / TransactionRecord / BlockRecord it
receives.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Union

from solders.pubkey import Pubkey

if TYPE_CHECKING:
    from interfaces.extensions import Extension


class AccountState(IntEnum):
    """Token account state byte."""

    UNINITIALIZED = 0
    INITIALIZED = 1
    FROZEN = 2


class AccountType(IntEnum):
    """Account-type byte stored after the base layout of extended accounts."""

    UNINITIALIZED = 0
    MINT = 1
    ACCOUNT = 2


class RecordKind(Enum):
    """What a DisplayRecord describes."""

    TOKEN_ACCOUNT = "token_account"
    MINT = "mint"
    MULTISIG = "multisig"
    METADATA = "metadata"
    SYSTEM = "system"
    LOOKUP_TABLE = "lookup_table"
    UNKNOWN = "unknown"


class MetadataSource(Enum):
    """Where a MetadataRecord was read from."""

    METAPLEX = "metaplex"
    TOKEN_METADATA = "token_metadata"


@dataclass(frozen=True)
class RawAccount:
    """Account envelope as returned by getAccountInfo, data already base64-decoded."""

    address: Pubkey
    owner: Pubkey
    data: bytes
    lamports: int
    executable: bool
    rent_epoch: int


@dataclass(frozen=True)
class NotFound:
    """The queried account or record does not exist. An ordinary result, not an error."""

    address: Pubkey | str
    what: str = "account"

    def __bool__(self) -> bool:
        return False


@dataclass(frozen=True)
class UnknownLayout:
    """No decoder applies to an account. Reported as a non-fatal result."""

    owner: Pubkey
    reason: str

    def __bool__(self) -> bool:
        return False


@dataclass(frozen=True)
class TokenAccountRecord:
    """Fixed fields of a token account.

    `decimals` lives on the mint, so the decoder leaves it unset and the
    explorer fills it in after fetching the mint.
    """

    address: Pubkey
    program_id: Pubkey
    mint: Pubkey
    owner: Pubkey
    amount: int
    delegate: Pubkey | None
    state: AccountState
    is_native: int | None
    delegated_amount: int
    close_authority: Pubkey | None
    decimals: int | None = None


@dataclass(frozen=True)
class MintRecord:
    address: Pubkey
    program_id: Pubkey
    mint_authority: Pubkey | None
    supply: int
    decimals: int
    is_initialized: bool
    freeze_authority: Pubkey | None


@dataclass(frozen=True)
class MultisigRecord:
    address: Pubkey
    program_id: Pubkey
    m: int
    n: int
    is_initialized: bool
    signers: tuple[Pubkey, ...]


@dataclass(frozen=True)
class Creator:
    address: Pubkey
    verified: bool
    share: int


@dataclass(frozen=True)
class MetadataRecord:
    """Name, symbol and URI of a mint, from either metadata source."""

    mint: Pubkey
    name: str
    symbol: str
    uri: str
    update_authority: Pubkey | None
    seller_fee_basis_points: int | None
    source: MetadataSource
    address: Pubkey | None = None
    creators: tuple[Creator, ...] = ()
    additional_metadata: tuple[tuple[str, str], ...] = ()
    primary_sale_happened: bool | None = None
    is_mutable: bool | None = None


@dataclass(frozen=True)
class TokenBalance:
    """One row of a wallet's token holdings, from getTokenAccountsByOwner."""

    address: Pubkey
    mint: Pubkey
    ui_amount: str
    program: str


@dataclass(frozen=True)
class AddressLookupTableRecord:
    address: Pubkey
    deactivation_slot: int | None
    last_extended_slot: int
    last_extended_slot_start_index: int
    authority: Pubkey | None
    addresses: tuple[Pubkey, ...]

    @property
    def is_active(self) -> bool:
        return self.deactivation_slot is None


@dataclass(frozen=True)
class SystemAccountRecord:
    address: Pubkey
    lamports: int
    token_balances: tuple[TokenBalance, ...] = ()


AccountRecord = Union[
    TokenAccountRecord,
    MintRecord,
    MultisigRecord,
    MetadataRecord,
    SystemAccountRecord,
    AddressLookupTableRecord,
    RawAccount,
]


@dataclass(frozen=True)
class DisplayRecord:
    """Everything the explorer learned about one address."""

    address: Pubkey
    kind: RecordKind
    owner_program: Pubkey
    lamports: int
    account: AccountRecord
    extensions: tuple[Extension, ...] = ()
    metadata: MetadataRecord | None = None
    mint: MintRecord | None = None
    raw_data: bytes | None = None
    note: str | None = None


@dataclass(frozen=True)
class TransactionAccount:
    address: Pubkey
    is_signer: bool
    is_writable: bool
    pre_balance: int | None
    post_balance: int | None


@dataclass(frozen=True)
class TransactionRecord:
    signature: str
    slot: int
    block_time: int | None
    success: bool
    error: str | None
    fee: int
    version: str
    recent_blockhash: str
    compute_units_consumed: int | None
    accounts: tuple[TransactionAccount, ...]
    log_messages: tuple[str, ...] = ()


@dataclass(frozen=True)
class BlockRecord:
    slot: int
    parent_slot: int
    blockhash: str
    leader: str | None
    fee_rewards: int
    vote_transactions: int
    non_vote_transactions: int
    compute_units: int
    program_invocations: tuple[tuple[str, int], ...] = ()

    @property
    def total_transactions(self) -> int:
        return self.vote_transactions + self.non_vote_transactions

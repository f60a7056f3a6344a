"""
Owner-program to decoder dispatch.

Each known program registers a selector. Given an account's data, the selector
returns the decoding strategy that applies (or UnknownLayout). Adding support
for another program means registering one more selector; existing decoders
stay untouched.
"""

from collections.abc import Callable
from dataclasses import dataclass

from solders.pubkey import Pubkey

from core.errors import DecodeError
from core.pubkeys import ProgramAddresses
from interfaces.extensions import Extension
from interfaces.records import (
    AccountRecord,
    AccountType,
    RawAccount,
    RecordKind,
    SystemAccountRecord,
    UnknownLayout,
)
from layouts.extensions import parse_extensions
from layouts.lookup_table import LOOKUP_TABLE_META_SIZE, decode_lookup_table
from layouts.metadata import METAPLEX_METADATA_KEY, decode_metaplex_metadata
from layouts.token import (
    ACCOUNT_SIZE,
    ACCOUNT_TYPE_OFFSET,
    MINT_SIZE,
    MULTISIG_SIZE,
    decode_mint,
    decode_multisig,
    decode_token_account,
    extended_account_type,
    extension_region,
)
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class DecodedAccount:
    """Output of a decoding strategy: the fixed record plus any extensions."""

    kind: RecordKind
    record: AccountRecord
    extensions: tuple[Extension, ...] = ()


DecoderStrategy = Callable[[RawAccount], DecodedAccount]
LayoutSelector = Callable[[Pubkey, bytes], DecoderStrategy | UnknownLayout]


def decode_token_account_strategy(account: RawAccount) -> DecodedAccount:
    record = decode_token_account(account.address, account.owner, account.data)
    return DecodedAccount(RecordKind.TOKEN_ACCOUNT, record)


def decode_mint_strategy(account: RawAccount) -> DecodedAccount:
    record = decode_mint(account.address, account.owner, account.data)
    return DecodedAccount(RecordKind.MINT, record)


def decode_multisig_strategy(account: RawAccount) -> DecodedAccount:
    record = decode_multisig(account.address, account.owner, account.data)
    return DecodedAccount(RecordKind.MULTISIG, record)


def decode_extended_token_account_strategy(account: RawAccount) -> DecodedAccount:
    record = decode_token_account(account.address, account.owner, account.data)
    extensions = parse_extensions(extension_region(account.data))
    return DecodedAccount(RecordKind.TOKEN_ACCOUNT, record, tuple(extensions))


def decode_extended_mint_strategy(account: RawAccount) -> DecodedAccount:
    record = decode_mint(account.address, account.owner, account.data)
    if any(account.data[MINT_SIZE:ACCOUNT_TYPE_OFFSET]):
        raise DecodeError("Extended mint padding before the account type is not zeroed")
    extensions = parse_extensions(extension_region(account.data))
    return DecodedAccount(RecordKind.MINT, record, tuple(extensions))


def decode_metaplex_strategy(account: RawAccount) -> DecodedAccount:
    record = decode_metaplex_metadata(account.data, address=account.address)
    return DecodedAccount(RecordKind.METADATA, record)


def decode_system_strategy(account: RawAccount) -> DecodedAccount:
    record = SystemAccountRecord(address=account.address, lamports=account.lamports)
    return DecodedAccount(RecordKind.SYSTEM, record)


def decode_lookup_table_strategy(account: RawAccount) -> DecodedAccount:
    record = decode_lookup_table(account.address, account.data)
    return DecodedAccount(RecordKind.LOOKUP_TABLE, record)


def select_token_layout(owner: Pubkey, data: bytes) -> DecoderStrategy | UnknownLayout:
    """Pick a layout for an account owned by either token program.

    The base layouts are identified by their exact sizes. Only token-2022
    accounts may be longer than a token account; for those the account-type
    byte tells an extended mint from an extended token account. Buffers
    shorter than a token account that match no other size go to the token
    account decoder, which rejects them as truncated.
    """
    size = len(data)
    if size == MINT_SIZE:
        return decode_mint_strategy
    if size == MULTISIG_SIZE:
        return decode_multisig_strategy
    if size <= ACCOUNT_SIZE:
        return decode_token_account_strategy

    if owner != ProgramAddresses.TOKEN_2022_PROGRAM:
        return UnknownLayout(owner, f"Unexpected token account size {size}")

    account_type = extended_account_type(data)
    if account_type == AccountType.ACCOUNT:
        return decode_extended_token_account_strategy
    if account_type == AccountType.MINT:
        return decode_extended_mint_strategy
    return UnknownLayout(owner, f"Unrecognized account type byte {data[ACCOUNT_TYPE_OFFSET]}")


def select_metadata_layout(owner: Pubkey, data: bytes) -> DecoderStrategy | UnknownLayout:
    if data and data[0] == METAPLEX_METADATA_KEY:
        return decode_metaplex_strategy
    key = data[0] if data else None
    return UnknownLayout(owner, f"Metadata program account with key {key} is not a metadata record")


def select_system_layout(owner: Pubkey, data: bytes) -> DecoderStrategy | UnknownLayout:
    # wallets and nonce accounts alike; the data stays reachable through raw
    return decode_system_strategy


def select_lookup_table_layout(owner: Pubkey, data: bytes) -> DecoderStrategy | UnknownLayout:
    if len(data) < LOOKUP_TABLE_META_SIZE:
        return UnknownLayout(owner, "Lookup table program account too small for a table")
    return decode_lookup_table_strategy


class LayoutRegistry:
    """Maps owning programs to layout selectors."""

    def __init__(self):
        self._selectors: dict[Pubkey, LayoutSelector] = {}

    def register(self, program_id: Pubkey, selector: LayoutSelector) -> None:
        """Register (or replace) the selector for a program."""
        self._selectors[program_id] = selector

    def is_supported(self, program_id: Pubkey) -> bool:
        return program_id in self._selectors

    def resolve(self, owner: Pubkey, data: bytes) -> DecoderStrategy | UnknownLayout:
        """Select the decoding strategy for an account.

        Args:
            owner: Owning program of the account
            data: Raw account data

        Returns:
            A strategy, or UnknownLayout if no known layout applies
        """
        selector = self._selectors.get(owner)
        if selector is None:
            return UnknownLayout(owner, f"No decoder for accounts owned by {owner}")
        return selector(owner, data)

    def decode(self, account: RawAccount) -> DecodedAccount | UnknownLayout:
        """Resolve and run the strategy for a fetched account.

        Raises:
            DecodeError: If the selected layout does not decode
        """
        strategy = self.resolve(account.owner, account.data)
        if isinstance(strategy, UnknownLayout):
            logger.info(f"Cannot decode {account.address}: {strategy.reason}")
            return strategy
        return strategy(account)


def build_default_registry() -> LayoutRegistry:
    """Registry covering every program the explorer understands."""
    registry = LayoutRegistry()
    registry.register(ProgramAddresses.TOKEN_PROGRAM, select_token_layout)
    registry.register(ProgramAddresses.TOKEN_2022_PROGRAM, select_token_layout)
    registry.register(ProgramAddresses.METADATA_PROGRAM, select_metadata_layout)
    registry.register(ProgramAddresses.SYSTEM_PROGRAM, select_system_layout)
    registry.register(ProgramAddresses.ADDRESS_LOOKUP_TABLE_PROGRAM, select_lookup_table_layout)
    return registry


layout_registry = build_default_registry()

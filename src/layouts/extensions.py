"""
Token-2022 TLV extension parser.

The extension region that follows an extended account's base layout and
account-type byte is a sequence of entries:

    u16 LE extension type | u16 LE length | `length` bytes of payload

Each known type is decoded into its typed record. An unknown tag, or a known
tag whose payload does not decode, becomes an UnknownExtension and the scan
continues with the next entry. Only a length that runs past the end of the
buffer aborts the scan.
"""

import struct
from collections.abc import Callable, Iterator
from dataclasses import dataclass

from construct import (
    Bytes,
    ConstructError,
    Flag,
    Float64l,
    Int8ul,
    Int16sl,
    Int16ul,
    Int32ul,
    Int64sl,
    Int64ul,
    Struct,
)
from solders.pubkey import Pubkey

from core.errors import DecodeError, MalformedTlvError
from interfaces.extensions import (
    CpiGuard,
    DefaultAccountState,
    Extension,
    ExtensionType,
    GroupMemberPointer,
    GroupPointer,
    ImmutableOwner,
    InterestBearingConfig,
    MemoTransfer,
    MetadataPointer,
    MintCloseAuthority,
    NonTransferable,
    NonTransferableAccount,
    OpaqueExtension,
    Pausable,
    PausableAccount,
    PermanentDelegate,
    ScaledUiAmount,
    TokenGroup,
    TokenGroupMember,
    TokenMetadata,
    TransferFee,
    TransferFeeAmount,
    TransferFeeConfig,
    TransferHook,
    TransferHookAccount,
    UnknownExtension,
)
from interfaces.records import AccountState
from layouts.metadata import decode_token_metadata_payload, optional_pubkey
from utils.logger import get_logger

logger = get_logger(__name__)

TLV_HEADER_SIZE = 4

TRANSFER_FEE_LAYOUT = Struct(
    "epoch" / Int64ul,
    "maximum_fee" / Int64ul,
    "transfer_fee_basis_points" / Int16ul,
)

TRANSFER_FEE_CONFIG_LAYOUT = Struct(
    "transfer_fee_config_authority" / Bytes(32),
    "withdraw_withheld_authority" / Bytes(32),
    "withheld_amount" / Int64ul,
    "older_transfer_fee" / TRANSFER_FEE_LAYOUT,
    "newer_transfer_fee" / TRANSFER_FEE_LAYOUT,
)

INTEREST_BEARING_CONFIG_LAYOUT = Struct(
    "rate_authority" / Bytes(32),
    "initialization_timestamp" / Int64sl,
    "pre_update_average_rate" / Int16sl,
    "last_update_timestamp" / Int64sl,
    "current_rate" / Int16sl,
)

# authority + address: metadata, group and group-member pointers, transfer hook
POINTER_LAYOUT = Struct(
    "authority" / Bytes(32),
    "address" / Bytes(32),
)

# Group sizes were u32 in the first interface release and u64 afterwards
TOKEN_GROUP_LAYOUTS = {
    80: Struct("update_authority" / Bytes(32), "mint" / Bytes(32),
               "size" / Int64ul, "max_size" / Int64ul),
    72: Struct("update_authority" / Bytes(32), "mint" / Bytes(32),
               "size" / Int32ul, "max_size" / Int32ul),
}

TOKEN_GROUP_MEMBER_LAYOUTS = {
    72: Struct("mint" / Bytes(32), "group" / Bytes(32), "member_number" / Int64ul),
    68: Struct("mint" / Bytes(32), "group" / Bytes(32), "member_number" / Int32ul),
}

SCALED_UI_AMOUNT_LAYOUT = Struct(
    "authority" / Bytes(32),
    "multiplier" / Float64l,
    "new_multiplier_effective_timestamp" / Int64sl,
    "new_multiplier" / Float64l,
)

PAUSABLE_LAYOUT = Struct(
    "authority" / Bytes(32),
    "paused" / Flag,
)

# Confidential-transfer payloads are ElGamal / AES ciphertexts; kept opaque
OPAQUE_EXTENSIONS = frozenset({
    ExtensionType.CONFIDENTIAL_TRANSFER_MINT,
    ExtensionType.CONFIDENTIAL_TRANSFER_ACCOUNT,
    ExtensionType.CONFIDENTIAL_TRANSFER_FEE_CONFIG,
    ExtensionType.CONFIDENTIAL_TRANSFER_FEE_AMOUNT,
    ExtensionType.CONFIDENTIAL_MINT_BURN,
})

ExtensionParser = Callable[[bytes], Extension]
EXTENSION_PARSERS: dict[ExtensionType, ExtensionParser] = {}


@dataclass(frozen=True)
class TlvEntry:
    """One raw TLV entry: its tag, where it starts, and its payload."""

    tag: int
    offset: int
    data: bytes


def register_extension_parser(kind: ExtensionType):
    """Register a payload parser for an extension type."""
    def decorator(parser: ExtensionParser) -> ExtensionParser:
        EXTENSION_PARSERS[kind] = parser
        return parser
    return decorator


def iter_tlv_entries(region: bytes) -> Iterator[TlvEntry]:
    """Walk a TLV region entry by entry.

    Stops when fewer than 4 bytes remain or at an uninitialized (type 0) entry.

    Raises:
        MalformedTlvError: If an entry's declared length exceeds the bytes left
    """
    offset = 0
    while len(region) - offset >= TLV_HEADER_SIZE:
        tag, length = struct.unpack_from("<HH", region, offset)
        if tag == ExtensionType.UNINITIALIZED:
            break

        value_start = offset + TLV_HEADER_SIZE
        remaining = len(region) - value_start
        if length > remaining:
            raise MalformedTlvError(offset, length, remaining)

        yield TlvEntry(tag=tag, offset=offset, data=bytes(region[value_start : value_start + length]))
        offset = value_start + length


def parse_extension(tag: int, data: bytes) -> Extension:
    """Decode one extension payload, never raising for an unusable payload."""
    try:
        kind = ExtensionType(tag)
    except ValueError:
        logger.debug(f"Unknown extension type {tag} ({len(data)} bytes)")
        return UnknownExtension(tag=tag, data=data)

    if kind in OPAQUE_EXTENSIONS:
        return OpaqueExtension(kind=kind, data=data)

    parser = EXTENSION_PARSERS.get(kind)
    if parser is None:
        return UnknownExtension(tag=tag, data=data, reason=f"No parser for {kind.name}")

    try:
        return parser(data)
    except (DecodeError, ConstructError, UnicodeDecodeError, ValueError) as e:
        logger.info(f"Could not decode {kind.name} extension: {e!s}")
        return UnknownExtension(tag=tag, data=data, reason=str(e))


def parse_extensions(region: bytes) -> list[Extension]:
    """Parse every entry of a TLV region, in on-chain order.

    Raises:
        MalformedTlvError: If the region is corrupt
    """
    return [parse_extension(entry.tag, entry.data) for entry in iter_tlv_entries(region)]


def _parse_exact(layout: Struct, data: bytes, kind: ExtensionType):
    if len(data) != layout.sizeof():
        raise DecodeError(f"{kind.name} payload must be {layout.sizeof()} bytes, got {len(data)}")
    return layout.parse(data)


def _expect_empty(data: bytes, kind: ExtensionType) -> None:
    if data:
        raise DecodeError(f"{kind.name} carries no payload, got {len(data)} bytes")


def _transfer_fee(parsed) -> TransferFee:
    return TransferFee(
        epoch=parsed.epoch,
        maximum_fee=parsed.maximum_fee,
        transfer_fee_basis_points=parsed.transfer_fee_basis_points,
    )


@register_extension_parser(ExtensionType.TRANSFER_FEE_CONFIG)
def parse_transfer_fee_config(data: bytes) -> TransferFeeConfig:
    parsed = _parse_exact(TRANSFER_FEE_CONFIG_LAYOUT, data, ExtensionType.TRANSFER_FEE_CONFIG)
    return TransferFeeConfig(
        transfer_fee_config_authority=optional_pubkey(parsed.transfer_fee_config_authority),
        withdraw_withheld_authority=optional_pubkey(parsed.withdraw_withheld_authority),
        withheld_amount=parsed.withheld_amount,
        older_transfer_fee=_transfer_fee(parsed.older_transfer_fee),
        newer_transfer_fee=_transfer_fee(parsed.newer_transfer_fee),
    )


@register_extension_parser(ExtensionType.TRANSFER_FEE_AMOUNT)
def parse_transfer_fee_amount(data: bytes) -> TransferFeeAmount:
    parsed = _parse_exact(Struct("withheld_amount" / Int64ul), data, ExtensionType.TRANSFER_FEE_AMOUNT)
    return TransferFeeAmount(withheld_amount=parsed.withheld_amount)


@register_extension_parser(ExtensionType.MINT_CLOSE_AUTHORITY)
def parse_mint_close_authority(data: bytes) -> MintCloseAuthority:
    parsed = _parse_exact(Struct("close_authority" / Bytes(32)), data, ExtensionType.MINT_CLOSE_AUTHORITY)
    return MintCloseAuthority(close_authority=optional_pubkey(parsed.close_authority))


@register_extension_parser(ExtensionType.DEFAULT_ACCOUNT_STATE)
def parse_default_account_state(data: bytes) -> DefaultAccountState:
    parsed = _parse_exact(Struct("state" / Int8ul), data, ExtensionType.DEFAULT_ACCOUNT_STATE)
    return DefaultAccountState(state=AccountState(parsed.state))


@register_extension_parser(ExtensionType.IMMUTABLE_OWNER)
def parse_immutable_owner(data: bytes) -> ImmutableOwner:
    _expect_empty(data, ExtensionType.IMMUTABLE_OWNER)
    return ImmutableOwner()


@register_extension_parser(ExtensionType.MEMO_TRANSFER)
def parse_memo_transfer(data: bytes) -> MemoTransfer:
    parsed = _parse_exact(Struct("required" / Flag), data, ExtensionType.MEMO_TRANSFER)
    return MemoTransfer(require_incoming_transfer_memos=parsed.required)


@register_extension_parser(ExtensionType.NON_TRANSFERABLE)
def parse_non_transferable(data: bytes) -> NonTransferable:
    _expect_empty(data, ExtensionType.NON_TRANSFERABLE)
    return NonTransferable()


@register_extension_parser(ExtensionType.INTEREST_BEARING_CONFIG)
def parse_interest_bearing_config(data: bytes) -> InterestBearingConfig:
    parsed = _parse_exact(INTEREST_BEARING_CONFIG_LAYOUT, data, ExtensionType.INTEREST_BEARING_CONFIG)
    return InterestBearingConfig(
        rate_authority=optional_pubkey(parsed.rate_authority),
        initialization_timestamp=parsed.initialization_timestamp,
        pre_update_average_rate=parsed.pre_update_average_rate,
        last_update_timestamp=parsed.last_update_timestamp,
        current_rate=parsed.current_rate,
    )


@register_extension_parser(ExtensionType.CPI_GUARD)
def parse_cpi_guard(data: bytes) -> CpiGuard:
    parsed = _parse_exact(Struct("lock_cpi" / Flag), data, ExtensionType.CPI_GUARD)
    return CpiGuard(lock_cpi=parsed.lock_cpi)


@register_extension_parser(ExtensionType.PERMANENT_DELEGATE)
def parse_permanent_delegate(data: bytes) -> PermanentDelegate:
    parsed = _parse_exact(Struct("delegate" / Bytes(32)), data, ExtensionType.PERMANENT_DELEGATE)
    return PermanentDelegate(delegate=optional_pubkey(parsed.delegate))


@register_extension_parser(ExtensionType.NON_TRANSFERABLE_ACCOUNT)
def parse_non_transferable_account(data: bytes) -> NonTransferableAccount:
    _expect_empty(data, ExtensionType.NON_TRANSFERABLE_ACCOUNT)
    return NonTransferableAccount()


@register_extension_parser(ExtensionType.TRANSFER_HOOK)
def parse_transfer_hook(data: bytes) -> TransferHook:
    parsed = _parse_exact(POINTER_LAYOUT, data, ExtensionType.TRANSFER_HOOK)
    return TransferHook(
        authority=optional_pubkey(parsed.authority),
        program_id=optional_pubkey(parsed.address),
    )


@register_extension_parser(ExtensionType.TRANSFER_HOOK_ACCOUNT)
def parse_transfer_hook_account(data: bytes) -> TransferHookAccount:
    parsed = _parse_exact(Struct("transferring" / Flag), data, ExtensionType.TRANSFER_HOOK_ACCOUNT)
    return TransferHookAccount(transferring=parsed.transferring)


@register_extension_parser(ExtensionType.METADATA_POINTER)
def parse_metadata_pointer(data: bytes) -> MetadataPointer:
    parsed = _parse_exact(POINTER_LAYOUT, data, ExtensionType.METADATA_POINTER)
    return MetadataPointer(
        authority=optional_pubkey(parsed.authority),
        metadata_address=optional_pubkey(parsed.address),
    )


@register_extension_parser(ExtensionType.TOKEN_METADATA)
def parse_token_metadata(data: bytes) -> TokenMetadata:
    parsed = decode_token_metadata_payload(data)
    return TokenMetadata(
        update_authority=optional_pubkey(parsed.update_authority),
        mint=Pubkey.from_bytes(parsed.mint),
        name=parsed.name,
        symbol=parsed.symbol,
        uri=parsed.uri,
        additional_metadata=tuple((kv.key, kv.value) for kv in parsed.additional_metadata),
    )


@register_extension_parser(ExtensionType.GROUP_POINTER)
def parse_group_pointer(data: bytes) -> GroupPointer:
    parsed = _parse_exact(POINTER_LAYOUT, data, ExtensionType.GROUP_POINTER)
    return GroupPointer(
        authority=optional_pubkey(parsed.authority),
        group_address=optional_pubkey(parsed.address),
    )


@register_extension_parser(ExtensionType.TOKEN_GROUP)
def parse_token_group(data: bytes) -> TokenGroup:
    layout = TOKEN_GROUP_LAYOUTS.get(len(data))
    if layout is None:
        raise DecodeError(f"TOKEN_GROUP payload has unexpected size {len(data)}")
    parsed = layout.parse(data)
    return TokenGroup(
        update_authority=optional_pubkey(parsed.update_authority),
        mint=Pubkey.from_bytes(parsed.mint),
        size=parsed.size,
        max_size=parsed.max_size,
    )


@register_extension_parser(ExtensionType.GROUP_MEMBER_POINTER)
def parse_group_member_pointer(data: bytes) -> GroupMemberPointer:
    parsed = _parse_exact(POINTER_LAYOUT, data, ExtensionType.GROUP_MEMBER_POINTER)
    return GroupMemberPointer(
        authority=optional_pubkey(parsed.authority),
        member_address=optional_pubkey(parsed.address),
    )


@register_extension_parser(ExtensionType.TOKEN_GROUP_MEMBER)
def parse_token_group_member(data: bytes) -> TokenGroupMember:
    layout = TOKEN_GROUP_MEMBER_LAYOUTS.get(len(data))
    if layout is None:
        raise DecodeError(f"TOKEN_GROUP_MEMBER payload has unexpected size {len(data)}")
    parsed = layout.parse(data)
    return TokenGroupMember(
        mint=Pubkey.from_bytes(parsed.mint),
        group=Pubkey.from_bytes(parsed.group),
        member_number=parsed.member_number,
    )


@register_extension_parser(ExtensionType.SCALED_UI_AMOUNT)
def parse_scaled_ui_amount(data: bytes) -> ScaledUiAmount:
    parsed = _parse_exact(SCALED_UI_AMOUNT_LAYOUT, data, ExtensionType.SCALED_UI_AMOUNT)
    return ScaledUiAmount(
        authority=optional_pubkey(parsed.authority),
        multiplier=parsed.multiplier,
        new_multiplier_effective_timestamp=parsed.new_multiplier_effective_timestamp,
        new_multiplier=parsed.new_multiplier,
    )


@register_extension_parser(ExtensionType.PAUSABLE)
def parse_pausable(data: bytes) -> Pausable:
    parsed = _parse_exact(PAUSABLE_LAYOUT, data, ExtensionType.PAUSABLE)
    return Pausable(authority=optional_pubkey(parsed.authority), paused=parsed.paused)


@register_extension_parser(ExtensionType.PAUSABLE_ACCOUNT)
def parse_pausable_account(data: bytes) -> PausableAccount:
    _expect_empty(data, ExtensionType.PAUSABLE_ACCOUNT)
    return PausableAccount()

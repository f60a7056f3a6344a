"""
Typed records for token-2022 extensions.

Extensions form a closed set of known variants plus two catch-alls:
OpaqueExtension for recognized types whose payload is not interpreted, and
UnknownExtension for tags this explorer does not know. Both keep the raw
payload bytes so nothing found on chain is dropped.
"""

from dataclasses import dataclass, fields
from enum import IntEnum
from typing import Any, ClassVar

from solders.pubkey import Pubkey

from core.pubkeys import DEFAULT_PUBKEY
from interfaces.records import AccountState


class ExtensionType(IntEnum):
    """Extension type tags, as stored in the 2-byte TLV type field."""

    UNINITIALIZED = 0
    TRANSFER_FEE_CONFIG = 1
    TRANSFER_FEE_AMOUNT = 2
    MINT_CLOSE_AUTHORITY = 3
    CONFIDENTIAL_TRANSFER_MINT = 4
    CONFIDENTIAL_TRANSFER_ACCOUNT = 5
    DEFAULT_ACCOUNT_STATE = 6
    IMMUTABLE_OWNER = 7
    MEMO_TRANSFER = 8
    NON_TRANSFERABLE = 9
    INTEREST_BEARING_CONFIG = 10
    CPI_GUARD = 11
    PERMANENT_DELEGATE = 12
    NON_TRANSFERABLE_ACCOUNT = 13
    TRANSFER_HOOK = 14
    TRANSFER_HOOK_ACCOUNT = 15
    CONFIDENTIAL_TRANSFER_FEE_CONFIG = 16
    CONFIDENTIAL_TRANSFER_FEE_AMOUNT = 17
    METADATA_POINTER = 18
    TOKEN_METADATA = 19
    GROUP_POINTER = 20
    TOKEN_GROUP = 21
    GROUP_MEMBER_POINTER = 22
    TOKEN_GROUP_MEMBER = 23
    CONFIDENTIAL_MINT_BURN = 24
    SCALED_UI_AMOUNT = 25
    PAUSABLE = 26
    PAUSABLE_ACCOUNT = 27


def _is_zero_value(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, Pubkey):
        return value == DEFAULT_PUBKEY
    if isinstance(value, (int, float)) and not isinstance(value, IntEnum):
        return value == 0
    if isinstance(value, (str, bytes, tuple)):
        return len(value) == 0 or (isinstance(value, bytes) and not any(value))
    if isinstance(value, TransferFee):
        return all(_is_zero_value(getattr(value, f.name)) for f in fields(value))
    return False


@dataclass(frozen=True)
class Extension:
    """Base class for every extension record."""

    extension_type: ClassVar[ExtensionType]

    @property
    def extension_tag(self) -> int:
        return int(self.extension_type)

    @property
    def label(self) -> str:
        return type(self).__name__

    @property
    def is_inactive(self) -> bool:
        """True when the extension is present but every field is zeroed.

        Marker extensions without fields are never inactive; their presence is
        the information.
        """
        values = [getattr(self, f.name) for f in fields(self)]
        return bool(values) and all(_is_zero_value(v) for v in values)


@dataclass(frozen=True)
class TransferFee:
    epoch: int
    maximum_fee: int
    transfer_fee_basis_points: int


@dataclass(frozen=True)
class TransferFeeConfig(Extension):
    extension_type = ExtensionType.TRANSFER_FEE_CONFIG

    transfer_fee_config_authority: Pubkey | None
    withdraw_withheld_authority: Pubkey | None
    withheld_amount: int
    older_transfer_fee: TransferFee
    newer_transfer_fee: TransferFee


@dataclass(frozen=True)
class TransferFeeAmount(Extension):
    extension_type = ExtensionType.TRANSFER_FEE_AMOUNT

    withheld_amount: int


@dataclass(frozen=True)
class MintCloseAuthority(Extension):
    extension_type = ExtensionType.MINT_CLOSE_AUTHORITY

    close_authority: Pubkey | None


@dataclass(frozen=True)
class DefaultAccountState(Extension):
    extension_type = ExtensionType.DEFAULT_ACCOUNT_STATE

    state: AccountState


@dataclass(frozen=True)
class ImmutableOwner(Extension):
    extension_type = ExtensionType.IMMUTABLE_OWNER


@dataclass(frozen=True)
class MemoTransfer(Extension):
    extension_type = ExtensionType.MEMO_TRANSFER

    require_incoming_transfer_memos: bool


@dataclass(frozen=True)
class NonTransferable(Extension):
    extension_type = ExtensionType.NON_TRANSFERABLE


@dataclass(frozen=True)
class InterestBearingConfig(Extension):
    extension_type = ExtensionType.INTEREST_BEARING_CONFIG

    rate_authority: Pubkey | None
    initialization_timestamp: int
    pre_update_average_rate: int
    last_update_timestamp: int
    current_rate: int


@dataclass(frozen=True)
class CpiGuard(Extension):
    extension_type = ExtensionType.CPI_GUARD

    lock_cpi: bool


@dataclass(frozen=True)
class PermanentDelegate(Extension):
    extension_type = ExtensionType.PERMANENT_DELEGATE

    delegate: Pubkey | None


@dataclass(frozen=True)
class NonTransferableAccount(Extension):
    extension_type = ExtensionType.NON_TRANSFERABLE_ACCOUNT


@dataclass(frozen=True)
class TransferHook(Extension):
    extension_type = ExtensionType.TRANSFER_HOOK

    authority: Pubkey | None
    program_id: Pubkey | None


@dataclass(frozen=True)
class TransferHookAccount(Extension):
    extension_type = ExtensionType.TRANSFER_HOOK_ACCOUNT

    transferring: bool


@dataclass(frozen=True)
class MetadataPointer(Extension):
    extension_type = ExtensionType.METADATA_POINTER

    authority: Pubkey | None
    metadata_address: Pubkey | None


@dataclass(frozen=True)
class TokenMetadata(Extension):
    extension_type = ExtensionType.TOKEN_METADATA

    update_authority: Pubkey | None
    mint: Pubkey
    name: str
    symbol: str
    uri: str
    additional_metadata: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class GroupPointer(Extension):
    extension_type = ExtensionType.GROUP_POINTER

    authority: Pubkey | None
    group_address: Pubkey | None


@dataclass(frozen=True)
class TokenGroup(Extension):
    extension_type = ExtensionType.TOKEN_GROUP

    update_authority: Pubkey | None
    mint: Pubkey
    size: int
    max_size: int


@dataclass(frozen=True)
class GroupMemberPointer(Extension):
    extension_type = ExtensionType.GROUP_MEMBER_POINTER

    authority: Pubkey | None
    member_address: Pubkey | None


@dataclass(frozen=True)
class TokenGroupMember(Extension):
    extension_type = ExtensionType.TOKEN_GROUP_MEMBER

    mint: Pubkey
    group: Pubkey
    member_number: int


@dataclass(frozen=True)
class ScaledUiAmount(Extension):
    extension_type = ExtensionType.SCALED_UI_AMOUNT

    authority: Pubkey | None
    multiplier: float
    new_multiplier_effective_timestamp: int
    new_multiplier: float


@dataclass(frozen=True)
class Pausable(Extension):
    extension_type = ExtensionType.PAUSABLE

    authority: Pubkey | None
    paused: bool


@dataclass(frozen=True)
class PausableAccount(Extension):
    extension_type = ExtensionType.PAUSABLE_ACCOUNT


@dataclass(frozen=True)
class OpaqueExtension(Extension):
    """Known extension type whose payload is kept as raw bytes."""

    kind: ExtensionType
    data: bytes

    @property
    def extension_tag(self) -> int:
        return int(self.kind)

    @property
    def label(self) -> str:
        return "".join(part.capitalize() for part in self.kind.name.split("_"))

    @property
    def is_inactive(self) -> bool:
        # a zeroed payload means nothing for a type that is not interpreted
        return False


@dataclass(frozen=True)
class UnknownExtension(Extension):
    """Extension tag that could not be interpreted.

    `reason` is set when the tag is known but its payload failed to decode.
    """

    tag: int
    data: bytes
    reason: str | None = None

    @property
    def extension_tag(self) -> int:
        return self.tag

    @property
    def label(self) -> str:
        return f"Unknown({self.tag})"

    @property
    def is_inactive(self) -> bool:
        # a zeroed payload means nothing for a type that is not interpreted
        return False

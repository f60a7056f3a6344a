import pytest
from solders.pubkey import Pubkey

from core.errors import DecodeError, TruncatedDataError
from core.pubkeys import (
    ADDRESS_LOOKUP_TABLE_PROGRAM,
    METADATA_PROGRAM,
    SYSTEM_PROGRAM,
    TOKEN_2022_PROGRAM,
    TOKEN_PROGRAM,
)
from interfaces.extensions import ExtensionType, ImmutableOwner, MetadataPointer
from interfaces.records import (
    MintRecord,
    MultisigRecord,
    RawAccount,
    RecordKind,
    SystemAccountRecord,
    TokenAccountRecord,
    UnknownLayout,
)
from layouts.registry import DecodedAccount, LayoutRegistry, build_default_registry, layout_registry
from layouts.token import MULTISIG_SIZE

from factories import extended_account, extended_mint, metaplex_bytes, mint_bytes, tlv, token_account_bytes


def raw(owner: Pubkey, data: bytes, lamports: int = 1) -> RawAccount:
    return RawAccount(
        address=Pubkey.new_unique(),
        owner=owner,
        data=data,
        lamports=lamports,
        executable=False,
        rent_epoch=0,
    )


@pytest.mark.parametrize("program", [TOKEN_PROGRAM, TOKEN_2022_PROGRAM])
def test_base_layouts_by_size(program):
    account = layout_registry.decode(raw(program, token_account_bytes(Pubkey.new_unique(), Pubkey.new_unique())))
    assert account.kind is RecordKind.TOKEN_ACCOUNT
    assert isinstance(account.record, TokenAccountRecord)
    assert account.record.program_id == program
    assert account.extensions == ()

    mint = layout_registry.decode(raw(program, mint_bytes(decimals=2)))
    assert mint.kind is RecordKind.MINT
    assert isinstance(mint.record, MintRecord)

    multisig = bytes([1, 1, 1]) + bytes(MULTISIG_SIZE - 3)
    decoded = layout_registry.decode(raw(program, multisig))
    assert isinstance(decoded.record, MultisigRecord)


def test_extended_token_account():
    data = extended_account(
        token_account_bytes(Pubkey.new_unique(), Pubkey.new_unique()),
        tlv(ExtensionType.IMMUTABLE_OWNER, b""),
    )

    decoded = layout_registry.decode(raw(TOKEN_2022_PROGRAM, data))

    assert decoded.kind is RecordKind.TOKEN_ACCOUNT
    assert decoded.extensions == (ImmutableOwner(),)


def test_extended_mint():
    target = Pubkey.new_unique()
    data = extended_mint(
        mint_bytes(decimals=9),
        tlv(ExtensionType.METADATA_POINTER, bytes(32) + bytes(target)),
    )

    decoded = layout_registry.decode(raw(TOKEN_2022_PROGRAM, data))

    assert decoded.kind is RecordKind.MINT
    assert decoded.record.decimals == 9
    assert decoded.extensions == (MetadataPointer(authority=None, metadata_address=target),)


def test_extended_mint_requires_zero_padding():
    data = bytearray(extended_mint(mint_bytes()))
    data[100] = 1
    with pytest.raises(DecodeError):
        layout_registry.decode(raw(TOKEN_2022_PROGRAM, bytes(data)))


def test_extended_layout_only_for_token_2022():
    data = extended_account(token_account_bytes(Pubkey.new_unique(), Pubkey.new_unique()))
    result = layout_registry.decode(raw(TOKEN_PROGRAM, data))
    assert isinstance(result, UnknownLayout)


def test_unknown_account_type_byte():
    data = token_account_bytes(Pubkey.new_unique(), Pubkey.new_unique()) + b"\x07"
    result = layout_registry.decode(raw(TOKEN_2022_PROGRAM, data))
    assert isinstance(result, UnknownLayout)
    assert "7" in result.reason


def test_short_token_buffer_is_truncated():
    with pytest.raises(TruncatedDataError):
        layout_registry.decode(raw(TOKEN_PROGRAM, bytes(100)))


def test_unregistered_owner_is_unknown_layout():
    owner = Pubkey.new_unique()
    result = layout_registry.decode(raw(owner, b"\x01\x02"))
    assert isinstance(result, UnknownLayout)
    assert result.owner == owner
    assert not result


def test_system_and_metadata_and_lookup_table():
    system = layout_registry.decode(raw(SYSTEM_PROGRAM, b"", lamports=5))
    assert system.kind is RecordKind.SYSTEM
    assert system.record == SystemAccountRecord(address=system.record.address, lamports=5)

    assert isinstance(layout_registry.decode(raw(SYSTEM_PROGRAM, bytes(80))), UnknownLayout)

    mint = Pubkey.new_unique()
    metadata = layout_registry.decode(raw(METADATA_PROGRAM, metaplex_bytes(mint, "A", "B", "C")))
    assert metadata.kind is RecordKind.METADATA
    assert metadata.record.mint == mint

    assert isinstance(layout_registry.decode(raw(METADATA_PROGRAM, b"\x06" + bytes(10))), UnknownLayout)

    table = layout_registry.decode(raw(ADDRESS_LOOKUP_TABLE_PROGRAM, b"\x01" + bytes(55)))
    assert table.kind is RecordKind.LOOKUP_TABLE
    assert table.record.addresses == ()


def test_new_program_can_be_registered_without_touching_others():
    program = Pubkey.new_unique()

    def select(owner, data):
        return lambda account: DecodedAccount(RecordKind.UNKNOWN, account)

    registry = build_default_registry()
    registry.register(program, select)

    assert registry.is_supported(program)
    assert registry.decode(raw(program, b"x")).kind is RecordKind.UNKNOWN
    assert not layout_registry.is_supported(program)
    assert not LayoutRegistry().is_supported(TOKEN_PROGRAM)

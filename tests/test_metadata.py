import struct

import pytest
from solders.pubkey import Pubkey

from core.errors import DecodeError, MalformedTlvError, TruncatedDataError
from core.pubkeys import METADATA_PROGRAM
from interfaces.records import MetadataSource
from layouts.metadata import (
    decode_metaplex_metadata,
    decode_token_metadata_payload,
    find_metadata_address,
    find_token_metadata_entry,
)

from factories import (
    borsh_string,
    metaplex_bytes,
    standalone_token_metadata_account,
    token_metadata_payload,
)


def test_metadata_address_is_deterministic():
    mint = Pubkey.new_unique()
    expected, _ = Pubkey.find_program_address(
        [b"metadata", bytes(METADATA_PROGRAM), bytes(mint)], METADATA_PROGRAM
    )
    assert find_metadata_address(mint) == expected
    assert find_metadata_address(mint) == find_metadata_address(mint)
    assert find_metadata_address(mint) != find_metadata_address(Pubkey.new_unique())


def test_decode_metaplex_strips_padding():
    mint = Pubkey.new_unique()
    authority = Pubkey.new_unique()
    data = metaplex_bytes(
        mint,
        "Token Name" + "\x00" * 22,
        "TKN\x00\x00",
        "https://example.invalid/meta.json" + "\x00" * 10,
        update_authority=authority,
        seller_fee_basis_points=250,
    )

    record = decode_metaplex_metadata(data)

    assert record.name == "Token Name"
    assert record.symbol == "TKN"
    assert record.uri == "https://example.invalid/meta.json"
    assert record.mint == mint
    assert record.update_authority == authority
    assert record.seller_fee_basis_points == 250
    assert record.source is MetadataSource.METAPLEX
    assert record.creators == ()
    assert record.is_mutable is True


def test_decode_metaplex_creators():
    creator = Pubkey.new_unique()
    data = metaplex_bytes(Pubkey.new_unique(), "N", "S", "U", creators=[(creator, True, 100)])

    record = decode_metaplex_metadata(data)

    assert len(record.creators) == 1
    assert record.creators[0].address == creator
    assert record.creators[0].verified is True
    assert record.creators[0].share == 100


def test_decode_metaplex_without_optional_tail():
    data = metaplex_bytes(Pubkey.new_unique(), "N", "S", "U", flags=None)[:-1]
    record = decode_metaplex_metadata(data)
    assert record.creators == ()
    assert record.is_mutable is None


def test_decode_metaplex_corrupt_creators_drops_flags():
    creator = Pubkey.new_unique()
    data = bytearray(
        metaplex_bytes(Pubkey.new_unique(), "N", "S", "U", creators=[(creator, True, 100)], flags=(True, True))
    )
    # claim five creators where only one is stored
    count_at = len(data) - 2 - 34 - 4
    data[count_at : count_at + 4] = struct.pack("<I", 5)

    record = decode_metaplex_metadata(bytes(data))

    assert record.name == "N"
    assert record.creators == ()
    assert record.primary_sale_happened is None
    assert record.is_mutable is None


def test_decode_metaplex_errors():
    with pytest.raises(TruncatedDataError):
        decode_metaplex_metadata(b"\x04" + bytes(20))

    data = bytearray(metaplex_bytes(Pubkey.new_unique(), "N", "S", "U"))
    data[0] = 6
    with pytest.raises(DecodeError):
        decode_metaplex_metadata(bytes(data))

    broken = b"\x04" + bytes(64) + struct.pack("<I", 1000) + b"short" + bytes(20)
    with pytest.raises(DecodeError):
        decode_metaplex_metadata(broken)


def test_token_metadata_payload():
    mint = Pubkey.new_unique()
    payload = token_metadata_payload(mint, "Name", "SYM", "uri", additional=[("a", "1"), ("b", "2")])

    parsed = decode_token_metadata_payload(payload)

    assert parsed.name == "Name"
    assert [(kv.key, kv.value) for kv in parsed.additional_metadata] == [("a", "1"), ("b", "2")]

    with pytest.raises(DecodeError):
        decode_token_metadata_payload(payload[:70])


def test_find_standalone_entry():
    payload = token_metadata_payload(Pubkey.new_unique(), "Name", "SYM", "uri")
    other = bytes(range(1, 9)) + struct.pack("<I", 3) + b"xyz"

    assert find_token_metadata_entry(standalone_token_metadata_account(payload)) == payload
    assert find_token_metadata_entry(other + standalone_token_metadata_account(payload)) == payload
    assert find_token_metadata_entry(other) is None
    assert find_token_metadata_entry(bytes(64)) is None


def test_find_standalone_entry_overrun():
    data = bytes(range(1, 9)) + struct.pack("<I", 50) + borsh_string("x")
    with pytest.raises(MalformedTlvError):
        find_token_metadata_entry(data)

"""
Metadata account layouts.

Two formats normalize to MetadataRecord:

- Metaplex token-metadata accounts (key byte 4), at a PDA derived from the mint.
- spl token-metadata interface records, found either as the TokenMetadata
  extension of a token-2022 mint or inside a standalone account framed with
  the type-length-value library (8-byte discriminator, 4-byte length).
"""

import hashlib
import struct
from typing import Final

from construct import (
    Bytes,
    ConstructError,
    Flag,
    GreedyBytes,
    If,
    Int8ul,
    Int16ul,
    Int32ul,
    Optional,
    PascalString,
    PrefixedArray,
    Struct,
    this,
)
from solders.pubkey import Pubkey

from core.errors import DecodeError, MalformedTlvError, TruncatedDataError
from core.pubkeys import DEFAULT_PUBKEY, METADATA_PROGRAM
from interfaces.records import Creator, MetadataRecord, MetadataSource

METAPLEX_METADATA_KEY: Final[int] = 4  # Key::MetadataV1
METAPLEX_MIN_SIZE: Final[int] = 1 + 32 + 32 + 4 * 3 + 2

# sha256("spl_token_metadata_interface:token_metadata")[:8]
TOKEN_METADATA_DISCRIMINATOR: Final[bytes] = hashlib.sha256(
    b"spl_token_metadata_interface:token_metadata"
).digest()[:8]

BorshString = PascalString(Int32ul, "utf8")

METAPLEX_CREATOR = Struct(
    "address" / Bytes(32),
    "verified" / Flag,
    "share" / Int8ul,
)

METAPLEX_METADATA_LAYOUT = Struct(
    "key" / Int8ul,
    "update_authority" / Bytes(32),
    "mint" / Bytes(32),
    "name" / BorshString,
    "symbol" / BorshString,
    "uri" / BorshString,
    "seller_fee_basis_points" / Int16ul,
    # Everything below is optional on short or legacy accounts. The flags
    # follow the creators, so they are only read once the creators parsed.
    "tail" / Optional(
        Struct(
            "has_creators" / Flag,
            "creators" / If(this.has_creators, PrefixedArray(Int32ul, METAPLEX_CREATOR)),
            "flags" / Optional(Struct("primary_sale_happened" / Flag, "is_mutable" / Flag)),
        )
    ),
    "rest" / GreedyBytes,
)

TOKEN_METADATA_LAYOUT = Struct(
    "update_authority" / Bytes(32),
    "mint" / Bytes(32),
    "name" / BorshString,
    "symbol" / BorshString,
    "uri" / BorshString,
    "additional_metadata" / PrefixedArray(
        Int32ul, Struct("key" / BorshString, "value" / BorshString)
    ),
)


def find_metadata_address(mint: Pubkey) -> Pubkey:
    """Derive the Metaplex metadata PDA for a mint.

    Seeds: ["metadata", metadata program id, mint].
    """
    derived_address, _ = Pubkey.find_program_address(
        [b"metadata", bytes(METADATA_PROGRAM), bytes(mint)],
        METADATA_PROGRAM,
    )
    return derived_address


def optional_pubkey(raw: bytes) -> Pubkey | None:
    """OptionalNonZeroPubkey: an all-zero key means None."""
    key = Pubkey.from_bytes(raw)
    return None if key == DEFAULT_PUBKEY else key


def _clean(text: str) -> str:
    # Metaplex pads name/symbol/uri with NUL bytes to fixed widths
    return text.rstrip("\x00").strip()


def decode_metaplex_metadata(data: bytes, address: Pubkey | None = None) -> MetadataRecord:
    """Decode a Metaplex token-metadata account.

    Raises:
        TruncatedDataError: If data cannot hold the fixed prefix
        DecodeError: If the key byte is not MetadataV1 or the strings are corrupt
    """
    if len(data) < METAPLEX_MIN_SIZE:
        raise TruncatedDataError("metaplex metadata", METAPLEX_MIN_SIZE, len(data))
    if data[0] != METAPLEX_METADATA_KEY:
        raise DecodeError(f"Unexpected metadata account key: {data[0]}")

    try:
        parsed = METAPLEX_METADATA_LAYOUT.parse(data)
    except (ConstructError, UnicodeDecodeError) as e:
        raise DecodeError(f"Failed to decode metaplex metadata: {e!s}") from e

    creators: tuple[Creator, ...] = ()
    flags = None
    if parsed.tail is not None:
        flags = parsed.tail.flags
        if parsed.tail.has_creators:
            creators = tuple(
                Creator(
                    address=Pubkey.from_bytes(c.address),
                    verified=c.verified,
                    share=c.share,
                )
                for c in parsed.tail.creators
            )

    return MetadataRecord(
        mint=Pubkey.from_bytes(parsed.mint),
        name=_clean(parsed.name),
        symbol=_clean(parsed.symbol),
        uri=_clean(parsed.uri),
        update_authority=optional_pubkey(parsed.update_authority),
        seller_fee_basis_points=parsed.seller_fee_basis_points,
        source=MetadataSource.METAPLEX,
        address=address,
        creators=creators,
        primary_sale_happened=flags.primary_sale_happened if flags is not None else None,
        is_mutable=flags.is_mutable if flags is not None else None,
    )


def decode_token_metadata_payload(payload: bytes):
    """Parse a borsh-encoded spl token-metadata record.

    Returns:
        The construct Container with update_authority, mint, name, symbol,
        uri and additional_metadata
    """
    try:
        return TOKEN_METADATA_LAYOUT.parse(payload)
    except (ConstructError, UnicodeDecodeError) as e:
        raise DecodeError(f"Failed to decode token metadata: {e!s}") from e


def token_metadata_to_record(
    update_authority: Pubkey | None,
    mint: Pubkey,
    name: str,
    symbol: str,
    uri: str,
    additional_metadata: tuple[tuple[str, str], ...],
    address: Pubkey | None = None,
) -> MetadataRecord:
    return MetadataRecord(
        mint=mint,
        name=name,
        symbol=symbol,
        uri=uri,
        update_authority=update_authority,
        seller_fee_basis_points=None,
        source=MetadataSource.TOKEN_METADATA,
        address=address,
        additional_metadata=additional_metadata,
    )


def find_token_metadata_entry(data: bytes) -> bytes | None:
    """Find the TokenMetadata value in a standalone TLV account.

    Entries are framed as 8-byte discriminator, 4-byte little-endian length,
    then the value. Scanning stops at an all-zero discriminator.

    Returns:
        The value bytes, or None if the account holds no TokenMetadata entry

    Raises:
        MalformedTlvError: If an entry's length runs past the buffer
    """
    offset = 0
    while len(data) - offset >= 12:
        discriminator = data[offset : offset + 8]
        if not any(discriminator):
            return None
        (length,) = struct.unpack_from("<I", data, offset + 8)
        value_start = offset + 12
        remaining = len(data) - value_start
        if length > remaining:
            raise MalformedTlvError(offset, length, remaining)
        if discriminator == TOKEN_METADATA_DISCRIMINATOR:
            return bytes(data[value_start : value_start + length])
        offset = value_start + length
    return None

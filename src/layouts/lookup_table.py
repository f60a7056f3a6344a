"""
Address lookup table account layout.
"""

from typing import Final

from construct import Bytes, Flag, Int8ul, Int16ul, Int32ul, Int64ul, Struct
from solders.pubkey import Pubkey

from core.errors import DecodeError, TruncatedDataError
from interfaces.records import AddressLookupTableRecord

LOOKUP_TABLE_META_SIZE: Final[int] = 56
LOOKUP_TABLE_TYPE: Final[int] = 1
ACTIVE_DEACTIVATION_SLOT: Final[int] = 2**64 - 1

LOOKUP_TABLE_META_LAYOUT = Struct(
    "type_index" / Int32ul,
    "deactivation_slot" / Int64ul,
    "last_extended_slot" / Int64ul,
    "last_extended_slot_start_index" / Int8ul,
    "has_authority" / Flag,
    "authority" / Bytes(32),
    "padding" / Int16ul,
)


def decode_lookup_table(address: Pubkey, data: bytes) -> AddressLookupTableRecord:
    """Decode an address lookup table: 56-byte header, then 32-byte addresses.

    Raises:
        TruncatedDataError: If data is shorter than the header
        DecodeError: If the table is uninitialized or the address area is ragged
    """
    if len(data) < LOOKUP_TABLE_META_SIZE:
        raise TruncatedDataError("address lookup table", LOOKUP_TABLE_META_SIZE, len(data))

    meta = LOOKUP_TABLE_META_LAYOUT.parse(data[:LOOKUP_TABLE_META_SIZE])
    if meta.type_index != LOOKUP_TABLE_TYPE:
        raise DecodeError(f"Lookup table {address} is not initialized")

    body = data[LOOKUP_TABLE_META_SIZE:]
    if len(body) % 32:
        raise DecodeError(f"Lookup table {address} has a ragged address area ({len(body)} bytes)")

    return AddressLookupTableRecord(
        address=address,
        deactivation_slot=(
            None if meta.deactivation_slot == ACTIVE_DEACTIVATION_SLOT else meta.deactivation_slot
        ),
        last_extended_slot=meta.last_extended_slot,
        last_extended_slot_start_index=meta.last_extended_slot_start_index,
        authority=Pubkey.from_bytes(meta.authority) if meta.has_authority else None,
        addresses=tuple(
            Pubkey.from_bytes(body[i : i + 32]) for i in range(0, len(body), 32)
        ),
    )

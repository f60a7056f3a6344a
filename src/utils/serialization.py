"""
Conversion of explorer records to JSON-friendly structures.
"""

import base64
import dataclasses
from decimal import Decimal
from enum import Enum
from typing import Any

from solders.pubkey import Pubkey
from solders.signature import Signature

from interfaces.extensions import Extension
from interfaces.records import AddressLookupTableRecord, BlockRecord, TokenAccountRecord


def format_amount(amount: int, decimals: int) -> str:
    """Render a raw token amount with its decimals, e.g. 1500000, 6 -> "1.5"."""
    if decimals == 0:
        return str(amount)
    value = Decimal(amount).scaleb(-decimals)
    text = f"{value:.{decimals}f}".rstrip("0").rstrip(".")
    return text or "0"


def to_jsonable(value: Any) -> Any:
    """Recursively convert records into dicts, lists and scalars.

    Pubkeys and signatures become base58 strings, bytes become base64, enums
    their name. Extensions carry their type label and tag.
    """
    if isinstance(value, Enum):
        return value.name.lower()
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (Pubkey, Signature)):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if dataclasses.is_dataclass(value):
        return _dataclass_to_dict(value)
    return str(value)


def _dataclass_to_dict(record: Any) -> dict[str, Any]:
    result: dict[str, Any] = {}
    if isinstance(record, Extension):
        result["type"] = record.label
        result["tag"] = record.extension_tag

    for field in dataclasses.fields(record):
        result[field.name] = to_jsonable(getattr(record, field.name))

    if isinstance(record, TokenAccountRecord) and record.decimals is not None:
        result["ui_amount"] = format_amount(record.amount, record.decimals)
    elif isinstance(record, AddressLookupTableRecord):
        result["is_active"] = record.is_active
    elif isinstance(record, BlockRecord):
        result["total_transactions"] = record.total_transactions
    return result

"""
Transaction envelope to TransactionRecord.

Version 0 transactions reference accounts through address lookup tables. The
node reports the resolved addresses in `meta.loadedAddresses`; when that is
missing the tables are fetched and decoded here. Account ordering follows the
runtime: static keys, then every writable loaded address, then every readonly
one, which is also the order of the balance arrays in the meta.
"""

import json
from collections.abc import Mapping, Sequence
from typing import Any

from solders.pubkey import Pubkey

from core.client import RpcGateway
from core.errors import DecodeError
from interfaces.records import (
    AddressLookupTableRecord,
    RawAccount,
    TransactionAccount,
    TransactionRecord,
)
from layouts.lookup_table import decode_lookup_table
from utils.logger import get_logger

logger = get_logger(__name__)


def lookup_table_keys(message: Mapping[str, Any]) -> list[Pubkey]:
    """Addresses of the lookup tables a message references, in message order."""
    return [
        Pubkey.from_string(lookup["accountKey"])
        for lookup in message.get("addressTableLookups") or []
    ]


async def fetch_lookup_tables(
    gateway: RpcGateway, table_keys: Sequence[Pubkey]
) -> dict[Pubkey, AddressLookupTableRecord]:
    """Fetch and decode lookup tables in one batch.

    Tables that are missing or fail to fetch or decode are logged and left out
    of the result; their addresses then resolve as unknown.
    """
    if not table_keys:
        return {}

    tables: dict[Pubkey, AddressLookupTableRecord] = {}
    fetched = await gateway.fetch_accounts_batch(table_keys)
    for key, result in zip(table_keys, fetched):
        if not isinstance(result, RawAccount):
            logger.warning(f"Lookup table {key} unavailable: {result!s}")
            continue
        try:
            tables[key] = decode_lookup_table(key, result.data)
        except DecodeError as e:
            logger.warning(f"Lookup table {key} did not decode: {e!s}")
    return tables


def _loaded_from_meta(meta: Mapping[str, Any]) -> tuple[list[Pubkey], list[Pubkey]] | None:
    loaded = meta.get("loadedAddresses")
    if not loaded:
        return None
    return (
        [Pubkey.from_string(a) for a in loaded.get("writable", [])],
        [Pubkey.from_string(a) for a in loaded.get("readonly", [])],
    )


def _loaded_from_tables(
    message: Mapping[str, Any], tables: Mapping[Pubkey, AddressLookupTableRecord]
) -> tuple[list[Pubkey | None], list[Pubkey | None]]:
    writable: list[Pubkey | None] = []
    readonly: list[Pubkey | None] = []
    for lookup in message.get("addressTableLookups") or []:
        table = tables.get(Pubkey.from_string(lookup["accountKey"]))
        addresses = table.addresses if table is not None else ()
        for target, indexes in (
            (writable, lookup.get("writableIndexes", [])),
            (readonly, lookup.get("readonlyIndexes", [])),
        ):
            for index in indexes:
                target.append(addresses[index] if index < len(addresses) else None)
    return writable, readonly


def _format_version(version: Any) -> str:
    if version is None or version == "legacy":
        return "legacy"
    return str(version)


def build_transaction_record(
    signature: str,
    envelope: Mapping[str, Any],
    lookup_tables: Mapping[Pubkey, AddressLookupTableRecord] | None = None,
) -> TransactionRecord:
    """Build a TransactionRecord from a getTransaction result.

    Args:
        signature: Transaction signature, base58
        envelope: The `result` of getTransaction (json encoding)
        lookup_tables: Decoded lookup tables, used when the meta does not list
            the loaded addresses

    Returns:
        TransactionRecord
    """
    meta = envelope.get("meta") or {}
    message = envelope["transaction"]["message"]
    header = message["header"]

    static_keys = [Pubkey.from_string(k) for k in message["accountKeys"]]
    num_signers = header["numRequiredSignatures"]
    num_writable_signers = num_signers - header["numReadonlySignedAccounts"]
    num_writable_unsigned = (
        len(static_keys) - num_signers - header["numReadonlyUnsignedAccounts"]
    )

    entries: list[tuple[Pubkey | None, bool, bool]] = []
    for i, key in enumerate(static_keys):
        if i < num_signers:
            entries.append((key, True, i < num_writable_signers))
        else:
            entries.append((key, False, i - num_signers < num_writable_unsigned))

    loaded = _loaded_from_meta(meta)
    if loaded is None and message.get("addressTableLookups"):
        loaded = _loaded_from_tables(message, lookup_tables or {})
    if loaded is not None:
        writable, readonly = loaded
        entries.extend((key, False, True) for key in writable)
        entries.extend((key, False, False) for key in readonly)

    pre_balances = meta.get("preBalances") or []
    post_balances = meta.get("postBalances") or []
    accounts = []
    for i, (key, is_signer, is_writable) in enumerate(entries):
        if key is None:
            logger.warning(f"Account {i} of {signature} could not be resolved")
            continue
        accounts.append(
            TransactionAccount(
                address=key,
                is_signer=is_signer,
                is_writable=is_writable,
                pre_balance=pre_balances[i] if i < len(pre_balances) else None,
                post_balance=post_balances[i] if i < len(post_balances) else None,
            )
        )

    err = meta.get("err")
    return TransactionRecord(
        signature=signature,
        slot=envelope.get("slot", 0),
        block_time=envelope.get("blockTime"),
        success=err is None,
        error=json.dumps(err) if err is not None else None,
        fee=meta.get("fee", 0),
        version=_format_version(envelope.get("version")),
        recent_blockhash=message.get("recentBlockhash", ""),
        compute_units_consumed=meta.get("computeUnitsConsumed"),
        accounts=tuple(accounts),
        log_messages=tuple(meta.get("logMessages") or ()),
    )

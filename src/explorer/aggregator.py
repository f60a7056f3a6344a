"""
Combine decoded pieces into the DisplayRecord handed to the presentation layer.
"""

from collections.abc import Sequence

from interfaces.extensions import Extension
from interfaces.records import (
    AccountRecord,
    DisplayRecord,
    MetadataRecord,
    MintRecord,
    NotFound,
    RawAccount,
    RecordKind,
)


def visible_extensions(
    extensions: Sequence[Extension], include_inactive: bool = False
) -> tuple[Extension, ...]:
    """Drop inactive extensions unless asked to keep them. Order is preserved."""
    if include_inactive:
        return tuple(extensions)
    return tuple(ext for ext in extensions if not ext.is_inactive)


def build_display_record(
    account: RawAccount,
    kind: RecordKind,
    record: AccountRecord,
    extensions: Sequence[Extension] = (),
    metadata: MetadataRecord | NotFound | None = None,
    mint: MintRecord | None = None,
    include_inactive: bool = False,
    raw: bool = False,
    note: str | None = None,
) -> DisplayRecord:
    """Assemble a DisplayRecord.

    Args:
        account: The fetched account
        kind: What the account was decoded as
        record: Decoded fixed-layout record
        extensions: Extensions parsed from the account, in on-chain order
        metadata: Resolved metadata; NotFound is shown as absent
        mint: Mint of a token account, when it was fetched
        include_inactive: Keep extensions whose fields are all zeroed
        raw: Attach the undecoded account data
        note: Free-form remark shown with the record

    Returns:
        DisplayRecord
    """
    # Undecodable accounts always carry their data, it is all there is to show.
    keep_raw = raw or kind == RecordKind.UNKNOWN
    return DisplayRecord(
        address=account.address,
        kind=kind,
        owner_program=account.owner,
        lamports=account.lamports,
        account=record,
        extensions=visible_extensions(extensions, include_inactive),
        metadata=metadata if isinstance(metadata, MetadataRecord) else None,
        mint=mint,
        raw_data=account.data if keep_raw else None,
        note=note,
    )

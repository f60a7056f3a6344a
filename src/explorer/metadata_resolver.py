"""
Mint metadata lookup.

Metadata is tried in this order:

1. The Metaplex metadata account at the PDA derived from the mint.
2. The account named by the mint's MetadataPointer extension. When the
   pointer targets the mint itself the TokenMetadata extension already parsed
   from the mint is used; otherwise the target is fetched and its TLV data
   searched for a token-metadata record.
3. A TokenMetadata extension on the mint without a pointer.

A mint without metadata resolves to NotFound, which callers render as absent.
"""

from collections.abc import Sequence

from solders.pubkey import Pubkey

from core.client import FetchResult, RpcGateway
from core.errors import DecodeError, ExplorerError
from core.pubkeys import ProgramAddresses
from interfaces.extensions import Extension, MetadataPointer, TokenMetadata
from interfaces.records import MetadataRecord, NotFound, RawAccount, RecordKind
from layouts.metadata import (
    decode_metaplex_metadata,
    decode_token_metadata_payload,
    find_metadata_address,
    find_token_metadata_entry,
    optional_pubkey,
    token_metadata_to_record,
)
from layouts.registry import DecodedAccount, LayoutRegistry, layout_registry
from utils.logger import get_logger

logger = get_logger(__name__)


def _first(extensions: Sequence[Extension], kind: type) -> Extension | None:
    return next((e for e in extensions if isinstance(e, kind)), None)


def _record_from_extension(ext: TokenMetadata, address: Pubkey) -> MetadataRecord:
    return token_metadata_to_record(
        update_authority=ext.update_authority,
        mint=ext.mint,
        name=ext.name,
        symbol=ext.symbol,
        uri=ext.uri,
        additional_metadata=ext.additional_metadata,
        address=address,
    )


class MetadataResolver:
    """Finds and decodes the metadata record of a mint."""

    def __init__(self, gateway: RpcGateway, registry: LayoutRegistry = layout_registry):
        """
        Args:
            gateway: RPC gateway used to fetch metadata accounts
            registry: Layout registry used to decode pointed-to token-2022 accounts
        """
        self.gateway = gateway
        self.registry = registry

    async def resolve(
        self, mint: Pubkey, mint_extensions: Sequence[Extension] = ()
    ) -> MetadataRecord | NotFound:
        """Resolve the metadata of a mint.

        Args:
            mint: Mint address
            mint_extensions: Extensions already parsed from the mint account

        Returns:
            MetadataRecord, or NotFound if the mint has no metadata

        Raises:
            NetworkError: If a lookup failed on the network and no other path
                produced metadata
        """
        metaplex_address = find_metadata_address(mint)
        pointer = _first(mint_extensions, MetadataPointer)
        pointer_address = pointer.metadata_address if pointer is not None else None
        embedded = _first(mint_extensions, TokenMetadata)

        targets = [metaplex_address]
        fetch_pointer = pointer_address is not None and pointer_address != mint
        if fetch_pointer:
            targets.append(pointer_address)

        # Both candidate accounts are fetched together; preference order is
        # applied afterwards.
        fetched = await self.gateway.fetch_accounts_batch(targets)
        network_error: ExplorerError | None = None

        record = self._from_metaplex(fetched[0], mint, metaplex_address)
        if isinstance(fetched[0], ExplorerError):
            network_error = fetched[0]
        if record is not None:
            return record

        if fetch_pointer:
            record = self._from_pointer_account(fetched[1], mint, pointer_address)
            if isinstance(fetched[1], ExplorerError):
                network_error = fetched[1]
            if record is not None:
                return record

        if embedded is not None:
            if pointer_address is None:
                logger.debug(f"Mint {mint} has TokenMetadata without a MetadataPointer")
            return _record_from_extension(embedded, mint)

        if network_error is not None:
            raise network_error

        logger.info(f"No metadata found for mint {mint}")
        return NotFound(mint, what="metadata")

    def _from_metaplex(
        self, result: FetchResult, mint: Pubkey, address: Pubkey
    ) -> MetadataRecord | None:
        if not isinstance(result, RawAccount):
            return None
        if result.owner != ProgramAddresses.METADATA_PROGRAM:
            logger.warning(f"Metadata PDA {address} is owned by {result.owner}, ignoring")
            return None
        try:
            record = decode_metaplex_metadata(result.data, address=address)
        except DecodeError as e:
            logger.warning(f"Metaplex metadata for {mint} did not decode: {e!s}")
            return None
        if record.mint != mint:
            logger.warning(f"Metaplex metadata at {address} names mint {record.mint}, ignoring")
            return None
        return record

    def _from_pointer_account(
        self, result: FetchResult, mint: Pubkey, address: Pubkey
    ) -> MetadataRecord | None:
        if not isinstance(result, RawAccount):
            return None

        try:
            if result.owner == ProgramAddresses.TOKEN_2022_PROGRAM:
                record = self._from_token_2022_account(result)
            else:
                record = self._from_tlv_account(result)
        except DecodeError as e:
            logger.warning(f"Metadata account {address} for {mint} did not decode: {e!s}")
            return None

        if record is None:
            logger.info(f"Metadata pointer target {address} holds no token metadata")
            return None
        if record.mint != mint:
            logger.warning(f"Metadata at {address} names mint {record.mint}, not {mint}")
            return None
        return record

    def _from_token_2022_account(self, account: RawAccount) -> MetadataRecord | None:
        decoded = self.registry.decode(account)
        if not isinstance(decoded, DecodedAccount) or decoded.kind != RecordKind.MINT:
            return None
        ext = _first(decoded.extensions, TokenMetadata)
        return _record_from_extension(ext, account.address) if ext is not None else None

    def _from_tlv_account(self, account: RawAccount) -> MetadataRecord | None:
        payload = find_token_metadata_entry(account.data)
        if payload is None:
            return None
        parsed = decode_token_metadata_payload(payload)
        return token_metadata_to_record(
            update_authority=optional_pubkey(parsed.update_authority),
            mint=Pubkey.from_bytes(parsed.mint),
            name=parsed.name,
            symbol=parsed.symbol,
            uri=parsed.uri,
            additional_metadata=tuple((kv.key, kv.value) for kv in parsed.additional_metadata),
            address=account.address,
        )

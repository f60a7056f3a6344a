"""
Query orchestration: one entry point per command kind.

Each query builds its records from scratch; nothing is cached between queries.
"""

import asyncio
import dataclasses
from typing import Any

from solders.pubkey import Pubkey
from solders.signature import Signature

import config as defaults
from core.client import RpcGateway
from core.errors import DecodeError, InvalidInputError, NetworkError, UnknownLayoutError
from core.pubkeys import ProgramAddresses
from explorer.aggregator import build_display_record
from explorer.blocks import build_block_record
from explorer.metadata_resolver import MetadataResolver
from explorer.transactions import (
    build_transaction_record,
    fetch_lookup_tables,
    lookup_table_keys,
)
from interfaces.records import (
    BlockRecord,
    DisplayRecord,
    MetadataRecord,
    MintRecord,
    NotFound,
    RawAccount,
    RecordKind,
    TokenAccountRecord,
    TokenBalance,
    TransactionRecord,
    UnknownLayout,
)
from layouts.registry import DecodedAccount, LayoutRegistry, layout_registry
from utils.logger import get_logger

logger = get_logger(__name__)


def parse_token_balance(keyed_account: dict[str, Any]) -> TokenBalance:
    """Turn one jsonParsed getTokenAccountsByOwner row into a TokenBalance."""
    data = keyed_account["account"]["data"]
    info = data["parsed"]["info"]
    return TokenBalance(
        address=Pubkey.from_string(keyed_account["pubkey"]),
        mint=Pubkey.from_string(info["mint"]),
        ui_amount=info["tokenAmount"]["uiAmountString"],
        program=data.get("program", "unknown"),
    )


class Explorer:
    """Runs account, mint, transaction and block queries against one gateway."""

    def __init__(
        self,
        gateway: RpcGateway,
        registry: LayoutRegistry = layout_registry,
        block_attempts: int = defaults.BLOCK_FETCH_ATTEMPTS,
    ):
        self.gateway = gateway
        self.registry = registry
        self.block_attempts = block_attempts
        self.metadata_resolver = MetadataResolver(gateway, registry)

    async def explore_account(
        self, address: Pubkey, include_inactive: bool = False, raw: bool = False
    ) -> DisplayRecord | NotFound:
        """Fetch, decode and enrich one account.

        Token accounts get their mint's decimals and metadata, mints get their
        metadata, wallets get their token balances. Accounts no decoder
        understands come back as an UNKNOWN record with their raw data.

        Args:
            address: Account address
            include_inactive: Keep extensions whose fields are all zeroed
            raw: Attach the undecoded account data

        Returns:
            DisplayRecord, or NotFound if the account does not exist

        Raises:
            NetworkError: If the account could not be fetched
            DecodeError: If the account's fixed layout is corrupt
        """
        account = await self.gateway.fetch_account(address)
        if isinstance(account, NotFound):
            return account

        decoded = self.registry.decode(account)
        if isinstance(decoded, UnknownLayout):
            return build_display_record(
                account, RecordKind.UNKNOWN, account, raw=raw, note=decoded.reason
            )

        if decoded.kind == RecordKind.TOKEN_ACCOUNT:
            return await self._enrich_token_account(account, decoded, include_inactive, raw)

        if decoded.kind == RecordKind.MINT:
            metadata = await self.metadata_resolver.resolve(address, decoded.extensions)
            return build_display_record(
                account,
                decoded.kind,
                decoded.record,
                extensions=decoded.extensions,
                metadata=metadata,
                include_inactive=include_inactive,
                raw=raw,
            )

        if decoded.kind == RecordKind.SYSTEM:
            balances = await self.token_balances(address)
            record = dataclasses.replace(decoded.record, token_balances=balances)
            return build_display_record(account, decoded.kind, record, raw=raw)

        return build_display_record(
            account,
            decoded.kind,
            decoded.record,
            extensions=decoded.extensions,
            include_inactive=include_inactive,
            raw=raw,
        )

    async def explore_mint(
        self, mint: Pubkey, include_inactive: bool = False, raw: bool = False
    ) -> DisplayRecord | NotFound:
        """Like explore_account, but the address must hold a mint.

        The caller named the account as a mint, so an account no decoder
        understands is an error here instead of the fallback view.

        Raises:
            UnknownLayoutError: If no decoder understands the account
            InvalidInputError: If the account decodes as something else
        """
        result = await self.explore_account(mint, include_inactive=include_inactive, raw=raw)
        if not isinstance(result, DisplayRecord) or result.kind == RecordKind.MINT:
            return result
        if result.kind == RecordKind.UNKNOWN:
            raise UnknownLayoutError(f"{mint} is not a mint: {result.note}")
        raise InvalidInputError(f"{mint} is a {result.kind.value} account, not a mint")

    async def _enrich_token_account(
        self,
        account: RawAccount,
        decoded: DecodedAccount,
        include_inactive: bool,
        raw: bool,
    ) -> DisplayRecord:
        record: TokenAccountRecord = decoded.record
        mint_record: MintRecord | None = None
        metadata: MetadataRecord | NotFound | None = None
        note = None

        mint_account = await self.gateway.fetch_account(record.mint)
        if isinstance(mint_account, NotFound):
            note = f"Mint {record.mint} not found"
        else:
            try:
                mint_decoded = self.registry.decode(mint_account)
            except DecodeError as e:
                logger.warning(f"Mint {record.mint} did not decode: {e!s}")
                mint_decoded = None
                note = f"Mint {record.mint} did not decode: {e!s}"

            if isinstance(mint_decoded, DecodedAccount) and mint_decoded.kind == RecordKind.MINT:
                mint_record = mint_decoded.record
                record = dataclasses.replace(record, decimals=mint_record.decimals)
                metadata = await self.metadata_resolver.resolve(
                    record.mint, mint_decoded.extensions
                )
            elif note is None:
                note = f"Account {record.mint} is not a mint"

        return build_display_record(
            account,
            decoded.kind,
            record,
            extensions=decoded.extensions,
            metadata=metadata,
            mint=mint_record,
            include_inactive=include_inactive,
            raw=raw,
            note=note,
        )

    async def token_balances(self, owner: Pubkey) -> tuple[TokenBalance, ...]:
        """Token accounts held by a wallet under both token programs."""
        results = await asyncio.gather(
            *(
                self.gateway.fetch_token_accounts_by_owner(owner, program_id)
                for program_id in ProgramAddresses.TOKEN_PROGRAMS
            )
        )
        balances = []
        for rows in results:
            for row in rows:
                try:
                    balances.append(parse_token_balance(row))
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Skipping malformed token account row for {owner}: {e!s}")
        return tuple(balances)

    async def explore_transaction(self, signature: Signature) -> TransactionRecord | NotFound:
        """Fetch a transaction and resolve every account it touches.

        Raises:
            NetworkError: If the transaction could not be fetched
        """
        envelope = await self.gateway.fetch_transaction(signature)
        if isinstance(envelope, NotFound):
            return envelope

        meta = envelope.get("meta") or {}
        tables = {}
        if not meta.get("loadedAddresses"):
            message = envelope["transaction"]["message"]
            tables = await fetch_lookup_tables(self.gateway, lookup_table_keys(message))

        try:
            return build_transaction_record(str(signature), envelope, tables)
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError(f"Malformed transaction envelope for {signature}: {e!s}") from e

    async def explore_block(self, slot: int) -> BlockRecord | NotFound:
        """Fetch and summarize one block.

        getBlock is attempted up to `block_attempts` times on top of the
        gateway's own retries, since freshly produced blocks are often not
        yet available.

        Raises:
            InvalidInputError: If slot is negative
            NetworkError: If every attempt failed
        """
        if slot < 0:
            raise InvalidInputError(f"Slot must not be negative, got {slot}")

        for attempt in range(1, self.block_attempts + 1):
            try:
                block = await self.gateway.fetch_block(slot)
                break
            except NetworkError as e:
                if attempt == self.block_attempts:
                    logger.error(f"Failed to fetch block {slot}: {e!s}")
                    raise
                logger.warning(
                    f"Block {slot} attempt {attempt}/{self.block_attempts} failed: {e!s}"
                )

        if isinstance(block, NotFound):
            return block
        try:
            return build_block_record(slot, block)
        except (KeyError, IndexError, TypeError) as e:
            raise DecodeError(f"Malformed block {slot}: {e!s}") from e

    async def explore_blocks(self, start: int, end: int | None = None) -> list[BlockRecord | NotFound]:
        """Summarize every slot from start to end inclusive, in slot order."""
        end = start if end is None else end
        if end < start:
            raise InvalidInputError(f"End slot {end} is before start slot {start}")
        return [await self.explore_block(slot) for slot in range(start, end + 1)]

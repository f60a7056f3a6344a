"""
JSON-RPC gateway to a Solana node.

All calls issued here are idempotent reads, so every one of them is retried on
transient failures with exponential backoff and jitter. A missing account is a
normal NotFound result and is never retried.
"""

import asyncio
import base64
import itertools
import json
import random
from collections.abc import Sequence
from typing import Any

import aiohttp
from solana.rpc.commitment import Commitment, Confirmed, Processed
from solders.pubkey import Pubkey
from solders.signature import Signature

import config as defaults
from core.errors import ExplorerError, NetworkError, RpcResponseError
from interfaces.records import NotFound, RawAccount
from utils.logger import get_logger

logger = get_logger(__name__)

# JSON-RPC error codes worth retrying: node behind / unhealthy, block or
# slot not available yet, generic internal error, rate limiting proxies.
TRANSIENT_RPC_CODES = frozenset({-32004, -32005, -32014, -32016, -32603, 429})
# Skipped slot / long-term storage miss: the block will never be returned.
MISSING_BLOCK_RPC_CODES = frozenset({-32007, -32009})

FetchResult = RawAccount | NotFound | ExplorerError


class RpcGateway:
    """Read-only JSON-RPC client with bounded retries and ordered batching."""

    def __init__(
        self,
        rpc_endpoint: str,
        max_retries: int = defaults.MAX_RETRIES,
        base_delay: float = defaults.RETRY_BASE_DELAY,
        max_delay: float = defaults.RETRY_MAX_DELAY,
        request_timeout: float = defaults.REQUEST_TIMEOUT,
        max_workers: int = defaults.MAX_WORKERS,
        commitment: Commitment = Confirmed,
    ):
        """Initialize the gateway.

        Args:
            rpc_endpoint: URL of the Solana RPC endpoint
            max_retries: Retries after the first attempt for transient failures
            base_delay: First backoff delay in seconds, doubled per attempt
            max_delay: Upper bound for one backoff delay
            request_timeout: Timeout for a single RPC call in seconds
            max_workers: Concurrent calls allowed inside one batch
            commitment: Commitment level sent with every request
        """
        self.rpc_endpoint = rpc_endpoint
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.request_timeout = request_timeout
        self.max_workers = max_workers
        self.commitment = commitment
        self._session: aiohttp.ClientSession | None = None
        self._request_ids = itertools.count(1)

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> "RpcGateway":
        """Build a gateway from a configuration loaded by config_loader."""
        return cls(
            rpc_endpoint=cfg["rpc_endpoint"],
            max_retries=cfg["retries"]["max_attempts"],
            base_delay=cfg["retries"]["base_delay"],
            max_delay=cfg["retries"]["max_delay"],
            request_timeout=cfg["timeouts"]["request"],
            max_workers=cfg["concurrency"]["max_workers"],
            commitment=Commitment(cfg["commitment"]),
        )

    async def __aenter__(self) -> "RpcGateway":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def get_session(self) -> aiohttp.ClientSession:
        """Get or create the HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        """Send one JSON-RPC request, without retrying.

        Raises:
            NetworkError: With `transient` set for timeouts, connection
                failures, rate limiting and 5xx responses
        """
        session = await self.get_session()
        try:
            async with session.post(
                self.rpc_endpoint,
                json=body,
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            ) as response:
                if response.status == 429 or response.status >= 500:
                    raise NetworkError(
                        f"HTTP {response.status} from {self.rpc_endpoint}",
                        transient=True,
                    )
                response.raise_for_status()
                return await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise NetworkError(
                f"Request timed out after {self.request_timeout}s", transient=True
            ) from e
        except aiohttp.ClientResponseError as e:
            raise NetworkError(f"HTTP {e.status}: {e.message}", transient=False) from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"RPC request failed: {e!s}", transient=True) from e
        except json.JSONDecodeError as e:
            raise NetworkError(f"Failed to decode RPC response: {e!s}") from e

    def _backoff_delay(self, attempt: int) -> float:
        """Exponential backoff capped at max_delay, with equal jitter."""
        delay = min(self.max_delay, self.base_delay * 2**attempt)
        return delay / 2 + random.uniform(0, delay / 2)

    async def call(self, method: str, params: list[Any] | None = None) -> Any:
        """Issue a JSON-RPC call and return its `result`.

        Args:
            method: RPC method name
            params: Positional parameters

        Returns:
            The `result` member of the response

        Raises:
            NetworkError: When the call fails terminally or retries run out
        """
        for attempt in range(self.max_retries + 1):
            body = {
                "jsonrpc": "2.0",
                "id": next(self._request_ids),
                "method": method,
                "params": params or [],
            }
            try:
                response = await self._post(body)
                error = response.get("error")
                if error:
                    code = error.get("code", 0)
                    raise RpcResponseError(
                        code,
                        error.get("message", "unknown error"),
                        transient=code in TRANSIENT_RPC_CODES,
                    )
                return response.get("result")

            except NetworkError as e:
                if not e.transient:
                    logger.debug(f"{method} failed terminally: {e!s}")
                    raise
                if attempt == self.max_retries:
                    logger.error(f"{method} failed after {self.max_retries + 1} attempts: {e!s}")
                    raise NetworkError(
                        f"{method} failed after {self.max_retries + 1} attempts: {e!s}",
                        transient=True,
                    ) from e

                wait_time = self._backoff_delay(attempt)
                logger.warning(
                    f"{method} attempt {attempt + 1} failed: {e!s}, retrying in {wait_time:.2f}s"
                )
                await asyncio.sleep(wait_time)

    async def fetch_account(self, address: Pubkey) -> RawAccount | NotFound:
        """Fetch one account.

        Args:
            address: Account address

        Returns:
            RawAccount with base64-decoded data, or NotFound if the account
            does not exist
        """
        result = await self.call(
            "getAccountInfo",
            [str(address), {"encoding": "base64", "commitment": self.commitment}],
        )
        value = (result or {}).get("value")
        if value is None:
            logger.debug(f"Account {address} not found")
            return NotFound(address)
        return parse_account_envelope(address, value)

    async def fetch_accounts_batch(
        self, addresses: Sequence[Pubkey]
    ) -> list[FetchResult]:
        """Fetch several accounts concurrently.

        At most `max_workers` calls are in flight at once. The result list is
        aligned with `addresses`: result[i] is the RawAccount, NotFound or
        error for addresses[i], whatever order the calls complete in. One
        failing fetch does not fail the others.
        """
        results: list[FetchResult | None] = [None] * len(addresses)
        semaphore = asyncio.Semaphore(self.max_workers)

        async def fetch_slot(index: int, address: Pubkey) -> None:
            async with semaphore:
                try:
                    results[index] = await self.fetch_account(address)
                except ExplorerError as e:
                    logger.warning(f"Batch fetch of {address} failed: {e!s}")
                    results[index] = e

        await asyncio.gather(
            *(fetch_slot(i, address) for i, address in enumerate(addresses))
        )
        return results  # type: ignore[return-value]

    async def fetch_transaction(self, signature: Signature) -> dict[str, Any] | NotFound:
        """Fetch a confirmed transaction envelope (json encoding, v0 supported)."""
        # getTransaction does not accept processed commitment
        commitment = Confirmed if self.commitment == Processed else self.commitment
        result = await self.call(
            "getTransaction",
            [
                str(signature),
                {
                    "encoding": "json",
                    "maxSupportedTransactionVersion": 0,
                    "commitment": commitment,
                },
            ],
        )
        if result is None:
            return NotFound(str(signature), what="transaction")
        return result

    async def fetch_block(self, slot: int) -> dict[str, Any] | NotFound:
        """Fetch a block with full transaction details and rewards."""
        commitment = Confirmed if self.commitment == Processed else self.commitment
        try:
            result = await self.call(
                "getBlock",
                [
                    slot,
                    {
                        "encoding": "json",
                        "transactionDetails": "full",
                        "rewards": True,
                        "maxSupportedTransactionVersion": 0,
                        "commitment": commitment,
                    },
                ],
            )
        except RpcResponseError as e:
            if e.code in MISSING_BLOCK_RPC_CODES:
                return NotFound(str(slot), what="block")
            raise
        if result is None:
            return NotFound(str(slot), what="block")
        return result

    async def fetch_token_accounts_by_owner(
        self, owner: Pubkey, program_id: Pubkey
    ) -> list[dict[str, Any]]:
        """List the jsonParsed token accounts `owner` holds under one token program."""
        result = await self.call(
            "getTokenAccountsByOwner",
            [
                str(owner),
                {"programId": str(program_id)},
                {"encoding": "jsonParsed", "commitment": self.commitment},
            ],
        )
        return list((result or {}).get("value") or [])


def parse_account_envelope(address: Pubkey, value: dict[str, Any]) -> RawAccount:
    """Turn a getAccountInfo `value` object into a RawAccount.

    Raises:
        NetworkError: If the node returned a malformed account object
    """
    try:
        data_field = value.get("data") or ["", "base64"]
        if isinstance(data_field, list):
            encoded, encoding = data_field[0], data_field[1]
            if encoding != "base64":
                raise NetworkError(f"Unexpected account data encoding: {encoding}")
        else:
            encoded = data_field

        return RawAccount(
            address=address,
            owner=Pubkey.from_string(value["owner"]),
            data=base64.b64decode(encoded, validate=True),
            lamports=int(value.get("lamports", 0)),
            executable=bool(value.get("executable", False)),
            rent_epoch=int(value.get("rentEpoch", 0)),
        )
    except (AttributeError, IndexError, KeyError, TypeError, ValueError) as e:
        raise NetworkError(f"Malformed account object for {address}: {e!s}") from e

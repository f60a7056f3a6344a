#!/usr/bin/env python3
"""
Command-line interface for the Solana explorer.

Records are printed to stdout as JSON; logs go to stderr.
"""

import argparse
import json
import logging
import sys
from typing import Any

import uvloop

from config_loader import load_explorer_config
from core.address import parse_pubkey, parse_signature
from core.client import RpcGateway
from core.errors import ErrorCategory, ExplorerError
from explorer.service import Explorer
from interfaces.records import NotFound
from utils.logger import get_logger, set_log_level, setup_file_logging
from utils.serialization import to_jsonable

logger = get_logger(__name__)

# Stable exit status per error category
EXIT_CODES: dict[ErrorCategory, int] = {
    ErrorCategory.NETWORK: 3,
    ErrorCategory.NOT_FOUND: 4,
    ErrorCategory.CORRUPT_DATA: 5,
    ErrorCategory.UNKNOWN_LAYOUT: 6,
    ErrorCategory.INVALID_INPUT: 2,
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        prog="solana-explorer",
        description="Inspect Solana accounts, mints, transactions and blocks.",
    )
    parser.add_argument(
        "-u",
        "--url",
        type=str,
        help="RPC endpoint URL or one of main, dev, test, local "
        "(default: $SOLANA_RPC_URL or mainnet-beta)",
    )
    parser.add_argument("--config", type=str, help="YAML configuration file")
    parser.add_argument(
        "--commitment",
        choices=["processed", "confirmed", "finalized"],
        help="Commitment level for every request",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr")
    parser.add_argument("--log-file", type=str, help="Also write logs to this file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (("account", "Decode an account"), ("mint", "Decode a mint")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("address", help="Base-58 address")
        sub.add_argument(
            "--include-inactive",
            action="store_true",
            help="Show extensions whose fields are all zeroed",
        )
        sub.add_argument("--raw", action="store_true", help="Include the raw account data")

    tx = subparsers.add_parser("transaction", aliases=["tx"], help="Show a transaction")
    tx.add_argument("signature", help="Base-58 transaction signature")

    block = subparsers.add_parser("block", help="Summarize one block or a range of blocks")
    block.add_argument("start", type=int, help="Slot")
    block.add_argument("end", type=int, nargs="?", help="Last slot of the range, inclusive")

    return parser.parse_args(argv)


async def run_command(explorer: Explorer, args: argparse.Namespace) -> Any:
    """Dispatch a parsed command to the matching explorer entry point."""
    if args.command == "account":
        return await explorer.explore_account(
            parse_pubkey(args.address), include_inactive=args.include_inactive, raw=args.raw
        )
    if args.command == "mint":
        return await explorer.explore_mint(
            parse_pubkey(args.address), include_inactive=args.include_inactive, raw=args.raw
        )
    if args.command in ("transaction", "tx"):
        return await explorer.explore_transaction(parse_signature(args.signature))
    if args.command == "block":
        if args.end is None:
            return await explorer.explore_block(args.start)
        return await explorer.explore_blocks(args.start, args.end)
    raise ValueError(f"Unknown command: {args.command}")


def print_json(payload: Any) -> None:
    print(json.dumps(to_jsonable(payload), indent=2))


async def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Returns:
        Process exit status
    """
    args = parse_args(argv)

    if args.verbose:
        set_log_level(logging.INFO)

    try:
        cfg = load_explorer_config(
            args.config,
            overrides={"rpc_endpoint": args.url, "commitment": args.commitment},
        )
    except (OSError, ValueError) as e:
        logger.error(f"Invalid configuration: {e!s}")
        return EXIT_CODES[ErrorCategory.INVALID_INPUT]

    log_file = args.log_file or cfg.get("log_file")
    if log_file:
        setup_file_logging(log_file)

    logger.info(f"Using RPC endpoint {cfg['rpc_endpoint']}")
    async with RpcGateway.from_config(cfg) as gateway:
        explorer = Explorer(gateway, block_attempts=cfg["retries"]["block_attempts"])
        try:
            result = await run_command(explorer, args)
        except ExplorerError as e:
            print_json({"error": e.category.value, "message": str(e)})
            return EXIT_CODES[e.category]

    print_json(result)
    if isinstance(result, NotFound):
        return EXIT_CODES[ErrorCategory.NOT_FOUND]
    return 0


def run() -> None:
    """Console-script entry point."""
    try:
        sys.exit(uvloop.run(main()))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)


if __name__ == "__main__":
    run()

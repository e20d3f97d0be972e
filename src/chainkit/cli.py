"""
Command-line interface for chainkit.

Read-only helpers for inspecting chains: balances, fee estimates,
decoding serialized transactions and deriving Substrate storage keys.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

import structlog

from chainkit import __version__
from chainkit.config import get_config
from chainkit.core.errors import ChainError, CodecError, UnsupportedChainError
from chainkit.core.types import Ecosystem
from chainkit.registry import close_providers, get_chain_provider, get_ecosystem, supported_chains
from chainkit.substrate.storage import system_account_key


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if json_format
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper()),
        stream=sys.stderr,
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="chainkit",
        description="Multi-chain transaction toolkit",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: from CHAINKIT_LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs in JSON format",
    )
    parser.add_argument(
        "--rpc-url",
        help="RPC endpoint overriding configured and built-in defaults",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    chains_parser = subparsers.add_parser("chains", help="List supported chain aliases")
    chains_parser.add_argument(
        "--ecosystem",
        choices=[ecosystem.value for ecosystem in Ecosystem],
        help="Only list aliases of this ecosystem",
    )

    balance_parser = subparsers.add_parser("balance", help="Show native or token balance")
    balance_parser.add_argument("--chain", required=True, help="Chain alias")
    balance_parser.add_argument("--address", required=True, help="Account address")
    balance_parser.add_argument(
        "--token",
        help="Token contract address (currency:issuer on XRP)",
    )

    fee_parser = subparsers.add_parser("fee", help="Show slow/standard/fast fee estimates")
    fee_parser.add_argument("--chain", required=True, help="Chain alias")

    decode_parser = subparsers.add_parser("decode", help="Decode a serialized unsigned transaction")
    decode_parser.add_argument("--chain", required=True, help="Chain alias")
    decode_parser.add_argument(
        "--format",
        choices=["raw", "normalised"],
        default="normalised",
        help="Output format (default: normalised)",
    )
    decode_parser.add_argument("serialized", help="Serialized transaction")

    key_parser = subparsers.add_parser("storage-key", help="Substrate System.Account storage key")
    key_parser.add_argument("public_key", help="32-byte account id as hex")

    return parser


def _print_json(data: dict) -> None:
    print(json.dumps(data, indent=2, default=str))


async def show_balance(args: argparse.Namespace) -> None:
    provider = get_chain_provider(args.chain, args.rpc_url)
    try:
        if args.token:
            balance = await provider.get_token_balance(args.address, args.token)
        else:
            balance = await provider.get_native_balance(args.address)
    finally:
        await close_providers()

    print(f"{balance.formatted_balance} {balance.symbol}")
    print(f"  Raw: {balance.balance} (decimals: {balance.decimals})")


async def show_fee(args: argparse.Namespace) -> None:
    provider = get_chain_provider(args.chain, args.rpc_url)
    try:
        estimate = await provider.estimate_fee()
    finally:
        await close_providers()

    print(f"Fee estimates for {args.chain}:")
    for name in ("slow", "standard", "fast"):
        level = getattr(estimate, name)
        print(f"  {name:<9} {level.formatted_fee} ({level.fee})")


def decode_transaction(args: argparse.Namespace) -> None:
    provider = get_chain_provider(args.chain, args.rpc_url)
    decoded = provider.decode(args.serialized, args.format)
    _print_json(decoded.to_dict())


def run(args: argparse.Namespace) -> None:
    """Dispatch a parsed command."""
    if args.command == "chains":
        ecosystem = Ecosystem(args.ecosystem) if args.ecosystem else None
        for alias in supported_chains(ecosystem):
            print(f"{alias:<20} {get_ecosystem(alias).value}")
    elif args.command == "balance":
        asyncio.run(show_balance(args))
    elif args.command == "fee":
        asyncio.run(show_fee(args))
    elif args.command == "decode":
        decode_transaction(args)
    elif args.command == "storage-key":
        print(system_account_key(args.public_key))


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Setup logging
    settings = get_config()
    setup_logging(args.log_level or settings.log_level, args.log_json or settings.log_json)

    try:
        run(args)
    except (ChainError, CodecError, UnsupportedChainError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

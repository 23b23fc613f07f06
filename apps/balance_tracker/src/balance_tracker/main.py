"""Main entry point for balance_tracker.

Usage:
    python -m balance_tracker.main --config conf/balance_tracker.yaml sync
    python -m balance_tracker.main history --after 2025-11-05T00:00:00 --limit 50
    python -m balance_tracker.main record 512.34
    python -m balance_tracker.main status --debug
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from okx_adapter.errors import OkxError

from balance_tracker.config import load_config
from balance_tracker.reporter import print_history, print_json, print_sync_result
from balance_tracker.service import BalanceTrackerService


def setup_logging(debug: bool = False) -> None:
    """Set up logging with console output."""
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    console_formatter = logging.Formatter(
        "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console_handler.setFormatter(console_formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if debug else logging.INFO)
    root_logger.addHandler(console_handler)

    # Reduce noise from libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


async def run_command(service: BalanceTrackerService, args: argparse.Namespace) -> None:
    """Dispatch one CLI command to the service and print its result."""
    command = args.command
    if command == "balance":
        print_json(await service.get_balance())
    elif command == "positions":
        print_json(await service.get_positions())
    elif command == "orders":
        print_json(await service.get_order_history(limit=args.limit))
    elif command == "fills":
        print_json(await service.get_fills(
            inst_type=args.inst_type, inst_id=args.inst_id, limit=args.limit, after=args.after
        ))
    elif command == "bills":
        print_json(await service.get_bills(
            ccy=args.ccy, type=args.type, after=args.after, limit=args.limit
        ))
    elif command == "positions-history":
        print_json(await service.get_positions_history(
            inst_type=args.inst_type, limit=args.limit, after=args.after
        ))
    elif command == "ticker":
        print_json(await service.get_ticker(args.inst_id))
    elif command == "record":
        print_json(service.record_balance(args.value, timestamp=args.timestamp))
    elif command == "history":
        print_history(service.query_history(after=args.after, limit=args.limit))
    elif command == "sync":
        print_sync_result(await service.sync_history())
    elif command == "reset":
        print_json(service.reset_history())
    elif command == "status":
        print_json(await service.check_status())
    elif command == "stats":
        print_json(await service.get_stats())
    else:
        raise ValueError(f"Unknown command: {command}")


def main(args: argparse.Namespace) -> int:
    """Main entry point.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code: 0 on success, 1 on any error
    """
    setup_logging(debug=args.debug)

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        logger.error(f"Config file not found: {e}")
        return 1
    except Exception as e:
        logger.error(f"Config error: {e}")
        return 1

    service = BalanceTrackerService.from_config(config)

    try:
        asyncio.run(run_command(service, args))
    except OkxError as e:
        logger.error(f"OKX request failed ({e.kind}): {e}")
        return 1
    except ValueError as e:
        logger.error(f"Invalid input: {e}")
        return 1

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Balance Tracker: OKX account equity history",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to YAML config file (default: conf/balance_tracker.yaml)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("balance", help="Current account balance")
    sub.add_parser("positions", help="Open positions")
    sub.add_parser("status", help="API connectivity and history status")
    sub.add_parser("stats", help="History totals and current balance")
    sub.add_parser("sync", help="Rebuild history from bills and fills")
    sub.add_parser("reset", help="Delete all stored balance records")

    orders = sub.add_parser("orders", help="Archived orders since the cutoff")
    orders.add_argument("--limit", type=int, default=200)

    fills = sub.add_parser("fills", help="Trade fills since the cutoff")
    fills.add_argument("--inst-type", default="")
    fills.add_argument("--inst-id", default="")
    fills.add_argument("--limit", type=int, default=200)
    fills.add_argument("--after", default=None, help="Pagination cursor")

    bills = sub.add_parser("bills", help="Account bills since the cutoff")
    bills.add_argument("--ccy", default="")
    bills.add_argument("--type", default="")
    bills.add_argument("--limit", type=int, default=500)
    bills.add_argument("--after", default=None, help="Pagination cursor")

    positions_history = sub.add_parser("positions-history", help="Closed positions since the cutoff")
    positions_history.add_argument("--inst-type", default="")
    positions_history.add_argument("--limit", type=int, default=100)
    positions_history.add_argument("--after", default=None, help="Pagination cursor")

    ticker = sub.add_parser("ticker", help="Market ticker for an instrument")
    ticker.add_argument("inst_id", help="Instrument ID (e.g. BTC-USDT-SWAP)")

    record = sub.add_parser("record", help="Store a balance observation")
    record.add_argument("value", help="Balance value")
    record.add_argument("--timestamp", default=None, help="ISO-8601 instant (default: now)")

    history = sub.add_parser("history", help="Show stored balance history")
    history.add_argument("--after", default=None, help="ISO-8601 lower bound (inclusive)")
    history.add_argument("--limit", type=int, default=None, help="Keep only the most recent N records")

    return parser


def cli(argv: Optional[list[str]] = None) -> None:
    """Command-line interface entry point."""
    args = build_parser().parse_args(argv)

    try:
        sys.exit(main(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)


if __name__ == "__main__":
    cli()

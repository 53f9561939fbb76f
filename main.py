# main.py

"""Entry point for the competitor price engine CLI."""

import argparse
import asyncio
import logging
import sys

from competitor_prices.config.logging_config import setup_logging
from competitor_prices.config.settings import Settings

logger = logging.getLogger("competitor_prices.main")


def _add_format_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="table",
        dest="output_format",
        help="Output format (default: table).",
    )


def _add_product_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("product_id", help="Catalog product ID.")
    parser.add_argument(
        "-m", "--model", required=True, help="Product model name.",
    )
    parser.add_argument(
        "-b", "--brand", required=True, help="Product brand.",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    valid_ids = ", ".join(
        s["id"] for s in Settings.AVAILABLE_STRATEGIES
    )

    parser = argparse.ArgumentParser(
        prog="competitor_prices",
        description="Competitor price extraction and caching engine.",
        epilog=f"Registered strategies: {valid_ids}",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    fetch = sub.add_parser(
        "fetch", help="Refresh competitor prices for a product.",
    )
    _add_product_args(fetch)
    _add_format_flag(fetch)

    show = sub.add_parser(
        "show", help="Show cached prices (no network).",
    )
    show.add_argument("product_id", help="Catalog product ID.")
    _add_format_flag(show)

    watch = sub.add_parser(
        "watch",
        help="Show cached prices, refresh, and poll until live.",
    )
    _add_product_args(watch)
    watch.add_argument(
        "-t",
        "--timeout",
        type=float,
        default=None,
        help=f"Polling timeout in seconds (default: {Settings.POLL_TIMEOUT:.0f}).",
    )

    history = sub.add_parser(
        "history", help="Show recorded live price observations.",
    )
    history.add_argument("product_id", help="Catalog product ID.")
    history.add_argument(
        "-c", "--competitor", default=None, help="Limit to one competitor.",
    )
    _add_format_flag(history)

    set_url = sub.add_parser(
        "set-url", help="Save a competitor listing URL for a product.",
    )
    set_url.add_argument("product_id", help="Catalog product ID.")
    set_url.add_argument("competitor", help="Competitor name.")
    set_url.add_argument("url", help="Product page URL.")

    clear = sub.add_parser("clear", help="Clear cached prices.")
    clear.add_argument(
        "product_id", nargs="?", default=None, help="Catalog product ID.",
    )
    clear.add_argument(
        "--all",
        action="store_true",
        default=False,
        dest="clear_all",
        help="Clear every cached snapshot.",
    )

    sub.add_parser(
        "health", help="Run a connectivity check on all marketplaces.",
    )
    return parser


def _dispatch(args: argparse.Namespace) -> int:
    """Run the selected command and return its exit code."""
    from competitor_prices.cli import runner

    if args.command == "fetch":
        return asyncio.run(
            runner.cli_fetch(
                args.product_id, args.model, args.brand,
                args.output_format,
            )
        )
    if args.command == "show":
        return asyncio.run(
            runner.cli_show(args.product_id, args.output_format)
        )
    if args.command == "watch":
        return asyncio.run(
            runner.cli_watch(
                args.product_id, args.model, args.brand, args.timeout,
            )
        )
    if args.command == "history":
        return runner.cli_history(
            args.product_id, args.competitor, args.output_format,
        )
    if args.command == "set-url":
        return runner.cli_set_url(
            args.product_id, args.competitor, args.url,
        )
    if args.command == "clear":
        return runner.cli_clear(
            None if args.clear_all else args.product_id
        )
    return asyncio.run(runner.run_health_check())


def main() -> None:
    """Parse arguments and route to the matching CLI command."""
    log_file = setup_logging()
    logger.info("competitor_prices starting, log file: %s", log_file)

    parser = _build_parser()
    args = parser.parse_args()
    if args.command == "clear" and (
        bool(args.product_id) == args.clear_all
    ):
        parser.error("clear takes either a product ID or --all")

    try:
        exit_code = _dispatch(args)
    except Exception:
        logger.critical("Fatal error during CLI run", exc_info=True)
        raise
    finally:
        logger.info("competitor_prices shutting down")
    sys.exit(exit_code)


if __name__ == "__main__":
    main()

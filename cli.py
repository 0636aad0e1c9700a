"""payments-engine: replay a CSV of operations and print final balances.

Usage:
  payments-engine transactions.csv > accounts.csv

Rejected operations are logged to stderr and do not affect the exit status.
The run aborts (exit 1) only when the input cannot be read, its header is
malformed, or a row cannot be decoded while --strict is on.
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

import structlog

from codec import read_operations, write_snapshot
from config import get_settings, get_settings_for_environment
from exceptions import DecodeError, MalformedInput
from logging_config import configure_logging
from repositories import get_account_repository
from services import LedgerService

logger = structlog.get_logger()

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="payments-engine",
        description="Apply deposits, withdrawals and disputes from a CSV file and print account balances.",
    )
    parser.add_argument("input", help="CSV file with columns type, client, tx, amount")
    parser.add_argument(
        "--strict",
        action="store_true",
        help="abort on the first row that cannot be decoded instead of skipping it",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        type=str.upper,
        choices=LOG_LEVELS,
        help="override LOG_LEVEL",
    )
    parser.add_argument(
        "--env",
        default=None,
        choices=["development", "production", "testing"],
        help="use a predefined settings profile",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    settings = get_settings_for_environment(args.env) if args.env else get_settings()
    if args.log_level:
        settings = settings.model_copy(update={"log_level": args.log_level})
    configure_logging(settings)

    strict = args.strict or settings.strict_decoding
    service = LedgerService(get_account_repository())

    try:
        with open(args.input, newline="", encoding="utf-8") as f:
            report = service.process(read_operations(f, trim=settings.csv_trim), strict=strict)
    except OSError as e:
        logger.error("Cannot read input", path=args.input, error=str(e))
        return 1
    except (MalformedInput, DecodeError) as e:
        logger.error("Input rejected", path=args.input, error_code=e.error_code, detail=e.detail)
        return 1

    write_snapshot(report.accounts, sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main())

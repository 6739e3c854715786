"""CLI entrypoint for norsk-lookup."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from collections.abc import Sequence
from typing import Any

from tqdm import tqdm

from .config import DEFAULT_CLIENT_NAME, DEFAULT_REQUEST_TIMEOUT, LookupConfig
from .engine import LookupEngine
from .errors import ConfigError, ValidationError
from .logging_utils import configure_logging, get_logger
from .models import (
    KIND_HOUSE_NUMBERS,
    KIND_MUNICIPALITY,
    KIND_PHONE,
    KIND_POSTAL_CODE,
    KIND_STREET,
    HouseNumberQuery,
    LookupStatus,
    StreetQuery,
)
from .transport import make_session
from .validation import load_lines_from_file
from .wiring import build_cache, build_engine

COMMAND_KINDS = {
    "municipality": KIND_MUNICIPALITY,
    "street": KIND_STREET,
    "house-numbers": KIND_HOUSE_NUMBERS,
    "phone": KIND_PHONE,
    "postal": KIND_POSTAL_CODE,
}
FAILED_STATUSES = (LookupStatus.ERROR, LookupStatus.UNAVAILABLE)


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--file", help="Read one query per line from a UTF-8 file.")
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_REQUEST_TIMEOUT,
        help="Request timeout in seconds.",
    )
    parser.add_argument("--no-progress", action="store_true", help="Disable tqdm progress bars.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(
        description="Norwegian address, phone-owner and postal-code lookups."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    municipality = subparsers.add_parser("municipality", help="Search municipalities by name.")
    municipality.add_argument("queries", nargs="*", help="Search text (2+ characters).")
    municipality.add_argument(
        "--client-name",
        default=None,
        help=f"ET-Client-Name header (or ET_CLIENT_NAME; default {DEFAULT_CLIENT_NAME}).",
    )

    street = subparsers.add_parser("street", help="Search streets within a municipality.")
    street.add_argument("queries", nargs="*", help="Search text (2+ characters).")
    street.add_argument("--municipality", required=True, help="Municipality id.")
    street.add_argument("--client-name", default=None, help="ET-Client-Name header.")

    house_numbers = subparsers.add_parser("house-numbers", help="List house numbers of a street.")
    house_numbers.add_argument("--municipality", required=True, help="Municipality id.")
    house_numbers.add_argument("--street", required=True, help="Street id.")
    house_numbers.add_argument("--client-name", default=None, help="ET-Client-Name header.")

    phone = subparsers.add_parser("phone", help="Look up the listed owner of a phone number.")
    phone.add_argument("queries", nargs="*", help="8-digit number without country code.")
    phone.add_argument("--api-key", help="1881 subscription key (or set API_1881_KEY env var).")

    postal = subparsers.add_parser("postal", help="Resolve postal codes to postal areas.")
    postal.add_argument("queries", nargs="*", help="4-digit postal code.")
    postal.add_argument("--client-url", help="Bring clientUrl (or set BRING_CLIENT_URL env var).")

    for command in (municipality, street, house_numbers, phone, postal):
        _add_common_options(command)
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse and pre-validate CLI input."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command != "house-numbers" and not (args.queries or args.file):
        parser.error("Provide at least one query or --file.")
    return args


def namespace_to_config(args: argparse.Namespace) -> LookupConfig:
    """Convert CLI args to a validated LookupConfig; the CLI never debounces."""
    options: dict[str, Any] = {
        "address_debounce": 0.0,
        "phone_debounce": 0.0,
        "request_timeout": args.timeout,
        "api_1881_key": getattr(args, "api_key", None) or os.getenv("API_1881_KEY"),
    }
    client_name = getattr(args, "client_name", None) or os.getenv("ET_CLIENT_NAME")
    if client_name:
        options["et_client_name"] = client_name
    client_url = getattr(args, "client_url", None) or os.getenv("BRING_CLIENT_URL")
    if client_url:
        options["bring_client_url"] = client_url
    if args.command == "phone" and not options["api_1881_key"]:
        get_logger().warning("No 1881 key found; phone lookups will report unavailable.")
    return LookupConfig(**options)


def collect_queries(args: argparse.Namespace) -> list[Any]:
    """Turn positional queries and --file lines into engine inputs."""
    if args.command == "house-numbers":
        return [HouseNumberQuery(municipality_id=args.municipality, street_id=args.street)]
    raw: list[str] = list(args.queries or [])
    if args.file:
        raw.extend(load_lines_from_file(args.file))
    if args.command == "street":
        return [StreetQuery(municipality_id=args.municipality, text=text) for text in raw]
    return raw


def _describe(query: Any) -> str:
    if isinstance(query, StreetQuery):
        return query.text
    if isinstance(query, HouseNumberQuery):
        return f"{query.municipality_id}/{query.street_id}"
    return str(query)


async def run_lookups(
    engine: LookupEngine[Any, Any],
    queries: list[Any],
    *,
    show_progress: bool,
) -> list[dict[str, Any]]:
    """Feed queries one by one through an engine and collect printable rows."""
    rows: list[dict[str, Any]] = []
    iterator: Any = queries
    if show_progress and len(queries) > 1:
        iterator = tqdm(queries, desc=f"{engine.kind} lookups")
    for query in iterator:
        row: dict[str, Any] = {"query": _describe(query)}
        try:
            engine.on_query_change(query)
        except ValidationError as exc:
            row.update({"status": "invalid", "data": [], "error": str(exc)})
            rows.append(row)
            continue
        result = await engine.settled()
        status = result.status.value if result.status is not LookupStatus.IDLE else "too-short"
        row.update(
            {
                "status": status,
                "data": [record.to_display() for record in result.data],
                "error": result.error_detail,
            }
        )
        rows.append(row)
    await engine.join()
    return rows


def run(args: argparse.Namespace, config: LookupConfig, *, logger: logging.Logger) -> int:
    """Build the engine for the chosen command, run every query and print JSON lines."""
    kind = COMMAND_KINDS[args.command]
    session = make_session(config.user_agent)
    engine = build_engine(
        kind, config, session=session, cache=build_cache(config), logger=logger
    )
    queries = collect_queries(args)
    try:
        rows = asyncio.run(run_lookups(engine, queries, show_progress=not args.no_progress))
    finally:
        session.close()
    for row in rows:
        print(json.dumps(row, ensure_ascii=False))
    failed = [row for row in rows if row["status"] in {status.value for status in FAILED_STATUSES}]
    logger.info("Completed %d lookup(s), %d failed", len(rows), len(failed))
    return 1 if failed else 0


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    args = parse_args(argv)
    configure_logging(args.verbose)
    logger = get_logger()
    try:
        config = namespace_to_config(args)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2
    return run(args, config, logger=logger)


if __name__ == "__main__":
    raise SystemExit(main())

"""Command-line interface: watch, update, search, chat about and serve tours."""

from __future__ import annotations

import argparse
import json
import logging
import os
import re
import sys
import uuid
from datetime import timedelta
from fractions import Fraction
from typing import Any, Sequence

from tourwatch.app import App
from tourwatch.chat import chat
from tourwatch.date import Date
from tourwatch.notify import NotifyClient
from tourwatch.storage import StorageClient
from tourwatch.tours import NIL_UUID, TourDetail, pretty_summary

logger = logging.getLogger("tourwatch")

DEFAULT_DB = "file::memory:?cache=shared"
DEFAULT_INTERVAL = "15s"
DEFAULT_ADDR = ":7077"
DEFAULT_MODEL = "qwen2.5:7b"

_UNITS = {
    "ns": Fraction(1, 1_000_000_000),
    "us": Fraction(1, 1_000_000),
    "µs": Fraction(1, 1_000_000),
    "μs": Fraction(1, 1_000_000),
    "ms": Fraction(1, 1_000),
    "s": Fraction(1),
    "m": Fraction(60),
    "h": Fraction(3600),
}

_COMPONENT = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


class CliError(Exception):
    """A command failed."""


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "15s", "1h30m" or "250ms"."""
    invalid = ValueError(f'time: invalid duration "{text}"')
    body = text
    sign = 1
    if body.startswith(("+", "-")):
        sign = -1 if body[0] == "-" else 1
        body = body[1:]
    if body == "0":
        return timedelta(0)
    if not body:
        raise invalid
    total = Fraction(0)
    pos = 0
    while pos < len(body):
        match = _COMPONENT.match(body, pos)
        if match is None:
            raise invalid
        number = match.group(1)
        if number.endswith("."):
            number += "0"
        if number.startswith("."):
            number = "0" + number
        total += Fraction(number) * _UNITS[match.group(2)]
        pos = match.end()
    return timedelta(microseconds=int(sign * total * 1_000_000))


def _duration_arg(text: str) -> timedelta:
    try:
        return parse_duration(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _date_arg(text: str) -> Date:
    try:
        return Date.parse(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _env_bool(name: str) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return False
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise CliError(f"could not parse {value!r} as bool value from env var {name!r}")


def setup_app(
    addr: str,
    db_filename: str,
    pushover_app_token: str,
    pushover_recipient_token: str,
    access_token: str,
    debug: bool,
) -> tuple[App, StorageClient]:
    """Open storage and build the application, with notifications if both tokens are given."""
    try:
        storage = StorageClient(db_filename)
    except Exception as exc:
        raise CliError(f"error creating db client: {exc}") from exc

    notify_client = None
    if pushover_app_token and pushover_recipient_token:
        try:
            notify_client = NotifyClient(pushover_app_token, pushover_recipient_token)
        except ValueError as exc:
            storage.close()
            raise CliError(f"error creating notify client: {exc}") from exc

    app = App(addr, access_token, storage, notify_client)
    if debug:
        logger.setLevel(logging.DEBUG)
    return app, storage


def _open_storage(db_filename: str) -> StorageClient:
    try:
        return StorageClient(db_filename)
    except Exception as exc:
        raise CliError(f"error creating db client: {exc}") from exc


def _setup_from_args(args: argparse.Namespace, addr: str = "") -> tuple[App, StorageClient]:
    try:
        return setup_app(
            addr,
            args.db,
            args.pushover_app_token,
            args.pushover_recipient_token,
            args.ventrata_token,
            args.debug,
        )
    except CliError as exc:
        raise CliError(f"error creating app: {exc}") from exc


def _lookup(data: dict, key: str) -> Any:
    if key in data:
        return data[key]
    folded = key.casefold()
    return next((v for k, v in data.items() if k.casefold() == folded), None)


def _tour_from_json(data: Any) -> TourDetail:
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    values = {}
    for attr, key in (("name", "Name"), ("link", "Link"), ("api_url", "ApiUrl")):
        value = _lookup(data, key)
        if value is not None and not isinstance(value, str):
            raise ValueError(f"{key}: expected a string")
        values[attr] = value or ""
    product_id = _lookup(data, "ProductID")
    if product_id is not None and not isinstance(product_id, str):
        raise ValueError("ProductID: expected a string")
    values["product_id"] = uuid.UUID(product_id) if product_id else NIL_UUID
    return TourDetail(**values)


def _cmd_watch(args: argparse.Namespace) -> None:
    app, storage = _setup_from_args(args)
    with storage:
        app.watch(args.interval)


def _cmd_update(args: argparse.Namespace) -> None:
    app, storage = _setup_from_args(args)
    with storage:
        try:
            all_tours = storage.get_all()
        except Exception as exc:
            raise CliError(f"error getting tours: {exc}") from exc
        try:
            app.update_latest_availabilities(all_tours, None)
        except Exception as exc:
            raise CliError(f"error updating availability: {exc}") from exc
        try:
            app.pretty_summary(sys.stdout, all_tours)
        except Exception as exc:
            raise CliError(f"error getting summary: {exc}") from exc


def _cmd_details(args: argparse.Namespace) -> None:
    with _open_storage(args.db) as storage:
        try:
            all_tours = storage.get_all()
        except Exception as exc:
            raise CliError(f"error getting tours: {exc}") from exc
        for tour in all_tours:
            try:
                description = tour.get_description(tour.api_url, args.walks_token)
            except Exception as exc:
                raise CliError(f"error getting description for {tour.name!r}: {exc}") from exc
            print(tour.name)
            print(json.dumps(description.to_dict(), ensure_ascii=False))
            print()


def _cmd_chat(args: argparse.Namespace) -> None:
    with _open_storage(args.db) as storage:
        if args.debug:
            logger.setLevel(logging.DEBUG)
        chat(storage, args.model, args.ventrata_token, args.walks_token)


def _cmd_search(args: argparse.Namespace) -> None:
    try:
        tour_uuid = uuid.UUID(args.tour_id)
    except ValueError as exc:
        raise CliError(f"invalid UUID {args.tour_id!r}: {exc}") from exc
    tour = TourDetail(name="User-provided tour ID", product_id=tour_uuid)
    try:
        slots = tour.get_availability(args.ventrata_token, args.start, args.end)
    except Exception as exc:
        raise CliError(f"error getting availability: {exc}") from exc
    pretty_summary(slots, sys.stdout)


def _cmd_serve(args: argparse.Namespace) -> None:
    app, storage = _setup_from_args(args, addr=args.addr)
    with storage:
        app.run(args.interval)


def _cmd_load(args: argparse.Namespace) -> None:
    with _open_storage(args.db) as storage:
        try:
            with open(args.data or "", encoding="utf-8") as handle:
                text = handle.read()
        except OSError as exc:
            raise CliError(f"error reading JSON file: {exc}") from exc
        try:
            data = json.loads(text)
            if data is None:
                data = []
            if not isinstance(data, list):
                raise ValueError(f"expected a JSON array, got {type(data).__name__}")
            tours = [_tour_from_json(item) for item in data]
        except ValueError as exc:
            raise CliError(f"error parsing JSON data: {exc}") from exc
        for tour in tours:
            if tour.product_id == NIL_UUID:
                tour.product_id = uuid.uuid4()
            try:
                storage.set(tour)
            except Exception as exc:
                raise CliError(f"error inserting tour {tour.name!r}: {exc}") from exc


def _add_interval(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--interval",
        type=_duration_arg,
        default=os.environ.get("INTERVAL", DEFAULT_INTERVAL),
        help="Interval for polling new dates",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="walks-of-italy")
    parser.add_argument(
        "--debug", action="store_true", default=_env_bool("DEBUG"), help="enable debug logs"
    )
    parser.add_argument(
        "--db", default=os.environ.get("DB", DEFAULT_DB), help="filename for SQLite database"
    )
    parser.add_argument(
        "--pushover-app-token",
        default=os.environ.get("PUSHOVER_APP_TOKEN", ""),
        help="App token for Pushover notifications",
    )
    parser.add_argument(
        "--pushover-recipient-token",
        default=os.environ.get("PUSHOVER_RECIPIENT_TOKEN", ""),
        help="Recipient token for Pushover notifications",
    )
    parser.add_argument(
        "--ventrata-token",
        default=os.environ.get("VENTRATA_TOKEN", ""),
        help="Access token for Ventrata booking API",
    )
    parser.add_argument(
        "--walks-token",
        default=os.environ.get("WALKS_TOKEN", ""),
        help="Access token for Walks of Italy API",
    )
    commands = parser.add_subparsers(dest="command")

    watch = commands.add_parser("watch", help="Watch for new tour availabilities")
    _add_interval(watch)
    watch.set_defaults(handler=_cmd_watch)

    update = commands.add_parser("update", help="Update latest availabilities")
    update.set_defaults(handler=_cmd_update)

    details = commands.add_parser("details", help="Print details from details API")
    details.set_defaults(handler=_cmd_details)

    chat_cmd = commands.add_parser("chat", help="Chat with an AI model about the tour dates")
    chat_cmd.add_argument(
        "--model",
        default=os.environ.get("MODEL", DEFAULT_MODEL),
        help="model name to interact with in Ollama",
    )
    chat_cmd.set_defaults(handler=_cmd_chat)

    search = commands.add_parser(
        "search", help="Search for availability of a specified tour in a date range"
    )
    search.add_argument("--tour-id", required=True, help="UUID of a tour to get availability for")
    search.add_argument(
        "--start", type=_date_arg, required=True, help="Date to start the search from"
    )
    search.add_argument("--end", type=_date_arg, required=True, help="Date to end the search at")
    search.set_defaults(handler=_cmd_search)

    serve = commands.add_parser(
        "serve", help="Run server with API and UI. Also watches for new availability"
    )
    _add_interval(serve)
    serve.add_argument(
        "--addr", default=os.environ.get("ADDR", DEFAULT_ADDR), help="address to serve on"
    )
    serve.set_defaults(handler=_cmd_serve)

    load = commands.add_parser("load", help="Load data from a JSON file into the DB")
    load.add_argument("--data", default="", help="filename for JSON data to load")
    load.set_defaults(handler=_cmd_load)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line; returns the process exit status."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    arguments = list(sys.argv[1:] if argv is None else argv)
    try:
        parser = _build_parser()
        args = parser.parse_args(arguments)
        if args.command is None:
            args = parser.parse_args([*arguments, "watch"])
        args.handler(args)
    except KeyboardInterrupt:
        return 130
    except Exception as exc:
        print(exc, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
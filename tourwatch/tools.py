"""Tools a chat model can call to look up tours and their availability."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from typing import Any, Callable

import requests

from tourwatch.date import Date
from tourwatch.storage import StorageClient

_AVAILABILITY_INSTRUCTION = "tell the user about availability. do not describe the json structure."

_TOUR_ID_PROPERTY = {"type": "string", "description": "The UUID for identifying a tour"}


class ToolError(Exception):
    """A tool call could not be decoded or carried out."""


@dataclass(frozen=True)
class GetAllToursInput:
    """Arguments of the getAllTours tool: none."""

    def cache_key(self) -> str:
        return "getAllTours"


@dataclass(frozen=True)
class GetTourDetailsInput:
    """Arguments of the getTourDetails tool."""

    tour_id: str = field(default="", metadata={"key": "tour_id", "kind": "str"})

    def cache_key(self) -> str:
        return "getTourDetails_" + self.tour_id


@dataclass(frozen=True)
class GetAvailabilityInput:
    """Arguments of the getTourAvailability tool."""

    tour_id: str = field(default="", metadata={"key": "tour_id", "kind": "str"})
    start: Date = field(default=Date(0, 0, 0), metadata={"key": "start", "kind": "date"})
    end: Date = field(default=Date(0, 0, 0), metadata={"key": "end", "kind": "date"})

    def cache_key(self) -> str:
        return f"getTourDetails_{self.tour_id}_{self.start}_{self.end}"


def _lookup(data: dict, key: str) -> Any:
    if key in data:
        return data[key]
    folded = key.casefold()
    return next((v for k, v in data.items() if str(k).casefold() == folded), None)


def _coerce(kind: str, value: Any, key: str) -> Any:
    if kind == "str":
        if not isinstance(value, str):
            raise ToolError(f"error decoding input: '{key}' expected a string, got {value!r}")
        return value
    if isinstance(value, Date):
        return value
    if isinstance(value, (str, bytes)):
        try:
            return Date.parse(value)
        except ValueError as exc:
            raise ToolError(f"error decoding input: '{key}': {exc}") from exc
    raise ToolError(f"error decoding input: '{key}' expected a date, got {value!r}")


def _decode_input(cls: type, args: Any) -> Any:
    """Build a tool input from the call's arguments; absent keys keep their zero values."""
    if args is None:
        args = {}
    if not isinstance(args, dict):
        raise ToolError(f"error decoding input: expected a map, got {type(args).__name__}")
    values = {}
    for spec in fields(cls):
        raw = _lookup(args, spec.metadata["key"])
        if raw is not None:
            values[spec.name] = _coerce(spec.metadata["kind"], raw, spec.metadata["key"])
    return cls(**values)


def _function(name: str, description: str, parameters: dict) -> dict:
    return {
        "type": "function",
        "function": {"name": name, "description": description, "parameters": parameters},
    }


def _parameters(required: list[str] | None, properties: dict | None, kind: str = "object") -> dict:
    return {"type": kind, "required": required, "properties": properties}


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


class Tools:
    """Runs tool calls against the stored tours, caching each result by its arguments."""

    def __init__(
        self,
        storage: StorageClient,
        ventrata_token: str,
        walks_token: str,
        logger: logging.Logger | None = None,
    ) -> None:
        self.storage = storage
        self.ventrata_token = ventrata_token
        self.walks_token = walks_token
        self.logger = logger or logging.getLogger("tourwatch")
        self.cache: dict[str, str] = {}

    def execute(self, name: str, args: Any) -> str:
        """Run the named tool with its arguments and return its output."""
        self.logger.debug("tool call name=%s args=%s", name, args)
        handlers: dict[str, tuple[type, Callable[[Any], str]]] = {
            "getAllTours": (GetAllToursInput, self.get_all_tours),
            "getTourDetails": (GetTourDetailsInput, self.get_tour_details),
            "getTourAvailability": (GetAvailabilityInput, self.get_availability),
        }
        if name not in handlers:
            raise ToolError(f"unknown function: {name!r}")
        input_cls, run_tool = handlers[name]
        tool_input = _decode_input(input_cls, args)
        key = tool_input.cache_key()
        if key in self.cache:
            output = self.cache[key]
        else:
            output = run_tool(tool_input)
            self.cache[key] = output
        self.logger.debug("tool call done name=%s args=%s output=%s", name, args, output)
        return output

    def get_all_tours(self, tool_input: GetAllToursInput) -> str:
        """The name and ID of every stored tour, as JSON."""
        try:
            all_tours = self.storage.get_all()
        except Exception as exc:
            raise ToolError(f"error getting tours: {exc}") from exc
        return _dumps([{"Name": tour.name, "ID": str(tour.product_id)} for tour in all_tours])

    def get_tour_details(self, tool_input: GetTourDetailsInput) -> str:
        """The tour's description from the details API, as JSON."""
        try:
            tour = self.storage.get(tool_input.tour_id)
        except (ValueError, LookupError) as exc:
            raise ToolError(f"error getting tour: {exc}") from exc
        try:
            description = tour.get_description(tour.api_url, self.walks_token)
        except (requests.RequestException, ValueError) as exc:
            raise ToolError(f"error getting description for {tour.name!r}: {exc}") from exc
        return _dumps(description.to_dict())

    def get_availability(self, tool_input: GetAvailabilityInput) -> str:
        """The tour's slots between the input's dates, with an instruction for the model."""
        try:
            tour = self.storage.get(tool_input.tour_id)
        except (ValueError, LookupError) as exc:
            raise ToolError(f"error getting tour: {exc}") from exc
        try:
            slots = tour.get_availability(self.ventrata_token, tool_input.start, tool_input.end)
        except (requests.RequestException, ValueError) as exc:
            raise ToolError(f"error getting availability for {tour.name!r}: {exc}") from exc
        return _dumps(
            {
                "availability": [slot.to_dict() for slot in slots],
                "instruction": _AVAILABILITY_INSTRUCTION,
            }
        )

    def definitions(self) -> list[dict]:
        """The tool definitions offered to the model."""
        return [
            _function(
                "getAllTours",
                "Get the name and ID of every walks-of-italy tours",
                _parameters(None, None, kind=""),
            ),
            _function(
                "getTourDetails",
                "Get more specific details about a tour",
                _parameters(["tour_id"], {"tour_id": dict(_TOUR_ID_PROPERTY)}),
            ),
            _function(
                "getTourAvailability",
                "Get a tour's availability for certain dates",
                _parameters(
                    ["tour_id", "start", "end"],
                    {
                        "tour_id": dict(_TOUR_ID_PROPERTY),
                        "start": {
                            "type": "date",
                            "description": "The date to start the search in format 2006-01-02",
                        },
                        "end": {
                            "type": "date",
                            "description": "The date to start the end in format 2006-01-02",
                        },
                    },
                ),
            ),
        ]
"""Tours and their availability as reported by the booking API."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, TextIO
from uuid import UUID

import requests

from tourwatch.date import Date
from tourwatch.description import Description, fetch_description

AVAILABILITY_URL = "https://api.ventrata.com/octo/availability"
_CAPABILITIES = ("octo/pricing",)

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
NIL_UUID = UUID(int=0)

_STR = "str"
_INT = "int"
_BOOL = "bool"
_ANY = "any"
_TIME = "time"

_ZERO = {_STR: "", _INT: 0, _BOOL: False}

_FRACTION = re.compile(r"\.(\d+)")


@dataclass(frozen=True)
class _ListOf:
    item: Any


def _lookup(data: dict, key: str) -> Any:
    """Find a key exactly, falling back to a case-insensitive match."""
    if key in data:
        return data[key]
    folded = key.casefold()
    return next((v for k, v in data.items() if k.casefold() == folded), None)


def _parse_time(value: Any, path: str) -> datetime:
    """Parse an RFC 3339 timestamp; null leaves the zero time."""
    if value is None:
        return ZERO_TIME
    if not isinstance(value, str):
        raise ValueError(f"{path}: cannot use {value!r} as a time")
    text = value
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        moment = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"{path}: cannot parse {value!r} as a time") from exc
    if moment.tzinfo is None:
        raise ValueError(f"{path}: time {value!r} has no UTC offset")
    return moment


def _format_time(moment: datetime) -> str:
    """Write a time as RFC 3339, trimming trailing zeros from fractional seconds."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
    )
    if moment.microsecond:
        text += "." + f"{moment.microsecond:06d}".rstrip("0")
    offset = moment.utcoffset() or timedelta(0)
    if not offset:
        return text + "Z"
    minutes = int(offset.total_seconds()) // 60
    sign = "+" if minutes >= 0 else "-"
    hours, minutes = divmod(abs(minutes), 60)
    return f"{text}{sign}{hours:02d}:{minutes:02d}"


def _format_plain(moment: datetime) -> str:
    return (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d} "
        f"{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
    )


@dataclass
class OpeningHours:
    """One opening-hours window of an availability slot."""

    from_time: str = ""
    to_time: str = ""
    frequency: Any = None
    frequency_amount: Any = None
    frequency_unit: str = ""


@dataclass
class UnitPricing:
    """Price of one unit type, in the currency's minor units."""

    unit_type: str = ""
    original: int = 0
    retail: int = 0
    currency: str = ""
    currency_precision: int = 0


@dataclass
class Pricing:
    """Overall price of an availability slot, in minor units."""

    original: int = 0
    retail: int = 0
    currency: str = ""
    currency_precision: int = 0


@dataclass
class AvailabilityDetail:
    """One bookable slot of a tour."""

    id: datetime = ZERO_TIME
    local_date_time_start: datetime = ZERO_TIME
    local_date_time_end: datetime = ZERO_TIME
    all_day: bool = False
    available: bool = False
    status: str = ""
    vacancies: int = 0
    capacity: int = 0
    pax_count: int = 0
    max_units: int = 0
    utc_cutoff_at: datetime = ZERO_TIME
    opening_hours: list[OpeningHours] | None = None
    meeting_point: str = ""
    meeting_local_date_time: datetime = ZERO_TIME
    tour_group: Any = None
    fare: Any = None
    notices: list[Any] | None = None
    unit_pricing: list[UnitPricing] | None = None
    offers: list[Any] | None = None
    offer_code: Any = None
    offer_title: Any = None
    offer: Any = None
    pricing: Pricing = field(default_factory=Pricing)
    pickup_available: bool = False
    pickup_required: bool = False
    pickup_points: list[Any] | None = None
    has_resources: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> AvailabilityDetail:
        """Build a slot from decoded JSON, filling absent fields with empty values."""
        return _decode(cls, data, "availability")

    def to_dict(self) -> dict:
        """The slot as a JSON-ready dict using the API's key names."""
        return _encode(AvailabilityDetail, self)

    def adult_price(self) -> str:
        """The price for one adult, formatted in dollars."""
        adult = next(
            (p for p in self.unit_pricing or () if p.unit_type == "ADULT"),
            UnitPricing(),
        )
        return f"${adult.retail / 100.0:.2f}"


_NESTED: dict[type, tuple[tuple[str, str, Any], ...]] = {
    OpeningHours: (
        ("from_time", "from", _STR),
        ("to_time", "to", _STR),
        ("frequency", "frequency", _ANY),
        ("frequency_amount", "frequencyAmount", _ANY),
        ("frequency_unit", "frequencyUnit", _STR),
    ),
    UnitPricing: (
        ("unit_type", "unitType", _STR),
        ("original", "original", _INT),
        ("retail", "retail", _INT),
        ("currency", "currency", _STR),
        ("currency_precision", "currencyPrecision", _INT),
    ),
    Pricing: (
        ("original", "original", _INT),
        ("retail", "retail", _INT),
        ("currency", "currency", _STR),
        ("currency_precision", "currencyPrecision", _INT),
    ),
    AvailabilityDetail: (
        ("id", "id", _TIME),
        ("local_date_time_start", "localDateTimeStart", _TIME),
        ("local_date_time_end", "localDateTimeEnd", _TIME),
        ("all_day", "allDay", _BOOL),
        ("available", "available", _BOOL),
        ("status", "status", _STR),
        ("vacancies", "vacancies", _INT),
        ("capacity", "capacity", _INT),
        ("pax_count", "paxCount", _INT),
        ("max_units", "maxUnits", _INT),
        ("utc_cutoff_at", "utcCutoffAt", _TIME),
        ("opening_hours", "openingHours", _ListOf(OpeningHours)),
        ("meeting_point", "meetingPoint", _STR),
        ("meeting_local_date_time", "meetingLocalDateTime", _TIME),
        ("tour_group", "tourGroup", _ANY),
        ("fare", "fare", _ANY),
        ("notices", "notices", _ListOf(_ANY)),
        ("unit_pricing", "unitPricing", _ListOf(UnitPricing)),
        ("offers", "offers", _ListOf(_ANY)),
        ("offer_code", "offerCode", _ANY),
        ("offer_title", "offerTitle", _ANY),
        ("offer", "offer", _ANY),
        ("pricing", "pricing", Pricing),
        ("pickup_available", "pickupAvailable", _BOOL),
        ("pickup_required", "pickupRequired", _BOOL),
        ("pickup_points", "pickupPoints", _ListOf(_ANY)),
        ("has_resources", "hasResources", _BOOL),
    ),
}


def _decode(kind: Any, value: Any, path: str) -> Any:
    """Coerce a decoded JSON value into the shape described by kind."""
    if isinstance(kind, _ListOf):
        if value is None:
            return None
        if not isinstance(value, list):
            raise ValueError(f"{path}: expected an array, got {type(value).__name__}")
        return [_decode(kind.item, item, f"{path}[{n}]") for n, item in enumerate(value)]
    if isinstance(kind, type):
        if value is None:
            value = {}
        if not isinstance(value, dict):
            raise ValueError(f"{path}: expected an object, got {type(value).__name__}")
        return kind(
            **{
                attr: _decode(sub, _lookup(value, key), f"{path}.{key}")
                for attr, key, sub in _NESTED[kind]
            }
        )
    if kind == _ANY:
        return value
    if kind == _TIME:
        return _parse_time(value, path)
    if value is None:
        return _ZERO[kind]
    if kind == _STR and isinstance(value, str):
        return value
    if kind == _INT and isinstance(value, int) and not isinstance(value, bool):
        return value
    if kind == _BOOL and isinstance(value, bool):
        return value
    raise ValueError(f"{path}: cannot use {value!r} as {kind}")


def _encode(kind: Any, value: Any) -> Any:
    """Turn a decoded value back into JSON-ready data."""
    if isinstance(kind, _ListOf):
        if value is None:
            return None
        return [_encode(kind.item, item) for item in value]
    if isinstance(kind, type):
        return {key: _encode(sub, getattr(value, attr)) for attr, key, sub in _NESTED[kind]}
    if kind == _TIME:
        return _format_time(value)
    return value


@dataclass(frozen=True)
class AvailabilityRequest:
    """The body of an availability search."""

    product_id: UUID
    local_date_start: Date
    local_date_end: Date
    option_id: str = "DEFAULT"
    currency: str = "USD"

    def to_json(self) -> str:
        """The request body as a line of JSON."""
        body = {
            "productId": str(self.product_id),
            "optionId": self.option_id,
            "localDateStart": str(self.local_date_start),
            "localDateEnd": str(self.local_date_end),
            "currency": self.currency,
        }
        return json.dumps(body, separators=(",", ":")) + "\n"


def new_availability_request(product_id: UUID, start: Date, end: Date) -> AvailabilityRequest:
    """A request for the default option priced in US dollars."""
    return AvailabilityRequest(product_id=product_id, local_date_start=start, local_date_end=end)


@dataclass
class TourDetail:
    """A tour being watched."""

    name: str = ""
    link: str = ""
    api_url: str = ""
    product_id: UUID = NIL_UUID

    def get_id(self) -> str:
        return str(self.product_id)

    def get_availability(
        self, access_token: str, start: Date, end: Date
    ) -> list[AvailabilityDetail]:
        """Fetch every slot between start and end."""
        request = new_availability_request(self.product_id, start, end)
        response = requests.post(
            AVAILABILITY_URL,
            data=request.to_json().encode(),
            headers={
                "Content-Type": "application/json",
                "Octo-Capabilities": ",".join(_CAPABILITIES),
                "Octo-Env": "live",
                "Authorization": f"Bearer {access_token}",
            },
        )
        body = response.text
        if response.status_code != 200:
            raise requests.HTTPError(
                f"unexpected response code: {response.status_code}, body: {body!r}",
                response=response,
            )
        try:
            data = json.loads(body)
        except json.JSONDecodeError as exc:
            raise ValueError(f"error parsing response: {exc}") from exc
        if data is None:
            return []
        if not isinstance(data, list):
            raise ValueError(f"error parsing response: expected an array, got {type(data).__name__}")
        try:
            return [AvailabilityDetail.from_dict(item) for item in data]
        except ValueError as exc:
            raise ValueError(f"error parsing response: {exc}") from exc

    def find_availability(
        self,
        access_token: str,
        start: Date,
        end: Date,
        availability_filter: Callable[[AvailabilityDetail], bool] | None,
    ) -> list[AvailabilityDetail]:
        """Fetch slots between start and end, keeping those the filter accepts."""
        if availability_filter is None:
            raise ValueError("missing availabilityFilter")
        return [
            slot
            for slot in self.get_availability(access_token, start, end)
            if availability_filter(slot)
        ]

    def get_latest_availability(self, access_token: str) -> AvailabilityDetail:
        """The furthest available slot within the coming year."""
        start = Date.from_datetime(datetime.now())
        end = start.add(1, 0, 0)
        latest = AvailabilityDetail(local_date_time_start=start.to_datetime())
        for slot in self.get_availability(access_token, start, end):
            if slot.available and slot.local_date_time_start > latest.local_date_time_start:
                latest = slot
        return latest

    def get_description(self, url: str, access_token: str) -> Description:
        """Fetch the tour's description from the details API."""
        return fetch_description(url, access_token)


def pretty_summary(availabilities: Iterable[AvailabilityDetail], out: TextIO) -> None:
    """Write a table of slot dates, adult prices and vacancies."""
    out.write("\n Date                 | Price   | Vacancies\n")
    out.write("----------------------|---------|-------------\n")
    for slot in availabilities:
        out.write(
            f"{_format_plain(slot.local_date_time_start)}   | "
            f"{slot.adult_price()} | {slot.vacancies}\n"
        )
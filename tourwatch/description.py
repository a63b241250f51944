"""Tour descriptions returned by the tour details API."""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from typing import Any

import requests

_STR = "str"
_INT = "int"
_FLOAT = "float"
_BOOL = "bool"
_ANY = "any"


@dataclass(frozen=True)
class _ListOf:
    item: Any


_STARS_GROUP = {str(n): _INT for n in range(6)}

_REVIEW_STATUS = {
    "feedbackAverage": _FLOAT,
    "feedbackCount": _INT,
    "feedback_count": _INT,
    "feedback_average": _FLOAT,
    "starsGroup": _STARS_GROUP,
    "thirdPartyTotalReview": _INT,
}

_RESTRICTIONS = {
    "minUnits": _INT,
    "maxUnits": _ANY,
    "minPaxCount": _INT,
    "maxPaxCount": _ANY,
}

_OPTIONS = {
    "id": _STR,
    "default": _BOOL,
    "internalName": _STR,
    "reference": _ANY,
    "tags": _ListOf(_ANY),
    "availabilityLocalStartTimes": _ListOf(_STR),
    "availabilityLocalDateStart": _STR,
    "availabilityLocalDateEnd": _ANY,
    "cancellationCutoff": _STR,
    "cancellationCutoffAmount": _INT,
    "cancellationCutoffUnit": _STR,
    "availabilityCutoff": _STR,
    "availabilityCutoffAmount": _INT,
    "availabilityCutoffUnit": _STR,
    "visibleContactFields": _ListOf(_STR),
    "requiredContactFields": _ListOf(_STR),
    "restrictions": _RESTRICTIONS,
    "title": _STR,
    "subtitle": _ANY,
    "language": _STR,
    "shortDescription": _STR,
    "duration": _STR,
    "durationAmount": _INT,
    "durationUnit": _STR,
    "coverImageUrl": _STR,
    "itinerary": _ANY,
    "fromPoint": _ANY,
    "toPoint": _ANY,
}

_CONTACT = {
    "name": _STR,
    "email": _STR,
    "telephone": _ANY,
    "address": _ANY,
    "website": _STR,
}

_BRAND = {
    "id": _STR,
    "name": _STR,
    "backgroundColor": _STR,
    "checkoutLogoUrl": _STR,
    "color": _STR,
    "secondaryColor": _STR,
    "faviconUrl": _ANY,
    "logoUrl": _STR,
    "logoWhiteUrl": _ANY,
    "accentFont": _ANY,
    "bodyFont": _ANY,
    "headerFont": _ANY,
    "contact": _CONTACT,
}

_DESTINATION = {
    "id": _STR,
    "default": _BOOL,
    "name": _STR,
    "title": _STR,
    "shortDescription": _ANY,
    "featured": _BOOL,
    "tags": _ListOf(_ANY),
    "country": _STR,
    "contact": _CONTACT,
    "brand": _BRAND,
    "address": _ANY,
    "googlePlaceId": _ANY,
    "latitude": _ANY,
    "longitude": _ANY,
    "coverImageUrl": _STR,
    "bannerImageUrl": _ANY,
    "videoUrl": _ANY,
    "facebookUrl": _ANY,
    "googleUrl": _ANY,
    "tripadvisorUrl": _ANY,
    "twitterUrl": _ANY,
    "youtubeUrl": _ANY,
    "instagramUrl": _ANY,
    "notices": _ListOf(_ANY),
    "defaultCurrency": _STR,
    "availableCurrencies": _ListOf(_STR),
}

_PRODUCT = {
    "id": _STR,
    "tags": _ListOf(_STR),
    "locale": _STR,
    "timeZone": _STR,
    "allowFreesale": _BOOL,
    "freesaleDurationAmount": _INT,
    "freesaleDurationUnit": _STR,
    "instantConfirmation": _BOOL,
    "instantDelivery": _BOOL,
    "availabilityRequired": _BOOL,
    "options": _ListOf(_OPTIONS),
    "title": _STR,
    "country": _STR,
    "location": _STR,
    "address": _ANY,
    "googlePlaceId": _ANY,
    "latitude": _ANY,
    "longitude": _ANY,
    "subtitle": _ANY,
    "tagline": _ANY,
    "keywords": _ListOf(_ANY),
    "pointToPoint": _BOOL,
    "shortDescription": _STR,
    "description": _ANY,
    "highlights": _ListOf(_STR),
    "alert": _ANY,
    "inclusions": _ListOf(_STR),
    "exclusions": _ListOf(_STR),
    "bookingTerms": _ANY,
    "privacyTerms": _ANY,
    "redemptionInstructions": _ANY,
    "cancellationPolicy": _STR,
    "faqs": _ListOf(_ANY),
    "destination": _DESTINATION,
    "categories": _ListOf(_ANY),
    "defaultCurrency": _STR,
    "availableCurrencies": _ListOf(_STR),
    "includeTax": _BOOL,
    "pricingPer": _STR,
    "outstandingBalanceTitle": _ANY,
    "outstandingBalanceShortDescription": _ANY,
}

_CURRENCIES = {
    "id": _STR,
    "rate": _FLOAT,
    "label": _STR,
    "currencyId": _INT,
    "isGeoCurrency": _BOOL,
    "isDefault": _BOOL,
}

_VENTRATA_CURRENCIES = {
    "original": _INT,
    "retail": _INT,
    "net": _ANY,
    "currency": _STR,
    "currencyPrecision": _INT,
    "includedTaxes": _ListOf(_ANY),
}

_PRICE_MAP = {
    "anchorPrice": _INT,
    "ventrataPrice": _INT,
    "discountedPrice": _INT,
    "currencies": _ListOf(_CURRENCIES),
    "ventrataCurrencies": _ListOf(_VENTRATA_CURRENCIES),
}

_ZERO = {_STR: "", _INT: 0, _FLOAT: 0.0, _BOOL: False, _ANY: None}


def _lookup(data: dict, key: str) -> Any:
    """Find a key exactly, falling back to a case-insensitive match."""
    if key in data:
        return data[key]
    folded = key.casefold()
    return next((v for k, v in data.items() if k.casefold() == folded), None)


def _decode(kind: Any, value: Any, path: str) -> Any:
    """Coerce a decoded JSON value into the shape described by kind."""
    if isinstance(kind, dict):
        if value is None:
            value = {}
        if not isinstance(value, dict):
            raise ValueError(f"{path or 'value'}: expected an object, got {type(value).__name__}")
        return {
            key: _decode(sub, _lookup(value, key), f"{path}.{key}" if path else key)
            for key, sub in kind.items()
        }
    if isinstance(kind, _ListOf):
        if value is None:
            return None
        if not isinstance(value, list):
            raise ValueError(f"{path}: expected an array, got {type(value).__name__}")
        return [_decode(kind.item, item, f"{path}[{n}]") for n, item in enumerate(value)]
    if kind == _ANY:
        return value
    if value is None:
        return _ZERO[kind]
    if kind == _STR and isinstance(value, str):
        return value
    if kind == _INT and isinstance(value, int) and not isinstance(value, bool):
        return value
    if kind == _FLOAT and isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if kind == _BOOL and isinstance(value, bool):
        return value
    raise ValueError(f"{path}: cannot use {value!r} as {kind}")


_FIELDS = (
    ("event_id", "eventId", _STR),
    ("city_slug", "citySlug", _STR),
    ("city_name", "cityName", _STR),
    ("city_slugs", "citySlugs", _ListOf(_STR)),
    ("short_title", "shortTitle", _STR),
    ("tour_page_url", "tourPageUrl", _STR),
    ("booking_type_id", "bookingTypeId", _INT),
    ("property_id", "propertyId", _STR),
    ("tour_page_meta_title", "tourPageMetaTitle", _STR),
    ("tour_page_meta_description", "tourPageMetaDescription", _STR),
    ("tour_start_time", "tourStartTime", _STR),
    ("max_group_size", "maxGroupSize", _STR),
    ("duration", "duration", _STR),
    ("flag", "flag", _STR),
    ("listing_text", "listingText", _STR),
    ("highlights", "highlights", _STR),
    ("description", "description", _STR),
    ("name", "name", _STR),
    ("title", "title", _STR),
    ("tour_includes", "tourIncludes", _ListOf(_STR)),
    ("sites_visited", "sitesVisited", _ListOf(_STR)),
    ("listing_image_title", "listingImageTitle", _STR),
    ("tour_important_info", "tourImportantInfo", _STR),
    ("promo", "promo", _ANY),
    ("awards", "awards", _ListOf(_ANY)),
    ("review_status", "reviewStatus", _REVIEW_STATUS),
    ("product", "product", _PRODUCT),
    ("price_map", "priceMap", _PRICE_MAP),
)


@dataclass
class Description:
    """A tour's descriptive details; nested sections are kept as normalised dicts."""

    event_id: str = ""
    city_slug: str = ""
    city_name: str = ""
    city_slugs: list[str] | None = None
    short_title: str = ""
    tour_page_url: str = ""
    booking_type_id: int = 0
    property_id: str = ""
    tour_page_meta_title: str = ""
    tour_page_meta_description: str = ""
    tour_start_time: str = ""
    max_group_size: str = ""
    duration: str = ""
    flag: str = ""
    listing_text: str = ""
    highlights: str = ""
    description: str = ""
    name: str = ""
    title: str = ""
    tour_includes: list[str] | None = None
    sites_visited: list[str] | None = None
    listing_image_title: str = ""
    tour_important_info: str = ""
    promo: Any = None
    awards: list[Any] | None = None
    review_status: dict = field(default_factory=lambda: _decode(_REVIEW_STATUS, None, "reviewStatus"))
    product: dict = field(default_factory=lambda: _decode(_PRODUCT, None, "product"))
    price_map: dict = field(default_factory=lambda: _decode(_PRICE_MAP, None, "priceMap"))

    @classmethod
    def from_dict(cls, data: Any) -> Description:
        """Build a description from decoded JSON, filling absent fields with empty values."""
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"expected an object, got {type(data).__name__}")
        return cls(**{attr: _decode(kind, _lookup(data, key), key) for attr, key, kind in _FIELDS})

    def to_dict(self) -> dict:
        """The description as a JSON-ready dict using the API's key names."""
        return {key: copy.deepcopy(getattr(self, attr)) for attr, key, _ in _FIELDS}


def fetch_description(url: str, access_token: str) -> Description:
    """Fetch and decode a tour description from the details API."""
    response = requests.get(url, headers={"Authorization": f"Bearer {access_token}"})
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
    try:
        return Description.from_dict(data)
    except ValueError as exc:
        raise ValueError(f"error parsing response: {exc}") from exc
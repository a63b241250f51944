import json

import pytest
import requests
import responses

from tourwatch.description import Description, fetch_description

URL = "http://localhost/api/tour"


def _sample():
    return {
        "eventId": "evt-1",
        "cityName": "Rome",
        "citySlugs": ["rome", "vatican"],
        "bookingTypeId": 3,
        "name": "Vatican Tour",
        "reviewStatus": {"feedbackAverage": 4, "starsGroup": {"5": 10}},
        "product": {"id": "prod-1", "options": [{"id": "DEFAULT", "restrictions": {"minUnits": 1}}]},
        "priceMap": {"anchorPrice": 9900, "currencies": [{"id": "USD", "rate": 1}]},
        "unknownField": "ignored",
    }


def test_from_dict_reads_top_level_fields():
    desc = Description.from_dict(_sample())
    assert desc.event_id == "evt-1"
    assert desc.city_name == "Rome"
    assert desc.city_slugs == ["rome", "vatican"]
    assert desc.booking_type_id == 3
    assert desc.name == "Vatican Tour"


def test_missing_fields_get_empty_values():
    desc = Description.from_dict({})
    assert desc.title == ""
    assert desc.booking_type_id == 0
    assert desc.tour_includes is None
    assert desc.review_status["starsGroup"]["0"] == 0
    assert desc.product["destination"]["brand"]["contact"]["email"] == ""


def test_nested_values_are_normalised():
    desc = Description.from_dict(_sample())
    assert desc.review_status["feedbackAverage"] == 4.0
    assert isinstance(desc.review_status["feedbackAverage"], float)
    assert desc.review_status["starsGroup"]["5"] == 10
    option = desc.product["options"][0]
    assert option["id"] == "DEFAULT"
    assert option["restrictions"]["minUnits"] == 1
    assert option["restrictions"]["maxUnits"] is None
    assert desc.price_map["currencies"][0]["rate"] == 1.0


def test_unknown_fields_are_dropped():
    data = Description.from_dict(_sample()).to_dict()
    assert "unknownField" not in data
    assert data["eventId"] == "evt-1"


def test_round_trip_through_dict_and_json():
    desc = Description.from_dict(_sample())
    again = Description.from_dict(json.loads(json.dumps(desc.to_dict())))
    assert again == desc


def test_keys_match_case_insensitively():
    desc = Description.from_dict({"EVENTID": "evt-2"})
    assert desc.event_id == "evt-2"


@pytest.mark.parametrize(
    "data",
    [
        {"bookingTypeId": "three"},
        {"name": 5},
        {"citySlugs": "rome"},
        {"bookingTypeId": 1.5},
        {"product": {"allowFreesale": "yes"}},
        ["not", "an", "object"],
    ],
)
def test_type_mismatch_raises(data):
    with pytest.raises(ValueError):
        Description.from_dict(data)


def test_fetch_description_sends_bearer_token():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, URL, json=_sample(), status=200)
        desc = fetch_description(URL, "token")
        auth = rsps.calls[0].request.headers["Authorization"]
    assert desc.name == "Vatican Tour"
    assert auth == "Bearer token"


def test_fetch_description_rejects_bad_status():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, URL, body="nope", status=500)
        with pytest.raises(requests.HTTPError) as info:
            fetch_description(URL, "token")
    assert "500" in str(info.value)
    assert "nope" in str(info.value)


def test_fetch_description_rejects_bad_json():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, URL, body="{not json", status=200)
        with pytest.raises(ValueError):
            fetch_description(URL, "token")
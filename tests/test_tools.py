import json
from uuid import UUID

import pytest
import responses

from tourwatch.date import Date
from tourwatch.storage import StorageClient
from tourwatch.tools import (
    GetAllToursInput,
    GetAvailabilityInput,
    GetTourDetailsInput,
    ToolError,
    Tools,
)
from tourwatch.tours import AVAILABILITY_URL, TourDetail

TOUR_ID = UUID("12345678-1234-5678-1234-567812345678")
DETAILS_URL = "https://details.example.com/tours/colosseum"


@pytest.fixture
def storage():
    client = StorageClient(":memory:")
    client.set(
        TourDetail(
            name="Colosseum Tour",
            link="https://tours.example.com/colosseum",
            api_url=DETAILS_URL,
            product_id=TOUR_ID,
        )
    )
    yield client
    client.close()


@pytest.fixture
def tools(storage):
    return Tools(storage, "token", "token")


def test_cache_keys():
    assert GetAllToursInput().cache_key() == "getAllTours"
    assert GetTourDetailsInput(tour_id="abc").cache_key() == "getTourDetails_abc"
    key = GetAvailabilityInput("abc", Date(2025, 3, 30), Date(2025, 4, 2)).cache_key()
    assert key == "getTourDetails_abc_2025-03-30_2025-04-02"


def test_get_all_tours_lists_names_and_ids(tools):
    output = json.loads(tools.get_all_tours(GetAllToursInput()))
    assert output == [{"Name": "Colosseum Tour", "ID": str(TOUR_ID)}]


def test_execute_caches_results(tools, storage):
    first = tools.execute("getAllTours", {})
    storage.set(TourDetail(name="Vatican", product_id=UUID(int=7)))
    second = tools.execute("getAllTours", {})
    assert first == second
    assert len(json.loads(second)) == 1
    assert tools.cache["getAllTours"] == first


def test_execute_unknown_function(tools):
    with pytest.raises(ToolError, match="unknown function"):
        tools.execute("bookTour", {})


def test_execute_rejects_bad_date(tools):
    with pytest.raises(ToolError, match="error decoding input"):
        tools.execute("getTourAvailability", {"tour_id": str(TOUR_ID), "start": "soon"})


def test_execute_rejects_non_string_tour_id(tools):
    with pytest.raises(ToolError, match="error decoding input"):
        tools.execute("getTourDetails", {"tour_id": 42})


def test_get_tour_details_unknown_tour(tools):
    with pytest.raises(ToolError, match="error getting tour"):
        tools.execute("getTourDetails", {"tour_id": str(UUID(int=99))})


def test_get_tour_details_fetches_description(tools):
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            DETAILS_URL,
            json={"name": "Colosseum Underground", "cityName": "Rome"},
        )
        output = json.loads(tools.execute("getTourDetails", {"tour_id": str(TOUR_ID)}))
        auth = rsps.calls[0].request.headers["Authorization"]
    assert output["name"] == "Colosseum Underground"
    assert output["cityName"] == "Rome"
    assert auth == "Bearer token"


def test_get_availability_round_trip_and_cache(tools):
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST,
            AVAILABILITY_URL,
            json=[
                {
                    "id": "2025-04-01T09:00:00+02:00",
                    "localDateTimeStart": "2025-04-01T09:00:00+02:00",
                    "available": True,
                    "vacancies": 5,
                    "unitPricing": [{"unitType": "ADULT", "retail": 6500}],
                }
            ],
        )
        args = {"tour_id": str(TOUR_ID), "start": "2025-04-01", "end": "2025-04-03"}
        output = json.loads(tools.execute("getTourAvailability", args))
        assert output["instruction"] == (
            "tell the user about availability. do not describe the json structure."
        )
        slot = output["availability"][0]
        assert slot["localDateTimeStart"] == "2025-04-01T09:00:00+02:00"
        assert slot["vacancies"] == 5

        body = json.loads(rsps.calls[0].request.body)
        assert body["productId"] == str(TOUR_ID)
        assert body["localDateStart"] == "2025-04-01"
        assert body["localDateEnd"] == "2025-04-03"

        again = json.loads(tools.execute("getTourAvailability", args))
        assert again == output
        assert len(rsps.calls) == 1


def test_definitions(tools):
    definitions = tools.definitions()
    names = [d["function"]["name"] for d in definitions]
    assert names == ["getAllTours", "getTourDetails", "getTourAvailability"]
    availability = definitions[2]["function"]["parameters"]
    assert availability["required"] == ["tour_id", "start", "end"]
    assert availability["properties"]["start"]["type"] == "date"
    assert all(d["type"] == "function" for d in definitions)
import io
import json
import threading
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
import responses

from tourwatch.app import App, UpdateError
from tourwatch.storage import NoRowsError, StorageClient
from tourwatch.tours import AVAILABILITY_URL, TourDetail


def _future(days):
    moment = datetime.now(timezone.utc) + timedelta(days=days)
    return moment.replace(hour=9, minute=0, second=0, microsecond=0)


def _iso(moment):
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


def _slot(start, available=True):
    return {
        "id": _iso(start),
        "localDateTimeStart": _iso(start),
        "localDateTimeEnd": _iso(start + timedelta(hours=3)),
        "available": available,
        "vacancies": 5,
        "unitPricing": [{"unitType": "ADULT", "retail": 7900, "currency": "USD"}],
    }


@pytest.fixture
def storage():
    with StorageClient(":memory:") as client:
        yield client


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


class _Recorder:
    def __init__(self):
        self.sent = []

    def send(self, title, message):
        self.sent.append((title, message))


def _tour(storage, name="Colosseum"):
    tour = TourDetail(name=name, link="https://example.com/tour", product_id=uuid4())
    storage.set(tour)
    return tour


def test_update_stores_first_availability(storage, mocked):
    tour = _tour(storage)
    start = _future(10)
    mocked.add(responses.POST, AVAILABILITY_URL, json=[_slot(start)])
    app = App(":0", "token", storage)

    updated = app.update_latest_availability(tour)

    assert updated.local_date_time_start == start
    stored = storage.get_latest_availability(tour.product_id)
    assert stored.availability_date == start
    assert json.loads(stored.raw_data)["vacancies"] == 5


def test_update_skips_when_not_later(storage, mocked):
    tour = _tour(storage)
    start = _future(10)
    mocked.add(responses.POST, AVAILABILITY_URL, json=[_slot(start)])
    app = App(":0", "token", storage)

    app.update_latest_availability(tour)
    assert app.update_latest_availability(tour) is None
    assert len(storage.get_all_latest_availabilities()) == 1


def test_update_stores_later_availability(storage, mocked):
    tour = _tour(storage)
    first, later = _future(10), _future(20)
    mocked.add(responses.POST, AVAILABILITY_URL, json=[_slot(first)])
    mocked.add(responses.POST, AVAILABILITY_URL, json=[_slot(first), _slot(later)])
    app = App(":0", "token", storage)

    app.update_latest_availability(tour)
    updated = app.update_latest_availability(tour)

    assert updated.local_date_time_start == later
    assert storage.get_latest_availability(tour.product_id).availability_date == later


def test_unavailable_slots_are_ignored(storage, mocked):
    tour = _tour(storage)
    first = _future(10)
    mocked.add(responses.POST, AVAILABILITY_URL, json=[_slot(first), _slot(_future(30), available=False)])
    app = App(":0", "token", storage)

    updated = app.update_latest_availability(tour)

    assert updated.local_date_time_start == first


def test_update_many_collects_errors(storage, mocked):
    good = _tour(storage, "Good")
    bad = _tour(storage, "Bad")
    start = _future(10)

    def callback(req):
        body = json.loads(req.body)
        if body["productId"] == str(bad.product_id):
            return (500, {}, "boom")
        return (200, {}, json.dumps([_slot(start)]))

    mocked.add_callback(responses.POST, AVAILABILITY_URL, callback=callback)
    app = App(":0", "token", storage)
    seen = []

    with pytest.raises(UpdateError) as info:
        app.update_latest_availabilities(
            [good, bad], lambda tour, slot: seen.append((tour.name, slot.local_date_time_start))
        )

    assert seen == [("Good", start)]
    assert len(info.value.errors) == 1
    assert str(bad.product_id) in str(info.value)


def test_pretty_summary_table(storage):
    short = _tour(storage, "Short")
    long = _tour(storage, "x" * 70)
    start = _future(5)
    storage.add_latest_availability(short.product_id, start, "{}")
    storage.add_latest_availability(long.product_id, start, "{}")
    app = App(":0", "token", storage)
    out = io.StringIO()

    app.pretty_summary(out, storage.get_all())

    lines = out.getvalue().split("\n")
    assert lines[0] == ""
    assert lines[1].startswith("Tour Name")
    assert lines[1].endswith("| Available Date | Opened At")
    rows = lines[3:-1]
    assert len(rows) == 2
    names = sorted(row.split(" | ")[0] for row in rows)
    assert all(len(name) == 59 for name in names)
    assert "Short".ljust(59) in names
    assert "x" * 56 + "..." in names
    assert all(f"| {start:%Y-%m-%d}     | " in row for row in rows)


def test_summary_page_escapes_names(storage):
    tour = _tour(storage, "Vatican & Sistine")
    storage.add_latest_availability(tour.product_id, _future(5), "{}")
    app = App(":0", "token", storage)

    page = app.summarize_latest_availabilities()

    assert "Vatican &amp; Sistine" in page
    assert str(tour.product_id) in page
    assert page.startswith("<!doctype html>")


def test_log_summary_requires_availability(storage):
    tour = _tour(storage)
    app = App(":0", "token", storage)

    with pytest.raises(NoRowsError):
        app.log_summary([tour])


def test_watch_notifies_on_new_availability(storage, mocked):
    _tour(storage)
    start = _future(10)
    mocked.add(responses.POST, AVAILABILITY_URL, json=[_slot(start)])
    notifier = _Recorder()
    app = App(":0", "token", storage, notifier)
    stop = threading.Event()
    stop.set()

    app.watch(timedelta(seconds=60), stop)

    assert notifier.sent == [
        ("New tour availabilities posted", f"Tour: Colosseum\nDate: {start:%Y-%m-%d}")
    ]


def test_watch_rejects_non_positive_interval(storage):
    app = App(":0", "token", storage)
    with pytest.raises(ValueError):
        app.watch(0, threading.Event())


def test_root_redirects_to_summary(storage):
    client = App(":0", "token", storage).create_web_app().test_client()

    response = client.get("/")

    assert response.status_code == 302
    assert response.headers["Location"].endswith("/tours/summary")


def test_tours_crud(storage, mocked):
    mocked.add(responses.POST, AVAILABILITY_URL, status=500, body="down")
    client = App(":0", "token", storage).create_web_app().test_client()
    tour_id = str(uuid4())

    created = client.post("/tours", json={"Name": "Forum", "Link": "https://example.com/forum", "ProductID": tour_id})
    assert created.status_code == 201

    fetched = client.get(f"/tours/{tour_id}")
    assert fetched.status_code == 200
    assert fetched.get_json()["Name"] == "Forum"

    listed = client.get("/tours").get_json()
    assert [item["ProductID"] for item in listed["items"]] == [tour_id]

    mismatch = client.put(f"/tours/{tour_id}", json={"Name": "Forum", "ProductID": str(uuid4())})
    assert mismatch.status_code == 400

    assert client.delete(f"/tours/{tour_id}").status_code == 204
    assert client.get(f"/tours/{tour_id}").status_code == 404


def test_create_records_availability(storage, mocked):
    start = _future(10)
    mocked.add(responses.POST, AVAILABILITY_URL, json=[_slot(start)])
    client = App(":0", "token", storage).create_web_app().test_client()
    tour_id = uuid4()

    client.post("/tours", json={"Name": "Forum", "ProductID": str(tour_id)})

    assert storage.get_latest_availability(tour_id).availability_date == start


def test_tour_summary_route(storage, mocked):
    tour = _tour(storage)
    start = _future(10)
    mocked.add(responses.POST, AVAILABILITY_URL, json=[_slot(start)])
    client = App(":0", "token", storage).create_web_app().test_client()

    response = client.get(f"/tours/{tour.product_id}/summary")

    assert response.status_code == 200
    text = response.get_data(as_text=True)
    assert f"{start:%Y-%m-%d %H:%M:%S}" in text
    assert "$79.00" in text


def test_tour_summary_unknown_tour(storage):
    client = App(":0", "token", storage).create_web_app().test_client()

    assert client.get(f"/tours/{uuid4()}/summary").status_code == 404
"""The watcher application: polling, notifications, summaries and the web API."""

from __future__ import annotations

import html
import io
import json
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, TextIO
from uuid import UUID

from flask import Flask, Response, jsonify, redirect, request

from tourwatch.date import Date
from tourwatch.notify import NotifyClient
from tourwatch.storage import NoRowsError, StorageClient
from tourwatch.tours import NIL_UUID, AvailabilityDetail, TourDetail
from tourwatch.tours import pretty_summary as availability_summary

logger = logging.getLogger("tourwatch")

_WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

_NAME_WIDTH = 59

_STATUS_TEXT = {400: "Invalid request.", 404: "Resource not found."}

OnUpdate = Callable[[TourDetail, AvailabilityDetail], None]


class UpdateError(Exception):
    """One or more tours could not be updated."""

    def __init__(self, errors: Iterable[Exception]) -> None:
        self.errors = list(errors)
        super().__init__("\n".join(str(error) for error in self.errors))


def _format_rfc1123(moment: datetime) -> str:
    zone = moment.tzname() or "UTC"
    return (
        f"{_WEEKDAYS[moment.weekday()]}, {moment.day:02d} {_MONTHS[moment.month - 1]} "
        f"{moment.year:04d} {moment:%H:%M:%S} {zone}"
    )


def _truncate(text: str, width: int) -> str:
    if len(text) <= width:
        return text.ljust(width)
    return text[: width - 3] + "..."


def _split_addr(addr: str) -> tuple[str, int]:
    host, sep, port = addr.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid address {addr!r}: expected host:port")
    return host or "0.0.0.0", int(port)


def _lookup(data: dict, key: str) -> Any:
    if key in data:
        return data[key]
    folded = key.casefold()
    return next((v for k, v in data.items() if k.casefold() == folded), None)


def _tour_from_json(data: Any) -> TourDetail:
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    fields = {}
    for attr, key in (("name", "Name"), ("link", "Link"), ("api_url", "ApiUrl")):
        value = _lookup(data, key)
        if value is not None and not isinstance(value, str):
            raise ValueError(f"{key}: expected a string")
        fields[attr] = value or ""
    product_id = _lookup(data, "ProductID")
    fields["product_id"] = UUID(str(product_id)) if product_id else NIL_UUID
    return TourDetail(**fields)


def _tour_to_json(tour: TourDetail) -> dict:
    return {
        "Name": tour.name,
        "Link": tour.link,
        "ApiUrl": tour.api_url,
        "ProductID": str(tour.product_id),
    }


def _error(status: int, message: str) -> tuple[Response, int]:
    return jsonify({"status": _STATUS_TEXT.get(status, "Error."), "error": message}), status


class App:
    """Keeps stored tours' latest availabilities current and serves summaries of them."""

    def __init__(
        self,
        addr: str,
        access_token: str,
        storage: StorageClient,
        notify_client: NotifyClient | None = None,
    ) -> None:
        self.addr = addr
        self.access_token = access_token
        self.storage = storage
        self.notify_client = notify_client

    def create_web_app(self) -> Flask:
        """A web application exposing the tours API and the summary pages."""
        web = Flask("tourwatch")

        @web.get("/")
        def root():
            return redirect("/tours/summary", code=302)

        @web.get("/tours/summary")
        def tours_summary():
            try:
                page = self.summarize_latest_availabilities()
            except Exception as exc:
                return _error(400, f"error getting availabilities: {exc}")
            return Response(page, mimetype="text/html")

        @web.get("/tours")
        def list_tours():
            return jsonify({"items": [_tour_to_json(t) for t in self.storage.get_all()]})

        @web.post("/tours")
        def create_tour():
            try:
                tour = _tour_from_json(request.get_json(force=True, silent=False))
            except Exception as exc:
                return _error(400, str(exc))
            self.storage.set(tour)
            self._after_store(tour)
            return jsonify(_tour_to_json(tour)), 201

        def load(tour_id: str) -> TourDetail | tuple[Response, int]:
            try:
                return self.storage.get(UUID(tour_id))
            except ValueError as exc:
                return _error(400, str(exc))
            except NoRowsError:
                return _error(404, "resource not found")

        @web.get("/tours/<tour_id>")
        def get_tour(tour_id: str):
            found = load(tour_id)
            if not isinstance(found, TourDetail):
                return found
            return jsonify(_tour_to_json(found))

        @web.put("/tours/<tour_id>")
        def put_tour(tour_id: str):
            try:
                wanted = UUID(tour_id)
                tour = _tour_from_json(request.get_json(force=True, silent=False))
            except Exception as exc:
                return _error(400, str(exc))
            if tour.product_id != wanted:
                return _error(400, "id must match URL path")
            self.storage.set(tour)
            self._after_store(tour)
            return jsonify(_tour_to_json(tour))

        @web.delete("/tours/<tour_id>")
        def delete_tour(tour_id: str):
            found = load(tour_id)
            if not isinstance(found, TourDetail):
                return found
            self.storage.delete(found.product_id)
            return Response(status=204)

        @web.get("/tours/<tour_id>/summary")
        def tour_summary(tour_id: str):
            found = load(tour_id)
            if not isinstance(found, TourDetail):
                return found
            try:
                text = self.summarize_tour_dates(found)
            except Exception as exc:
                return _error(400, f"error getting availability: {exc}")
            return Response(text, mimetype="text/plain")

        return web

    def _after_store(self, tour: TourDetail) -> None:
        try:
            updated = self.update_latest_availability(tour)
        except Exception as exc:
            logger.error("error updating availability tour_id=%s err=%s", tour.product_id, exc)
            return
        logger.debug("updated tour details tour_id=%s changed=%s", tour.product_id, updated is not None)

    def run(self, interval: timedelta | float) -> None:
        """Serve the web application while watching for new availability."""
        host, port = _split_addr(self.addr)
        stop = threading.Event()
        watcher = threading.Thread(target=self.watch, args=(interval, stop), daemon=True)
        watcher.start()
        try:
            self.create_web_app().run(host=host, port=port, threaded=True, use_reloader=False)
        finally:
            stop.set()
            watcher.join()

    def summarize_latest_availabilities(self) -> str:
        """An HTML page listing each tour's latest recorded availability."""
        cards = []
        for row in self.storage.get_all_latest_availabilities():
            cards.append(
                '        <div class="uk-container uk-margin-top uk-margin-bottom">\n'
                '            <div class="uk-card uk-card-default uk-card-body uk-margin-auto">\n'
                f'                <h3 class="uk-card-title"><a href="{html.escape(row.link)}">'
                f"{html.escape(row.name)}</a></h3>\n"
                f'                <p class="uk-text-meta">{row.uuid}</p>\n'
                '                <ul class="uk-list uk-list-divider">\n'
                "                    <li><strong>Latest Tour Date:</strong> "
                f"{_format_rfc1123(row.availability_date)}</li>\n"
                "                    <li><strong>Recorded At:</strong> "
                f"{_format_rfc1123(row.recorded_at)}</li>\n"
                "                </ul>\n"
                "            </div>\n"
                "        </div>\n"
            )
        return (
            "<!doctype html>\n"
            '<html lang="en">\n'
            "    <head>\n"
            '        <meta charset="UTF-8" />\n'
            "        <title>Tours Availability Summary</title>\n"
            "    </head>\n"
            "    <body>\n"
            + "".join(cards)
            + "    </body>\n"
            "</html>"
        )

    def summarize_tour_dates(self, tour: TourDetail) -> str:
        """A table of every slot of the tour within the coming year."""
        start = Date.from_datetime(datetime.now())
        end = start.add(1, 0, 0)
        slots = tour.find_availability(self.access_token, start, end, lambda _: True)
        out = io.StringIO()
        availability_summary(slots, out)
        return out.getvalue()

    def log_summary(self, tours: Iterable[TourDetail]) -> None:
        """Log each tour's latest recorded availability."""
        for tour in tours:
            try:
                stored = self.storage.get_latest_availability(tour.product_id)
            except NoRowsError as exc:
                raise NoRowsError(f"error getting availability for tour {tour.name!r}: {exc}") from exc
            logger.info(
                "%s tour_id=%s latest_availability=%s recorded_at=%s",
                tour.name,
                tour.product_id,
                stored.availability_date,
                stored.recorded_at,
            )

    def pretty_summary(self, out: TextIO, tours: Iterable[TourDetail]) -> None:
        """Write a table of every tour's latest recorded availability."""
        rows = self.storage.get_all_latest_availabilities()
        out.write("\n")
        out.write(f"{'Tour Name':<60}| Available Date | Opened At\n")
        out.write("-" * 60 + "|" + "-" * 16 + "|" + "-" * 16 + "\n")
        for row in rows:
            out.write(
                f"{_truncate(row.name, _NAME_WIDTH)} | {row.availability_date:%Y-%m-%d}     | "
                f"{row.recorded_at:%Y-%m-%d %H:%M:%S}\n"
            )

    def update_latest_availabilities(
        self, tours: Iterable[TourDetail], on_update: OnUpdate | None = None
    ) -> None:
        """Update every tour concurrently; raises UpdateError listing the failures."""
        tours = list(tours)
        if not tours:
            return
        errors: list[Exception] = []
        lock = threading.Lock()

        def update(tour: TourDetail) -> None:
            try:
                updated = self.update_latest_availability(tour)
            except Exception as exc:
                error = RuntimeError(f'error updating availability for "{tour.product_id}": {exc}')
                error.__cause__ = exc
                with lock:
                    errors.append(error)
                return
            logger.debug(
                "updated tour details tour_id=%s changed=%s", tour.product_id, updated is not None
            )
            if on_update is not None and updated is not None:
                on_update(tour, updated)

        with ThreadPoolExecutor(max_workers=len(tours)) as pool:
            list(pool.map(update, tours))

        if errors:
            raise UpdateError(errors)

    def update_latest_availability(self, tour: TourDetail) -> AvailabilityDetail | None:
        """Fetch the tour's latest slot and store it if it is later than the one stored."""
        availability = tour.get_latest_availability(self.access_token)
        try:
            stored = self.storage.get_latest_availability(tour.product_id)
        except NoRowsError:
            self._store_latest_availability(tour, availability)
            return availability
        if stored.availability_date >= availability.local_date_time_start:
            return None
        self._store_latest_availability(tour, availability)
        return availability

    def _store_latest_availability(self, tour: TourDetail, availability: AvailabilityDetail) -> None:
        self.storage.add_latest_availability(
            tour.product_id,
            availability.local_date_time_start,
            json.dumps(availability.to_dict()),
        )

    def _notify(self, tour: TourDetail, availability: AvailabilityDetail) -> None:
        if self.notify_client is None:
            return
        try:
            self.notify_client.send(
                "New tour availabilities posted",
                f"Tour: {tour.name}\nDate: {availability.local_date_time_start:%Y-%m-%d}",
            )
        except Exception as exc:
            logger.error("error sending notification err=%s", exc)

    def _update_for_watch(self, started: float) -> None:
        try:
            tours = self.storage.get_all()
        except Exception as exc:
            logger.error("error updating availabilities err=error getting tours: %s", exc)
            return
        logger.debug("updating availabilities")
        try:
            self.update_latest_availabilities(tours, self._notify)
        except Exception as exc:
            logger.error("error updating availabilities err=%s", exc)
            return
        logger.debug(
            "finished updating availabilities duration=%.3fs", time.monotonic() - started
        )

    def watch(
        self, interval: timedelta | float, stop_event: threading.Event | None = None
    ) -> None:
        """Update now, then on every interval boundary until stop_event is set."""
        seconds = interval.total_seconds() if isinstance(interval, timedelta) else float(interval)
        if seconds <= 0:
            raise ValueError("interval must be positive")
        stop = stop_event if stop_event is not None else threading.Event()

        self._update_for_watch(time.monotonic())

        now = time.time()
        until_next = (now // seconds + 1) * seconds - now
        logger.debug("waiting to start duration=%.3fs", until_next)
        if stop.wait(until_next):
            return

        next_tick = time.monotonic() + seconds
        while not stop.wait(max(0.0, next_tick - time.monotonic())):
            self._update_for_watch(time.monotonic())
            next_tick += seconds
            while next_tick <= time.monotonic():
                next_tick += seconds
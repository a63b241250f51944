"""SQLite storage for watched tours and the latest availability seen for each."""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from tourwatch.tours import TourDetail

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS tours (
        uuid TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        link TEXT NOT NULL,
        api_url TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS latest_availabilities (
        tour_uuid TEXT NOT NULL,
        recorded_at TIMESTAMP NOT NULL,
        availability_date TIMESTAMP NOT NULL,
        raw_data TEXT NOT NULL
    )
    """,
)

_ADD_LATEST_AVAILABILITY = """
INSERT INTO latest_availabilities (tour_uuid, recorded_at, availability_date, raw_data)
VALUES (?, CURRENT_TIMESTAMP, ?, ?)
"""

_GET_ALL_LATEST_AVAILABILITIES = """
SELECT t.name, t.link, t.api_url, t.uuid, la.recorded_at, la.availability_date, la.raw_data
FROM latest_availabilities la
JOIN tours t ON t.uuid = la.tour_uuid
WHERE la.recorded_at = (
    SELECT MAX(recorded_at) FROM latest_availabilities WHERE tour_uuid = t.uuid
)
"""

_GET_LATEST_AVAILABILITY = """
SELECT tour_uuid, recorded_at, availability_date, raw_data
FROM latest_availabilities
WHERE tour_uuid = ?
ORDER BY availability_date DESC
LIMIT 1
"""

_DELETE_TOUR = "DELETE FROM tours WHERE uuid = ?"

_GET_TOUR = "SELECT uuid, name, link, api_url FROM tours WHERE uuid = ? LIMIT 1"

_LIST_TOURS = "SELECT uuid, name, link, api_url FROM tours"

_UPSERT_TOUR = """
INSERT INTO tours (uuid, name, link, api_url)
VALUES (?, ?, ?, ?) ON CONFLICT (uuid) DO UPDATE SET
    name = EXCLUDED.name,
    link = EXCLUDED.link,
    api_url = EXCLUDED.api_url
"""


class NoRowsError(LookupError):
    """A query that needs a row found none."""


@dataclass(frozen=True)
class LatestAvailability:
    """A recorded latest availability of one tour."""

    tour_uuid: UUID
    recorded_at: datetime
    availability_date: datetime
    raw_data: str


@dataclass(frozen=True)
class LatestAvailabilityRow:
    """A tour together with its most recently recorded availability."""

    name: str
    link: str
    api_url: str
    uuid: UUID
    recorded_at: datetime
    availability_date: datetime
    raw_data: str


def _as_uuid(value: str | UUID) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


def _to_db_time(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(sep=" ")


def _from_db_time(text: str) -> datetime:
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _tour_from_row(row: tuple) -> TourDetail:
    uuid_text, name, link, api_url = row
    return TourDetail(name=name, link=link, api_url=api_url, product_id=UUID(uuid_text))


class StorageClient:
    """Tours and availabilities kept in an SQLite database file."""

    def __init__(self, filename: str) -> None:
        self._lock = threading.Lock()
        try:
            self._db = sqlite3.connect(
                filename,
                uri=filename.startswith("file:"),
                check_same_thread=False,
                isolation_level=None,
            )
        except sqlite3.Error as exc:
            raise sqlite3.OperationalError(f"error connecting to database: {exc}") from exc
        try:
            for statement in _SCHEMA:
                self._db.execute(statement)
        except sqlite3.Error as exc:
            self._db.close()
            raise sqlite3.OperationalError(f"error creating tables: {exc}") from exc

    def close(self) -> None:
        self._db.close()

    def __enter__(self) -> StorageClient:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def _query(self, sql: str, params: tuple = ()) -> list[tuple]:
        with self._lock:
            return self._db.execute(sql, params).fetchall()

    def _execute(self, sql: str, params: tuple = ()) -> None:
        with self._lock:
            self._db.execute(sql, params)

    def get(self, tour_id: str | UUID) -> TourDetail:
        """The tour with this ID; raises NoRowsError if there is none."""
        rows = self._query(_GET_TOUR, (str(_as_uuid(tour_id)),))
        if not rows:
            raise NoRowsError(f"no tour with id {tour_id}")
        return _tour_from_row(rows[0])

    def get_all(self) -> list[TourDetail]:
        """Every stored tour."""
        return [_tour_from_row(row) for row in self._query(_LIST_TOURS)]

    def set(self, tour: TourDetail) -> None:
        """Insert the tour, or update it if its ID is already stored."""
        self._execute(
            _UPSERT_TOUR, (str(tour.product_id), tour.name, tour.link, tour.api_url)
        )

    def delete(self, tour_id: str | UUID) -> None:
        """Remove the tour with this ID."""
        self._execute(_DELETE_TOUR, (str(_as_uuid(tour_id)),))

    def add_latest_availability(
        self, tour_uuid: UUID, availability_date: datetime, raw_data: str
    ) -> None:
        """Record a newly seen latest availability, stamped with the current time."""
        self._execute(
            _ADD_LATEST_AVAILABILITY,
            (str(_as_uuid(tour_uuid)), _to_db_time(availability_date), raw_data),
        )

    def get_latest_availability(self, tour_uuid: UUID) -> LatestAvailability:
        """The record with the furthest availability date; raises NoRowsError if none."""
        rows = self._query(_GET_LATEST_AVAILABILITY, (str(_as_uuid(tour_uuid)),))
        if not rows:
            raise NoRowsError(f"no availability recorded for tour {tour_uuid}")
        uuid_text, recorded_at, availability_date, raw_data = rows[0]
        return LatestAvailability(
            tour_uuid=UUID(uuid_text),
            recorded_at=_from_db_time(recorded_at),
            availability_date=_from_db_time(availability_date),
            raw_data=raw_data,
        )

    def get_all_latest_availabilities(self) -> list[LatestAvailabilityRow]:
        """Each tour with its most recently recorded availability."""
        return [
            LatestAvailabilityRow(
                name=name,
                link=link,
                api_url=api_url,
                uuid=UUID(uuid_text),
                recorded_at=_from_db_time(recorded_at),
                availability_date=_from_db_time(availability_date),
                raw_data=raw_data,
            )
            for name, link, api_url, uuid_text, recorded_at, availability_date, raw_data in self._query(
                _GET_ALL_LATEST_AVAILABILITIES
            )
        ]
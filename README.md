# tourwatch

tourwatch watches the booking calendars of guided tours. For each stored
tour it queries the booking API for the coming year and records the furthest
available date. When a later date shows up it can send a Pushover
notification. A built-in web server offers a JSON API for the tours and an
HTML page with each tour's latest recorded date. The `chat` command hands
questions about the tours to a model served by Ollama, which can call tools
to look up tour details and availability.

## Installation

```
pip install .
```

For development and tests:

```
pip install ".[test]"
pytest
```

## Configuration

Global options come before the command. Each can also be set through an
environment variable:

| Flag                          | Environment variable        | Meaning                                   |
|-------------------------------|-----------------------------|-------------------------------------------|
| `--debug`                     | `DEBUG`                     | enable debug logs                         |
| `--db`                        | `DB`                        | SQLite database file (default: shared in-memory database) |
| `--pushover-app-token`        | `PUSHOVER_APP_TOKEN`        | app token for push notifications          |
| `--pushover-recipient-token`  | `PUSHOVER_RECIPIENT_TOKEN`  | recipient token for push notifications    |
| `--ventrata-token`            | `VENTRATA_TOKEN`            | access token for the booking API          |
| `--walks-token`               | `WALKS_TOKEN`               | access token for the tour details API     |

Notifications are sent only when both push tokens are set. `DEBUG` accepts
values such as `1`, `true`, `0` or `false`.

## Commands

When no command is given, `watch` runs.

Load tours from a JSON file into the database. A tour with an empty or
missing `ProductID` gets a new random one:

```
tourwatch --db tours.db load --data tours.json
```

The file holds a list of tours:

```json
[
  {"Name": "Example Tour", "Link": "https://example.com/tour", "ApiUrl": "https://example.com/api/tour", "ProductID": ""}
]
```

Poll for newly opened dates. `--interval` takes durations such as `15s`,
`1m` or `1h30m`; the default is `15s` and the environment variable is
`INTERVAL`. It checks once at start-up and then on each interval boundary:

```
tourwatch --db tours.db --ventrata-token token watch --interval 1m
```

Update every tour once and print a table of the latest recorded dates:

```
tourwatch --db tours.db --ventrata-token token update
```

Serve the web application while watching. `--addr` defaults to `:7077`
(all interfaces); the environment variable is `ADDR`:

```
tourwatch --db tours.db --ventrata-token token serve --addr :7077
```

The server answers:

- `GET /` redirects to `/tours/summary`
- `GET /tours/summary` is the HTML page of latest recorded dates
- `GET /tours`, `POST /tours` list and create tours
- `GET`, `PUT`, `DELETE /tours/<id>` read, replace and remove one tour
- `GET /tours/<id>/summary` is a plain-text table of that tour's slots for the coming year

Creating or replacing a tour also fetches and stores its latest availability.

Search one tour's availability between two dates and print date, adult price
and vacancies:

```
tourwatch --ventrata-token token search --tour-id 00000000-0000-0000-0000-000000000000 --start 2025-04-01 --end 2025-04-30
```

Print the description of every stored tour as JSON:

```
tourwatch --db tours.db --walks-token token details
```

Chat on the terminal with a model served by Ollama. `--model` defaults to
`qwen2.5:7b` (environment variable `MODEL`); the server address is taken
from `OLLAMA_HOST`, falling back to `127.0.0.1:11434`. Input ends the chat at
end of file:

```
tourwatch --db tours.db --ventrata-token token --walks-token token chat
```

## Library use

```python
from tourwatch.date import Date
from tourwatch.storage import StorageClient

with StorageClient("tours.db") as storage:
    for tour in storage.get_all():
        latest = tour.get_latest_availability("token")
        print(tour.name, latest.local_date_time_start)

print(Date.parse("2025-03-30").add(0, 1, 0))  # 2025-04-30
```

The modules are `tourwatch.date`, `tourwatch.description`,
`tourwatch.tours`, `tourwatch.notify`, `tourwatch.storage`, `tourwatch.app`,
`tourwatch.tools`, `tourwatch.chat` and `tourwatch.cli`.

## Limits

The web API has no authentication, and the in-memory default database is
lost when the process ends; pass `--db` with a file name to keep data.
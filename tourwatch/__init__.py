"""Watch guided-tour booking calendars for newly opened dates, with storage, notifications, a web server and a chat mode."""

__version__ = "0.1.0"